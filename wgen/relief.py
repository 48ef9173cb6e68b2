"""Relief generators: random hills, fBm noise and midpoint displacement."""

from __future__ import annotations

import threading

import numpy as np

from wgen.config import HILLS_REFERENCE_WIDTH, FbmConfig, HillsConfig, MidPointConfig
from wgen.field import ScalarField
from wgen.noise import fbm_2d, permutation_table
from wgen.parallel import Progress, check_cancel, report, run_row_bands


_FBM_SAMPLE_SPAN = 512.0
_FBM_SCALE_DIVISOR = 400.0


def generate_hills(
    field: ScalarField,
    config: HillsConfig,
    *,
    rng: np.random.Generator,
    cancel: threading.Event | None = None,
    workers: int | None = None,
    progress: Progress | None = None,
) -> ScalarField:
    """Add `config.count` hemispherical bumps with random center, radius and height."""

    config.validate()
    width, height = field.width, field.height
    count = int(config.count)

    radii = rng.uniform(config.radius_min, config.radius_max, size=count) * (width / HILLS_REFERENCE_WIDTH)
    heights = rng.uniform(config.height_min, config.height_max, size=count)
    centers_x = rng.random(count) * width
    centers_y = rng.random(count) * height

    out = field.to_array()

    def band(y0: int, y1: int) -> None:
        for i in range(count):
            radius = float(radii[i])
            if radius <= 0.0:
                continue
            cx = float(centers_x[i])
            cy = float(centers_y[i])
            ylo = max(y0, int(np.floor(cy - radius)))
            yhi = min(y1, int(np.ceil(cy + radius)) + 1)
            xlo = max(0, int(np.floor(cx - radius)))
            xhi = min(width, int(np.ceil(cx + radius)) + 1)
            if ylo >= yhi or xlo >= xhi:
                continue
            dy = np.arange(ylo, yhi, dtype=np.float64) - cy
            dx = np.arange(xlo, xhi, dtype=np.float64) - cx
            dist2 = dy[:, None] ** 2 + dx[None, :] ** 2
            bump = heights[i] * np.maximum(0.0, 1.0 - dist2 / (radius * radius))
            out[ylo:yhi, xlo:xhi] += bump.astype(np.float32)

    run_row_bands(band, height, workers=workers, cancel=cancel, progress=progress)
    return ScalarField(out)


def generate_fbm(
    field: ScalarField,
    config: FbmConfig,
    *,
    rng: np.random.Generator,
    cancel: threading.Event | None = None,
    workers: int | None = None,
    progress: Progress | None = None,
) -> ScalarField:
    """Add `bias + amplitude * fbm(x, y)` to every cell, evaluated in parallel row bands."""

    config.validate()
    width, height = field.width, field.height
    perm = permutation_table(rng)

    x_coef = config.scale_x / _FBM_SCALE_DIVISOR
    y_coef = config.scale_y / _FBM_SCALE_DIVISOR
    xs = (np.arange(width, dtype=np.float64) * _FBM_SAMPLE_SPAN / width + config.offset_x) * x_coef

    out = field.to_array()

    def band(y0: int, y1: int) -> None:
        ys = (np.arange(y0, y1, dtype=np.float64) * _FBM_SAMPLE_SPAN / height + config.offset_y) * y_coef
        noise = fbm_2d(
            perm,
            xs[None, :],
            ys[:, None],
            octaves=config.octaves,
            persistence=config.persistence,
            lacunarity=config.lacunarity,
        )
        out[y0:y1, :] += (config.bias + config.amplitude * noise).astype(np.float32)

    run_row_bands(band, height, workers=workers, cancel=cancel, progress=progress)
    return ScalarField(out)


def generate_mid_point(
    field: ScalarField,
    config: MidPointConfig,
    *,
    rng: np.random.Generator,
    cancel: threading.Event | None = None,
    workers: int | None = None,
    progress: Progress | None = None,
) -> ScalarField:
    """Replace the field with a square-diamond fractal resampled to its size."""

    config.validate()
    size = working_size(max(field.width, field.height))
    grid = diamond_square(
        size,
        rng,
        displacement=config.displacement,
        roughness=config.roughness,
        cancel=cancel,
        progress=progress,
    )
    return ScalarField(grid).resize(field.width, field.height, method="bilinear")


def working_size(extent: int) -> int:
    """Smallest 2^n + 1 grid size covering `extent` cells."""

    span = 1
    while span + 1 < extent:
        span *= 2
    return span + 1


def diamond_square(
    size: int,
    rng: np.random.Generator,
    *,
    displacement: float,
    roughness: float,
    cancel: threading.Event | None = None,
    progress: Progress | None = None,
) -> np.ndarray:
    """Square-diamond displacement on a `size` x `size` grid, `size` = 2^n + 1."""

    if size < 2 or ((size - 1) & (size - 2)) != 0:
        raise ValueError(f"diamond-square size must be 2^n + 1, got {size}")

    grid = np.zeros((size, size), dtype=np.float64)
    corners = rng.random(4)
    grid[0, 0], grid[0, -1], grid[-1, 0], grid[-1, -1] = corners

    step = size - 1
    levels = (size - 1).bit_length() - 1
    amplitude = float(displacement)
    done = 0
    while step > 1:
        check_cancel(cancel)
        half = step // 2

        # Square step: centers of each square from its four corners.
        tl = grid[0:size - 1:step, 0:size - 1:step]
        tr = grid[0:size - 1:step, step::step]
        bl = grid[step::step, 0:size - 1:step]
        br = grid[step::step, step::step]
        offsets = rng.uniform(-amplitude, amplitude, size=tl.shape)
        grid[half::step, half::step] = (tl + tr + bl + br) * 0.25 + offsets

        # Diamond step: edge midpoints from their (up to four) neighbours.
        row_points = _diamond_average(grid, np.arange(0, size, step), np.arange(half, size, step), half)
        col_points = _diamond_average(grid, np.arange(half, size, step), np.arange(0, size, step), half)
        row_points += rng.uniform(-amplitude, amplitude, size=row_points.shape)
        col_points += rng.uniform(-amplitude, amplitude, size=col_points.shape)
        grid[0::step, half::step] = row_points
        grid[half::step, 0::step] = col_points

        amplitude *= roughness
        step = half
        done += 1
        report(progress, done / levels)
    return grid.astype(np.float32)


def _diamond_average(grid: np.ndarray, ys: np.ndarray, xs: np.ndarray, reach: int) -> np.ndarray:
    size = grid.shape[0]
    yy, xx = np.meshgrid(ys, xs, indexing="ij")
    total = np.zeros(yy.shape, dtype=np.float64)
    count = np.zeros(yy.shape, dtype=np.float64)
    for dy, dx in ((-reach, 0), (reach, 0), (0, -reach), (0, reach)):
        ny = yy + dy
        nx = xx + dx
        valid = (ny >= 0) & (ny < size) & (nx >= 0) & (nx < size)
        total[valid] += grid[ny[valid], nx[valid]]
        count += valid
    return total / count
