"""Shaping generators: normalization, land/water split and island falloff."""

from __future__ import annotations

import threading

import numpy as np

from wgen.config import IslandConfig, LandMassConfig, NormalizeConfig
from wgen.field import ScalarField
from wgen.parallel import Progress, run_row_bands


def generate_normalize(
    field: ScalarField,
    config: NormalizeConfig,
    *,
    rng: np.random.Generator | None = None,
    cancel: threading.Event | None = None,
    workers: int | None = None,
    progress: Progress | None = None,
) -> ScalarField:
    """Rescale the field to [low, high]."""

    config.validate()
    return field.normalize(config.low, config.high)


def land_threshold(values: np.ndarray, land_proportion: float) -> tuple[float, int]:
    """Elevation T with round(p * N) cells at or above it, from the observed distribution.

    Returns (T, k). For k == 0 the threshold is +inf (no land).
    """

    flat = np.asarray(values, dtype=np.float64).ravel()
    n = flat.size
    k = int(round(float(land_proportion) * n))
    k = min(max(k, 0), n)
    if k == 0:
        return float("inf"), 0
    kth_largest = np.partition(flat, n - k)[n - k]
    return float(kth_largest), k


def generate_landmass(
    field: ScalarField,
    config: LandMassConfig,
    *,
    rng: np.random.Generator | None = None,
    cancel: threading.Event | None = None,
    workers: int | None = None,
    progress: Progress | None = None,
) -> ScalarField:
    """Move the land threshold onto the water level and reshape both sides of it.

    Cells at or above the threshold end up in [water_level, 1] along a
    `plain_factor` power curve; cells below end up strictly under the water
    level, lowered by `shore_height`. The input need not be normalized.
    """

    config.validate()
    values = field.data.astype(np.float64)
    lo, hi = field.min_max()
    threshold, _ = land_threshold(values, config.land_proportion)
    water = float(config.water_level)

    land = values >= threshold
    out = np.empty(values.shape, dtype=np.float64)

    span = hi - threshold
    if np.any(land):
        t = (values[land] - threshold) / span if span > 0.0 else np.zeros(int(land.sum()))
        out[land] = water + np.power(np.clip(t, 0.0, 1.0), config.plain_factor) * (1.0 - water)

    sea = ~land
    if np.any(sea):
        top = hi if np.isinf(threshold) else threshold
        depth = top - lo
        t = (values[sea] - lo) / depth if depth > 0.0 else np.zeros(int(sea.sum()))
        out[sea] = water * np.power(np.clip(t, 0.0, 1.0), config.sea_curve) - config.shore_height

    result = out.astype(np.float32)
    below_water = np.nextafter(np.float32(water), np.float32(-np.inf))
    result[sea] = np.minimum(result[sea], below_water)
    return ScalarField(result)


def island_falloff(width: int, height: int, coast_range: float) -> tuple[np.ndarray, np.ndarray]:
    """Separable border falloff factors (per column, per row) in [0, 1]."""

    return _edge_ramp(width, coast_range), _edge_ramp(height, coast_range)


def generate_island(
    field: ScalarField,
    config: IslandConfig,
    *,
    rng: np.random.Generator | None = None,
    cancel: threading.Event | None = None,
    workers: int | None = None,
    progress: Progress | None = None,
) -> ScalarField:
    """Pull cells near the border down to a floor elevation."""

    config.validate()
    floor = field.min_max()[0] if config.floor is None else float(config.floor)
    col_factor, row_factor = island_falloff(field.width, field.height, config.coast_range)
    src = field.data
    out = np.empty(field.shape, dtype=np.float32)

    def band(y0: int, y1: int) -> None:
        factor = row_factor[y0:y1, None] * col_factor[None, :]
        out[y0:y1, :] = (floor + (src[y0:y1, :].astype(np.float64) - floor) * factor).astype(np.float32)

    run_row_bands(band, field.height, workers=workers, cancel=cancel, progress=progress)
    return ScalarField(out)


def _edge_ramp(length: int, coast_range: float) -> np.ndarray:
    band = length * float(coast_range) / 100.0
    idx = np.arange(length, dtype=np.float64)
    distance = np.minimum(idx, (length - 1) - idx)
    if band <= 0.0:
        return np.ones(length, dtype=np.float64)
    return np.clip(distance / band, 0.0, 1.0)
