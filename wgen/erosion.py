"""Erosion generators: slope relaxation and raindrop hydraulic erosion."""

from __future__ import annotations

import math
import threading

import numpy as np

from wgen.config import MudSlideConfig, WaterErosionConfig
from wgen.field import ScalarField
from wgen.parallel import Progress, check_cancel, report


_SQRT2 = math.sqrt(2.0)

# (dy, dx, distance) for the 8-neighbourhood; order fixes tie-breaking.
_NEIGHBOURS_8 = [
    (-1, 0, 1.0),
    (1, 0, 1.0),
    (0, 1, 1.0),
    (0, -1, 1.0),
    (-1, 1, _SQRT2),
    (-1, -1, _SQRT2),
    (1, 1, _SQRT2),
    (1, -1, _SQRT2),
]


def generate_mudslide(
    field: ScalarField,
    config: MudSlideConfig,
    *,
    rng: np.random.Generator | None = None,
    cancel: threading.Event | None = None,
    workers: int | None = None,
    progress: Progress | None = None,
) -> ScalarField:
    """Relax slopes by moving material from each cell to its steepest downhill neighbour.

    Every iteration is a simultaneous update. A donor sends
    `strength * drop / 2`, damped at altitude, and a receiver fed by several
    donors has its intake scaled down so it never rises past half the
    smallest incoming drop. Total mass is conserved.
    """

    config.validate()
    heights = field.data.astype(np.float64)
    water = float(config.water_level)
    altitude_span = max(1.0 - water, 1e-9)

    iterations = int(config.iterations)
    for done in range(1, iterations + 1):
        check_cancel(cancel)
        direction, drop = steepest_descent(heights)

        hcoef = np.clip((heights - water) / altitude_span, 0.0, 1.0)
        active = (direction >= 0) & (heights >= water - 0.01) & (heights < config.max_erosion_alt)
        amount = np.where(active, config.strength * drop * 0.5 * (1.0 - hcoef**3), 0.0)

        amount = _limit_intake(amount, direction, drop, config.strength)
        largest = float(amount.max()) if amount.size else 0.0
        heights = heights - amount + _gather_transfers(amount, direction)
        report(progress, done / iterations)
        if largest <= 0.0 or largest < config.min_delta:
            break

    return ScalarField(heights.astype(np.float32))


def steepest_descent(heights: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    """Index into the 8-neighbourhood of the steepest downhill neighbour (-1 for sinks) and its drop."""

    best_slope = np.zeros(heights.shape, dtype=np.float64)
    best_drop = np.zeros(heights.shape, dtype=np.float64)
    direction = np.full(heights.shape, -1, dtype=np.int8)
    for idx, (dy, dx, dist) in enumerate(_NEIGHBOURS_8):
        neighbour = _shift(heights, dy, dx, fill=np.inf)
        drop = heights - neighbour
        slope = drop / dist
        better = slope > best_slope
        best_slope = np.where(better, slope, best_slope)
        best_drop = np.where(better, drop, best_drop)
        direction[better] = idx
    return direction, best_drop


def _limit_intake(amount: np.ndarray, direction: np.ndarray, drop: np.ndarray, strength: float) -> np.ndarray:
    incoming = np.zeros(amount.shape, dtype=np.float64)
    smallest_drop = np.full(amount.shape, np.inf, dtype=np.float64)
    for idx, (dy, dx, _) in enumerate(_NEIGHBOURS_8):
        sending = (direction == idx) & (amount > 0.0)
        if not np.any(sending):
            continue
        incoming += _shift(np.where(sending, amount, 0.0), -dy, -dx, fill=0.0)
        smallest_drop = np.minimum(smallest_drop, _shift(np.where(sending, drop, np.inf), -dy, -dx, fill=np.inf))

    limit = strength * 0.5 * smallest_drop
    with np.errstate(divide="ignore", invalid="ignore"):
        scale = np.where(incoming > limit, limit / incoming, 1.0)

    limited = amount.copy()
    for idx, (dy, dx, _) in enumerate(_NEIGHBOURS_8):
        sending = direction == idx
        if not np.any(sending):
            continue
        receiver_scale = _shift(scale, dy, dx, fill=1.0)
        limited[sending] *= receiver_scale[sending]
    return limited


def _gather_transfers(amount: np.ndarray, direction: np.ndarray) -> np.ndarray:
    received = np.zeros(amount.shape, dtype=np.float64)
    for idx, (dy, dx, _) in enumerate(_NEIGHBOURS_8):
        sending = direction == idx
        if np.any(sending):
            received += _shift(np.where(sending, amount, 0.0), -dy, -dx, fill=0.0)
    return received


def _shift(arr: np.ndarray, dy: int, dx: int, *, fill: float) -> np.ndarray:
    """out[y, x] = arr[y + dy, x + dx], `fill` outside the grid."""

    out = np.full(arr.shape, fill, dtype=arr.dtype)
    h, w = arr.shape
    src_y0 = max(0, -dy)
    src_y1 = min(h, h - dy)
    src_x0 = max(0, -dx)
    src_x1 = min(w, w - dx)
    if src_y0 >= src_y1 or src_x0 >= src_x1:
        return out
    out[src_y0:src_y1, src_x0:src_x1] = arr[src_y0 + dy:src_y1 + dy, src_x0 + dx:src_x1 + dx]
    return out


def drop_count(width: int, height: int, drop_amount: float) -> int:
    """Number of raindrops: up to two per cell at `drop_amount` 1.0."""

    return int(round(width * height * 2.0 * float(drop_amount)))


def generate_water_erosion(
    field: ScalarField,
    config: WaterErosionConfig,
    *,
    rng: np.random.Generator,
    cancel: threading.Event | None = None,
    workers: int | None = None,
    progress: Progress | None = None,
) -> ScalarField:
    """Simulate raindrops in batches, applying each batch's changes before the next one starts.

    Within a batch every drop reads the heights the batch started from. Each
    cell may only move towards its lowest neighbour's height as it was at the
    start of the batch: erosion stops once a cell is level with that
    neighbour, and deposits stop once a pit is filled to it. Sediment that
    finds no room is lost, so the total never grows and the output stays
    inside the input's range. Drops run in one vectorized loop per batch, so
    `workers` has no effect on the result.
    """

    config.validate()
    heights = field.data.astype(np.float64)
    height, width = heights.shape
    starts = rng.integers(0, width * height, size=drop_count(width, height, config.drop_amount))
    if starts.size == 0 or config.max_steps == 0:
        return field.copy()

    batch_size = int(config.batch_size)
    n_batches = -(-starts.size // batch_size)
    for done in range(1, n_batches + 1):
        check_cancel(cancel)
        batch = starts[(done - 1) * batch_size:done * batch_size]
        heights += _simulate_batch(heights, batch, config).reshape(height, width)
        report(progress, done / n_batches)

    return ScalarField(heights.astype(np.float32))


def lowest_neighbour(heights: np.ndarray) -> np.ndarray:
    """Height of each cell's lowest 8-neighbour (+inf for a 1x1 grid)."""

    lowest = np.full(heights.shape, np.inf, dtype=np.float64)
    for dy, dx, _ in _NEIGHBOURS_8:
        lowest = np.minimum(lowest, _shift(heights, dy, dx, fill=np.inf))
    return lowest


def _simulate_batch(heights: np.ndarray, starts: np.ndarray, config: WaterErosionConfig) -> np.ndarray:
    height, width = heights.shape
    delta = np.zeros(width * height, dtype=np.float64)
    padded = np.pad(heights, 1, mode="constant", constant_values=np.inf)

    lowest = lowest_neighbour(heights).ravel()
    flat = heights.ravel()
    has_neighbour = np.isfinite(lowest)
    erode_room = np.where(has_neighbour, np.maximum(flat - lowest, 0.0), 0.0)
    fill_room = np.where(has_neighbour, np.maximum(lowest - flat, 0.0), 0.0)

    ys = (starts // width).astype(np.int64)
    xs = (starts % width).astype(np.int64)
    water = np.ones(starts.size, dtype=np.float64)
    sediment = np.zeros(starts.size, dtype=np.float64)
    alive = np.ones(starts.size, dtype=bool)

    for _ in range(int(config.max_steps)):
        idx = np.flatnonzero(alive)
        if idx.size == 0:
            break
        cy = ys[idx]
        cx = xs[idx]
        here = heights[cy, cx]

        best_slope = np.zeros(idx.size, dtype=np.float64)
        best_drop = np.zeros(idx.size, dtype=np.float64)
        step_y = np.zeros(idx.size, dtype=np.int64)
        step_x = np.zeros(idx.size, dtype=np.int64)
        for dy, dx, dist in _NEIGHBOURS_8:
            drop = here - padded[cy + 1 + dy, cx + 1 + dx]
            slope = drop / dist
            better = slope > best_slope
            best_slope = np.where(better, slope, best_slope)
            best_drop = np.where(better, drop, best_drop)
            step_y = np.where(better, dy, step_y)
            step_x = np.where(better, dx, step_x)

        # Sinks want to drop everything they carry.
        moving = best_slope > 0.0
        load = sediment[idx]
        capacity = config.capacity * np.maximum(best_drop, config.min_slope) * water[idx]
        over = ~moving | (load > capacity)
        want_deposit = np.where(~moving, load, np.where(over, (load - capacity) * config.deposition, 0.0))
        want_erode = np.where(over, 0.0, np.minimum(config.erosion_strength * best_drop, capacity - load))

        cells = cy * width + cx
        deposit = _claim(want_deposit, cells, fill_room)
        erode = _claim(want_erode, cells, erode_room)
        np.add.at(delta, cells, deposit - erode)
        sediment[idx] = load + erode - deposit

        sunk = idx[~moving]
        sediment[sunk] = 0.0
        alive[sunk] = False

        movers = idx[moving]
        ys[movers] += step_y[moving]
        xs[movers] += step_x[moving]
        water[movers] *= 1.0 - config.evaporation

    leftover = np.flatnonzero(alive & (sediment > 0.0))
    if leftover.size:
        cells = ys[leftover] * width + xs[leftover]
        np.add.at(delta, cells, _claim(sediment[leftover], cells, fill_room))
    return delta


def _claim(requests: np.ndarray, cells: np.ndarray, room: np.ndarray) -> np.ndarray:
    """Grant `requests` against the room left in `cells`, scaling down every claim on a cell that is short.

    `room` is updated in place.
    """

    if requests.size == 0:
        return requests
    uniq, inverse = np.unique(cells, return_inverse=True)
    inverse = inverse.ravel()
    wanted = np.bincount(inverse, weights=requests, minlength=uniq.size)
    available = room[uniq]
    with np.errstate(divide="ignore", invalid="ignore"):
        scale = np.where(wanted > available, available / wanted, 1.0)
    granted = requests * scale[inverse]
    used = np.bincount(inverse, weights=granted, minlength=uniq.size)
    room[uniq] = np.maximum(available - used, 0.0)
    return granted
