"""Split a heightfield into a grid of quantized tiles."""

from __future__ import annotations

from dataclasses import dataclass
import logging
import math
from pathlib import Path
from typing import Iterable

import numpy as np

from wgen.config import BitDepth, ExportConfig
from wgen.field import ScalarField
from wgen.io import write_png_u16, write_png_u8, write_tiff_f32


logger = logging.getLogger(__name__)


@dataclass(frozen=True, eq=False)
class Tile:
    """One exported tile: grid position, quantized raster and file name."""

    x: int
    y: int
    data: np.ndarray
    filename: str

    @property
    def width(self) -> int:
        return int(self.data.shape[1])

    @property
    def height(self) -> int:
        return int(self.data.shape[0])


def tile_filename(prefix: str, x: int, y: int, bit_depth: BitDepth) -> str:
    return f"{prefix}_x{x}_y{y}.{bit_depth.extension}"


def compatible_size(width: int, height: int, tiles_x: int, tiles_y: int) -> tuple[int, int]:
    """Smallest size >= (width, height) divisible by the tile counts."""

    return math.ceil(width / tiles_x) * tiles_x, math.ceil(height / tiles_y) * tiles_y


def quantize(values: np.ndarray, bit_depth: BitDepth) -> np.ndarray:
    """Encode [0, 1] values as `round(v * (2^bits - 1))`; float32 is passed through."""

    if bit_depth is BitDepth.F32:
        return np.ascontiguousarray(values, dtype=np.float32)
    clipped = np.clip(values.astype(np.float64), 0.0, 1.0)
    dtype = np.uint8 if bit_depth is BitDepth.U8 else np.uint16
    return np.round(clipped * bit_depth.max_value).astype(dtype)


def export_tiles(field: ScalarField, config: ExportConfig) -> list[Tile]:
    """Cut `field` into `tiles_x` x `tiles_y` tiles, row by row.

    Sizes that do not divide evenly are resampled up to the next compatible
    size first. Seamless tiles carry one extra column and row copied from the
    neighbouring tile (the field's own edge for the last tile), so adjacent
    tiles share their border samples exactly.
    """

    config.validate()
    width, height = compatible_size(field.width, field.height, config.tiles_x, config.tiles_y)
    if (width, height) != (field.width, field.height):
        logger.info("Resampling %dx%d to %dx%d for a %dx%d tile grid",
                    field.width, field.height, width, height, config.tiles_x, config.tiles_y)
        field = field.resize(width, height)
    if config.normalize:
        field = field.normalize(0.0, 1.0)

    encoded = quantize(field.data, config.bit_depth)
    if config.seamless:
        encoded = np.pad(encoded, ((0, 1), (0, 1)), mode="edge")
    overlap = 1 if config.seamless else 0

    tile_w = width // config.tiles_x
    tile_h = height // config.tiles_y
    tiles = []
    for ty in range(config.tiles_y):
        for tx in range(config.tiles_x):
            y0 = ty * tile_h
            x0 = tx * tile_w
            data = encoded[y0:y0 + tile_h + overlap, x0:x0 + tile_w + overlap].copy()
            tiles.append(Tile(tx, ty, data, tile_filename(config.prefix, tx, ty, config.bit_depth)))
    return tiles


def write_tiles(tiles: Iterable[Tile], directory: str | Path) -> list[Path]:
    """Write each tile under `directory`, encoding chosen by its dtype."""

    target = Path(directory)
    target.mkdir(parents=True, exist_ok=True)
    written = []
    for tile in tiles:
        path = target / tile.filename
        if tile.data.dtype == np.uint8:
            write_png_u8(path, tile.data)
        elif tile.data.dtype == np.uint16:
            write_png_u16(path, tile.data)
        else:
            write_tiff_f32(path, tile.data)
        written.append(path)
    return written
