"""Display-ready rasters derived from heightfields."""

from __future__ import annotations

from typing import Sequence

import numpy as np
from matplotlib.colors import LinearSegmentedColormap

from wgen.field import ScalarField


# Deep water -> shallows, then shore -> lowland -> highland -> rock -> snow.
_WATER_COLORS = ["#0b2545", "#1e4877", "#4f8fc0"]
_LAND_COLORS = ["#c2b280", "#5ea345", "#425946", "#8a7f70", "#ffffff"]

WATER_CMAP = LinearSegmentedColormap.from_list("wgen_water", _WATER_COLORS)
LAND_CMAP = LinearSegmentedColormap.from_list("wgen_land", _LAND_COLORS)


def preview_field(field: ScalarField, resolution: Sequence[int] | None = None) -> ScalarField:
    """Normalized copy of `field`, resampled to `resolution` when given."""

    if resolution is not None:
        width, height = (int(v) for v in resolution)
        field = field.resize(width, height)
    return field.normalize(0.0, 1.0)


def preview_u8(field: ScalarField, resolution: Sequence[int] | None = None) -> np.ndarray:
    """Map a field to 8-bit grayscale, min to 0 and max to 255."""

    norm = preview_field(field, resolution).data
    return np.round(np.clip(norm, 0.0, 1.0) * 255.0).astype(np.uint8)


def preview_u16(field: ScalarField, resolution: Sequence[int] | None = None) -> np.ndarray:
    """Map a field to 16-bit grayscale, min to 0 and max to 65535."""

    norm = preview_field(field, resolution).data.astype(np.float64)
    return np.round(np.clip(norm, 0.0, 1.0) * 65535.0).astype(np.uint16)


def terrain_colormap_rgb(field: ScalarField, water_level: float = 0.12) -> np.ndarray:
    """Color cells below `water_level` with water shades and the rest with land shades.

    Values are taken as-is, so the field should already be in [0, 1].
    """

    values = np.clip(field.data.astype(np.float64), 0.0, 1.0)
    water = float(np.clip(water_level, 0.0, 1.0))
    below = values < water

    depth = np.zeros(values.shape, dtype=np.float64)
    if water > 0.0:
        depth = values / water
    relief = np.zeros(values.shape, dtype=np.float64)
    if water < 1.0:
        relief = (values - water) / (1.0 - water)

    rgba = np.where(
        below[..., None],
        WATER_CMAP(np.clip(depth, 0.0, 1.0)),
        LAND_CMAP(np.clip(relief, 0.0, 1.0)),
    )
    return np.round(rgba[..., :3] * 255.0).astype(np.uint8)
