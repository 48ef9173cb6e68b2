"""Parameter sets for generators, pipeline and export."""

from __future__ import annotations

from dataclasses import asdict, dataclass, fields
from enum import Enum
import math
from typing import Any, TypeVar

from wgen.errors import ConfigurationError


DEFAULT_SEED = 0xDEADBEEF
DEFAULT_PREVIEW_SIZE = 128
DEFAULT_MASK_SIZE = 64
DEFAULT_EXPORT_SIZE = 1024

# Hills radii are given in cells of a grid this wide and scaled to the real width.
HILLS_REFERENCE_WIDTH = 200.0

T = TypeVar("T")


def _require(condition: bool, message: str) -> None:
    if not condition:
        raise ConfigurationError(message)


def _finite(*values: float) -> bool:
    return all(math.isfinite(float(v)) for v in values)


@dataclass(frozen=True)
class HillsConfig:
    """Randomized hemispherical bumps added to the field."""

    count: int = 600
    radius_min: float = 4.8
    radius_max: float = 27.2
    height_min: float = 0.3
    height_max: float = 0.3

    def validate(self) -> None:
        _require(self.count >= 0, "hills count must be >= 0")
        _require(_finite(self.radius_min, self.radius_max, self.height_min, self.height_max), "hills values must be finite")
        _require(0.0 <= self.radius_min <= self.radius_max, "hills radius range must satisfy 0 <= min <= max")
        _require(self.height_min <= self.height_max, "hills height range must satisfy min <= max")


@dataclass(frozen=True)
class FbmConfig:
    """Fractal Brownian motion noise added to the field."""

    scale_x: float = 2.2
    scale_y: float = 2.2
    offset_x: float = 0.0
    offset_y: float = 0.0
    octaves: float = 6.0
    persistence: float = 0.5
    lacunarity: float = 2.0
    amplitude: float = 2.05
    bias: float = 0.0

    def validate(self) -> None:
        _require(
            _finite(
                self.scale_x,
                self.scale_y,
                self.offset_x,
                self.offset_y,
                self.octaves,
                self.persistence,
                self.lacunarity,
                self.amplitude,
                self.bias,
            ),
            "fbm values must be finite",
        )
        _require(1.0 <= self.octaves <= 30.0, "fbm octaves must be in [1, 30]")
        _require(self.scale_x >= 0.0 and self.scale_y >= 0.0, "fbm scales must be >= 0")
        _require(self.lacunarity > 0.0, "fbm lacunarity must be positive")
        _require(self.persistence >= 0.0, "fbm persistence must be >= 0")


@dataclass(frozen=True)
class MidPointConfig:
    """Square-diamond displacement."""

    displacement: float = 0.7
    roughness: float = 0.5

    def validate(self) -> None:
        _require(_finite(self.displacement, self.roughness), "midpoint values must be finite")
        _require(self.displacement >= 0.0, "midpoint displacement must be >= 0")
        _require(0.0 < self.roughness <= 1.0, "midpoint roughness must be in (0, 1]")


@dataclass(frozen=True)
class NormalizeConfig:
    """Target range for normalization."""

    low: float = 0.0
    high: float = 1.0

    def validate(self) -> None:
        _require(_finite(self.low, self.high), "normalize bounds must be finite")
        _require(self.low <= self.high, "normalize range must satisfy low <= high")


@dataclass(frozen=True)
class LandMassConfig:
    """Land/water split and elevation curves."""

    land_proportion: float = 0.6
    water_level: float = 0.12
    plain_factor: float = 2.5
    shore_height: float = 0.05
    sea_curve: float = 1.0

    def validate(self) -> None:
        _require(
            _finite(self.land_proportion, self.water_level, self.plain_factor, self.shore_height, self.sea_curve),
            "landmass values must be finite",
        )
        _require(0.0 <= self.land_proportion <= 1.0, "land_proportion must be in [0, 1]")
        _require(0.0 <= self.water_level < 1.0, "water_level must be in [0, 1)")
        _require(self.plain_factor > 0.0, "plain_factor must be positive")
        _require(self.sea_curve > 0.0, "sea_curve must be positive")
        _require(self.shore_height >= 0.0, "shore_height must be >= 0")


@dataclass(frozen=True)
class MudSlideConfig:
    """Iterative slope relaxation."""

    iterations: int = 5
    max_erosion_alt: float = 0.9
    strength: float = 0.4
    water_level: float = 0.12
    min_delta: float = 0.0

    def validate(self) -> None:
        _require(_finite(self.max_erosion_alt, self.strength, self.water_level, self.min_delta), "mudslide values must be finite")
        _require(self.iterations >= 0, "mudslide iterations must be >= 0")
        _require(0.0 <= self.strength <= 1.0, "mudslide strength must be in [0, 1]")
        _require(self.water_level < 1.0, "mudslide water_level must be < 1")
        _require(self.min_delta >= 0.0, "mudslide min_delta must be >= 0")


@dataclass(frozen=True)
class WaterErosionConfig:
    """Raindrop hydraulic erosion.

    Drops follow D8 steepest descent and carry no momentum, so there is no
    `inertia` parameter: project data that sets one is rejected by
    `config_from_dict` as an unknown key instead of being dropped.
    `batch_size` drops share one snapshot of the heights before their
    changes are applied.
    """

    drop_amount: float = 0.5
    erosion_strength: float = 0.1
    capacity: float = 8.0
    min_slope: float = 0.05
    deposition: float = 0.1
    evaporation: float = 0.05
    max_steps: int = 40
    batch_size: int = 4096

    def validate(self) -> None:
        _require(
            _finite(
                self.drop_amount,
                self.erosion_strength,
                self.capacity,
                self.min_slope,
                self.deposition,
                self.evaporation,
            ),
            "water erosion values must be finite",
        )
        _require(0.0 <= self.drop_amount <= 1.0, "drop_amount must be in [0, 1]")
        _require(0.0 <= self.erosion_strength <= 1.0, "erosion_strength must be in [0, 1]")
        _require(self.capacity >= 0.0, "capacity must be >= 0")
        _require(self.min_slope >= 0.0, "min_slope must be >= 0")
        _require(0.0 <= self.deposition <= 1.0, "deposition must be in [0, 1]")
        _require(0.0 <= self.evaporation < 1.0, "evaporation must be in [0, 1)")
        _require(self.max_steps >= 0, "max_steps must be >= 0")
        _require(self.batch_size >= 1, "batch_size must be >= 1")


@dataclass(frozen=True)
class IslandConfig:
    """Border falloff keeping land away from the map edge."""

    coast_range: float = 50.0
    floor: float | None = None

    def validate(self) -> None:
        _require(_finite(self.coast_range), "coast_range must be finite")
        _require(0.0 < self.coast_range <= 50.0, "coast_range must be in (0, 50]")
        if self.floor is not None:
            _require(_finite(self.floor), "island floor must be finite")


class BitDepth(Enum):
    """Raster encodings supported by the tile exporter."""

    U8 = 8
    U16 = 16
    F32 = 32

    @property
    def extension(self) -> str:
        return "tif" if self is BitDepth.F32 else "png"

    @property
    def max_value(self) -> int:
        return (1 << self.value) - 1


@dataclass(frozen=True)
class ExportConfig:
    """Tile grid, encoding and file naming for exports."""

    tiles_x: int = 1
    tiles_y: int = 1
    bit_depth: BitDepth = BitDepth.U16
    seamless: bool = False
    normalize: bool = True
    prefix: str = "wgen"

    def validate(self) -> None:
        _require(self.tiles_x >= 1 and self.tiles_y >= 1, "tile counts must be >= 1")
        _require(isinstance(self.bit_depth, BitDepth), "bit_depth must be a BitDepth")
        _require(bool(self.prefix), "export prefix must be non-empty")

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["bit_depth"] = self.bit_depth.value
        return data


def config_to_dict(config: Any) -> dict[str, Any]:
    """Return the plain-data form of a parameter dataclass."""

    return asdict(config)


def config_from_dict(cls: type[T], data: dict[str, Any] | None) -> T:
    """Build a parameter dataclass from plain data, rejecting unknown keys."""

    payload = dict(data or {})
    known = {f.name for f in fields(cls)}
    unknown = sorted(set(payload) - known)
    if unknown:
        raise ConfigurationError(f"Unknown {cls.__name__} parameters: {', '.join(unknown)}")
    try:
        config = cls(**payload)
    except TypeError as exc:
        raise ConfigurationError(f"Invalid {cls.__name__} parameters: {exc}") from exc
    validate = getattr(config, "validate", None)
    if validate is not None:
        try:
            validate()
        except TypeError as exc:
            raise ConfigurationError(f"Invalid {cls.__name__} parameters: {exc}") from exc
    return config
