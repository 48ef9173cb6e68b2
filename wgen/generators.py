"""Closed set of generator kinds and the single dispatch used by the pipeline."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
import threading
from typing import Any, Callable

from wgen.config import (
    FbmConfig,
    HillsConfig,
    IslandConfig,
    LandMassConfig,
    MidPointConfig,
    MudSlideConfig,
    NormalizeConfig,
    WaterErosionConfig,
)
from wgen.erosion import generate_mudslide, generate_water_erosion
from wgen.errors import ConfigurationError
from wgen.field import ScalarField
from wgen.mask import Mask, blend
from wgen.parallel import Progress
from wgen.relief import generate_fbm, generate_hills, generate_mid_point
from wgen.rng import step_rng
from wgen.shaping import generate_island, generate_landmass, generate_normalize


class GeneratorKind(str, Enum):
    HILLS = "Hills"
    FBM = "Fbm"
    MID_POINT = "MidPoint"
    NORMALIZE = "Normalize"
    LAND_MASS = "LandMass"
    MUD_SLIDE = "MudSlide"
    WATER_EROSION = "WaterErosion"
    ISLAND = "Island"

    @classmethod
    def parse(cls, value: "str | GeneratorKind") -> "GeneratorKind":
        if isinstance(value, GeneratorKind):
            return value
        try:
            return cls(value)
        except ValueError as exc:
            names = ", ".join(kind.value for kind in cls)
            raise ConfigurationError(f"Unknown generator kind {value!r}. Expected one of: {names}") from exc


GeneratorFunc = Callable[..., ScalarField]


@dataclass(frozen=True)
class GeneratorInfo:
    """How to run one generator kind."""

    config_type: type
    func: GeneratorFunc
    stochastic: bool
    replaces_input: bool


GENERATORS: dict[GeneratorKind, GeneratorInfo] = {
    GeneratorKind.HILLS: GeneratorInfo(HillsConfig, generate_hills, stochastic=True, replaces_input=False),
    GeneratorKind.FBM: GeneratorInfo(FbmConfig, generate_fbm, stochastic=True, replaces_input=False),
    GeneratorKind.MID_POINT: GeneratorInfo(MidPointConfig, generate_mid_point, stochastic=True, replaces_input=True),
    GeneratorKind.NORMALIZE: GeneratorInfo(NormalizeConfig, generate_normalize, stochastic=False, replaces_input=True),
    GeneratorKind.LAND_MASS: GeneratorInfo(LandMassConfig, generate_landmass, stochastic=False, replaces_input=False),
    GeneratorKind.MUD_SLIDE: GeneratorInfo(MudSlideConfig, generate_mudslide, stochastic=False, replaces_input=False),
    GeneratorKind.WATER_EROSION: GeneratorInfo(
        WaterErosionConfig, generate_water_erosion, stochastic=True, replaces_input=False
    ),
    GeneratorKind.ISLAND: GeneratorInfo(IslandConfig, generate_island, stochastic=False, replaces_input=False),
}


def generator_info(kind: GeneratorKind | str) -> GeneratorInfo:
    return GENERATORS[GeneratorKind.parse(kind)]


def kind_for_params(params: Any) -> GeneratorKind:
    """Generator kind whose parameter type is `type(params)`."""

    for kind, info in GENERATORS.items():
        if type(params) is info.config_type:
            return kind
    raise ConfigurationError(f"No generator takes parameters of type {type(params).__name__}")


def default_params(kind: GeneratorKind | str) -> Any:
    return generator_info(kind).config_type()


def validate_params(kind: GeneratorKind | str, params: Any) -> None:
    """Check that `params` has the right type for `kind` and valid values."""

    info = generator_info(kind)
    if type(params) is not info.config_type:
        raise ConfigurationError(
            f"{GeneratorKind.parse(kind).value} expects {info.config_type.__name__}, got {type(params).__name__}"
        )
    params.validate()


def apply_generator(
    kind: GeneratorKind | str,
    field: ScalarField,
    params: Any,
    *,
    seed: int,
    mask: Mask | None = None,
    cancel: threading.Event | None = None,
    workers: int | None = None,
    progress: Progress | None = None,
) -> ScalarField:
    """Run one generator on `field` and blend the result through `mask`.

    Stochastic kinds draw from `step_rng(seed, kind)`. `progress` receives
    the generator's own completed fraction.
    """

    kind = GeneratorKind.parse(kind)
    validate_params(kind, params)
    info = GENERATORS[kind]
    rng = step_rng(seed, kind.value) if info.stochastic else None
    generated = info.func(field, params, rng=rng, cancel=cancel, workers=workers, progress=progress)
    return blend(field, generated, mask)
