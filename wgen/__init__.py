"""Layered heightmap generation pipeline."""

from .config import BitDepth, ExportConfig
from .errors import ComputeAbort, ConfigurationError
from .field import ScalarField
from .generators import GeneratorKind
from .mask import Mask
from .pipeline import Pipeline, Step

__all__ = [
    "BitDepth",
    "ComputeAbort",
    "ConfigurationError",
    "ExportConfig",
    "GeneratorKind",
    "Mask",
    "Pipeline",
    "ScalarField",
    "Step",
]
