"""Error types raised by the generation pipeline."""

from __future__ import annotations


class ConfigurationError(ValueError):
    """Raised when parameters, sizes or indices are invalid for the requested operation."""


class ComputeAbort(RuntimeError):
    """Raised when a recompute is cancelled or the pipeline changed underneath it."""
