"""Per-step blend masks and the uniform mask blend."""

from __future__ import annotations

from typing import Any

import numpy as np

from wgen.config import DEFAULT_MASK_SIZE
from wgen.errors import ConfigurationError
from wgen.field import ScalarField


class Mask:
    """Blend weights in [0, 1] stored at their own resolution.

    A mask is painted at a fixed size (64x64 by default) and resampled
    bilinearly to whatever resolution the pipeline runs at, so the same mask
    drives both previews and full-size exports.
    """

    __slots__ = ("_values",)

    def __init__(self, values: np.ndarray) -> None:
        arr = np.array(values, dtype=np.float32, copy=True)
        if arr.ndim != 2 or arr.shape[0] < 1 or arr.shape[1] < 1:
            raise ConfigurationError("mask values must be a non-empty 2D array")
        if not np.isfinite(arr).all():
            raise ConfigurationError("mask values must be finite")
        self._values = np.clip(arr, 0.0, 1.0)

    @classmethod
    def full(cls, width: int = DEFAULT_MASK_SIZE, height: int = DEFAULT_MASK_SIZE, value: float = 1.0) -> "Mask":
        if width < 1 or height < 1:
            raise ConfigurationError("mask size must be positive")
        return cls(np.full((height, width), value, dtype=np.float32))

    @property
    def width(self) -> int:
        return int(self._values.shape[1])

    @property
    def height(self) -> int:
        return int(self._values.shape[0])

    @property
    def values(self) -> np.ndarray:
        view = self._values.view()
        view.flags.writeable = False
        return view

    def resampled(self, width: int, height: int) -> np.ndarray:
        """Mask weights at `width` x `height`, clipped to [0, 1]."""

        if (height, width) == self._values.shape:
            return self._values.copy()
        field = ScalarField(self._values).resize(width, height, method="bilinear")
        return np.clip(field.to_array(), 0.0, 1.0)

    def to_dict(self) -> dict[str, Any]:
        return {
            "width": self.width,
            "height": self.height,
            "values": [float(v) for v in self._values.ravel()],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Mask":
        try:
            width = int(data["width"])
            height = int(data["height"])
            values = np.asarray(data["values"], dtype=np.float32)
        except (KeyError, TypeError, ValueError) as exc:
            raise ConfigurationError(f"Invalid mask data: {exc}") from exc
        if values.size != width * height:
            raise ConfigurationError(
                f"mask has {values.size} values, expected {width}x{height}={width * height}"
            )
        return cls(values.reshape(height, width))

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Mask):
            return NotImplemented
        return bool(np.array_equal(self._values, other._values))

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        return f"Mask({self.width}x{self.height})"


def blend(source: ScalarField, generated: ScalarField, mask: Mask | None) -> ScalarField:
    """Blend `generated` over `source` as `source + m * (generated - source)`.

    Weight 0 keeps the source cell and weight 1 keeps the generated cell
    bit-for-bit; anything in between interpolates linearly.
    """

    if source.shape != generated.shape:
        raise ConfigurationError("source and generated fields must have the same shape")
    if mask is None:
        return generated
    weights = mask.resampled(source.width, source.height)
    src = source.data
    gen = generated.data
    mixed = src + weights * (gen - src)
    out = np.where(weights <= 0.0, src, np.where(weights >= 1.0, gen, mixed))
    return ScalarField(out.astype(np.float32))
