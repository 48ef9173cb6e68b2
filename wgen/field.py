"""Dense 2D elevation grid shared by every generator."""

from __future__ import annotations

from typing import Callable

import numpy as np
from scipy.ndimage import map_coordinates

from wgen.errors import ConfigurationError


_RESAMPLE_ORDER = {"bilinear": 1, "nearest": 0}


class ScalarField:
    """Float32 heightfield of `width` x `height` cells addressed as (x, y).

    The backing array has shape (height, width). A field owns its array: every
    transform returns a new field and never writes into the receiver, which is
    what lets the pipeline hand cached fields to later steps safely.
    """

    __slots__ = ("_data",)

    def __init__(self, data: np.ndarray) -> None:
        if data.ndim != 2:
            raise ConfigurationError("field data must be 2D")
        if data.shape[0] < 1 or data.shape[1] < 1:
            raise ConfigurationError("field width and height must be >= 1")
        self._data = np.ascontiguousarray(data, dtype=np.float32)

    @classmethod
    def new(cls, width: int, height: int, fill: float = 0.0) -> "ScalarField":
        _check_size(width, height)
        return cls(np.full((int(height), int(width)), fill, dtype=np.float32))

    @classmethod
    def from_array(cls, values: np.ndarray) -> "ScalarField":
        """Build a field from a (height, width) array, always copying it."""

        return cls(np.array(values, dtype=np.float32, copy=True))

    @property
    def width(self) -> int:
        return int(self._data.shape[1])

    @property
    def height(self) -> int:
        return int(self._data.shape[0])

    @property
    def shape(self) -> tuple[int, int]:
        return self.height, self.width

    @property
    def data(self) -> np.ndarray:
        """Read-only view of the backing array."""

        view = self._data.view()
        view.flags.writeable = False
        return view

    def to_array(self) -> np.ndarray:
        return self._data.copy()

    def copy(self) -> "ScalarField":
        return ScalarField(self._data.copy())

    def get(self, x: int, y: int) -> float:
        self._check_cell(x, y)
        return float(self._data[y, x])

    def set(self, x: int, y: int, value: float) -> None:
        self._check_cell(x, y)
        self._data[y, x] = value

    def min_max(self) -> tuple[float, float]:
        return float(self._data.min()), float(self._data.max())

    def map(self, func: Callable[[np.ndarray], np.ndarray]) -> "ScalarField":
        """Apply a vectorized function to every cell and return the result as a new field."""

        result = np.asarray(func(self._data.copy()), dtype=np.float32)
        if result.shape != self._data.shape:
            raise ConfigurationError("map function must preserve the field shape")
        return ScalarField(result)

    def normalize(self, low: float = 0.0, high: float = 1.0) -> "ScalarField":
        """Rescale values linearly to [low, high]; a constant field becomes all `low`."""

        lo, hi = self.min_max()
        if hi == lo:
            return ScalarField.new(self.width, self.height, fill=low)
        values = (self._data.astype(np.float64) - lo) / (hi - lo)
        return ScalarField(low + values * (high - low))

    def resize(self, width: int, height: int, *, method: str = "bilinear") -> "ScalarField":
        """Resample to `width` x `height` with corner-aligned sample positions."""

        _check_size(width, height)
        order = _RESAMPLE_ORDER.get(method)
        if order is None:
            raise ConfigurationError(f"Unknown resample method: {method}")
        if (height, width) == self.shape:
            return self.copy()
        ys = _sample_positions(self.height, height)
        xs = _sample_positions(self.width, width)
        yy, xx = np.meshgrid(ys, xs, indexing="ij")
        resampled = map_coordinates(self._data, [yy, xx], order=order, mode="nearest")
        return ScalarField(resampled.astype(np.float32))

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ScalarField):
            return NotImplemented
        return self.shape == other.shape and bool(np.array_equal(self._data, other._data))

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        return f"ScalarField({self.width}x{self.height})"

    def _check_cell(self, x: int, y: int) -> None:
        if not (0 <= x < self.width and 0 <= y < self.height):
            raise IndexError(f"cell ({x}, {y}) outside {self.width}x{self.height} field")


def _check_size(width: int, height: int) -> None:
    if int(width) < 1 or int(height) < 1:
        raise ConfigurationError(f"field size must be positive, got {width}x{height}")


def _sample_positions(source: int, target: int) -> np.ndarray:
    if target == 1 or source == 1:
        return np.zeros(target, dtype=np.float64)
    return np.linspace(0.0, float(source - 1), num=target, dtype=np.float64)
