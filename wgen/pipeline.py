"""Ordered generator steps with an indexed result cache."""

from __future__ import annotations

from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, replace
import logging
import threading
import time
from typing import Any, Iterable, Sequence

from wgen.config import DEFAULT_PREVIEW_SIZE, DEFAULT_SEED, config_from_dict, config_to_dict
from wgen.errors import ComputeAbort, ConfigurationError
from wgen.field import ScalarField
from wgen.generators import (
    GeneratorKind,
    apply_generator,
    default_params,
    generator_info,
    kind_for_params,
    validate_params,
)
from wgen.mask import Mask
from wgen.parallel import Progress, check_cancel
from wgen.rng import normalize_seed


logger = logging.getLogger(__name__)

_UNSET: Any = object()

DEFAULT_STACK = (
    GeneratorKind.HILLS,
    GeneratorKind.FBM,
    GeneratorKind.NORMALIZE,
    GeneratorKind.LAND_MASS,
    GeneratorKind.MUD_SLIDE,
    GeneratorKind.WATER_EROSION,
    GeneratorKind.ISLAND,
)


@dataclass(frozen=True)
class Step:
    """One generator invocation: kind, its parameters, and optional seed override and mask.

    `params` defaults to the kind's default parameter set. A step has no
    identity besides its position in the pipeline.
    """

    kind: GeneratorKind
    params: Any = None
    seed: int | None = None
    mask: Mask | None = None
    enabled: bool = True

    def __post_init__(self) -> None:
        kind = GeneratorKind.parse(self.kind)
        object.__setattr__(self, "kind", kind)
        params = default_params(kind) if self.params is None else self.params
        validate_params(kind, params)
        object.__setattr__(self, "params", params)
        if self.seed is not None:
            object.__setattr__(self, "seed", normalize_seed(self.seed))
        if self.mask is not None and not isinstance(self.mask, Mask):
            raise ConfigurationError(f"step mask must be a Mask, got {type(self.mask).__name__}")
        object.__setattr__(self, "enabled", bool(self.enabled))

    @classmethod
    def of(cls, params: Any, *, seed: int | None = None, mask: Mask | None = None, enabled: bool = True) -> "Step":
        """Build a step whose kind is inferred from the parameter type."""

        return cls(kind_for_params(params), params, seed=seed, mask=mask, enabled=enabled)

    @property
    def stochastic(self) -> bool:
        return generator_info(self.kind).stochastic

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "params": config_to_dict(self.params),
            "seed": self.seed,
            "enabled": self.enabled,
            "mask": None if self.mask is None else self.mask.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Step":
        if "kind" not in data:
            raise ConfigurationError("step data is missing 'kind'")
        kind = GeneratorKind.parse(data["kind"])
        params = config_from_dict(generator_info(kind).config_type, data.get("params"))
        mask_data = data.get("mask")
        seed = data.get("seed")
        return cls(
            kind,
            params,
            seed=None if seed is None else int(seed),
            mask=None if mask_data is None else Mask.from_dict(mask_data),
            enabled=bool(data.get("enabled", True)),
        )


def default_steps() -> list[Step]:
    """Default stack: relief, normalization, land split, erosion, island falloff."""

    return [Step(kind) for kind in DEFAULT_STACK]


def _check_resolution(resolution: Sequence[int]) -> tuple[int, int]:
    try:
        width, height = (int(v) for v in resolution)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"resolution must be a (width, height) pair, got {resolution!r}") from exc
    if width < 1 or height < 1:
        raise ConfigurationError(f"resolution must be positive, got {width}x{height}")
    return width, height


class Pipeline:
    """Runs steps in order, caching each step's output by index.

    `cache[i]` is valid iff no step <= i changed since it was produced; any
    edit to step k drops slots k and above. Reads and edits may come from
    different threads: the step list and cache are guarded by a lock, while
    generator work runs outside it and is abandoned with `ComputeAbort` if the
    pipeline changes underneath.
    """

    def __init__(
        self,
        seed: int = DEFAULT_SEED,
        resolution: Sequence[int] = (DEFAULT_PREVIEW_SIZE, DEFAULT_PREVIEW_SIZE),
        steps: Iterable[Step] = (),
        workers: int | None = None,
    ) -> None:
        self._lock = threading.RLock()
        self._seed = normalize_seed(seed)
        self._resolution = _check_resolution(resolution)
        self._steps: list[Step] = []
        for step in steps:
            self._steps.append(_check_step(step))
        self._cache: list[ScalarField | None] = [None] * len(self._steps)
        self._workers = workers
        self._revision = 0
        self._cancel = threading.Event()
        self._executor: ThreadPoolExecutor | None = None

    @property
    def seed(self) -> int:
        return self._seed

    @property
    def resolution(self) -> tuple[int, int]:
        return self._resolution

    @property
    def workers(self) -> int | None:
        return self._workers

    @property
    def steps(self) -> tuple[Step, ...]:
        with self._lock:
            return tuple(self._steps)

    @property
    def revision(self) -> int:
        return self._revision

    def __len__(self) -> int:
        return len(self._steps)

    # Editing

    def insert_step(self, index: int, step: Step) -> None:
        step = _check_step(step)
        with self._lock:
            if not 0 <= index <= len(self._steps):
                raise ConfigurationError(f"insert index {index} out of range 0..{len(self._steps)}")
            self._steps.insert(index, step)
            self._cache.insert(index, None)
            self._invalidate_from(index)

    def append_step(self, step: Step) -> int:
        with self._lock:
            index = len(self._steps)
            self.insert_step(index, step)
            return index

    def remove_step(self, index: int) -> Step:
        with self._lock:
            index = self._resolve_index(index)
            removed = self._steps.pop(index)
            self._cache.pop(index)
            self._invalidate_from(index)
            return removed

    def update_step(
        self,
        index: int,
        *,
        params: Any = _UNSET,
        mask: Mask | None = _UNSET,
        seed: int | None = _UNSET,
        enabled: bool = _UNSET,
    ) -> Step:
        """Replace parts of step `index`; slots from `index` on are dropped if anything changed."""

        changes: dict[str, Any] = {}
        if params is not _UNSET:
            changes["params"] = params
        if mask is not _UNSET:
            changes["mask"] = mask
        if seed is not _UNSET:
            changes["seed"] = seed
        if enabled is not _UNSET:
            changes["enabled"] = enabled
        with self._lock:
            index = self._resolve_index(index)
            current = self._steps[index]
            updated = replace(current, **changes)
            if updated != current:
                self._steps[index] = updated
                self._invalidate_from(index)
            return updated

    def reorder(self, src: int, dst: int) -> None:
        """Move the step at `src` so it ends up at index `dst`."""

        with self._lock:
            src = self._resolve_index(src)
            dst = self._resolve_index(dst)
            if src == dst:
                return
            step = self._steps.pop(src)
            self._steps.insert(dst, step)
            self._cache.pop(src)
            self._cache.insert(dst, None)
            self._invalidate_from(min(src, dst))

    def set_seed(self, seed: int) -> None:
        """Change the base seed, dropping results from the first step that draws from it."""

        seed = normalize_seed(seed)
        with self._lock:
            if seed == self._seed:
                return
            self._seed = seed
            for index, step in enumerate(self._steps):
                if step.enabled and step.stochastic and step.seed is None:
                    self._invalidate_from(index)
                    return
            self._revision += 1

    def set_resolution(self, resolution: Sequence[int]) -> None:
        resolution = _check_resolution(resolution)
        with self._lock:
            if resolution == self._resolution:
                return
            self._resolution = resolution
            self._invalidate_from(0)

    def clear(self) -> None:
        """Remove every step."""

        with self._lock:
            self._steps.clear()
            self._cache.clear()
            self._revision += 1

    # Results

    def cached_indices(self) -> list[int]:
        with self._lock:
            return [i for i, field in enumerate(self._cache) if field is not None]

    def is_cached(self, index: int) -> bool:
        with self._lock:
            return self._cache[self._resolve_index(index)] is not None

    def get_field(
        self,
        index: int | None = None,
        resolution: Sequence[int] | None = None,
        progress: Progress | None = None,
    ) -> ScalarField:
        """Output of step `index` (default: last), optionally resampled to `resolution`.

        Recomputes from the lowest invalid slot up to `index`, reusing cached
        results below it. The resample is not cached and the returned field is
        always a copy. `progress` receives strictly increasing fractions of
        the recompute, ending with 1.0 on success.
        """

        with self._lock:
            if not self._steps:
                raise ConfigurationError("pipeline has no steps")
            target = self._resolve_index(-1 if index is None else index)
            out_resolution = None if resolution is None else _check_resolution(resolution)
            self._cancel.clear()
            revision = self._revision
            start = next((i for i in range(target + 1) if self._cache[i] is None), target + 1)
            if start > 0:
                field = self._cache[start - 1]
            else:
                field = ScalarField.new(*self._resolution)
            pending = [(i, self._steps[i]) for i in range(start, target + 1)]
            if pending:
                logger.debug("Recomputing steps %d..%d (revision %d)", start, target, revision)
            seed = self._seed

        tracker = _ProgressTracker(progress, len(pending))
        for position, (index, step) in enumerate(pending):
            check_cancel(self._cancel)
            self._check_revision(revision)
            field = self._run_step(step, field, seed, tracker.step(position))
            with self._lock:
                self._check_revision(revision)
                self._cache[index] = field
            tracker.done(position)
        tracker.finish()

        if out_resolution is not None and out_resolution != (field.width, field.height):
            return field.resize(*out_resolution)
        return field.copy()

    def submit(
        self,
        index: int | None = None,
        resolution: Sequence[int] | None = None,
        progress: Progress | None = None,
    ) -> Future:
        """Run `get_field` on the pipeline's background thread; errors arrive through the Future.

        `progress` is called from that thread.
        """

        with self._lock:
            if self._executor is None:
                self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="wgen-pipeline")
            return self._executor.submit(self.get_field, index, resolution, progress)

    def cancel(self) -> None:
        """Ask the running recompute to stop at the next step or chunk boundary."""

        logger.info("Cancelling pipeline recompute")
        self._cancel.set()

    def close(self) -> None:
        with self._lock:
            executor, self._executor = self._executor, None
        if executor is not None:
            executor.shutdown(wait=True)

    def __enter__(self) -> "Pipeline":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    # Serialization

    def to_dict(self) -> dict[str, Any]:
        with self._lock:
            return {
                "seed": self._seed,
                "resolution": list(self._resolution),
                "steps": [step.to_dict() for step in self._steps],
            }

    @classmethod
    def from_dict(cls, data: dict[str, Any], *, workers: int | None = None) -> "Pipeline":
        try:
            seed = int(data.get("seed", DEFAULT_SEED))
            resolution = data.get("resolution", (DEFAULT_PREVIEW_SIZE, DEFAULT_PREVIEW_SIZE))
            steps = [Step.from_dict(item) for item in data.get("steps", [])]
        except (AttributeError, TypeError, ValueError) as exc:
            if isinstance(exc, ConfigurationError):
                raise
            raise ConfigurationError(f"Invalid pipeline data: {exc}") from exc
        return cls(seed=seed, resolution=resolution, steps=steps, workers=workers)

    def with_resolution(self, resolution: Sequence[int]) -> "Pipeline":
        """Same steps and seed at another resolution, with an empty cache."""

        with self._lock:
            return Pipeline(self._seed, resolution, self._steps, workers=self._workers)

    # Internals

    def _run_step(self, step: Step, field: ScalarField, seed: int, progress: Progress | None = None) -> ScalarField:
        if not step.enabled:
            logger.debug("Skipping disabled %s", step.kind.value)
            return field
        started = time.perf_counter()
        result = apply_generator(
            step.kind,
            field,
            step.params,
            seed=seed if step.seed is None else step.seed,
            mask=step.mask,
            cancel=self._cancel,
            workers=self._workers,
            progress=progress,
        )
        logger.info("Executed %s in %.2fs", step.kind.value, time.perf_counter() - started)
        return result

    def _check_revision(self, revision: int) -> None:
        if self._revision != revision:
            logger.info("Pipeline changed during recompute; discarding results")
            raise ComputeAbort("pipeline changed during recompute")

    def _resolve_index(self, index: int) -> int:
        count = len(self._steps)
        resolved = index + count if index < 0 else index
        if not 0 <= resolved < count:
            raise ConfigurationError(f"step index {index} out of range for {count} steps")
        return resolved

    def _invalidate_from(self, index: int) -> None:
        for i in range(index, len(self._cache)):
            self._cache[i] = None
        self._revision += 1


def _check_step(step: Step) -> Step:
    if not isinstance(step, Step):
        raise ConfigurationError(f"expected a Step, got {type(step).__name__}")
    return step


class _ProgressTracker:
    """Maps each step's own fraction onto the whole recompute and drops values that do not increase."""

    def __init__(self, progress: Progress | None, steps: int) -> None:
        self._progress = progress
        self._steps = max(steps, 1)
        self._last = 0.0

    def step(self, position: int) -> Progress | None:
        if self._progress is None:
            return None

        def report(fraction: float) -> None:
            self._emit((position + min(max(fraction, 0.0), 1.0)) / self._steps)

        return report

    def done(self, position: int) -> None:
        if self._progress is not None:
            self._emit((position + 1) / self._steps)

    def finish(self) -> None:
        if self._progress is not None:
            self._emit(1.0)

    def _emit(self, value: float) -> None:
        value = min(value, 1.0)
        if value > self._last:
            self._last = value
            self._progress(value)
