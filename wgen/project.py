"""Project files: a pipeline's seed, resolution and steps as JSON."""

from __future__ import annotations

from pathlib import Path

from wgen.errors import ConfigurationError
from wgen.io import read_json, write_json
from wgen.pipeline import Pipeline


PROJECT_VERSION = 1


def save_project(path: str | Path, pipeline: Pipeline) -> None:
    payload = {"version": PROJECT_VERSION, **pipeline.to_dict()}
    write_json(path, payload)


def load_project(path: str | Path, *, workers: int | None = None) -> Pipeline:
    """Rebuild the pipeline stored at `path`; its output matches the saved one exactly."""

    payload = read_json(path)
    version = payload.get("version")
    if version != PROJECT_VERSION:
        raise ConfigurationError(f"{path}: unsupported project version {version!r}")
    data = {key: value for key, value in payload.items() if key != "version"}
    return Pipeline.from_dict(data, workers=workers)
