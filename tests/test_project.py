from __future__ import annotations

import json

import numpy as np
import pytest

from wgen.config import HillsConfig
from wgen.errors import ConfigurationError
from wgen.generators import GeneratorKind
from wgen.mask import Mask
from wgen.pipeline import Pipeline, Step, default_steps
from wgen.project import PROJECT_VERSION, load_project, save_project


def test_saved_project_reproduces_output(tmp_path) -> None:
    steps = default_steps()
    steps[0] = Step(GeneratorKind.HILLS, HillsConfig(count=120), mask=Mask(np.eye(8)))
    pipeline = Pipeline(seed=0x5EED, resolution=(40, 32), steps=steps)
    path = tmp_path / "island.json"

    save_project(path, pipeline)
    restored = load_project(path)

    payload = json.loads(path.read_text(encoding="utf-8"))
    assert payload["version"] == PROJECT_VERSION
    assert payload["seed"] == 0x5EED
    assert payload["resolution"] == [40, 32]
    assert [step["kind"] for step in payload["steps"]][:2] == ["Hills", "Fbm"]
    assert restored.seed == pipeline.seed
    assert restored.get_field() == pipeline.get_field()


def test_unknown_project_version_is_rejected(tmp_path) -> None:
    path = tmp_path / "future.json"
    path.write_text(json.dumps({"version": 99, "seed": 1, "steps": []}), encoding="utf-8")

    with pytest.raises(ConfigurationError):
        load_project(path)


def test_malformed_project_is_rejected(tmp_path) -> None:
    path = tmp_path / "broken.json"
    path.write_text("{not json", encoding="utf-8")

    with pytest.raises(ConfigurationError):
        load_project(path)
