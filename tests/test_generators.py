from __future__ import annotations

import numpy as np
import pytest

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
from wgen.erosion import (
    _NEIGHBOURS_8,
    drop_count,
    generate_mudslide,
    generate_water_erosion,
    lowest_neighbour,
    steepest_descent,
)
from wgen.errors import ConfigurationError
from wgen.field import ScalarField
from wgen.generators import GENERATORS, GeneratorKind, apply_generator, kind_for_params
from wgen.pipeline import Pipeline, default_steps
from wgen.relief import diamond_square, generate_fbm, generate_hills, generate_mid_point, working_size
from wgen.rng import step_rng
from wgen.shaping import generate_island, generate_landmass, generate_normalize, land_threshold


def _rng(key: str = "test") -> np.random.Generator:
    return step_rng(1234, key)


def _random_field(width: int = 40, height: int = 30, seed: int = 5) -> ScalarField:
    values = np.random.default_rng(seed).normal(size=(height, width)).astype(np.float32)
    return ScalarField.from_array(values)


def _ramp(width: int = 32, height: int = 32) -> ScalarField:
    xs = np.linspace(1.0, 0.0, width, dtype=np.float32)
    ys = np.linspace(0.5, 0.0, height, dtype=np.float32)
    values = xs[None, :] + ys[:, None]
    bumps = 0.05 * np.sin(np.arange(width, dtype=np.float32) * 0.7)[None, :]
    return ScalarField.from_array(values + bumps)


def test_zero_radius_hill_leaves_field_unchanged() -> None:
    field = _random_field()
    config = HillsConfig(count=1, radius_min=0.0, radius_max=0.0)

    out = generate_hills(field, config, rng=_rng())

    assert out == field


def test_hills_raise_terrain_and_ignore_worker_count() -> None:
    field = ScalarField.new(64, 48)
    config = HillsConfig(count=40)

    single = generate_hills(field, config, rng=_rng(), workers=1)
    many = generate_hills(field, config, rng=_rng(), workers=4)

    assert np.array_equal(single.data, many.data)
    assert single.min_max()[0] >= 0.0
    assert single.min_max()[1] > 0.0
    assert np.all(field.data == 0.0)


def test_fbm_is_seeded_and_ignores_worker_count() -> None:
    field = ScalarField.new(50, 20)
    config = FbmConfig()

    a = generate_fbm(field, config, rng=_rng("a"), workers=1)
    b = generate_fbm(field, config, rng=_rng("a"), workers=3)
    c = generate_fbm(field, config, rng=_rng("c"), workers=3)

    assert np.array_equal(a.data, b.data)
    assert not np.array_equal(a.data, c.data)
    assert float(np.std(a.data)) > 0.0


def test_fbm_fractional_octaves_differ_from_whole() -> None:
    field = ScalarField.new(32, 32)

    whole = generate_fbm(field, FbmConfig(octaves=3.0), rng=_rng())
    partial = generate_fbm(field, FbmConfig(octaves=3.5), rng=_rng())

    assert not np.array_equal(whole.data, partial.data)


def test_fbm_adds_to_input() -> None:
    base = ScalarField.new(16, 16, fill=2.0)
    config = FbmConfig(amplitude=0.0, bias=0.25)

    out = generate_fbm(base, config, rng=_rng())

    assert np.allclose(out.data, 2.25)


def test_mid_point_replaces_input() -> None:
    config = MidPointConfig()

    from_zero = generate_mid_point(ScalarField.new(20, 12), config, rng=_rng())
    from_ones = generate_mid_point(ScalarField.new(20, 12, fill=1.0), config, rng=_rng())

    assert from_zero.shape == (12, 20)
    assert np.array_equal(from_zero.data, from_ones.data)
    assert float(np.std(from_zero.data)) > 0.0


def test_diamond_square_sizes() -> None:
    assert working_size(1) == 2
    assert working_size(17) == 17
    assert working_size(18) == 33

    grid = diamond_square(17, _rng(), displacement=0.7, roughness=0.5)
    assert grid.shape == (17, 17)
    assert np.isfinite(grid).all()
    with pytest.raises(ValueError):
        diamond_square(16, _rng(), displacement=0.7, roughness=0.5)


def test_normalize_constant_four_by_four_is_all_zero() -> None:
    out = generate_normalize(ScalarField.new(4, 4, fill=5.0), NormalizeConfig())

    assert out.shape == (4, 4)
    assert np.all(out.data == 0.0)


def test_land_threshold_counts() -> None:
    values = np.arange(10, dtype=np.float64)

    assert land_threshold(values, 0.3) == (7.0, 3)
    assert land_threshold(values, 0.0)[1] == 0
    assert land_threshold(values, 1.0) == (0.0, 10)


@pytest.mark.parametrize("scale, offset", [(1.0, 0.0), (850.0, -120.0)])
def test_landmass_land_fraction_matches_proportion(scale: float, offset: float) -> None:
    base = _random_field(50, 40)
    field = ScalarField.from_array(base.data * scale + offset)
    config = LandMassConfig(land_proportion=0.6, water_level=0.12)

    out = generate_landmass(field, config)

    water = np.float32(config.water_level)
    expected = round(0.6 * field.width * field.height)
    assert int(np.count_nonzero(out.data >= water)) == expected
    assert out.min_max()[1] <= 1.0
    assert out.min_max()[0] >= -config.shore_height - 1e-6


def test_landmass_extremes() -> None:
    field = _random_field(10, 10)

    all_water = generate_landmass(field, LandMassConfig(land_proportion=0.0))
    all_land = generate_landmass(field, LandMassConfig(land_proportion=1.0))

    assert np.all(all_water.data < np.float32(0.12))
    assert np.all(all_land.data >= np.float32(0.12))


def test_mudslide_flat_field_unchanged() -> None:
    field = ScalarField.new(12, 12, fill=0.5)

    out = generate_mudslide(field, MudSlideConfig())

    assert out == field


def test_mudslide_lowers_peak_and_conserves_mass() -> None:
    values = np.zeros((7, 7), dtype=np.float32)
    values[3, 3] = 0.5
    field = ScalarField.from_array(values)
    config = MudSlideConfig(iterations=3, water_level=0.0)

    out = generate_mudslide(field, config)

    assert out.get(3, 3) < 0.5
    assert float(out.data.astype(np.float64).sum()) == pytest.approx(0.5, abs=1e-6)
    assert out.min_max()[0] >= 0.0


def _assert_descent_pairs_keep_order(before: ScalarField, after: ScalarField) -> None:
    direction, _ = steepest_descent(before.data.astype(np.float64))
    height, width = direction.shape
    for y, x in zip(*np.nonzero(direction >= 0)):
        dy, dx, _ = _NEIGHBOURS_8[direction[y, x]]
        ry, rx = y + dy, x + dx
        assert 0 <= ry < height and 0 <= rx < width
        assert after.data[y, x] >= after.data[ry, rx] - 1e-6


def test_mudslide_pit_fed_by_eight_donors_stays_lowest() -> None:
    values = np.full((5, 5), 0.5, dtype=np.float32)
    values[2, 2] = 0.0
    field = ScalarField.from_array(values)
    config = MudSlideConfig(iterations=1, water_level=0.0, max_erosion_alt=0.9)

    out = generate_mudslide(field, config)

    donors = out.data[1:4, 1:4].copy()
    donors[1, 1] = np.inf
    assert out.get(2, 2) == pytest.approx(0.1, abs=1e-6)
    assert out.get(2, 2) <= float(donors.min())
    assert float(donors.min()) < 0.5
    _assert_descent_pairs_keep_order(field, out)


def test_mudslide_never_flips_donor_and_receiver() -> None:
    field = ScalarField.from_array(np.abs(_random_field(24, 24, seed=8).data) * 0.5)
    config = MudSlideConfig(iterations=1, strength=1.0, water_level=0.0, max_erosion_alt=10.0)

    out = generate_mudslide(field, config)

    assert not np.array_equal(out.data, field.data)
    _assert_descent_pairs_keep_order(field, out)


def test_steepest_descent_marks_sinks() -> None:
    heights = np.array([[1.0, 2.0], [3.0, 4.0]])

    direction, drop = steepest_descent(heights)

    assert direction[0, 0] == -1
    assert drop[0, 0] == 0.0
    assert direction[1, 1] >= 0
    assert drop[1, 1] == pytest.approx(3.0)


def test_water_erosion_flat_field_unchanged() -> None:
    field = ScalarField.new(16, 16, fill=0.3)

    out = generate_water_erosion(field, WaterErosionConfig(), rng=_rng())

    assert out == field


def test_water_erosion_never_adds_mass_and_changes_slopes() -> None:
    field = _ramp()
    config = WaterErosionConfig(drop_amount=0.5)

    out = generate_water_erosion(field, config, rng=_rng())

    before = float(field.data.astype(np.float64).sum())
    after = float(out.data.astype(np.float64).sum())
    assert after <= before + 1e-3
    assert not np.array_equal(out.data, field.data)


def test_water_erosion_in_a_valley_stays_below_its_ceiling() -> None:
    xs = np.abs(np.arange(33, dtype=np.float32) - 16.0) * 0.05
    ys = np.arange(33, dtype=np.float32) * 0.01
    field = ScalarField.from_array(xs[None, :] + ys[:, None])
    start = field.data.astype(np.float64)
    ceiling = np.maximum(start, lowest_neighbour(start))

    out = generate_water_erosion(field, WaterErosionConfig(drop_amount=1.0, batch_size=256), rng=_rng())

    lo, hi = field.min_max()
    assert not np.array_equal(out.data, field.data)
    assert np.all(out.data <= ceiling + 1e-6)
    assert out.min_max()[0] >= lo - 1e-6
    assert out.min_max()[1] <= hi + 1e-6


def test_water_erosion_keeps_default_stack_in_range() -> None:
    pipeline = Pipeline(seed=0xDEADBEEF, resolution=(96, 96), steps=default_steps())
    shore = LandMassConfig().shore_height

    before = pipeline.get_field(4).min_max()
    eroded = pipeline.get_field(5).min_max()
    final = pipeline.get_field().min_max()

    assert eroded[0] >= before[0] - 1e-6
    assert eroded[1] <= before[1] + 1e-6
    assert final[0] >= -shore - 1e-6
    assert final[1] <= 1.0 + 1e-6


def test_water_erosion_reports_each_batch() -> None:
    field = _ramp(20, 20)
    config = WaterErosionConfig(batch_size=100)
    seen: list[float] = []

    generate_water_erosion(field, config, rng=_rng(), progress=seen.append)

    assert len(seen) == -(-drop_count(20, 20, config.drop_amount) // 100)
    assert all(a < b for a, b in zip(seen, seen[1:]))
    assert seen[-1] == 1.0


def test_row_band_progress_ends_at_one() -> None:
    seen: list[float] = []

    generate_hills(ScalarField.new(32, 32), HillsConfig(count=10), rng=_rng(), workers=3, progress=seen.append)

    assert seen
    assert all(a < b for a, b in zip(seen, seen[1:]))
    assert seen[-1] == 1.0


def test_water_erosion_ignores_worker_count() -> None:
    field = _ramp(24, 24)
    config = WaterErosionConfig(batch_size=97)

    single = generate_water_erosion(field, config, rng=_rng(), workers=1)
    many = generate_water_erosion(field, config, rng=_rng(), workers=3)

    assert np.array_equal(single.data, many.data)


def test_drop_count() -> None:
    assert drop_count(10, 10, 0.5) == 100
    assert drop_count(10, 10, 0.0) == 0


def test_island_pulls_border_to_floor() -> None:
    field = ScalarField.new(11, 11, fill=1.0)
    field.set(0, 0, 0.2)

    out = generate_island(field, IslandConfig(coast_range=20.0))

    assert np.allclose(out.data[0, :], 0.2)
    assert np.allclose(out.data[:, -1], 0.2)
    assert out.get(5, 5) == pytest.approx(1.0)

    floored = generate_island(field, IslandConfig(coast_range=20.0, floor=-1.0))
    assert np.allclose(floored.data[-1, :], -1.0)


def test_registry_covers_every_kind() -> None:
    assert set(GENERATORS) == set(GeneratorKind)
    stochastic = {kind for kind, info in GENERATORS.items() if info.stochastic}
    assert stochastic == {
        GeneratorKind.HILLS,
        GeneratorKind.FBM,
        GeneratorKind.MID_POINT,
        GeneratorKind.WATER_EROSION,
    }
    replacing = {kind for kind, info in GENERATORS.items() if info.replaces_input}
    assert replacing == {GeneratorKind.MID_POINT, GeneratorKind.NORMALIZE}
    assert kind_for_params(IslandConfig()) is GeneratorKind.ISLAND


def test_apply_generator_validates_inputs() -> None:
    field = ScalarField.new(8, 8)

    with pytest.raises(ConfigurationError):
        apply_generator("Hills", field, FbmConfig(), seed=1)
    with pytest.raises(ConfigurationError):
        apply_generator("Volcano", field, HillsConfig(), seed=1)
    with pytest.raises(ConfigurationError):
        apply_generator(GeneratorKind.FBM, field, FbmConfig(octaves=0.0), seed=1)


def test_apply_generator_is_deterministic_per_seed() -> None:
    field = ScalarField.new(24, 24)

    a = apply_generator(GeneratorKind.HILLS, field, HillsConfig(count=30), seed=99)
    b = apply_generator(GeneratorKind.HILLS, field, HillsConfig(count=30), seed=99)
    c = apply_generator(GeneratorKind.HILLS, field, HillsConfig(count=30), seed=100)

    assert a == b
    assert a != c
