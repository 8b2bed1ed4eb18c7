"""
Tests for the daily bucket update.

Covers the Thornthwaite-Mather accounting in computation.py: the bucket
invariants, the storage-exhaustion crossover, conservation, and the
negative-value guard.
"""

import numpy as np
import pytest

from wbgrid.computation import BucketStep, bucket_step, clamp_negative, run_bucket
from wbgrid.errors import NumericGuardError


class TestBucketStep:
    """Single-day behaviour of bucket_step()."""

    def test_wet_day_meets_demand_and_refills(self):
        """available >= PET: AET = PET, storage capped at WHC, excess is surplus."""
        step = bucket_step(np.array([20.0]), np.array([3.0]), np.array([95.0]), np.array([100.0]))

        np.testing.assert_allclose(step.aet, [3.0])
        np.testing.assert_allclose(step.cwd, [0.0])
        np.testing.assert_allclose(step.storage, [100.0])
        np.testing.assert_allclose(step.surplus, [12.0])

    def test_dry_day_empties_bucket(self):
        """available < PET: AET = available, storage = 0, CWD = PET - AET."""
        step = bucket_step(np.array([1.0]), np.array([5.0]), np.array([2.5]), np.array([100.0]))

        np.testing.assert_allclose(step.aet, [3.5])
        np.testing.assert_allclose(step.cwd, [1.5])
        np.testing.assert_allclose(step.storage, [0.0])
        np.testing.assert_allclose(step.surplus, [0.0])

    def test_exact_demand_leaves_empty_bucket(self):
        step = bucket_step(np.array([1.0]), np.array([4.0]), np.array([3.0]), np.array([50.0]))
        np.testing.assert_allclose(step.aet, [4.0])
        np.testing.assert_allclose(step.cwd, [0.0])
        np.testing.assert_allclose(step.storage, [0.0])

    def test_returns_named_tuple(self):
        step = bucket_step(np.zeros(3), np.ones(3), np.ones(3), np.ones(3))
        assert isinstance(step, BucketStep)
        assert step._fields == ("aet", "cwd", "storage", "surplus")

    def test_cells_are_independent(self):
        """Each cell is updated from its own storage and WHC only."""
        water = np.array([0.0, 10.0, 0.0])
        pet = np.array([4.0, 4.0, 4.0])
        storage = np.array([0.0, 50.0, 10.0])
        whc = np.array([0.0, 50.0, 10.0])

        step = bucket_step(water, pet, storage, whc)

        np.testing.assert_allclose(step.aet, [0.0, 4.0, 4.0])
        np.testing.assert_allclose(step.cwd, [4.0, 0.0, 0.0])
        np.testing.assert_allclose(step.storage, [0.0, 50.0, 6.0])
        np.testing.assert_allclose(step.surplus, [0.0, 6.0, 0.0])


class TestBucketInvariants:
    """Properties that must hold for any non-negative inputs."""

    @pytest.fixture()
    def random_inputs(self):
        rng = np.random.default_rng(42)
        n_days, n_cells = 400, 64
        water = rng.gamma(0.4, 6.0, size=(n_days, n_cells))
        pet = rng.uniform(0.0, 7.0, size=(n_days, n_cells))
        whc = rng.uniform(0.0, 250.0, size=n_cells)
        return water, pet, whc

    def test_aet_bounded_by_pet(self, random_inputs):
        water, pet, whc = random_inputs
        out = run_bucket(water, pet, whc)
        assert np.all(out["aet"] >= 0.0)
        assert np.all(out["aet"] <= pet + 1e-12)

    def test_cwd_is_pet_minus_aet(self, random_inputs):
        water, pet, whc = random_inputs
        out = run_bucket(water, pet, whc)
        np.testing.assert_allclose(out["cwd"], pet - out["aet"])
        assert np.all(out["cwd"] >= 0.0)

    def test_storage_within_capacity(self, random_inputs):
        water, pet, whc = random_inputs
        out = run_bucket(water, pet, whc)
        assert np.all(out["storage"] >= 0.0)
        assert np.all(out["storage"] <= whc + 1e-12)

    def test_water_is_conserved(self, random_inputs):
        """input + storage_before = AET + storage_after + surplus, every day."""
        water, pet, whc = random_inputs
        out = run_bucket(water, pet, whc)
        before = np.vstack([whc[np.newaxis, :], out["storage"][:-1]])

        np.testing.assert_allclose(water + before, out["aet"] + out["storage"] + out["surplus"], atol=1e-9)

    def test_zero_whc_gives_cwd_equal_pet_on_dry_days(self):
        """With no soil storage and no rain, nothing is available to evaporate."""
        pet = np.linspace(0.5, 6.0, 30)[:, np.newaxis].repeat(4, axis=1)
        out = run_bucket(np.zeros_like(pet), pet, whc=0.0)

        np.testing.assert_allclose(out["aet"], 0.0)
        np.testing.assert_allclose(out["cwd"], pet)
        np.testing.assert_allclose(out["storage"], 0.0)


class TestStorageExhaustion:
    """WHC = 50 mm, full start, PET = 3 mm/day, no precipitation for 20 days."""

    @pytest.fixture()
    def drydown(self):
        pet = np.full((20, 1), 3.0)
        return run_bucket(np.zeros_like(pet), pet, whc=np.array([50.0]))

    def test_full_demand_met_for_sixteen_days(self, drydown):
        np.testing.assert_allclose(drydown["aet"][:16, 0], 3.0)
        np.testing.assert_allclose(drydown["cwd"][:16, 0], 0.0)

    def test_storage_after_day_sixteen(self, drydown):
        np.testing.assert_allclose(drydown["storage"][15, 0], 2.0)

    def test_day_seventeen_uses_remaining_water(self, drydown):
        assert drydown["aet"][16, 0] == pytest.approx(2.0)
        assert drydown["cwd"][16, 0] == pytest.approx(1.0)
        assert drydown["storage"][16, 0] == pytest.approx(0.0)

    def test_no_evaporation_after_exhaustion(self, drydown):
        np.testing.assert_allclose(drydown["aet"][17:, 0], 0.0)
        np.testing.assert_allclose(drydown["cwd"][17:, 0], 3.0)


class TestRunBucket:
    """Whole-series helper."""

    def test_initial_storage_defaults_to_whc(self):
        out = run_bucket(np.zeros((1, 2)), np.full((1, 2), 1.0), whc=np.array([10.0, 20.0]))
        np.testing.assert_allclose(out["storage"][0], [9.0, 19.0])

    def test_explicit_initial_storage(self):
        out = run_bucket(np.zeros((1, 2)), np.full((1, 2), 1.0), whc=np.array([10.0, 20.0]), initial_storage=0.0)
        np.testing.assert_allclose(out["aet"][0], [0.0, 0.0])

    def test_shape_mismatch_raises(self):
        with pytest.raises(ValueError, match="same shape"):
            run_bucket(np.zeros((5, 2)), np.zeros((4, 2)), whc=1.0)

    def test_repeat_runs_are_identical(self):
        rng = np.random.default_rng(7)
        water = rng.uniform(0, 5, size=(100, 8))
        pet = rng.uniform(0, 5, size=(100, 8))
        first = run_bucket(water, pet, whc=30.0)
        second = run_bucket(water, pet, whc=30.0)
        for name in first:
            np.testing.assert_array_equal(first[name], second[name])


class TestClampNegative:
    """Negative precipitation / PET guard."""

    def test_no_negatives_passes_through(self):
        values, n = clamp_negative(np.array([0.0, 1.5, 3.0]), "pet")
        assert n == 0
        np.testing.assert_array_equal(values, [0.0, 1.5, 3.0])

    def test_negatives_clamped_and_counted(self):
        values, n = clamp_negative(np.array([-0.2, 1.0, -3.0]), "precip")
        assert n == 2
        np.testing.assert_array_equal(values, [0.0, 1.0, 0.0])

    def test_strict_mode_raises(self):
        with pytest.raises(NumericGuardError) as exc_info:
            clamp_negative(np.array([-1.0, 2.0]), "pet", strict=True)
        assert exc_info.value.field == "pet"
        assert exc_info.value.n_events == 1
