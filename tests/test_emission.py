"""
Tests for the shared negative binomial emission model.
"""
import pytest
import numpy as np
from scipy.stats import nbinom

from aneuhmm.core.emission import EmissionModel, EmissionParams
from aneuhmm.core.states import StateSet

STATES = StateSet(['zero-inflation', 'nullsomy', 'monosomy', 'disomy', 'trisomy'], 'disomy')


@pytest.fixture
def params():
    return EmissionParams(size=10.0, prob=0.2, null_prob=0.8, zero_mass=0.6)


class TestEmissionParams:
    def test_mean_per_copy(self, params):
        assert params.mean_per_copy == pytest.approx(10 * 0.8 / 0.2)

    def test_state_mean_scales_with_copy_number(self, params):
        from aneuhmm.core.states import StateKind
        assert params.state_mean(3, StateKind.SOMY) == pytest.approx(3 * params.mean_per_copy)

    def test_from_mean_var(self):
        p = EmissionParams.from_mean_var(100.0, 300.0, 2, null_prob=0.5, zero_mass=0.9)
        assert 2 * p.mean_per_copy == pytest.approx(100.0)
        assert 2 * p.var_per_copy == pytest.approx(300.0)

    def test_dict_roundtrip(self, params):
        assert EmissionParams.from_dict(params.to_dict()) == params


class TestDensities:
    def test_somy_states_scale_size(self, params):
        model = EmissionModel(STATES)
        x = np.array([0, 5, 40, 80])
        logp = model.logpmf_matrix(x, params)
        np.testing.assert_allclose(logp[:, 3], nbinom.logpmf(x, 20.0, 0.2))
        np.testing.assert_allclose(logp[:, 4], nbinom.logpmf(x, 30.0, 0.2))

    def test_nullsomy_is_geometric(self, params):
        model = EmissionModel(STATES)
        x = np.array([0, 1, 2])
        logp = model.logpmf_matrix(x, params)
        np.testing.assert_allclose(np.exp(logp[:, 1]), 0.8 * 0.2 ** x)

    def test_zero_inflation(self, params):
        model = EmissionModel(STATES)
        assert model.density(0, 'zero-inflation', params) == pytest.approx(0.6 + 0.4 * 0.8)
        assert model.density(2, 'zero-inflation', params) == pytest.approx(0.4 * 0.8 * 0.04)

    def test_densities_sum_to_one(self, params):
        model = EmissionModel(STATES)
        x = np.arange(0, 2000)
        probs = np.exp(model.logpmf_matrix(x, params)).sum(axis=0)
        np.testing.assert_allclose(probs, 1.0, atol=1e-6)


class TestReestimate:
    def test_recovers_parameters(self):
        rng = np.random.default_rng(0)
        states = StateSet(['monosomy', 'disomy'], 'disomy')
        model = EmissionModel(states)
        x = np.concatenate([rng.negative_binomial(20, 0.4, 3000),
                            rng.negative_binomial(40, 0.4, 3000)])
        post = np.zeros((6000, 2))
        post[:3000, 0] = 1
        post[3000:, 1] = 1
        start = EmissionParams(size=5.0, prob=0.6, null_prob=0.5, zero_mass=0.5)
        new = model.reestimate(x, post, start)
        assert new.size == pytest.approx(20, rel=0.15)
        assert new.prob == pytest.approx(0.4, rel=0.1)

    def test_unvisited_states_keep_parameters(self, params):
        model = EmissionModel(STATES)
        x = np.array([30, 40, 50])
        post = np.zeros((3, len(STATES)))
        post[:, 3] = 1
        new = model.reestimate(x, post, params)
        assert new.null_prob == params.null_prob
        assert new.zero_mass == params.zero_mass

    def test_zero_mass_update(self, params):
        model = EmissionModel(STATES)
        x = np.array([0] * 90 + [1] * 10)
        post = np.zeros((100, len(STATES)))
        post[:, 0] = 1
        new = model.reestimate(x, post, params)
        assert 0 < new.zero_mass < 1
        assert new.zero_mass > 0.5

    def test_initial_params_seed_most_frequent(self):
        model = EmissionModel(STATES)
        x = np.array([0, 0, 98, 100, 102])
        p = model.initial_params(x)
        assert 2 * p.mean_per_copy == pytest.approx(100.0)

    def test_randomized_initial_params_differ(self):
        model = EmissionModel(STATES)
        x = np.array([0, 0, 98, 100, 102])
        a = model.initial_params(x, rng=np.random.default_rng(1), randomize=True)
        b = model.initial_params(x, rng=np.random.default_rng(2), randomize=True)
        assert a != b
