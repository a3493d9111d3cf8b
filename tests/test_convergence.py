"""
Convergence tests: mixture weights of fitted models on simulated data with
known state composition.
"""
import pytest

from aneuhmm.core.hmm import fit_hmm

SIX_STATES = ['zero-inflation', 'monosomy', 'disomy', 'trisomy', 'tetrasomy', 'multisomy']
SEVEN_STATES = ['zero-inflation', 'nullsomy'] + SIX_STATES[1:]


class TestEuploid:
    """1770 of 2000 bins are disomic, the rest are empty."""

    def test_disomy_weight(self, euploid_bins):
        model = fit_hmm(euploid_bins, SIX_STATES, 'disomy', eps=0.1, num_trials=15)
        assert 0.88 < model.weight('disomy') < 0.90

    def test_disomy_weight_with_nullsomy(self, euploid_bins):
        model = fit_hmm(euploid_bins, SEVEN_STATES, 'disomy', eps=0.1, num_trials=15)
        assert 0.87 < model.weight('disomy') < 0.89

    def test_empty_bins_are_not_somy(self, euploid_bins):
        model = fit_hmm(euploid_bins, SIX_STATES, 'disomy', num_trials=3)
        zero = euploid_bins['counts'].to_numpy() == 0
        labels = [model.states.labels[i] for i in model.path[zero]]
        assert all(label == 'zero-inflation' for label in labels)


class TestTrisomyDominant:
    """31.5% disomy, 35% trisomy, 20% tetrasomy, 13.5% monosomy."""

    @pytest.mark.parametrize('states', [SIX_STATES, SEVEN_STATES])
    def test_weights(self, trisomy_dominant_bins, states):
        model = fit_hmm(trisomy_dominant_bins, states, 'disomy', eps=0.1, num_trials=15)
        assert 0.30 < model.weight('disomy') < 0.33
        assert 0.30 < model.weight('trisomy') < 0.40
        assert model.weights.sum() == pytest.approx(1.0, abs=1e-6)
