"""
Tests for aneuhmm.core.model_io module.
"""
import pytest
import numpy as np
import json
import warnings

from aneuhmm.core.data import BivariateModel, SCEEvent, SegmentationKind
from aneuhmm.core.hmm import fit_hmm
from aneuhmm.core.model_io import (
    load_model,
    load_sce,
    load_segments,
    model_from_dict,
    model_to_dict,
    save_model,
    save_sce,
    save_segments,
)
from aneuhmm.core.states import StateSet

STATES = ['zero-inflation', '1-somy', '2-somy', '3-somy']


@pytest.fixture
def sample_model(small_bins):
    return fit_hmm(small_bins, STATES, '2-somy', num_trials=1, id='cell7')


class TestLoadSaveRoundTrip:
    def test_json_round_trip(self, sample_model, tmp_path):
        filepath = str(tmp_path / "model.json")
        save_model(sample_model, filepath)

        loaded = load_model(filepath)
        assert loaded.id == 'cell7'
        assert loaded.states == sample_model.states
        np.testing.assert_allclose(loaded.startprob, sample_model.startprob, rtol=1e-10)
        np.testing.assert_allclose(loaded.transition, sample_model.transition, rtol=1e-10)
        np.testing.assert_allclose(loaded.weights, sample_model.weights, rtol=1e-10)
        assert loaded.emission == sample_model.emission
        assert loaded.converged == sample_model.converged
        assert loaded.segments() == sample_model.segments()

    def test_json_contains_expected_keys(self, sample_model, tmp_path):
        filepath = str(tmp_path / "model.json")
        save_model(sample_model, filepath)

        with open(filepath) as f:
            data = json.load(f)

        assert data['model_type'] == 'AneuHMM'
        assert data['states'] == STATES
        assert data['most_frequent_state'] == '2-somy'
        for key in ('startprob', 'transmat', 'emission', 'weights', 'loglik',
                    'converged', 'segments'):
            assert key in data

    def test_non_json_extension_warns(self, sample_model, tmp_path):
        filepath = str(tmp_path / "model.pkl")
        with warnings.catch_warnings(record=True) as w:
            warnings.simplefilter("always")
            written = save_model(sample_model, filepath)
        assert written.endswith('model.json')
        assert any("JSON" in str(x.message) for x in w)
        assert load_model(written).id == 'cell7'

    def test_rejects_foreign_json(self, tmp_path):
        filepath = tmp_path / "other.json"
        filepath.write_text(json.dumps({'model_type': 'GaussianHMM'}))
        with pytest.raises(ValueError):
            load_model(str(filepath))


class TestBivariateRoundTrip:
    def test_dict_round_trip(self, sample_model):
        pairs = [(0, 0), (1, 1), (2, 0)]
        k = len(pairs)
        event = SCEEvent(chromosome='chr1', start=100, end=300, bin_index=2,
                         bin_start=0, bin_end=5, resolution=200,
                         left_state='1-somy|1-somy', right_state='2-somy|zero-inflation')
        model = BivariateModel(
            id='bi',
            states=StateSet(['zero-inflation|zero-inflation', '1-somy|1-somy',
                             '2-somy|zero-inflation'], '1-somy|1-somy'),
            startprob=np.full(k, 1 / k), transition=np.full((k, k), 1 / k), emission=None,
            weights=np.full(k, 1 / k), loglik=-10.0, converged=True,
            minus=sample_model, plus=sample_model, joint_pairs=pairs, sce=[event])

        restored = model_from_dict(json.loads(json.dumps(model_to_dict(model))))
        assert isinstance(restored, BivariateModel)
        assert restored.kind == SegmentationKind.BIVARIATE
        assert restored.joint_pairs == pairs
        assert restored.sce_events() == [event]
        assert restored.minus.emission == sample_model.emission


class TestTables:
    def test_segments_tsv(self, sample_model, tmp_path):
        filepath = str(tmp_path / "segments.tsv")
        save_segments(sample_model.segments(), filepath)
        assert load_segments(filepath) == sample_model.segments()

    def test_sce_tsv(self, tmp_path):
        events = [SCEEvent(chromosome='1', start=100, end=300, bin_index=2, bin_start=0,
                           bin_end=5, resolution=200, refined=True)]
        filepath = str(tmp_path / "sce.tsv")
        save_sce(events, filepath)
        assert load_sce(filepath) == events
