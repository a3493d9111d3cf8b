"""
Tests for state parsing and SegmentationConfig.
"""
import pytest

from aneuhmm.core.config import ConfigurationError, DEFAULT_STATES, SegmentationConfig
from aneuhmm.core.states import StateKind, StateSet, parse_states


class TestParseStates:
    def test_named_states(self):
        states = parse_states(['zero-inflation', 'nullsomy', 'monosomy', 'disomy', 'trisomy'])
        assert [s.multiplier for s in states] == [0, 0, 1, 2, 3]
        assert states[0].kind == StateKind.ZERO_INFLATION
        assert states[1].kind == StateKind.NULLSOMY
        assert all(s.is_somy for s in states[2:])

    def test_numeric_states(self):
        states = parse_states(['0-somy', '1-somy', '10-somy'])
        assert [s.multiplier for s in states] == [0, 1, 10]
        assert states[0].kind == StateKind.NULLSOMY

    def test_multisomy_above_largest(self):
        states = parse_states(['monosomy', 'disomy', 'multisomy'])
        assert states[2].multiplier == 5
        states = parse_states(['disomy', '7-somy', 'multisomy'])
        assert states[2].multiplier == 8

    def test_joint_labels(self):
        states = parse_states(['1-somy|1-somy', 'zero-inflation|0-somy',
                               'zero-inflation|zero-inflation', '2-somy|0-somy'])
        assert [s.multiplier for s in states] == [2, 0, 0, 2]
        assert states[1].kind == StateKind.NULLSOMY
        assert states[2].kind == StateKind.ZERO_INFLATION
        assert states[3].kind == StateKind.SOMY

    @pytest.mark.parametrize('labels', [[], ['disomy', 'disomy'], ['bogus']])
    def test_invalid(self, labels):
        with pytest.raises(ConfigurationError):
            parse_states(labels)


class TestStateSet:
    def test_index_and_most_frequent(self):
        states = StateSet(['zero-inflation', 'monosomy', 'disomy'], 'disomy')
        assert states.index('monosomy') == 1
        assert states.most_frequent_index == 2
        assert len(states) == 3
        assert states.multipliers == [0, 1, 2]

    def test_named_and_numeric_are_equivalent(self):
        states = StateSet(['zero-inflation', '0-somy', '1-somy', '2-somy'], 'monosomy')
        assert states.most_frequent == '1-somy'

    def test_most_frequent_must_be_somy(self):
        with pytest.raises(ConfigurationError):
            StateSet(['zero-inflation', 'disomy'], 'zero-inflation')

    def test_most_frequent_must_be_present(self):
        with pytest.raises(ConfigurationError):
            StateSet(['zero-inflation', 'disomy'], 'trisomy')

    def test_equality(self):
        assert StateSet(['monosomy', 'disomy']) == StateSet(['monosomy', 'disomy'])
        assert StateSet(['monosomy', 'disomy']) != StateSet(['disomy', 'monosomy'])


class TestSegmentationConfig:
    def test_defaults(self):
        config = SegmentationConfig()
        assert config.states == DEFAULT_STATES
        assert config.states[0] == 'zero-inflation'
        assert config.states[-1] == '10-somy'
        assert config.most_frequent_state == '2-somy'
        assert config.eps == 0.1
        assert config.max_iter == 5000
        assert config.num_trials == 15
        assert config.resolution == (3, 6)
        assert config.min_segwidth == 2
        assert config.min_reads == 50
        assert config.pval == 1e-8

    def test_frozen(self):
        config = SegmentationConfig()
        with pytest.raises(Exception):
            config.eps = 1.0

    def test_replace(self):
        config = SegmentationConfig()
        changed = config.replace(num_trials=3)
        assert changed.num_trials == 3
        assert config.num_trials == 15

    def test_hotspot_bandwidth_default(self):
        assert SegmentationConfig().hotspot_bandwidth(200000) == 800000
        assert SegmentationConfig(bw=1000).hotspot_bandwidth(200000) == 1000

    @pytest.mark.parametrize('changes', [
        dict(states=()),
        dict(most_frequent_state='99-somy'),
        dict(eps=0),
        dict(num_trials=0),
        dict(max_iter=0),
        dict(resolution=(0,)),
        dict(pval=0),
        dict(bw=-1),
    ])
    def test_validation(self, changes):
        with pytest.raises(ConfigurationError):
            SegmentationConfig(**changes)
