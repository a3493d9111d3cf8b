"""
Tests for Viterbi decoding into segments.
"""
import pytest
import numpy as np
import pandas as pd

from aneuhmm.core.data import frame_to_segments, segments_to_frame
from aneuhmm.core.hmm import fit_hmm
from aneuhmm.inference.decoder import decode, segments_from_path

STATES = ['zero-inflation', '1-somy', '2-somy', '3-somy']


@pytest.fixture
def fitted(small_bins):
    return fit_hmm(small_bins, STATES, '2-somy', num_trials=2)


class TestSegmentsFromPath:
    def test_runs_are_merged(self):
        bins = pd.DataFrame({
            'chromosome': ['1'] * 5,
            'start': [0, 10, 20, 30, 40],
            'end': [10, 20, 30, 40, 50],
            'counts': [1, 2, 3, 4, 5],
        })
        segs = segments_from_path(bins, np.array([0, 0, 1, 1, 0]), ['a', 'b'],
                                  bins['counts'].to_numpy())
        assert [(s.start, s.end, s.state, s.num_bins) for s in segs] == [
            (0, 20, 'a', 2), (20, 40, 'b', 2), (40, 50, 'a', 1)]
        assert segs[1].mean_count == pytest.approx(3.5)

    def test_segments_do_not_cross_chromosomes(self):
        bins = pd.DataFrame({
            'chromosome': ['1', '1', '2', '2'],
            'start': [0, 10, 0, 10],
            'end': [10, 20, 10, 20],
            'counts': [1, 1, 1, 1],
        })
        segs = segments_from_path(bins, np.zeros(4, dtype=int), ['a'], bins['counts'])
        assert [(s.chromosome, s.start, s.end) for s in segs] == [('1', 0, 20), ('2', 0, 20)]


class TestDecode:
    def test_segments_tile_chromosomes(self, fitted, small_bins):
        segs = decode(fitted, small_bins)
        for chrom, group in small_bins.groupby('chromosome', sort=False):
            chrom_segs = [s for s in segs if s.chromosome == chrom]
            assert chrom_segs[0].start == group['start'].min()
            assert chrom_segs[-1].end == group['end'].max()
            for a, b in zip(chrom_segs[:-1], chrom_segs[1:]):
                assert a.end == b.start
            assert sum(s.num_bins for s in chrom_segs) == len(group)

    def test_matches_attached_segments(self, fitted, small_bins):
        assert decode(fitted, small_bins) == fitted.segments()

    def test_defaults_to_model_bins(self, fitted):
        assert decode(fitted) == fitted.segments()

    def test_empty_input(self, fitted):
        empty = pd.DataFrame(columns=['chromosome', 'start', 'end', 'counts'])
        assert decode(fitted, empty) == []

    def test_frame_roundtrip(self, fitted):
        df = segments_to_frame(fitted.segments())
        assert list(df.columns[:6]) == ['chromosome', 'start', 'end', 'state',
                                        'num_bins', 'mean_count']
        assert frame_to_segments(df) == fitted.segments()
