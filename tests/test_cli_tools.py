"""
End-to-end tests for the aneuhmm-fit, aneuhmm-cluster and aneuhmm-hotspots tools.
"""
import os

import pytest
import pandas as pd

from aneuhmm.cli import cluster, fit, hotspots
from aneuhmm.core.data import SCEEvent, Segment
from aneuhmm.core.model_io import load_model, load_segments, save_sce, save_segments

STATES = ['zero-inflation', '1-somy', '2-somy', '3-somy']


def _segment(chrom, start, end, state):
    return Segment(chromosome=chrom, start=start, end=end, state=state,
                   num_bins=(end - start) // 1_000_000, mean_count=50.0)


class TestFitTool:
    def test_sample_id_from_path(self):
        assert fit.sample_id_from_path('/data/cell_01.tsv') == 'cell_01'
        assert fit.sample_id_from_path('cell_01.bins.tsv.gz') == 'cell_01'

    def test_writes_outputs(self, simulate_bins, temp_dir):
        bins = simulate_bins({'chr1': [(2, 60)], 'chr2': [(2, 30), (3, 30)]}, seed=3)
        path = os.path.join(temp_dir, 'cell_a.tsv')
        bins.to_csv(path, sep='\t', index=False)
        out = os.path.join(temp_dir, 'out')

        rc = fit.main(['-i', path, '-o', out, '--states', *STATES,
                       '--num-trials', '1', '--max-iter', '50'])

        assert rc == 0
        model = load_model(os.path.join(out, 'cell_a.model.json'))
        assert model.id == 'cell_a'
        segments = load_segments(os.path.join(out, 'cell_a.segments.tsv'))
        assert segments == model.segments()
        assert not os.path.exists(os.path.join(out, 'cell_a.sce.tsv'))

    def test_failed_sample_sets_exit_code(self, temp_dir):
        path = os.path.join(temp_dir, 'broken.tsv')
        pd.DataFrame({'chromosome': ['chr1'], 'start': [0], 'end': [1000]}).to_csv(
            path, sep='\t', index=False)
        rc = fit.main(['-i', path, '-o', os.path.join(temp_dir, 'out'),
                       '--states', *STATES, '--num-trials', '1'])
        assert rc == 1

    def test_fragment_count_mismatch(self, temp_dir):
        rc = fit.main(['-i', 'a.tsv', 'b.tsv', '--fragments', 'a.frag.tsv',
                       '-o', os.path.join(temp_dir, 'out')])
        assert rc == 2


class TestClusterTool:
    def test_writes_tables(self, temp_dir):
        profiles = {
            'cell_a': [_segment('chr1', 0, 50_000_000, '2-somy'),
                       _segment('chr1', 50_000_000, 100_000_000, '3-somy')],
            'cell_b': [_segment('chr1', 0, 100_000_000, '2-somy')],
            'cell_c': [_segment('chr1', 0, 50_000_000, '2-somy'),
                       _segment('chr1', 50_000_000, 100_000_000, '3-somy')],
        }
        paths = []
        for name, segs in profiles.items():
            path = os.path.join(temp_dir, f'{name}.segments.tsv')
            save_segments(segs, path)
            paths.append(path)
        out = os.path.join(temp_dir, 'clustered')

        rc = cluster.main(['-i', *paths, '-o', out, '--states', *STATES])

        assert rc == 0
        consensus = pd.read_csv(os.path.join(out, 'consensus.tsv'), sep='\t')
        assert len(consensus) == 2
        assert {'cell_a', 'cell_b', 'cell_c'} <= set(consensus.columns)
        order = pd.read_csv(os.path.join(out, 'order.tsv'), sep='\t')
        assert sorted(order['position']) == [0, 1, 2]
        distance = pd.read_csv(os.path.join(out, 'distance.tsv'), sep='\t', index_col=0)
        assert distance.loc['cell_a', 'cell_c'] == pytest.approx(0.0)


class TestHotspotsTool:
    def _write_events(self, temp_dir, n_cells=20):
        paths = []
        for i in range(n_cells):
            pos = 10_000_000 + i * 1_000
            event = SCEEvent(chromosome='chr1', start=pos, end=pos + 2_000, bin_index=10,
                             bin_start=0, bin_end=20, resolution=2_000)
            path = os.path.join(temp_dir, f'cell{i}.sce.tsv')
            save_sce([event], path)
            paths.append(path)
        return paths

    def test_needs_bandwidth(self, temp_dir):
        paths = self._write_events(temp_dir, n_cells=2)
        rc = hotspots.main(['-i', *paths, '-o', os.path.join(temp_dir, 'hot.tsv')])
        assert rc == 2

    def test_writes_hotspots(self, temp_dir):
        paths = self._write_events(temp_dir)
        lengths = os.path.join(temp_dir, 'lengths.tsv')
        pd.DataFrame([['chr1', 100_000_000]]).to_csv(lengths, sep='\t', header=False,
                                                     index=False)
        out = os.path.join(temp_dir, 'hot', 'hotspots.tsv')

        rc = hotspots.main(['-i', *paths, '-o', out, '--bw', '100000',
                            '--chrom-lengths', lengths, '--pval', '0.05'])

        assert rc == 0
        table = pd.read_csv(out, sep='\t', dtype={'chromosome': str})
        assert len(table) >= 1
        assert (table['start'] <= 10_020_000).all()
        assert (table['end'] >= 10_000_000).all()
