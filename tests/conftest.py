"""
Shared pytest fixtures for AneuHMM tests.
"""
import pytest
import numpy as np
import pandas as pd
import tempfile


BINSIZE = 1_000_000


def make_bins(layout, size_per_copy=50, prob=0.5, seed=0, binsize=BINSIZE,
              column='counts'):
    """
    Simulate a bin table.

    Args:
        layout: {chromosome: [(copy_number, n_bins), ...]} contiguous blocks;
            copy number 0 gives empty bins
        size_per_copy: NB size per copy (mean per copy = size * (1-p)/p)
        prob: NB success probability
        seed: RNG seed
        binsize: bin width in bp
        column: name of the count column
    """
    rng = np.random.default_rng(seed)
    frames = []
    for chrom, blocks in layout.items():
        copies = np.concatenate([np.full(n, c) for c, n in blocks])
        counts = np.zeros(len(copies), dtype=np.int64)
        nonzero = copies > 0
        counts[nonzero] = rng.negative_binomial(size_per_copy * copies[nonzero], prob)
        starts = np.arange(len(copies), dtype=np.int64) * binsize
        frames.append(pd.DataFrame({
            'chromosome': chrom,
            'start': starts,
            'end': starts + binsize,
            column: counts,
        }))
    return pd.concat(frames, ignore_index=True)


@pytest.fixture(scope='session')
def simulate_bins():
    """Factory fixture returning make_bins."""
    return make_bins


@pytest.fixture
def small_bins():
    """Two chromosomes, disomic with a trisomic block on chr2."""
    layout = {
        'chr1': [(2, 120)],
        'chr2': [(2, 60), (3, 40), (2, 20)],
    }
    return make_bins(layout, seed=1)


@pytest.fixture
def euploid_bins():
    """2000 bins on 4 chromosomes: 230 empty bins, 1770 disomic bins."""
    layout = {
        'chr1': [(0, 60), (2, 440)],
        'chr2': [(0, 60), (2, 440)],
        'chr3': [(0, 55), (2, 445)],
        'chr4': [(2, 445), (0, 55)],
    }
    return make_bins(layout, seed=11)


@pytest.fixture
def trisomy_dominant_bins():
    """2000 bins: 31.5% disomy, 35% trisomy, 20% tetrasomy, 13.5% monosomy."""
    layout = {
        'chr1': [(2, 365), (1, 135)],
        'chr2': [(3, 350), (2, 150)],
        'chr3': [(3, 350), (1, 135), (2, 15)],
        'chr4': [(4, 400), (2, 100)],
    }
    return make_bins(layout, seed=12)


@pytest.fixture
def temp_dir():
    """Temporary directory for file operations."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield tmpdir
