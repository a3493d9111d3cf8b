"""Shared argparse argument factories for AneuHMM CLI tools.

Each function adds a group of related arguments to an ArgumentParser.
Flags map one-to-one onto SegmentationConfig fields; config_from_args()
builds the config from the parsed namespace.
"""

import argparse
import logging
import sys

from aneuhmm.core.config import DEFAULT_STATES, SegmentationConfig

# Parsed argument names that are SegmentationConfig fields of the same name
CONFIG_FLAGS = (
    'states', 'most_frequent_state', 'most_frequent_state_strandseq', 'strandseq',
    'eps', 'max_iter', 'max_time', 'num_trials', 'seed',
    'refine_sce', 'resolution', 'min_segwidth', 'min_reads',
    'bw', 'pval', 'n_permutations',
)


def add_state_args(parser: argparse.ArgumentParser) -> None:
    """Add HMM state arguments (--states, --most-frequent-state, --strandseq)."""
    parser.add_argument(
        '--states', nargs='+', default=list(DEFAULT_STATES),
        help="Ordered HMM state labels (default: zero-inflation 0-somy ... 10-somy)"
    )
    parser.add_argument(
        '--most-frequent-state', default='2-somy',
        help="Most frequent state, seeds the initial mean (default: 2-somy)"
    )
    parser.add_argument(
        '--most-frequent-state-strandseq', default='1-somy',
        help="Most frequent per-strand state for Strand-seq data (default: 1-somy)"
    )
    parser.add_argument(
        '--strandseq', action='store_true',
        help="Fit the bivariate two-strand model (bins need mcounts/pcounts)"
    )


def add_em_args(parser: argparse.ArgumentParser,
                eps: float = 0.1,
                max_iter: int = 5000,
                max_time: float = 60.0,
                num_trials: int = 15,
                seed: int = 0) -> None:
    """Add Baum-Welch arguments (--eps, --max-iter, --max-time, --num-trials, --seed)."""
    parser.add_argument(
        '--eps', type=float, default=eps,
        help=f"Convergence threshold on the log-likelihood improvement (default: {eps})"
    )
    parser.add_argument(
        '--max-iter', type=int, default=max_iter,
        help=f"Maximum EM iterations per trial (default: {max_iter})"
    )
    parser.add_argument(
        '--max-time', type=float, default=max_time,
        help=f"Time budget per trial in seconds, <=0 for none (default: {max_time})"
    )
    parser.add_argument(
        '--num-trials', type=int, default=num_trials,
        help=f"Number of EM runs with different initial values (default: {num_trials})"
    )
    parser.add_argument(
        '--seed', '-s', type=int, default=seed,
        help=f"Random seed (default: {seed})"
    )


def add_sce_args(parser: argparse.ArgumentParser,
                 resolution=(3, 6),
                 min_segwidth: int = 2,
                 min_reads: int = 50) -> None:
    """Add SCE calling arguments (--refine-sce, --resolution, --min-segwidth, --min-reads)."""
    parser.add_argument(
        '--refine-sce', action='store_true',
        help="Refine SCE breakpoints with read fragments (needs --fragments)"
    )
    parser.add_argument(
        '--resolution', type=int, nargs='+', default=list(resolution),
        help=f"Refinement levels, fractions of a bin (default: {list(resolution)})"
    )
    parser.add_argument(
        '--min-segwidth', type=int, default=min_segwidth,
        help=f"Minimum flanking segment width in bins (default: {min_segwidth})"
    )
    parser.add_argument(
        '--min-reads', type=int, default=min_reads,
        help=f"Minimum reads on each side of a refined breakpoint (default: {min_reads})"
    )


def add_hotspot_args(parser: argparse.ArgumentParser,
                     pval: float = 1e-8,
                     n_permutations: int = 100) -> None:
    """Add hotspot arguments (--bw, --pval, --n-permutations)."""
    parser.add_argument(
        '--bw', type=float, default=None,
        help="Kernel bandwidth in bp (default: 4x the bin size)"
    )
    parser.add_argument(
        '--pval', type=float, default=pval,
        help=f"Hotspot p-value threshold (default: {pval})"
    )
    parser.add_argument(
        '--n-permutations', type=int, default=n_permutations,
        help=f"Random placements in the null distribution (default: {n_permutations})"
    )


def add_parallel_args(parser: argparse.ArgumentParser,
                      default_cores: int = 1) -> None:
    """Add --cores argument."""
    parser.add_argument(
        '--cores', '-c', type=int, default=default_cores,
        help=f"Number of worker processes (0=auto, default: {default_cores})"
    )


def add_output_args(parser: argparse.ArgumentParser,
                    required: bool = True,
                    help_text: str = "Output directory") -> None:
    """Add -o/--output argument."""
    parser.add_argument(
        '-o', '--output', required=required,
        help=help_text
    )


def add_verbose_args(parser: argparse.ArgumentParser) -> None:
    """Add --verbose flag."""
    parser.add_argument(
        '-v', '--verbose', action='store_true',
        help="Verbose output"
    )


def add_version_args(parser: argparse.ArgumentParser) -> None:
    """Add --version flag."""
    from aneuhmm import __version__
    parser.add_argument(
        '--version', action='version',
        version=f'%(prog)s {__version__}'
    )


def resolve_cores(cores: int) -> int:
    """Number of worker processes; 0 means all CPUs."""
    if cores == 0:
        import multiprocessing
        return multiprocessing.cpu_count()
    return max(1, cores)


def config_from_args(args: argparse.Namespace) -> SegmentationConfig:
    """Build a SegmentationConfig from parsed arguments; absent flags keep defaults."""
    fields = {name: getattr(args, name) for name in CONFIG_FLAGS if hasattr(args, name)}
    if hasattr(args, 'cores'):
        fields['num_workers'] = resolve_cores(args.cores)
    if hasattr(args, 'no_cluster'):
        fields['cluster'] = not args.no_cluster
    return SegmentationConfig(**fields)


def setup_logging(verbose: bool = False) -> None:
    """Log to stdout; DEBUG with --verbose."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format='%(message)s',
        handlers=[logging.StreamHandler(sys.stdout)]
    )
