#!/usr/bin/env python3
"""
AneuHMM cluster CLI entry point.
Builds the consensus segmentation of many cells and orders them by
hierarchical clustering.
"""

import argparse
import logging
import os
import sys

import pandas as pd

from aneuhmm.core.config import DEFAULT_STATES
from aneuhmm.core.model_io import load_segments
from aneuhmm.population.consensus import cluster_samples
from aneuhmm.cli.common import add_output_args, add_verbose_args, add_version_args, setup_logging
from aneuhmm.cli.fit import sample_id_from_path

logger = logging.getLogger('aneuhmm')


def parse_args(argv=None):
    parser = argparse.ArgumentParser(
        description='Cluster cells by their copy-number segments',
        formatter_class=argparse.ArgumentDefaultsHelpFormatter
    )
    parser.add_argument('-i', '--input', nargs='+', required=True,
                        help='Segment tables (*.segments.tsv) written by aneuhmm-fit')
    parser.add_argument('--states', nargs='+', default=list(DEFAULT_STATES),
                        help='Declared state order of the models')
    parser.add_argument('--no-cluster', action='store_true',
                        help='Keep the input order instead of clustering')
    parser.add_argument('--unweighted', action='store_true',
                        help='Weight all consensus intervals equally')
    add_output_args(parser)
    add_verbose_args(parser)
    add_version_args(parser)
    return parser.parse_args(argv)


def main(argv=None):
    args = parse_args(argv)
    setup_logging(args.verbose)

    segments = {sample_id_from_path(p).replace('.segments', ''): load_segments(p)
                for p in args.input}
    logger.info(f"Loaded segments of {len(segments)} cells")

    result = cluster_samples(segments, args.states, weighted=not args.unweighted,
                             cluster=not args.no_cluster)

    os.makedirs(args.output, exist_ok=True)
    consensus = result.template.state_frame()
    consensus = consensus[list(result.template.intervals.columns) + result.order]
    consensus.to_csv(os.path.join(args.output, 'consensus.tsv'), sep='\t', index=False)

    order = pd.DataFrame({
        'sample': list(result.positions.keys()),
        'position': [result.positions[s] for s in result.positions],
    })
    order.to_csv(os.path.join(args.output, 'order.tsv'), sep='\t', index=False)
    result.distance.to_csv(os.path.join(args.output, 'distance.tsv'), sep='\t')

    if result.excluded:
        logger.info(f"Excluded (no segments): {', '.join(result.excluded)}")
    logger.info(f"Order: {', '.join(result.order)}")
    return 0


if __name__ == '__main__':
    sys.exit(main())
