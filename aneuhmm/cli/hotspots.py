#!/usr/bin/env python3
"""
AneuHMM hotspots CLI entry point.
Finds regions where SCE events of many cells cluster.
"""

import argparse
import logging
import os
import sys

import pandas as pd

from aneuhmm.core.model_io import load_sce, save_hotspots
from aneuhmm.population.hotspots import detect_hotspots
from aneuhmm.cli.common import (
    add_hotspot_args, add_verbose_args, add_version_args, config_from_args, setup_logging,
)
from aneuhmm.cli.fit import sample_id_from_path

logger = logging.getLogger('aneuhmm')


def parse_args(argv=None):
    parser = argparse.ArgumentParser(
        description='Detect SCE hotspots across cells',
        formatter_class=argparse.ArgumentDefaultsHelpFormatter
    )
    parser.add_argument('-i', '--input', nargs='+', required=True,
                        help='SCE tables (*.sce.tsv) written by aneuhmm-fit')
    parser.add_argument('-o', '--output', required=True,
                        help='Output hotspot table (.tsv)')
    parser.add_argument('--binsize', type=float, default=None,
                        help='Bin size in bp, used for the default bandwidth (4x binsize)')
    parser.add_argument('--chrom-lengths', default=None,
                        help='Tab-separated chromosome lengths (chromosome, length)')
    add_hotspot_args(parser)
    add_verbose_args(parser)
    add_version_args(parser)
    return parser.parse_args(argv)


def main(argv=None):
    args = parse_args(argv)
    setup_logging(args.verbose)
    config = config_from_args(args)

    events = {sample_id_from_path(p).replace('.sce', ''): load_sce(p) for p in args.input}
    n_events = sum(len(e) for e in events.values())
    logger.info(f"Loaded {n_events} SCE events from {len(events)} cells")

    if config.bw is None and args.binsize is None:
        logger.error("Give --bw or --binsize")
        return 2
    bw = config.hotspot_bandwidth(args.binsize)

    chrom_lengths = None
    if args.chrom_lengths:
        df = pd.read_csv(args.chrom_lengths, sep='\t', header=None,
                         names=['chromosome', 'length'], dtype={'chromosome': str})
        chrom_lengths = dict(zip(df['chromosome'], df['length'].astype(int)))

    hotspots = detect_hotspots(events, bw=bw, pval=config.pval,
                               chrom_lengths=chrom_lengths,
                               n_permutations=config.n_permutations, seed=config.seed)

    out_dir = os.path.dirname(args.output)
    if out_dir:
        os.makedirs(out_dir, exist_ok=True)
    save_hotspots(hotspots, args.output)
    logger.info(f"{len(hotspots)} hotspots written to {args.output}")
    return 0


if __name__ == '__main__':
    sys.exit(main())
