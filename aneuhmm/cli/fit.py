#!/usr/bin/env python3
"""
AneuHMM fit CLI entry point.
Fits copy-number HMMs to binned read counts, one model per input table.
"""

import argparse
import logging
import os
import sys

from aneuhmm.core.model_io import load_bins, load_fragments, save_model, save_sce, save_segments
from aneuhmm.core.data import SegmentationKind
from aneuhmm.inference.parallel import fit_samples
from aneuhmm.cli.common import (
    add_em_args, add_output_args, add_parallel_args, add_sce_args,
    add_state_args, add_verbose_args, add_version_args,
    config_from_args, setup_logging,
)

logger = logging.getLogger('aneuhmm')


def sample_id_from_path(path: str) -> str:
    name = os.path.basename(path)
    for ext in ('.gz', '.tsv', '.txt', '.bins'):
        if name.endswith(ext):
            name = name[:-len(ext)]
    return name


def parse_args(argv=None):
    parser = argparse.ArgumentParser(
        description='Fit copy-number HMMs to binned read counts',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog='''
Input bin tables are tab-separated with columns
  chromosome, start, end, counts            (optionally counts_corrected)
  chromosome, start, end, mcounts, pcounts  (--strandseq)

For every input <name>.tsv the output directory receives
  <name>.model.json, <name>.segments.tsv and, with --strandseq, <name>.sce.tsv
'''
    )
    parser.add_argument('-i', '--input', nargs='+', required=True,
                        help='Bin table(s), tab-separated')
    parser.add_argument('--fragments', nargs='+', default=None,
                        help='Read fragment tables for SCE refinement, one per input '
                             '(chromosome, start, end, strand)')
    add_output_args(parser)
    add_state_args(parser)
    add_em_args(parser)
    add_sce_args(parser)
    add_parallel_args(parser)
    add_verbose_args(parser)
    add_version_args(parser)
    return parser.parse_args(argv)


def main(argv=None):
    args = parse_args(argv)
    setup_logging(args.verbose)
    config = config_from_args(args)

    if args.fragments is not None and len(args.fragments) != len(args.input):
        logger.error("--fragments needs one table per --input table")
        return 2

    os.makedirs(args.output, exist_ok=True)

    samples = {}
    fragments = {}
    for i, path in enumerate(args.input):
        sample_id = sample_id_from_path(path)
        samples[sample_id] = load_bins(path)
        if args.fragments is not None:
            fragments[sample_id] = load_fragments(args.fragments[i])
    logger.info(f"Loaded {len(samples)} bin tables")

    result = fit_samples(samples, config, n_workers=config.num_workers,
                         fragments=fragments, verbose=args.verbose)

    for sample_id, model in result.models.items():
        prefix = os.path.join(args.output, sample_id)
        save_model(model, f'{prefix}.model.json')
        save_segments(model.segments(), f'{prefix}.segments.tsv')
        if model.kind == SegmentationKind.BIVARIATE:
            save_sce(model.sce_events(), f'{prefix}.sce.tsv')
        status = 'converged' if model.converged else 'NOT converged'
        logger.info(f"  {sample_id}: loglik={model.loglik:.2f} ({status}), "
                    f"{len(model.segments())} segments")
        weights = model.weights_by_state()
        logger.debug("    weights: " + ", ".join(
            f"{label}={w:.3f}" for label, w in weights.items() if w > 0))

    for failure in result.failures:
        logger.error(f"  {failure.sample_id}: FAILED ({failure.error})")

    logger.info(f"Done: {len(result.models)} fitted, {len(result.failures)} failed")
    return 0 if result.ok else 1


if __name__ == '__main__':
    sys.exit(main())
