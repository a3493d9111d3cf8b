"""Decoding, Strand-seq segmentation, SCE calling and batch fitting."""

from aneuhmm.inference.decoder import decode, segments_from_path, viterbi_path
from aneuhmm.inference.bivariate import fit_bivariate, find_breakpoints
from aneuhmm.inference.sce import get_sce_coordinates, refine_breakpoint
from aneuhmm.inference.engine import fit_sample
from aneuhmm.inference.parallel import BatchResult, SampleFailure, fit_samples

__all__ = [
    'decode',
    'segments_from_path',
    'viterbi_path',
    'fit_bivariate',
    'find_breakpoints',
    'get_sce_coordinates',
    'refine_breakpoint',
    'fit_sample',
    'BatchResult',
    'SampleFailure',
    'fit_samples',
]
