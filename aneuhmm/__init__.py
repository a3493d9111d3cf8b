"""
AneuHMM - Hidden Markov Model toolkit for copy-number and sister-chromatid
exchange calling from binned single-cell sequencing data.
"""

__version__ = "1.0.0"

from aneuhmm.core.config import ConfigurationError, SegmentationConfig
from aneuhmm.core.hmm import HMMFitter, fit_hmm
from aneuhmm.core.model_io import load_model, save_model
