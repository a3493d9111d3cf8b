"""Core data model, emission model and HMM algorithms."""

from aneuhmm.core.config import ConfigurationError, SegmentationConfig, DEFAULT_STATES
from aneuhmm.core.states import State, StateKind, StateSet, parse_states
from aneuhmm.core.data import (
    BivariateModel,
    Hotspot,
    Model,
    SCEEvent,
    Segment,
    SegmentationKind,
    validate_bins,
)
from aneuhmm.core.emission import EmissionModel, EmissionParams
from aneuhmm.core.hmm import CopyNumberHMM, HMMFitter, fit_hmm
from aneuhmm.core.model_io import load_model, save_model
