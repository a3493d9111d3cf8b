"""
AneuHMM model I/O module

Models are saved as JSON (human-readable, portable): parameters, mixture
weights, fit diagnostics, segments and, for Strand-seq models, the per-strand
models and SCE events. Segment, SCE and hotspot tables are written as
tab-separated files.
"""

import json
import os
import warnings
from dataclasses import asdict
from typing import List, Union

import numpy as np
import pandas as pd

from aneuhmm.core.data import (
    BivariateModel,
    Hotspot,
    Model,
    SCEEvent,
    Segment,
    SegmentationKind,
    events_to_frame,
    frame_to_events,
    frame_to_segments,
    hotspots_to_frame,
    segments_to_frame,
)
from aneuhmm.core.emission import EmissionParams
from aneuhmm.core.states import StateSet

FORMAT_VERSION = '1.0'


# =============================================================================
# Dictionary conversion
# =============================================================================

def model_to_dict(model: Model) -> dict:
    """Serialize a Model or BivariateModel into JSON-compatible types."""
    data = {
        'model_type': 'AneuHMM_bivariate' if model.kind == SegmentationKind.BIVARIATE else 'AneuHMM',
        'version': FORMAT_VERSION,
        'id': model.id,
        'states': list(model.states.labels),
        'most_frequent_state': model.states.most_frequent,
        'startprob': np.asarray(model.startprob).tolist(),
        'transmat': np.asarray(model.transition).tolist(),
        'emission': model.emission.to_dict() if model.emission is not None else None,
        'weights': np.asarray(model.weights).tolist(),
        'loglik': float(model.loglik),
        'converged': bool(model.converged),
        'n_iter': int(model.n_iter),
        'trial': int(model.trial),
        'loglik_history': [float(x) for x in model.loglik_history],
        'segments': [asdict(s) for s in model.segments()],
    }
    if model.kind == SegmentationKind.BIVARIATE:
        data['minus'] = model_to_dict(model.minus)
        data['plus'] = model_to_dict(model.plus)
        data['joint_pairs'] = [[int(i), int(j)] for i, j in model.joint_pairs]
        data['sce'] = [asdict(e) for e in model.sce_events()]
    return data


def model_from_dict(data: dict) -> Model:
    """Restore a Model or BivariateModel from model_to_dict output."""
    model_type = data.get('model_type')
    if model_type not in ('AneuHMM', 'AneuHMM_bivariate'):
        raise ValueError(f"Not an AneuHMM model (model_type={model_type!r})")

    emission = data.get('emission')
    common = dict(
        id=str(data['id']),
        states=StateSet(data['states'], data.get('most_frequent_state')),
        startprob=np.array(data['startprob'], dtype=float),
        transition=np.array(data['transmat'], dtype=float),
        emission=EmissionParams.from_dict(emission) if emission is not None else None,
        weights=np.array(data['weights'], dtype=float),
        loglik=float(data['loglik']),
        converged=bool(data['converged']),
        n_iter=int(data.get('n_iter', 0)),
        trial=int(data.get('trial', 0)),
        loglik_history=list(data.get('loglik_history', [])),
        segment_list=[Segment(**s) for s in data.get('segments', [])],
    )

    if model_type == 'AneuHMM':
        return Model(**common)

    return BivariateModel(
        **common,
        minus=model_from_dict(data['minus']),
        plus=model_from_dict(data['plus']),
        joint_pairs=[(int(i), int(j)) for i, j in data['joint_pairs']],
        sce=[SCEEvent(**e) for e in data.get('sce', [])],
    )


# =============================================================================
# Models
# =============================================================================

def save_model(model: Model, filepath: str) -> str:
    """
    Save model to file in JSON format.

    If the filepath does not end in .json, the extension is replaced with .json
    and a warning is issued.

    Returns:
        The path that was written
    """
    if not filepath.endswith('.json'):
        old_path = filepath
        base, _ = os.path.splitext(filepath)
        filepath = base + '.json'
        warnings.warn(
            f"Only JSON format is supported for saving. "
            f"Saving to '{filepath}' instead of '{old_path}'."
        )

    with open(filepath, 'w') as f:
        json.dump(model_to_dict(model), f, indent=2)
    return filepath


def load_model(filepath: str) -> Model:
    """Load a model saved by save_model()."""
    with open(filepath, 'r') as f:
        data = json.load(f)
    return model_from_dict(data)


# =============================================================================
# Tables
# =============================================================================

def _write_tsv(df: pd.DataFrame, filepath: str) -> str:
    df.to_csv(filepath, sep='\t', index=False)
    return filepath


def save_segments(segments: List[Segment], filepath: str) -> str:
    return _write_tsv(segments_to_frame(segments), filepath)


def load_segments(filepath: str) -> List[Segment]:
    return frame_to_segments(pd.read_csv(filepath, sep='\t', dtype={'chromosome': str},
                                         float_precision='round_trip'))


def save_sce(events: List[SCEEvent], filepath: str) -> str:
    return _write_tsv(events_to_frame(events), filepath)


def load_sce(filepath: str) -> List[SCEEvent]:
    return frame_to_events(pd.read_csv(filepath, sep='\t', dtype={'chromosome': str},
                                         float_precision='round_trip'))


def save_hotspots(hotspots: List[Hotspot], filepath: str) -> str:
    return _write_tsv(hotspots_to_frame(hotspots), filepath)


def load_bins(filepath: str) -> pd.DataFrame:
    """Read a tab-separated bin table (chromosome, start, end, counts...)."""
    return pd.read_csv(filepath, sep='\t', dtype={'chromosome': str})


def load_fragments(filepath: Union[str, os.PathLike]) -> pd.DataFrame:
    """Read tab-separated read fragments (chromosome, start, end, strand)."""
    return pd.read_csv(filepath, sep='\t', dtype={'chromosome': str, 'strand': str})
