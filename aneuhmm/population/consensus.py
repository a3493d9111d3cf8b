"""
Consensus segmentation and sample clustering.

The segments of all samples are disjoined into a common set of intervals (the
union of every segment boundary). Each sample is represented by the state
index it assigns to each interval; samples are compared by a width-weighted
correlation distance and ordered by complete-linkage hierarchical clustering.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional, Sequence, Union

import numpy as np
import pandas as pd
from scipy.cluster.hierarchy import leaves_list, linkage
from scipy.spatial.distance import squareform

from aneuhmm.core.config import ConfigurationError
from aneuhmm.core.data import Model, SCEEvent, Segment, SegmentationKind
from aneuhmm.core.states import StateSet

logger = logging.getLogger(__name__)

# Value standing in for intervals a sample does not cover (one below the
# lowest state index)
MISSING_STATE = -1.0


@dataclass
class ConsensusTemplate:
    """
    Disjoint intervals shared by all samples.

    intervals: DataFrame (chromosome, start, end, meanstate)
    states: (n_samples, n_intervals) state index per sample, NaN if missing
    samples: sample ids, row order of `states`
    """
    intervals: pd.DataFrame
    states: np.ndarray
    samples: List[str]

    def state_frame(self) -> pd.DataFrame:
        """Intervals with one state-index column per sample."""
        df = self.intervals.copy()
        for i, sample in enumerate(self.samples):
            df[sample] = self.states[i]
        return df


@dataclass
class ClusterResult:
    order: List[str]
    positions: Dict[str, Optional[int]]
    distance: pd.DataFrame
    linkage: Optional[np.ndarray]
    template: ConsensusTemplate
    excluded: List[str] = field(default_factory=list)


def _state_index(states: Union[StateSet, Sequence[str]]) -> Dict[str, int]:
    labels = states.labels if isinstance(states, StateSet) else list(states)
    return {label: i for i, label in enumerate(labels)}


def consensus_template(per_sample_segments: Mapping[str, Sequence[Segment]],
                       states: Union[StateSet, Sequence[str]]) -> ConsensusTemplate:
    """
    Disjoin the segments of all samples into common intervals.

    Intervals covered by no sample are dropped. A sample's value for an
    interval is the state index (position in `states`) of its first
    overlapping segment.

    Raises:
        ConfigurationError: a segment carries a state not in `states`
    """
    index = _state_index(states)
    samples = [str(s) for s in per_sample_segments.keys()]
    seg_lists = [list(segs) for segs in per_sample_segments.values()]

    chrom_order: List[str] = []
    for segs in seg_lists:
        for seg in segs:
            if seg.chromosome not in chrom_order:
                chrom_order.append(seg.chromosome)

    interval_frames = []
    state_blocks = []
    for chrom in chrom_order:
        bounds = np.unique(np.array(
            [b for segs in seg_lists for seg in segs if seg.chromosome == chrom
             for b in (seg.start, seg.end)], dtype=np.int64))
        block = np.full((len(samples), len(bounds) - 1), np.nan)

        for row, segs in enumerate(seg_lists):
            for seg in segs:
                if seg.chromosome != chrom:
                    continue
                if seg.state not in index:
                    raise ConfigurationError(
                        f"Sample '{samples[row]}' has state '{seg.state}' not in {list(index)}"
                    )
                i0 = np.searchsorted(bounds, seg.start)
                i1 = np.searchsorted(bounds, seg.end)
                target = block[row, i0:i1]
                target[np.isnan(target)] = index[seg.state]

        covered = ~np.all(np.isnan(block), axis=0)
        interval_frames.append(pd.DataFrame({
            'chromosome': chrom,
            'start': bounds[:-1][covered],
            'end': bounds[1:][covered],
        }))
        state_blocks.append(block[:, covered])

    if interval_frames:
        intervals = pd.concat(interval_frames, ignore_index=True)
        matrix = np.concatenate(state_blocks, axis=1)
    else:
        intervals = pd.DataFrame(columns=['chromosome', 'start', 'end'])
        matrix = np.empty((len(samples), 0))

    with np.errstate(all='ignore'):
        meanstate = np.nanmean(matrix, axis=0) if matrix.shape[0] > 0 else np.empty(0)
    intervals['meanstate'] = meanstate
    return ConsensusTemplate(intervals=intervals, states=matrix, samples=samples)


def correlation_distance(matrix: np.ndarray, weights: Optional[np.ndarray] = None) -> np.ndarray:
    """
    1 - weighted Pearson correlation between the rows of `matrix`.

    Undefined correlations (constant rows) count as 0, i.e. distance 1.
    """
    n_samples, n_features = matrix.shape
    if weights is None:
        weights = np.ones(n_features)
    weights = np.asarray(weights, dtype=float)
    weights = weights / weights.sum()

    centered = matrix - (matrix @ weights)[:, np.newaxis]
    cov = (centered * weights[np.newaxis, :]) @ centered.T
    sd = np.sqrt(np.diag(cov))
    with np.errstate(divide='ignore', invalid='ignore'):
        corr = cov / np.outer(sd, sd)
    corr[~np.isfinite(corr)] = 0.0

    dist = np.clip(1.0 - corr, 0.0, 2.0)
    np.fill_diagonal(dist, 0.0)
    # Symmetric up to rounding
    return (dist + dist.T) / 2.0


def cluster_samples(per_sample_segments: Mapping[str, Sequence[Segment]],
                    states: Union[StateSet, Sequence[str]],
                    weighted: bool = True, cluster: bool = True) -> ClusterResult:
    """
    Order samples by the similarity of their copy-number profiles.

    Args:
        per_sample_segments: segments keyed by sample id
        states: declared state order (state index = position)
        weighted: weight intervals by their width
        cluster: cluster the samples; otherwise keep the input order

    Returns:
        ClusterResult. Samples without segments are listed in `excluded` and
        have position None.
    """
    excluded = [str(s) for s, segs in per_sample_segments.items() if len(segs) == 0]
    included = {str(s): list(segs) for s, segs in per_sample_segments.items() if len(segs) > 0}
    if excluded:
        logger.info(f"Excluding samples without segments: {excluded}")

    # Sorting makes the clustering independent of input order
    ids = sorted(included) if cluster else list(included)
    template = consensus_template({s: included[s] for s in ids}, states)

    if len(ids) == 0:
        return ClusterResult(order=[], positions={s: None for s in excluded},
                             distance=pd.DataFrame(), linkage=None,
                             template=template, excluded=excluded)

    matrix = np.where(np.isnan(template.states), MISSING_STATE, template.states)
    widths = (template.intervals['end'] - template.intervals['start']).to_numpy(dtype=float)
    dist = correlation_distance(matrix, widths if weighted else None)
    distance = pd.DataFrame(dist, index=ids, columns=ids)

    tree = None
    if cluster and len(ids) > 1:
        tree = linkage(squareform(dist, checks=False), method='complete')
        order = [ids[i] for i in leaves_list(tree)]
    else:
        order = list(ids)

    positions: Dict[str, Optional[int]] = {s: i for i, s in enumerate(order)}
    positions.update({s: None for s in excluded})
    return ClusterResult(order=order, positions=positions, distance=distance,
                         linkage=tree, template=template, excluded=excluded)


@dataclass
class PopulationSegments:
    """Segments (and SCE events) of many samples in clustered order."""
    segments: Dict[str, List[Segment]]
    clustering: ClusterResult
    sce: Optional[Dict[str, List[SCEEvent]]] = None


def get_segments(models: Union[Mapping[str, Model], Sequence[Model]], cluster: bool = True,
                 get_sce: bool = True, weighted: bool = True) -> PopulationSegments:
    """
    Collect the segments of many fitted models and order the samples.

    Args:
        models: fitted models, keyed by sample id or as a list (keyed by model.id)
        cluster: cluster samples by their profiles
        get_sce: also collect SCE events of bivariate models
        weighted: weight intervals by width in the distance

    Raises:
        ConfigurationError: the models do not share the same state set
    """
    if isinstance(models, Mapping):
        models = {str(s): m for s, m in models.items()}
    else:
        models = {m.id: m for m in models}
    if len(models) == 0:
        raise ConfigurationError("No models given.")

    state_sets = {m.states for m in models.values()}
    if len(state_sets) > 1:
        raise ConfigurationError("All models must share the same state set.")
    states = next(iter(state_sets))

    per_sample = {s: m.segments() for s, m in models.items()}
    result = cluster_samples(per_sample, states, weighted=weighted, cluster=cluster)

    ordered = {s: per_sample[s] for s in result.order}
    sce = None
    if get_sce:
        sce = {s: models[s].sce_events() for s in result.order
               if models[s].kind == SegmentationKind.BIVARIATE}
    return PopulationSegments(segments=ordered, clustering=result, sce=sce)
