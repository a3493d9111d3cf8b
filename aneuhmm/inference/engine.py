"""AneuHMM per-sample segmentation pipeline."""

import logging
from typing import Optional

import pandas as pd

from aneuhmm.core.config import SegmentationConfig
from aneuhmm.core.data import Model
from aneuhmm.core.hmm import HMMFitter
from aneuhmm.inference.bivariate import fit_bivariate
from aneuhmm.inference.sce import get_sce_coordinates

logger = logging.getLogger(__name__)


def is_strandseq(bins: pd.DataFrame) -> bool:
    """True if a bin table carries per-strand counts."""
    return 'mcounts' in bins.columns and 'pcounts' in bins.columns


def fit_sample(bins: pd.DataFrame, config: Optional[SegmentationConfig] = None,
               id: Optional[str] = None, bivariate: Optional[bool] = None,
               fragments: Optional[pd.DataFrame] = None,
               verbose: bool = False) -> Model:
    """
    Segment one sample.

    Univariate samples are fitted with HMMFitter. Strand-seq samples
    (bivariate=True, or config.strandseq) get the joint two-strand model,
    after which SCE events narrower than config.min_segwidth are dropped and,
    with config.refine_sce and read fragments, the remaining events are
    refined.

    Args:
        bins: bin table of the sample
        config: segmentation settings (defaults if None)
        id: sample identifier
        bivariate: force the univariate (False) or bivariate (True) model;
            by default config.strandseq, or bivariate for tables that only
            carry mcounts/pcounts
        fragments: reads of the sample for SCE refinement
        verbose: show progress bars

    Returns:
        Model or BivariateModel
    """
    config = config if config is not None else SegmentationConfig()
    if bivariate is None:
        bivariate = config.strandseq
        if (not bivariate and bins is not None and 'counts' not in bins.columns
                and is_strandseq(bins)):
            logger.info(f"{id}: bins carry only strand counts, using the bivariate model")
            bivariate = True

    if not bivariate:
        return HMMFitter(config, verbose=verbose).fit(bins, id=id)

    model = fit_bivariate(
        bins,
        states=config.states,
        most_frequent_state=config.most_frequent_state_strandseq,
        eps=config.eps,
        max_iter=config.max_iter,
        max_time=config.max_time,
        num_trials=config.num_trials,
        seed=config.seed,
        id=id,
        verbose=verbose,
    )

    if config.refine_sce and fragments is None:
        logger.warning(f"{model.id}: refine_sce is set but no read fragments were given; "
                       f"SCE events keep bin resolution")
    model.sce = get_sce_coordinates(
        model,
        resolution=config.resolution,
        min_segwidth=config.min_segwidth,
        fragments=fragments if config.refine_sce else None,
        min_reads=config.min_reads,
    )
    logger.info(f"{model.id}: {len(model.sce)} SCE events")
    return model
