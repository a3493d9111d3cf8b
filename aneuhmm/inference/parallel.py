"""AneuHMM sample-parallel fitting and worker management."""

import logging
import os
import traceback
from concurrent.futures import ProcessPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional, Tuple

import pandas as pd
from tqdm import tqdm

from aneuhmm.core.config import SegmentationConfig
from aneuhmm.core.data import Model
from aneuhmm.inference.engine import fit_sample

logger = logging.getLogger(__name__)

# Globals for worker processes
_worker_config = None
_worker_bivariate = None


@dataclass
class SampleFailure:
    """A sample whose fit raised; other samples of the batch are unaffected."""
    sample_id: str
    error: str
    traceback: str = ''


@dataclass
class BatchResult:
    """Fitted models keyed by sample id, plus the failures."""
    models: Dict[str, Model] = field(default_factory=dict)
    failures: List[SampleFailure] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return len(self.failures) == 0


def _init_sample_worker(config: SegmentationConfig, bivariate: Optional[bool]):
    """Initialize worker process with the shared settings."""
    global _worker_config, _worker_bivariate
    # Disable numba caching to avoid file lock contention between workers
    os.environ['NUMBA_CACHE_DIR'] = ''
    _worker_config = config
    _worker_bivariate = bivariate


def _fit_one(args: Tuple[str, pd.DataFrame, Optional[pd.DataFrame]]):
    """
    Fit one sample inside a worker.

    Uses the globals set by _init_sample_worker. Returns (sample_id, model,
    None) on success or (sample_id, None, SampleFailure) on error.
    """
    sample_id, bins, fragments = args
    try:
        model = fit_sample(bins, _worker_config, id=sample_id,
                           bivariate=_worker_bivariate, fragments=fragments)
        return sample_id, model, None
    except Exception as e:
        return sample_id, None, SampleFailure(sample_id, f'{type(e).__name__}: {e}',
                                              traceback.format_exc())


def fit_samples(samples: Mapping[str, pd.DataFrame],
                config: Optional[SegmentationConfig] = None,
                n_workers: Optional[int] = None,
                bivariate: Optional[bool] = None,
                fragments: Optional[Mapping[str, pd.DataFrame]] = None,
                verbose: bool = False) -> BatchResult:
    """
    Fit many samples, one task per sample.

    The worker pool is created and torn down inside the call. A failing
    sample is recorded in BatchResult.failures and does not affect the
    others; EM trials of one sample run sequentially in its worker.

    Args:
        samples: bin tables keyed by sample id
        config: segmentation settings (defaults if None)
        n_workers: number of worker processes (default config.num_workers;
            <= 1 runs in-process)
        bivariate: force the univariate or bivariate model (default
            config.strandseq)
        fragments: optional read fragments keyed by sample id
        verbose: show a progress bar over samples

    Returns:
        BatchResult
    """
    global _worker_config, _worker_bivariate

    config = config if config is not None else SegmentationConfig()
    if n_workers is None:
        n_workers = config.num_workers
    fragments = fragments or {}
    work_items = [(str(sample_id), bins, fragments.get(sample_id))
                  for sample_id, bins in samples.items()]

    result = BatchResult()
    if len(work_items) == 0:
        return result

    def collect(item):
        sample_id, model, failure = item
        if failure is None:
            result.models[sample_id] = model
        else:
            logger.error(f"Sample {sample_id} failed: {failure.error}\n{failure.traceback}")
            result.failures.append(failure)

    n_workers = min(max(1, int(n_workers)), len(work_items))
    pbar = tqdm(total=len(work_items), desc="Samples", disable=not verbose)

    if n_workers <= 1:
        _worker_config, _worker_bivariate = config, bivariate
        try:
            for item in work_items:
                collect(_fit_one(item))
                pbar.update(1)
        finally:
            _worker_config, _worker_bivariate = None, None
            pbar.close()
        return result

    logger.info(f"Fitting {len(work_items)} samples on {n_workers} worker processes")
    try:
        with ProcessPoolExecutor(
            max_workers=n_workers,
            initializer=_init_sample_worker,
            initargs=(config, bivariate)
        ) as executor:
            futures = {executor.submit(_fit_one, item): item[0] for item in work_items}
            for future in as_completed(futures):
                sample_id = futures[future]
                try:
                    collect(future.result())
                except Exception as e:
                    collect((sample_id, None, SampleFailure(
                        sample_id, f'{type(e).__name__}: {e}', traceback.format_exc())))
                pbar.update(1)
    finally:
        pbar.close()

    return result
