"""
Segmentation settings.

A SegmentationConfig is built once (from keyword arguments or from the CLI)
and handed to every component. It is frozen; use replace() to derive a
modified copy.
"""

from dataclasses import dataclass, replace as _replace
from typing import Optional, Tuple


class ConfigurationError(ValueError):
    """Invalid states, parameters or empty input. Raised before any fitting."""


DEFAULT_STATES = ('zero-inflation',) + tuple(f'{i}-somy' for i in range(11))


@dataclass(frozen=True)
class SegmentationConfig:
    # HMM states
    states: Tuple[str, ...] = DEFAULT_STATES
    most_frequent_state: str = '2-somy'
    most_frequent_state_strandseq: str = '1-somy'

    # EM budget
    eps: float = 0.1
    max_time: Optional[float] = 60.0
    max_iter: int = 5000
    num_trials: int = 15
    seed: int = 0

    # Strand-seq / SCE calling
    strandseq: bool = False
    refine_sce: bool = False
    resolution: Tuple[int, ...] = (3, 6)
    min_segwidth: int = 2
    min_reads: int = 50

    # Hotspots (bw=None means 4x the bin size)
    bw: Optional[float] = None
    pval: float = 1e-8
    n_permutations: int = 100

    # Batch processing and cross-sample views
    num_workers: int = 1
    cluster: bool = True

    def __post_init__(self):
        object.__setattr__(self, 'states', tuple(self.states))
        object.__setattr__(self, 'resolution', tuple(int(r) for r in self.resolution))
        self.validate()

    def validate(self) -> None:
        if len(self.states) == 0:
            raise ConfigurationError("'states' must not be empty")
        if len(set(self.states)) != len(self.states):
            raise ConfigurationError(f"Duplicate labels in 'states': {list(self.states)}")
        from aneuhmm.core.states import StateSet
        StateSet(self.states, self.most_frequent_state)
        if self.strandseq:
            StateSet(self.states, self.most_frequent_state_strandseq)
        if self.eps <= 0:
            raise ConfigurationError("'eps' must be > 0")
        if self.max_iter < 1:
            raise ConfigurationError("'max_iter' must be >= 1")
        if self.num_trials < 1:
            raise ConfigurationError("'num_trials' must be >= 1")
        if any(r < 1 for r in self.resolution):
            raise ConfigurationError("'resolution' levels must be >= 1")
        if self.min_segwidth < 0 or self.min_reads < 0:
            raise ConfigurationError("'min_segwidth' and 'min_reads' must be >= 0")
        if self.bw is not None and self.bw <= 0:
            raise ConfigurationError("'bw' must be > 0")
        if not 0 < self.pval <= 1:
            raise ConfigurationError("'pval' must be in (0, 1]")

    def replace(self, **changes) -> 'SegmentationConfig':
        return _replace(self, **changes)

    def hotspot_bandwidth(self, binsize: float) -> float:
        """Bandwidth for hotspot detection; defaults to 4 bins."""
        return float(self.bw) if self.bw is not None else 4.0 * float(binsize)
