"""Cross-sample analyses: SCE hotspots and consensus clustering."""

from aneuhmm.population.hotspots import detect_hotspots
from aneuhmm.population.consensus import (
    ClusterResult,
    ConsensusTemplate,
    PopulationSegments,
    cluster_samples,
    consensus_template,
    get_segments,
)
