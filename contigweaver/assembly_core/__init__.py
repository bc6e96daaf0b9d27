"""
Assembly Core module for ContigWeaver.

This module provides overlap-layout-consensus assembly of long reads:
- Assembly graph of read endpoints, overlap edges and embeddings
- Relationship construction from k-mer hit clusters
- Statistical score and cost of relationships
- Graph sanitization (chimeras, dangling ends, embedding hosts)
- Layout of paths and polished consensus per path
- Alignment based indel correction of reads
"""

from .data_structures import (
    AssemblyVertex,
    AssemblyEdge,
    AssemblyEmbedded,
    KmerHitCluster,
)

from .assembly_graph_module import (
    AssemblyGraph,
    GraphInvariantError,
    PathInconsistencyError,
    WorkerPoolTimeoutError,
)

from .hit_clustering_module import DiagonalHitClusterer, simulate_alignment
from .relationship_builder_module import RelationshipBuilder
from .score_cost_module import ScoreCostCalculator
from .graph_sanitizer_module import GraphSanitizer, SanitizerThresholds
from .layout_module import LayoutStrategy, SafeEdgeChainLayout, build_layout, create_layout_engine
from .consensus_module import ConsensusBuilder, KmerSeededAligner, PileupVariantCaller
from .indel_corrector_module import IndelErrorsCorrector

__all__ = [
    # Graph
    'AssemblyVertex',
    'AssemblyEdge',
    'AssemblyEmbedded',
    'KmerHitCluster',
    'AssemblyGraph',
    'GraphInvariantError',
    'PathInconsistencyError',
    'WorkerPoolTimeoutError',

    # Construction
    'DiagonalHitClusterer',
    'simulate_alignment',
    'RelationshipBuilder',

    # Scoring and sanitization
    'ScoreCostCalculator',
    'GraphSanitizer',
    'SanitizerThresholds',

    # Layout and consensus
    'LayoutStrategy',
    'SafeEdgeChainLayout',
    'build_layout',
    'create_layout_engine',
    'ConsensusBuilder',
    'KmerSeededAligner',
    'PileupVariantCaller',
    'IndelErrorsCorrector',
]
