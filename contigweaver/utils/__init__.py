"""
Utilities module for ContigWeaver.

This module provides core utilities for the assembly pipeline:
- Pipeline orchestration
- Empirical distributions and Normal fits used in scoring
- Sequence helpers (k-mers, reverse complement)
"""

from .distribution import Distribution, NormalFit, n_statistics, phred_score
from .sequence_utils import extract_kmers, extract_unique_kmers, reverse_complement

__all__ = [
    # Distributions
    "Distribution",
    "NormalFit",
    "n_statistics",
    "phred_score",
    # Sequences
    "extract_kmers",
    "extract_unique_kmers",
    "reverse_complement",
]
