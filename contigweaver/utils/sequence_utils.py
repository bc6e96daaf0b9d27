#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
ContigWeaver v0.1.0

Sequence utility functions for ContigWeaver.

Provides the k-mer and strand helpers shared by the aligner, the hit
clusterer and the consensus builder.

Author: ContigWeaver Development Team
License: Dual License (Academic/Commercial) - See LICENSE_ACADEMIC.md and LICENSE_COMMERCIAL.md
"""

from typing import Dict, List, Optional


_COMPLEMENT = str.maketrans('ACGTNacgtn', 'TGCANtgcan')


def extract_kmers(sequence: str, k: int) -> List[str]:
    """
    Extract all k-mers from a sequence.

    Args:
        sequence: DNA sequence string
        k: K-mer size

    Returns:
        List of k-mer strings

    Example:
        >>> extract_kmers("ATCGATCG", 3)
        ['ATC', 'TCG', 'CGA', 'GAT', 'ATC', 'TCG']
    """
    if k > len(sequence):
        return []

    sequence = sequence.upper()
    return [sequence[i:i + k] for i in range(len(sequence) - k + 1)]


def extract_unique_kmers(
    sequence: str,
    k: int,
    start: int = 0,
    end: Optional[int] = None
) -> Dict[str, int]:
    """
    Map each k-mer occurring exactly once in sequence[start:end] to its
    absolute start position in *sequence*.

    K-mers containing N are ignored.

    Example:
        >>> extract_unique_kmers("ACGTACGTTT", 4)
        {'CGTA': 1, 'GTAC': 2, 'TACG': 3, 'CGTT': 5, 'GTTT': 6}
    """
    if end is None:
        end = len(sequence)
    start = max(0, start)
    end = min(len(sequence), end)

    positions: Dict[str, int] = {}
    repeated = set()
    seq_upper = sequence.upper()
    for i in range(start, end - k + 1):
        kmer = seq_upper[i:i + k]
        if 'N' in kmer or kmer in repeated:
            continue
        if kmer in positions:
            del positions[kmer]
            repeated.add(kmer)
        else:
            positions[kmer] = i
    return positions


def reverse_complement(sequence: str) -> str:
    """
    Generate reverse complement of DNA sequence.

    Args:
        sequence: DNA sequence string

    Returns:
        Reverse complement sequence

    Example:
        >>> reverse_complement("ATCG")
        'CGAT'
    """
    return sequence.translate(_COMPLEMENT)[::-1]


__all__ = [
    'extract_kmers',
    'extract_unique_kmers',
    'reverse_complement',
]

# ContigWeaver v0.1.0
# Any usage is subject to this software's license.
