#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
ContigWeaver v0.1.0

Default clustering primitive for raw k-mer hits.

Hits between a query and a subject are grouped by diagonal
(subject position - query position). Hits of a true overlap share a
diagonal up to the indels accumulated along the overlap, so a band of
allowed diagonal deviation proportional to the query length separates
the overlap from spurious repeat hits.

Author: ContigWeaver Development Team
License: Dual License (Academic/Commercial) - See LICENSE_ACADEMIC.md and LICENSE_COMMERCIAL.md
"""

from collections import Counter
from typing import Iterable, List, Tuple
import logging

import numpy as np

from .data_structures import KmerHit, KmerHitCluster

logger = logging.getLogger(__name__)


class DiagonalHitClusterer:
    """
    Group k-mer hits into coordinate-consistent clusters.

    Args:
        kmer_length: Length of the k-mers behind the hits
        max_diagonal_deviation: Band width as a fraction of the query length
        min_band: Minimum band width in bp
    """

    def __init__(self, kmer_length: int = 15, max_diagonal_deviation: float = 0.1,
                 min_band: int = 50):
        self.kmer_length = kmer_length
        self.max_diagonal_deviation = max_diagonal_deviation
        self.min_band = min_band

    def band_width(self, query_length: int) -> int:
        return max(self.min_band, int(self.max_diagonal_deviation * query_length))

    def cluster_hits(self, query_length: int, subject_idx: int, subject_length: int,
                     hits: Iterable[KmerHit]) -> List[KmerHitCluster]:
        """
        Cluster raw hits against one subject.

        Duplicated hits are ignored. Clusters are returned sorted by number
        of distinct query k-mers, largest first.
        """
        unique_hits = sorted(set(hits), key=lambda h: (h[1] - h[0], h[0]))
        if not unique_hits:
            return []
        band = self.band_width(query_length)

        groups: List[List[KmerHit]] = []
        current: List[KmerHit] = [unique_hits[0]]
        for hit in unique_hits[1:]:
            first = current[0]
            if (hit[1] - hit[0]) - (first[1] - first[0]) > band:
                groups.append(current)
                current = [hit]
            else:
                current.append(hit)
        groups.append(current)

        clusters = [self._summarize(query_length, subject_idx, subject_length, group)
                    for group in groups]
        clusters.sort(key=lambda c: c.num_different_kmers, reverse=True)
        return clusters

    def _summarize(self, query_length: int, subject_idx: int, subject_length: int,
                   group: List[KmerHit]) -> KmerHitCluster:
        k = self.kmer_length
        diagonals = np.array([s - q for q, s in group])
        median_diagonal = int(np.median(diagonals))

        # One hit per query position, the one closest to the median diagonal
        multiplicity = Counter(q for q, _ in group)
        best_by_query = {}
        for q, s in group:
            current = best_by_query.get(q)
            if current is None or abs(s - q - median_diagonal) < abs(current - q - median_diagonal):
                best_by_query[q] = s
        selected = sorted(best_by_query.items())
        weighted_count = sum(1.0 / multiplicity[q] for q, _ in selected)

        subject_start = median_diagonal
        subject_end = median_diagonal + query_length
        query_start = max(0, -subject_start)
        query_end = min(query_length, subject_length - subject_start)

        query_positions = [q for q, _ in selected]
        subject_positions = [s for _, s in selected]
        return KmerHitCluster(
            subject_idx=subject_idx,
            query_length=query_length,
            subject_length=subject_length,
            subject_predicted_start=subject_start,
            subject_predicted_end=subject_end,
            query_predicted_start=query_start,
            query_predicted_end=max(query_start, query_end),
            query_evidence_start=min(query_positions),
            query_evidence_end=min(query_length, max(query_positions) + k),
            subject_evidence_start=max(0, min(subject_positions)),
            subject_evidence_end=min(subject_length, max(subject_positions) + k),
            num_different_kmers=len(selected),
            weighted_count=weighted_count,
            predicted_overlap_sd=float(np.std([s - q for q, s in selected])),
            hits=selected,
        )


def simulate_alignment(cluster: KmerHitCluster, kmer_length: int) -> Tuple[int, int, int]:
    """
    Alignment statistics estimated from the hits of a cluster.

    Returns:
        (coverage, weighted_coverage, mismatches) where coverage is the
        number of query bases covered by shared k-mers, weighted coverage
        scales it by the uniqueness of the hits, and mismatches counts
        diagonal shifts between consecutive hits plus uncovered gaps.
    """
    hits = sorted(cluster.hits)
    if not hits:
        return 0, 0, 0
    coverage = 0
    mismatches = 0
    covered_end = -1
    previous = None
    for q, s in hits:
        start = max(q, covered_end)
        end = q + kmer_length
        if end > start:
            coverage += end - start
        if previous is not None:
            if q > covered_end:
                mismatches += 1
            mismatches += abs((s - q) - (previous[1] - previous[0]))
        covered_end = max(covered_end, end)
        previous = (q, s)
    ratio = cluster.weighted_count / max(1, cluster.num_different_kmers)
    weighted_coverage = int(round(coverage * ratio))
    return coverage, weighted_coverage, mismatches


__all__ = [
    'DiagonalHitClusterer',
    'simulate_alignment',
]

# ContigWeaver v0.1.0
# Any usage is subject to this software's license.
