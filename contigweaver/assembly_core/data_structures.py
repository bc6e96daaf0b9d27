#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
ContigWeaver v0.1.0

Assembly graph data structures.

Vertices are the two ends of a read, edges are overlaps between ends of
different reads (plus one trivial edge joining the two ends of the same
read), embeddings record a read contained in another one, and hit clusters
carry the k-mer evidence a relationship is built from.

Coordinates are zero based. Evidence coordinates stored on edges and
embeddings are always expressed on the forward strand of the read they
refer to.

Author: ContigWeaver Development Team
License: Dual License (Academic/Commercial) - See LICENSE_ACADEMIC.md and LICENSE_COMMERCIAL.md
"""

from dataclasses import dataclass, field
from typing import List, Optional, Tuple
import logging

logger = logging.getLogger(__name__)

# (query_position, subject_position)
KmerHit = Tuple[int, int]


def vertex_unique_id(sequence_index: int, start: bool) -> int:
    """Dense, deterministic id of a read end: 2i for the start, 2i+1 for the end."""
    return 2 * sequence_index + (0 if start else 1)


# ============================================================================
# Vertices
# ============================================================================

@dataclass
class AssemblyVertex:
    """
    One end of a read.

    Attributes:
        sequence_index: Index of the read in the sequence collection
        start: True for the start (5') end, False for the end (3') end
        sequence_length: Cached length of the read
        degree_unfiltered: Degree observed before any filtering
    """
    sequence_index: int
    start: bool
    sequence_length: int
    degree_unfiltered: int = 0

    @property
    def unique_id(self) -> int:
        return vertex_unique_id(self.sequence_index, self.start)

    def __hash__(self):
        return hash(self.unique_id)

    def __eq__(self, other):
        if not isinstance(other, AssemblyVertex):
            return False
        return self.unique_id == other.unique_id

    def __str__(self) -> str:
        return f"{self.sequence_index}{'S' if self.start else 'E'}"


# ============================================================================
# Relationships
# ============================================================================

class RelationshipMetrics:
    """Metrics shared by edges and embeddings, derived from stored counts."""

    overlap: int
    mismatches: int

    @property
    def indels_per_kbp(self) -> float:
        """Estimated indels (from the mismatch estimate) per kbp of overlap."""
        if self.overlap <= 0:
            return 0.0
        return 1000.0 * self.mismatches / self.overlap


@dataclass(eq=False)
class AssemblyEdge(RelationshipMetrics):
    """
    Overlap between two read ends, or the trivial edge joining both ends of
    the same read.

    Edges are stored once in the graph arena and indexed from the adjacency
    lists of both endpoints. Equality is identity.
    """
    vertex1: AssemblyVertex
    vertex2: AssemblyVertex
    overlap: int
    num_shared_kmers: int = 0
    coverage_shared_kmers: int = 0
    weighted_coverage_shared_kmers: int = 0
    mismatches: int = 0
    overlap_standard_deviation: float = 0.0
    vertex1_evidence_start: int = 0
    vertex1_evidence_end: int = 0
    vertex2_evidence_start: int = 0
    vertex2_evidence_end: int = 0
    score: int = 0
    cost: int = 0
    layout_edge: bool = False
    edge_id: int = -1

    def is_same_sequence_edge(self) -> bool:
        return self.vertex1.sequence_index == self.vertex2.sequence_index

    def connecting_vertex(self, vertex: AssemblyVertex) -> Optional[AssemblyVertex]:
        """Vertex at the other side of the edge, None if *vertex* is not an endpoint."""
        if self.vertex1 == vertex:
            return self.vertex2
        if self.vertex2 == vertex:
            return self.vertex1
        return None

    def shared_vertex(self, other: 'AssemblyEdge') -> Optional[AssemblyVertex]:
        """Endpoint shared with *other*, None if the edges are not adjacent."""
        if self.vertex1 == other.vertex1 or self.vertex1 == other.vertex2:
            return self.vertex1
        if self.vertex2 == other.vertex1 or self.vertex2 == other.vertex2:
            return self.vertex2
        return None

    def evidence_limits(self, vertex: AssemblyVertex) -> Tuple[int, int]:
        """Evidence interval on the read of *vertex*."""
        if self.vertex1 == vertex:
            return self.vertex1_evidence_start, self.vertex1_evidence_end
        if self.vertex2 == vertex:
            return self.vertex2_evidence_start, self.vertex2_evidence_end
        raise ValueError(f"Vertex {vertex} is not an endpoint of edge {self}")

    @property
    def evidence_proportion(self) -> float:
        """Fraction of the overlap covered by k-mer evidence, averaged over both sides."""
        if self.overlap <= 0:
            return 0.0
        span1 = self.vertex1_evidence_end - self.vertex1_evidence_start
        span2 = self.vertex2_evidence_end - self.vertex2_evidence_start
        return (span1 + span2) / (2.0 * self.overlap)

    @property
    def length_sum(self) -> int:
        return self.vertex1.sequence_length + self.vertex2.sequence_length

    def __str__(self) -> str:
        return (f"{self.vertex1}-{self.vertex2} overlap={self.overlap} "
                f"wcsk={self.weighted_coverage_shared_kmers} "
                f"ev={self.evidence_proportion:.2f} ikbp={self.indels_per_kbp:.1f} "
                f"score={self.score} cost={self.cost}")


@dataclass(eq=False)
class AssemblyEmbedded(RelationshipMetrics):
    """
    Read *sequence_id* contained in read *host_id* at [host_start, host_end).

    reverse is True when the embedded read aligns to the reverse strand of
    the host.
    """
    sequence_id: int
    sequence_length: int
    host_id: int
    host_length: int
    host_start: int
    host_end: int
    reverse: bool = False
    host_evidence_start: int = 0
    host_evidence_end: int = 0
    num_shared_kmers: int = 0
    coverage_shared_kmers: int = 0
    weighted_coverage_shared_kmers: int = 0
    mismatches: int = 0
    score: int = 0
    cost: int = 0

    @property
    def overlap(self) -> int:
        return self.sequence_length

    @property
    def evidence_proportion(self) -> float:
        span = self.host_end - self.host_start
        if span <= 0:
            return 0.0
        return (self.host_evidence_end - self.host_evidence_start) / span

    @property
    def length_sum(self) -> int:
        return self.sequence_length + self.host_length

    def __str__(self) -> str:
        return (f"{self.sequence_id} in {self.host_id}[{self.host_start}-{self.host_end}] "
                f"{'-' if self.reverse else '+'} ev={self.evidence_proportion:.2f} "
                f"ikbp={self.indels_per_kbp:.1f} score={self.score} cost={self.cost}")


# ============================================================================
# K-mer hit clusters
# ============================================================================

@dataclass
class KmerHitCluster:
    """
    Coordinate-consistent group of k-mer hits between a query and a subject.

    Query coordinates refer to the query in the orientation it was searched
    with; subject coordinates refer to the forward subject.

    Attributes:
        subject_idx: Index of the subject read
        query_length / subject_length: Read lengths
        subject_predicted_start / end: Predicted query span projected on the
            subject (may fall outside [0, subject_length])
        query_predicted_start / end: Part of the query predicted to overlap
        query_evidence_start / end, subject_evidence_start / end: Span
            actually covered by hits
        num_different_kmers: Distinct query positions with a hit
        weighted_count: Hits weighted down by their multiplicity
        predicted_overlap_sd: Spread of the per-hit overlap predictions
        hits: Hits sorted by query position, one per query position
    """
    subject_idx: int
    query_length: int
    subject_length: int
    subject_predicted_start: int
    subject_predicted_end: int
    query_predicted_start: int
    query_predicted_end: int
    query_evidence_start: int
    query_evidence_end: int
    subject_evidence_start: int
    subject_evidence_end: int
    num_different_kmers: int
    weighted_count: float
    predicted_overlap_sd: float = 0.0
    self_hits_count_query: int = 0
    hits: List[KmerHit] = field(default_factory=list)

    @property
    def predicted_overlap(self) -> int:
        return self.query_predicted_end - self.query_predicted_start

    def dispose_hits(self):
        """Release the raw hits once the cluster is summarized."""
        self.hits = []


__all__ = [
    'KmerHit',
    'vertex_unique_id',
    'AssemblyVertex',
    'RelationshipMetrics',
    'AssemblyEdge',
    'AssemblyEmbedded',
    'KmerHitCluster',
]

# ContigWeaver v0.1.0
# Any usage is subject to this software's license.
