#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
ContigWeaver v0.1.0

Graph sanitization: repetitive vertices, safe edges, chimeric reads and
score annotation.

Order of operations in update_scores:
    1. Snapshot vertex degrees
    2. Predict repetitive vertices from the degree distribution
    3. Select safe edges and fit metric distributions on them
    4. Remove reads whose typical IKBP is far above the global one
    5. Annotate score and cost of every edge and embedding

Chimera removal is invoked separately by callers before layout.

Author: ContigWeaver Development Team
License: Dual License (Academic/Commercial) - See LICENSE_ACADEMIC.md and LICENSE_COMMERCIAL.md
"""

from dataclasses import dataclass
from typing import Dict, List, Optional, Set, Tuple
import logging

from .assembly_graph_module import AssemblyGraph
from .data_structures import AssemblyEdge, AssemblyEmbedded, AssemblyVertex
from .score_cost_module import ScoreCostCalculator
from ..utils.distribution import Distribution, NormalFit

logger = logging.getLogger(__name__)


@dataclass
class SanitizerThresholds:
    """
    Calibration constants of the sanitizer.

    Attributes:
        unknown_flank: Unevidenced bp at one end of a relationship that
            marks it as supporting only one flank of the host
        tight_bound: Maximum unevidenced bp at both ends of a crossing relationship
        crossing_margin: Bp a crossing relationship must extend past the flank medians
        min_gap_evidence: Minimum d1/d2 gap between evidenced and predicted flanks
        min_gap_predicted: Minimum d3/d4 gap between predicted and evidenced flank extents
        max_crossings: Chimeras have fewer crossing relationships than this
        min_flank_evidence: Relationships per flank below which edges are also used
        good_overlap_fraction: Edges overlapping more than this fraction of
            the read count towards the dangling-end test
        quality_evidence_proportion: Evidence proportion of a quality edge
        quality_ikbp: Maximum IKBP of a quality edge
        min_good_overlaps: Good-overlap edges needed to evaluate a flank
        pass_fraction: Dangling when at most this fraction (+1) passes the quality bar
        safe_evidence_proportion: Minimum evidence proportion of a safe edge
        safe_ikbp: Maximum IKBP of a safe edge
        repetitive_p_value: Degree cumulative probability above which a
            vertex is repetitive
    """
    unknown_flank: int = 1000
    tight_bound: int = 200
    crossing_margin: int = 100
    min_gap_evidence: int = 1000
    min_gap_predicted: int = 2000
    max_crossings: int = 2
    min_flank_evidence: int = 5
    good_overlap_fraction: float = 0.5
    quality_evidence_proportion: float = 0.9
    quality_ikbp: float = 50
    min_good_overlaps: int = 5
    pass_fraction: float = 0.05
    safe_evidence_proportion: float = 0.9
    safe_ikbp: float = 30
    repetitive_p_value: float = 0.999


class GraphSanitizer:
    """
    Filter and annotate an AssemblyGraph before layout.

    Args:
        graph: Graph to sanitize
        thresholds: Calibration constants
        scoring: Score and cost calculator
        remove_high_ikbp_sequences: Remove reads with outlier IKBP during update_scores
    """

    def __init__(self, graph: AssemblyGraph, thresholds: Optional[SanitizerThresholds] = None,
                 scoring: Optional[ScoreCostCalculator] = None,
                 remove_high_ikbp_sequences: bool = True,
                 log: Optional[logging.Logger] = None):
        self.graph = graph
        self.thresholds = thresholds or SanitizerThresholds()
        self.scoring = scoring or ScoreCostCalculator()
        self.remove_high_ikbp_sequences = remove_high_ikbp_sequences
        self.repetitive_vertices: Optional[Set[int]] = None
        self.log = log or logger

    # ========================================================================
    # Repetitive vertices and safe edges
    # ========================================================================

    def predict_repetitive_vertices(self) -> Set[int]:
        """Unique ids of vertices whose unfiltered degree is an upper outlier."""
        degrees = Distribution(0, 10000, 1)
        for vertex in self.graph.get_vertices():
            if not self.graph.is_embedded(vertex.sequence_index):
                degrees.add(vertex.degree_unfiltered)
        fit = NormalFit(degrees.average, degrees.variance)
        self.log.info(f"Degree average: {degrees.average:.2f} variance: {degrees.variance:.2f}")

        repetitive = set()
        for vertex in self.graph.get_vertices():
            if fit.cumulative(vertex.degree_unfiltered) > self.thresholds.repetitive_p_value:
                repetitive.add(vertex.unique_id)
        self.log.info(f"Vertices for layout: {degrees.count} repetitive: {len(repetitive)}")
        self.repetitive_vertices = repetitive
        return repetitive

    def is_best_edge(self, vertex: AssemblyVertex, edge: AssemblyEdge) -> bool:
        """True if no other edge at *vertex* has both overlap and weighted coverage >= those of *edge*."""
        for other in self.graph.get_edges(vertex):
            if other.is_same_sequence_edge() or other is edge:
                continue
            if other.overlap >= edge.overlap:
                return False
            if other.weighted_coverage_shared_kmers >= edge.weighted_coverage_shared_kmers:
                return False
        return True

    def is_reciprocal_best(self, edge: AssemblyEdge) -> bool:
        return self.is_best_edge(edge.vertex1, edge) and self.is_best_edge(edge.vertex2, edge)

    def is_safe_edge(self, edge: AssemblyEdge, repetitive: Set[int]) -> bool:
        t = self.thresholds
        if edge.is_same_sequence_edge():
            return False
        if edge.evidence_proportion < t.safe_evidence_proportion:
            return False
        if edge.indels_per_kbp > t.safe_ikbp:
            return False
        d1 = len(self.graph.get_edges(edge.vertex1))
        d2 = len(self.graph.get_edges(edge.vertex2))
        if d1 == 2 and d2 == 2:
            return True
        r1 = edge.vertex1.unique_id in repetitive
        r2 = edge.vertex2.unique_id in repetitive
        return not r1 and not r2 and self.is_reciprocal_best(edge)

    def select_safe_edges(self, repetitive: Optional[Set[int]] = None) -> List[AssemblyEdge]:
        if repetitive is None:
            repetitive = self.repetitive_vertices
        if repetitive is None:
            repetitive = self.predict_repetitive_vertices()
        return [e for e in self.graph.get_edges_all() if self.is_safe_edge(e, repetitive)]

    # ========================================================================
    # Scores
    # ========================================================================

    def remove_large_ikbp_sequences(self) -> List[int]:
        """Remove reads whose start or end average IKBP exceeds the global mean plus 2 SD."""
        limit = self.scoring.ikbp_limit
        averages = self.scoring.average_ikbp_vertices
        removed = []
        for idx in range(self.graph.num_sequences):
            if not self.graph.is_live(idx):
                continue
            values = [averages.get(self.graph.get_vertex(idx, start).unique_id)
                      for start in (True, False)]
            if any(v is not None and v > limit for v in values):
                self.log.debug(f"Large IKBP {values} for sequence {idx}. Limit: {limit:.2f}")
                self.graph.remove_vertices(idx)
                removed.append(idx)
        self.log.info(f"Removed {len(removed)} sequences with large IKBP (limit {limit:.2f})")
        return removed

    def update_scores(self) -> ScoreCostCalculator:
        """Fit distributions and annotate score and cost of all relationships."""
        self.graph.update_vertex_degrees()
        repetitive = self.predict_repetitive_vertices()
        safe_edges = self.select_safe_edges(repetitive)
        self.scoring.estimate_distributions(self.graph.get_edges_all(), safe_edges)
        self.scoring.estimate_length_sum_distributions(self.graph)
        self.scoring.estimate_endpoint_averages(self.graph)
        if self.remove_high_ikbp_sequences:
            self.remove_large_ikbp_sequences()
        self.scoring.annotate(self.graph)
        return self.scoring

    # ========================================================================
    # Chimeras
    # ========================================================================

    def is_chimeric(self, idx: int) -> bool:
        """
        True if read *idx* looks like two unrelated fragments or has a
        dangling low quality end.
        """
        graph = self.graph
        t = self.thresholds
        if not graph.is_live(idx):
            return False
        seq_length = graph.get_sequence_length(idx)

        embedded_list = sorted(graph.get_embedded_by_host(idx),
                               key=lambda e: e.host_evidence_start)
        evidence_ends_left: List[int] = []
        evidence_starts_right: List[int] = []
        predicted_end_left = 0
        predicted_start_right = seq_length

        for embedded in embedded_list:
            unknown_left = embedded.host_evidence_start - embedded.host_start
            unknown_right = embedded.host_end - embedded.host_evidence_end
            if unknown_right > t.unknown_flank and unknown_left < t.unknown_flank:
                evidence_ends_left.append(embedded.host_evidence_end)
                predicted_end_left = max(predicted_end_left, embedded.host_end)
            if unknown_left > t.unknown_flank and unknown_right < t.unknown_flank:
                evidence_starts_right.append(embedded.host_evidence_start)
                predicted_start_right = min(predicted_start_right, embedded.host_start)

        vertex_start = graph.get_vertex(idx, True)
        vertex_end = graph.get_vertex(idx, False)
        edges_start = [e for e in graph.get_edges(vertex_start) if not e.is_same_sequence_edge()]
        edges_end = [e for e in graph.get_edges(vertex_end) if not e.is_same_sequence_edge()]

        if (len(evidence_ends_left) < t.min_flank_evidence
                or len(evidence_starts_right) < t.min_flank_evidence):
            for edge in edges_start:
                ev_start, ev_end = edge.evidence_limits(vertex_start)
                unknown_left = ev_start
                unknown_right = edge.overlap - ev_end
                if unknown_right < 0:
                    continue
                if unknown_right > t.unknown_flank and unknown_left < t.unknown_flank:
                    evidence_ends_left.append(ev_end)
                    predicted_end_left = max(predicted_end_left, edge.overlap)
                if unknown_left > t.unknown_flank and unknown_right < t.unknown_flank:
                    evidence_starts_right.append(ev_start)
            for edge in edges_end:
                ev_start, ev_end = edge.evidence_limits(vertex_end)
                unknown_left = edge.overlap - (seq_length - ev_start)
                unknown_right = seq_length - ev_end
                if unknown_left < 0:
                    continue
                if unknown_right > t.unknown_flank and unknown_left < t.unknown_flank:
                    evidence_ends_left.append(ev_end)
                if unknown_left > t.unknown_flank and unknown_right < t.unknown_flank:
                    evidence_starts_right.append(ev_start)
                    predicted_start_right = min(predicted_start_right, seq_length - edge.overlap)

        evidence_ends_left.sort()
        evidence_starts_right.sort()
        evidence_end_left = (evidence_ends_left[len(evidence_ends_left) // 2]
                             if evidence_ends_left else 0)
        evidence_start_right = (evidence_starts_right[len(evidence_starts_right) // 2]
                                if evidence_starts_right else seq_length)
        min_evidence_start = min(evidence_start_right, evidence_end_left)
        max_evidence_end = max(evidence_start_right, evidence_end_left)

        num_crossing = 0
        for embedded in embedded_list:
            unknown_left = embedded.host_evidence_start - embedded.host_start
            unknown_right = embedded.host_end - embedded.host_evidence_end
            if (unknown_left < t.tight_bound and unknown_right < t.tight_bound
                    and min_evidence_start - embedded.host_evidence_start > t.crossing_margin
                    and embedded.host_evidence_end - max_evidence_end > t.crossing_margin):
                num_crossing += 1

        count_good_start, count_pass_start, crossing = self._flank_quality(
            edges_start, vertex_start, seq_length, min_evidence_start, max_evidence_end, True)
        num_crossing += crossing
        count_good_end, count_pass_end, crossing = self._flank_quality(
            edges_end, vertex_end, seq_length, min_evidence_start, max_evidence_end, False)
        num_crossing += crossing

        d1 = evidence_end_left - predicted_start_right
        d2 = predicted_end_left - evidence_start_right
        d3 = predicted_end_left - evidence_end_left
        d4 = evidence_start_right - predicted_start_right
        self.log.debug(f"Sequence {idx} length {seq_length}: evidence {evidence_end_left} "
                       f"{evidence_start_right} predicted {predicted_end_left} "
                       f"{predicted_start_right} crossing {num_crossing} good overlaps "
                       f"{count_good_start} {count_good_end} pass {count_pass_start} {count_pass_end}")

        if (num_crossing < t.max_crossings and d1 > t.min_gap_evidence and d2 > t.min_gap_evidence
                and d3 > t.min_gap_predicted and d4 > t.min_gap_predicted):
            self.log.debug(f"Possible chimera identified for sequence {idx}")
            return True
        if self._dangling(count_good_start, count_pass_start) or \
                self._dangling(count_good_end, count_pass_end):
            self.log.debug(f"Possible dangling end identified for sequence {idx}")
            return True
        return False

    def _flank_quality(self, edges: List[AssemblyEdge], vertex: AssemblyVertex, seq_length: int,
                       min_evidence_start: int, max_evidence_end: int,
                       start: bool) -> Tuple[int, int, int]:
        """(good-overlap edges, edges passing the quality bar, crossing edges) of one flank."""
        t = self.thresholds
        count_good = 0
        count_pass = 0
        crossing = 0
        for edge in edges:
            ev_start, ev_end = edge.evidence_limits(vertex)
            if start:
                unknown_left = ev_start
                unknown_right = edge.overlap - ev_end
                crosses = ev_end - max_evidence_end > t.crossing_margin
            else:
                unknown_left = edge.overlap - (seq_length - ev_start)
                unknown_right = seq_length - ev_end
                crosses = min_evidence_start - ev_start > t.crossing_margin
            if unknown_left < t.tight_bound and unknown_right < t.tight_bound and crosses:
                crossing += 1
            if edge.overlap > t.good_overlap_fraction * seq_length:
                count_good += 1
                if (edge.evidence_proportion >= t.quality_evidence_proportion
                        and edge.indels_per_kbp <= t.quality_ikbp):
                    count_pass += 1
        return count_good, count_pass, crossing

    def _dangling(self, count_good: int, count_pass: int) -> bool:
        t = self.thresholds
        return count_good > t.min_good_overlaps and count_pass <= t.pass_fraction * count_good + 1

    def remove_chimeric_reads(self) -> List[int]:
        """
        Excise every chimeric or dangling read: vertices, edges and
        embedding relations. Detection runs on the graph as it was before
        any removal.
        """
        chimeric = [idx for idx in range(self.graph.num_sequences) if self.is_chimeric(idx)]
        for idx in chimeric:
            self.graph.remove_vertices(idx)
            self.graph.remove_embedded_relations(idx)
        self.log.info(f"Removed {len(chimeric)} chimeric or dangling sequences")
        return chimeric

    # ========================================================================
    # Embedding hosts
    # ========================================================================

    def keep_best_embedding_hosts(self) -> int:
        """
        Keep one direct host per embedded read, the relation with the lowest
        cost (then highest score, then lowest host id). Host cycles between
        reads of near-identical length are broken by releasing the longest
        read of the cycle. Returns the number of relations removed.
        """
        graph = self.graph
        chosen: Dict[int, AssemblyEmbedded] = {}
        removed = 0
        for idx in range(graph.num_sequences):
            relations = graph.get_embedded_by_sequence(idx)
            if not relations:
                continue
            best = min(relations, key=lambda e: (e.cost, -e.score, e.host_id))
            for relation in relations:
                if relation is not best:
                    graph.remove_embedded(relation)
                    removed += 1
            chosen[idx] = best

        for idx in list(chosen):
            cycle = self._host_cycle(idx, chosen)
            if not cycle:
                continue
            release = max(cycle, key=lambda i: (graph.get_sequence_length(i), -i))
            graph.remove_embedded(chosen.pop(release))
            removed += 1
        self.log.info(f"Removed {removed} redundant embedding relations")
        return removed

    @staticmethod
    def _host_cycle(idx: int, chosen: Dict[int, AssemblyEmbedded]) -> List[int]:
        seen = [idx]
        current = idx
        while current in chosen:
            current = chosen[current].host_id
            if current == idx:
                return seen
            if current in seen:
                return []
            seen.append(current)
        return []


__all__ = [
    'GraphSanitizer',
    'SanitizerThresholds',
]

# ContigWeaver v0.1.0
# Any usage is subject to this software's license.
