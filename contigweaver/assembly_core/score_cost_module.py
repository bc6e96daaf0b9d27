#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
ContigWeaver v0.1.0

Score and cost model for graph relationships.

Six metrics are fitted graph wide: overlap, coverage of shared k-mers,
weighted coverage of shared k-mers, overlap standard deviation, evidence
proportion and indels per kbp (IKBP). Safe edges provide the central
estimate when there are enough of them; otherwise a local mode of all
edges is used. IKBP is also fitted per bucket of summed read length
(in kbp) so that long pairs are compared with long pairs.

score (higher is better):
    round(0.001 * overlap * weighted_coverage * evidence_proportion * p_ikbp)

cost (lower is better):
    int(100 * (c_overlap + c_wcsk + c_evidence + c_ikbp + c_ikbp_bucket))

Author: ContigWeaver Development Team
License: Dual License (Academic/Commercial) - See LICENSE_ACADEMIC.md and LICENSE_COMMERCIAL.md
"""

from typing import Dict, Iterable, List, Optional, Sequence, Union
import logging

from .assembly_graph_module import AssemblyGraph
from .data_structures import AssemblyEdge, AssemblyEmbedded
from ..utils.distribution import Distribution, NormalFit, phred_score, round_half_up

logger = logging.getLogger(__name__)

Relationship = Union[AssemblyEdge, AssemblyEmbedded]

# Metric order of the fitted distributions
OVERLAP = 0
COVERAGE_SHARED_KMERS = 1
WEIGHTED_COVERAGE_SHARED_KMERS = 2
OVERLAP_SD = 3
EVIDENCE_PROPORTION = 4
IKBP = 5

METRIC_NAMES = [
    'overlap',
    'coverage_shared_kmers',
    'weighted_coverage_shared_kmers',
    'overlap_sd',
    'evidence_proportion',
    'indels_per_kbp',
]

# (min, max, bin length) of the histogram of each metric
METRIC_BINS = [
    (0, 100000, 1000),
    (0, 100000, 1000),
    (0, 100000, 1000),
    (0, 500, 10),
    (0, 1.1, 0.02),
    (0, 100, 1),
]

MIN_EVIDENCE_PROPORTION_SD = 0.03
DEFAULT_ENDPOINT_IKBP = 1.0


def _metric_values(edge: AssemblyEdge) -> List[float]:
    return [
        edge.overlap,
        edge.coverage_shared_kmers,
        edge.weighted_coverage_shared_kmers,
        edge.overlap_standard_deviation,
        edge.evidence_proportion,
        edge.indels_per_kbp,
    ]


def _new_distributions() -> List[Distribution]:
    return [Distribution(*bins) for bins in METRIC_BINS]


def average_ikbp(relationships: Iterable[Relationship]) -> Optional[float]:
    """
    Typical IKBP of the relationships of one vertex or read.

    The smaller of the median and the mean of the five smallest values.
    Same-sequence edges are ignored. None when nothing is left.
    """
    numbers = sorted(r.indels_per_kbp for r in relationships
                     if not (isinstance(r, AssemblyEdge) and r.is_same_sequence_edge()))
    if not numbers:
        return None
    median = numbers[len(numbers) // 2]
    lowest = numbers[:5]
    return min(median, sum(lowest) / len(lowest))


class ScoreCostCalculator:
    """
    Fit relationship metric distributions and annotate score and cost.

    Args:
        alpha_ikbp: P-value below which a high IKBP is penalized
        significance: P-value above which cost terms take their neutral value
        min_safe_edges: Safe edges needed to use them as training sample
        min_bucket_count: Datapoints needed to use a length-sum bucket
    """

    def __init__(self, alpha_ikbp: float = 0.001, significance: float = 0.05,
                 min_safe_edges: int = 20, min_bucket_count: int = 20,
                 log: Optional[logging.Logger] = None):
        self.alpha_ikbp = alpha_ikbp
        self.significance = significance
        self.min_safe_edges = min_safe_edges
        self.min_bucket_count = min_bucket_count
        self.log = log or logger

        self.edge_distributions: List[NormalFit] = []
        self.length_sum_distributions: Dict[int, Distribution] = {}
        self.average_ikbp_vertices: Dict[int, Optional[float]] = {}
        self.average_ikbp_embedded: Dict[int, Optional[float]] = {}

    # ========================================================================
    # Fitting
    # ========================================================================

    def estimate_distributions(self, edges: Sequence[AssemblyEdge],
                               safe_edges: Iterable[AssemblyEdge]) -> List[NormalFit]:
        """
        Normal approximation of each metric over non same-sequence edges.

        Args:
            edges: All live edges
            safe_edges: Subset of *edges* used as clean training sample
        """
        safe_ids = {e.edge_id for e in safe_edges}
        dists_all = _new_distributions()
        dists_safe = _new_distributions()
        for edge in edges:
            if edge.is_same_sequence_edge():
                continue
            values = _metric_values(edge)
            for i, value in enumerate(values):
                dists_all[i].add(value)
            if edge.edge_id in safe_ids:
                for i, value in enumerate(values):
                    dists_safe[i].add(value)

        num_safe = dists_safe[OVERLAP].count
        self.log.info(f"Number of safe edges: {num_safe}")
        answer = []
        for i, (dist_all, dist_safe) in enumerate(zip(dists_all, dists_safe)):
            if num_safe > self.min_safe_edges:
                mean = dist_safe.local_mode(dist_safe.average / 2, dist_safe.average * 2)
            elif i < IKBP:
                mean = dist_all.local_mode(dist_all.average, dist_all.max_observed)
            else:
                mean = dist_all.local_mode(dist_all.min_observed, dist_all.average)
            if i == IKBP and mean < dist_all.average:
                mean = dist_all.average
            sd = dist_all.estimated_standard_deviation_peak(mean)
            if i == IKBP and sd < mean:
                sd = mean
            if i == EVIDENCE_PROPORTION and sd < MIN_EVIDENCE_PROPORTION_SD:
                sd = MIN_EVIDENCE_PROPORTION_SD
            variance = sd * sd
            if i < OVERLAP_SD and variance < mean:
                variance = mean
            answer.append(NormalFit(mean, variance))
            self.log.info(f"Average {METRIC_NAMES[i]}: {mean:.3f} SD: {answer[-1].standard_deviation:.3f}")
        self.edge_distributions = answer
        return answer

    def estimate_length_sum_distributions(self, graph: AssemblyGraph) -> Dict[int, Distribution]:
        """IKBP distributions of edges and embeddings keyed by summed read length in kbp."""
        buckets: Dict[int, Distribution] = {}
        relationships: List[Relationship] = [e for e in graph.get_edges_all()
                                             if not e.is_same_sequence_edge()]
        relationships.extend(graph.get_embedded_all())
        for relationship in relationships:
            key = relationship.length_sum // 1000
            if key not in buckets:
                buckets[key] = Distribution(*METRIC_BINS[IKBP])
            buckets[key].add(relationship.indels_per_kbp)
        for key in sorted(buckets):
            dist = buckets[key]
            self.log.debug(f"Length sum bucket {key}: average IKBP {dist.average:.2f} "
                           f"count {dist.count}")
        self.length_sum_distributions = buckets
        return buckets

    def estimate_endpoint_averages(self, graph: AssemblyGraph):
        """Average IKBP per live vertex (edges) and per read (embeddings)."""
        self.average_ikbp_vertices = {}
        self.average_ikbp_embedded = {}
        for idx in range(graph.num_sequences):
            if not graph.is_live(idx):
                continue
            for start in (True, False):
                vertex = graph.get_vertex(idx, start)
                self.average_ikbp_vertices[vertex.unique_id] = average_ikbp(graph.get_edges(vertex))
            embedded = graph.get_embedded_by_host(idx) + graph.get_embedded_by_sequence(idx)
            self.average_ikbp_embedded[idx] = average_ikbp(embedded)

    @property
    def ikbp_limit(self) -> float:
        """Global IKBP mean plus two standard deviations."""
        fit = self.edge_distributions[IKBP]
        return fit.mean + 2 * fit.standard_deviation

    # ========================================================================
    # Score and cost
    # ========================================================================

    def _max_average_ikbp(self, relationship: Relationship) -> float:
        if isinstance(relationship, AssemblyEmbedded):
            values = (self.average_ikbp_embedded.get(relationship.host_id),
                      self.average_ikbp_embedded.get(relationship.sequence_id))
        else:
            values = (self.average_ikbp_vertices.get(relationship.vertex1.unique_id),
                      self.average_ikbp_vertices.get(relationship.vertex2.unique_id))
        return max(DEFAULT_ENDPOINT_IKBP if v is None else v for v in values)

    def _usable_bucket(self, relationship: Relationship) -> Optional[Distribution]:
        bucket = self.length_sum_distributions.get(relationship.length_sum // 1000)
        if bucket is not None and bucket.count > self.min_bucket_count:
            return bucket
        return None

    def _clamp_ikbp(self, p_value: float) -> float:
        return 0.5 if p_value > self.alpha_ikbp else p_value

    def _global_ikbp_p_value(self, relationship: Relationship, cap_embedded: bool) -> float:
        fit = self.edge_distributions[IKBP]
        avg = max(fit.mean, self._max_average_ikbp(relationship))
        if cap_embedded and isinstance(relationship, AssemblyEmbedded):
            avg = min(fit.mean * 2, avg)
        return NormalFit(avg, max(avg, fit.variance)).upper_tail(relationship.indels_per_kbp)

    def _bucket_ikbp_p_value(self, relationship: Relationship, bucket: Distribution,
                             cap_embedded: bool) -> float:
        bucket_mean = bucket.average
        avg = max(bucket_mean, self._max_average_ikbp(relationship))
        if cap_embedded and isinstance(relationship, AssemblyEmbedded):
            avg = min(bucket_mean * 2, avg)
        variance = min(max(avg, bucket.variance), avg * avg)
        return NormalFit(avg, variance).upper_tail(relationship.indels_per_kbp)

    def calculate_score(self, relationship: Relationship) -> int:
        """Score of a relationship under the fitted distributions."""
        score = (0.001 * relationship.overlap * relationship.weighted_coverage_shared_kmers
                 * relationship.evidence_proportion)
        p_ikbp = self._global_ikbp_p_value(relationship, cap_embedded=True)
        bucket = self._usable_bucket(relationship)
        if bucket is not None:
            p_ikbp = self._bucket_ikbp_p_value(relationship, bucket, cap_embedded=True)
        return round_half_up(score * self._clamp_ikbp(p_ikbp))

    def calculate_cost(self, relationship: Relationship) -> int:
        """Cost of a relationship under the fitted distributions."""
        dists = self.edge_distributions
        cost_overlap = 20.0 * (1 - dists[OVERLAP].cumulative(relationship.overlap))

        cumulative_wcsk = dists[WEIGHTED_COVERAGE_SHARED_KMERS].cumulative(
            relationship.weighted_coverage_shared_kmers)
        cost_wcsk = phred_score(min(self.significance, cumulative_wcsk))

        p_evidence = dists[EVIDENCE_PROPORTION].cumulative(relationship.evidence_proportion)
        if p_evidence > self.significance:
            p_evidence = 0.5
        cost_evidence = phred_score(p_evidence)

        p_ikbp = self._clamp_ikbp(self._global_ikbp_p_value(relationship, cap_embedded=False))
        cost_ikbp = phred_score(p_ikbp)
        cost_ikbp_bucket = cost_ikbp
        bucket = self._usable_bucket(relationship)
        if bucket is not None:
            p_bucket = self._bucket_ikbp_p_value(relationship, bucket, cap_embedded=False)
            cost_ikbp_bucket = phred_score(self._clamp_ikbp(p_bucket))

        total = cost_overlap + cost_wcsk + cost_evidence + cost_ikbp + cost_ikbp_bucket
        return int(100.0 * total)

    def annotate(self, graph: AssemblyGraph):
        """Set score and cost of every live edge and embedding."""
        if not self.edge_distributions:
            raise ValueError("Distributions must be estimated before annotating the graph")
        for edge in graph.get_edges_all():
            edge.score = self.calculate_score(edge)
            edge.cost = self.calculate_cost(edge)
        for embedded in graph.get_embedded_all():
            embedded.score = self.calculate_score(embedded)
            embedded.cost = self.calculate_cost(embedded)


__all__ = [
    'ScoreCostCalculator',
    'average_ikbp',
    'METRIC_NAMES',
    'OVERLAP',
    'COVERAGE_SHARED_KMERS',
    'WEIGHTED_COVERAGE_SHARED_KMERS',
    'OVERLAP_SD',
    'EVIDENCE_PROPORTION',
    'IKBP',
]

# ContigWeaver v0.1.0
# Any usage is subject to this software's license.
