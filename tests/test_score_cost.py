#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
ContigWeaver v0.1.0

Tests for relationship score and cost.

Author: ContigWeaver Development Team
License: Dual License (Academic/Commercial) - See LICENSE_ACADEMIC.md and LICENSE_COMMERCIAL.md
"""

from dataclasses import replace

import pytest

from contigweaver.assembly_core.assembly_graph_module import AssemblyGraph
from contigweaver.assembly_core.data_structures import AssemblyEdge, AssemblyEmbedded
from contigweaver.assembly_core.graph_sanitizer_module import GraphSanitizer
from contigweaver.assembly_core.relationship_builder_module import RelationshipBuilder
from contigweaver.assembly_core.score_cost_module import (
    EVIDENCE_PROPORTION,
    IKBP,
    OVERLAP,
    ScoreCostCalculator,
    average_ikbp,
)

READ_LENGTH = 10000


def _overlap_edge(graph, idx1, idx2, mismatches=10):
    return graph.add_edge(AssemblyEdge(
        graph.get_vertex(idx1, False), graph.get_vertex(idx2, True),
        overlap=5000, num_shared_kmers=3000, coverage_shared_kmers=3000,
        weighted_coverage_shared_kmers=3000, mismatches=mismatches,
        vertex1_evidence_start=5000, vertex1_evidence_end=10000,
        vertex2_evidence_start=0, vertex2_evidence_end=5000,
    ))


@pytest.fixture
def chain_graph():
    """Twelve reads chained by clean overlaps plus one noisy overlap from read 0 to read 2."""
    graph = AssemblyGraph(["A" * READ_LENGTH] * 12)
    clean = [_overlap_edge(graph, i, i + 1) for i in range(11)]
    noisy = _overlap_edge(graph, 0, 2, mismatches=250)
    return graph, clean, noisy


def _fitted(graph):
    scoring = ScoreCostCalculator()
    scoring.estimate_distributions(graph.get_edges_all(), [])
    scoring.estimate_length_sum_distributions(graph)
    scoring.estimate_endpoint_averages(graph)
    return scoring


class TestAverageIKBP:
    """Test typical IKBP of a set of relationships."""

    def test_min_of_median_and_lowest_mean(self, chain_graph):
        """The smaller of the median and the mean of the five smallest values."""
        graph, clean, _ = chain_graph
        edges = []
        for mismatches in (5, 10, 15, 20, 25, 30, 500):
            edges.append(AssemblyEdge(clean[0].vertex1, clean[0].vertex2, overlap=5000,
                                      mismatches=mismatches))
        # IKBPs 1..6 and 100: median 4, mean of five smallest 3
        assert average_ikbp(edges) == pytest.approx(3.0)

    def test_same_sequence_edges_ignored(self, chain_graph):
        """Only overlap relationships count."""
        graph, _, _ = chain_graph
        assert average_ikbp([graph.get_same_sequence_edge(0)]) is None
        assert average_ikbp([]) is None


class TestDistributions:
    """Test metric distribution fitting."""

    def test_floors_with_few_safe_edges(self, chain_graph):
        """IKBP and evidence proportion spreads are floored."""
        graph, _, _ = chain_graph
        fits = ScoreCostCalculator().estimate_distributions(graph.get_edges_all(), [])
        assert fits[OVERLAP].mean == pytest.approx(5000)
        assert fits[OVERLAP].variance >= fits[OVERLAP].mean
        assert fits[EVIDENCE_PROPORTION].standard_deviation == pytest.approx(0.03)
        assert fits[IKBP].mean == pytest.approx(6.0)
        assert fits[IKBP].standard_deviation >= fits[IKBP].mean

    def test_safe_edges_training_sample(self):
        """With enough safe edges the mode of the safe sample is used."""
        graph = AssemblyGraph(["A" * READ_LENGTH] * 30)
        edges = [_overlap_edge(graph, i, i + 1) for i in range(29)]
        fits = ScoreCostCalculator(min_safe_edges=20).estimate_distributions(
            graph.get_edges_all(), edges)
        assert fits[OVERLAP].mean == pytest.approx(5500)

    def test_length_sum_buckets(self, chain_graph):
        """Relationships are bucketed by summed read length in kbp."""
        graph, _, _ = chain_graph
        buckets = ScoreCostCalculator().estimate_length_sum_distributions(graph)
        assert set(buckets) == {20}
        assert buckets[20].count == 12

    def test_embeddings_in_length_buckets(self, chain_graph):
        """Embeddings contribute to the length-sum buckets."""
        graph, _, _ = chain_graph
        graph.add_embedded(AssemblyEmbedded(sequence_id=11, sequence_length=10000, host_id=3,
                                            host_length=10000, host_start=0, host_end=10000))
        buckets = ScoreCostCalculator().estimate_length_sum_distributions(graph)
        assert buckets[20].count == 13

    def test_ikbp_limit(self, chain_graph):
        """The large-IKBP limit is the mean plus two standard deviations."""
        graph, _, _ = chain_graph
        scoring = _fitted(graph)
        fit = scoring.edge_distributions[IKBP]
        assert scoring.ikbp_limit == pytest.approx(fit.mean + 2 * fit.standard_deviation)


class TestScoreCost:
    """Test score and cost annotation."""

    def test_annotate_requires_fit(self, chain_graph):
        """Annotating before fitting is an error."""
        graph, _, _ = chain_graph
        with pytest.raises(ValueError):
            ScoreCostCalculator().annotate(graph)

    def test_clean_edge_score(self, chain_graph):
        """Score of a clean edge is half the overlap evidence product."""
        graph, clean, _ = chain_graph
        scoring = _fitted(graph)
        scoring.annotate(graph)
        assert clean[4].score == 7500

    def test_noisy_edge_penalized(self, chain_graph):
        """An edge with outlier IKBP scores lower and costs more."""
        graph, clean, noisy = chain_graph
        scoring = _fitted(graph)
        scoring.annotate(graph)
        assert noisy.score < clean[4].score
        assert noisy.cost > clean[4].cost

    def test_cost_is_integer(self, chain_graph):
        """Costs are integers."""
        graph, clean, _ = chain_graph
        scoring = _fitted(graph)
        assert isinstance(scoring.calculate_cost(clean[0]), int)
        assert isinstance(scoring.calculate_score(clean[0]), int)

    def test_embedded_annotated(self, chain_graph):
        """Embeddings receive score and cost."""
        graph, _, _ = chain_graph
        relation = AssemblyEmbedded(sequence_id=11, sequence_length=10000, host_id=3,
                                    host_length=10000, host_start=0, host_end=10000,
                                    host_evidence_start=0, host_evidence_end=10000,
                                    weighted_coverage_shared_kmers=3000, mismatches=20)
        graph.add_embedded(relation)
        scoring = _fitted(graph)
        scoring.annotate(graph)
        assert relation.score > 0
        assert relation.cost > 0


class TestScoreCostProperties:
    """Test properties of score and cost on a graph built from hits."""

    @staticmethod
    def _scored(graph):
        sanitizer = GraphSanitizer(graph, scoring=ScoreCostCalculator())
        sanitizer.update_scores()
        return sanitizer.scoring

    @staticmethod
    def _annotations(graph):
        return [(edge.score, edge.cost) for edge in graph.get_edges_all()]

    def test_deterministic(self, tiled_reads, tiled_hits):
        """Identical graphs get identical annotations, and annotating again changes nothing."""
        graphs = []
        for _ in range(2):
            graph = AssemblyGraph(list(tiled_reads))
            RelationshipBuilder(graph).build_from_hit_source(tiled_hits)
            graphs.append(graph)
        scoring = self._scored(graphs[0])
        self._scored(graphs[1])

        first = self._annotations(graphs[0])
        assert first == self._annotations(graphs[1])
        scoring.annotate(graphs[0])
        assert self._annotations(graphs[0]) == first

    def test_cost_non_increasing_with_evidence(self, tiled_graph):
        """More evidence over the same overlap never costs more or scores less."""
        scoring = self._scored(tiled_graph)
        edge = next(e for e in tiled_graph.get_edges_all() if not e.is_same_sequence_edge())
        step = max(1, edge.overlap // 25)
        spans = list(range(0, edge.overlap, step)) + [edge.overlap]

        costs = []
        scores = []
        for span in spans:
            variant = replace(edge,
                              vertex1_evidence_end=edge.vertex1_evidence_start + span,
                              vertex2_evidence_end=edge.vertex2_evidence_start + span)
            costs.append(scoring.calculate_cost(variant))
            scores.append(scoring.calculate_score(variant))

        assert all(a >= b for a, b in zip(costs, costs[1:]))
        assert all(a <= b for a, b in zip(scores, scores[1:]))
        assert costs[0] > costs[-1]

# ContigWeaver v0.1.0
# Any usage is subject to this software's license.
