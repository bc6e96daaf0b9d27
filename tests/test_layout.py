#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
ContigWeaver v0.1.0

Tests for layout strategies.

Author: ContigWeaver Development Team
License: Dual License (Academic/Commercial) - See LICENSE_ACADEMIC.md and LICENSE_COMMERCIAL.md
"""

import pytest

from contigweaver.assembly_core.assembly_graph_module import AssemblyGraph
from contigweaver.assembly_core.data_structures import AssemblyEdge
from contigweaver.assembly_core.layout_module import (
    LayoutStrategy,
    SafeEdgeChainLayout,
    build_layout,
    create_layout_engine,
    resolve_layout_strategy,
)
from contigweaver.assembly_core.relationship_builder_module import RelationshipBuilder


def _overlap(graph, idx1, idx2, overlap=300, score=10):
    length1 = graph.get_sequence_length(idx1)
    return graph.add_edge(AssemblyEdge(
        graph.get_vertex(idx1, False), graph.get_vertex(idx2, True), overlap=overlap,
        vertex1_evidence_start=length1 - overlap, vertex1_evidence_end=length1,
        vertex2_evidence_start=0, vertex2_evidence_end=overlap, score=score,
    ))


def _path_reads(path):
    return [edge.vertex1.sequence_index for edge in path if edge.is_same_sequence_edge()]


class TestStrategyResolution:
    """Test resolution of strategy names."""

    def test_resolve_by_name(self):
        """Names resolve case-insensitively."""
        assert resolve_layout_strategy("safe_edge_chains") is LayoutStrategy.SAFE_EDGE_CHAINS
        assert resolve_layout_strategy("SAFE_EDGE_CHAINS") is LayoutStrategy.SAFE_EDGE_CHAINS
        assert resolve_layout_strategy(LayoutStrategy.SAFE_EDGE_CHAINS) is \
            LayoutStrategy.SAFE_EDGE_CHAINS

    def test_unknown_strategy(self):
        """Unknown names are rejected with the list of valid ones."""
        with pytest.raises(ValueError, match="safe_edge_chains"):
            resolve_layout_strategy("greedy")

    def test_create_engine(self):
        """The factory builds the engine of the strategy."""
        assert isinstance(create_layout_engine("safe_edge_chains"), SafeEdgeChainLayout)


class TestSafeEdgeChains:
    """Test chaining of reads through safe edges."""

    def test_tiled_single_path(self, tiled_reads, tiled_hits):
        """An unambiguous tiling becomes one path through every read."""
        graph = AssemblyGraph(tiled_reads)
        RelationshipBuilder(graph).build_from_hit_source(tiled_hits)

        paths = SafeEdgeChainLayout().find_paths(graph)

        assert len(paths) == 1
        assert _path_reads(paths[0]) == [0, 1, 2, 3, 4, 5]
        assert len(paths[0]) == 11
        assert graph.path_length(paths[0]) == 4000

    def test_paths_alternate_edge_types(self, tiled_reads, tiled_hits):
        """Same-sequence edges and overlaps alternate and share vertices."""
        graph = AssemblyGraph(tiled_reads)
        RelationshipBuilder(graph).build_from_hit_source(tiled_hits)

        path = SafeEdgeChainLayout().find_paths(graph)[0]

        for i, edge in enumerate(path):
            assert edge.is_same_sequence_edge() == (i % 2 == 0)
        for previous, current in zip(path, path[1:]):
            assert previous.shared_vertex(current) is not None

    def test_find_paths_does_not_mutate(self, tiled_reads, tiled_hits):
        """Finding paths leaves the graph untouched."""
        graph = AssemblyGraph(tiled_reads)
        RelationshipBuilder(graph).build_from_hit_source(tiled_hits)
        edges_before = graph.num_edges

        SafeEdgeChainLayout().find_paths(graph)

        assert graph.num_edges == edges_before
        assert graph.get_paths() == []

    def test_cycle_opened_at_weakest_edge(self):
        """A circular chain is opened at its lowest scoring edge."""
        graph = AssemblyGraph(["A" * 1000] * 3)
        _overlap(graph, 0, 1, score=10)
        _overlap(graph, 1, 2, score=10)
        _overlap(graph, 2, 0, score=5)

        paths = SafeEdgeChainLayout().find_paths(graph)

        assert len(paths) == 1
        assert _path_reads(paths[0]) == [0, 1, 2]
        assert graph.path_length(paths[0]) == 2400

    def test_branch_gives_singletons(self):
        """Competing overlaps at one vertex are never chained."""
        graph = AssemblyGraph(["A" * 1000] * 3)
        _overlap(graph, 0, 1)
        _overlap(graph, 0, 2)

        paths = SafeEdgeChainLayout().find_paths(graph)

        assert sorted(_path_reads(p) for p in paths) == [[0], [1], [2]]

    def test_removed_reads_skipped(self):
        """Reads without vertices are not laid out."""
        graph = AssemblyGraph(["A" * 1000] * 3)
        graph.remove_vertices(1)

        paths = SafeEdgeChainLayout().find_paths(graph)

        assert sorted(_path_reads(p) for p in paths) == [[0], [2]]


class TestBuildLayout:
    """Test storing layout paths on the graph."""

    def test_paths_stored(self, tiled_reads, tiled_hits):
        """Stored paths flag their edges as layout edges."""
        graph = AssemblyGraph(tiled_reads)
        RelationshipBuilder(graph).build_from_hit_source(tiled_hits)

        stored = build_layout(graph, SafeEdgeChainLayout())

        assert stored == 1
        assert all(edge.layout_edge for edge in graph.get_paths()[0])

    def test_short_paths_discarded(self):
        """Paths with fewer reads than the minimum are dropped."""
        graph = AssemblyGraph(["A" * 1000] * 3)
        _overlap(graph, 0, 1)

        stored = build_layout(graph, SafeEdgeChainLayout(), min_path_length=2)

        assert stored == 1
        assert _path_reads(graph.get_paths()[0]) == [0, 1]

    def test_minimum_scales_with_ploidy(self):
        """The minimum number of reads is multiplied by the ploidy."""
        graph = AssemblyGraph(["A" * 1000] * 3, ploidy=2)
        _overlap(graph, 0, 1)

        assert build_layout(graph, SafeEdgeChainLayout(), min_path_length=1) == 1

# ContigWeaver v0.1.0
# Any usage is subject to this software's license.
