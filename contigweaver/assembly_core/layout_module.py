#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
ContigWeaver v0.1.0

Layout strategies over the sanitized assembly graph.

A layout engine turns the graph into paths, each an ordered list of edges
alternating same-sequence edges and overlap edges:

    [same(r1), r1->r2, same(r2), r2->r3, same(r3)]

Strategies form a closed enumeration resolved from configuration.

Author: ContigWeaver Development Team
License: Dual License (Academic/Commercial) - See LICENSE_ACADEMIC.md and LICENSE_COMMERCIAL.md
"""

from abc import ABC, abstractmethod
from enum import Enum
from typing import Dict, List, Optional, Set, Union
import logging

from .assembly_graph_module import AssemblyGraph
from .data_structures import AssemblyEdge
from .graph_sanitizer_module import GraphSanitizer, SanitizerThresholds

logger = logging.getLogger(__name__)

Path = List[AssemblyEdge]


class LayoutStrategy(Enum):
    """Available layout strategies."""
    SAFE_EDGE_CHAINS = "safe_edge_chains"


class LayoutEngine(ABC):
    """Interface of layout engines."""

    @abstractmethod
    def find_paths(self, graph: AssemblyGraph) -> List[Path]:
        """Paths over the live vertices of *graph*. Must not mutate the graph."""
        pass


class SafeEdgeChainLayout(LayoutEngine):
    """
    Chain reads through unambiguous safe edges.

    A safe edge is used only if it is the single safe edge at both of its
    vertices. Cycles are opened at their lowest scoring edge. Reads left
    out of every chain become singleton paths.
    """

    def __init__(self, thresholds: Optional[SanitizerThresholds] = None):
        self.thresholds = thresholds

    def _chain_edges(self, graph: AssemblyGraph) -> Dict[int, AssemblyEdge]:
        sanitizer = GraphSanitizer(graph, thresholds=self.thresholds)
        safe_edges = sanitizer.select_safe_edges()
        counts: Dict[int, int] = {}
        for edge in safe_edges:
            for vertex in (edge.vertex1, edge.vertex2):
                counts[vertex.unique_id] = counts.get(vertex.unique_id, 0) + 1
        chain: Dict[int, AssemblyEdge] = {}
        for edge in safe_edges:
            if counts[edge.vertex1.unique_id] == 1 and counts[edge.vertex2.unique_id] == 1:
                chain[edge.vertex1.unique_id] = edge
                chain[edge.vertex2.unique_id] = edge
        logger.info(f"Safe edges: {len(safe_edges)} unambiguous: {len(chain) // 2}")
        return chain

    def _break_cycles(self, graph: AssemblyGraph, chain: Dict[int, AssemblyEdge]):
        visited: Set[int] = set()
        for idx in range(graph.num_sequences):
            if idx in visited or not graph.is_live(idx):
                continue
            vertex = graph.get_vertex(idx, False)
            members = [idx]
            cycle_edges = []
            is_cycle = False
            while True:
                edge = chain.get(vertex.unique_id)
                if edge is None:
                    break
                cycle_edges.append(edge)
                next_vertex = edge.connecting_vertex(vertex)
                next_idx = next_vertex.sequence_index
                if next_idx == idx:
                    is_cycle = True
                    break
                members.append(next_idx)
                vertex = graph.get_same_sequence_edge(next_idx).connecting_vertex(next_vertex)
            visited.update(members)
            if is_cycle:
                weakest = min(cycle_edges, key=lambda e: (e.score, e.edge_id))
                del chain[weakest.vertex1.unique_id]
                del chain[weakest.vertex2.unique_id]
                logger.debug(f"Opened cycle of {len(members)} sequences at edge {weakest}")

    def find_paths(self, graph: AssemblyGraph) -> List[Path]:
        chain = self._chain_edges(graph)
        self._break_cycles(graph, chain)

        paths: List[Path] = []
        visited: Set[int] = set()
        for idx in range(graph.num_sequences):
            if idx in visited or not graph.is_live(idx):
                continue
            start = graph.get_vertex(idx, True)
            end = graph.get_vertex(idx, False)
            if start.unique_id in chain and end.unique_id in chain:
                # Interior read; the walk starts from an endpoint
                continue
            vertex = start if start.unique_id not in chain else end
            path: Path = []
            while True:
                current = vertex.sequence_index
                visited.add(current)
                same = graph.get_same_sequence_edge(current)
                path.append(same)
                other = same.connecting_vertex(vertex)
                edge = chain.get(other.unique_id)
                if edge is None:
                    break
                path.append(edge)
                vertex = edge.connecting_vertex(other)
            paths.append(path)
        return paths


_ENGINES = {
    LayoutStrategy.SAFE_EDGE_CHAINS: SafeEdgeChainLayout,
}


def resolve_layout_strategy(name: Union[str, LayoutStrategy]) -> LayoutStrategy:
    """Strategy from its configuration name."""
    if isinstance(name, LayoutStrategy):
        return name
    try:
        return LayoutStrategy(name.lower())
    except ValueError:
        valid = ", ".join(s.value for s in LayoutStrategy)
        raise ValueError(f"Unknown layout strategy '{name}'. Valid strategies: {valid}")


def create_layout_engine(strategy: Union[str, LayoutStrategy],
                         thresholds: Optional[SanitizerThresholds] = None) -> LayoutEngine:
    return _ENGINES[resolve_layout_strategy(strategy)](thresholds=thresholds)


def build_layout(graph: AssemblyGraph, engine: LayoutEngine, min_path_length: int = 1) -> int:
    """
    Run *engine* and store its paths on the graph.

    Paths with fewer reads than min_path_length * ploidy are discarded.
    Returns the number of paths stored.
    """
    min_reads = min_path_length * graph.ploidy
    stored = 0
    for path in engine.find_paths(graph):
        num_reads = sum(1 for edge in path if edge.is_same_sequence_edge())
        if num_reads < min_reads:
            continue
        graph.add_path(path)
        stored += 1
    logger.info(f"Layout paths stored: {stored}")
    return stored


__all__ = [
    'LayoutStrategy',
    'LayoutEngine',
    'SafeEdgeChainLayout',
    'resolve_layout_strategy',
    'create_layout_engine',
    'build_layout',
]

# ContigWeaver v0.1.0
# Any usage is subject to this software's license.
