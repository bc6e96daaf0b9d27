#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
ContigWeaver v0.1.0

Assembly graph for overlap-layout-consensus assembly of long reads.

Each read owns a start and an end vertex joined by a same-sequence edge.
Overlaps between reads are edges between vertices of different reads, and
contained reads are stored as embedding relations against their host.

Storage is an arena: vertices are addressed by their dense unique id
(2 * index for the start, 2 * index + 1 for the end) and edges by a dense
edge id. Removing a vertex or an edge leaves a tombstone; adjacency lists
hold edge ids and drop tombstoned entries the next time they are read.

Author: ContigWeaver Development Team
License: Dual License (Academic/Commercial) - See LICENSE_ACADEMIC.md and LICENSE_COMMERCIAL.md
"""

import threading
from collections import deque
from dataclasses import replace
from typing import Dict, Iterable, List, Optional, Sequence, Tuple
import logging

import numpy as np

from .data_structures import (
    AssemblyEdge,
    AssemblyEmbedded,
    AssemblyVertex,
    vertex_unique_id,
)
from ..utils.distribution import Distribution, n_statistics

logger = logging.getLogger(__name__)


class GraphInvariantError(RuntimeError):
    """Raised when the graph is found in a state it can never legally reach."""
    pass


class PathInconsistencyError(GraphInvariantError):
    """Raised when consecutive path edges do not share a vertex."""
    pass


class WorkerPoolTimeoutError(RuntimeError):
    """Raised when a worker pool does not drain within its timeout."""
    pass


class AssemblyGraph:
    """
    Mutable overlap graph over an immutable collection of reads.

    Construction through add_edge / add_embedded and path registration
    through add_path are serialized by an internal lock. Everything else
    assumes a single caller.
    """

    def __init__(self, sequences: Sequence[str], ploidy: int = 1):
        """
        Create the graph with one vertex pair and one same-sequence edge per read.

        Args:
            sequences: Read characters, indexed by sequence id
            ploidy: Ploidy of the sample
        """
        self._sequences: List[str] = sequences if isinstance(sequences, list) else list(sequences)
        self.ploidy = ploidy
        n = len(self._sequences)

        self._vertices: List[Optional[AssemblyVertex]] = [None] * (2 * n)
        self._adjacency: List[List[int]] = [[] for _ in range(2 * n)]
        self._edges: List[Optional[AssemblyEdge]] = []
        self._num_live_edges = 0
        self._same_sequence_edges: List[Optional[int]] = [None] * n

        self._embedded_by_host: Dict[int, List[AssemblyEmbedded]] = {}
        self._embedded_by_sequence: Dict[int, List[AssemblyEmbedded]] = {}
        self.embedding_conflicts: Dict[Tuple[int, int], AssemblyEmbedded] = {}

        self._paths: List[List[AssemblyEdge]] = []
        self._lock = threading.Lock()

        for idx in range(n):
            self._add_vertex_pair(idx)

    def _add_vertex_pair(self, idx: int):
        length = len(self._sequences[idx])
        start = AssemblyVertex(sequence_index=idx, start=True, sequence_length=length)
        end = AssemblyVertex(sequence_index=idx, start=False, sequence_length=length)
        self._vertices[start.unique_id] = start
        self._vertices[end.unique_id] = end
        edge = AssemblyEdge(
            vertex1=start,
            vertex2=end,
            overlap=length,
            num_shared_kmers=length,
            coverage_shared_kmers=length,
            weighted_coverage_shared_kmers=length,
            mismatches=0,
            vertex1_evidence_start=0,
            vertex1_evidence_end=max(0, length - 1),
            vertex2_evidence_start=0,
            vertex2_evidence_end=max(0, length - 1),
        )
        self._insert_edge(edge)
        self._same_sequence_edges[idx] = edge.edge_id

    # ========================================================================
    # Sequences
    # ========================================================================

    @property
    def num_sequences(self) -> int:
        return len(self._sequences)

    @property
    def sequences(self) -> List[str]:
        """Sequence registry shared with subgraphs built from this graph."""
        return self._sequences

    def get_sequence_characters(self, idx: int) -> str:
        return self._sequences[idx]

    def get_sequence_length(self, idx: int) -> int:
        return len(self._sequences[idx])

    def set_sequence_characters(self, idx: int, characters: str):
        """
        Replace the characters of a read, typically after error correction.

        Cached vertex lengths and the same-sequence edge follow the new
        characters. Every other edge and embedding of the read describes the
        old characters and is removed; rebuild relationships to restore them.
        """
        if characters == self._sequences[idx]:
            return
        self._sequences[idx] = characters
        length = len(characters)
        for start in (True, False):
            vertex = self.get_vertex(idx, start)
            if vertex is None:
                continue
            vertex.sequence_length = length
            for edge in self.get_edges(vertex):
                if not edge.is_same_sequence_edge():
                    self.remove_edge(edge)
        if self._same_sequence_edges[idx] is not None:
            edge = self.get_same_sequence_edge(idx)
            edge.overlap = length
            edge.num_shared_kmers = length
            edge.coverage_shared_kmers = length
            edge.weighted_coverage_shared_kmers = length
            edge.vertex1_evidence_end = max(0, length - 1)
            edge.vertex2_evidence_end = max(0, length - 1)
        self.remove_embedded_relations(idx)

    def median_length(self) -> int:
        if not self._sequences:
            return 0
        return int(np.median([len(s) for s in self._sequences]))

    def cumulative_length(self) -> int:
        return sum(len(s) for s in self._sequences)

    # ========================================================================
    # Vertices
    # ========================================================================

    def get_vertex(self, idx: int, start: bool) -> Optional[AssemblyVertex]:
        """Live vertex of read *idx*, None if the read was removed or pruned."""
        return self._vertices[vertex_unique_id(idx, start)]

    def get_vertex_by_unique_id(self, unique_id: int) -> Optional[AssemblyVertex]:
        if unique_id < 0 or unique_id >= len(self._vertices):
            return None
        return self._vertices[unique_id]

    def get_vertices(self) -> List[AssemblyVertex]:
        return [v for v in self._vertices if v is not None]

    @property
    def num_vertices(self) -> int:
        return sum(1 for v in self._vertices if v is not None)

    def is_live(self, idx: int) -> bool:
        return self._vertices[vertex_unique_id(idx, True)] is not None

    def remove_vertices(self, idx: int):
        """
        Remove both vertices of read *idx* and every edge touching them.

        Embedding relations are not affected; see remove_embedded_relations.
        """
        for start in (True, False):
            uid = vertex_unique_id(idx, start)
            if self._vertices[uid] is None:
                continue
            for edge_id in self._adjacency[uid]:
                edge = self._edges[edge_id]
                if edge is not None:
                    self._tombstone_edge(edge)
            self._adjacency[uid] = []
            self._vertices[uid] = None
        self._same_sequence_edges[idx] = None

    def update_vertex_degrees(self):
        """Snapshot the current degree of every vertex as its unfiltered degree."""
        for vertex in self.get_vertices():
            vertex.degree_unfiltered = len(self.get_edges(vertex))

    def vertex_degree_distribution(self) -> Distribution:
        distribution = Distribution(0, 100, 1)
        for vertex in self.get_vertices():
            distribution.add(len(self.get_edges(vertex)))
        return distribution

    # ========================================================================
    # Edges
    # ========================================================================

    def _insert_edge(self, edge: AssemblyEdge):
        edge.edge_id = len(self._edges)
        self._edges.append(edge)
        self._adjacency[edge.vertex1.unique_id].append(edge.edge_id)
        self._adjacency[edge.vertex2.unique_id].append(edge.edge_id)
        self._num_live_edges += 1

    def _tombstone_edge(self, edge: AssemblyEdge):
        if self._edges[edge.edge_id] is None:
            return
        self._edges[edge.edge_id] = None
        self._num_live_edges -= 1

    def add_edge(self, edge: AssemblyEdge) -> AssemblyEdge:
        """Insert an edge between two live vertices. Returns the stored edge."""
        with self._lock:
            for vertex in (edge.vertex1, edge.vertex2):
                if self.get_vertex_by_unique_id(vertex.unique_id) is None:
                    raise GraphInvariantError(f"Edge references removed vertex {vertex}")
            # Share the live vertex objects so degree snapshots are visible everywhere
            edge.vertex1 = self._vertices[edge.vertex1.unique_id]
            edge.vertex2 = self._vertices[edge.vertex2.unique_id]
            self._insert_edge(edge)
        return edge

    def remove_edge(self, edge: AssemblyEdge):
        self._tombstone_edge(edge)
        if edge.is_same_sequence_edge():
            idx = edge.vertex1.sequence_index
            if self._same_sequence_edges[idx] == edge.edge_id:
                self._same_sequence_edges[idx] = None

    def get_edges(self, vertex: AssemblyVertex) -> List[AssemblyEdge]:
        """Live edges of *vertex*, compacting its adjacency list on the way."""
        uid = vertex.unique_id
        if self._vertices[uid] is None:
            return []
        adjacency = self._adjacency[uid]
        live = [eid for eid in adjacency if self._edges[eid] is not None]
        if len(live) != len(adjacency):
            self._adjacency[uid] = live
        return [self._edges[eid] for eid in live]

    def get_edges_all(self) -> List[AssemblyEdge]:
        return [e for e in self._edges if e is not None]

    @property
    def num_edges(self) -> int:
        return self._num_live_edges

    def get_edge(self, vertex1: AssemblyVertex, vertex2: AssemblyVertex) -> Optional[AssemblyEdge]:
        """First live edge joining the two vertices, if any."""
        for edge in self.get_edges(vertex1):
            if edge.connecting_vertex(vertex1) == vertex2:
                return edge
        return None

    def get_same_sequence_edge(self, idx: int) -> AssemblyEdge:
        """
        Edge joining the two vertices of read *idx*.

        Raises:
            GraphInvariantError: If the read has no same-sequence edge
        """
        edge_id = self._same_sequence_edges[idx]
        edge = self._edges[edge_id] if edge_id is not None else None
        if edge is None:
            raise GraphInvariantError(f"Same-sequence edge not found for sequence {idx}")
        return edge

    # ========================================================================
    # Embeddings
    # ========================================================================

    def add_embedded(self, embedded: AssemblyEmbedded):
        with self._lock:
            self._embedded_by_host.setdefault(embedded.host_id, []).append(embedded)
            self._embedded_by_sequence.setdefault(embedded.sequence_id, []).append(embedded)

    def remove_embedded(self, embedded: AssemblyEmbedded):
        for index, key in ((self._embedded_by_host, embedded.host_id),
                           (self._embedded_by_sequence, embedded.sequence_id)):
            relations = index.get(key)
            if not relations:
                continue
            remaining = [e for e in relations if e is not embedded]
            if remaining:
                index[key] = remaining
            else:
                del index[key]

    def remove_embedded_relations(self, idx: int):
        """Drop every embedding where read *idx* is the host or the embedded read."""
        relations = list(self._embedded_by_host.get(idx, []))
        relations.extend(self._embedded_by_sequence.get(idx, []))
        for embedded in relations:
            self.remove_embedded(embedded)

    def is_embedded(self, idx: int) -> bool:
        return bool(self._embedded_by_sequence.get(idx))

    def get_embedded_by_host(self, host_id: int) -> List[AssemblyEmbedded]:
        return list(self._embedded_by_host.get(host_id, []))

    def get_embedded_by_sequence(self, idx: int) -> List[AssemblyEmbedded]:
        return list(self._embedded_by_sequence.get(idx, []))

    def get_embedded_all(self) -> List[AssemblyEmbedded]:
        return [e for relations in self._embedded_by_sequence.values() for e in relations]

    @property
    def num_embedded(self) -> int:
        return sum(len(relations) for relations in self._embedded_by_sequence.values())

    def prune_embedded_sequences(self) -> int:
        """Remove the vertices of every embedded read. Returns the number pruned."""
        pruned = 0
        for idx in list(self._embedded_by_sequence.keys()):
            if self.is_live(idx):
                self.remove_vertices(idx)
                pruned += 1
        logger.info(f"Pruned {pruned} embedded sequences. Vertices: {self.num_vertices} "
                    f"edges: {self.num_edges}")
        return pruned

    def get_all_embedded(self, root: int) -> List[AssemblyEmbedded]:
        """
        Reads embedded in *root* directly or through a chain of hosts.

        Returns composite relations with coordinates and strand expressed
        relative to *root*. A read reached through a second parent is not
        followed again; the relation is recorded in embedding_conflicts.
        """
        answer: List[AssemblyEmbedded] = []
        visited = {root}
        agenda = deque()
        for embedded in self._embedded_by_host.get(root, []):
            agenda.append(embedded)
        conflicts = 0
        while agenda:
            relation = agenda.popleft()
            if relation.sequence_id in visited:
                key = (relation.sequence_id, relation.host_id)
                if key not in self.embedding_conflicts:
                    self.embedding_conflicts[key] = relation
                conflicts += 1
                continue
            visited.add(relation.sequence_id)
            answer.append(relation)
            for child in self._embedded_by_host.get(relation.sequence_id, []):
                agenda.append(self._compose_embedded(relation, child))
        if conflicts:
            logger.warning(f"Sequence {root}: {conflicts} embedded reads reached "
                           f"through more than one host")
        return answer

    @staticmethod
    def _compose_embedded(parent: AssemblyEmbedded, child: AssemblyEmbedded) -> AssemblyEmbedded:
        """Express *child* (embedded in parent's read) relative to parent's host."""
        if parent.reverse:
            start = parent.host_end - child.host_end
            end = parent.host_end - child.host_start
            ev_start = parent.host_end - child.host_evidence_end
            ev_end = parent.host_end - child.host_evidence_start
        else:
            start = parent.host_start + child.host_start
            end = parent.host_start + child.host_end
            ev_start = parent.host_start + child.host_evidence_start
            ev_end = parent.host_start + child.host_evidence_end
        return replace(
            child,
            host_id=parent.host_id,
            host_length=parent.host_length,
            host_start=start,
            host_end=end,
            host_evidence_start=ev_start,
            host_evidence_end=ev_end,
            reverse=parent.reverse != child.reverse,
        )

    # ========================================================================
    # Paths
    # ========================================================================

    def add_path(self, path: List[AssemblyEdge]):
        """
        Register a layout path and flag its edges as layout edges.

        Raises:
            PathInconsistencyError: If consecutive edges do not share a vertex
        """
        for previous, current in zip(path, path[1:]):
            if previous.shared_vertex(current) is None:
                raise PathInconsistencyError(
                    f"Edges {previous} and {current} do not share a vertex")
        with self._lock:
            for edge in path:
                edge.layout_edge = True
            self._paths.append(list(path))

    def get_paths(self) -> List[List[AssemblyEdge]]:
        return list(self._paths)

    def path_length(self, path: List[AssemblyEdge]) -> int:
        """Length of the sequence spelled by *path*: first read plus non-overlapping suffixes."""
        seen = set()
        total = 0
        for edge in path:
            if edge.is_same_sequence_edge():
                idx = edge.vertex1.sequence_index
                if idx not in seen:
                    seen.add(idx)
                    total += self.get_sequence_length(idx)
            else:
                total -= edge.overlap
        return total

    def estimate_n_statistics_from_paths(self) -> Dict[int, int]:
        lengths = [self.path_length(path) for path in self._paths]
        stats = n_statistics(lengths)
        logger.info(f"Paths: {len(lengths)} N50: {stats[50]} N90: {stats[90]}")
        return stats

    # ========================================================================
    # Subgraphs
    # ========================================================================

    def build_subgraph(self, sequence_ids: Iterable[int]) -> 'AssemblyGraph':
        """
        Graph restricted to *sequence_ids*.

        The sequence registry is shared; vertices, edges, adjacency and
        embeddings are copies.
        """
        keep = set(sequence_ids)
        subgraph = AssemblyGraph(self._sequences, ploidy=self.ploidy)
        for idx in range(self.num_sequences):
            if idx not in keep or not self.is_live(idx):
                subgraph.remove_vertices(idx)
        for edge in self.get_edges_all():
            if edge.is_same_sequence_edge():
                continue
            if edge.vertex1.sequence_index not in keep or edge.vertex2.sequence_index not in keep:
                continue
            subgraph.add_edge(replace(edge, edge_id=-1, layout_edge=False))
        for embedded in self.get_embedded_all():
            if embedded.sequence_id in keep and embedded.host_id in keep:
                subgraph.add_embedded(replace(embedded))
        return subgraph

    def __repr__(self) -> str:
        return (f"AssemblyGraph(sequences={self.num_sequences}, vertices={self.num_vertices}, "
                f"edges={self.num_edges}, embedded={self.num_embedded}, paths={len(self._paths)})")


__all__ = [
    'AssemblyGraph',
    'GraphInvariantError',
    'PathInconsistencyError',
    'WorkerPoolTimeoutError',
]

# ContigWeaver v0.1.0
# Any usage is subject to this software's license.
