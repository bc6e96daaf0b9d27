#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
ContigWeaver v0.1.0

Relationship builder: turns k-mer hit clusters into graph edges and
embeddings.

For every query read (forward and reverse complement) the external hit
source supplies raw hits against candidate subjects. Only subjects with a
smaller index are considered so that each pair is processed once. The best
cluster per subject is filtered on overlap length, evidence span and
k-mer percentage, then classified by where the query lands on the subject:

    subject:        |=================|
    embedded:           |-------|
    query after:                 |----------|
    query before:  |-------|

Graph construction follows a single-writer design: worker threads compute
relationships without touching the graph and push them on a queue that one
writer thread drains into the graph.

Author: ContigWeaver Development Team
License: Dual License (Academic/Commercial) - See LICENSE_ACADEMIC.md and LICENSE_COMMERCIAL.md
"""

import queue
import threading
from concurrent.futures import ThreadPoolExecutor, wait
from typing import Callable, Dict, List, Optional, Tuple, Union
import logging

from .assembly_graph_module import AssemblyGraph, WorkerPoolTimeoutError
from .data_structures import AssemblyEdge, AssemblyEmbedded, KmerHit, KmerHitCluster
from .hit_clustering_module import DiagonalHitClusterer, simulate_alignment
from ..utils.sequence_utils import reverse_complement

logger = logging.getLogger(__name__)

Relationship = Union[AssemblyEdge, AssemblyEmbedded]
HitSource = Callable[[int, bool], Dict[int, List[KmerHit]]]

_STOP = object()


class RelationshipBuilder:
    """
    Build edges and embeddings of an AssemblyGraph from k-mer hits.

    Args:
        graph: Graph receiving the relationships
        min_kmer_percentage: Minimum percentage of shared k-mers relative to
            the self-hit expectation over the overlap
        min_overlap_proportion: Minimum overlap as a fraction of each read length
        min_evidence_proportion: Minimum evidence span as a fraction of the overlap
        kmer_length: K used to derive self-hit counts when none are supplied
        clusterer: Clustering primitive; a DiagonalHitClusterer by default
    """

    def __init__(
        self,
        graph: AssemblyGraph,
        min_kmer_percentage: float = 5,
        min_overlap_proportion: float = 0.05,
        min_evidence_proportion: float = 0.0,
        kmer_length: int = 15,
        clusterer: Optional[DiagonalHitClusterer] = None,
        log: Optional[logging.Logger] = None,
    ):
        self.graph = graph
        self.min_kmer_percentage = min_kmer_percentage
        self.min_overlap_proportion = min_overlap_proportion
        self.min_evidence_proportion = min_evidence_proportion
        self.kmer_length = kmer_length
        self.clusterer = clusterer or DiagonalHitClusterer(kmer_length=kmer_length)
        self.log = log or logger
        self.stats = {
            'clusters_evaluated': 0,
            'clusters_rejected': 0,
            'edges_added': 0,
            'embedded_added': 0,
        }

    # ========================================================================
    # Per query
    # ========================================================================

    def default_self_hits(self, query_length: int) -> int:
        return max(1, query_length - self.kmer_length + 1)

    def find_relationships(self, query_idx: int, query: str, query_rc: bool,
                           self_hits_count: int,
                           hits_by_subject: Dict[int, List[KmerHit]]) -> List[Relationship]:
        """
        Relationships supported by the hits of one query orientation.

        Reads the graph but never mutates it.

        Args:
            query_idx: Index of the query read
            query: Query characters in the searched orientation
            query_rc: True if *query* is the reverse complement of the read
            self_hits_count: Hits of the query against itself
            hits_by_subject: subject index -> [(query_pos, subject_pos), ...]
        """
        relationships, _, _ = self._find(query_idx, query, query_rc, self_hits_count,
                                         hits_by_subject)
        return relationships

    def _find(self, query_idx, query, query_rc, self_hits_count,
              hits_by_subject) -> Tuple[List[Relationship], int, int]:
        min_count = int(self.min_overlap_proportion * self.min_kmer_percentage
                        * self_hits_count / 100)
        answer: List[Relationship] = []
        evaluated = 0
        rejected = 0
        for subject_idx in sorted(hits_by_subject):
            if subject_idx >= query_idx:
                continue
            hits = hits_by_subject[subject_idx]
            if len(hits) < min_count:
                continue
            subject_length = self.graph.get_sequence_length(subject_idx)
            clusters = self.clusterer.cluster_hits(len(query), subject_idx, subject_length, hits)
            if not clusters:
                continue
            cluster = clusters[0]
            cluster.self_hits_count_query = self_hits_count
            evaluated += 1
            if not self.pass_filters(cluster):
                rejected += 1
                continue
            relationship = self.process_cluster(query_idx, query_rc, cluster)
            cluster.dispose_hits()
            if relationship is not None:
                answer.append(relationship)
        return answer, evaluated, rejected

    def pass_filters(self, cluster: KmerHitCluster) -> bool:
        """Overlap, evidence span and k-mer percentage filters."""
        query_length = cluster.query_length
        overlap = cluster.predicted_overlap
        if overlap <= 0:
            return False
        if overlap < self.min_overlap_proportion * query_length:
            return False
        if overlap < self.min_overlap_proportion * cluster.subject_length:
            return False
        query_evidence = cluster.query_evidence_end - cluster.query_evidence_start
        subject_evidence = cluster.subject_evidence_end - cluster.subject_evidence_start
        if query_evidence < self.min_evidence_proportion * overlap:
            return False
        if subject_evidence < self.min_evidence_proportion * overlap:
            return False
        overlap_self_count = overlap * cluster.self_hits_count_query / query_length
        if overlap_self_count <= 0:
            return False
        pct = 100.0 * cluster.num_different_kmers / overlap_self_count
        return pct >= self.min_kmer_percentage

    def process_cluster(self, query_idx: int, query_rc: bool,
                        cluster: KmerHitCluster) -> Optional[Relationship]:
        """Classify an accepted cluster as an embedding or an edge."""
        start_subject = cluster.subject_predicted_start
        end_subject = cluster.subject_predicted_end
        subject_length = cluster.subject_length
        if start_subject >= 0 and end_subject <= subject_length:
            return self._build_embedded(query_idx, query_rc, cluster)
        if start_subject >= 0:
            return self._build_query_after_subject_edge(query_idx, query_rc, cluster)
        if end_subject <= subject_length:
            return self._build_query_before_subject_edge(query_idx, query_rc, cluster)
        # Reads of near-identical length overhanging on both sides
        return self._build_embedded(query_idx, query_rc, cluster)

    def _query_evidence_forward(self, query_rc: bool, cluster: KmerHitCluster) -> Tuple[int, int]:
        if not query_rc:
            return cluster.query_evidence_start, cluster.query_evidence_end
        length = cluster.query_length
        return length - cluster.query_evidence_end, length - cluster.query_evidence_start

    def _build_embedded(self, query_idx, query_rc, cluster) -> AssemblyEmbedded:
        coverage, weighted_coverage, mismatches = simulate_alignment(cluster, self.kmer_length)
        return AssemblyEmbedded(
            sequence_id=query_idx,
            sequence_length=cluster.query_length,
            host_id=cluster.subject_idx,
            host_length=cluster.subject_length,
            host_start=cluster.subject_predicted_start,
            host_end=cluster.subject_predicted_end,
            reverse=query_rc,
            host_evidence_start=cluster.subject_evidence_start,
            host_evidence_end=cluster.subject_evidence_end,
            num_shared_kmers=cluster.num_different_kmers,
            coverage_shared_kmers=coverage,
            weighted_coverage_shared_kmers=weighted_coverage,
            mismatches=mismatches,
        )

    def _build_edge(self, vertex_first, vertex_second, first_is_subject: bool,
                    query_rc: bool, cluster: KmerHitCluster) -> Optional[AssemblyEdge]:
        if vertex_first is None or vertex_second is None:
            return None
        coverage, weighted_coverage, mismatches = simulate_alignment(cluster, self.kmer_length)
        query_evidence = self._query_evidence_forward(query_rc, cluster)
        subject_evidence = (cluster.subject_evidence_start, cluster.subject_evidence_end)
        first_evidence, second_evidence = ((subject_evidence, query_evidence) if first_is_subject
                                           else (query_evidence, subject_evidence))
        return AssemblyEdge(
            vertex1=vertex_first,
            vertex2=vertex_second,
            overlap=cluster.predicted_overlap,
            num_shared_kmers=cluster.num_different_kmers,
            coverage_shared_kmers=coverage,
            weighted_coverage_shared_kmers=weighted_coverage,
            mismatches=mismatches,
            overlap_standard_deviation=cluster.predicted_overlap_sd,
            vertex1_evidence_start=first_evidence[0],
            vertex1_evidence_end=first_evidence[1],
            vertex2_evidence_start=second_evidence[0],
            vertex2_evidence_end=second_evidence[1],
        )

    def _build_query_after_subject_edge(self, query_idx, query_rc, cluster):
        vertex_subject = self.graph.get_vertex(cluster.subject_idx, False)
        vertex_query = self.graph.get_vertex(query_idx, not query_rc)
        return self._build_edge(vertex_subject, vertex_query, True, query_rc, cluster)

    def _build_query_before_subject_edge(self, query_idx, query_rc, cluster):
        vertex_query = self.graph.get_vertex(query_idx, query_rc)
        vertex_subject = self.graph.get_vertex(cluster.subject_idx, True)
        return self._build_edge(vertex_query, vertex_subject, False, query_rc, cluster)

    # ========================================================================
    # Graph updates
    # ========================================================================

    def _apply(self, relationships: List[Relationship]):
        for relationship in relationships:
            if isinstance(relationship, AssemblyEdge):
                self.graph.add_edge(relationship)
                self.stats['edges_added'] += 1
                self.log.debug(f"Added edge {relationship}")
            else:
                self.graph.add_embedded(relationship)
                self.stats['embedded_added'] += 1
                self.log.debug(f"Added embedded {relationship}")

    def update_graph_with_kmer_hits(self, query_idx: int, query: str, query_rc: bool,
                                    self_hits_count: int,
                                    hits_by_subject: Dict[int, List[KmerHit]]) -> int:
        """Find and insert the relationships of one query orientation. Returns how many."""
        relationships, evaluated, rejected = self._find(
            query_idx, query, query_rc, self_hits_count, hits_by_subject)
        self.stats['clusters_evaluated'] += evaluated
        self.stats['clusters_rejected'] += rejected
        self._apply(relationships)
        return len(relationships)

    def _process_query(self, query_idx: int, hit_source: HitSource,
                       self_hits_source: Optional[Callable[[int], int]],
                       results: queue.Queue):
        forward = self.graph.get_sequence_characters(query_idx)
        if self_hits_source is not None:
            self_hits = self_hits_source(query_idx)
        else:
            self_hits = self.default_self_hits(len(forward))
        for query_rc in (False, True):
            query = reverse_complement(forward) if query_rc else forward
            hits = hit_source(query_idx, query_rc)
            if not hits:
                continue
            results.put(self._find(query_idx, query, query_rc, self_hits, hits))

    def _writer(self, results: queue.Queue, errors: List[BaseException]):
        while True:
            item = results.get()
            if item is _STOP:
                return
            if errors:
                continue
            relationships, evaluated, rejected = item
            self.stats['clusters_evaluated'] += evaluated
            self.stats['clusters_rejected'] += rejected
            try:
                self._apply(relationships)
            except Exception as e:
                errors.append(e)

    def build_from_hit_source(
        self,
        hit_source: HitSource,
        num_threads: int = 1,
        timeout_seconds_per_sequence: float = 10,
        self_hits_source: Optional[Callable[[int], int]] = None,
    ) -> Dict[str, int]:
        """
        Build all relationships of the graph.

        Args:
            hit_source: (query_idx, reverse) -> {subject_idx: [(query_pos, subject_pos)]}
            num_threads: Worker threads computing relationships
            timeout_seconds_per_sequence: Budget per read for the whole pool
            self_hits_source: query_idx -> self-hit count, derived from the
                read length when omitted

        Returns:
            Construction statistics

        Raises:
            WorkerPoolTimeoutError: If the workers do not finish in time
        """
        n = self.graph.num_sequences
        timeout = max(1.0, timeout_seconds_per_sequence * n)
        self.log.info(f"Building relationships for {n} sequences with {num_threads} threads")

        results: queue.Queue = queue.Queue()
        writer_errors: List[BaseException] = []
        writer = threading.Thread(target=self._writer, args=(results, writer_errors),
                                  name="graph-writer", daemon=True)
        writer.start()

        executor = ThreadPoolExecutor(max_workers=max(1, num_threads))
        try:
            futures = [executor.submit(self._process_query, idx, hit_source,
                                       self_hits_source, results)
                       for idx in range(n)]
            done, not_done = wait(futures, timeout=timeout)
            if not_done:
                for future in not_done:
                    future.cancel()
                raise WorkerPoolTimeoutError(
                    f"Relationship workers did not finish within {timeout:.0f} seconds "
                    f"({len(not_done)} of {n} queries pending)")
            for future in done:
                future.result()
        finally:
            executor.shutdown(wait=False, cancel_futures=True)
            results.put(_STOP)

        writer.join()
        if writer_errors:
            raise writer_errors[0]

        self.log.info(f"Clusters evaluated: {self.stats['clusters_evaluated']} "
                      f"rejected: {self.stats['clusters_rejected']} "
                      f"edges: {self.stats['edges_added']} "
                      f"embedded: {self.stats['embedded_added']}")
        return dict(self.stats)


__all__ = [
    'RelationshipBuilder',
    'Relationship',
    'HitSource',
]

# ContigWeaver v0.1.0
# Any usage is subject to this software's license.
