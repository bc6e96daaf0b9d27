#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
ContigWeaver v0.1.0

Tests for k-mer hit clustering.

Author: ContigWeaver Development Team
License: Dual License (Academic/Commercial) - See LICENSE_ACADEMIC.md and LICENSE_COMMERCIAL.md
"""

import pytest

from contigweaver.assembly_core.hit_clustering_module import (
    DiagonalHitClusterer,
    simulate_alignment,
)


def _diagonal_hits(diagonal, query_positions):
    return [(q, q + diagonal) for q in query_positions]


class TestDiagonalHitClusterer:
    """Test grouping of hits by diagonal."""

    def test_band_width(self):
        """Band width scales with the query length with a floor."""
        clusterer = DiagonalHitClusterer(max_diagonal_deviation=0.1, min_band=50)
        assert clusterer.band_width(100) == 50
        assert clusterer.band_width(2000) == 200

    def test_empty_hits(self):
        """No hits, no clusters."""
        assert DiagonalHitClusterer().cluster_hits(1000, 0, 1000, []) == []

    def test_overlap_cluster(self):
        """A suffix-prefix overlap predicts the overlapping query span."""
        hits = _diagonal_hits(600, range(0, 386))
        clusters = DiagonalHitClusterer(kmer_length=15).cluster_hits(1000, 3, 1000, hits)
        assert len(clusters) == 1
        cluster = clusters[0]
        assert cluster.subject_idx == 3
        assert cluster.subject_predicted_start == 600
        assert cluster.subject_predicted_end == 1600
        assert (cluster.query_predicted_start, cluster.query_predicted_end) == (0, 400)
        assert cluster.predicted_overlap == 400
        assert (cluster.query_evidence_start, cluster.query_evidence_end) == (0, 400)
        assert (cluster.subject_evidence_start, cluster.subject_evidence_end) == (600, 1000)
        assert cluster.num_different_kmers == 386
        assert cluster.weighted_count == pytest.approx(386.0)
        assert cluster.predicted_overlap_sd == pytest.approx(0.0)

    def test_query_before_subject(self):
        """A negative diagonal places the query before the subject."""
        hits = _diagonal_hits(-600, range(600, 986))
        cluster = DiagonalHitClusterer().cluster_hits(1000, 0, 1000, hits)[0]
        assert cluster.subject_predicted_start == -600
        assert cluster.subject_predicted_end == 400
        assert (cluster.query_predicted_start, cluster.query_predicted_end) == (600, 1000)

    def test_spurious_hits_separated(self):
        """Hits on a distant diagonal form a separate, smaller cluster."""
        hits = _diagonal_hits(600, range(0, 300)) + _diagonal_hits(-300, range(500, 510))
        clusters = DiagonalHitClusterer().cluster_hits(1000, 0, 1000, hits)
        assert len(clusters) == 2
        assert clusters[0].num_different_kmers == 300
        assert clusters[1].num_different_kmers == 10

    def test_duplicate_hits_ignored(self):
        """Repeated identical hits count once."""
        hits = _diagonal_hits(600, range(0, 100))
        clusters = DiagonalHitClusterer().cluster_hits(1000, 0, 1000, hits + hits)
        assert clusters[0].num_different_kmers == 100

    def test_repeated_query_kmer_weighted(self):
        """A query k-mer hitting twice within the band is kept once and weighted down."""
        hits = _diagonal_hits(600, range(0, 10)) + [(5, 610)]
        cluster = DiagonalHitClusterer().cluster_hits(1000, 0, 1000, hits)[0]
        assert cluster.num_different_kmers == 10
        assert cluster.weighted_count == pytest.approx(9.5)


class TestSimulateAlignment:
    """Test alignment statistics derived from clusters."""

    def _cluster(self, hits):
        return DiagonalHitClusterer(kmer_length=15).cluster_hits(1000, 0, 1000, hits)[0]

    def test_contiguous_hits(self):
        """Contiguous hits on one diagonal have no mismatches."""
        cluster = self._cluster(_diagonal_hits(600, range(0, 386)))
        assert simulate_alignment(cluster, 15) == (400, 400, 0)

    def test_coverage_gap(self):
        """An uncovered gap counts as one mismatch."""
        hits = _diagonal_hits(600, range(0, 100)) + _diagonal_hits(600, range(200, 300))
        coverage, weighted, mismatches = simulate_alignment(self._cluster(hits), 15)
        assert coverage == 228
        assert weighted == 228
        assert mismatches == 1

    def test_diagonal_shift(self):
        """A diagonal shift between consecutive hits counts as indels."""
        hits = _diagonal_hits(600, range(0, 50)) + _diagonal_hits(602, range(50, 100))
        _, _, mismatches = simulate_alignment(self._cluster(hits), 15)
        assert mismatches == 2

    def test_disposed_cluster(self):
        """Clusters without hits yield zero statistics."""
        cluster = self._cluster(_diagonal_hits(600, range(0, 50)))
        cluster.dispose_hits()
        assert simulate_alignment(cluster, 15) == (0, 0, 0)

# ContigWeaver v0.1.0
# Any usage is subject to this software's license.
