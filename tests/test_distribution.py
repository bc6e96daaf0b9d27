#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
ContigWeaver v0.1.0

Tests for empirical distributions and Normal approximations.

Author: ContigWeaver Development Team
License: Dual License (Academic/Commercial) - See LICENSE_ACADEMIC.md and LICENSE_COMMERCIAL.md
"""

import pytest

from contigweaver.utils.distribution import (
    Distribution,
    NormalFit,
    n_statistics,
    phred_score,
    round_half_up,
)


class TestDistribution:
    """Test the histogram-backed distribution."""

    def test_invalid_bins(self):
        """Bin length and range must be positive."""
        with pytest.raises(ValueError):
            Distribution(0, 10, 0)
        with pytest.raises(ValueError):
            Distribution(10, 10, 1)

    def test_empty(self):
        """Empty distributions report neutral values."""
        dist = Distribution(0, 10, 1)
        assert dist.count == 0
        assert dist.average == 0.0
        assert dist.variance == 0.0
        assert dist.local_mode(0, 10) == 0.0
        assert dist.estimated_standard_deviation_peak(5) == 0.0

    def test_moments(self):
        """Average and population variance."""
        dist = Distribution(0, 10, 1)
        dist.add_all([2, 4, 4, 4, 5, 5, 7, 9])
        assert dist.average == pytest.approx(5.0)
        assert dist.variance == pytest.approx(4.0)
        assert dist.min_observed == 2
        assert dist.max_observed == 9

    def test_histogram_clips_outliers(self):
        """Values outside the range land in the border bins."""
        dist = Distribution(0, 10, 2)
        dist.add_all([-3, 1, 9, 25])
        counts = dist.histogram()
        assert counts[0] == 2
        assert counts[-1] == 2
        assert dist.average == pytest.approx(8.0)

    def test_local_mode(self):
        """Most populated bin within the window, ties to the lowest bin."""
        dist = Distribution(0, 10, 1)
        dist.add_all([1.2, 1.5, 3.1, 3.3, 3.7, 8.1, 8.2, 8.3, 8.4])
        assert dist.local_mode(0, 10) == pytest.approx(8.5)
        assert dist.local_mode(0, 5) == pytest.approx(3.5)
        dist.add_all([1.9])
        assert dist.local_mode(0, 5) == pytest.approx(1.5)

    def test_local_mode_empty_window(self):
        """Windows without datapoints fall back to the average."""
        dist = Distribution(0, 10, 1)
        dist.add_all([2.0, 4.0])
        assert dist.local_mode(5.8, 5.9) == pytest.approx(3.0)

    def test_standard_deviation_peak(self):
        """Scaled median absolute deviation around the peak."""
        dist = Distribution(0, 100, 1)
        dist.add_all([8, 9, 10, 11, 12])
        assert dist.estimated_standard_deviation_peak(10) == pytest.approx(1.4826)

    def test_standard_deviation_peak_fallback(self):
        """A zero MAD falls back to the plain standard deviation."""
        dist = Distribution(0, 100, 1)
        dist.add_all([10, 10, 10, 10, 30])
        assert dist.estimated_standard_deviation_peak(10) == pytest.approx(8.0)


class TestNormalFit:
    """Test the Normal approximation."""

    def test_tails(self):
        """Tails of a standard Normal."""
        fit = NormalFit(0.0, 1.0)
        assert fit.cumulative(0.0) == pytest.approx(0.5)
        assert fit.upper_tail(1.96) == pytest.approx(0.025, abs=1e-3)
        assert fit.cumulative(1.0) + fit.upper_tail(1.0) == pytest.approx(1.0)

    def test_degenerate_variance(self):
        """A zero variance behaves like a step function."""
        fit = NormalFit(5.0, 0.0)
        assert fit.standard_deviation == 0.0
        assert fit.cumulative(4.0) == pytest.approx(0.0)
        assert fit.cumulative(6.0) == pytest.approx(1.0)


class TestScoresAndStatistics:
    """Test phred transform, rounding and N statistics."""

    def test_phred(self):
        """Phred of common probabilities."""
        assert phred_score(0.5) == 3
        assert phred_score(0.01) == 20
        assert phred_score(1.0) == 0

    def test_phred_capped(self):
        """Zero probabilities are capped."""
        assert phred_score(0.0) == 100

    def test_round_half_up(self):
        """Halves round up."""
        assert round_half_up(2.5) == 3
        assert round_half_up(3.5) == 4
        assert round_half_up(2.49) == 2

    def test_n_statistics(self):
        """N50 of a small set of contigs."""
        stats = n_statistics([100, 200, 300, 400])
        assert stats[50] == 300
        assert stats[10] == 400
        assert stats[90] == 200

    def test_n_statistics_empty(self):
        """No contigs, zero statistics."""
        assert n_statistics([])[50] == 0

# ContigWeaver v0.1.0
# Any usage is subject to this software's license.
