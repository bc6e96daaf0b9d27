#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
ContigWeaver v0.1.0

Empirical distributions and Normal approximations used to score graph
relationships.

Distribution collects raw datapoints and exposes a binned view (local
modes) next to robust spread estimates. NormalFit wraps scipy's normal
distribution; its scale never drops below MIN_SCALE.

Author: ContigWeaver Development Team
License: Dual License (Academic/Commercial) - See LICENSE_ACADEMIC.md and LICENSE_COMMERCIAL.md
"""

import math
from dataclasses import dataclass
from typing import Iterable, List

import numpy as np
from scipy.stats import norm

MIN_SCALE = 1e-9
MAX_PHRED = 100
MIN_PROBABILITY = 1e-10


class Distribution:
    """
    Histogram-backed empirical distribution.

    Values outside [min_value, max_value] are kept for moments but clipped
    into the first or last bin of the histogram.
    """

    def __init__(self, min_value: float, max_value: float, bin_length: float):
        if bin_length <= 0:
            raise ValueError(f"bin_length must be > 0, got {bin_length}")
        if max_value <= min_value:
            raise ValueError(f"max_value must be > min_value, got [{min_value}, {max_value}]")
        self.min_value = min_value
        self.max_value = max_value
        self.bin_length = bin_length
        self.num_bins = int(math.ceil((max_value - min_value) / bin_length))
        self._values: List[float] = []

    def add(self, value: float):
        """Add one datapoint."""
        self._values.append(float(value))

    def add_all(self, values: Iterable[float]):
        """Add several datapoints."""
        for value in values:
            self.add(value)

    @property
    def count(self) -> int:
        return len(self._values)

    @property
    def average(self) -> float:
        if not self._values:
            return 0.0
        return float(np.mean(self._values))

    @property
    def variance(self) -> float:
        if not self._values:
            return 0.0
        return float(np.var(self._values))

    @property
    def min_observed(self) -> float:
        if not self._values:
            return self.min_value
        return float(np.min(self._values))

    @property
    def max_observed(self) -> float:
        if not self._values:
            return self.min_value
        return float(np.max(self._values))

    def histogram(self) -> np.ndarray:
        """Counts per bin."""
        counts = np.zeros(self.num_bins, dtype=np.int64)
        if not self._values:
            return counts
        values = np.asarray(self._values)
        idx = np.floor((values - self.min_value) / self.bin_length).astype(np.int64)
        idx = np.clip(idx, 0, self.num_bins - 1)
        np.add.at(counts, idx, 1)
        return counts

    def bin_center(self, index: int) -> float:
        return self.min_value + (index + 0.5) * self.bin_length

    def local_mode(self, lower: float, upper: float) -> float:
        """
        Center of the most populated bin whose center lies in [lower, upper].

        Ties resolve to the lowest bin. Falls back to the average when no
        datapoint lands in the window.
        """
        counts = self.histogram()
        best_index = -1
        best_count = 0
        for i in range(self.num_bins):
            center = self.bin_center(i)
            if center < lower:
                continue
            if center > upper:
                break
            if counts[i] > best_count:
                best_count = counts[i]
                best_index = i
        if best_index < 0:
            return self.average
        return self.bin_center(best_index)

    def estimated_standard_deviation_peak(self, peak: float) -> float:
        """
        Spread of the datapoints around *peak* as the scaled median
        absolute deviation.
        """
        if not self._values:
            return 0.0
        deviations = np.abs(np.asarray(self._values) - peak)
        mad = float(np.median(deviations))
        if mad > 0:
            return 1.4826 * mad
        return math.sqrt(self.variance)

    def __repr__(self) -> str:
        return (f"Distribution(count={self.count}, average={self.average:.3f}, "
                f"variance={self.variance:.3f})")


@dataclass(frozen=True)
class NormalFit:
    """Normal approximation (mean, variance) of a relationship metric."""
    mean: float
    variance: float

    @property
    def standard_deviation(self) -> float:
        return math.sqrt(max(self.variance, 0.0))

    @property
    def _scale(self) -> float:
        return max(self.standard_deviation, MIN_SCALE)

    def cumulative(self, value: float) -> float:
        """Lower-tail probability P(X <= value)."""
        return float(norm.cdf(value, loc=self.mean, scale=self._scale))

    def upper_tail(self, value: float) -> float:
        """Upper-tail probability P(X > value)."""
        return float(norm.sf(value, loc=self.mean, scale=self._scale))


def phred_score(probability: float) -> int:
    """
    Phred transform -10*log10(p), rounded and capped.

    Example:
        >>> phred_score(0.5)
        3
    """
    probability = min(1.0, max(MIN_PROBABILITY, probability))
    return min(MAX_PHRED, int(round(-10.0 * math.log10(probability))))


def round_half_up(value: float) -> int:
    """Round half up, the way integer scores are reported."""
    return int(math.floor(value + 0.5))


def n_statistics(lengths: Iterable[int]) -> dict:
    """
    N10..N90 of a set of lengths.

    Returns a dict mapping 10, 20, ..., 90 to the length at which the
    cumulative sum of descending lengths reaches that percentage.
    """
    ordered = sorted((int(x) for x in lengths), reverse=True)
    total = sum(ordered)
    answer = {}
    for pct in range(10, 100, 10):
        target = total * pct / 100.0
        cumulative = 0
        value = 0
        for length in ordered:
            cumulative += length
            value = length
            if cumulative >= target:
                break
        answer[pct] = value if total > 0 else 0
    return answer


__all__ = [
    'Distribution',
    'NormalFit',
    'phred_score',
    'round_half_up',
    'n_statistics',
]

# ContigWeaver v0.1.0
# Any usage is subject to this software's license.
