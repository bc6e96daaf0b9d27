#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
ContigWeaver v0.1.0

Path consensus with read realignment and variant-based polishing.

For each layout path the raw consensus is stitched from the path reads:
the first read in full, then for every overlap edge the suffix of the next
read beyond the predicted overlap. Each path read and the reads embedded
in it are aligned back to the tail of the growing consensus with a k-mer
seeded aligner (edlib for the final alignment). A pileup of the
alignments calls variants and homozygous alternative calls are applied to
the raw consensus.

Author: ContigWeaver Development Team
License: Dual License (Academic/Commercial) - See LICENSE_ACADEMIC.md and LICENSE_COMMERCIAL.md
"""

import re
from collections import Counter
from concurrent.futures import ThreadPoolExecutor, wait
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Tuple
import logging

import edlib

from .assembly_graph_module import (
    AssemblyGraph,
    PathInconsistencyError,
    WorkerPoolTimeoutError,
)
from .data_structures import AssemblyEdge, AssemblyVertex
from ..utils.sequence_utils import extract_unique_kmers, reverse_complement

logger = logging.getLogger(__name__)

_CIGAR_RE = re.compile(r'(\d+)([=XMIDS])')
_MATCH_OPS = ('=', 'X', 'M')


# ============================================================================
# Alignments
# ============================================================================

@dataclass
class ReadAlignment:
    """
    Alignment of an oriented read to a draft sequence.

    Attributes:
        read_id: Index of the read
        position: Zero based start on the draft
        cigar: Extended CIGAR (=, X, I, D)
        characters: Read characters in the aligned orientation
        reverse: True if the read was reverse complemented
        edit_distance: Edit distance of the alignment
    """
    read_id: int
    position: int
    cigar: str
    characters: str
    reverse: bool = False
    edit_distance: int = 0

    def columns(self) -> List[str]:
        """One operation per alignment column."""
        return expand_cigar(self.cigar)

    @property
    def reference_end(self) -> int:
        return self.position + sum(1 for c in self.columns() if c in _MATCH_OPS or c == 'D')


def expand_cigar(cigar: str) -> List[str]:
    """
    Expand a CIGAR string into one operation per column.

    Example:
        >>> expand_cigar("3=1I2=")
        ['=', '=', '=', 'I', '=', '=']
    """
    columns = []
    for length, op in _CIGAR_RE.findall(cigar):
        columns.extend(op * int(length))
    return columns


def left_align_indels(columns: List[str], reference: str, read: str,
                      position: int) -> List[str]:
    """
    Shift every indel run to its leftmost equivalent placement.

    Reads disagreeing only on where a gap sits inside a homopolymer or a
    tandem repeat end up voting for the same pileup event.
    """
    cols = list(columns)
    ref_at = []
    read_at = []
    r = position
    q = 0
    for c in cols:
        ref_at.append(r)
        read_at.append(q)
        if c in _MATCH_OPS or c == 'D':
            r += 1
        if c in _MATCH_OPS or c in 'IS':
            q += 1

    i = 0
    while i < len(cols):
        op = cols[i]
        if op not in 'ID':
            i += 1
            continue
        j = i
        while j < len(cols) and cols[j] == op:
            j += 1
        length = j - i
        while i > 0 and cols[i - 1] == '=':
            r0 = ref_at[i - 1]
            q0 = read_at[i - 1]
            if op == 'D':
                if r0 + length >= len(reference) or reference[r0] != reference[r0 + length]:
                    break
                for k in range(length):
                    ref_at[i - 1 + k] = r0 + k
                    read_at[i - 1 + k] = q0
                ref_at[j - 1] = r0 + length
                read_at[j - 1] = q0
            else:
                if q0 + length >= len(read) or read[q0] != read[q0 + length]:
                    break
                for k in range(length):
                    ref_at[i - 1 + k] = r0
                    read_at[i - 1 + k] = q0 + k
                ref_at[j - 1] = r0
                read_at[j - 1] = q0 + length
            cols[i - 1:j] = [op] * length + ['=']
            i -= 1
            j -= 1
        i = j
    return cols


class KmerSeededAligner:
    """
    Align reads to a draft sequence using unique k-mers as seeds.

    The most voted diagonal among k-mer hits anchors the read; edlib then
    aligns it in infix mode against the anchored window of the draft.

    Args:
        kmer_length: Seed length
        min_votes: Minimum k-mer hits supporting the anchor
        padding_fraction: Extra draft bp around the anchored window, as a
            fraction of the read length
    """

    def __init__(self, kmer_length: int = 15, min_votes: int = 2,
                 padding_fraction: float = 0.1, min_padding: int = 20):
        self.kmer_length = kmer_length
        self.min_votes = min_votes
        self.padding_fraction = padding_fraction
        self.min_padding = min_padding

    def extract_unique_kmers(self, draft: str, start: int, end: int) -> Dict[str, int]:
        return extract_unique_kmers(draft, self.kmer_length, start, end)

    def _find_best_anchor(self, read: str, unique_kmers: Dict[str, int]) -> Optional[int]:
        k = self.kmer_length
        votes: Counter = Counter()
        read_upper = read.upper()
        for i in range(len(read_upper) - k + 1):
            draft_pos = unique_kmers.get(read_upper[i:i + k])
            if draft_pos is not None:
                votes[draft_pos - i] += 1
        if not votes:
            return None
        offset, count = votes.most_common(1)[0]
        if count < self.min_votes:
            return None
        return offset

    def align_read(self, draft: str, read: str, unique_kmers: Dict[str, int],
                   min_proportion: float = 0.5, read_id: int = -1,
                   reverse: bool = False) -> Optional[ReadAlignment]:
        """
        Align *read* to *draft*. None if no anchor is found or fewer than
        min_proportion of the read bases align.
        """
        if not read:
            return None
        offset = self._find_best_anchor(read, unique_kmers)
        if offset is None:
            return None
        padding = max(self.min_padding, int(self.padding_fraction * len(read)))
        window_start = max(0, offset - padding)
        window_end = min(len(draft), offset + len(read) + padding)
        if window_end <= window_start:
            return None
        result = edlib.align(read.upper(), draft[window_start:window_end].upper(),
                             mode="HW", task="path")
        distance = result['editDistance']
        if distance < 0 or not result['locations']:
            return None
        if (len(read) - distance) / len(read) < min_proportion:
            return None
        location_start = result['locations'][0][0]
        return ReadAlignment(
            read_id=read_id,
            position=window_start + location_start,
            cigar=result['cigar'],
            characters=read,
            reverse=reverse,
            edit_distance=distance,
        )


# ============================================================================
# Variant calling
# ============================================================================

class Zygosity(Enum):
    HOMOZYGOUS_ALT = "homozygous_alt"
    HETEROZYGOUS = "heterozygous"
    UNDECIDED = "undecided"


@dataclass
class CalledVariant:
    """
    Variant called on a draft sequence.

    Attributes:
        position: One based first draft position covered by *reference*
        reference: Draft allele
        alternative: Called allele; empty for a deletion
        zygosity: Call zygosity
        depth: Reads covering the position
        alternative_count: Reads supporting the alternative allele
    """
    position: int
    reference: str
    alternative: str
    zygosity: Zygosity
    depth: int = 0
    alternative_count: int = 0

    @property
    def last(self) -> int:
        return self.position + len(self.reference) - 1

    def is_homozygous_alt(self) -> bool:
        return self.zygosity == Zygosity.HOMOZYGOUS_ALT


class PileupVariantCaller:
    """
    Per-position pileup of aligned reads and allele-fraction variant calls.

    Each read contributes one allele per draft position: the aligned base,
    an empty allele for a deleted base, or the base followed by the bases
    inserted after it.

    Args:
        min_depth: Coverage needed for a decided call
        homozygous_fraction: Alternative fraction of a homozygous call
        heterozygous_fraction: Minimum fraction of both alleles in a heterozygous call
        max_alignments_per_start: Alignments kept per draft start position
    """

    def __init__(self, min_depth: int = 3, homozygous_fraction: float = 0.8,
                 heterozygous_fraction: float = 0.2, max_alignments_per_start: int = 100):
        self.min_depth = min_depth
        self.homozygous_fraction = homozygous_fraction
        self.heterozygous_fraction = heterozygous_fraction
        self.max_alignments_per_start = max_alignments_per_start

    def build_pileup(self, draft: str, alignments: List[ReadAlignment]) -> Dict[int, Counter]:
        pileup: Dict[int, Counter] = {}
        per_start: Counter = Counter()
        for aln in sorted(alignments, key=lambda a: a.position):
            per_start[aln.position] += 1
            if per_start[aln.position] > self.max_alignments_per_start:
                continue
            columns = left_align_indels(aln.columns(), draft, aln.characters, aln.position)
            observed: Dict[int, str] = {}
            r = aln.position
            q = 0
            last_ref = None
            for c in columns:
                if c in _MATCH_OPS:
                    if r < len(draft) and q < len(aln.characters):
                        observed[r] = aln.characters[q].upper()
                        last_ref = r
                    r += 1
                    q += 1
                elif c == 'D':
                    if r < len(draft):
                        observed[r] = ''
                        last_ref = r
                    r += 1
                elif c == 'I':
                    if last_ref is not None and q < len(aln.characters):
                        observed[last_ref] += aln.characters[q].upper()
                    q += 1
                else:
                    q += 1
            for pos, allele in observed.items():
                pileup.setdefault(pos, Counter())[allele] += 1
        return pileup

    def call_variants(self, draft: str, alignments: List[ReadAlignment],
                      pileup: Optional[Dict[int, Counter]] = None) -> List[CalledVariant]:
        """Variants sorted by position. *pileup* defaults to the pileup of *alignments*."""
        if pileup is None:
            pileup = self.build_pileup(draft, alignments)
        variants = []
        for pos in sorted(pileup):
            counts = pileup[pos]
            reference = draft[pos].upper()
            depth = sum(counts.values())
            alternatives = [(allele, n) for allele, n in counts.most_common() if allele != reference]
            if not alternatives:
                continue
            alternative, alt_count = alternatives[0]
            ref_count = counts.get(reference, 0)
            if depth < self.min_depth:
                if alt_count > ref_count:
                    variants.append(CalledVariant(pos + 1, draft[pos], alternative,
                                                  Zygosity.UNDECIDED, depth, alt_count))
                continue
            if alt_count >= self.homozygous_fraction * depth:
                zygosity = Zygosity.HOMOZYGOUS_ALT
            elif (alt_count >= self.heterozygous_fraction * depth
                  and ref_count >= self.heterozygous_fraction * depth):
                zygosity = Zygosity.HETEROZYGOUS
            else:
                continue
            variants.append(CalledVariant(pos + 1, draft[pos], alternative, zygosity,
                                          depth, alt_count))
        return variants


def apply_variants(draft: str, variants: List[CalledVariant]) -> str:
    """
    Rewrite *draft* with its homozygous alternative calls.

    Spans between calls are copied verbatim. Heterozygous and undecided
    calls leave the draft allele.

    Example:
        >>> v = CalledVariant(5, "A", "G", Zygosity.HOMOZYGOUS_ALT)
        >>> apply_variants("ACGTACGTTTTT", [v])
        'ACGTGCGTTTTT'
    """
    pieces = []
    next_pos = 1
    for call in sorted(variants, key=lambda v: v.position):
        if not call.is_homozygous_alt():
            continue
        if call.position < next_pos:
            continue
        pieces.append(draft[next_pos - 1:call.position - 1])
        pieces.append(call.alternative)
        next_pos = call.last + 1
    pieces.append(draft[next_pos - 1:])
    return ''.join(pieces)


# ============================================================================
# Consensus
# ============================================================================

@dataclass
class ConsensusStats:
    total_reads: int = 0
    aligned_reads: int = 0
    unaligned_reads: int = 0
    skipped_overlaps: int = 0
    variants_called: int = 0
    variants_applied: int = 0


class ConsensusBuilder:
    """
    Build one polished sequence per layout path.

    Args:
        aligner: Read aligner
        variant_caller: Pileup variant caller
        min_aligned_proportion: Minimum aligned fraction of a read
        num_threads: Paths processed in parallel
        timeout_seconds_per_sequence: Budget per read for the whole pool
    """

    def __init__(self, aligner: Optional[KmerSeededAligner] = None,
                 variant_caller: Optional[PileupVariantCaller] = None,
                 min_aligned_proportion: float = 0.5, num_threads: int = 1,
                 timeout_seconds_per_sequence: float = 10,
                 log: Optional[logging.Logger] = None):
        self.aligner = aligner or KmerSeededAligner()
        self.variant_caller = variant_caller or PileupVariantCaller()
        self.min_aligned_proportion = min_aligned_proportion
        self.num_threads = num_threads
        self.timeout_seconds_per_sequence = timeout_seconds_per_sequence
        self.log = log or logger

    @staticmethod
    def _oriented_read(graph: AssemblyGraph, vertex: AssemblyVertex) -> str:
        read = graph.get_sequence_characters(vertex.sequence_index)
        return read if vertex.start else reverse_complement(read)

    def _align(self, draft: str, read: str, unique_kmers: Dict[str, int], read_id: int,
               reverse: bool, alignments: List[ReadAlignment], stats: ConsensusStats):
        stats.total_reads += 1
        aln = self.aligner.align_read(draft, read, unique_kmers, self.min_aligned_proportion,
                                      read_id=read_id, reverse=reverse)
        if aln is None:
            stats.unaligned_reads += 1
            self.log.debug(f"Read {read_id} could not be aligned to the consensus")
            return
        stats.aligned_reads += 1
        alignments.append(aln)

    def build_raw_consensus(self, graph: AssemblyGraph, path: List[AssemblyEdge]
                            ) -> Tuple[str, List[ReadAlignment], ConsensusStats]:
        """
        Stitch the raw consensus of *path* and align its reads to it.

        Raises:
            PathInconsistencyError: If the path edges do not form a chain
        """
        stats = ConsensusStats()
        if not path:
            return '', [], stats
        if len(path) == 1:
            return graph.get_sequence_characters(path[0].vertex1.sequence_index).upper(), [], stats

        pieces: List[str] = []
        consensus_length = 0
        alignments: List[ReadAlignment] = []
        last_vertex: Optional[AssemblyVertex] = None
        for j, edge in enumerate(path):
            if j == 0:
                vertex_next = edge.shared_vertex(path[1])
                if vertex_next is None:
                    raise PathInconsistencyError("Inconsistency found in first edge of path")
                vertex_previous = edge.vertex2 if edge.vertex1 == vertex_next else edge.vertex1
            elif last_vertex == edge.vertex1:
                vertex_previous, vertex_next = edge.vertex1, edge.vertex2
            elif last_vertex == edge.vertex2:
                vertex_previous, vertex_next = edge.vertex2, edge.vertex1
            else:
                raise PathInconsistencyError(f"Inconsistency found in path at edge {j}: {edge}")

            same_read = vertex_previous.sequence_index == vertex_next.sequence_index
            if j == 0:
                first = self._oriented_read(graph, vertex_previous).upper()
                pieces.append(first)
                consensus_length += len(first)
            elif not same_read:
                next_read = self._oriented_read(graph, vertex_next)
                if edge.overlap < len(next_read):
                    segment = next_read[edge.overlap:].upper()
                    pieces.append(segment)
                    consensus_length += len(segment)
                else:
                    stats.skipped_overlaps += 1
                    self.log.warning(f"Non embedded edge has overlap: {edge.overlap} "
                                     f"and length: {len(next_read)}")

            if same_read:
                draft = ''.join(pieces)
                pieces = [draft]
                idx = vertex_previous.sequence_index
                reverse = not vertex_previous.start
                read = self._oriented_read(graph, vertex_previous)
                unique_kmers = self.aligner.extract_unique_kmers(
                    draft, consensus_length - len(read), consensus_length)
                self._align(draft, read, unique_kmers, idx, reverse, alignments, stats)
                for embedded in graph.get_all_embedded(idx):
                    reverse_embedded = reverse != embedded.reverse
                    embedded_read = graph.get_sequence_characters(embedded.sequence_id)
                    if reverse_embedded:
                        embedded_read = reverse_complement(embedded_read)
                    self._align(draft, embedded_read, unique_kmers, embedded.sequence_id,
                                reverse_embedded, alignments, stats)
            last_vertex = vertex_next

        alignments.sort(key=lambda a: a.position)
        self.log.info(f"Total reads: {stats.total_reads} alignments: {stats.aligned_reads} "
                      f"unaligned: {stats.unaligned_reads}")
        return ''.join(pieces), alignments, stats

    def make_path_consensus(self, graph: AssemblyGraph, path: List[AssemblyEdge]) -> str:
        """Polished consensus of one path."""
        raw, alignments, stats = self.build_raw_consensus(graph, path)
        if not alignments:
            return raw
        variants = self.variant_caller.call_variants(raw, alignments)
        stats.variants_called = len(variants)
        stats.variants_applied = sum(1 for v in variants if v.is_homozygous_alt())
        self.log.info(f"Identified {stats.variants_called} variants from read alignments; "
                      f"applying {stats.variants_applied} homozygous alternative")
        return apply_variants(raw, variants)

    def make_consensus(self, graph: AssemblyGraph) -> List[str]:
        """
        Consensus of every stored path, in path order.

        Raises:
            WorkerPoolTimeoutError: If the paths are not done in time
        """
        paths = graph.get_paths()
        if not paths:
            return []
        timeout = max(1.0, self.timeout_seconds_per_sequence * graph.num_sequences)
        executor = ThreadPoolExecutor(max_workers=max(1, self.num_threads))
        try:
            futures = [executor.submit(self.make_path_consensus, graph, path) for path in paths]
            _, not_done = wait(futures, timeout=timeout)
            if not_done:
                for future in not_done:
                    future.cancel()
                raise WorkerPoolTimeoutError(
                    f"Consensus workers did not finish within {timeout:.0f} seconds "
                    f"({len(not_done)} of {len(paths)} paths pending)")
            return [future.result() for future in futures]
        finally:
            executor.shutdown(wait=False, cancel_futures=True)


__all__ = [
    'ReadAlignment',
    'expand_cigar',
    'left_align_indels',
    'KmerSeededAligner',
    'Zygosity',
    'CalledVariant',
    'PileupVariantCaller',
    'apply_variants',
    'ConsensusStats',
    'ConsensusBuilder',
]

# ContigWeaver v0.1.0
# Any usage is subject to this software's license.
