#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
ContigWeaver v0.1.0

Alignment based correction of indel errors in reads.

Reads are laid out on a scored copy of the graph and aligned to the raw
consensus of their path. Indels of a read against the consensus are
undone unless they fall in an active region: a region where the pileup
calls a variant, where coverage is below the caller's minimum depth, or
where too few reads agree with the consensus. Corrected characters replace
the originals in the graph sequence registry; a read is corrected by the
first path it aligns to.

Relationships of corrected reads are stale once their characters change.
CorrectedHitSource translates k-mer hit positions of the original reads so
that the relationships can be rebuilt on the corrected reads.

Author: ContigWeaver Development Team
License: Dual License (Academic/Commercial) - See LICENSE_ACADEMIC.md and LICENSE_COMMERCIAL.md
"""

from collections import Counter
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Tuple
import logging

from .assembly_graph_module import AssemblyGraph
from .consensus_module import (
    CalledVariant,
    ConsensusBuilder,
    ReadAlignment,
    left_align_indels,
)
from .data_structures import KmerHit
from .graph_sanitizer_module import GraphSanitizer, SanitizerThresholds
from .layout_module import LayoutStrategy, build_layout, create_layout_engine
from .relationship_builder_module import HitSource
from .score_cost_module import ScoreCostCalculator
from ..utils.sequence_utils import reverse_complement

logger = logging.getLogger(__name__)

Region = Tuple[int, int]


def uncertain_positions(draft: str, pileup: Dict[int, Counter], min_depth: int,
                        min_fraction: float) -> List[int]:
    """
    Zero based draft positions where the consensus cannot be trusted.

    A position is uncertain if fewer than *min_depth* reads cover it or if
    fewer than *min_fraction* of them agree with the draft allele.
    """
    positions = []
    for pos in sorted(pileup):
        counts = pileup[pos]
        depth = sum(counts.values())
        if depth < min_depth or counts.get(draft[pos].upper(), 0) < min_fraction * depth:
            positions.append(pos)
    return positions


def active_regions(variants: List[CalledVariant], margin: int = 5,
                   uncertain: Iterable[int] = ()) -> List[Region]:
    """
    Merged zero based, end exclusive draft regions around called variants
    and uncertain positions.

    Example:
        >>> from contigweaver.assembly_core.consensus_module import Zygosity
        >>> calls = [CalledVariant(10, "A", "G", Zygosity.HETEROZYGOUS),
        ...          CalledVariant(14, "C", "", Zygosity.HOMOZYGOUS_ALT)]
        >>> active_regions(calls, margin=2)
        [(7, 16)]
    """
    spans = [(call.position - 1, call.last) for call in variants]
    spans.extend((pos, pos + 1) for pos in uncertain)
    regions: List[Region] = []
    for first, last in sorted(spans):
        start = max(0, first - margin)
        end = last + margin
        if regions and start <= regions[-1][1]:
            regions[-1] = (regions[-1][0], max(regions[-1][1], end))
        else:
            regions.append((start, end))
    return regions


def _in_regions(position: int, regions: List[Region]) -> bool:
    for start, end in regions:
        if start <= position < end:
            return True
        if start > position:
            break
    return False


@dataclass
class ReadCorrection:
    """
    Corrected characters of one read.

    Attributes:
        read_id: Index of the read
        characters: Corrected characters in the stored orientation
        errors: Corrected indel events
        positions: New position of every original base, None for removed bases
    """
    read_id: int
    characters: str
    errors: int
    positions: List[Optional[int]]

    def map_position(self, position: int, reverse: bool = False) -> Optional[int]:
        """
        Position on the corrected read of *position* on the original read.

        With *reverse*, both positions are on the reverse complement.
        """
        if position < 0 or position >= len(self.positions):
            return None
        if not reverse:
            return self.positions[position]
        mapped = self.positions[len(self.positions) - 1 - position]
        if mapped is None:
            return None
        return len(self.characters) - 1 - mapped


def corrected_read(aln: ReadAlignment, draft: str, regions: List[Region]) -> ReadCorrection:
    """Undo the indels of *aln* outside *regions*."""
    columns = left_align_indels(aln.columns(), draft, aln.characters, aln.position)
    read = aln.characters
    out: List[str] = []
    # new position of each read base in the aligned orientation
    oriented: List[Optional[int]] = [None] * len(read)
    r = aln.position
    q = 0
    corrected = 0
    previous = None
    for c in columns:
        if c in ('=', 'X', 'M'):
            oriented[q] = len(out)
            out.append(read[q])
            r += 1
            q += 1
        elif c == 'I':
            if _in_regions(r, regions) or _in_regions(r - 1, regions):
                oriented[q] = len(out)
                out.append(read[q])
            elif previous != 'I':
                corrected += 1
            q += 1
        elif c == 'D':
            if not _in_regions(r, regions):
                out.append(draft[r])
                if previous != 'D':
                    corrected += 1
            r += 1
        else:
            oriented[q] = len(out)
            out.append(read[q])
            q += 1
        previous = c
    while q < len(read):
        oriented[q] = len(out)
        out.append(read[q])
        q += 1

    characters = ''.join(out)
    if not aln.reverse:
        return ReadCorrection(aln.read_id, characters, corrected, oriented)
    last = len(characters) - 1
    positions = [None if p is None else last - p for p in reversed(oriented)]
    return ReadCorrection(aln.read_id, reverse_complement(characters), corrected, positions)


def correct_read(aln: ReadAlignment, draft: str, regions: List[Region]) -> Tuple[str, int]:
    """
    Undo the indels of *aln* outside *regions*.

    Returns:
        (corrected characters in the original read orientation, corrected indel events)
    """
    correction = corrected_read(aln, draft, regions)
    return correction.characters, correction.errors


class CorrectedHitSource:
    """
    Hit source of corrected reads.

    Wraps the hit source of the original reads and moves every hit to the
    corrected position of its first base. Hits starting on a removed base
    are dropped.
    """

    def __init__(self, hit_source: HitSource, corrections: Dict[int, ReadCorrection]):
        self.hit_source = hit_source
        self.corrections = corrections

    def _map(self, idx: int, position: int, reverse: bool) -> Optional[int]:
        correction = self.corrections.get(idx)
        if correction is None:
            return position
        return correction.map_position(position, reverse)

    def __call__(self, query_idx: int, reverse: bool) -> Dict[int, List[KmerHit]]:
        answer: Dict[int, List[KmerHit]] = {}
        for subject_idx, hits in self.hit_source(query_idx, reverse).items():
            mapped = []
            for query_pos, subject_pos in hits:
                new_query = self._map(query_idx, query_pos, reverse)
                new_subject = self._map(subject_idx, subject_pos, False)
                if new_query is None or new_subject is None:
                    continue
                mapped.append((new_query, new_subject))
            if mapped:
                answer[subject_idx] = mapped
        return answer


class IndelErrorsCorrector:
    """
    Correct read indel errors against path consensus sequences.

    Args:
        consensus_builder: Builder providing the aligner and the variant caller
        thresholds: Sanitizer calibration constants for the scored copy
        layout_strategy: Layout used on the copy
        active_margin: Bp around variant calls and uncertain positions where indels are kept
    """

    def __init__(self, consensus_builder: Optional[ConsensusBuilder] = None,
                 thresholds: Optional[SanitizerThresholds] = None,
                 layout_strategy: LayoutStrategy = LayoutStrategy.SAFE_EDGE_CHAINS,
                 active_margin: int = 5,
                 log: Optional[logging.Logger] = None):
        self.consensus_builder = consensus_builder or ConsensusBuilder()
        self.thresholds = thresholds
        self.layout_strategy = layout_strategy
        self.active_margin = active_margin
        self.log = log or logger

    def _prepare_copy(self, graph: AssemblyGraph) -> AssemblyGraph:
        copy_graph = graph.build_subgraph(range(graph.num_sequences))
        sanitizer = GraphSanitizer(copy_graph, thresholds=self.thresholds,
                                   scoring=ScoreCostCalculator())
        sanitizer.remove_chimeric_reads()
        sanitizer.update_scores()
        sanitizer.keep_best_embedding_hosts()
        copy_graph.prune_embedded_sequences()
        engine = create_layout_engine(self.layout_strategy, self.thresholds)
        build_layout(copy_graph, engine, min_path_length=1)
        return copy_graph

    def path_regions(self, draft: str, alignments: List[ReadAlignment]) -> List[Region]:
        """Active regions of one path consensus."""
        caller = self.consensus_builder.variant_caller
        pileup = caller.build_pileup(draft, alignments)
        variants = caller.call_variants(draft, alignments, pileup=pileup)
        uncertain = uncertain_positions(draft, pileup, caller.min_depth,
                                        caller.homozygous_fraction)
        return active_regions(variants, self.active_margin, uncertain)

    def correct_errors(self, graph: AssemblyGraph) -> Dict[int, ReadCorrection]:
        """
        Correct the reads of *graph* in place.

        Relationships of the corrected reads are dropped from *graph*; see
        AssemblyGraph.set_sequence_characters.

        Returns:
            read index -> correction, for reads whose characters changed
        """
        copy_graph = self._prepare_copy(graph)
        corrections: Dict[int, ReadCorrection] = {}
        corrected_by_path: Dict[int, int] = {}
        builder = self.consensus_builder
        for path_id, path in enumerate(copy_graph.get_paths(), start=1):
            draft, alignments, _ = builder.build_raw_consensus(copy_graph, path)
            if not alignments:
                continue
            regions = self.path_regions(draft, alignments)
            corrected_reads = 0
            corrected_errors = 0
            for aln in alignments:
                if aln.read_id in corrected_by_path:
                    self.log.debug(f"Read {aln.read_id} already corrected by path "
                                   f"{corrected_by_path[aln.read_id]}, current path: {path_id}")
                    continue
                corrected_by_path[aln.read_id] = path_id
                correction = corrected_read(aln, draft, regions)
                if correction.characters == graph.get_sequence_characters(aln.read_id):
                    continue
                corrections[aln.read_id] = correction
                corrected_reads += 1
                corrected_errors += correction.errors
            self.log.info(f"Path {path_id}: corrected reads {corrected_reads} "
                          f"corrected errors {corrected_errors}")

        for idx, correction in corrections.items():
            graph.set_sequence_characters(idx, correction.characters)
        self.log.info(f"Indel correction finished. Corrected reads: {len(corrections)}")
        return corrections


__all__ = [
    'IndelErrorsCorrector',
    'CorrectedHitSource',
    'ReadCorrection',
    'active_regions',
    'uncertain_positions',
    'corrected_read',
    'correct_read',
]

# ContigWeaver v0.1.0
# Any usage is subject to this software's license.
