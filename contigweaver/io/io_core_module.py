#!/usr/bin/env python
# -*- coding: utf-8 -*-

"""
Core I/O module for ContigWeaver.

Consolidated module containing:
- Sequence data structures (SequenceRecord, SequenceCollection)
- FASTA/FASTQ read input through Biopython
- FASTA contig output
- K-mer hit table input

Reads are indexed by their position in the input file; that index is the
sequence id used throughout the assembly graph and in the hit table.
"""

# =============================================================================
# SECTION 1: IMPORTS AND DEPENDENCIES
# =============================================================================

import csv
import gzip
import logging
from collections import defaultdict
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Optional, TextIO, Tuple, Union

from Bio import SeqIO
from Bio.Seq import Seq
from Bio.SeqRecord import SeqRecord

from ..assembly_core.data_structures import KmerHit

logger = logging.getLogger(__name__)


# =============================================================================
# SECTION 2: SEQUENCE DATA STRUCTURES
# =============================================================================

@dataclass(frozen=True)
class SequenceRecord:
    """
    One input read.

    Attributes:
        name: Read identifier from the input file
        characters: Uppercase DNA sequence
    """
    name: str
    characters: str

    @property
    def length(self) -> int:
        return len(self.characters)


class SequenceCollection:
    """
    Immutable, ordered collection of input reads.

    The position of a record is its sequence id.
    """

    def __init__(self, records: Iterable[SequenceRecord]):
        self._records: Tuple[SequenceRecord, ...] = tuple(records)

    def __len__(self) -> int:
        return len(self._records)

    def __getitem__(self, idx: int) -> SequenceRecord:
        return self._records[idx]

    def __iter__(self) -> Iterator[SequenceRecord]:
        return iter(self._records)

    @property
    def names(self) -> List[str]:
        return [r.name for r in self._records]

    @property
    def characters(self) -> List[str]:
        """Fresh list of read sequences, suitable as a graph registry."""
        return [r.characters for r in self._records]

    def total_length(self) -> int:
        return sum(r.length for r in self._records)

    def __repr__(self) -> str:
        return f"SequenceCollection(sequences={len(self)}, bp={self.total_length()})"


# =============================================================================
# SECTION 3: FILE UTILITIES
# =============================================================================
# Helper functions for file handling with automatic gzip detection

FASTA_SUFFIXES = ('.fa', '.fasta', '.fna', '.fas')
FASTQ_SUFFIXES = ('.fq', '.fastq')


def is_gzipped(filepath: Union[str, Path]) -> bool:
    """
    Check if file is gzip compressed.

    Args:
        filepath: Path to file

    Returns:
        True if file is gzipped
    """
    filepath = Path(filepath)
    return filepath.suffix in ('.gz', '.gzip')


def open_file(filepath: Union[str, Path], mode: str = 'r') -> TextIO:
    """
    Open file with automatic gzip detection.

    Args:
        filepath: Path to file
        mode: File mode ('r' or 'w')

    Returns:
        File handle
    """
    filepath = Path(filepath)

    if is_gzipped(filepath):
        if 'r' in mode:
            return gzip.open(filepath, 'rt')
        else:
            return gzip.open(filepath, 'wt')
    else:
        return open(filepath, mode)


def detect_sequence_format(filepath: Union[str, Path]) -> str:
    """
    Biopython format name from the file extension.

    Raises:
        ValueError: If the extension is neither FASTA nor FASTQ
    """
    filepath = Path(filepath)
    suffixes = [s.lower() for s in filepath.suffixes]
    if suffixes and suffixes[-1] in ('.gz', '.gzip'):
        suffixes = suffixes[:-1]
    suffix = suffixes[-1] if suffixes else ''
    if suffix in FASTA_SUFFIXES:
        return 'fasta'
    if suffix in FASTQ_SUFFIXES:
        return 'fastq'
    raise ValueError(f"Cannot determine sequence format of {filepath} "
                     f"(expected one of {', '.join(FASTA_SUFFIXES + FASTQ_SUFFIXES)})")


# =============================================================================
# SECTION 4: SEQUENCE INPUT
# =============================================================================

def read_sequences(
    filepath: Union[str, Path],
    file_format: Optional[str] = None,
    min_length: int = 0,
) -> SequenceCollection:
    """
    Load reads from a FASTA or FASTQ file (can be gzipped).

    Args:
        filepath: Input path
        file_format: 'fasta' or 'fastq'; detected from the extension when None
        min_length: Reads shorter than this are skipped. Skipping shifts the
            ids of later reads, so hit tables must be computed on the same
            filtered set.

    Returns:
        SequenceCollection in file order
    """
    filepath = Path(filepath)

    if not filepath.exists():
        raise FileNotFoundError(f"Sequence file not found: {filepath}")

    file_format = file_format or detect_sequence_format(filepath)
    records = []
    skipped = 0
    with open_file(filepath, 'r') as handle:
        for record in SeqIO.parse(handle, file_format):
            characters = str(record.seq).upper()
            if len(characters) < min_length:
                skipped += 1
                continue
            records.append(SequenceRecord(name=record.id, characters=characters))

    collection = SequenceCollection(records)
    logger.info(f"Loaded {len(collection)} sequences ({collection.total_length()} bp) "
                f"from {filepath}")
    if skipped:
        logger.info(f"Skipped {skipped} sequences shorter than {min_length} bp")
    return collection


# =============================================================================
# SECTION 5: FASTA OUTPUT
# =============================================================================

def write_fasta(
    sequences: Iterable[Tuple[str, str]],
    filepath: Union[str, Path],
    compress: bool = False,
) -> int:
    """
    Write (name, characters) pairs to a FASTA file.

    Args:
        sequences: Iterable of (name, characters)
        filepath: Output FASTA file path
        compress: Whether to gzip compress output

    Returns:
        Number of sequences written
    """
    filepath = Path(filepath)

    # Add .gz extension if compressing
    if compress and not is_gzipped(filepath):
        filepath = Path(str(filepath) + '.gz')

    # Create output directory if needed
    filepath.parent.mkdir(parents=True, exist_ok=True)

    records = (SeqRecord(Seq(characters), id=name, description='')
               for name, characters in sequences)
    with open_file(filepath, 'w') as handle:
        count = SeqIO.write(records, handle, 'fasta')
    return count


# =============================================================================
# SECTION 6: K-MER HIT TABLE
# =============================================================================
# Tab separated rows: query_idx reverse subject_idx query_pos subject_pos
# Lines starting with '#' are comments; a header row is accepted.

HIT_COLUMNS = ['query_idx', 'reverse', 'subject_idx', 'query_pos', 'subject_pos']

_TRUE = {'1', 'true', 't', 'yes', '-', 'rc'}
_FALSE = {'0', 'false', 'f', 'no', '+', 'fw'}


def _parse_flag(value: str, line_number: int) -> bool:
    lowered = value.strip().lower()
    if lowered in _TRUE:
        return True
    if lowered in _FALSE:
        return False
    raise ValueError(f"Line {line_number}: invalid reverse flag '{value}'")


class HitTable:
    """
    K-mer hits grouped per (query, reverse).

    Instances are callable and serve directly as the hit source of
    RelationshipBuilder.build_from_hit_source.
    """

    def __init__(self):
        self._hits: Dict[Tuple[int, bool], Dict[int, List[KmerHit]]] = defaultdict(
            lambda: defaultdict(list))
        self.num_hits = 0

    def add_hit(self, query_idx: int, reverse: bool, subject_idx: int,
                query_pos: int, subject_pos: int):
        self._hits[(query_idx, reverse)][subject_idx].append((query_pos, subject_pos))
        self.num_hits += 1

    def hits_for(self, query_idx: int, reverse: bool) -> Dict[int, List[KmerHit]]:
        """subject_idx -> [(query_pos, subject_pos)] for one query orientation."""
        by_subject = self._hits.get((query_idx, reverse))
        if by_subject is None:
            return {}
        return {subject: list(hits) for subject, hits in by_subject.items()}

    __call__ = hits_for

    def queries(self) -> List[Tuple[int, bool]]:
        return sorted(self._hits)

    def max_sequence_index(self) -> int:
        """Largest query or subject index referenced, -1 when empty."""
        largest = -1
        for (query_idx, _), by_subject in self._hits.items():
            largest = max(largest, query_idx, max(by_subject, default=-1))
        return largest


def read_hits_table(filepath: Union[str, Path], num_sequences: Optional[int] = None) -> HitTable:
    """
    Load a k-mer hit table.

    Args:
        filepath: Tab separated hit file (can be gzipped)
        num_sequences: When given, rows referencing an index outside
            [0, num_sequences) raise ValueError

    Returns:
        HitTable
    """
    filepath = Path(filepath)

    if not filepath.exists():
        raise FileNotFoundError(f"Hit table not found: {filepath}")

    table = HitTable()
    with open_file(filepath, 'r') as handle:
        reader = csv.reader(handle, delimiter='\t')
        for line_number, row in enumerate(reader, start=1):
            if not row or not row[0].strip() or row[0].startswith('#'):
                continue
            if row[0].strip() == HIT_COLUMNS[0]:
                continue
            if len(row) < len(HIT_COLUMNS):
                raise ValueError(f"Line {line_number}: expected {len(HIT_COLUMNS)} columns, "
                                 f"got {len(row)}")
            try:
                query_idx = int(row[0])
                subject_idx = int(row[2])
                query_pos = int(row[3])
                subject_pos = int(row[4])
            except ValueError:
                raise ValueError(f"Line {line_number}: non integer field in {row}")
            reverse = _parse_flag(row[1], line_number)
            if num_sequences is not None:
                for idx in (query_idx, subject_idx):
                    if not 0 <= idx < num_sequences:
                        raise ValueError(f"Line {line_number}: sequence index {idx} out of "
                                         f"range for {num_sequences} sequences")
            table.add_hit(query_idx, reverse, subject_idx, query_pos, subject_pos)

    logger.info(f"Loaded {table.num_hits} k-mer hits for {len(table.queries())} "
                f"query orientations from {filepath}")
    return table
