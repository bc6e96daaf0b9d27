"""
Sequence and hit I/O module for ContigWeaver.

Handles reading input reads and k-mer hit tables and writing contigs.

CONSOLIDATED MODULES:
- io_core_module.py: Sequence structures, FASTA/FASTQ input, FASTA output, hit tables
"""

from .io_core_module import (
    SequenceRecord,
    SequenceCollection,
    HitTable,
    detect_sequence_format,
    read_sequences,
    write_fasta,
    read_hits_table,
)

__all__ = [
    # Core data structures
    "SequenceRecord",
    "SequenceCollection",
    "HitTable",

    # Sequence I/O
    "detect_sequence_format",
    "read_sequences",
    "write_fasta",

    # Hit tables
    "read_hits_table",
]
