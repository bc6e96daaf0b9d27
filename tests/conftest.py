#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
ContigWeaver v0.1.0

Pytest configuration and shared fixtures.

Author: ContigWeaver Development Team
License: Dual License (Academic/Commercial) - See LICENSE_ACADEMIC.md and LICENSE_COMMERCIAL.md
"""

import logging
import random
import shutil
import tempfile
from pathlib import Path

import pytest

from contigweaver.assembly_core.assembly_graph_module import AssemblyGraph
from contigweaver.assembly_core.relationship_builder_module import RelationshipBuilder
from contigweaver.io.io_core_module import HitTable, SequenceCollection, SequenceRecord
from contigweaver.utils.sequence_utils import reverse_complement

KMER_LENGTH = 15

# (genome start, reverse complemented) of each tiled read
TILING = [
    (0, False),
    (600, False),
    (1200, True),
    (1800, False),
    (2400, True),
    (3000, False),
]
READ_LENGTH = 1000
GENOME_LENGTH = 4000


def random_sequence(length: int, seed: int) -> str:
    rng = random.Random(seed)
    return ''.join(rng.choice('ACGT') for _ in range(length))


def exact_kmer_hits(reads, k: int = KMER_LENGTH) -> HitTable:
    """HitTable of every exact k-mer match between reads, both query orientations."""
    index = []
    for read in reads:
        positions = {}
        for i in range(len(read) - k + 1):
            positions.setdefault(read[i:i + k], []).append(i)
        index.append(positions)

    table = HitTable()
    for query_idx, read in enumerate(reads):
        for reverse in (False, True):
            query = reverse_complement(read) if reverse else read
            for subject_idx, positions in enumerate(index):
                if subject_idx == query_idx:
                    continue
                for i in range(len(query) - k + 1):
                    for j in positions.get(query[i:i + k], []):
                        table.add_hit(query_idx, reverse, subject_idx, i, j)
    return table


@pytest.fixture
def temp_output_dir():
    """Create temporary output directory for tests."""
    temp_dir = tempfile.mkdtemp(prefix="contigweaver_test_")
    yield Path(temp_dir)
    # Cleanup after test
    shutil.rmtree(temp_dir, ignore_errors=True)


@pytest.fixture
def reset_logging():
    """Restore root logging handlers changed by CLI runs."""
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield
    root.handlers = handlers
    root.setLevel(level)


@pytest.fixture
def genome():
    """Random 4 kbp genome."""
    return random_sequence(GENOME_LENGTH, seed=42)


@pytest.fixture
def tiled_reads(genome):
    """Six 1 kbp reads tiling the genome with 400 bp overlaps, two of them reverse complemented."""
    reads = []
    for start, reverse in TILING:
        read = genome[start:start + READ_LENGTH]
        reads.append(reverse_complement(read) if reverse else read)
    return reads


@pytest.fixture
def tiled_collection(tiled_reads):
    return SequenceCollection(SequenceRecord(f"read{i}", read)
                              for i, read in enumerate(tiled_reads))


@pytest.fixture
def tiled_hits(tiled_reads):
    return exact_kmer_hits(tiled_reads)


@pytest.fixture
def tiled_graph(tiled_reads, tiled_hits):
    """Graph of the tiled reads with relationships built."""
    graph = AssemblyGraph(list(tiled_reads))
    RelationshipBuilder(graph).build_from_hit_source(tiled_hits)
    return graph


@pytest.fixture
def hits_for_reads():
    """Builder of exact k-mer hit tables for arbitrary reads."""
    return exact_kmer_hits


@pytest.fixture
def tiled_inputs(temp_output_dir, tiled_collection, tiled_hits):
    """Tiled reads written as FASTA plus their hit table as TSV."""
    reads_path = temp_output_dir / "reads.fasta"
    with open(reads_path, 'w') as f:
        for record in tiled_collection:
            f.write(f">{record.name}\n{record.characters}\n")

    hits_path = temp_output_dir / "hits.tsv"
    with open(hits_path, 'w') as f:
        f.write("query_idx\treverse\tsubject_idx\tquery_pos\tsubject_pos\n")
        for query_idx, reverse in tiled_hits.queries():
            for subject_idx, hits in sorted(tiled_hits(query_idx, reverse).items()):
                for query_pos, subject_pos in hits:
                    f.write(f"{query_idx}\t{int(reverse)}\t{subject_idx}\t"
                            f"{query_pos}\t{subject_pos}\n")
    return reads_path, hits_path


@pytest.fixture
def simple_fasta():
    """Generate simple FASTA sequences for testing."""
    return ">seq1\nACGTACGTAC\n>seq2 description\nttttggggcc\n"


@pytest.fixture
def simple_fastq():
    """Generate simple FASTQ reads for testing."""
    return """@read1
ATCGATCGATCG
+
IIIIIIIIIIII
@read2
GCTAGCTAGCTA
+
IIIIIIIIIIII
"""

# ContigWeaver v0.1.0
# Any usage is subject to this software's license.
