"""
ContigWeaver Assembly Pipeline.

Coordinates the complete de novo assembly of long reads from precomputed
k-mer hits:
- Load: reads (FASTA/FASTQ) and the k-mer hit table
- Correct: optional indel error correction of the reads on a scratch graph
- Relationships: edges and embeddings of the assembly graph
- Sanitize: scores, chimera removal, embedding host selection
- Layout: paths over the sanitized graph
- Consensus: one polished contig per path
- Write: contigs.fasta and paths.tsv
"""

from pathlib import Path
from typing import Optional, Dict, Any, List, Tuple, Union
from dataclasses import dataclass, field
import csv
import logging
import time

from ..assembly_core.assembly_graph_module import AssemblyGraph
from ..assembly_core.consensus_module import (
    ConsensusBuilder,
    KmerSeededAligner,
    PileupVariantCaller,
)
from ..assembly_core.data_structures import AssemblyEdge
from ..assembly_core.graph_sanitizer_module import GraphSanitizer
from ..assembly_core.hit_clustering_module import DiagonalHitClusterer
from ..assembly_core.indel_corrector_module import CorrectedHitSource, IndelErrorsCorrector
from ..assembly_core.layout_module import build_layout, create_layout_engine
from ..assembly_core.relationship_builder_module import HitSource, RelationshipBuilder
from ..assembly_core.score_cost_module import ScoreCostCalculator
from ..config.schema import AssemblyConfig
from ..io.io_core_module import (
    SequenceCollection,
    read_hits_table,
    read_sequences,
    write_fasta,
)

logger = logging.getLogger(__name__)

CONTIGS_FILENAME = "contigs.fasta"
PATHS_FILENAME = "paths.tsv"

STEPS = ['correct', 'relationships', 'sanitize', 'layout', 'consensus']


# ============================================================================
# Data Structures
# ============================================================================

@dataclass
class AssemblyResult:
    """
    Result of the assembly pipeline.

    Attributes:
        graph: Sanitized graph holding the layout paths
        contigs: (name, characters) per path, in path order
        n_statistics: N10..N90 of the path lengths
        stats: Per step statistics
    """
    graph: AssemblyGraph
    contigs: List[Tuple[str, str]] = field(default_factory=list)
    n_statistics: Dict[int, int] = field(default_factory=dict)
    stats: Dict[str, Any] = field(default_factory=dict)

    @property
    def total_length(self) -> int:
        return sum(len(characters) for _, characters in self.contigs)


def path_read_orientations(path: List[AssemblyEdge]) -> List[Tuple[int, bool]]:
    """
    Reads of *path* in layout order as (sequence id, reverse).

    A read is forward when the path enters it through its start vertex.
    """
    reads = [edge for edge in path if edge.is_same_sequence_edge()]
    if not reads:
        return []
    if len(path) == 1:
        return [(reads[0].vertex1.sequence_index, False)]
    exit_vertex = path[0].shared_vertex(path[1])
    entry = path[0].connecting_vertex(exit_vertex)
    result = [(entry.sequence_index, not entry.start)]
    for j in range(1, len(path) - 1, 2):
        entry = path[j].connecting_vertex(exit_vertex)
        result.append((entry.sequence_index, not entry.start))
        exit_vertex = path[j + 1].connecting_vertex(entry)
    return result


# ============================================================================
# Assembly Pipeline
# ============================================================================

class AssemblyPipeline:
    """
    End-to-end assembly from reads and k-mer hits.

    Args:
        config: Typed assembly configuration
        output_dir: Directory receiving contigs.fasta and paths.tsv
    """

    def __init__(self, config: Optional[AssemblyConfig] = None,
                 output_dir: Optional[Union[str, Path]] = None):
        self.config = config or AssemblyConfig()
        self.output_dir = Path(output_dir) if output_dir is not None else None
        self.scoring = ScoreCostCalculator(
            alpha_ikbp=self.config.alpha_ikbp,
            significance=self.config.significance,
            min_safe_edges=self.config.min_safe_edges,
            min_bucket_count=self.config.min_bucket_count,
        )

    # ------------------------------------------------------------------------
    # Component factories
    # ------------------------------------------------------------------------

    def create_relationship_builder(self, graph: AssemblyGraph) -> RelationshipBuilder:
        cfg = self.config
        clusterer = DiagonalHitClusterer(kmer_length=cfg.kmer_length,
                                         max_diagonal_deviation=cfg.max_diagonal_deviation)
        return RelationshipBuilder(
            graph,
            min_kmer_percentage=cfg.min_kmer_percentage,
            min_overlap_proportion=cfg.min_overlap_proportion,
            min_evidence_proportion=cfg.min_evidence_proportion,
            kmer_length=cfg.kmer_length,
            clusterer=clusterer,
        )

    def create_consensus_builder(self) -> ConsensusBuilder:
        cfg = self.config
        return ConsensusBuilder(
            aligner=KmerSeededAligner(kmer_length=cfg.consensus_kmer_length),
            variant_caller=PileupVariantCaller(
                min_depth=cfg.min_depth,
                homozygous_fraction=cfg.homozygous_fraction,
                max_alignments_per_start=cfg.max_alignments_per_start,
            ),
            min_aligned_proportion=cfg.min_aligned_proportion,
            num_threads=cfg.threads,
            timeout_seconds_per_sequence=cfg.timeout_seconds_per_sequence,
        )

    # ------------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------------

    def run(self, reads_path: Union[str, Path], hits_path: Union[str, Path]) -> AssemblyResult:
        """
        Assemble the reads of *reads_path* using the hits of *hits_path*.

        Writes contigs.fasta and paths.tsv when an output directory is set.
        """
        sequences = read_sequences(reads_path)
        hits = read_hits_table(hits_path, num_sequences=len(sequences))
        result = self.assemble(sequences, hits)
        if self.output_dir is not None:
            self.write_outputs(result, sequences)
        return result

    def assemble(self, sequences: SequenceCollection, hit_source: HitSource) -> AssemblyResult:
        """In-memory assembly; nothing is written."""
        cfg = self.config
        logger.info("=" * 60)
        logger.info(f"Starting ContigWeaver assembly of {len(sequences)} sequences")
        logger.info("=" * 60)

        graph = AssemblyGraph(list(sequences.characters), ploidy=cfg.ploidy)
        result = AssemblyResult(graph=graph)

        for i, step in enumerate(STEPS, start=1):
            logger.info(f"STEP {i}/{len(STEPS)}: {step.upper()}")
            started = time.time()
            try:
                if step == 'correct':
                    step_stats, hit_source = self._step_correct(result, hit_source)
                else:
                    step_stats = self._execute_step(step, result.graph, hit_source, result)
            except Exception as e:
                logger.error(f"Step {step} failed: {e}")
                raise
            step_stats['seconds'] = round(time.time() - started, 3)
            result.stats[step] = step_stats

        result.n_statistics = result.graph.estimate_n_statistics_from_paths()
        logger.info(f"Assembly complete: {len(result.contigs)} contigs, "
                    f"{result.total_length} bp")
        return result

    def _execute_step(self, step: str, graph: AssemblyGraph, hit_source: HitSource,
                      result: AssemblyResult) -> Dict[str, Any]:
        """Execute a single pipeline step."""
        if step == 'relationships':
            return self._step_relationships(graph, hit_source)
        elif step == 'sanitize':
            return self._step_sanitize(graph)
        elif step == 'layout':
            return self._step_layout(graph)
        elif step == 'consensus':
            return self._step_consensus(graph, result)
        else:
            raise ValueError(f"Unknown step: {step}")

    def _step_relationships(self, graph: AssemblyGraph, hit_source: HitSource) -> Dict[str, Any]:
        builder = self.create_relationship_builder(graph)
        stats = builder.build_from_hit_source(
            hit_source,
            num_threads=self.config.threads,
            timeout_seconds_per_sequence=self.config.timeout_seconds_per_sequence,
        )
        graph.update_vertex_degrees()
        logger.info(f"Graph: {graph}")
        return stats

    def _step_correct(self, result: AssemblyResult,
                      hit_source: HitSource) -> Tuple[Dict[str, Any], HitSource]:
        """
        Correct read indels on a scratch graph and start over from the
        corrected reads.

        The scratch graph gets its own relationships; the graph of *result*
        is replaced by a bare graph over the corrected registry and the
        returned hit source addresses the corrected reads.
        """
        if not self.config.indel_correction:
            logger.info("Indel correction disabled")
            return {'corrected_reads': 0, 'corrected_errors': 0}, hit_source
        scratch = AssemblyGraph(list(result.graph.sequences), ploidy=self.config.ploidy)
        self._step_relationships(scratch, hit_source)
        corrector = IndelErrorsCorrector(
            consensus_builder=self.create_consensus_builder(),
            thresholds=self.config.sanitizer,
            layout_strategy=self.config.layout_strategy,
        )
        corrections = corrector.correct_errors(scratch)
        stats = {
            'corrected_reads': len(corrections),
            'corrected_errors': sum(c.errors for c in corrections.values()),
        }
        if not corrections:
            return stats, hit_source
        result.graph = AssemblyGraph(list(scratch.sequences), ploidy=self.config.ploidy)
        return stats, CorrectedHitSource(hit_source, corrections)

    def _step_sanitize(self, graph: AssemblyGraph) -> Dict[str, Any]:
        sanitizer = GraphSanitizer(
            graph,
            thresholds=self.config.sanitizer,
            scoring=self.scoring,
            remove_high_ikbp_sequences=self.config.remove_high_ikbp_sequences,
        )
        sanitizer.update_scores()
        chimeric = sanitizer.remove_chimeric_reads()
        released = sanitizer.keep_best_embedding_hosts()
        pruned = graph.prune_embedded_sequences()
        logger.info(f"Chimeric reads removed: {len(chimeric)} embedded sequences pruned: {pruned}")
        return {
            'chimeric_reads': len(chimeric),
            'embedding_relations_released': released,
            'embedded_pruned': pruned,
            'embedding_conflicts': len(graph.embedding_conflicts),
        }

    def _step_layout(self, graph: AssemblyGraph) -> Dict[str, Any]:
        engine = create_layout_engine(self.config.layout_strategy, self.config.sanitizer)
        stored = build_layout(graph, engine, min_path_length=self.config.min_path_length)
        return {'paths': stored}

    def _step_consensus(self, graph: AssemblyGraph, result: AssemblyResult) -> Dict[str, Any]:
        builder = self.create_consensus_builder()
        consensus = builder.make_consensus(graph)
        result.contigs = [(f"contig_{i}", characters)
                          for i, characters in enumerate(consensus, start=1)]
        return {'contigs': len(result.contigs)}

    # ------------------------------------------------------------------------
    # Output
    # ------------------------------------------------------------------------

    def write_outputs(self, result: AssemblyResult, sequences: SequenceCollection) -> Dict[str, Path]:
        """Write contigs.fasta and paths.tsv into the output directory."""
        self.output_dir.mkdir(parents=True, exist_ok=True)
        contigs_path = self.output_dir / CONTIGS_FILENAME
        paths_path = self.output_dir / PATHS_FILENAME

        count = write_fasta(result.contigs, contigs_path)
        logger.info(f"Wrote {count} contigs to {contigs_path}")

        with open(paths_path, 'w', newline='') as handle:
            writer = csv.writer(handle, delimiter='\t', lineterminator='\n')
            writer.writerow(['contig', 'length', 'num_reads', 'reads'])
            for (name, characters), path in zip(result.contigs, result.graph.get_paths()):
                reads = path_read_orientations(path)
                layout = ','.join(f"{sequences[idx].name}{'-' if reverse else '+'}"
                                  for idx, reverse in reads)
                writer.writerow([name, len(characters), len(reads), layout])
        logger.info(f"Wrote layout paths to {paths_path}")
        return {'contigs': contigs_path, 'paths': paths_path}
