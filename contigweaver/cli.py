#!/usr/bin/env python
# -*- coding: utf-8 -*-

"""
Command-line interface for ContigWeaver.

This module provides the main CLI entry point and all subcommands for
the ContigWeaver long-read assembler.
"""

import logging
import sys
from importlib import metadata
from pathlib import Path

import click
import yaml

from .version import __version__
from .config.schema import (
    AssemblyConfig,
    ConfigValidationError,
    load_config,
    save_config_template,
    validate_config,
)

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def setup_logging(level: str = 'INFO', log_file: str = None):
    """Configure root logging for a CLI run."""
    handlers = [logging.StreamHandler()]
    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file))
    logging.basicConfig(level=getattr(logging, level.upper()), format=LOG_FORMAT,
                        handlers=handlers, force=True)


@click.group()
@click.version_option(version=__version__)
@click.option('--verbose', '-v', is_flag=True, help='Enable verbose output')
@click.option('--quiet', '-q', is_flag=True, help='Suppress non-error output')
@click.pass_context
def main(ctx, verbose, quiet):
    """
    ContigWeaver: Overlap-Layout-Consensus Assembler for Long Reads

    Builds an assembly graph from precomputed k-mer hits between reads,
    removes chimeric and low quality reads, lays out paths of safe edges
    and writes one polished contig per path.
    """
    # Ensure context object exists
    ctx.ensure_object(dict)
    ctx.obj['VERBOSE'] = verbose
    ctx.obj['QUIET'] = quiet


# ============================================================================
# Configuration Management Commands
# ============================================================================

@main.group()
def config():
    """Configuration management commands."""
    pass


@config.command('init')
@click.option('--output', '-o', type=click.Path(), default='contigweaver_config.yaml',
              help='Output configuration file path')
@click.option('--template', '-t',
              type=click.Choice(['default', 'diploid', 'noisy']),
              default='default', help='Configuration template type')
def config_init(output, template):
    """Generate a template configuration file with all available parameters."""
    click.echo(f"Generating {template} configuration template: {output}")

    try:
        save_config_template(Path(output), template=template)
    except OSError as e:
        click.echo(f"✗ Error creating configuration: {e}", err=True)
        sys.exit(1)

    click.echo(f"✓ Configuration file created: {output}")
    click.echo("\nThe configuration file includes:")
    click.echo("  • Relationship filters (k-mer percentage, overlap and evidence proportions)")
    click.echo("  • Score/cost model and sanitizer calibration constants")
    click.echo("  • Layout, consensus and execution settings")
    click.echo("\nEdit this file to customize your assembly.")


@config.command('validate')
@click.argument('config_file', type=click.Path(exists=True))
def config_validate(config_file):
    """Validate a configuration file."""
    click.echo(f"Validating configuration file: {config_file}")

    try:
        config = load_config(Path(config_file))
    except (ConfigValidationError, yaml.YAMLError) as e:
        click.echo(f"✗ Error validating configuration: {e}", err=True)
        sys.exit(1)

    errors = validate_config(config)
    if errors:
        click.echo("\n✗ Configuration validation failed:")
        for error in errors:
            click.echo(f"  • {error}", err=True)
        sys.exit(1)

    click.echo("✓ Configuration is valid")

    # Show key settings
    click.echo("\nKey Settings:")
    click.echo(f"  Ploidy: {config['assembly']['ploidy']}")
    click.echo(f"  Layout: {config['assembly']['layout']['strategy']}")
    click.echo(f"  Indel correction: "
               f"{'ENABLED' if config['assembly']['indel_correction'] else 'DISABLED'}")


@config.command('show')
@click.argument('config_file', type=click.Path(exists=True))
@click.option('--format', '-f', type=click.Choice(['yaml', 'summary']), default='summary',
              help='Output format')
def config_show(config_file, format):
    """Display configuration settings."""
    try:
        config = load_config(Path(config_file))
    except (ConfigValidationError, yaml.YAMLError) as e:
        click.echo(f"✗ Error reading configuration: {e}", err=True)
        sys.exit(1)

    if format == 'yaml':
        click.echo(yaml.dump(config, default_flow_style=False, sort_keys=False))
        return

    assembly = config['assembly']
    click.echo(f"Configuration from: {config_file}")
    click.echo("=" * 60)

    click.echo("\nRelationships:")
    rel = assembly['relationships']
    click.echo(f"  K-mer length: {rel['kmer_length']}")
    click.echo(f"  Min k-mer percentage: {rel['min_kmer_percentage']}")
    click.echo(f"  Min overlap proportion: {rel['min_overlap_proportion']}")
    click.echo(f"  Min evidence proportion: {rel['min_evidence_proportion']}")

    click.echo("\nAssembly:")
    click.echo(f"  Ploidy: {assembly['ploidy']}")
    click.echo(f"  Indel correction: {assembly['indel_correction']}")
    click.echo(f"  Layout strategy: {assembly['layout']['strategy']}")
    click.echo(f"  Min path length: {assembly['layout']['min_path_length']}")

    click.echo("\nConsensus:")
    click.echo(f"  Min depth: {config['consensus']['min_depth']}")
    click.echo(f"  Homozygous fraction: {config['consensus']['homozygous_fraction']}")

    click.echo("\nExecution:")
    click.echo(f"  Threads: {config['execution']['threads']}")
    click.echo(f"  Timeout per sequence: {config['execution']['timeout_seconds_per_sequence']}s")


# ============================================================================
# Assembly
# ============================================================================

@main.command()
@click.option('--reads', '-r', required=True, type=click.Path(exists=True),
              help='Input reads (FASTA/FASTQ, optionally gzipped)')
@click.option('--hits', required=True, type=click.Path(exists=True),
              help='K-mer hit table (TSV: query_idx reverse subject_idx query_pos subject_pos)')
@click.option('--output', '-o', required=True, type=click.Path(),
              help='Output directory')
@click.option('--config', '-c', 'config_file', type=click.Path(exists=True),
              help='Configuration file (YAML)')
@click.option('--threads', '-t', type=int, default=None,
              help='Number of threads (overrides config)')
@click.option('--ploidy', type=int, default=None,
              help='Sample ploidy (overrides config)')
@click.option('--indel-correction/--no-indel-correction', default=None,
              help='Correct read indel errors before assembling (overrides config)')
@click.pass_context
def assemble(ctx, reads, hits, output, config_file, threads, ploidy, indel_correction):
    """
    Assemble long reads into contigs.

    Writes contigs.fasta and paths.tsv into the output directory.
    """
    try:
        config_dict = load_config(Path(config_file) if config_file else None)
    except (ConfigValidationError, yaml.YAMLError) as e:
        click.echo(f"❌ Error reading configuration: {e}", err=True)
        ctx.exit(1)

    # CLI overrides
    if threads is not None:
        config_dict['execution']['threads'] = threads
    if ploidy is not None:
        config_dict['assembly']['ploidy'] = ploidy
    if indel_correction is not None:
        config_dict['assembly']['indel_correction'] = indel_correction

    try:
        assembly_config = AssemblyConfig.from_dict(config_dict)
    except ConfigValidationError as e:
        click.echo(f"❌ Configuration validation failed: {e}", err=True)
        ctx.exit(1)

    if ctx.obj.get('VERBOSE'):
        level = 'DEBUG'
    elif ctx.obj.get('QUIET'):
        level = 'ERROR'
    else:
        level = assembly_config.log_level
    setup_logging(level, assembly_config.log_file)

    from .utils.pipeline import AssemblyPipeline

    if not ctx.obj.get('QUIET'):
        click.echo(f"{'='*60}")
        click.echo(f"ContigWeaver v{__version__}")
        click.echo(f"{'='*60}")
        click.echo(f"Reads:   {reads}")
        click.echo(f"Hits:    {hits}")
        click.echo(f"Output:  {output}")
        click.echo(f"Threads: {assembly_config.threads}")
        click.echo(f"Ploidy:  {assembly_config.ploidy}")

    pipeline = AssemblyPipeline(config=assembly_config, output_dir=Path(output))
    try:
        result = pipeline.run(reads, hits)
    except Exception as e:
        click.echo(f"\n❌ Assembly failed: {e}", err=True)
        if ctx.obj.get('VERBOSE'):
            import traceback
            traceback.print_exc()
        ctx.exit(1)

    if not ctx.obj.get('QUIET'):
        click.echo("\n" + "=" * 60)
        click.echo("✅ Assembly completed successfully!")
        click.echo("=" * 60)
        click.echo(f"Contigs: {len(result.contigs)} ({result.total_length} bp)")
        if result.n_statistics:
            click.echo(f"N50: {result.n_statistics[50]}")
        click.echo(f"Output directory: {output}")


# ============================================================================
# Utility Commands
# ============================================================================

DEPENDENCIES = [
    ('BioPython', 'biopython'),
    ('NumPy', 'numpy'),
    ('SciPy', 'scipy'),
    ('edlib', 'edlib'),
    ('PyYAML', 'PyYAML'),
    ('Click', 'click'),
]


@main.command()
def version():
    """Show version information."""
    click.echo(f"ContigWeaver v{__version__}")
    click.echo("\nDependencies:")

    for label, distribution in DEPENDENCIES:
        try:
            click.echo(f"  {label}: {metadata.version(distribution)}")
        except metadata.PackageNotFoundError:
            click.echo(f"  {label}: not installed")


if __name__ == '__main__':
    sys.exit(main())
