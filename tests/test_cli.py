#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
ContigWeaver v0.1.0

Tests for CLI command interface.

Author: ContigWeaver Development Team
License: Dual License (Academic/Commercial) - See LICENSE_ACADEMIC.md and LICENSE_COMMERCIAL.md
"""

import pytest
import yaml
from click.testing import CliRunner
from Bio import SeqIO

from contigweaver.cli import main
from contigweaver.version import __version__


class TestCLIBasics:
    """Test basic CLI functionality."""

    def test_cli_help(self):
        """Test that --help runs without error."""
        runner = CliRunner()
        result = runner.invoke(main, ['--help'])

        assert result.exit_code == 0
        assert 'ContigWeaver' in result.output

    def test_cli_version(self):
        """Test that --version displays version."""
        runner = CliRunner()
        result = runner.invoke(main, ['--version'])

        assert result.exit_code == 0
        assert __version__ in result.output

    def test_version_command(self):
        """Test that the version command lists dependencies."""
        runner = CliRunner()
        result = runner.invoke(main, ['version'])

        assert result.exit_code == 0
        assert 'Dependencies' in result.output
        assert 'edlib' in result.output

    def test_assemble_help(self):
        """Test assemble command help."""
        runner = CliRunner()
        result = runner.invoke(main, ['assemble', '--help'])

        assert result.exit_code == 0
        assert '--hits' in result.output

    def test_invalid_command(self):
        """Test that invalid commands are handled gracefully."""
        runner = CliRunner()
        result = runner.invoke(main, ['nonexistent_command'])

        # Should fail but not crash
        assert result.exit_code != 0


class TestConfigCommands:
    """Test configuration management commands."""

    def test_config_init_command(self):
        """Test config init command."""
        runner = CliRunner()

        with runner.isolated_filesystem():
            result = runner.invoke(main, ['config', 'init', '--output', 'test_config.yaml',
                                          '--template', 'diploid'])

            assert result.exit_code == 0
            with open('test_config.yaml') as f:
                assert yaml.safe_load(f)['assembly']['ploidy'] == 2

    def test_config_validate_valid(self):
        """A generated template validates."""
        runner = CliRunner()

        with runner.isolated_filesystem():
            runner.invoke(main, ['config', 'init', '-o', 'config.yaml'])
            result = runner.invoke(main, ['config', 'validate', 'config.yaml'])

            assert result.exit_code == 0
            assert 'Configuration is valid' in result.output

    def test_config_validate_invalid(self):
        """Invalid values fail validation."""
        runner = CliRunner()

        with runner.isolated_filesystem():
            with open('config.yaml', 'w') as f:
                f.write("assembly:\n  ploidy: 0\n")
            result = runner.invoke(main, ['config', 'validate', 'config.yaml'])

            assert result.exit_code == 1

    def test_config_show_formats(self):
        """Summary and YAML views of a configuration."""
        runner = CliRunner()

        with runner.isolated_filesystem():
            runner.invoke(main, ['config', 'init', '-o', 'config.yaml'])
            summary = runner.invoke(main, ['config', 'show', 'config.yaml'])
            as_yaml = runner.invoke(main, ['config', 'show', 'config.yaml', '-f', 'yaml'])

            assert summary.exit_code == 0
            assert 'Layout strategy: safe_edge_chains' in summary.output
            assert as_yaml.exit_code == 0
            assert yaml.safe_load(as_yaml.output)['consensus']['min_depth'] == 3


@pytest.mark.usefixtures("reset_logging")
class TestAssembleCLI:
    """Test the assemble command specifically."""

    def test_assemble_missing_input(self):
        """Test assemble fails gracefully without input."""
        runner = CliRunner()
        result = runner.invoke(main, ['assemble', '--output', 'test_out'])

        # Should fail due to missing input reads
        assert result.exit_code != 0

    def test_assemble_with_nonexistent_file(self):
        """Test assemble handles nonexistent input files."""
        runner = CliRunner()
        result = runner.invoke(main, [
            'assemble',
            '--reads', 'nonexistent.fastq',
            '--hits', 'nonexistent.tsv',
            '--output', 'test_out',
        ])

        assert result.exit_code != 0

    def test_assemble_end_to_end(self, genome, tiled_inputs, temp_output_dir):
        """Reads and hits are assembled into contigs.fasta and paths.tsv."""
        reads_path, hits_path = tiled_inputs
        output_dir = temp_output_dir / "out"
        runner = CliRunner()

        result = runner.invoke(main, [
            '--quiet', 'assemble',
            '--reads', str(reads_path),
            '--hits', str(hits_path),
            '--output', str(output_dir),
            '--threads', '2',
        ])

        assert result.exit_code == 0, result.output
        records = list(SeqIO.parse(str(output_dir / 'contigs.fasta'), 'fasta'))
        assert [str(r.seq) for r in records] == [genome]
        assert (output_dir / 'paths.tsv').exists()

    def test_assemble_reports_summary(self, tiled_inputs, temp_output_dir):
        """The summary reports contigs and N50."""
        reads_path, hits_path = tiled_inputs
        runner = CliRunner()

        result = runner.invoke(main, [
            'assemble',
            '--reads', str(reads_path),
            '--hits', str(hits_path),
            '--output', str(temp_output_dir / "out"),
            '--indel-correction',
        ])

        assert result.exit_code == 0, result.output
        assert 'Contigs: 1 (4000 bp)' in result.output
        assert 'N50: 4000' in result.output

    def test_assemble_invalid_override(self, tiled_inputs, temp_output_dir):
        """Invalid command line overrides fail validation."""
        reads_path, hits_path = tiled_inputs
        runner = CliRunner()

        result = runner.invoke(main, [
            'assemble',
            '--reads', str(reads_path),
            '--hits', str(hits_path),
            '--output', str(temp_output_dir / "out"),
            '--ploidy', '0',
        ])

        assert result.exit_code == 1

    def test_assemble_bad_hits(self, tiled_inputs, temp_output_dir):
        """Pipeline failures exit with status 1."""
        reads_path, _ = tiled_inputs
        bad_hits = temp_output_dir / "bad.tsv"
        bad_hits.write_text("0\tmaybe\t1\t0\t0\n")
        runner = CliRunner()

        result = runner.invoke(main, [
            'assemble',
            '--reads', str(reads_path),
            '--hits', str(bad_hits),
            '--output', str(temp_output_dir / "out"),
        ])

        assert result.exit_code == 1

# ContigWeaver v0.1.0
# Any usage is subject to this software's license.
