"""
ContigWeaver v0.1.0

Configuration schema for ContigWeaver.

Defines all available configuration parameters with defaults and validation.

Author: ContigWeaver Development Team
License: Dual License (Academic/Commercial) - See LICENSE_ACADEMIC.md and LICENSE_COMMERCIAL.md
"""

import copy
from dataclasses import dataclass, field
from typing import Dict, Any, Optional, List
from pathlib import Path
import yaml

from ..assembly_core.graph_sanitizer_module import SanitizerThresholds
from ..assembly_core.layout_module import LayoutStrategy


class ConfigValidationError(Exception):
    """Raised when configuration validation fails."""
    pass


# Default configuration values
DEFAULT_CONFIG = {
    # ========================================================================
    # Assembly Graph
    # ========================================================================
    'assembly': {
        'ploidy': 1,
        'indel_correction': False,  # Correct read indels before assembling

        # Edge and embedding construction from k-mer hits
        'relationships': {
            'min_kmer_percentage': 5,
            'min_overlap_proportion': 0.05,
            'min_evidence_proportion': 0.0,
            'kmer_length': 15,
            'max_diagonal_deviation': 0.1,  # Fraction of query length (floor 50bp)
        },

        # Score and cost model
        'scoring': {
            'alpha_ikbp': 0.001,
            'significance': 0.05,
            'min_safe_edges': 20,
            'min_bucket_count': 20,
            'remove_high_ikbp_sequences': True,
        },

        # Chimera detection and safe edges (calibration constants)
        'sanitizer': {
            'unknown_flank': 1000,
            'tight_bound': 200,
            'crossing_margin': 100,
            'min_gap_evidence': 1000,
            'min_gap_predicted': 2000,
            'max_crossings': 2,
            'min_flank_evidence': 5,
            'good_overlap_fraction': 0.5,
            'quality_evidence_proportion': 0.9,
            'quality_ikbp': 50,
            'min_good_overlaps': 5,
            'pass_fraction': 0.05,
            'safe_evidence_proportion': 0.9,
            'safe_ikbp': 30,
            'repetitive_p_value': 0.999,
        },

        'layout': {
            'strategy': 'safe_edge_chains',
            'min_path_length': 1,  # Multiplied by ploidy
        },
    },

    # ========================================================================
    # Consensus
    # ========================================================================
    'consensus': {
        'kmer_length': 15,
        'min_aligned_proportion': 0.5,
        'min_depth': 3,
        'homozygous_fraction': 0.8,
        'max_alignments_per_start': 100,
    },

    # ========================================================================
    # Execution
    # ========================================================================
    'execution': {
        'threads': 1,
        'timeout_seconds_per_sequence': 10,
    },

    # ========================================================================
    # Output
    # ========================================================================
    'output': {
        'logging': {
            'level': 'INFO',
            'log_file': None,
        },
    },
}

VALID_LOG_LEVELS = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']


def load_config(config_path: Optional[Path] = None) -> Dict[str, Any]:
    """
    Load configuration from file or return defaults.

    Args:
        config_path: Path to YAML config file (None = use defaults)

    Returns:
        Configuration dictionary

    Raises:
        FileNotFoundError: If config_path does not exist
    """
    config = copy.deepcopy(DEFAULT_CONFIG)

    if config_path:
        config_path = Path(config_path)
        if not config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")
        with open(config_path) as f:
            user_config = yaml.safe_load(f) or {}
        if not isinstance(user_config, dict):
            raise ConfigValidationError(f"Configuration file must hold a mapping: {config_path}")

        # Deep merge user config into defaults
        config = _deep_merge(config, user_config)

    return config


def _deep_merge(base: Dict, override: Dict) -> Dict:
    """
    Deep merge two dictionaries.

    Args:
        base: Base dictionary
        override: Override dictionary

    Returns:
        Merged dictionary
    """
    result = base.copy()

    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value

    return result


def save_config_template(output_path: Path, template: str = 'default'):
    """
    Save a configuration template to file.

    Args:
        output_path: Output file path
        template: Template type ('default', 'diploid', 'noisy')
    """
    config = copy.deepcopy(DEFAULT_CONFIG)

    # Customize for specific templates
    if template == 'diploid':
        config['assembly']['ploidy'] = 2
        config['consensus']['homozygous_fraction'] = 0.9

    elif template == 'noisy':
        config['assembly']['relationships']['min_kmer_percentage'] = 3
        config['assembly']['relationships']['max_diagonal_deviation'] = 0.15
        config['assembly']['sanitizer']['safe_ikbp'] = 60
        config['assembly']['sanitizer']['quality_ikbp'] = 80
        config['assembly']['indel_correction'] = True

    elif template != 'default':
        raise ValueError(f"Unknown template: {template}")

    with open(output_path, 'w') as f:
        yaml.dump(config, f, default_flow_style=False, sort_keys=False)


def _check_range(errors: List[str], name: str, value: Any, low: float,
                 high: Optional[float] = None, integer: bool = False):
    if integer and (not isinstance(value, int) or isinstance(value, bool)):
        errors.append(f"{name} must be an integer, got {value!r}")
        return
    if not isinstance(value, (int, float)) or isinstance(value, bool):
        errors.append(f"{name} must be a number, got {value!r}")
        return
    if value < low or (high is not None and value > high):
        bounds = f"[{low}, {high}]" if high is not None else f">= {low}"
        errors.append(f"{name} must be in {bounds}, got {value}")


def validate_config(config: Dict[str, Any]) -> List[str]:
    """
    Validate configuration dictionary.

    Args:
        config: Configuration to validate

    Returns:
        List of validation errors (empty if valid)
    """
    errors = []
    assembly = config.get('assembly', {})

    _check_range(errors, 'assembly.ploidy', assembly.get('ploidy', 1), 1, integer=True)

    # Relationship filters
    rel = assembly.get('relationships', {})
    _check_range(errors, 'assembly.relationships.min_kmer_percentage',
                 rel.get('min_kmer_percentage', 5), 0, 100)
    _check_range(errors, 'assembly.relationships.min_overlap_proportion',
                 rel.get('min_overlap_proportion', 0.05), 0, 1)
    _check_range(errors, 'assembly.relationships.min_evidence_proportion',
                 rel.get('min_evidence_proportion', 0.0), 0, 1)
    _check_range(errors, 'assembly.relationships.kmer_length',
                 rel.get('kmer_length', 15), 1, integer=True)
    _check_range(errors, 'assembly.relationships.max_diagonal_deviation',
                 rel.get('max_diagonal_deviation', 0.1), 0, 1)

    # Scoring
    scoring = assembly.get('scoring', {})
    _check_range(errors, 'assembly.scoring.alpha_ikbp', scoring.get('alpha_ikbp', 0.001), 0, 1)
    _check_range(errors, 'assembly.scoring.significance', scoring.get('significance', 0.05), 0, 1)
    _check_range(errors, 'assembly.scoring.min_safe_edges',
                 scoring.get('min_safe_edges', 20), 1, integer=True)
    _check_range(errors, 'assembly.scoring.min_bucket_count',
                 scoring.get('min_bucket_count', 20), 1, integer=True)

    # Sanitizer calibration
    for name, value in assembly.get('sanitizer', {}).items():
        if name not in DEFAULT_CONFIG['assembly']['sanitizer']:
            errors.append(f"Unknown sanitizer parameter: {name}")
            continue
        _check_range(errors, f'assembly.sanitizer.{name}', value, 0)

    # Layout
    layout = assembly.get('layout', {})
    strategy = layout.get('strategy', 'safe_edge_chains')
    valid_strategies = [s.value for s in LayoutStrategy]
    if str(strategy).lower() not in valid_strategies:
        errors.append(f"Invalid layout strategy: {strategy} (valid: {', '.join(valid_strategies)})")
    _check_range(errors, 'assembly.layout.min_path_length',
                 layout.get('min_path_length', 1), 1, integer=True)

    # Consensus
    consensus = config.get('consensus', {})
    _check_range(errors, 'consensus.kmer_length', consensus.get('kmer_length', 15), 1, integer=True)
    _check_range(errors, 'consensus.min_aligned_proportion',
                 consensus.get('min_aligned_proportion', 0.5), 0, 1)
    _check_range(errors, 'consensus.min_depth', consensus.get('min_depth', 3), 1, integer=True)
    _check_range(errors, 'consensus.homozygous_fraction',
                 consensus.get('homozygous_fraction', 0.8), 0.5, 1)
    _check_range(errors, 'consensus.max_alignments_per_start',
                 consensus.get('max_alignments_per_start', 100), 1, integer=True)

    # Execution
    execution = config.get('execution', {})
    _check_range(errors, 'execution.threads', execution.get('threads', 1), 1, integer=True)
    _check_range(errors, 'execution.timeout_seconds_per_sequence',
                 execution.get('timeout_seconds_per_sequence', 10), 0)

    level = config.get('output', {}).get('logging', {}).get('level', 'INFO')
    if str(level).upper() not in VALID_LOG_LEVELS:
        errors.append(f"Invalid logging level: {level}")

    return errors


@dataclass
class AssemblyConfig:
    """Typed view of a merged configuration dictionary."""
    ploidy: int = 1
    indel_correction: bool = False
    min_kmer_percentage: float = 5
    min_overlap_proportion: float = 0.05
    min_evidence_proportion: float = 0.0
    kmer_length: int = 15
    max_diagonal_deviation: float = 0.1
    alpha_ikbp: float = 0.001
    significance: float = 0.05
    min_safe_edges: int = 20
    min_bucket_count: int = 20
    remove_high_ikbp_sequences: bool = True
    sanitizer: SanitizerThresholds = field(default_factory=SanitizerThresholds)
    layout_strategy: LayoutStrategy = LayoutStrategy.SAFE_EDGE_CHAINS
    min_path_length: int = 1
    consensus_kmer_length: int = 15
    min_aligned_proportion: float = 0.5
    min_depth: int = 3
    homozygous_fraction: float = 0.8
    max_alignments_per_start: int = 100
    threads: int = 1
    timeout_seconds_per_sequence: float = 10
    log_level: str = 'INFO'
    log_file: Optional[str] = None

    @classmethod
    def from_dict(cls, config: Dict[str, Any]) -> 'AssemblyConfig':
        """
        Build from a configuration dictionary merged onto the defaults.

        Raises:
            ConfigValidationError: If any value is invalid
        """
        merged = _deep_merge(copy.deepcopy(DEFAULT_CONFIG), config)
        errors = validate_config(merged)
        if errors:
            raise ConfigValidationError("Invalid configuration:\n  " + "\n  ".join(errors))

        assembly = merged['assembly']
        rel = assembly['relationships']
        scoring = assembly['scoring']
        consensus = merged['consensus']
        execution = merged['execution']
        logging_cfg = merged['output']['logging']
        return cls(
            ploidy=assembly['ploidy'],
            indel_correction=bool(assembly['indel_correction']),
            min_kmer_percentage=rel['min_kmer_percentage'],
            min_overlap_proportion=rel['min_overlap_proportion'],
            min_evidence_proportion=rel['min_evidence_proportion'],
            kmer_length=rel['kmer_length'],
            max_diagonal_deviation=rel['max_diagonal_deviation'],
            alpha_ikbp=scoring['alpha_ikbp'],
            significance=scoring['significance'],
            min_safe_edges=scoring['min_safe_edges'],
            min_bucket_count=scoring['min_bucket_count'],
            remove_high_ikbp_sequences=bool(scoring['remove_high_ikbp_sequences']),
            sanitizer=SanitizerThresholds(**assembly['sanitizer']),
            layout_strategy=LayoutStrategy(str(assembly['layout']['strategy']).lower()),
            min_path_length=assembly['layout']['min_path_length'],
            consensus_kmer_length=consensus['kmer_length'],
            min_aligned_proportion=consensus['min_aligned_proportion'],
            min_depth=consensus['min_depth'],
            homozygous_fraction=consensus['homozygous_fraction'],
            max_alignments_per_start=consensus['max_alignments_per_start'],
            threads=execution['threads'],
            timeout_seconds_per_sequence=execution['timeout_seconds_per_sequence'],
            log_level=str(logging_cfg['level']).upper(),
            log_file=logging_cfg['log_file'],
        )

    @classmethod
    def load(cls, config_path: Optional[Path] = None) -> 'AssemblyConfig':
        return cls.from_dict(load_config(config_path))
