"""
Main entry point for geochemmath.

Runs one analysis over a CSV file of samples and prints the result as
JSON.
"""

import argparse
import json
import logging
import sys
from typing import Any, Dict, List, Optional

import pandas as pd

from geochemmath.analysis import GeochemAnalysis
from geochemmath.components.config import ConfigManager, load_config_file
from geochemmath.errors import UnsupportedMethodError
from geochemmath.math.corr import strongest_pairs

logger = logging.getLogger(__name__)


def setup_logging(level: str = 'INFO') -> None:
    """
    Set up logging.

    Args:
        level: Logging level
    """
    numeric_level = getattr(logging, level.upper(), None)
    if not isinstance(numeric_level, int):
        numeric_level = logging.WARNING

    logging.basicConfig(
        level=numeric_level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.StreamHandler()
        ]
    )
    # basicConfig leaves an already configured root logger alone
    logging.getLogger().setLevel(numeric_level)


def _split(value: Optional[str]) -> Optional[List[str]]:
    if not value:
        return None
    return [item.strip() for item in value.split(',') if item.strip()]


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """
    Parse command line arguments.

    Returns:
        Parsed arguments
    """
    parser = argparse.ArgumentParser(description='Geochemical correlation and PCA analysis')

    parser.add_argument(
        '--config',
        help='Path to configuration file'
    )

    parser.add_argument(
        '--log-level',
        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'],
        help='Logging level (default: logging.level from the configuration)'
    )

    parser.add_argument(
        '--seed',
        type=int,
        help='Random seed for eigen-decomposition and clustering'
    )

    subparsers = parser.add_subparsers(dest='command', required=True)

    scan_parser = subparsers.add_parser('scan', help='Scan every pair of variables')
    scan_parser.add_argument('csv', help='CSV file of samples')
    scan_parser.add_argument('--variables', help='Comma-separated variables (default: numeric columns)')
    scan_parser.add_argument('--corr-threshold', type=float, help='Minimum |r| for significance')
    scan_parser.add_argument('--p-threshold', type=float, help='Maximum p-value for significance')
    scan_parser.add_argument('--methods', help='Comma-separated methods (pearson, spearman)')
    scan_parser.add_argument('--denominator', help='Divide every variable by this one (ratio mode)')
    scan_parser.add_argument('--all', action='store_true', help='Print every pair, not only the top results')

    matrix_parser = subparsers.add_parser('matrix', help='Pearson correlation matrix')
    matrix_parser.add_argument('csv', help='CSV file of samples')
    matrix_parser.add_argument('--variables', help='Comma-separated variables')
    matrix_parser.add_argument('--top', type=int, default=10, help='Number of strongest pairs to list')

    pca_parser = subparsers.add_parser('pca', help='Principal component analysis with clustering')
    pca_parser.add_argument('csv', help='CSV file of samples')
    pca_parser.add_argument('--variables', required=True, help='Comma-separated variables')
    pca_parser.add_argument('--components', type=int, help='Number of components')
    pca_parser.add_argument('--no-cluster', action='store_true', help='Skip clustering of the scores')
    pca_parser.add_argument('--no-favored-k', action='store_true', help='Disable the favored cluster count')

    suggest_parser = subparsers.add_parser('suggest', help='Suggest variable groups for PCA')
    suggest_parser.add_argument('csv', help='CSV file of samples')
    suggest_parser.add_argument('--variables', help='Comma-separated variables')
    suggest_parser.add_argument('--threshold', type=float, help='Minimum mean |r| for grouping')

    describe_parser = subparsers.add_parser('describe', help='Descriptive statistics per variable')
    describe_parser.add_argument('csv', help='CSV file of samples')
    describe_parser.add_argument('--variables', help='Comma-separated variables')

    return parser.parse_args(argv)


def run_command(args: argparse.Namespace, analysis: GeochemAnalysis) -> Dict[str, Any]:
    """
    Run the selected subcommand.

    Args:
        args: Parsed arguments
        analysis: Analysis bound to the loaded samples

    Returns:
        JSON-serializable result
    """
    variables = _split(args.variables)

    if args.command == 'scan':
        summary = analysis.summarize_scan(
            variables,
            corr_threshold=args.corr_threshold,
            p_threshold=args.p_threshold,
            methods=_split(args.methods),
            axis_mode='ratio' if args.denominator else 'single',
            denominator=args.denominator
        )
        result = summary.to_dict()
        if not args.all:
            del result['entries']
        return result

    if args.command == 'matrix':
        corr = analysis.correlation_matrix(variables)
        return {'matrix': corr.to_dict(), 'strongest_pairs': strongest_pairs(corr, args.top)}

    if args.command == 'pca':
        if args.no_favored_k:
            analysis.config.set('clustering.favored-k', None)
        return analysis.pca(variables, args.components, cluster=not args.no_cluster).to_dict()

    if args.command == 'suggest':
        return {'suggestions': [s.to_dict() for s in analysis.suggest_groups(variables, args.threshold)]}

    if args.command == 'describe':
        return analysis.describe(variables)

    raise ValueError(f"Unknown command: {args.command}")


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main entry point.
    """
    # Parse arguments
    args = parse_args(argv)

    # Create overrides from arguments
    overrides = {}
    if args.config:
        overrides.update(load_config_file(args.config))
    if args.seed is not None:
        overrides['random-seed'] = args.seed

    config = ConfigManager.get_config(overrides)
    setup_logging(args.log_level or config.get('logging.level', 'warning'))

    samples = pd.read_csv(args.csv)
    logger.info(f"Loaded {len(samples)} samples with {len(samples.columns)} columns from {args.csv}")

    analysis = GeochemAnalysis(samples, config)

    try:
        result = run_command(args, analysis)
    except (ValueError, UnsupportedMethodError) as e:
        logger.error(str(e))
        return 1

    json.dump(result, sys.stdout, indent=2, ensure_ascii=False)
    sys.stdout.write('\n')
    return 0


if __name__ == '__main__':
    sys.exit(main())
