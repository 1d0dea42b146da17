"""Command-line interface for generating stored recommendations.

Loads the catalog and orders from a data directory, recomputes every
variant's recommendation list and the product-level lists, and writes them
to the recommendations directory.

Example:
    Generate with default settings:
        $ python scripts/generate_recommendations.py data

    Generate only product lists, eight per product:
        $ python scripts/generate_recommendations.py data \\
            --skip-variants \\
            --product-limit 8
"""

import argparse
import logging
import sys
from pathlib import Path

# Add project root to Python path for imports
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from invrec.api.exceptions import InvRecException
from invrec.api.state import RecommendationState
from invrec.config import Settings
from invrec.recommender.jobs import GenerationOptions, generate_recommendations


def setup_logging(verbose: bool = False) -> None:
    """Configure logging for the script.

    Args:
        verbose: If True, set log level to DEBUG. Otherwise, use INFO.
    """
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def parse_arguments() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Generate variant and product recommendations from a data directory.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python scripts/generate_recommendations.py data
  python scripts/generate_recommendations.py data --limit 4 --product-limit 8
  python scripts/generate_recommendations.py data --exclude-keyword tester --exclude-keyword vzorek
        """,
    )

    parser.add_argument(
        "data_dir",
        type=str,
        help="Directory with catalog.json and orders.csv",
    )
    parser.add_argument(
        "--limit",
        type=int,
        default=6,
        help="Recommendations stored per variant (default: 6)",
    )
    parser.add_argument(
        "--product-limit",
        type=int,
        default=10,
        help="Entries per related/recommended product list (default: 10)",
    )
    parser.add_argument(
        "--chunk",
        type=int,
        default=50,
        help="Log progress every N variants, at least 10 (default: 50)",
    )
    parser.add_argument(
        "--skip-variants",
        action="store_true",
        help="Only rebuild the product-level lists",
    )
    parser.add_argument(
        "--exclude-keyword",
        action="append",
        dest="exclude_keywords",
        help="Skip variants/products containing this keyword (repeatable; "
        "replaces the configured list)",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable verbose (DEBUG) logging",
    )

    return parser.parse_args()


def main() -> int:
    """Main entry point.

    Returns:
        Exit code: 0 for success, 1 for errors, 130 when interrupted.
    """
    args = parse_arguments()
    setup_logging(verbose=args.verbose)
    logger = logging.getLogger(__name__)

    try:
        settings = Settings(DATA_DIR=args.data_dir)
        state = RecommendationState.load(settings)

        options = GenerationOptions(
            chunk=args.chunk,
            limit=args.limit,
            product_limit=args.product_limit,
            skip_variants=args.skip_variants,
            exclude_keywords=args.exclude_keywords or settings.EXCLUDE_KEYWORDS,
        )

        logger.info("=" * 70)
        logger.info("Generation Configuration")
        logger.info("=" * 70)
        logger.info(f"Data directory:   {Path(args.data_dir).absolute()}")
        logger.info(f"Products:         {len(state.catalog)}")
        logger.info(f"Variants:         {state.catalog.num_variants}")
        logger.info(f"Variant limit:    {options.limit}")
        logger.info(f"Product limit:    {options.product_limit}")
        logger.info(f"Skip variants:    {options.skip_variants}")
        logger.info(f"Exclude keywords: {', '.join(options.exclude_keywords) or '-'}")
        logger.info("=" * 70)

        run_status = generate_recommendations(
            state.catalog,
            state.metrics,
            state.settings_store,
            state.store,
            options,
            time_budget_seconds=settings.TIME_BUDGET_SECONDS,
        )

        logger.info(run_status["message"])
        logger.info(f"Related entries:     {run_status['related']}")
        logger.info(f"Recommended entries: {run_status['recommended']}")
        logger.info(f"Saved to: {settings.recommendations_path.absolute()}")
        return 0

    except InvRecException as e:
        logging.error(e.message)
        return 1
    except (FileNotFoundError, ValueError) as e:
        logging.error(f"Generation failed: {e}")
        return 1
    except KeyboardInterrupt:
        logging.warning("Generation interrupted by user")
        return 130


if __name__ == "__main__":
    sys.exit(main())
