"""CLI script for inspecting recommendations.

Useful for tuning the scoring configuration. Prints live recommendations for
a variant, the inspiration-only storefront feed, or the stored product lists.
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List

# Add project root to Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from invrec.api.exceptions import InvRecException
from invrec.api.state import RecommendationState
from invrec.config import Settings

# Setup logging
logging.basicConfig(level=logging.WARNING, format="%(levelname)s: %(message)s")
logger = logging.getLogger(__name__)


def print_variant_recommendations(entries: List[Dict[str, Any]], explain: bool) -> None:
    for position, entry in enumerate(entries, start=1):
        variant = entry["variant"]
        print(f"  {position}. {variant['code'] or variant['id']}  {variant['name'] or ''}  score={entry['score']:.2f}")
        if explain:
            breakdown = {k: round(v, 2) for k, v in entry["breakdown"].items() if v}
            print(f"     breakdown: {breakdown}")
            for group, matches in entry["matches"].items():
                if matches:
                    print(f"     {group}: {json.dumps(matches, ensure_ascii=False, default=str)}")


def main() -> int:
    """Main CLI function."""
    parser = argparse.ArgumentParser(
        description="Show recommendations for a variant or product",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python scripts/recommend_cli.py KV001
  python scripts/recommend_cli.py KV001 --limit 3 --explain
  python scripts/recommend_cli.py KV001 --mode fragrance
  python scripts/recommend_cli.py p-1 --mode products
        """,
    )

    parser.add_argument("identifier", type=str, help="Variant id or code (product id for --mode products)")
    parser.add_argument(
        "--mode",
        type=str,
        choices=["live", "fragrance", "nonfragrance", "product", "products"],
        default="live",
        help="live scoring, an inspiration-only feed, or stored product lists (default: live)",
    )
    parser.add_argument("--limit", type=int, default=6, help="Number of recommendations (default: 6)")
    parser.add_argument("--data-dir", type=str, default="data", help="Data directory (default: data)")
    parser.add_argument("--explain", action="store_true", help="Show score breakdown and matches")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable verbose logging")

    args = parser.parse_args()

    if args.verbose:
        logging.getLogger().setLevel(logging.INFO)

    try:
        state = RecommendationState.load(Settings(DATA_DIR=args.data_dir))
    except InvRecException as e:
        print(f"Error: {e.message}", file=sys.stderr)
        return 1

    if args.mode == "products":
        product = state.catalog.get_product(args.identifier)
        if product is None:
            print(f"Error: product {args.identifier} not found", file=sys.stderr)
            return 1
        records = state.store.product_recommendations(product.id)
        if not records:
            print(f"\nNo stored lists for product {product.id}. Run scripts/generate_recommendations.py first.\n")
            return 0
        print(f"\nStored lists for product {product.id} ({product.name}):")
        for record in records:
            print(
                f"  [{record['type']}] {record['position']}. {record['recommended_product_id']}"
                f"  score={record['score']:.2f}"
            )
            if args.explain:
                print(f"     matches: {json.dumps(record['matches'], ensure_ascii=False)}")
        print()
        return 0

    variant = state.catalog.find_variant(args.identifier)
    if variant is None:
        print(f"Error: variant {args.identifier} not found", file=sys.stderr)
        return 1

    recommender = state.recommender()
    if args.mode == "live":
        entries = recommender.recommend(variant, args.limit)
    else:
        entries = recommender.recommend_by_inspiration_type(variant, args.limit, args.mode)

    print(f"\nRecommendations for {variant.code or variant.id} {variant.name or ''} (mode: {args.mode}):")
    if not entries:
        print("  (none)")
    print_variant_recommendations(entries, args.explain)
    print()
    return 0


if __name__ == "__main__":
    sys.exit(main())
