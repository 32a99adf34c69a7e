"""
Command-line runner for the matching engine.

Loads a population of goal trees into a freshly configured engine and runs
one operation against it, printing the result as JSON.

Usage:
    python -m goalmatch.run match --user u1 [--domain Fitness] [--limit 10]
    python -m goalmatch.run score --user u1 --other u2
    python -m goalmatch.run feedback --giver u2 --receiver u1 --node n1 --grade Succeeded
    python -m goalmatch.run report [--output artifacts/report.json]
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


def setup_logging(log_level: str) -> None:
    """Configure logging level from config."""
    level = getattr(logging, log_level.upper(), logging.INFO)
    logging.getLogger().setLevel(level)


def load_population(path: str) -> List["GoalTree"]:
    """Load trees from a JSON/YAML document or a per-node CSV."""
    from .data_loading import load_goal_trees, load_goal_nodes_csv

    if Path(path).suffix.lower() == ".csv":
        return load_goal_nodes_csv(path)
    return load_goal_trees(path)


def build_engine(config_path: str, trees_path: Optional[str] = None):
    """
    Build an engine from configuration and seed it with a population.

    A missing config file falls back to the built-in defaults.

    Returns:
        Tuple of (MatchingEngine, config, trees)
    """
    from .configs import load_config, validate_config, with_defaults, get_config_value
    from .engine import create_engine_from_config

    if Path(config_path).exists():
        config = load_config(config_path)
    else:
        logger.warning(f"Config {config_path} not found; using defaults")
        config = with_defaults()

    for issue in validate_config(config):
        logger.warning(f"Config issue: {issue}")
    setup_logging(get_config_value(config, "global.log_level", "INFO"))

    engine = create_engine_from_config(config)
    trees = []
    trees_path = trees_path or get_config_value(config, "data.trees_path")
    if trees_path:
        trees = load_population(trees_path)
        for tree in trees:
            engine.save_tree(tree.user_id, tree)
        if not engine.flush_embeddings(timeout=60):
            logger.warning("Embeddings still pending after 60s; fast path may be incomplete")
    return engine, config, trees


def run_command(args: argparse.Namespace) -> Dict[str, Any]:
    """Execute one CLI command and return its JSON-compatible result."""
    from .evaluation import compare_rankings, create_evaluation_report
    from .matching import MatchRanker, RankerConfig

    engine, config, trees = build_engine(args.config, args.trees)
    with engine:
        if args.command == "match":
            matches = engine.get_matches(
                args.user, domain_filter=args.domain, limit=args.limit, timeout=args.timeout
            )
            return {"userId": args.user, "matches": [m.to_dict() for m in matches]}

        if args.command == "score":
            a, b = engine.get_tree(args.user), engine.get_tree(args.other)
            missing = [u for u, t in ((args.user, a), (args.other, b)) if t is None]
            if missing:
                raise ValueError(f"No goal tree for: {', '.join(missing)}")
            breakdown = engine.ranker.scorer.score_with_breakdown(a, b)
            return {
                "userId": args.user,
                "otherUserId": args.other,
                "score": breakdown.score,
                "matchedDomains": [d.value for d in breakdown.matched_domains],
            }

        if args.command == "feedback":
            result = engine.submit_feedback({
                "giverId": args.giver,
                "receiverId": args.receiver,
                "goalNodeId": args.node,
                "grade": args.grade,
                "comment": args.comment,
            })
            return {
                "outcome": result.outcome.value,
                "oldWeight": result.old_weight,
                "newWeight": result.new_weight,
            }

        # report
        slow_ranker = MatchRanker(
            engine.store, engine.ranker.scorer,
            config=RankerConfig(**{**engine.ranker.config.to_dict(), "fast_path": False}),
        )
        agreements = []
        for tree in trees:
            fast = engine.get_matches(tree.user_id)
            slow = slow_ranker.get_matches(tree.user_id)
            agreements.append(compare_rankings(tree.user_id, slow, fast, top_k=args.top_k))
        report = create_evaluation_report("goalmatch", trees, engine.ranker.scorer, agreements)
        output = args.output or config.get("data", {}).get("report_path")
        if output:
            Path(output).parent.mkdir(parents=True, exist_ok=True)
            report.save(output)
        logger.info("\n" + report.summary())
        return report.to_dict()


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the CLI."""
    parser = argparse.ArgumentParser(description="Goal-compatibility matching engine")
    parser.add_argument(
        "--config",
        type=str,
        default="configs/config.yaml",
        help="Path to configuration file"
    )
    parser.add_argument(
        "--trees",
        type=str,
        default=None,
        help="Goal tree file (JSON, YAML or CSV); overrides data.trees_path"
    )
    sub = parser.add_subparsers(dest="command", required=True)

    match = sub.add_parser("match", help="Rank matches for a user")
    match.add_argument("--user", required=True)
    match.add_argument("--domain", action="append", default=None, help="Repeatable domain filter")
    match.add_argument("--limit", type=int, default=None)
    match.add_argument("--timeout", type=float, default=None, help="Seconds before giving up")

    score = sub.add_parser("score", help="Score two users against each other")
    score.add_argument("--user", required=True)
    score.add_argument("--other", required=True)

    feedback = sub.add_parser("feedback", help="Apply one feedback event")
    feedback.add_argument("--giver", required=True)
    feedback.add_argument("--receiver", required=True)
    feedback.add_argument("--node", required=True)
    feedback.add_argument("--grade", required=True)
    feedback.add_argument("--comment", default=None)

    report = sub.add_parser("report", help="Score diagnostics over the population")
    report.add_argument("--output", default=None)
    report.add_argument("--top-k", type=int, default=10)

    args = parser.parse_args(argv)

    from .errors import GoalMatchError

    try:
        result = run_command(args)
    except GoalMatchError as e:
        logger.error(f"{type(e).__name__} ({e.status_code}): {e.message}")
        return 1
    except (FileNotFoundError, ValueError) as e:
        logger.error(f"Command failed: {e}")
        return 1

    print(json.dumps(result, indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
