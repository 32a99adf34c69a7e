"""
Path agreement analysis for the match ranker.

For every user in a seed population, ranks candidates once through the
vector index (fast path) and once exhaustively (slow path), then reports
how closely the two orderings agree alongside the pairwise score
distribution and a symmetry check.

Usage:
    python scripts/path_agreement.py [trees.json] [--top-k 5] [--output-dir artifacts/path_agreement]
"""

import argparse
import sys
from pathlib import Path

project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

import numpy as np
import pandas as pd

from goalmatch.configs import load_config
from goalmatch.data_loading import load_goal_trees
from goalmatch.engine import create_engine_from_config
from goalmatch.evaluation import compare_rankings, create_evaluation_report
from goalmatch.matching import MatchRanker, RankerConfig


def main():
    parser = argparse.ArgumentParser(description="Compare fast-path and slow-path rankings")
    parser.add_argument("trees", nargs="?", default=None, help="Goal tree file (default: data.trees_path)")
    parser.add_argument("--config", default=str(project_root / "configs" / "config.yaml"))
    parser.add_argument("--top-k", type=int, default=5)
    parser.add_argument("--output-dir", default=str(project_root / "artifacts" / "path_agreement"))
    args = parser.parse_args()

    config = load_config(args.config)
    trees_path = args.trees or str(project_root / config["data"]["trees_path"])
    trees = load_goal_trees(trees_path)
    print(f"Loaded {len(trees)} users from {trees_path}")

    engine = create_engine_from_config(config)
    with engine:
        for tree in trees:
            engine.save_tree(tree.user_id, tree)
        if not engine.flush_embeddings(timeout=120):
            print("Warning: embeddings still pending, fast path may be partial")

        slow_ranker = MatchRanker(
            engine.store, engine.ranker.scorer,
            config=RankerConfig(**{**engine.ranker.config.to_dict(), "fast_path": False}),
        )

        rows = []
        agreements = []
        for tree in trees:
            fast = engine.get_matches(tree.user_id)
            slow = slow_ranker.get_matches(tree.user_id)
            agreement = compare_rankings(tree.user_id, slow, fast, top_k=args.top_k)
            agreements.append(agreement)
            rows.append({
                **agreement.to_dict(),
                "n_fast": len(fast),
                "n_slow": len(slow),
                "fast_top": fast[0].candidate_user_id if fast else None,
                "slow_top": slow[0].candidate_user_id if slow else None,
            })

        report = create_evaluation_report("path_agreement", trees, engine.ranker.scorer, agreements)

    output_dir = Path(args.output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    df = pd.DataFrame(rows)
    csv_path = output_dir / "path_agreement.csv"
    df.to_csv(csv_path, index=False)
    print(f"Saved: {csv_path}")

    report_path = output_dir / "evaluation_report.json"
    report.save(str(report_path))
    print(f"Saved: {report_path}")

    print("\n" + report.summary())
    top_match_rate = np.mean(df["fast_top"] == df["slow_top"]) if len(df) else 0.0
    print(f"\nSame top candidate on both paths: {top_match_rate:.0%}")
    return report


if __name__ == "__main__":
    results = main()
