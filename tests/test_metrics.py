"""Tests for scorer diagnostics."""

import json
import math

import numpy as np
import pytest

from goalmatch.data_loading import load_goal_trees
from goalmatch.domain import MatchResult
from goalmatch.evaluation import (
    check_symmetry,
    compare_rankings,
    compute_score_distribution_stats,
    create_evaluation_report,
    pairwise_scores,
)


def ranking(*ids):
    return [MatchResult(candidate_user_id=u, score=1.0 - i * 0.1) for i, u in enumerate(ids)]


class TestScoreDistributionStats:

    def test_basic_stats(self):
        stats = compute_score_distribution_stats(np.array([0.0, 0.5, 1.0]))
        assert stats.n_pairs == 3
        assert stats.mean == pytest.approx(0.5)
        assert stats.min == 0.0
        assert stats.max == 1.0
        assert stats.quantiles["p50"] == pytest.approx(0.5)
        assert set(stats.quantiles) == {"p10", "p50", "p90"}

    def test_empty(self):
        stats = compute_score_distribution_stats(np.array([]))
        assert stats.n_pairs == 0
        assert stats.mean == 0.0


class TestSymmetryCheck:

    def test_sample_population_is_symmetric(self, sample_trees_path):
        trees = load_goal_trees(str(sample_trees_path))
        check = check_symmetry(trees)
        assert check.n_pairs == len(trees) * (len(trees) - 1) // 2
        assert check.max_abs_difference == 0.0
        assert check.passed


class TestCompareRankings:

    def test_identical(self):
        agreement = compare_rankings("u", ranking("a", "b", "c"), ranking("a", "b", "c"), top_k=2)
        assert agreement.spearman == pytest.approx(1.0)
        assert agreement.top_k_jaccard == 1.0
        assert agreement.n_common == 3

    def test_reversed(self):
        agreement = compare_rankings("u", ranking("a", "b", "c"), ranking("c", "b", "a"), top_k=3)
        assert agreement.spearman == pytest.approx(-1.0)
        assert agreement.top_k_jaccard == 1.0

    def test_disjoint(self):
        agreement = compare_rankings("u", ranking("a", "b"), ranking("c", "d"), top_k=2)
        assert math.isnan(agreement.spearman)
        assert agreement.top_k_jaccard == 0.0

    def test_both_empty(self):
        agreement = compare_rankings("u", [], [], top_k=5)
        assert agreement.top_k_jaccard == 1.0
        assert agreement.n_common == 0


class TestEvaluationReport:

    def test_report_round_trip_to_json(self, sample_trees_path, tmp_path):
        trees = load_goal_trees(str(sample_trees_path))
        agreement = compare_rankings("alice", ranking("a", "b"), ranking("a", "b"))
        report = create_evaluation_report("sample", trees, rank_agreements=[agreement])

        path = tmp_path / "report.json"
        report.save(str(path))
        data = json.loads(path.read_text())
        assert data["name"] == "sample"
        assert data["distribution_stats"]["n_pairs"] == 15
        assert data["symmetry_check"]["passed"] is True
        assert data["rank_agreements"][0]["user_id"] == "alice"
        assert data["additional_metrics"]["n_users"] == 6

        summary = report.summary()
        assert "Symmetry Check" in summary
        assert "Path Agreement" in summary

    def test_pairwise_scores_in_unit_interval(self, sample_trees_path):
        scores = pairwise_scores(load_goal_trees(str(sample_trees_path)))
        assert scores.shape == (15,)
        assert ((scores >= 0) & (scores <= 1)).all()
