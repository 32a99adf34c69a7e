"""Tests for match ranking on the fast and slow paths."""

import numpy as np
import pytest

from goalmatch.domain import Domain
from goalmatch.errors import InvalidInputError, MatchCancelledError, NoGoalsConfiguredError
from goalmatch.index import IndexHit, IndexQueryResult, VectorIndex
from goalmatch.matching import CancellationToken, MatchRanker, RankerConfig, parse_domain_filter
from goalmatch.scoring import CompatibilityScorer
from goalmatch.similarity import SimilarityResolver


class BrokenIndex(VectorIndex):
    """Index whose queries raise instead of returning a tagged result."""

    def query(self, vectors, k, exclude_owner_id=None, domains=None):
        raise ConnectionError("index host unreachable")


class NonPositiveIndex(VectorIndex):
    """Index that answers OK with hits no candidate should be matched on."""

    def query(self, vectors, k, exclude_owner_id=None, domains=None):
        return IndexQueryResult.ok([IndexHit("bruno", -0.2), IndexHit("chen", 0.0)])


class CancellingScorer(CompatibilityScorer):
    """Scorer that cancels the request token after the first pair."""

    def __init__(self, token):
        super().__init__()
        self.token = token
        self.calls = 0

    def score_with_breakdown(self, tree_a, tree_b):
        self.calls += 1
        self.token.cancel()
        return super().score_with_breakdown(tree_a, tree_b)


@pytest.fixture
def population(make_tree, store):
    trees = [
        make_tree("alice",
                  {"domain": "Fitness", "name": "Run a marathon"},
                  {"domain": "Career", "name": "Become a staff engineer", "weight": 2.0}),
        make_tree("bruno", {"domain": "Fitness", "name": "Run a marathon"}),
        make_tree("chen", {"domain": "Career", "name": "Become a staff engineer"}),
        make_tree("dana", {"domain": "Academics", "name": "Finish a degree"}),
        make_tree("emeka",
                  {"domain": "Fitness", "name": "Run a marathon"},
                  {"domain": "Fitness", "name": "Swim daily", "weight": 3.0}),
    ]
    for tree in trees:
        store.put(tree.user_id, tree)
    return trees


@pytest.fixture
def embedded_population(population, worker, embeddings):
    for tree in population:
        worker.on_tree_saved(tree.user_id, tree.node_list)
    assert worker.flush(timeout=10)
    return population


def slow_ranker(store, embeddings=None, **config):
    return MatchRanker(
        store,
        CompatibilityScorer(SimilarityResolver(embeddings)),
        config=RankerConfig(fast_path=False, n_workers=2, **config),
    )


class TestSlowPath:

    def test_scores_and_ranks(self, population, store):
        matches = slow_ranker(store).get_matches("alice")
        # bruno: 1*1/(3*1); chen: 2*1/(3*1); emeka: 1*1/(3*4); dana: 0
        assert [m.candidate_user_id for m in matches] == ["chen", "bruno", "emeka"]
        assert [m.score for m in matches] == pytest.approx([2 / 3, 1 / 3, 1 / 12])
        assert all(m.path == "slow" for m in matches)

    def test_excludes_requester_and_zero_scores(self, population, store):
        ids = {m.candidate_user_id for m in slow_ranker(store).get_matches("alice")}
        assert "alice" not in ids
        assert "dana" not in ids

    def test_matched_domains(self, population, store):
        matches = {m.candidate_user_id: m for m in slow_ranker(store).get_matches("alice")}
        assert matches["bruno"].matched_domains == [Domain.FITNESS]
        assert matches["chen"].matched_domains == [Domain.CAREER]

    def test_domain_filter(self, population, store):
        matches = slow_ranker(store).get_matches("alice", domain_filter="career")
        assert [m.candidate_user_id for m in matches] == ["chen"]

    def test_domain_filter_any_of(self, population, store):
        matches = slow_ranker(store).get_matches("alice", domain_filter=["Career", Domain.FITNESS])
        assert len(matches) == 3

    def test_limit(self, population, store):
        assert len(slow_ranker(store).get_matches("alice", limit=1)) == 1
        assert slow_ranker(store).get_matches("alice", limit=0) == []

    def test_small_batches_same_result(self, population, store):
        assert slow_ranker(store, batch_size=1).get_matches("alice") == \
            slow_ranker(store).get_matches("alice")

    def test_ties_broken_by_candidate_id(self, make_tree, store):
        for user in ("zoe", "yann", "xia"):
            store.put(user, make_tree(user, {"name": "Run a marathon"}))
        store.put("req", make_tree("req", {"name": "Run a marathon"}))
        matches = slow_ranker(store).get_matches("req")
        assert [m.candidate_user_id for m in matches] == ["xia", "yann", "zoe"]
        assert len({m.score for m in matches}) == 1


class TestFastPath:

    def test_uses_index_when_requester_embedded(self, embedded_population, store, embeddings, index):
        ranker = MatchRanker(store, CompatibilityScorer(SimilarityResolver(embeddings)), index=index)
        matches = ranker.get_matches("alice")
        assert matches
        assert all(m.path == "fast" for m in matches)
        assert all(0.0 < m.score <= 1.0 for m in matches)
        assert "alice" not in {m.candidate_user_id for m in matches}

    def test_identical_goals_rank_first(self, embedded_population, store, embeddings, index):
        ranker = MatchRanker(store, CompatibilityScorer(SimilarityResolver(embeddings)), index=index)
        matches = ranker.get_matches("alice")
        # bruno, chen and emeka each share one identical goal text with alice
        assert {m.candidate_user_id for m in matches[:3]} == {"bruno", "chen", "emeka"}
        assert [m.score for m in matches[:3]] == pytest.approx([1.0, 1.0, 1.0])

    def test_domain_filter_on_fast_path(self, embedded_population, store, embeddings, index):
        ranker = MatchRanker(store, CompatibilityScorer(SimilarityResolver(embeddings)), index=index)
        matches = ranker.get_matches("alice", domain_filter="Career")
        assert [m.candidate_user_id for m in matches] == ["chen"]
        assert matches[0].matched_domains == [Domain.CAREER]

    def test_top_k_bounds_candidates(self, embedded_population, store, embeddings, index):
        ranker = MatchRanker(store, CompatibilityScorer(SimilarityResolver(embeddings)),
                             index=index, config=RankerConfig(top_k=2))
        assert len(ranker.get_matches("alice")) <= 2

    def test_requester_without_embeddings_uses_slow_path(self, population, store, index):
        ranker = MatchRanker(store, index=index)
        matches = ranker.get_matches("alice")
        assert matches and all(m.path == "slow" for m in matches)


class TestDegradation:

    def test_unavailable_index_matches_slow_path(self, embedded_population, store, embeddings, index, caplog):
        scorer = CompatibilityScorer(SimilarityResolver(embeddings))
        expected = MatchRanker(store, scorer, config=RankerConfig(fast_path=False)).get_matches("alice")

        index.available = False
        with caplog.at_level("WARNING"):
            degraded = MatchRanker(store, scorer, index=index).get_matches("alice")

        assert degraded == expected
        assert all(m.path == "slow" for m in degraded)
        assert "degrading to exhaustive scoring" in caplog.text

    def test_raising_index_degrades(self, population, store):
        scorer = CompatibilityScorer(SimilarityResolver())
        # requester needs an embedding for the index to be consulted
        alice = store.get("alice")
        for node in alice.node_list:
            node.embedding = np.array([1.0, 0.0])
        ranker = MatchRanker(store, scorer, index=BrokenIndex())
        assert ranker._query_index(alice).status.value == "unavailable"
        matches = ranker.get_matches("alice")
        assert all(m.path == "slow" for m in matches)

    def test_non_positive_hits_give_no_matches_without_fallback(self, population, store):
        for node in store.get("alice").node_list:
            node.embedding = np.array([1.0, 0.0])
        assert slow_ranker(store).get_matches("alice")

        ranker = MatchRanker(store, index=NonPositiveIndex())
        assert ranker.get_matches("alice") == []

    def test_empty_index_falls_back(self, population, store, index):
        alice = store.get("alice")
        for node in alice.node_list:
            node.embedding = np.array([1.0, 0.0])
        ranker = MatchRanker(store, index=index)
        assert ranker._query_index(alice) == IndexQueryResult.empty()
        assert ranker.get_matches("alice")


class TestErrors:

    def test_no_tree(self, population, store):
        with pytest.raises(NoGoalsConfiguredError) as exc_info:
            slow_ranker(store).get_matches("nobody")
        assert exc_info.value.status_code == 404

    @pytest.mark.parametrize("user_id", ["", "   ", None])
    def test_blank_user_id(self, store, user_id):
        with pytest.raises(InvalidInputError):
            slow_ranker(store).get_matches(user_id)

    def test_unknown_domain_filter(self, population, store):
        with pytest.raises(InvalidInputError):
            slow_ranker(store).get_matches("alice", domain_filter="Cooking")

    def test_negative_limit(self, population, store):
        with pytest.raises(InvalidInputError):
            slow_ranker(store).get_matches("alice", limit=-1)

    def test_requester_with_empty_tree_gets_no_matches(self, population, store):
        from goalmatch.domain import GoalTree
        store.put("empty", GoalTree(user_id="empty"))
        assert slow_ranker(store).get_matches("empty") == []

    def test_invalid_config(self, store):
        with pytest.raises(ValueError):
            MatchRanker(store, config=RankerConfig(top_k=0))


class TestCancellation:

    def test_cancelled_before_start(self, population, store):
        token = CancellationToken()
        token.cancel()
        with pytest.raises(MatchCancelledError):
            slow_ranker(store).get_matches("alice", token=token)

    def test_expired_deadline(self, population, store):
        with pytest.raises(MatchCancelledError) as exc_info:
            slow_ranker(store).get_matches("alice", token=CancellationToken(timeout=0))
        assert "deadline" in str(exc_info.value)

    def test_cancelled_between_batches(self, population, store):
        token = CancellationToken()
        scorer = CancellingScorer(token)
        ranker = MatchRanker(store, scorer, config=RankerConfig(fast_path=False, n_workers=1, batch_size=1))
        with pytest.raises(MatchCancelledError):
            ranker.get_matches("alice", token=token)
        assert scorer.calls == 1
        # read-only: stored trees untouched
        assert store.get("alice").get_node("alice-1").weight == 2.0

    def test_token_without_deadline(self):
        token = CancellationToken()
        assert not token.cancelled
        token.raise_if_cancelled()


class TestParseDomainFilter:

    def test_none_is_no_filter(self):
        assert parse_domain_filter(None) == set()

    def test_single_and_many(self):
        assert parse_domain_filter("fitness") == {Domain.FITNESS}
        assert parse_domain_filter(["career", Domain.ACADEMICS]) == {Domain.CAREER, Domain.ACADEMICS}
