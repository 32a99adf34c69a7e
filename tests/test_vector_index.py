"""Tests for the in-memory vector index."""

import numpy as np
import pytest

from goalmatch.domain import Domain
from goalmatch.index import IndexStatus, InMemoryVectorIndex


@pytest.fixture
def populated_index():
    index = InMemoryVectorIndex()
    index.upsert("u2", "b0", Domain.FITNESS, [1.0, 0.0, 0.0])
    index.upsert("u2", "b1", Domain.CAREER, [0.0, 1.0, 0.0])
    index.upsert("u3", "c0", Domain.FITNESS, [1.0, 1.0, 0.0])
    index.upsert("u4", "d0", Domain.ACADEMICS, [0.0, 0.0, 1.0])
    index.upsert("u1", "a0", Domain.FITNESS, [1.0, 0.0, 0.0])
    return index


class TestQuery:

    def test_empty_index(self):
        result = InMemoryVectorIndex().query([[1.0, 0.0]], k=5)
        assert result.status is IndexStatus.EMPTY
        assert result.hits == []

    def test_no_query_vectors(self, populated_index):
        assert populated_index.query([], k=5).status is IndexStatus.EMPTY

    def test_ranks_owners_by_best_cosine(self, populated_index):
        result = populated_index.query([[1.0, 0.0, 0.0]], k=10, exclude_owner_id="u1")
        assert result.status is IndexStatus.OK
        owners = [h.owner_id for h in result.hits]
        assert owners == ["u2", "u3", "u4"]
        assert result.hits[0].score == pytest.approx(1.0)
        assert result.hits[1].score == pytest.approx(1 / np.sqrt(2))
        assert result.hits[2].score == pytest.approx(0.0)

    def test_excludes_requester(self, populated_index):
        result = populated_index.query([[1.0, 0.0, 0.0]], k=10, exclude_owner_id="u1")
        assert "u1" not in {h.owner_id for h in result.hits}

    def test_top_k(self, populated_index):
        result = populated_index.query([[1.0, 0.0, 0.0]], k=1, exclude_owner_id="u1")
        assert [h.owner_id for h in result.hits] == ["u2"]

    def test_ties_broken_by_owner_id(self):
        index = InMemoryVectorIndex()
        index.upsert("zed", "z", Domain.FITNESS, [1.0, 0.0])
        index.upsert("amy", "a", Domain.FITNESS, [2.0, 0.0])
        hits = index.query([[1.0, 0.0]], k=5).hits
        assert [h.owner_id for h in hits] == ["amy", "zed"]

    def test_matched_domains_require_same_domain_and_positive_similarity(self, populated_index):
        result = populated_index.query(
            [[1.0, 0.0, 0.0], [0.0, 0.0, 1.0]], k=10,
            exclude_owner_id="u1", domains=[Domain.FITNESS, Domain.CAREER],
        )
        domains = {h.owner_id: h.domains for h in result.hits}
        assert domains["u2"] == [Domain.FITNESS]
        assert domains["u3"] == [Domain.FITNESS]
        # academics vector is close to the career query, but domains differ
        assert domains["u4"] == []

    def test_no_domains_given(self, populated_index):
        result = populated_index.query([[1.0, 0.0, 0.0]], k=10, exclude_owner_id="u1")
        assert all(h.domains == [] for h in result.hits)

    def test_unavailable_flag(self, populated_index):
        populated_index.available = False
        result = populated_index.query([[1.0, 0.0, 0.0]], k=5)
        assert result.status is IndexStatus.UNAVAILABLE
        assert result.reason

    def test_search_failure_reported_as_unavailable(self, populated_index):
        result = populated_index.query([[1.0, 0.0]], k=5)
        assert result.status is IndexStatus.UNAVAILABLE

    def test_domain_count_mismatch_reported_as_unavailable(self, populated_index):
        result = populated_index.query([[1.0, 0.0, 0.0]], k=5, domains=[Domain.FITNESS, Domain.CAREER])
        assert result.status is IndexStatus.UNAVAILABLE


class TestMaintenance:

    def test_upsert_overwrites(self):
        index = InMemoryVectorIndex()
        index.upsert("u2", "b0", "Fitness", [1.0, 0.0])
        index.upsert("u2", "b0", "Fitness", [0.0, 1.0])
        assert len(index) == 1
        assert index.query([[0.0, 1.0]], k=1).hits[0].score == pytest.approx(1.0)

    def test_upsert_rejects_dimension_change(self):
        index = InMemoryVectorIndex()
        index.upsert("u2", "b0", "Fitness", [1.0, 0.0])
        with pytest.raises(ValueError):
            index.upsert("u2", "b1", "Fitness", [1.0, 0.0, 0.0])

    def test_delete(self, populated_index):
        assert populated_index.delete("u2", ["b0", "b1", "missing"]) == 2
        result = populated_index.query([[1.0, 0.0, 0.0]], k=10, exclude_owner_id="u1")
        assert "u2" not in {h.owner_id for h in result.hits}

    def test_snapshot_round_trip(self, populated_index, tmp_path):
        path = tmp_path / "index" / "vectors.joblib"
        populated_index.save(str(path))
        loaded = InMemoryVectorIndex.load(str(path))
        assert len(loaded) == len(populated_index)
        assert loaded.dimension == 3
        query = [[1.0, 0.0, 0.0]]
        assert loaded.query(query, k=10).hits == populated_index.query(query, k=10).hits
