"""Tests for the goal tree data model."""

import math

import pytest

from goalmatch.domain import (
    Domain,
    FeedbackEvent,
    FeedbackGrade,
    GoalNode,
    GoalTree,
    MatchResult,
    embedding_text,
    sort_domains,
    text_fingerprint,
)
from goalmatch.errors import InvalidGoalTreeError, InvalidInputError


class TestDomain:

    @pytest.mark.parametrize("value", ["Fitness", "fitness", "FITNESS", " Fitness "])
    def test_parse_display_and_name(self, value):
        assert Domain.parse(value) is Domain.FITNESS

    def test_parse_long_display_string(self):
        assert Domain.parse("Culture / Hobbies / Creative Pursuits") is Domain.CREATIVE_PURSUITS
        assert Domain.parse("mental-health") is Domain.MENTAL_HEALTH
        assert Domain.parse("MENTAL_HEALTH") is Domain.MENTAL_HEALTH

    def test_parse_aliases(self):
        assert Domain.parse("creative") is Domain.CREATIVE_PURSUITS
        assert Domain.parse("romantic") is Domain.ROMANTIC_EXPLORATION
        assert Domain.parse("social") is Domain.SOCIAL_ENGAGEMENT
        assert Domain.parse("investing") is Domain.INVESTING

    @pytest.mark.parametrize("value", ["Cooking", "", None, 3])
    def test_parse_rejects_unknown(self, value):
        with pytest.raises(InvalidInputError):
            Domain.parse(value)

    def test_slug(self):
        assert Domain.MENTAL_HEALTH.slug == "mental-health"

    def test_sort_domains_declaration_order_without_duplicates(self):
        ordered = sort_domains([Domain.FITNESS, Domain.CAREER, Domain.FITNESS])
        assert ordered == [Domain.CAREER, Domain.FITNESS]


class TestFeedbackGrade:

    @pytest.mark.parametrize("value,expected", [
        ("Succeeded", FeedbackGrade.SUCCEEDED),
        ("distracted", FeedbackGrade.DISTRACTED),
        ("not-applicable", FeedbackGrade.NOT_APPLICABLE),
        ("Not Applicable", FeedbackGrade.NOT_APPLICABLE),
        ("ADAPTED", FeedbackGrade.ADAPTED),
    ])
    def test_parse(self, value, expected):
        assert FeedbackGrade.parse(value) is expected

    def test_parse_rejects_values_outside_closed_set(self):
        with pytest.raises(InvalidInputError):
            FeedbackGrade.parse("excellent")


class TestGoalNode:

    def test_defaults(self):
        node = GoalNode(id="n1", owner_id="u1", domain="Fitness", name="Run a marathon")
        assert node.weight == 1.0
        assert node.progress == 0.0
        assert node.is_root
        assert node.domain is Domain.FITNESS

    def test_rejects_negative_weight(self):
        with pytest.raises(InvalidInputError):
            GoalNode(id="n1", owner_id="u1", domain="Fitness", name="x", weight=-0.1)

    def test_rejects_nan_weight(self):
        with pytest.raises(InvalidInputError):
            GoalNode(id="n1", owner_id="u1", domain="Fitness", name="x", weight=float("nan"))

    def test_allows_infinite_weight(self):
        node = GoalNode(id="n1", owner_id="u1", domain="Fitness", name="x", weight=float("inf"))
        assert math.isinf(node.weight)

    @pytest.mark.parametrize("progress", [-0.01, 1.01])
    def test_rejects_progress_outside_unit_interval(self, progress):
        with pytest.raises(InvalidInputError):
            GoalNode(id="n1", owner_id="u1", domain="Fitness", name="x", progress=progress)

    def test_rejects_blank_ids(self):
        with pytest.raises(InvalidInputError):
            GoalNode(id="", owner_id="u1", domain="Fitness", name="x")

    def test_to_dict_uses_camel_case_and_omits_empty_fields(self):
        node = GoalNode(id="n2", owner_id="u1", domain="Career", name="Lead a team",
                        parent_id="n1", custom_details="Five engineers")
        data = node.to_dict()
        assert data["ownerId"] == "u1"
        assert data["parentId"] == "n1"
        assert data["customDetails"] == "Five engineers"
        assert data["domain"] == "Career"
        assert "category" not in data

    def test_from_dict_takes_owner_from_argument(self):
        node = GoalNode.from_dict({"id": "n1", "domain": "fitness", "name": "Swim"}, owner_id="u9")
        assert node.owner_id == "u9"
        assert node.weight == 1.0

    def test_embedding_text_and_fingerprint(self):
        plain = GoalNode(id="n1", owner_id="u1", domain="Fitness", name="Swim")
        detailed = GoalNode(id="n1", owner_id="u1", domain="Fitness", name="Swim",
                            custom_details="Open water")
        assert embedding_text(plain) == "Swim"
        assert embedding_text(detailed) == "Swim\nOpen water"
        assert text_fingerprint(plain) != text_fingerprint(detailed)


class TestGoalTree:

    def test_root_ids_derived_from_parent_links(self, make_tree):
        tree = make_tree("u1", {"id": "a"}, {"id": "b", "parent_id": "a"}, {"id": "c"})
        assert tree.root_ids == ["a", "c"]
        assert [n.id for n in tree.children_of("a")] == ["b"]
        assert len(tree) == 3

    def test_rejects_parent_outside_tree(self, make_tree):
        with pytest.raises(InvalidGoalTreeError):
            make_tree("u1", {"id": "a", "parent_id": "missing"})

    def test_rejects_cycle(self, make_tree):
        with pytest.raises(InvalidGoalTreeError):
            make_tree("u1", {"id": "a", "parent_id": "b"}, {"id": "b", "parent_id": "a"})

    def test_rejects_duplicate_ids(self, make_node):
        with pytest.raises(InvalidGoalTreeError):
            GoalTree.from_nodes("u1", [make_node("u1", "a"), make_node("u1", "a")])

    def test_rejects_foreign_node(self, make_node):
        with pytest.raises(InvalidGoalTreeError):
            GoalTree.from_nodes("u1", [make_node("u2", "a")])

    def test_rejects_unknown_root(self, make_node):
        with pytest.raises(InvalidGoalTreeError):
            GoalTree.from_nodes("u1", [make_node("u1", "a")], root_ids=["zzz"])

    def test_invalid_tree_error_is_invalid_input(self):
        assert issubclass(InvalidGoalTreeError, InvalidInputError)
        assert InvalidGoalTreeError("x").status_code == 400

    def test_empty_tree(self):
        tree = GoalTree(user_id="u1")
        assert tree.is_empty
        assert tree.total_weight == 0.0
        assert tree.root_ids == []

    def test_replace_node_returns_new_tree(self, make_tree):
        tree = make_tree("u1", {"id": "a", "weight": 1.0}, {"id": "b", "parent_id": "a"})
        node = tree.get_node("a")
        updated = tree.replace_node(GoalNode(id="a", owner_id="u1", domain="Fitness",
                                             name=node.name, weight=2.0))
        assert updated.get_node("a").weight == 2.0
        assert tree.get_node("a").weight == 1.0
        assert [n.id for n in updated.node_list] == ["a", "b"]

    def test_replace_unknown_node_raises_key_error(self, make_tree, make_node):
        tree = make_tree("u1", {"id": "a"})
        with pytest.raises(KeyError):
            tree.replace_node(make_node("u1", "zzz"))

    def test_dict_round_trip(self, make_tree):
        tree = make_tree(
            "u1",
            {"id": "a", "domain": "Career", "name": "Ship v2", "weight": 1.5},
            {"id": "b", "parent_id": "a", "progress": 0.5},
        )
        restored = GoalTree.from_dict(tree.to_dict())
        assert restored == tree

    def test_from_dict_accepts_root_node_documents(self):
        tree = GoalTree.from_dict({
            "userId": "u1",
            "nodes": [{"id": "a", "domain": "Fitness", "name": "Swim"}],
            "rootNodes": [{"id": "a", "domain": "Fitness", "name": "Swim"}],
        })
        assert tree.root_ids == ["a"]
        assert tree.get_node("a").owner_id == "u1"


class TestFeedbackEvent:

    def test_from_dict_parses_grade_and_assigns_id(self):
        event = FeedbackEvent.from_dict({
            "giverId": "u2", "receiverId": "u1", "goalNodeId": "a", "grade": "succeeded",
        })
        assert event.grade is FeedbackGrade.SUCCEEDED
        assert event.id

    def test_is_immutable(self):
        event = FeedbackEvent("u2", "u1", "a", "Learned")
        with pytest.raises(AttributeError):
            event.grade = FeedbackGrade.SUCCEEDED

    def test_dict_round_trip_keeps_id_and_timestamp(self):
        event = FeedbackEvent("u2", "u1", "a", "Adapted", comment="nice")
        restored = FeedbackEvent.from_dict(event.to_dict())
        assert restored == event


class TestMatchResult:

    def test_wire_shape(self):
        result = MatchResult("u2", 0.75, [Domain.FITNESS], path="fast")
        assert result.to_wire() == {"userId": "u2", "score": 0.75}
        assert result.to_dict()["matchedDomains"] == ["Fitness"]
