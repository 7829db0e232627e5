"""Tests for grouping object hits into ranked items."""

import pytest

from server.core.RankAggregator import RankAggregator, rank_weight
from shared.clients.rag.models.VectorEntry import QueryHit


def hit(object_id: str, score: float, item_id=None, label=None, key: str = "itemId") -> QueryHit:
    metadata = {}
    if item_id is not None:
        metadata[key] = item_id
    if label is not None:
        metadata["label"] = label
    return QueryHit(id=object_id, score=score, metadata=metadata)


class TestRankWeight:
    def test_weights_for_first_ranks(self):
        assert rank_weight(0) == 1.0
        assert rank_weight(1) == pytest.approx(0.63093, abs=1e-5)
        assert rank_weight(2) == 0.5


class TestAggregate:
    def test_only_top_three_hits_score(self):
        hits = [hit("p1", 0.9, "7"), hit("p2", 0.8, "7"), hit("p3", 0.7, "7"), hit("p4", 0.6, "7")]

        items = RankAggregator().aggregate(hits, top_n=5)

        assert len(items) == 1
        item = items[0]
        assert item.itemId == "0007"
        assert item.score == 1.75474
        assert item.best == 0.9
        assert item.coverId == "p1"
        assert [h.id for h in item.hits] == ["p1", "p2", "p3"]

    def test_hits_in_any_order_are_sorted_per_item(self):
        hits = [hit("p3", 0.7, "7"), hit("p1", 0.9, "7"), hit("p2", 0.8, "7")]

        item = RankAggregator().aggregate(hits, top_n=1)[0]

        assert item.coverId == "p1"
        assert item.score == 1.75474

    def test_empty_hits(self):
        assert RankAggregator().aggregate([], top_n=5) == []

    def test_hits_without_item_id_are_dropped(self):
        hits = [hit("p1", 0.99), hit("p2", 0.5, "no digits"), hit("p3", 0.4, "12")]

        items = RankAggregator().aggregate(hits, top_n=5)

        assert [i.itemId for i in items] == ["0012"]

    def test_corroborated_item_outranks_single_best_hit(self):
        hits = [
            hit("a1", 0.95, "1"),
            hit("b1", 0.9, "2"), hit("b2", 0.85, "2"),
        ]

        items = RankAggregator().aggregate(hits, top_n=5)

        assert [i.itemId for i in items] == ["0002", "0001"]

    def test_equal_scores_tie_break_on_best_hit(self):
        hits = [hit("a1", 0.6, "1"), hit("a2", 0.3, "1"), hit("b1", 0.6 + 0.3 * rank_weight(1), "2")]
        items = RankAggregator().aggregate(hits, top_n=5)
        assert items[0].score == items[1].score
        assert items[0].itemId == "0002"

    def test_truncates_to_top_n(self):
        hits = [hit(f"p{i}", 1.0 - i / 10, str(i)) for i in range(6)]

        items = RankAggregator().aggregate(hits, top_n=2)

        assert [i.itemId for i in items] == ["0000", "0001"]

    def test_item_ids_are_normalized_and_merged(self):
        hits = [hit("p1", 0.9, "Item 7"), hit("p2", 0.8, "0007"), hit("p3", 0.7, 7, key="item_id")]

        items = RankAggregator().aggregate(hits, top_n=5)

        assert len(items) == 1
        assert len(items[0].hits) == 3

    def test_first_available_label_is_used(self):
        hits = [hit("p1", 0.9, "7"), hit("p2", 0.8, "7", label="Blue vase"), hit("p3", 0.7, "7", label="Other")]

        items = RankAggregator().aggregate(hits, top_n=5)

        assert items[0].label == "Blue vase"
