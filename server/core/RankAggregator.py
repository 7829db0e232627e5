"""Groups object-level similarity hits into ranked items."""

import math

from shared.clients.rag.models.VectorEntry import QueryHit
from shared.helper.identifiers import normalize_item_id
from shared.models.recognition import AggregatedItem, ItemHit

TOP_HITS_PER_ITEM = 3


def rank_weight(rank: int) -> float:
    """Discount for the hit at a zero-based rank: 1.0, 0.63, 0.5 for ranks 0, 1, 2."""
    return 1.0 / math.log2(rank + 2)


class RankAggregator:
    """Builds one scored result per item from its best corroborating hits."""

    def aggregate(self, hits: list[QueryHit], top_n: int) -> list[AggregatedItem]:
        """Group hits by item id and rank the items.

        Hits whose metadata carries no recoverable item id are dropped. Each item
        scores the discounted sum of its top three hit scores.

        Args:
            hits (list[QueryHit]): Raw hits in any order.
            top_n (int): Number of items to return.

        Returns:
            list[AggregatedItem]: Items by score descending, ties broken by best hit score.
        """
        groups: dict[str, list[QueryHit]] = {}
        labels: dict[str, str | None] = {}
        for hit in hits:
            item_id = normalize_item_id(hit.metadata.get("itemId", hit.metadata.get("item_id")))
            if not item_id:
                continue
            groups.setdefault(item_id, []).append(hit)
            if not labels.get(item_id) and hit.metadata.get("label"):
                labels[item_id] = str(hit.metadata["label"])

        items: list[AggregatedItem] = []
        for item_id, group in groups.items():
            top = sorted(group, key=lambda h: h.score, reverse=True)[:TOP_HITS_PER_ITEM]
            score = sum(h.score * rank_weight(i) for i, h in enumerate(top))
            items.append(AggregatedItem(
                itemId=item_id,
                label=labels.get(item_id),
                score=round(score, 5),
                best=top[0].score,
                coverId=top[0].id,
                hits=[ItemHit(id=h.id, score=h.score) for h in top],
            ))

        items.sort(key=lambda item: (item.score, item.best), reverse=True)
        return items[:top_n]
