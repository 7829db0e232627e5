"""Query-side models: entity level results built from raw similarity hits."""

from pydantic import BaseModel


class ItemHit(BaseModel):
    id: str
    score: float


class AggregatedItem(BaseModel):
    """One ranked item built from its best object hits.

    Attributes:
        itemId:   Canonical four-digit item id.
        label:    First label found among the item's hits.
        score:    Rank-discounted sum of the top three hit scores, rounded to 5 places.
        best:     Best single hit score.
        coverId:  Object id of the best hit, usable as a cover image.
        hits:     The retained top three hits.
    """

    itemId: str
    label: str | None = None
    score: float
    best: float
    coverId: str
    hits: list[ItemHit]
