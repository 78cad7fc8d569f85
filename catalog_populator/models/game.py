# ===== TYPES & INTERFACES =====

from collections import Counter
from typing import TypedDict, List, Optional, Any, Dict, Tuple


class RawProduct(TypedDict, total=False):
    """
    A single product as returned by the GOG catalog API. Only the fields the
    pipeline reads are declared; the API returns many more.

    Attributes:
        title (str): Display title, used as the game's natural key.
        slug (str): Storefront slug, hyphen separated (e.g. 'foo-bar').
        price (Dict): Nested price block; the amount lives at price['finalMoney']['amount'] as a string.
        releaseDate (str): Release date as an ISO-like date or timestamp string.
        genres (List[Dict]): Genre objects carrying 'name' and usually 'slug'.
        operatingSystems (List[str]): Platform names (e.g. 'windows').
        developers (List[str]): Developer names.
        publishers (List[str]): Publisher names.
        coverHorizontal (str): Cover image URL.
        screenshots (List[str]): Screenshot URLs containing a '_{formatter}' token.
    """
    title: str
    slug: str
    price: Dict[str, Any]
    releaseDate: str
    genres: List[Dict[str, str]]
    operatingSystems: List[str]
    developers: List[str]
    publishers: List[str]
    coverHorizontal: Optional[str]
    screenshots: List[str]


class TaxonomyRecord(TypedDict, total=False):
    """A developer, publisher, category or platform record, unique by name within its type."""
    id: int
    name: str
    slug: str


class GameRecord(TypedDict, total=False):
    """A game record as stored; relation fields hold the linked records' ids."""
    id: int
    name: str
    slug: str
    price: float
    release_date: str
    categories: List[int]
    platforms: List[int]
    developers: List[int]
    publishers: List[int]
    short_description: Optional[str]
    description: Optional[str]


class ItemResult(TypedDict, total=False):
    """The outcome of one attempted item in a batch. `id` is the record the item resolved to."""
    entity_type: str
    name: str
    id: Any
    ok: bool
    created: bool
    error: Optional[str]


class RunReport:
    """Collects per-item results of a run so partial success can be reported."""

    def __init__(self, results: Optional[List[ItemResult]] = None):
        self.results: List[ItemResult] = list(results or [])

    def add(self, result: ItemResult) -> None:
        self.results.append(result)

    def extend(self, other: "RunReport") -> "RunReport":
        self.results.extend(other.results)
        return self

    def record_ids(self) -> Dict[Tuple[str, str], Any]:
        """Maps (entity_type, name) to the id of the record each successful item resolved to."""
        return {
            (r['entity_type'], r['name']): r['id']
            for r in self.results if r.get('ok') and r.get('id') is not None
        }

    def failures(self) -> List[ItemResult]:
        return [r for r in self.results if not r.get('ok')]

    def created(self, entity_type: Optional[str] = None) -> List[ItemResult]:
        return [
            r for r in self.results
            if r.get('ok') and r.get('created') and (entity_type is None or r.get('entity_type') == entity_type)
        ]

    def counts(self) -> Dict[str, Counter]:
        """Returns {entity_type: Counter(created=.., existing=.., failed=..)}."""
        counts: Dict[str, Counter] = {}
        for r in self.results:
            counter = counts.setdefault(r.get('entity_type', 'unknown'), Counter())
            if not r.get('ok'):
                counter['failed'] += 1
            elif r.get('created'):
                counter['created'] += 1
            else:
                counter['existing'] += 1
        return counts

    def summary(self) -> str:
        parts = []
        for entity_type, counter in sorted(self.counts().items()):
            parts.append(
                f"{entity_type}: {counter['created']} created, {counter['existing']} existing, {counter['failed']} failed"
            )
        return "; ".join(parts) if parts else "nothing processed"
