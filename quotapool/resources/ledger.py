"""Per-namespace, per-claim record of granted resources.

The ledger is copy-on-write: every mutating operation returns a new
ledger and leaves the snapshot it was called on untouched, so a reader
holding an older snapshot never observes a half-applied change and a
failed write can simply be retried from a fresh read.
"""

from typing import Dict, Iterator, List, Mapping, Optional, Sequence, Tuple

from quotapool.api.pool import ClaimItem


class ClaimLedger:
    """Immutable mapping of namespace to the ordered claims granted there."""

    __slots__ = ("_buckets",)

    def __init__(self, buckets: Optional[Mapping[str, Sequence[ClaimItem]]] = None):
        self._buckets: Dict[str, Tuple[ClaimItem, ...]] = {
            namespace: tuple(items)
            for namespace, items in (buckets or {}).items()
            if items
        }

    @classmethod
    def from_status(cls, claims: Optional[Mapping[str, Sequence[ClaimItem]]]) -> "ClaimLedger":
        return cls(claims)

    def to_status(self) -> Dict[str, List[ClaimItem]]:
        return {namespace: list(items) for namespace, items in self._buckets.items()}

    def __getitem__(self, namespace: str) -> Tuple[ClaimItem, ...]:
        return self._buckets[namespace]

    def __iter__(self) -> Iterator[str]:
        return iter(self._buckets)

    def __len__(self) -> int:
        return len(self._buckets)

    def __contains__(self, namespace: object) -> bool:
        return namespace in self._buckets

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ClaimLedger):
            return NotImplemented
        return self._buckets == other._buckets

    def items(self) -> Iterator[Tuple[str, Tuple[ClaimItem, ...]]]:
        return iter(self._buckets.items())

    def __repr__(self) -> str:
        return f"ClaimLedger({self.count_claims()} claims in {len(self)} namespaces)"

    def get(self, namespace: str, uid: str) -> Optional[ClaimItem]:
        """Find a claim by namespace and UID; ``None`` when absent."""
        for item in self._buckets.get(namespace, ()):
            if item.uid == uid:
                return item
        return None

    def bucket(self, namespace: str) -> Tuple[ClaimItem, ...]:
        return self._buckets.get(namespace, ())

    def upsert(self, namespace: str, item: ClaimItem) -> "ClaimLedger":
        """Replace the entry with the same UID in place, or append it."""
        items = list(self._buckets.get(namespace, ()))

        for index, existing in enumerate(items):
            if existing.uid == item.uid:
                items[index] = item
                break
        else:
            items.append(item)

        buckets = dict(self._buckets)
        buckets[namespace] = tuple(items)
        return ClaimLedger(buckets)

    def remove(self, namespace: str, uid: str) -> "ClaimLedger":
        """Drop the claim; a namespace left without claims is dropped too."""
        if namespace not in self._buckets:
            return self

        buckets = dict(self._buckets)
        remaining = tuple(item for item in buckets[namespace] if item.uid != uid)
        if remaining:
            buckets[namespace] = remaining
        else:
            del buckets[namespace]
        return ClaimLedger(buckets)

    def count_claims(self) -> int:
        return sum(len(items) for items in self._buckets.values())

    def iter_items(self) -> Iterator[Tuple[str, ClaimItem]]:
        for namespace, items in self._buckets.items():
            for item in items:
                yield namespace, item
