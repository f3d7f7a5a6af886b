from typing import Dict, Generic, Optional, TypeVar

T = TypeVar("T")


class RequestCache(Generic[T]):
    """Memoizes lookups keyed by document id for the lifetime of one request.

    Instances are created per request and dropped with it, so entries never
    outlive the request that computed them.
    """

    def __init__(self):
        self._cache: Dict[int, T] = {}
        self.hits = 0

    def get(self, document_id: int) -> Optional[T]:
        value = self._cache.get(document_id)
        if value is not None:
            self.hits += 1
        return value

    def set(self, document_id: int, value: T):
        self._cache[document_id] = value

    def invalidate(self, document_id: int):
        self._cache.pop(document_id, None)

    def clear(self):
        self._cache.clear()
