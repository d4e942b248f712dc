import threading
from typing import Dict, List, Mapping, Optional

from storefront.models.schemas import Review, ReviewCreate, utcnow
from storefront.storage.base import merge


class InMemoryReviews:
    """Review book keyed by string id; used by stores that have no document backend."""

    def __init__(self):
        self._lock = threading.RLock()
        self._reviews: Dict[str, Review] = {}
        self._next_id = 1

    def _select(self, **match) -> List[Review]:
        with self._lock:
            return [
                r.model_copy(deep=True)
                for r in self._reviews.values()
                if all(getattr(r, k) == v for k, v in match.items())
            ]

    def by_product(self, product_id: int) -> List[Review]:
        return self._select(product_id=product_id)

    def by_user(self, user_id: int) -> List[Review]:
        return self._select(user_id=user_id)

    def get(self, review_id: str) -> Optional[Review]:
        with self._lock:
            review = self._reviews.get(str(review_id))
            return review.model_copy(deep=True) if review else None

    def create(self, review: ReviewCreate) -> Review:
        with self._lock:
            review_id = str(self._next_id)
            self._next_id += 1
            now = utcnow()
            record = Review(id=review_id, created_at=now, updated_at=now, **review.model_dump())
            self._reviews[review_id] = record
            return record.model_copy(deep=True)

    def update(self, review_id: str, changes: Mapping) -> Optional[Review]:
        with self._lock:
            current = self._reviews.get(str(review_id))
            if current is None:
                return None
            updated = merge(current, changes)
            self._reviews[current.id] = updated
            return updated.model_copy(deep=True)

    def delete(self, review_id: str) -> bool:
        with self._lock:
            return self._reviews.pop(str(review_id), None) is not None
