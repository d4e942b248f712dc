import logging
from datetime import datetime
from typing import Dict, List, Optional

from bson import ObjectId
from pydantic import ValidationError
from pymongo import ASCENDING, ReturnDocument

from storefront.db.mongo import MongoDriver, translate_errors
from storefront.models.schemas import Review, ReviewCreate, ReviewUpdate, utcnow
from storefront.storage.base import changes_of, coerce, read_op
from storefront.storage.errors import MappingError

logger = logging.getLogger(__name__)

# Entity field -> document key
FIELDS = {
    "product_id": "productId",
    "user_id": "userId",
    "rating": "rating",
    "title": "title",
    "comment": "comment",
    "created_at": "createdAt",
    "updated_at": "updatedAt",
}


def bson_now() -> datetime:
    # BSON dates carry milliseconds only
    now = utcnow()
    return now.replace(microsecond=now.microsecond // 1000 * 1000)


def to_review(doc: Dict) -> Review:
    try:
        data = {field: doc[key] for field, key in FIELDS.items() if key != "title"}
        data["title"] = doc.get("title")
        data["id"] = str(doc["_id"])
        return Review.model_validate(data)
    except (KeyError, ValidationError) as e:
        raise MappingError(f"Review document {doc.get('_id')} has an unexpected shape: {e}") from e


def _object_id(review_id) -> Optional[ObjectId]:
    if isinstance(review_id, ObjectId):
        return review_id
    if isinstance(review_id, str) and ObjectId.is_valid(review_id):
        return ObjectId(review_id)
    return None


class MongoReviewStorage:
    """Reviews only, stored as camelCase documents in the ``reviews`` collection."""

    def __init__(self, driver: MongoDriver):
        self.driver = driver

    def initialize(self) -> bool:
        try:
            self.driver.connect()
            return True
        except Exception as e:
            logger.error(f"MongoDB review storage failed to initialise: {e}", exc_info=True)
            return False

    def close(self):
        self.driver.close()

    def _find(self, query: Dict) -> List[Review]:
        with translate_errors():
            docs = list(self.driver.reviews.find(query).sort([("createdAt", ASCENDING), ("_id", ASCENDING)]))
        return [to_review(d) for d in docs]

    @read_op(list)
    def get_reviews(self, product_id: int) -> List[Review]:
        return self._find({"productId": product_id})

    @read_op(list)
    def get_reviews_by_user(self, user_id: int) -> List[Review]:
        return self._find({"userId": user_id})

    @read_op()
    def get_review(self, review_id: str) -> Optional[Review]:
        oid = _object_id(review_id)
        if oid is None:
            return None
        with translate_errors():
            doc = self.driver.reviews.find_one({"_id": oid})
        return to_review(doc) if doc else None

    def create_review(self, review: ReviewCreate) -> Review:
        review = coerce(ReviewCreate, review)
        now = bson_now()
        doc = {FIELDS[k]: v for k, v in review.model_dump().items()}
        doc.update(createdAt=now, updatedAt=now)
        with translate_errors():
            result = self.driver.reviews.insert_one(doc)
        doc["_id"] = result.inserted_id
        return to_review(doc)

    def update_review(self, review_id: str, update: ReviewUpdate) -> Optional[Review]:
        oid = _object_id(review_id)
        if oid is None:
            return None
        # $set is written without reading the document, so validate even prebuilt updates
        if isinstance(update, ReviewUpdate):
            update = update.model_dump(exclude_unset=True)
        changes = {FIELDS[k]: v for k, v in changes_of(ReviewUpdate.model_validate(update)).items()}
        if not changes:
            return self.get_review(review_id)
        changes["updatedAt"] = bson_now()
        with translate_errors():
            doc = self.driver.reviews.find_one_and_update(
                {"_id": oid}, {"$set": changes}, return_document=ReturnDocument.AFTER
            )
        return to_review(doc) if doc else None

    def delete_review(self, review_id: str) -> bool:
        oid = _object_id(review_id)
        if oid is None:
            return False
        with translate_errors():
            result = self.driver.reviews.delete_one({"_id": oid})
        return result.deleted_count > 0
