import pytest
from pymongo.errors import AutoReconnect, DuplicateKeyError, ServerSelectionTimeoutError

from storefront.db.mongo import MongoDriver, translate_errors
from storefront.models.schemas import ReviewCreate, ReviewUpdate
from storefront.storage.documents import MongoReviewStorage, bson_now
from storefront.storage.errors import (
    BackendUnavailable, ConstraintViolation, MappingError, StorageTimeout,
)


def test_documents_use_camel_case_keys(mongo_reviews):
    review = mongo_reviews.create_review(ReviewCreate(product_id=7, user_id=3, rating=5, title="Sweet", comment="Great"))
    doc = mongo_reviews.driver.reviews.find_one()
    assert str(doc["_id"]) == review.id
    assert {k for k in doc if k != "_id"} == {"productId", "userId", "rating", "title", "comment", "createdAt", "updatedAt"}
    assert doc["productId"] == 7


def test_indexes_on_product_and_user(mongo_reviews):
    keys = [tuple(info["key"]) for info in mongo_reviews.driver.reviews.index_information().values()]
    assert (("productId", 1),) in keys
    assert (("userId", 1),) in keys


def test_timestamps_have_millisecond_precision():
    assert bson_now().microsecond % 1000 == 0


def test_malformed_ids_are_not_found(mongo_reviews):
    assert mongo_reviews.get_review("42") is None
    assert mongo_reviews.update_review("not-an-object-id", ReviewUpdate(rating=2)) is None
    assert mongo_reviews.delete_review("") is False


def test_empty_update_returns_current(mongo_reviews):
    review = mongo_reviews.create_review(ReviewCreate(product_id=1, user_id=1, rating=3))
    assert mongo_reviews.update_review(review.id, ReviewUpdate()) == review


def test_malformed_document_raises_mapping_error(mongo_reviews):
    mongo_reviews.driver.reviews.insert_one({"productId": 9, "comment": "no rating"})
    with pytest.raises(MappingError):
        mongo_reviews.get_reviews(9)


def test_disconnected_store_reads_empty_and_writes_raise():
    reviews = MongoReviewStorage(MongoDriver("mongodb://nowhere", "storefront"))
    assert reviews.get_reviews(1) == []
    assert reviews.get_review("5f0000000000000000000000") is None
    with pytest.raises(BackendUnavailable):
        reviews.create_review(ReviewCreate(product_id=1, user_id=1, rating=4))


def test_initialize_reports_unreachable_server():
    def unreachable(uri, timeout_ms):
        raise ServerSelectionTimeoutError("No servers found")

    reviews = MongoReviewStorage(MongoDriver("mongodb://nowhere", "storefront", client_factory=unreachable))
    assert reviews.initialize() is False


@pytest.mark.parametrize("native, expected", [
    (DuplicateKeyError("E11000 duplicate key"), ConstraintViolation),
    (ServerSelectionTimeoutError("timed out"), StorageTimeout),
    (AutoReconnect("connection reset"), BackendUnavailable),
])
def test_translate_errors(native, expected):
    with pytest.raises(expected) as info:
        with translate_errors():
            raise native
    assert info.value.__cause__ is native
