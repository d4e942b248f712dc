import logging
from contextlib import contextmanager

from pymongo import ASCENDING, MongoClient
from pymongo.errors import (
    DuplicateKeyError, ExecutionTimeout, NetworkTimeout, PyMongoError,
    ServerSelectionTimeoutError, WriteError,
)
from pymongo.server_api import ServerApi

from storefront.storage.errors import BackendUnavailable, ConstraintViolation, StorageError, StorageTimeout

logger = logging.getLogger(__name__)

REVIEWS_COLLECTION = "reviews"


def _default_client_factory(uri: str, timeout_ms: int):
    return MongoClient(
        uri,
        server_api=ServerApi("1"),
        serverSelectionTimeoutMS=timeout_ms,
        connectTimeoutMS=timeout_ms,
        socketTimeoutMS=timeout_ms,
    )


@contextmanager
def translate_errors():
    try:
        yield
    except DuplicateKeyError as e:
        raise ConstraintViolation(str(e)) from e
    except (ServerSelectionTimeoutError, NetworkTimeout, ExecutionTimeout) as e:
        raise StorageTimeout(str(e)) from e
    except WriteError as e:
        raise ConstraintViolation(str(e)) from e
    except PyMongoError as e:
        if getattr(e, "timeout", False):
            raise StorageTimeout(str(e)) from e
        raise BackendUnavailable(str(e)) from e


class MongoDriver:
    """Owns the ``MongoClient`` and hands out the reviews collection."""

    def __init__(self, uri: str, db_name: str, call_timeout: float = 10.0, client_factory=None):
        self.uri = uri
        self.db_name = db_name
        self.timeout_ms = int(call_timeout * 1000)
        self.client_factory = client_factory or _default_client_factory
        self.client = None
        self.db = None

    def connect(self):
        with translate_errors():
            self.client = self.client_factory(self.uri, self.timeout_ms)
            self.client.admin.command("ping")
            self.db = self.client[self.db_name]
            reviews = self.db[REVIEWS_COLLECTION]
            reviews.create_index([("productId", ASCENDING)])
            reviews.create_index([("userId", ASCENDING)])
        logger.info(f"Connected to MongoDB database '{self.db_name}'")

    def close(self):
        if self.client is not None:
            self.client.close()
            self.client = None
            self.db = None

    @property
    def reviews(self):
        if self.db is None:
            raise BackendUnavailable("MongoDB is not connected")
        return self.db[REVIEWS_COLLECTION]
