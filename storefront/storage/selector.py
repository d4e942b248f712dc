"""
Composition root for the storage layer.

``build_storage`` picks the backend named by ``STORAGE_BACKEND`` and
``init_storage`` brings it up. Nothing here runs at import time.
"""

import logging

from storefront.core.config import Settings
from storefront.storage.base import Storage
from storefront.storage.errors import StorageInitError
from storefront.storage.status import OrderStatusPolicy

logger = logging.getLogger(__name__)

ALIASES = {
    "memory": "memory",
    "sql": "sql",
    "relational": "sql",
    "postgres": "sql",
    "oracle": "oracle",
    "procedures": "oracle",
    "oracle_mongo": "oracle_mongo",
    "hybrid": "oracle_mongo",
    "mongo": "mongo",
}


def _oracle(settings: Settings, policy: OrderStatusPolicy) -> Storage:
    # python-oracledb is an optional extra; only import it when Oracle is selected
    from storefront.db.oracle import OracleDriver
    from storefront.storage.procedures import OracleStorage

    driver = OracleDriver(
        user=settings.ORACLE_USER,
        password=settings.ORACLE_PASSWORD,
        dsn=settings.ORACLE_CONNECTION_STRING,
        pool_max=settings.ORACLE_POOL_MAX,
        client_dir=settings.ORACLE_CLIENT_DIR,
        call_timeout=settings.STORAGE_CALL_TIMEOUT,
    )
    return OracleStorage(driver, status_policy=policy)


def _mongo_reviews(settings: Settings, client_factory=None):
    from storefront.db.mongo import MongoDriver
    from storefront.storage.documents import MongoReviewStorage

    driver = MongoDriver(
        settings.MONGODB_URI,
        settings.MONGODB_DB_NAME,
        call_timeout=settings.STORAGE_CALL_TIMEOUT,
        client_factory=client_factory,
    )
    return MongoReviewStorage(driver)


def build_storage(settings: Settings, mongo_client_factory=None) -> Storage:
    key = settings.STORAGE_BACKEND.strip().lower()
    backend = ALIASES.get(key)
    if backend is None:
        raise StorageInitError(f"Unknown STORAGE_BACKEND '{settings.STORAGE_BACKEND}'. Choose one of: {', '.join(sorted(ALIASES))}")

    policy = OrderStatusPolicy(enforce=settings.ENFORCE_ORDER_TRANSITIONS)

    if backend == "memory":
        from storefront.storage.memory import MemoryStorage
        storage = MemoryStorage(status_policy=policy)
    elif backend == "sql":
        from storefront.storage.relational import SqlStorage
        storage = SqlStorage(settings.DATABASE_URL, call_timeout=settings.STORAGE_CALL_TIMEOUT, status_policy=policy)
    elif backend == "oracle":
        storage = _oracle(settings, policy)
    elif backend == "oracle_mongo":
        from storefront.storage.composite import CompositeStorage
        storage = CompositeStorage(_oracle(settings, policy), _mongo_reviews(settings, mongo_client_factory))
    else:
        # Document-only deployment: entities in process memory, reviews in MongoDB
        from storefront.storage.composite import CompositeStorage
        from storefront.storage.memory import MemoryStorage
        storage = CompositeStorage(MemoryStorage(status_policy=policy), _mongo_reviews(settings, mongo_client_factory))

    logger.info(f"Storage backend selected: {backend} ({type(storage).__name__})")
    return storage


def init_storage(storage: Storage, settings: Settings) -> bool:
    """
    Initialise ``storage``. With ``STORAGE_FAIL_FAST`` a failure aborts startup;
    otherwise the app keeps running degraded (reads empty, writes raise).
    """
    ok = storage.initialize()
    if not ok:
        message = f"{type(storage).__name__} failed to initialise (STORAGE_BACKEND={settings.STORAGE_BACKEND})"
        if settings.STORAGE_FAIL_FAST:
            raise StorageInitError(message)
        logger.warning(f"{message}; continuing in degraded mode")
        return False

    if settings.SEED_DATA:
        from storefront.storage.seed import seed_storage
        seed_storage(storage)
    return True
