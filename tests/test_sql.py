import pytest
from sqlalchemy import exc

from conftest import new_user
from storefront.db.sql import make_engine, translate_errors
from storefront.models.schemas import CategoryCreate
from storefront.storage.errors import (
    BackendUnavailable, ConstraintViolation, StorageError, StorageTimeout,
)
from storefront.storage.relational import SqlStorage


def test_sqlite_engine_enforces_foreign_keys():
    engine = make_engine("sqlite://")
    with engine.connect() as conn:
        assert conn.exec_driver_sql("PRAGMA foreign_keys").scalar() == 1


def test_integrity_error_becomes_constraint_violation():
    native = exc.IntegrityError("INSERT ...", {}, Exception("UNIQUE constraint failed: users.username"))
    with pytest.raises(ConstraintViolation) as info:
        with translate_errors():
            raise native
    assert info.value.__cause__ is native


@pytest.mark.parametrize("message, expected", [
    ("canceling statement due to statement timeout", StorageTimeout),
    ("could not connect to server: Connection refused", BackendUnavailable),
])
def test_operational_errors(message, expected):
    with pytest.raises(expected):
        with translate_errors():
            raise exc.OperationalError("SELECT 1", {}, Exception(message))


def test_pool_timeout_is_storage_timeout():
    with pytest.raises(StorageTimeout):
        with translate_errors():
            raise exc.TimeoutError("QueuePool limit of size 5 overflow 10 reached")


def test_other_sqlalchemy_errors_are_storage_errors():
    with pytest.raises(StorageError):
        with translate_errors():
            raise exc.ArgumentError("bad argument")


def test_uninitialised_store_degrades():
    storage = SqlStorage("sqlite://")
    assert storage.get_products() == []
    assert storage.get_user(1) is None
    with pytest.raises(BackendUnavailable):
        storage.create_category(CategoryCreate(name="Fruits"))


def test_initialize_reports_failure():
    assert SqlStorage("nosuchdialect://somewhere/db").initialize() is False


def test_failed_write_leaves_session_usable(sql_storage):
    new_user(sql_storage)
    with pytest.raises(ConstraintViolation):
        new_user(sql_storage)
    assert new_user(sql_storage, "bob").id is not None
    assert [u.username for u in (sql_storage.get_user(1), sql_storage.get_user(2))] == ["alice", "bob"]


def test_file_database_persists_between_stores(tmp_path):
    url = f"sqlite:///{tmp_path / 'shop.db'}"
    first = SqlStorage(url)
    assert first.initialize()
    category = first.create_category(CategoryCreate(name="Dairy"))
    first.close()

    second = SqlStorage(url)
    assert second.initialize()
    assert second.get_category(category.id).name == "Dairy"
    second.close()
