"""
Store failures are translated into StorageError with operation, table and code.
"""

import pytest
from sqlalchemy import text
from sqlalchemy.exc import DBAPIError, IntegrityError

from autocrm.core.errors import (
    ErrorCode,
    StorageError,
    is_unique_violation,
    translate_storage_errors,
)
from autocrm.models import Skill


class _DriverError(Exception):
    """Stands in for an asyncpg / psycopg exception carrying a SQLSTATE."""

    def __init__(self, sqlstate=None, pgcode=None):
        super().__init__(f"driver error {sqlstate or pgcode}")
        if sqlstate is not None:
            self.sqlstate = sqlstate
        if pgcode is not None:
            self.pgcode = pgcode


async def test_failed_statement_becomes_storage_error(db):
    with pytest.raises(StorageError) as exc:
        with translate_storage_errors("select", "missing_table"):
            await db.execute(text("SELECT * FROM missing_table"))

    err = exc.value
    assert (err.operation, err.table) == ("select", "missing_table")
    assert err.code == ErrorCode.QUERY_FAILED
    assert err.unique_violation is False
    assert isinstance(err.__cause__, DBAPIError)
    assert "missing_table" not in err.message


async def test_duplicate_skill_insert_is_flagged_as_unique_violation(db):
    db.add(Skill(name="sql"))
    await db.commit()

    with pytest.raises(StorageError) as exc:
        with translate_storage_errors("insert", "skills"):
            db.add(Skill(name="sql"))
            await db.flush()
    await db.rollback()

    assert exc.value.unique_violation is True
    assert exc.value.code == ErrorCode.QUERY_FAILED
    assert (exc.value.operation, exc.value.table) == ("insert", "skills")


def test_insufficient_privilege_maps_to_rls_violation():
    with pytest.raises(StorageError) as exc:
        with translate_storage_errors("insert", "entity_skills"):
            raise DBAPIError("INSERT INTO entity_skills", {}, _DriverError(sqlstate="42501"))

    assert exc.value.code == ErrorCode.RLS_VIOLATION
    assert exc.value.table == "entity_skills"


def test_insufficient_privilege_via_pgcode():
    with pytest.raises(StorageError) as exc:
        with translate_storage_errors("update", "team_members"):
            raise DBAPIError("UPDATE team_members", {}, _DriverError(pgcode="42501"))

    assert exc.value.code == ErrorCode.RLS_VIOLATION


def test_unique_violation_detection():
    assert is_unique_violation(IntegrityError("INSERT", {}, _DriverError(sqlstate="23505")))
    assert is_unique_violation(IntegrityError("INSERT", {}, _DriverError(pgcode="23505")))
    # Foreign key failure is an integrity error but not a duplicate
    assert not is_unique_violation(IntegrityError("INSERT", {}, _DriverError(sqlstate="23503")))
    assert not is_unique_violation(DBAPIError("INSERT", {}, _DriverError(sqlstate="23505")))


def test_non_store_errors_pass_through():
    with pytest.raises(KeyError):
        with translate_storage_errors("select", "skills"):
            raise KeyError("not a store failure")
