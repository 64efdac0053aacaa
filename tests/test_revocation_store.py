"""Tests for the in-memory and database revocation stores."""

import asyncio
import threading
from datetime import UTC, datetime, timedelta
from unittest.mock import MagicMock

import pytest
import pytest_asyncio
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from portal_auth.services.errors import RevocationFailedError
from portal_auth.services.revocation import (
    InMemoryRevocationStore,
    RevocationRecord,
    RevocationStore,
)
from portal_auth.services.revocation_db import DatabaseRevocationStore

NOW = datetime(2026, 10, 19, 12, 0, tzinfo=UTC)
RETENTION = timedelta(hours=24)


@pytest_asyncio.fixture(params=["memory", "database"])
async def any_store(request):
    """Run the shared store behaviour against both implementations."""
    if request.param == "memory":
        yield InMemoryRevocationStore()
    else:
        engine = create_async_engine(
            "sqlite+aiosqlite:///:memory:",
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
        )
        db_revocation_store = DatabaseRevocationStore(
            async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
        )
        await db_revocation_store.create_tables()
        yield db_revocation_store
        await engine.dispose()


class TestRecord:
    def test_evictable_strictly_after_margin(self):
        record = RevocationRecord(
            jti="a" * 64, owner_id="alice", revoked_at=NOW, expires_at=NOW
        )
        assert not record.is_evictable(NOW + RETENTION, RETENTION)
        assert record.is_evictable(NOW + RETENTION + timedelta(seconds=1), RETENTION)


class TestStoreBehaviour:
    """Behaviour both store implementations share."""

    @pytest.mark.asyncio
    async def test_implements_protocol(self, any_store):
        assert isinstance(any_store, RevocationStore)

    @pytest.mark.asyncio
    async def test_insert_then_contains(self, any_store):
        jti = "1" * 64
        assert await any_store.contains(jti) is False

        assert await any_store.insert(jti, "alice", NOW + timedelta(minutes=15), "access") is True

        assert await any_store.contains(jti) is True
        record = await any_store.get(jti)
        assert record.owner_id == "alice"
        assert record.expires_at == NOW + timedelta(minutes=15)
        assert record.token_type == "access"

    @pytest.mark.asyncio
    async def test_insert_is_idempotent(self, any_store):
        jti = "2" * 64
        expires_at = NOW + timedelta(days=7)

        assert await any_store.insert(jti, "alice", expires_at) is True
        assert await any_store.insert(jti, "alice", NOW + timedelta(days=30)) is False

        record = await any_store.get(jti)
        assert record.expires_at == expires_at

    @pytest.mark.asyncio
    async def test_get_unknown_jti(self, any_store):
        assert await any_store.get("unknown") is None

    @pytest.mark.asyncio
    async def test_eviction_respects_retention_boundary(self, any_store):
        await any_store.insert("boundary", "alice", NOW - RETENTION)
        await any_store.insert("old", "alice", NOW - RETENTION - timedelta(seconds=1))
        await any_store.insert("fresh", "alice", NOW + timedelta(minutes=5))

        removed = await any_store.evict_expired(NOW, RETENTION)

        assert removed == 1
        assert await any_store.contains("old") is False
        assert await any_store.contains("boundary") is True
        assert await any_store.contains("fresh") is True

    @pytest.mark.asyncio
    async def test_record_evicted_a_day_after_expiry(self, any_store):
        """A record whose credential expired 25 hours ago is gone after a sweep."""
        expires_at = NOW + timedelta(minutes=15)
        await any_store.insert("3" * 64, "alice", expires_at)

        assert await any_store.evict_expired(NOW, RETENTION) == 0
        assert await any_store.evict_expired(expires_at + timedelta(hours=25), RETENTION) == 1
        assert await any_store.contains("3" * 64) is False

    @pytest.mark.asyncio
    async def test_eviction_on_empty_store(self, any_store):
        assert await any_store.evict_expired(NOW, RETENTION) == 0


class TestInMemoryStore:
    @pytest.mark.asyncio
    async def test_revoked_at_comes_from_clock(self):
        store = InMemoryRevocationStore(clock=lambda: NOW)
        await store.insert("4" * 64, "alice", NOW + timedelta(minutes=15))

        record = await store.get("4" * 64)
        assert record.revoked_at == NOW

    @pytest.mark.asyncio
    async def test_reinsert_refreshes_revoked_at(self):
        times = iter([NOW, NOW + timedelta(minutes=1)])
        store = InMemoryRevocationStore(clock=lambda: next(times))

        await store.insert("5" * 64, "alice", NOW + timedelta(minutes=15))
        await store.insert("5" * 64, "alice", NOW + timedelta(minutes=15))

        record = await store.get("5" * 64)
        assert record.revoked_at == NOW + timedelta(minutes=1)
        assert len(store) == 1

    def test_concurrent_inserts_from_threads(self):
        store = InMemoryRevocationStore()
        results: list[bool] = []
        results_lock = threading.Lock()

        def revoke(jti):
            created = asyncio.run(store.insert(jti, "alice", NOW))
            with results_lock:
                results.append(created)

        threads = [
            threading.Thread(target=revoke, args=(f"jti-{i % 10}",)) for i in range(50)
        ]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert len(store) == 10
        assert results.count(True) == 10
        assert results.count(False) == 40


class TestDatabaseStore:
    @pytest.mark.asyncio
    async def test_naive_timestamps_come_back_as_utc(self, db_store):
        await db_store.insert("6" * 64, "alice", NOW + timedelta(minutes=15))

        record = await db_store.get("6" * 64)
        assert record.expires_at.tzinfo is not None
        assert record.revoked_at.tzinfo is not None

    @pytest.mark.asyncio
    async def test_records_survive_a_new_store_instance(self, db_store):
        await db_store.insert("7" * 64, "alice", NOW + timedelta(days=7))

        second_instance = DatabaseRevocationStore(db_store.session_maker)
        assert await second_instance.contains("7" * 64) is True

    @pytest.mark.asyncio
    async def test_reinsert_keeps_one_row(self, db_store):
        for _ in range(3):
            await db_store.insert("8" * 64, "alice", NOW + timedelta(days=7))

        assert await db_store.contains("8" * 64) is True
        assert await db_store.evict_expired(NOW + timedelta(days=30), RETENTION) == 1

    @pytest.mark.asyncio
    async def test_write_failure_raises_revocation_failed(self):
        session = MagicMock()
        session.__aenter__.side_effect = OperationalError("INSERT", {}, Exception("db down"))
        session_maker = MagicMock(return_value=session)
        store = DatabaseRevocationStore(session_maker)

        with pytest.raises(RevocationFailedError) as exc_info:
            await store.insert("9" * 64, "alice", NOW)

        assert exc_info.value.status_code == 503
        assert "db down" not in str(exc_info.value)
