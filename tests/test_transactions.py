"""
Side effects that must follow the database transaction: stored file bytes
and realtime events.
"""

from pathlib import Path

import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from conftest import USER_ID
from tela.core import redis as core_redis
from tela.core.database import session_scope
from tela.core.storage import LocalStorage
from tela.models.account import Account
from tela.models.file import UserFile
from tela.services import designs as design_service
from tela.services import files as file_service


class Boom(Exception):
    pass


def _stored_files(root: Path) -> list[Path]:
    return [p for p in root.rglob("*") if p.is_file()]


@pytest.fixture
def storage(tmp_path) -> LocalStorage:
    return LocalStorage(str(tmp_path / "store"))


@pytest.fixture
def events(monkeypatch) -> list:
    sent = []

    async def record(user_id, event_type, data=None):
        sent.append((user_id, event_type, data))

    monkeypatch.setattr(core_redis, "notify_user", record)
    return sent


class TestFileBytes:
    @pytest.mark.asyncio
    async def test_failed_insert_removes_uploaded_bytes(
        self, db_session: AsyncSession, account: Account, storage: LocalStorage, tmp_path, monkeypatch
    ):
        async def failing_flush(*args, **kwargs):
            raise Boom("insert failed")

        monkeypatch.setattr(db_session, "flush", failing_flush)

        with pytest.raises(Boom):
            await file_service.upload_file(
                db_session, account, storage,
                data=b"hello", original_name="notes.txt", content_type="text/plain",
            )

        assert _stored_files(tmp_path / "store") == []

    @pytest.mark.asyncio
    async def test_bytes_survive_a_rolled_back_delete(
        self, session_factory, account: Account, storage: LocalStorage, tmp_path
    ):
        async with session_scope(session_factory) as db:
            record = await file_service.upload_file(
                db, account, storage,
                data=b"hello", original_name="notes.txt", content_type="text/plain",
            )
        assert len(_stored_files(tmp_path / "store")) == 1

        with pytest.raises(Boom):
            async with session_scope(session_factory) as db:
                await file_service.delete_file(db, USER_ID, record.id, storage)
                raise Boom("request failed after the delete")

        async with session_scope(session_factory) as db:
            assert await db.scalar(select(func.count(UserFile.id))) == 1
            _, data = await file_service.read_file(db, USER_ID, record.id, storage)
        assert data == b"hello"

    @pytest.mark.asyncio
    async def test_committed_delete_removes_bytes(
        self, session_factory, account: Account, storage: LocalStorage, tmp_path
    ):
        async with session_scope(session_factory) as db:
            record = await file_service.upload_file(
                db, account, storage,
                data=b"hello", original_name="notes.txt", content_type="text/plain",
            )

        async with session_scope(session_factory) as db:
            await file_service.delete_file(db, USER_ID, record.id, storage)
            assert len(_stored_files(tmp_path / "store")) == 1

        assert _stored_files(tmp_path / "store") == []


class TestRealtimeEvents:
    @pytest.mark.asyncio
    async def test_published_after_commit(self, session_factory, events: list):
        async with session_scope(session_factory) as db:
            project = await design_service.create_design(db, USER_ID, name="Logo", prompt="fox")
            await design_service.complete_design(db, USER_ID, project.id)
            assert events == []

        assert events == [
            (USER_ID, "design.status", {"project_id": project.id, "status": "completed"}),
        ]

    @pytest.mark.asyncio
    async def test_dropped_on_rollback(self, session_factory, events: list):
        async with session_scope(session_factory) as db:
            project = await design_service.create_design(db, USER_ID, name="Logo", prompt="fox")

        with pytest.raises(Boom):
            async with session_scope(session_factory) as db:
                await design_service.complete_design(db, USER_ID, project.id)
                raise Boom("later step failed")

        assert events == []

        async with session_scope(session_factory) as db:
            current = await design_service.get_design(db, USER_ID, project.id)
            assert current.status == "generating"
