from __future__ import annotations

import asyncio
from datetime import datetime, timedelta
from pathlib import Path
from typing import Optional

import pytest

from edna_quiz.config import Settings
from edna_quiz.core.errors import RenderError, StorageError
from edna_quiz.core.models import StoredArtifact
from edna_quiz.db import Database
from edna_quiz.repository import ResultRepository
from edna_quiz.service import QuizBackend


def all_answers(**overrides: str) -> dict[str, str]:
    """A complete, deterministic Strong Architect submission."""

    answers = {f"L1_Q{i}": "a" for i in range(1, 9)}
    answers.update({f"L2_Q{i}": "a" for i in range(9, 17)})
    answers.update({f"L3_Q{i}": "c" for i in range(17, 23)})
    answers.update({f"L4_Q{i}": "a" for i in range(23, 28)})
    answers.update({f"L5_Q{i}": "b" for i in range(28, 34)})
    answers.update({f"L6_Q{i}": "a" for i in range(34, 40)})
    answers.update({f"L7_Q{i}": "c" for i in range(40, 46)})
    answers.update(overrides)
    return answers


class FakeClock:
    def __init__(self, start: Optional[datetime] = None):
        self.now = start or datetime(2026, 1, 15, 12, 0, 0)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class FakeStorage:
    def __init__(self):
        self.uploads: list[tuple[Path, str]] = []
        self.presigned: list[tuple[str, int]] = []
        self.fail_upload = False
        self.fail_presign = False

    def key_for(self, file_name: str) -> str:
        return f"pdfs/{file_name}"

    async def upload(self, local_path, key: str) -> StoredArtifact:
        if self.fail_upload:
            raise StorageError("upload refused")
        assert Path(local_path).exists()
        self.uploads.append((Path(local_path), key))
        return StoredArtifact(key=key, url=f"https://s3.test/{key}?X-Amz-Expires=604800")

    async def presign(self, key: str, ttl_seconds: int) -> str:
        if self.fail_presign:
            raise StorageError("presign refused")
        self.presigned.append((key, ttl_seconds))
        return f"https://s3.test/{key}?X-Amz-Expires={ttl_seconds}&n={len(self.presigned)}"


class FakeRenderer:
    def __init__(self):
        self.rendered: list[Path] = []
        self.fail = False
        self.gate: Optional[asyncio.Event] = None

    async def render_to_pdf(self, result, name, output_path) -> Path:
        if self.gate is not None:
            await self.gate.wait()
        if self.fail:
            raise RenderError("browser crashed")
        path = Path(output_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(b"%PDF-1.4 fake report")
        self.rendered.append(path)
        return path


class FakeNotifier:
    def __init__(self):
        self.calls: list[dict] = []

    async def notify(self, email, name, download_link, edna_type=None, core_type=None) -> bool:
        self.calls.append({
            "email": email,
            "name": name,
            "download_link": download_link,
            "edna_type": edna_type,
            "core_type": core_type,
        })
        return True


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        data_dir=tmp_path,
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        public_base_url="https://quiz.test",
        token_reap_interval_hours=24,
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def database(settings) -> Database:
    return Database(settings.resolved_database_url())


@pytest.fixture
def repository(database, clock) -> ResultRepository:
    return ResultRepository(database, clock=clock)


@pytest.fixture
def storage() -> FakeStorage:
    return FakeStorage()


@pytest.fixture
def renderer() -> FakeRenderer:
    return FakeRenderer()


@pytest.fixture
def notifier() -> FakeNotifier:
    return FakeNotifier()


@pytest.fixture
def backend(settings, database, repository, storage, renderer, notifier) -> QuizBackend:
    return QuizBackend(
        settings=settings,
        database=database,
        repository=repository,
        storage=storage,
        renderer=renderer,
        notifier=notifier,
    )


@pytest.fixture
def run(database):
    """Run a coroutine on a fresh event loop, disposing the engine before the loop closes."""

    def _run(coro):
        async def _wrapped():
            try:
                return await coro
            finally:
                await database.close()

        return asyncio.run(_wrapped())

    return _run
