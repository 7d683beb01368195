from __future__ import annotations

from apscheduler.jobstores.base import JobLookupError
import pytest
import pytest_asyncio

from wallet_tracker.store.db import Database


class DummyScheduler:
    """Records jobs instead of running them."""

    def __init__(self) -> None:
        self.jobs: dict = {}
        self.removed: list = []
        self.running = False

    def add_job(self, func, trigger=None, id=None, replace_existing=False, **kwargs):
        self.jobs[id] = {"func": func, "trigger": trigger, **kwargs}

    def remove_job(self, job_id, jobstore=None) -> None:
        if job_id not in self.jobs:
            raise JobLookupError(job_id)
        del self.jobs[job_id]
        self.removed.append(job_id)

    def get_job(self, job_id):
        return self.jobs.get(job_id)


class DummyBot:
    def __init__(self) -> None:
        self.calls = []

    async def send_message(self, **kwargs) -> None:
        self.calls.append(kwargs)


@pytest.fixture
def scheduler() -> DummyScheduler:
    return DummyScheduler()


@pytest.fixture
def bot() -> DummyBot:
    return DummyBot()


@pytest_asyncio.fixture
async def db(tmp_path):
    database = Database(f"sqlite+aiosqlite:///{tmp_path / 'wallets.db'}")
    database.connect()
    await database.init_models()
    yield database
    await database.dispose()
