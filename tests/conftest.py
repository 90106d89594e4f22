"""Pytest fixtures shared by the Vote Recorder tests.

The in-memory store mirrors the Firestore transaction: the duplicate check
and the tally increment run under one lock, so concurrent requests observe
a serial order just as they would against the real store.
"""

import asyncio
from datetime import datetime
from typing import AsyncGenerator, Dict

import httpx
import pytest

from vote_recorder.config import Settings
from vote_recorder.main import create_app
from vote_recorder.models import VoteOutcome, receipt_id


class InMemoryVoteStore:
    """Vote store keeping tallies and receipts in dictionaries."""

    def __init__(self):
        self.tallies: Dict[str, dict] = {}
        self.receipts: Dict[str, dict] = {}
        self.commits = 0
        self.healthy = True
        self._lock = asyncio.Lock()

    async def record_vote(self, destination_id: str, voter_id: str) -> VoteOutcome:
        async with self._lock:
            key = receipt_id(voter_id, destination_id)
            # Yield inside the critical section so racing requests interleave
            await asyncio.sleep(0)
            count = self.tallies.get(destination_id, {}).get("voteCount", 0)

            if key in self.receipts:
                return VoteOutcome(destination_id=destination_id, count=count, already_voted=True)

            self.tallies.setdefault(destination_id, {})["voteCount"] = count + 1
            self.receipts[key] = {"votedAt": datetime.utcnow()}
            self.commits += 1
            return VoteOutcome(destination_id=destination_id, count=count + 1)

    async def get_tally(self, destination_id: str) -> int:
        return self.tallies.get(destination_id, {}).get("voteCount", 0)

    async def check_health(self) -> bool:
        return self.healthy


class FailingVoteStore(InMemoryVoteStore):
    """Vote store whose transactions always fail."""

    async def record_vote(self, destination_id: str, voter_id: str) -> VoteOutcome:
        raise RuntimeError("Failed to commit transaction in 5 attempts.")

    async def get_tally(self, destination_id: str) -> int:
        raise RuntimeError("deadline exceeded")


@pytest.fixture
def test_settings() -> Settings:
    """Settings isolated from the environment and any .env file."""
    return Settings(
        _env_file=None,
        FIREBASE_PROJECT_ID=None,
        FIREBASE_PRIVATE_KEY=None,
        FIREBASE_CLIENT_EMAIL=None
    )


@pytest.fixture
def store() -> InMemoryVoteStore:
    return InMemoryVoteStore()


@pytest.fixture
def app(test_settings, store):
    return create_app(test_settings, store=store)


@pytest.fixture
async def api_client(app) -> AsyncGenerator[httpx.AsyncClient, None]:
    """HTTP client bound to the application in-process."""
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test", timeout=10.0) as client:
        yield client


@pytest.fixture
def sample_vote() -> Dict[str, str]:
    return {"destinationId": "paris", "voterId": "u1"}


@pytest.fixture
def failing_store() -> FailingVoteStore:
    return FailingVoteStore()
