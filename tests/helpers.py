"""Shared test helpers."""
import asyncio
from datetime import UTC, datetime, timedelta

import jwt

from outlook_to_zaak.credentials import GRAPH_APP_ID

NOW = datetime(2025, 6, 1, 12, 0, tzinfo=UTC)
SIGNING_KEY = "test-signing-key-that-is-long-enough-for-hs256"


class Clock:
    """Mutable clock for expiry tests."""

    def __init__(self, now=NOW):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


def make_token(
    exp=NOW + timedelta(hours=1),
    aud=GRAPH_APP_ID,
    scp="Mail.Read User.Read",
    **claims,
):
    payload = {"aud": aud, "scp": scp, **claims}
    if exp is not None:
        payload["exp"] = int(exp.timestamp())
    return jwt.encode(payload, SIGNING_KEY, algorithm="HS256")


class FakeProvider:
    """Token provider that counts calls and replays scripted outcomes."""

    def __init__(self, *outcomes, delay=0):
        self.outcomes = list(outcomes)
        self.calls = 0
        self.scopes = []
        self.delay = delay

    async def acquire_token(self, scopes):
        self.calls += 1
        self.scopes.append(list(scopes))
        if self.delay:
            await asyncio.sleep(self.delay)
        outcome = self.outcomes[min(self.calls - 1, len(self.outcomes) - 1)]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


class RecordingSleep:
    """Stand-in for asyncio.sleep that records requested delays."""

    def __init__(self):
        self.delays = []

    async def __call__(self, delay):
        self.delays.append(delay)
