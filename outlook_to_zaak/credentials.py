"""Bearer credential cache with coalesced acquisition and interactive fallback."""

from __future__ import annotations

import asyncio
import logging
from datetime import UTC, datetime, timedelta
from typing import Any, Callable, Iterable, Optional, Protocol, Sequence

import jwt

from .errors import AuthenticationError
from .models import Credential

logger = logging.getLogger(__name__)

GRAPH_APP_ID = "00000003-0000-0000-c000-000000000000"
GRAPH_AUDIENCES = ("https://graph.microsoft.com", GRAPH_APP_ID)


class TokenProvider(Protocol):
    """Anything that can hand out a bearer token for a set of scopes."""

    async def acquire_token(self, scopes: Sequence[str]) -> str:
        ...


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


def decode_claims(token: str) -> dict[str, Any] | None:
    """Read JWT claims without verifying the signature; None for opaque tokens."""
    try:
        claims = jwt.decode(
            token,
            options={"verify_signature": False, "verify_exp": False, "verify_aud": False},
        )
    except jwt.PyJWTError:
        return None
    return claims if isinstance(claims, dict) else None


def _short_scope(scope: str) -> str:
    # "https://graph.microsoft.com/Mail.Read" is granted as "Mail.Read"
    return scope.rsplit("/", 1)[-1]


class CredentialCache:
    """Owns one cached bearer credential.

    At most one acquisition runs at a time: concurrent callers of
    :meth:`get_token` all await the same task. The primary provider is tried
    first; a secondary (interactive) provider is used when the primary fails
    with a code that an interactive login can resolve, or when the token it
    returned lacks the expected audience or scopes.

    Args:
        primary: Non-interactive provider.
        scopes: Scopes requested from the providers.
        secondary: Optional interactive provider used as fallback.
        required_scopes: Scopes that must appear in the ``scp`` claim. Defaults
            to ``scopes``; pass an empty sequence to skip the check.
        audiences: Accepted ``aud`` values. ``None`` skips the audience check.
        safety_margin: A cached credential expiring within this window is
            treated as expired.
        default_lifetime: Lifetime assumed when the token has no ``exp`` claim.
        clock: Returns the current aware datetime.
    """

    def __init__(
        self,
        primary: TokenProvider,
        scopes: Sequence[str],
        secondary: Optional[TokenProvider] = None,
        required_scopes: Optional[Iterable[str]] = None,
        audiences: Optional[Iterable[str]] = GRAPH_AUDIENCES,
        safety_margin: timedelta = timedelta(minutes=5),
        default_lifetime: timedelta = timedelta(minutes=50),
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._primary = primary
        self._secondary = secondary
        self.scopes = list(scopes)
        self.required_scopes = {
            _short_scope(scope)
            for scope in (self.scopes if required_scopes is None else required_scopes)
        }
        self.audiences = set(audiences) if audiences is not None else None
        self.safety_margin = safety_margin
        self.default_lifetime = default_lifetime
        self._clock = clock
        self._credential: Optional[Credential] = None
        self._pending: Optional[asyncio.Task[Credential]] = None
        self._epoch = 0

    @property
    def credential(self) -> Optional[Credential]:
        return self._credential

    @property
    def acquiring(self) -> bool:
        return self._pending is not None

    async def get_token(self) -> str:
        credential = self._credential
        if credential and credential.is_valid(self._clock(), self.safety_margin):
            logger.debug("Using cached bearer token")
            return credential.value

        if self._pending is None:
            logger.debug("Requesting new bearer token")
            task = asyncio.ensure_future(self._acquire(self._epoch))
            task.add_done_callback(self._forget_pending)
            self._pending = task
        else:
            logger.debug("Waiting for token request already in flight")

        credential = await asyncio.shield(self._pending)
        return credential.value

    def clear(self) -> None:
        """Drop the cached credential and stop tracking any in-flight request."""
        self._epoch += 1
        self._credential = None
        self._pending = None

    def _forget_pending(self, task: asyncio.Task) -> None:
        if self._pending is task:
            self._pending = None
        if not task.cancelled():
            # Retrieve it so abandoned failures are not reported as unhandled.
            task.exception()

    async def _acquire(self, epoch: int) -> Credential:
        # Results of an acquisition started before the last clear() are handed
        # to its waiters but never stored.
        try:
            token = await self._acquire_from_providers()
            credential = Credential(token, self._expiry_of(token))
        except AuthenticationError:
            if epoch == self._epoch:
                self._credential = None
            raise
        if epoch == self._epoch:
            self._credential = credential
            logger.debug("Bearer token cached until %s", credential.expires_at.isoformat())
        else:
            logger.debug("Discarding token acquired before the cache was cleared")
        return credential

    async def _acquire_from_providers(self) -> str:
        try:
            token = await self._call(self._primary, "primary")
        except AuthenticationError as exc:
            if not (exc.needs_interactive and self._secondary is not None):
                logger.error("Token acquisition failed (code=%s): %s", exc.code, exc.message)
                raise
            logger.warning("Silent token acquisition failed (code=%s), falling back to interactive login", exc.code)
            token = await self._call(self._secondary, "secondary")
            self._check_claims(token)
            return token

        problem = self._claims_problem(token)
        if problem is None:
            return token
        if self._secondary is None:
            raise AuthenticationError(f"Token rejected: {problem}", code=problem)
        logger.warning("Token failed %s check, requesting upgraded token interactively", problem)
        token = await self._call(self._secondary, "secondary")
        self._check_claims(token)
        return token

    async def _call(self, provider: TokenProvider, label: str) -> str:
        try:
            token = await provider.acquire_token(self.scopes)
        except AuthenticationError:
            raise
        except Exception as exc:
            raise AuthenticationError(
                f"{label} token provider failed: {exc}", code="provider_error"
            ) from exc
        if not token:
            raise AuthenticationError(f"{label} token provider returned no token", code="empty_token")
        return token

    def _check_claims(self, token: str) -> None:
        problem = self._claims_problem(token)
        if problem is not None:
            raise AuthenticationError(f"Token rejected: {problem}", code=problem)

    def _claims_problem(self, token: str) -> Optional[str]:
        if self.audiences is None and not self.required_scopes:
            return None
        claims = decode_claims(token)
        if claims is None:
            return "invalid_token"
        if self.audiences is not None:
            audience = claims.get("aud")
            audiences = audience if isinstance(audience, list) else [audience]
            if not self.audiences.intersection(a for a in audiences if a):
                return "invalid_audience"
        granted = set((claims.get("scp") or "").split())
        if not self.required_scopes.issubset(granted):
            return "insufficient_scope"
        return None

    def _expiry_of(self, token: str) -> datetime:
        claims = decode_claims(token) or {}
        exp = claims.get("exp")
        if isinstance(exp, (int, float)):
            return datetime.fromtimestamp(exp, tz=UTC)
        logger.debug("Token carries no exp claim, assuming default lifetime")
        return self._clock() + self.default_lifetime
