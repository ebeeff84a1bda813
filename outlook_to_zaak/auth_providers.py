"""msal-backed token providers used by the CredentialCache."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Callable, Literal, Optional, Sequence

import msal

from .config import Settings
from .errors import AuthenticationError

logger = logging.getLogger(__name__)


def load_token_cache(cache_path: Optional[Path]) -> msal.SerializableTokenCache:
    token_cache = msal.SerializableTokenCache()
    if cache_path is not None and cache_path.exists():
        token_cache.deserialize(cache_path.read_text())
    return token_cache


def persist_token_cache(token_cache: msal.SerializableTokenCache, cache_path: Optional[Path]) -> None:
    if cache_path is None or not token_cache.has_state_changed:
        return
    cache_path.parent.mkdir(parents=True, exist_ok=True)
    cache_path.write_text(token_cache.serialize())


def build_public_client(
    settings: Settings, token_cache: msal.SerializableTokenCache
) -> msal.PublicClientApplication:
    return msal.PublicClientApplication(
        client_id=settings.graph_client_id,
        authority=settings.authority_url,
        token_cache=token_cache,
    )


def _token_from_result(result: Optional[dict], default_code: str) -> str:
    if not result:
        raise AuthenticationError("No token returned by identity provider", code=default_code)
    if "access_token" not in result:
        raise AuthenticationError(
            f"Unable to obtain token: {result.get('error_description') or result.get('error')}",
            code=result.get("error") or default_code,
            details={"error_codes": result.get("error_codes", [])},
        )
    return result["access_token"]


class MsalSilentProvider:
    """Primary provider: reuse msal's cached account, never prompt."""

    def __init__(
        self,
        app: msal.ClientApplication,
        username: Optional[str] = None,
        token_cache: Optional[msal.SerializableTokenCache] = None,
        cache_path: Optional[Path] = None,
    ) -> None:
        self.app = app
        self.username = username
        self._token_cache = token_cache
        self._cache_path = cache_path

    async def acquire_token(self, scopes: Sequence[str]) -> str:
        return await asyncio.to_thread(self._acquire_sync, list(scopes))

    def _acquire_sync(self, scopes: list[str]) -> str:
        accounts = self.app.get_accounts(username=self.username) if self.username else self.app.get_accounts()
        if not accounts:
            raise AuthenticationError("No signed-in account in token cache", code="no_account")
        if len(accounts) > 1 and not self.username:
            raise AuthenticationError(
                f"{len(accounts)} accounts in token cache; set GRAPH_ACCOUNT to pick one",
                code="account_ambiguous",
            )
        result = self.app.acquire_token_silent(scopes, account=accounts[0])
        token = _token_from_result(result, "interaction_required")
        if self._token_cache is not None:
            persist_token_cache(self._token_cache, self._cache_path)
        return token


class MsalInteractiveProvider:
    """Secondary provider: device-code flow or a browser login."""

    def __init__(
        self,
        app: msal.PublicClientApplication,
        mode: Literal["device_code", "interactive"] = "device_code",
        token_cache: Optional[msal.SerializableTokenCache] = None,
        cache_path: Optional[Path] = None,
        username: Optional[str] = None,
        prompt: Callable[[str], None] = print,
    ) -> None:
        self.app = app
        self.mode = mode
        self._token_cache = token_cache
        self._cache_path = cache_path
        self.username = username
        self._prompt = prompt

    async def acquire_token(self, scopes: Sequence[str]) -> str:
        return await asyncio.to_thread(self._acquire_sync, list(scopes))

    def _acquire_sync(self, scopes: list[str]) -> str:
        if self.mode == "interactive":
            result = self.app.acquire_token_interactive(scopes, login_hint=self.username)
        else:
            flow = self.app.initiate_device_flow(scopes=scopes)
            if "user_code" not in flow:
                raise AuthenticationError(
                    f"Unable to start device code flow: {flow.get('error_description')}",
                    code=flow.get("error") or "device_flow_failed",
                )
            logger.info("Device code login started")
            self._prompt(flow.get("message", ""))
            result = self.app.acquire_token_by_device_flow(flow)
        token = _token_from_result(result, "interactive_failed")
        if self._token_cache is not None:
            persist_token_cache(self._token_cache, self._cache_path)
        return token


def build_providers(settings: Settings) -> tuple[MsalSilentProvider, Optional[MsalInteractiveProvider]]:
    """Create the primary provider and, when enabled, the interactive fallback."""
    token_cache = load_token_cache(settings.graph_token_cache)
    app = build_public_client(settings, token_cache)
    primary = MsalSilentProvider(
        app,
        username=settings.graph_account,
        token_cache=token_cache,
        cache_path=settings.graph_token_cache,
    )
    if not settings.graph_interactive_fallback:
        return primary, None
    secondary = MsalInteractiveProvider(
        app,
        mode=settings.graph_auth_mode,
        token_cache=token_cache,
        cache_path=settings.graph_token_cache,
        username=settings.graph_account,
    )
    return primary, secondary
