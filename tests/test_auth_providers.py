"""
Tests for the msal token providers, using a mocked msal application.
"""
from unittest.mock import Mock

import msal
import pytest

from outlook_to_zaak import auth_providers
from outlook_to_zaak.auth_providers import (
    MsalInteractiveProvider,
    MsalSilentProvider,
    build_providers,
    load_token_cache,
    persist_token_cache,
)
from outlook_to_zaak.errors import AuthenticationError

SCOPES = ["Mail.Read", "User.Read"]
ACCOUNT = {"username": "user@example.nl", "home_account_id": "uid.tid"}


@pytest.fixture
def app():
    app = Mock()
    app.get_accounts.return_value = [ACCOUNT]
    app.acquire_token_silent.return_value = {"access_token": "silent-token"}
    return app


class TestSilentProvider:
    @pytest.mark.asyncio
    async def test_returns_cached_token(self, app):
        token = await MsalSilentProvider(app).acquire_token(SCOPES)

        assert token == "silent-token"
        app.acquire_token_silent.assert_called_once_with(SCOPES, account=ACCOUNT)

    @pytest.mark.asyncio
    async def test_no_account_needs_interaction(self, app):
        app.get_accounts.return_value = []

        with pytest.raises(AuthenticationError) as exc_info:
            await MsalSilentProvider(app).acquire_token(SCOPES)

        assert exc_info.value.code == "no_account"
        assert exc_info.value.needs_interactive

    @pytest.mark.asyncio
    async def test_multiple_accounts_without_hint_are_ambiguous(self, app):
        app.get_accounts.return_value = [ACCOUNT, {"username": "other@example.nl"}]

        with pytest.raises(AuthenticationError) as exc_info:
            await MsalSilentProvider(app).acquire_token(SCOPES)

        assert exc_info.value.code == "account_ambiguous"

    @pytest.mark.asyncio
    async def test_username_selects_account(self, app):
        await MsalSilentProvider(app, username="user@example.nl").acquire_token(SCOPES)

        app.get_accounts.assert_called_once_with(username="user@example.nl")

    @pytest.mark.asyncio
    async def test_empty_silent_result_requires_interaction(self, app):
        app.acquire_token_silent.return_value = None

        with pytest.raises(AuthenticationError) as exc_info:
            await MsalSilentProvider(app).acquire_token(SCOPES)

        assert exc_info.value.code == "interaction_required"

    @pytest.mark.asyncio
    async def test_silent_refresh_persists_cache(self, app, tmp_path):
        token_cache = Mock(has_state_changed=True)
        token_cache.serialize.return_value = '{"AccessToken": {}}'
        cache_path = tmp_path / "cache.bin"

        provider = MsalSilentProvider(app, token_cache=token_cache, cache_path=cache_path)
        await provider.acquire_token(SCOPES)

        assert cache_path.read_text() == '{"AccessToken": {}}'

    @pytest.mark.asyncio
    async def test_failed_silent_refresh_does_not_persist(self, app, tmp_path):
        app.acquire_token_silent.return_value = None
        token_cache = Mock(has_state_changed=True)
        cache_path = tmp_path / "cache.bin"

        with pytest.raises(AuthenticationError):
            await MsalSilentProvider(app, token_cache=token_cache, cache_path=cache_path).acquire_token(SCOPES)

        assert not cache_path.exists()

    @pytest.mark.asyncio
    async def test_error_result_keeps_msal_code(self, app):
        app.acquire_token_silent.return_value = {
            "error": "invalid_grant",
            "error_description": "AADSTS50173: token revoked",
            "error_codes": [50173],
        }

        with pytest.raises(AuthenticationError, match="AADSTS50173") as exc_info:
            await MsalSilentProvider(app).acquire_token(SCOPES)

        assert exc_info.value.code == "invalid_grant"
        assert exc_info.value.details == {"error_codes": [50173]}
        assert not exc_info.value.needs_interactive


class TestInteractiveProvider:
    @pytest.mark.asyncio
    async def test_device_flow_prompts_and_persists(self, app, tmp_path):
        app.initiate_device_flow.return_value = {"user_code": "ABCD", "message": "Go to https://microsoft.com/devicelogin"}
        app.acquire_token_by_device_flow.return_value = {"access_token": "device-token"}
        token_cache = Mock(has_state_changed=True)
        token_cache.serialize.return_value = "{}"
        cache_path = tmp_path / "data" / "cache.bin"
        prompts = []

        provider = MsalInteractiveProvider(
            app, token_cache=token_cache, cache_path=cache_path, prompt=prompts.append
        )
        token = await provider.acquire_token(SCOPES)

        assert token == "device-token"
        assert prompts == ["Go to https://microsoft.com/devicelogin"]
        assert cache_path.read_text() == "{}"

    @pytest.mark.asyncio
    async def test_device_flow_start_failure(self, app):
        app.initiate_device_flow.return_value = {"error": "invalid_client", "error_description": "bad app"}

        with pytest.raises(AuthenticationError, match="bad app") as exc_info:
            await MsalInteractiveProvider(app, prompt=Mock()).acquire_token(SCOPES)

        assert exc_info.value.code == "invalid_client"
        app.acquire_token_by_device_flow.assert_not_called()

    @pytest.mark.asyncio
    async def test_browser_mode_uses_login_hint(self, app):
        app.acquire_token_interactive.return_value = {"access_token": "browser-token"}

        provider = MsalInteractiveProvider(app, mode="interactive", username="user@example.nl")

        assert await provider.acquire_token(SCOPES) == "browser-token"
        app.acquire_token_interactive.assert_called_once_with(SCOPES, login_hint="user@example.nl")
        app.initiate_device_flow.assert_not_called()

    @pytest.mark.asyncio
    async def test_cancelled_login_is_authentication_error(self, app):
        app.acquire_token_interactive.return_value = {"error": "access_denied"}

        with pytest.raises(AuthenticationError) as exc_info:
            await MsalInteractiveProvider(app, mode="interactive").acquire_token(SCOPES)

        assert exc_info.value.code == "access_denied"


def test_token_cache_round_trip_skips_unchanged(tmp_path):
    cache_path = tmp_path / "cache.bin"
    token_cache = load_token_cache(cache_path)

    persist_token_cache(token_cache, cache_path)

    assert isinstance(token_cache, msal.SerializableTokenCache)
    assert not cache_path.exists()


def make_settings(fallback=True):
    return Mock(
        graph_token_cache=None,
        graph_account="user@example.nl",
        graph_interactive_fallback=fallback,
        graph_auth_mode="interactive",
    )


def test_build_providers_with_fallback(monkeypatch):
    app = Mock()
    monkeypatch.setattr(auth_providers, "build_public_client", Mock(return_value=app))

    primary, secondary = build_providers(make_settings())

    assert isinstance(primary, MsalSilentProvider)
    assert isinstance(secondary, MsalInteractiveProvider)
    assert primary.app is secondary.app is app
    assert secondary.mode == "interactive"


def test_build_providers_without_fallback(monkeypatch):
    monkeypatch.setattr(auth_providers, "build_public_client", Mock(return_value=Mock()))

    primary, secondary = build_providers(make_settings(fallback=False))

    assert primary.username == "user@example.nl"
    assert secondary is None
