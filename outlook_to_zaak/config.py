"""Configuration management for the Outlook→Zaak uploader."""

from __future__ import annotations

import re
from datetime import timedelta
from pathlib import Path
from typing import Literal, Sequence

from dotenv import load_dotenv
from pydantic import Field, HttpUrl, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load .env early so BaseSettings can pick values up seamlessly.
load_dotenv()

DEFAULT_GRAPH_SCOPES = ["Mail.Read", "User.Read"]


def _split_list(value: str | Sequence[str] | None) -> list[str]:
    """Turn delimiter-separated env strings into cleaned lists."""
    if value is None:
        return []
    if isinstance(value, str):
        items = re.split(r"[;,\s]", value)
    else:
        items = list(value)
    return [item.strip() for item in items if item and item.strip()]


class Settings(BaseSettings):
    """App configuration derived from environment variables."""

    graph_client_id: str = Field(..., alias="GRAPH_CLIENT_ID")
    graph_tenant_id: str | None = Field(None, alias="GRAPH_TENANT_ID")
    graph_authority: str | None = Field(None, alias="GRAPH_AUTHORITY")
    graph_scopes_raw: str = Field("Mail.Read;User.Read", alias="GRAPH_SCOPES")
    graph_account: str | None = Field(None, alias="GRAPH_ACCOUNT")
    graph_auth_mode: Literal["device_code", "interactive"] = Field(
        "device_code", alias="GRAPH_AUTH_MODE"
    )
    graph_interactive_fallback: bool = Field(True, alias="GRAPH_INTERACTIVE_FALLBACK")
    graph_token_cache: Path | None = Field(
        Path("data/msal_token_cache.bin"), alias="GRAPH_TOKEN_CACHE"
    )

    zaak_api_base_url: HttpUrl = Field(..., alias="ZAAK_API_BASE_URL")

    token_expiry_offset_minutes: int = Field(5, alias="TOKEN_EXPIRY_OFFSET_MINUTES")
    token_default_lifetime_minutes: int = Field(50, alias="TOKEN_DEFAULT_LIFETIME_MINUTES")
    retry_max_retries: int = Field(5, alias="RETRY_MAX_RETRIES")
    retry_base_delay_seconds: float = Field(1.0, alias="RETRY_BASE_DELAY_SECONDS")
    retry_max_delay_seconds: float = Field(30.0, alias="RETRY_MAX_DELAY_SECONDS")
    http_timeout_seconds: float = Field(60.0, alias="HTTP_TIMEOUT_SECONDS")

    log_level: str = Field("INFO", alias="LOG_LEVEL")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator(
        "graph_tenant_id",
        "graph_authority",
        "graph_account",
        "graph_token_cache",
        mode="before",
    )
    @classmethod
    def _empty_str_to_none(cls, value):
        if isinstance(value, str) and value.strip() == "":
            return None
        return value

    @model_validator(mode="after")
    def _validate_limits(self):
        if self.retry_max_retries < 0:
            raise ValueError("RETRY_MAX_RETRIES must not be negative.")
        if self.token_expiry_offset_minutes >= self.token_default_lifetime_minutes:
            raise ValueError(
                "TOKEN_EXPIRY_OFFSET_MINUTES must be smaller than TOKEN_DEFAULT_LIFETIME_MINUTES."
            )
        return self

    @property
    def authority_url(self) -> str:
        if self.graph_authority:
            return self.graph_authority.rstrip("/")
        if self.graph_tenant_id:
            return f"https://login.microsoftonline.com/{self.graph_tenant_id}"
        return "https://login.microsoftonline.com/organizations"

    @property
    def graph_scopes(self) -> list[str]:
        """Scopes requested for delegated Graph auth."""
        return _split_list(self.graph_scopes_raw) or list(DEFAULT_GRAPH_SCOPES)

    @property
    def zaak_api_url(self) -> str:
        return str(self.zaak_api_base_url).rstrip("/")

    @property
    def token_safety_margin(self) -> timedelta:
        return timedelta(minutes=self.token_expiry_offset_minutes)

    @property
    def token_default_lifetime(self) -> timedelta:
        return timedelta(minutes=self.token_default_lifetime_minutes)
