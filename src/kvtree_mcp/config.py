"""Configuration for KV tree storage and the MCP server."""

import logging
import sys
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

from .path_codec import ALL_ESCAPE_METHODS, EscapeMethod

CLOUDFLARE_API_BASE_URL = "https://api.cloudflare.com/client/v4"


class TreeConfig(BaseModel):
    """Immutable settings shared by the path codec and the storage engine."""

    model_config = ConfigDict(frozen=True)

    prefix: str = Field(default="tree", min_length=1, description="Storage key namespace")
    max_retries: int = Field(default=5, ge=1, description="Attempts per remote call")
    base_retry_delay: float = Field(default=1000, ge=0, description="Backoff base in ms")
    max_retry_delay: float = Field(default=30000, ge=0, description="Backoff cap in ms")
    escape_methods: frozenset[EscapeMethod] = Field(default=ALL_ESCAPE_METHODS)


class CloudflareKVConfiguration(BaseModel):
    """Connection settings for a Cloudflare Workers KV namespace."""

    account_id: str
    namespace_id: str
    api_token: SecretStr
    base_url: str = CLOUDFLARE_API_BASE_URL
    timeout: float = Field(default=30.0, gt=0, description="Per-request timeout in seconds")

    @property
    def namespace_url(self) -> str:
        return (
            f"{self.base_url.rstrip('/')}/accounts/{self.account_id}"
            f"/storage/kv/namespaces/{self.namespace_id}"
        )


class ServerConfig(BaseSettings):
    """Server settings loaded from ``KVTREE_*`` environment variables or ``.env``."""

    model_config = SettingsConfigDict(
        env_prefix="KVTREE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    backend: Literal["memory", "cloudflare"] = "memory"

    cloudflare_account_id: str | None = None
    cloudflare_namespace_id: str | None = None
    cloudflare_api_token: SecretStr | None = None
    cloudflare_base_url: str = CLOUDFLARE_API_BASE_URL
    request_timeout: float = 30.0

    prefix: str = "tree"
    max_retries: int = 5
    base_retry_delay: float = 1000
    max_retry_delay: float = 30000
    escape_methods: Annotated[list[EscapeMethod], NoDecode] = Field(
        default_factory=lambda: list(EscapeMethod)
    )

    log_level: str = "INFO"

    @field_validator("escape_methods", mode="before")
    @classmethod
    def _split_escape_methods(cls, value: object) -> object:
        # Allow KVTREE_ESCAPE_METHODS=URL_ENCODING,BACKSLASH_ESCAPES
        if isinstance(value, str):
            return [item.strip() for item in value.split(",") if item.strip()]
        return value

    def get_tree_config(self) -> TreeConfig:
        """Build the storage/codec configuration."""
        return TreeConfig(
            prefix=self.prefix,
            max_retries=self.max_retries,
            base_retry_delay=self.base_retry_delay,
            max_retry_delay=self.max_retry_delay,
            escape_methods=frozenset(self.escape_methods),
        )

    def get_kv_config(self) -> CloudflareKVConfiguration:
        """Build the Cloudflare KV configuration.

        Raises:
            ValueError: If any Cloudflare credential is missing.
        """
        missing = [
            name
            for name, value in (
                ("KVTREE_CLOUDFLARE_ACCOUNT_ID", self.cloudflare_account_id),
                ("KVTREE_CLOUDFLARE_NAMESPACE_ID", self.cloudflare_namespace_id),
                ("KVTREE_CLOUDFLARE_API_TOKEN", self.cloudflare_api_token),
            )
            if not value
        ]
        if missing:
            raise ValueError(f"Cloudflare backend selected but not configured: {', '.join(missing)}")

        return CloudflareKVConfiguration(
            account_id=self.cloudflare_account_id,  # type: ignore[arg-type]
            namespace_id=self.cloudflare_namespace_id,  # type: ignore[arg-type]
            api_token=self.cloudflare_api_token,  # type: ignore[arg-type]
            base_url=self.cloudflare_base_url,
            timeout=self.request_timeout,
        )


def setup_logging(level: str | int = "INFO") -> None:
    """Send package logs to stderr.

    stdout carries the MCP stdio transport, so nothing may log there.
    """
    if isinstance(level, str):
        level = level.upper()
    root = logging.getLogger()
    root.setLevel(level)

    has_console = any(
        isinstance(h, logging.StreamHandler) and getattr(h, "stream", None) is sys.stderr
        for h in root.handlers
    )
    if not has_console:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(
            logging.Formatter("[%(asctime)s] [%(name)s] %(levelname)s: %(message)s", "%Y-%m-%d %H:%M:%S")
        )
        root.addHandler(handler)
