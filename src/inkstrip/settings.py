"""Runtime settings loaded from `.env` and environment variables."""

from __future__ import annotations

import asyncio
import logging
import ssl
from functools import lru_cache
from pathlib import Path
from typing import Any
from urllib.parse import urlparse

import certifi
import httpx
from pydantic import Field, PrivateAttr, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from inkstrip.exceptions import SettingsError

logger = logging.getLogger(__name__)

_LOCAL_HOSTS = frozenset({"localhost", "127.0.0.1", "::1"})


class Settings(BaseSettings):
    """Package settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    project_name: str = "inkstrip"
    app_env: str = Field(
        default="dev",
        validation_alias="APP_ENV",
        description="Application environment, e.g. 'dev', 'prod'.",
    )

    log_level: str = Field(
        default="INFO",
        validation_alias="LOG_LEVEL",
        description="Logging level, e.g. 'INFO', 'DEBUG'.",
    )
    log_json: bool = Field(
        default=True,
        validation_alias="LOG_JSON",
        description="Enable JSON formatted logs.",
    )
    log_file: str | None = Field(
        default=None,
        validation_alias="LOG_FILE",
        description="File path for log output.",
    )

    http_proxy: str | None = Field(default=None, validation_alias="HTTP_PROXY", description="HTTP proxy URL.")
    https_proxy: str | None = Field(
        default=None,
        validation_alias="HTTPS_PROXY",
        description="HTTPS proxy URL.",
    )
    all_proxy: str | None = Field(default=None, validation_alias="ALL_PROXY", description="All proxy URL.")
    no_proxy: str | None = Field(
        default=None,
        validation_alias="NO_PROXY",
        description="Comma-separated list of hosts to bypass proxy.",
    )
    cert_path: str | None = Field(
        default=None,
        validation_alias="CERT_PATH",
        description="Path to SSL certificate.",
    )
    timeout: float = Field(
        default=30.0,
        validation_alias="TIMEOUT",
        description="Request timeout in seconds.",
    )
    max_connections: int = Field(
        default=20,
        validation_alias="MAX_CONNECTIONS",
        description="Maximum number of concurrent connections.",
    )

    tuning_enabled: bool = Field(
        default=True,
        validation_alias="TUNING_ENABLED",
        description="Ask the tuning-suggestion service for detection thresholds when configured.",
    )
    openai_base_url: str | None = Field(
        default=None,
        validation_alias="OPENAI_BASE_URL",
        description="Base URL of the OpenAI-compatible tuning service.",
    )
    openai_api_key: str | None = Field(
        default=None,
        validation_alias="OPENAI_API_KEY",
        description="API key for the tuning service.",
    )
    openai_model: str = Field(
        default="gpt-4o-mini",
        validation_alias="OPENAI_MODEL",
        description="Multimodal model used for tuning suggestions.",
    )

    working_scale: float = Field(
        default=1.75,
        gt=0,
        validation_alias="WORKING_SCALE",
        description="Render scale used by batch processing.",
    )
    preview_scale: float = Field(
        default=1.25,
        gt=0,
        validation_alias="PREVIEW_SCALE",
        description="Render scale used by the preview surface.",
    )
    max_upload_files: int = Field(
        default=20,
        ge=1,
        validation_alias="MAX_UPLOAD_FILES",
        description="Maximum number of documents in one workspace.",
    )
    state_dir: str = Field(
        default="results/state",
        validation_alias="STATE_DIR",
        description="Directory holding persisted session state.",
    )
    output_dir: str = Field(
        default="results",
        validation_alias="OUTPUT_DIR",
        description="Directory receiving cleaned documents.",
    )
    _httpx_clients: dict[str, object] = PrivateAttr(default_factory=dict)
    _close_tasks: set[asyncio.Task[None]] = PrivateAttr(default_factory=set)

    @field_validator("openai_base_url")
    @classmethod
    def _validate_openai_base_url(cls, value: str | None) -> str | None:
        """Reject plain-http tuning endpoints outside local development.

        Args:
            value (str | None): Raw base URL.

        Raises:
            ValueError: If the URL uses plain http against a remote host.

        Returns:
            str | None: Validated base URL, `None` when blank.
        """
        if not value:
            return None
        parsed = urlparse(value)
        if parsed.scheme == "http" and (parsed.hostname or "").lower() not in _LOCAL_HOSTS:
            raise ValueError("OPENAI_BASE_URL must use https outside local development")  # noqa: TRY003
        return value

    def model_post_init(self, __context: object, /) -> None:
        """Initialize derived runtime settings."""
        self._initialize_httpx_clients()

    @property
    def tuning_service_configured(self) -> bool:
        """Return whether the tuning-suggestion service can be queried."""
        return bool(self.tuning_enabled and self.openai_base_url and self.openai_api_key)

    @property
    def httpx_clients(self) -> dict[str, object]:
        """Return cached HTTPX clients."""
        return self._httpx_clients

    def should_bypass_proxy(self, target_url: str | None) -> bool:
        """Return whether the URL should bypass proxies."""
        return _is_no_proxy_target(target_url, self.no_proxy)

    def select_async_httpx_client(self, target_url: str | None) -> object | None:
        """Return async HTTPX client selected for target URL."""
        if not self._httpx_clients:
            return None
        if self.should_bypass_proxy(target_url):
            return self._httpx_clients["async_no_proxy"]
        return self._httpx_clients["async_proxy"]

    def _initialize_httpx_clients(self) -> None:
        """Create and cache async HTTPX clients for proxy and no-proxy paths."""
        limits = httpx.Limits(max_connections=self.max_connections)
        self._httpx_clients = {
            "async_proxy": httpx.AsyncClient(**build_httpx_client_kwargs(self), limits=limits),
            "async_no_proxy": httpx.AsyncClient(
                **build_httpx_client_kwargs(self, force_no_proxy=True),
                limits=limits,
            ),
        }

    def close_httpx_clients(self) -> None:
        """Close cached HTTPX clients (best effort)."""
        if not self._httpx_clients:
            return

        clients = tuple(self._httpx_clients.items())
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            asyncio.run(self._aclose_async_clients(clients))
        else:
            task = loop.create_task(self._aclose_async_clients(clients))
            self._close_tasks.add(task)
            task.add_done_callback(self._on_close_task_done)

        self._httpx_clients = {}

    async def aclose_httpx_clients(self) -> None:
        """Asynchronously close cached HTTPX clients."""
        if not self._httpx_clients:
            return
        await self._aclose_async_clients(tuple(self._httpx_clients.items()))
        self._httpx_clients = {}

    @staticmethod
    async def _aclose_async_clients(clients: tuple[tuple[str, object], ...]) -> None:
        """Close async HTTPX clients with best effort."""
        for key, client in clients:
            aclose = getattr(client, "aclose", None)
            if not aclose:
                continue
            try:
                await aclose()
            except Exception:
                logger.warning("Failed to close async HTTPX client", extra={"client_key": key})

    def _on_close_task_done(self, task: asyncio.Task[None]) -> None:
        """Handle completion of async close tasks."""
        self._close_tasks.discard(task)
        try:
            task.result()
        except Exception:
            logger.warning("Async HTTPX close task failed")


def build_ssl_context(settings: Settings) -> ssl.SSLContext:
    """Build a strict SSL context from settings.

    Args:
        settings (Settings): Runtime settings.

    Returns:
        ssl.SSLContext: Configured TLS context.
    """
    ssl_context = ssl.create_default_context(cafile=settings.cert_path)
    if settings.cert_path is None and not _cert_store_has_ca(ssl_context):
        ssl_context = ssl.create_default_context(cafile=_get_certifi_cafile())
    ssl_context.verify_mode = ssl.CERT_REQUIRED
    ssl_context.minimum_version = ssl.TLSVersion.TLSv1_2
    return ssl_context


def _cert_store_has_ca(context: ssl.SSLContext) -> bool:
    """Return whether the host trust store loaded any CA certificate."""
    return context.cert_store_stats().get("x509_ca", 0) > 0


def _get_certifi_cafile() -> str:
    """Return the CA bundle shipped with certifi."""
    return certifi.where()


def _is_no_proxy_target(target_url: str | None, no_proxy: str | None) -> bool:
    """Return whether the target URL matches a NO_PROXY entry.

    Entries are hostnames (matching the host and its subdomains), `.suffix`
    entries (subdomains only) or `*`.

    Args:
        target_url (str | None): Target request URL.
        no_proxy (str | None): Raw NO_PROXY value.

    Returns:
        bool: True when proxy must be bypassed.
    """
    if not target_url or not no_proxy:
        return False
    host = (urlparse(target_url).hostname or "").lower().strip("[]")
    if not host:
        return False

    for raw_entry in no_proxy.split(","):
        entry = raw_entry.strip().lower()
        if not entry:
            continue
        if entry == "*":
            return True
        if entry.startswith("."):
            if host.endswith(entry):
                return True
            continue
        entry = entry.split(":", 1)[0]
        if host == entry or host.endswith(f".{entry}"):
            return True
    return False


def build_httpx_client_kwargs(
    settings: Settings,
    *,
    target_url: str | None = None,
    force_no_proxy: bool = False,
) -> dict[str, Any]:
    """Build kwargs used for `httpx.AsyncClient`.

    Args:
        settings (Settings): Runtime settings.
        target_url (str | None): Optional target URL used for NO_PROXY evaluation.
        force_no_proxy (bool): If true, always build kwargs without proxy.

    Returns:
        dict[str, Any]: Arguments for client constructors.
    """
    proxy_url = settings.https_proxy or settings.http_proxy or settings.all_proxy

    kwargs: dict[str, Any] = {
        "verify": build_ssl_context(settings),
        "timeout": settings.timeout,
    }

    should_bypass = force_no_proxy or _is_no_proxy_target(target_url, settings.no_proxy)
    if proxy_url and not should_bypass:
        kwargs["proxy"] = proxy_url

    return kwargs


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance.

    Raises:
        SettingsError: If settings cannot be loaded or validated.

    Returns:
        Settings: The loaded settings instance.
    """
    try:
        return Settings()
    except Exception as exc:
        if _is_missing_settings_error(exc):
            ensure_env_file_exists()
            try:
                return Settings()
            except Exception as retry_exc:
                raise SettingsError(exc=retry_exc) from retry_exc
        raise SettingsError(exc=exc) from exc


def ensure_env_file_exists(
    *,
    env_path: Path = Path(".env"),
    template_path: Path = Path(".env.template"),
) -> None:
    """Create `.env` from template when missing.

    Args:
        env_path (Path): Target environment file path.
        template_path (Path): Template file path.
    """
    if env_path.exists() or not template_path.exists():
        return
    env_path.write_text(template_path.read_text(encoding="utf-8"), encoding="utf-8")
    logger.info(
        "Created environment file from template",
        extra={"env_path": str(env_path), "template_path": str(template_path)},
    )


def _is_missing_settings_error(exc: Exception) -> bool:
    """Return whether the settings failure is due to missing values."""
    if not isinstance(exc, ValidationError):
        return False
    return any(error.get("type") == "missing" for error in exc.errors())
