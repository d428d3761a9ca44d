from __future__ import annotations

from functools import lru_cache
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_SENDER = "no-reply@example.com"
# Port 465 is implicit TLS by convention; every other port negotiates STARTTLS.
SMTP_IMPLICIT_TLS_PORT = 465


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", env_ignore_empty=True)

    app_name: str = "ordernotify"
    app_env: str = "development"
    log_level: str = "INFO"

    host: str = "0.0.0.0"
    port: int = 5000

    # auto builds the chain from whatever is configured; fake and none are for local runs.
    email_transport: str = "auto"
    email_from: str | None = None

    # Hosted delivery API, tried before SMTP when present.
    resend_api_key: str | None = None
    resend_api_url: str = "https://api.resend.com/emails"
    email_api_timeout_ms: int = 10000

    # SMTP is only enabled when host, port, user and password are all set.
    smtp_host: str | None = None
    smtp_port: int | None = None
    smtp_user: str | None = None
    smtp_pass: str | None = None
    smtp_secure: bool | None = None
    # Bound connect and greeting so a hanging mail server cannot stall delivery.
    smtp_connection_timeout_ms: int = 15000
    smtp_greeting_timeout_ms: int = 15000
    # Self-signed mail servers are tolerated unless validation is explicitly requested.
    smtp_tls_reject_unauthorized: bool = False

    # Health probe is disabled when no route is configured.
    health_route: str | None = None
    health_interval_ms: int = 100000
    health_timeout_ms: int = 20000

    cleanup_interval_ms: int = 12 * 60 * 60 * 1000
    cleanup_timeout_ms: int = 5 * 60 * 1000

    # Window for in-flight requests to finish after SIGINT/SIGTERM.
    shutdown_grace_ms: int = 10000
    # Delay before exiting on fatal errors so buffered log output can flush.
    fatal_exit_delay_ms: int = 100

    @property
    def sender_address(self) -> str:
        return self.email_from or self.smtp_user or DEFAULT_SENDER

    @property
    def smtp_configured(self) -> bool:
        return bool(self.smtp_host and self.smtp_port and self.smtp_user and self.smtp_pass)

    @property
    def smtp_use_tls(self) -> bool:
        return self.smtp_port == SMTP_IMPLICIT_TLS_PORT or bool(self.smtp_secure)


@lru_cache
def get_settings() -> Settings:
    return Settings()
