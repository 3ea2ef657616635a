"""
Configuration — typed, validated settings loaded from environment/.env.

Uses pydantic-settings to:
  - Load from environment variables (12-factor app)
  - Fall back to .env file
  - Validate types and constraints at startup
  - Keep secrets out of source control

All configuration errors surface when AppSettings() is constructed, so a
misconfigured process never starts issuing.

Architecture: Only AppSettings is a BaseSettings instance. Sub-settings are plain
BaseModel classes populated by AppSettings via env_nested_delimiter="__", so the env
var STORAGE__URL maps to storage.url, DATABASE__HOST maps to database.host, etc.
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from apscheduler.triggers.cron import CronTrigger
from pydantic import BaseModel, Field, SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Resolve the .env file relative to the project root (two levels above this file),
# so settings load correctly regardless of the working directory at runtime.
_ENV_FILE = Path(__file__).parent.parent.parent / ".env"


class DatabaseSettings(BaseModel):
    """
    PostgreSQL connection configuration.

    Accepts either a full connection string via DATABASE__DSN or individual
    components (DATABASE__HOST, DATABASE__PORT, DATABASE__NAME,
    DATABASE__USERNAME, DATABASE__PASSWORD). The DSN takes priority when both
    are provided and is always available via `get_dsn()` after construction.
    """

    dsn: SecretStr | None = Field(
        default=None,
        description="Full PostgreSQL connection string (overrides individual fields)",
    )

    host: str | None = Field(default=None, description="PostgreSQL host")
    port: int = Field(default=5432, ge=1, le=65535, description="PostgreSQL port")
    name: str | None = Field(default=None, description="PostgreSQL database name")
    username: str | None = Field(default=None, description="PostgreSQL username")
    password: SecretStr | None = Field(default=None, description="PostgreSQL password")

    @model_validator(mode="after")
    def resolve_dsn(self) -> DatabaseSettings:
        """Build `dsn` from the components when no full DSN was given."""
        if self.dsn is not None:
            return self
        missing = [f for f, v in [
            ("DATABASE__HOST", self.host),
            ("DATABASE__NAME", self.name),
            ("DATABASE__USERNAME", self.username),
            ("DATABASE__PASSWORD", self.password),
        ] if not v]
        if missing:
            raise ValueError("Set DATABASE__DSN or provide all of: " + ", ".join(missing))
        dsn_value = (
            f"postgresql://{self.username}:{self.password.get_secret_value()}"  # type: ignore[union-attr]
            f"@{self.host}:{self.port}/{self.name}"
        )
        object.__setattr__(self, "dsn", SecretStr(dsn_value))
        return self

    def get_dsn(self) -> str:
        assert self.dsn is not None  # guaranteed by resolve_dsn validator
        return self.dsn.get_secret_value()


class StorageSettings(BaseModel):
    """
    Supabase Storage bucket holding the certificate files.

    `key` is the project's anon key. Uploads into a bucket guarded by
    row-level security need `service_role_key`; when set it is used for
    every storage call.
    """

    url: str = Field(description="Project URL, e.g. https://<ref>.supabase.co")
    key: SecretStr = Field(description="Project API key (anon)")
    service_role_key: SecretStr | None = Field(default=None, description="Service role key")
    bucket: str = Field(default="certificates", min_length=1)
    prefix: str = Field(default="certificates", description="Object path prefix")

    @field_validator("url")
    @classmethod
    def validate_url(cls, value: str) -> str:
        value = value.strip()
        if not value.startswith("https://"):
            raise ValueError(f"Storage URL must start with https://, got {value!r}")
        return value.rstrip("/")

    @model_validator(mode="after")
    def distinct_service_role_key(self) -> StorageSettings:
        if (
            self.service_role_key is not None
            and self.service_role_key.get_secret_value() == self.key.get_secret_value()
        ):
            raise ValueError(
                "STORAGE__SERVICE_ROLE_KEY is identical to STORAGE__KEY; "
                "copy the service_role key from the project API settings"
            )
        return self

    def upload_key(self) -> str:
        """The key storage calls authenticate with (service role preferred)."""
        chosen = self.service_role_key or self.key
        return chosen.get_secret_value()


class MailSettings(BaseModel):
    """SMTP relay used for recipient notifications."""

    host: str = Field(default="smtp.gmail.com")
    port: int = Field(default=587, ge=1, le=65535)
    username: str | None = Field(default=None)
    password: SecretStr | None = Field(default=None)
    sender: str | None = Field(default=None, description="From address (defaults to username)")
    use_starttls: bool = Field(default=True)
    timeout_seconds: float = Field(default=15, gt=0)

    @model_validator(mode="after")
    def resolve_sender(self) -> MailSettings:
        if self.sender is None:
            if not self.username:
                raise ValueError("Set MAIL__SENDER or MAIL__USERNAME")
            object.__setattr__(self, "sender", self.username)
        return self


class ArtifactSettings(BaseModel):
    format: Literal["pdf", "png"] = Field(default="pdf")
    regular_font_path: str | None = Field(default=None, description="TrueType font for body text (PDF and PNG)")
    bold_font_path: str | None = Field(default=None, description="TrueType font for the name, program and title")


class SweepSettings(BaseModel):
    """
    Orphaned-artifact sweep schedule, as a standard 5-field cron expression.

    Format: minute hour day-of-month month day-of-week
    Examples:
      "30 3 * * *"   — daily at 03:30 (default)
      "0 */6 * * *"  — every 6 hours
      "0 2 * * 1"    — every Monday at 02:00
    """

    cron: str = Field(
        default="30 3 * * *",
        description="Cron expression (5 fields: minute hour dom month dow)",
    )
    delete_orphans: bool = Field(default=False, description="Delete orphans instead of reporting")
    grace_minutes: int = Field(default=60, ge=0, description="Ignore files younger than this")
    run_on_startup: bool = Field(default=False)

    @field_validator("cron")
    @classmethod
    def validate_cron(cls, value: str) -> str:
        """Reject expressions without exactly 5 fields or with values cron cannot fire on."""
        fields = value.strip().split()
        if len(fields) != 5:
            raise ValueError(
                f"Cron expression must have exactly 5 fields "
                f"(minute hour dom month dow), got {len(fields)}: {value!r}"
            )
        expression = " ".join(fields)
        try:
            CronTrigger.from_crontab(expression)
        except ValueError as e:
            raise ValueError(f"Invalid cron expression {value!r}: {e}") from e
        return expression

    def trigger(self) -> CronTrigger:
        """The sweep schedule as an APScheduler trigger, in the server's local time zone."""
        return CronTrigger.from_crontab(self.cron)


class AppSettings(BaseSettings):
    """
    Root application settings — aggregates all sub-settings.

    Load order (highest priority first):
      1. Environment variables
      2. .env file
      3. Default values
    """

    model_config = SettingsConfigDict(
        env_file=_ENV_FILE,
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
    )

    database: DatabaseSettings
    storage: StorageSettings
    mail: MailSettings
    artifact: ArtifactSettings = Field(default_factory=ArtifactSettings)
    sweep: SweepSettings = Field(default_factory=SweepSettings)

    frontend_url: str
    http_timeout_seconds: int = Field(default=30, ge=1)
    log_level: str = Field(default="INFO")

    @field_validator("frontend_url")
    @classmethod
    def strip_trailing_slash(cls, value: str) -> str:
        return value.strip().rstrip("/")
