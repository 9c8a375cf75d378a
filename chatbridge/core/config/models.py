"""Pydantic configuration models for chatbridge.

Configuration values are immutable once built. To change a value, build a
new instance (see ``replace_config`` in loader.py) and hand it to the
components that need it.
"""

from collections.abc import Callable
from datetime import datetime, time
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

DEFAULT_SOURCE = "3"
DEFAULT_LANG = ""


def _constant(value: Any) -> Callable[[], Any]:
    """Wrap a plain value into a zero-argument callable."""

    def getter() -> Any:
        return value

    return getter


class LoggingConfig(BaseModel):
    """Configuration for logging system."""

    model_config = ConfigDict(frozen=True)

    level: str = Field(default="INFO", description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)")
    directory: str = Field(default="logs", description="Directory for log files")
    max_size_mb: int = Field(default=10, description="Maximum log file size in MB before rotation")
    backup_count: int = Field(default=5, description="Number of backup log files to keep")


class TranscriptConfig(BaseModel):
    """Conversation transcript download settings.

    Extra keys are kept and forwarded to the transcript download request.
    """

    model_config = ConfigDict(frozen=True, extra="allow")

    download: bool = Field(default=False, description="Offer a transcript download when a chat ends")


class SurveyConfig(BaseModel):
    """Post-chat survey settings. Either a service survey id or a direct URL."""

    model_config = ConfigDict(frozen=True)

    id: str | None = Field(default=None, description="Survey id hosted by the live-chat service")
    url: str | None = Field(default=None, description="Direct survey URL (takes precedence over id)")

    @model_validator(mode="after")
    def require_id_or_url(self) -> "SurveyConfig":
        if not self.id and not self.url:
            raise ValueError("Survey configuration needs an 'id' or a 'url'")
        return self


class WorkingHoursConfig(BaseModel):
    """Window in which escalations are accepted."""

    model_config = ConfigDict(frozen=True)

    timezone: str = Field(default="UTC", description="IANA timezone the hours are expressed in")
    days: list[int] = Field(default_factory=lambda: [0, 1, 2, 3, 4], description="Weekdays (0=Monday)")
    start: time = Field(default=time(9, 0), description="Opening time (HH:MM)")
    end: time = Field(default=time(18, 0), description="Closing time (HH:MM)")

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, v: str) -> str:
        """Validate timezone is a valid IANA timezone identifier."""
        from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, KeyError, ValueError):
            raise ValueError(
                f"Invalid timezone '{v}'. Use IANA timezone identifiers "
                f"(e.g., 'America/Denver', 'Europe/London', 'UTC')."
            )
        return v

    @field_validator("days")
    @classmethod
    def validate_days(cls, v: list[int]) -> list[int]:
        if any(day < 0 or day > 6 for day in v):
            raise ValueError("Working days must be between 0 (Monday) and 6 (Sunday)")
        return v

    def is_open(self, now: datetime) -> bool:
        """Check whether the given instant falls inside working hours."""
        from zoneinfo import ZoneInfo

        local = now.astimezone(ZoneInfo(self.timezone))
        if local.weekday() not in self.days:
            return False
        return self.start <= local.time() < self.end


class BridgeConfig(BaseModel):
    """Root configuration for the chat bridge."""

    model_config = ConfigDict(frozen=True)

    app_id: str = Field(min_length=1, description="Live-chat application id")
    region: str | None = Field(default=None, description="Live-chat service region")
    server: str | None = Field(default=None, description="Live-chat server URL (used when no region is set)")
    port: int = Field(default=8000, description="Live-chat server port")
    sdk_version: str = Field(default="1", description="Live-chat SDK version to load")
    set_cookie_on_domain: bool = Field(default=False, description="Share the chat-open marker across subdomains")

    room: Callable[[], Any] = Field(description="Returns the room id new chats are opened in")
    lang: Callable[[], Any] = Field(default=_constant(DEFAULT_LANG), description="Returns the chat language")
    source: Callable[[], Any] = Field(default=_constant(DEFAULT_SOURCE), description="Returns the chat source id")
    extra_info: Callable[[], dict[str, Any]] | None = Field(
        default=None, description="Returns extra user data sent on registration"
    )

    import_bot_history: bool = Field(default=False, description="Attach the bot transcript to new chats")
    file_uploads_active: bool = Field(default=False, description="Show the upload button during chats")
    show_close_button: bool = Field(default=False, description="Show the close button during chats")

    transcript: TranscriptConfig | None = Field(default=None, description="Transcript download settings")
    surveys: SurveyConfig | None = Field(default=None, description="Post-chat survey settings")
    working_hours: WorkingHoursConfig | None = Field(default=None, description="Escalation working hours")
    logging: LoggingConfig = Field(default_factory=LoggingConfig, description="Logging configuration")

    @field_validator("room", "lang", "source", mode="before")
    @classmethod
    def wrap_constant(cls, v: Any) -> Any:
        """Accept plain values (e.g. from YAML) for callable settings."""
        if v is None or callable(v):
            return v
        return _constant(v)

    @model_validator(mode="after")
    def require_region_or_server(self) -> "BridgeConfig":
        if not self.region and not self.server:
            raise ValueError("Either 'region' or 'server' must be configured")
        return self

    @property
    def transcript_download(self) -> bool:
        """Whether a transcript download is offered after chats."""
        return bool(self.transcript and self.transcript.download)
