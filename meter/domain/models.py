"""
Domain Models using Pydantic for validation.

Architecture Decision: Why Pydantic?
Pydantic provides runtime data validation, ensuring data integrity when loading
from YAML config files, the settings store or the database. It also gives us
JSON round-tripping for the active timer checkpoint for free.
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional
from pydantic import BaseModel, Field, ConfigDict, field_validator, model_validator


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands back naive datetimes; everything we store is UTC
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class TimerState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    PAUSED = "paused"


class PomodoroPhase(str, Enum):
    """Sub-state of the Pomodoro cycle. IDLE when no session or mode is off."""
    IDLE = "idle"
    WORKING = "working"
    SHORT_BREAK = "short_break"
    LONG_BREAK = "long_break"
    AWAITING_ACK = "awaiting_ack"


class PendingTransition(str, Enum):
    """What an acknowledgment will do while in AWAITING_ACK."""
    BREAK = "break"
    RESUME = "resume"


class NotificationKind(str, Enum):
    WORK_COMPLETE = "work_complete"
    BREAK_COMPLETE = "break_complete"


class TimeSession(BaseModel):
    """
    A single tracked work session held by the Timer.

    Never stored as billing data; only the TimeEntry derived from it is.
    """
    project: str = Field(..., min_length=1, max_length=200)
    description: str = ""
    started_at: datetime
    accumulated_pause: timedelta = timedelta(0)
    paused_at: Optional[datetime] = None
    state: TimerState = TimerState.RUNNING

    @field_validator("started_at", "paused_at")
    @classmethod
    def ensure_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return _as_utc(value)


class PomodoroConfig(BaseModel):
    """
    Work/break cycle configuration.

    Durations are in minutes. All of them must be positive when enabled.
    """
    model_config = ConfigDict(from_attributes=True)

    enabled: bool = False
    work_minutes: int = Field(default=25, ge=0)
    short_break_minutes: int = Field(default=5, ge=0)
    long_break_minutes: int = Field(default=15, ge=0)
    cycles_before_long_break: int = Field(default=4, ge=0)

    @model_validator(mode="after")
    def check_positive_when_enabled(self) -> "PomodoroConfig":
        if self.enabled:
            for name in ("work_minutes", "short_break_minutes",
                         "long_break_minutes", "cycles_before_long_break"):
                if getattr(self, name) <= 0:
                    raise ValueError(f"{name} must be greater than 0 when Pomodoro is enabled")
        return self

    @property
    def work_duration(self) -> timedelta:
        return timedelta(minutes=self.work_minutes)

    @property
    def short_break(self) -> timedelta:
        return timedelta(minutes=self.short_break_minutes)

    @property
    def long_break(self) -> timedelta:
        return timedelta(minutes=self.long_break_minutes)


class PomodoroState(BaseModel):
    """Transient bookkeeping of the Pomodoro controller."""
    phase: PomodoroPhase = PomodoroPhase.IDLE
    pending: Optional[PendingTransition] = None
    completed_work_cycles: int = Field(default=0, ge=0)
    phase_started_at: Optional[datetime] = None

    # Timer accrual at the moment the current work phase began
    work_baseline: timedelta = timedelta(0)

    # Remembered so a stopped timer can be restarted after a break
    last_project: Optional[str] = None
    last_description: Optional[str] = None

    @field_validator("phase_started_at")
    @classmethod
    def ensure_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return _as_utc(value)


class Notification(BaseModel):
    """Signal raised by the Pomodoro controller when a phase expires."""
    kind: NotificationKind
    title: str
    message: str


class TimerCheckpoint(BaseModel):
    """
    Shared state of the running timer.

    Stored in the settings table so the CLI and the tray app see the same timer.
    """
    session: Optional[TimeSession] = None
    pomodoro: PomodoroState = Field(default_factory=PomodoroState)
    saved_at: datetime = Field(default_factory=utcnow)


class TimeEntry(BaseModel):
    """
    A persisted, billable record derived from a finished session.

    Immutable once created except for the billed flag.
    """
    model_config = ConfigDict(from_attributes=True)

    id: Optional[int] = None
    project: str = Field(..., min_length=1, max_length=200)
    description: str = ""
    started_at: datetime
    ended_at: datetime
    duration_hours: Decimal
    billed: bool = False
    created_at: datetime = Field(default_factory=utcnow)

    @field_validator("started_at", "ended_at", "created_at")
    @classmethod
    def ensure_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return _as_utc(value)


class Client(BaseModel):
    """Someone who receives invoices."""
    model_config = ConfigDict(from_attributes=True)

    id: Optional[int] = None
    name: str = Field(..., min_length=1, max_length=200)
    contact_person: str = ""
    email: str = ""
    address_street: str = ""
    address_city: str = ""
    address_postal_code: str = ""
    address_country: str = ""

    def formatted_address(self) -> str:
        return _format_address(self.address_street, self.address_city,
                               self.address_postal_code, self.address_country)


class Project(BaseModel):
    """
    A billable project with an optional hourly rate.

    Examples: "Acme Website", "Internal Tools"
    """
    model_config = ConfigDict(from_attributes=True)

    id: Optional[int] = None
    name: str = Field(..., min_length=1, max_length=200)
    rate: Optional[Decimal] = Field(default=None, ge=0)
    currency: str = "$"
    client_id: Optional[int] = None

    def formatted_rate(self) -> Optional[str]:
        """Rate with currency for display, e.g. "$150.00/hr"."""
        if self.rate is None:
            return None
        return f"{self.currency or '$'}{self.rate:.2f}/hr"


class InvoiceSettings(BaseModel):
    """Business details printed on every invoice."""
    business_name: str = ""
    address_street: str = ""
    address_city: str = ""
    address_postal_code: str = ""
    address_country: str = ""
    email: str = ""
    phone: str = ""
    tax_id: str = ""
    default_payment_terms: str = "Net 30"
    default_tax_rate: Decimal = Field(default=Decimal("0"), ge=0, le=100)
    payment_instructions: str = ""
    next_invoice_number: int = Field(default=1, ge=1)

    def formatted_address(self) -> str:
        return _format_address(self.address_street, self.address_city,
                               self.address_postal_code, self.address_country)


def _format_address(street: str, city: str, postal_code: str, country: str) -> str:
    lines = []
    if street:
        lines.append(street)
    city_line = " ".join(part for part in (postal_code, city) if part)
    if city_line:
        lines.append(city_line)
    if country:
        lines.append(country)
    return "\n".join(lines)


class UserPreferences(BaseModel):
    """
    User configuration and preferences.

    This allows users to customize behavior without touching code.
    """
    model_config = ConfigDict(from_attributes=True)

    default_description: str = Field(default="Work session", description="Description used when none is given")
    default_currency: str = Field(default="$", description="Currency symbol for new project rates")

    # Tray settings
    tick_interval_ms: int = Field(default=1000, ge=100, description="How often the tray polls the timer")
    show_seconds_in_tray: bool = True

    # Invoice settings
    invoice_format: str = Field(default="pdf", description="Default invoice format: 'pdf' or 'text'")

    # Used until a Pomodoro configuration has been saved to the database
    pomodoro: PomodoroConfig = Field(default_factory=PomodoroConfig)
