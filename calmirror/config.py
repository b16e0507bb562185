"""Configuration management for Calmirror calendar mirroring."""

import hashlib
import os
from dataclasses import dataclass, field
from datetime import datetime, time, timedelta, tzinfo
from pathlib import Path
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import yaml
from platformdirs import user_config_dir, user_data_dir

from .errors import ConfigError

DEFAULT_MARKER = "\u200b"  # zero-width space
VISIBILITY_VALUES = ("default", "public", "private", "confidential")


@dataclass
class Calendar:
    """Configuration for a specific calendar within an account."""

    label: str  # Unique label for this calendar within the account
    calendar_id: str  # Google Calendar ID (email, calendar ID, or resource ID)
    name: str  # Human-readable name for this calendar
    description: str | None = None


@dataclass
class CalendarAccount:
    """Configuration for a single Google Calendar account."""

    name: str
    email: str
    auth_type: str = "oauth2"
    calendars: list[Calendar] = field(default_factory=list)


@dataclass
class MirrorRule:
    """One source calendar mirrored into one target calendar."""

    id: str
    source_calendar: str  # account.label reference
    target_calendar: str  # account.label reference
    days_in_past: int = 7
    days_in_future: int = 60
    title_prefix: str = ""
    default_title: str = "Busy"
    event_color: str = ""  # Google Calendar color ID, empty keeps the calendar color
    visibility: str = "default"
    skip_statuses: list[str] = field(default_factory=lambda: ["cancelled"])
    skip_transparency: list[str] = field(default_factory=lambda: ["transparent"])
    skip_visibility: list[str] = field(
        default_factory=lambda: ["private", "confidential"]
    )
    skip_declined: bool = True
    skip_summary_contains: list[str] = field(default_factory=list)
    advanced_filters: dict[str, list[str]] = field(default_factory=dict)
    event_types: list[str] = field(default_factory=lambda: ["default"])
    error_threshold: int = 3
    enabled: bool = True

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "MirrorRule":
        data = dict(data)
        filters = data.pop("advanced_filters", None) or {}
        rule = cls(**data)
        rule.advanced_filters = {
            path: [values] if isinstance(values, str) else list(values)
            for path, values in filters.items()
        }
        return rule


@dataclass(frozen=True)
class MirrorSettings:
    """Immutable settings for one synchronization pass of one mirror rule.

    Built once at process entry by :meth:`Config.build_settings` and handed to
    the synchronizer; nothing in the engine reads global configuration.
    """

    rule_id: str
    source_calendar_id: str
    target_calendar_id: str
    window_start: datetime
    window_end: datetime
    timezone: tzinfo
    data_dir: Path
    source_account_email: str = ""  # owner address when the calendar id is an alias like "primary"
    unique_marker: str = DEFAULT_MARKER
    title_prefix: str = ""
    default_title: str = "Busy"
    event_color: str = ""
    visibility: str = "default"
    skip_statuses: frozenset[str] = frozenset({"cancelled"})
    skip_transparency: frozenset[str] = frozenset({"transparent"})
    skip_visibility: frozenset[str] = frozenset({"private", "confidential"})
    skip_declined: bool = True
    skip_summary_contains: tuple[str, ...] = ()
    advanced_filters: tuple[tuple[str, tuple[str, ...]], ...] = ()
    event_types: tuple[str, ...] = ("default",)
    error_threshold: int = 3
    lock_timeout: float = 90.0
    force_full_sync: bool = False
    delete_only: bool = False

    @property
    def pair_key(self) -> str:
        """Identity of the (source, target) pair, used to namespace state."""
        return f"{self.source_calendar_id}|{self.target_calendar_id}"

    @property
    def lock_path(self) -> Path:
        digest = hashlib.sha1(self.pair_key.encode("utf-8")).hexdigest()[:16]
        return self.data_dir / "locks" / f"{digest}.lock"

    @property
    def state_db_path(self) -> Path:
        return self.data_dir / "state.db"


@dataclass
class Config:
    """Main configuration for Calmirror."""

    accounts: list[CalendarAccount] = field(default_factory=list)
    mirror_rules: list[MirrorRule] = field(default_factory=list)
    log_level: str = "INFO"
    log_file: str | None = None
    data_dir: str | None = None
    unique_marker: str = DEFAULT_MARKER
    timezone: str = "UTC"
    lock_timeout: float = 90.0

    @classmethod
    def from_file(cls, config_path: Path) -> "Config":
        """Load configuration from YAML file."""
        if not config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        with open(config_path, encoding="utf-8") as f:
            try:
                data = yaml.safe_load(f) or {}
            except yaml.YAMLError as e:
                raise ConfigError(f"Invalid YAML in {config_path}: {e}") from e

        return cls.from_dict(data)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Config":
        """Create configuration from dictionary."""
        config = cls()

        for account_data in data.get("accounts", []):
            calendars = [
                Calendar(**calendar_data)
                for calendar_data in account_data.get("calendars", [])
            ]
            config.accounts.append(
                CalendarAccount(
                    name=account_data["name"],
                    email=account_data["email"],
                    auth_type=account_data.get("auth_type", "oauth2"),
                    calendars=calendars,
                )
            )

        try:
            config.mirror_rules = [
                MirrorRule.from_dict(rule_data)
                for rule_data in data.get("mirror_rules", [])
            ]
        except TypeError as e:
            raise ConfigError(f"Invalid mirror rule: {e}") from e

        for key in (
            "log_level",
            "log_file",
            "data_dir",
            "unique_marker",
            "timezone",
            "lock_timeout",
        ):
            if key in data:
                setattr(config, key, data[key])

        return config

    def validate(self) -> list[str]:
        """Validate configuration and return list of errors."""
        errors = []

        for account in self.accounts:
            if not account.name:
                errors.append("Account must have a name")
            if not account.email:
                errors.append(f"Account '{account.name}' must have an email")
            for calendar in account.calendars:
                if not calendar.calendar_id:
                    errors.append(
                        f"Calendar '{calendar.name}' in account '{account.name}' must have a calendar ID"
                    )

        if not self.unique_marker:
            errors.append("unique_marker must not be empty")

        try:
            ZoneInfo(self.timezone)
        except (ZoneInfoNotFoundError, ValueError):
            errors.append(f"Unknown timezone: {self.timezone}")

        seen_ids = set()
        seen_pairs: dict[tuple[str, str], str] = {}
        for rule in self.mirror_rules:
            if rule.id in seen_ids:
                errors.append(f"Duplicate mirror rule id: {rule.id}")
            seen_ids.add(rule.id)

            source = self.get_calendar_by_label(rule.source_calendar)
            target = self.get_calendar_by_label(rule.target_calendar)
            if not source:
                errors.append(
                    f"Mirror rule '{rule.id}' references unknown source calendar label: {rule.source_calendar}"
                )
            if not target:
                errors.append(
                    f"Mirror rule '{rule.id}' references unknown target calendar label: {rule.target_calendar}"
                )
            pair = (
                source.calendar_id if source else rule.source_calendar,
                target.calendar_id if target else rule.target_calendar,
            )
            if pair in seen_pairs:
                errors.append(
                    f"Mirror rules '{seen_pairs[pair]}' and '{rule.id}' both mirror {rule.source_calendar} into {rule.target_calendar}"
                )
            seen_pairs.setdefault(pair, rule.id)
            if rule.source_calendar == rule.target_calendar:
                errors.append(
                    f"Mirror rule '{rule.id}' cannot mirror calendar to itself: {rule.source_calendar}"
                )
            if rule.days_in_past < 0 or rule.days_in_future < 0:
                errors.append(f"Mirror rule '{rule.id}' has a negative sync window")
            if rule.error_threshold < 1:
                errors.append(f"Mirror rule '{rule.id}' error_threshold must be >= 1")
            if rule.visibility not in VISIBILITY_VALUES:
                errors.append(
                    f"Mirror rule '{rule.id}' has unknown visibility: {rule.visibility}"
                )

        return errors

    def resolved_data_dir(self) -> Path:
        if self.data_dir:
            return Path(self.data_dir).expanduser()
        return get_data_dir()

    def get_calendar_by_label(self, account_label: str) -> Calendar | None:
        """Get a calendar by its account.label format."""
        if "." not in account_label:
            return None

        account_name, label = account_label.split(".", 1)
        account = self.get_account(account_name)
        if account:
            for calendar in account.calendars:
                if calendar.label == label:
                    return calendar
        return None

    def get_account(self, name: str) -> CalendarAccount | None:
        """Get account by name."""
        for account in self.accounts:
            if account.name == name:
                return account
        return None

    def get_account_for_label(self, account_label: str) -> CalendarAccount | None:
        return self.get_account(account_label.split(".", 1)[0])

    def get_mirror_rule(self, rule_id: str) -> MirrorRule | None:
        """Get mirror rule by ID."""
        for rule in self.mirror_rules:
            if rule.id == rule_id:
                return rule
        return None

    def get_enabled_mirror_rules(self) -> list[MirrorRule]:
        return [rule for rule in self.mirror_rules if rule.enabled]

    def build_settings(
        self,
        rule: MirrorRule,
        force_full_sync: bool = False,
        delete_only: bool = False,
        now: datetime | None = None,
    ) -> MirrorSettings:
        """Build the immutable per-pass settings for ``rule``.

        The window is aligned to midnight in the configured timezone: it
        opens ``days_in_past`` days before today and closes at the end of the
        ``days_in_future``-th day after today.
        """
        source = self.get_calendar_by_label(rule.source_calendar)
        target = self.get_calendar_by_label(rule.target_calendar)
        if not source or not target:
            raise ConfigError(
                f"Mirror rule '{rule.id}' references an unknown calendar"
            )

        try:
            tz = ZoneInfo(self.timezone)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ConfigError(f"Unknown timezone: {self.timezone}") from e

        source_account = self.get_account_for_label(rule.source_calendar)
        now = now or datetime.now(tz)
        midnight = datetime.combine(now.astimezone(tz).date(), time.min, tzinfo=tz)

        return MirrorSettings(
            rule_id=rule.id,
            source_calendar_id=source.calendar_id,
            target_calendar_id=target.calendar_id,
            source_account_email=source_account.email if source_account else "",
            window_start=midnight - timedelta(days=rule.days_in_past),
            window_end=midnight + timedelta(days=rule.days_in_future + 1),
            timezone=tz,
            data_dir=self.resolved_data_dir(),
            unique_marker=self.unique_marker,
            title_prefix=rule.title_prefix,
            default_title=rule.default_title,
            event_color=str(rule.event_color or ""),
            visibility=rule.visibility,
            skip_statuses=frozenset(rule.skip_statuses),
            skip_transparency=frozenset(rule.skip_transparency),
            skip_visibility=frozenset(rule.skip_visibility),
            skip_declined=rule.skip_declined,
            skip_summary_contains=tuple(rule.skip_summary_contains),
            advanced_filters=tuple(
                (path, tuple(values)) for path, values in rule.advanced_filters.items()
            ),
            event_types=tuple(rule.event_types),
            error_threshold=rule.error_threshold,
            lock_timeout=float(self.lock_timeout),
            force_full_sync=force_full_sync,
            delete_only=delete_only,
        )


def create_example_config() -> str:
    """Create an example configuration file."""
    return """# Calmirror Configuration Example

# Google Calendar accounts (authentication)
accounts:
  - name: "work"
    email: "me@company.com"
    calendars:
      - label: "primary"
        calendar_id: "me@company.com"
        name: "Work Calendar"

  - name: "personal"
    email: "me@gmail.com"
    calendars:
      - label: "primary"
        calendar_id: "me@gmail.com"
        name: "Personal Calendar"

# One-way mirrors (source -> target)
mirror_rules:
  - id: "work_to_personal"
    source_calendar: "work.primary"
    target_calendar: "personal.primary"
    days_in_past: 7
    days_in_future: 60
    title_prefix: "[Work]"
    default_title: "Busy"
    event_color: "8"
    visibility: "private"
    skip_statuses: ["cancelled"]
    skip_transparency: ["transparent"]
    skip_visibility: ["private", "confidential"]
    skip_declined: true
    skip_summary_contains: ["[Personal]"]
    advanced_filters:
      location: ["Home office"]
    error_threshold: 3
    enabled: true

timezone: "UTC"
lock_timeout: 90

# Logging configuration
log_level: "INFO"
log_file: "./logs/calmirror.log"
"""


def get_config_dir() -> Path:
    """Get the standard configuration directory."""
    xdg_config = os.environ.get("XDG_CONFIG_HOME")
    if xdg_config:
        return Path(xdg_config) / "calmirror"
    return Path(user_config_dir("calmirror"))


def get_data_dir() -> Path:
    """Get the standard data directory holding sync state and locks."""
    xdg_data = os.environ.get("XDG_DATA_HOME")
    if xdg_data:
        return Path(xdg_data) / "calmirror"
    return Path(user_data_dir("calmirror"))


def get_credentials_dir() -> Path:
    return get_data_dir() / "credentials"


def get_default_config_path() -> Path:
    return get_config_dir() / "config.yaml"


def get_credentials_path(account_name: str) -> Path:
    """Get the credentials file path for a specific account."""
    return get_credentials_dir() / f"{account_name}.json"


def get_oauth2_config_path() -> Path:
    return get_credentials_dir() / "oauth2_config.yaml"


def ensure_directories():
    """Ensure that the necessary directories exist."""
    get_config_dir().mkdir(parents=True, exist_ok=True)
    get_credentials_dir().mkdir(parents=True, exist_ok=True)
