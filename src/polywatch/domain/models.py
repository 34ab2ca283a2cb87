"""Domain models - pure Python dataclasses."""

import re
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

from .enums import (
    ChangeType,
    DigestKind,
    NotificationMode,
    ProjectType,
    ScrapeErrorKind,
    SurveillanceIssue,
)

GLOBAL_CHANNEL = "global"

_PCT_QUANTUM = Decimal("0.01")
_LOCALE_RE = re.compile(r"^([a-zA-Z]{2,3})(?:[_-]([a-zA-Z]{2}))?$")
_SLUG_RE = re.compile(r"[^a-z0-9_\-]")


def normalize_locale(locale: str) -> str:
    """Normalize a locale code to the remote API form (``fr_FR``, ``de``)."""
    value = locale.strip()
    match = _LOCALE_RE.match(value)
    if not match:
        return value
    language, region = match.groups()
    return f"{language.lower()}_{region.upper()}" if region else language.lower()


def normalize_slug(slug: str) -> str:
    """Lowercase a project slug and strip characters the API never uses."""
    return _SLUG_RE.sub("", slug.strip().lower())


@dataclass(frozen=True, slots=True, order=True)
class ProjectKey:
    """Identity of a watched unit: project type, slug and locale."""

    type: ProjectType
    slug: str
    locale: str

    @classmethod
    def create(cls, project_type: ProjectType | str, slug: str, locale: str) -> "ProjectKey":
        """Build a key from raw user input, normalizing slug and locale."""
        return cls(
            type=ProjectType(project_type),
            slug=normalize_slug(slug),
            locale=normalize_locale(locale),
        )

    @classmethod
    def from_storage_key(cls, value: str) -> "ProjectKey":
        """Parse a key previously produced by ``storage_key``."""
        project_type, slug, locale = value.split(":", 2)
        return cls(type=ProjectType(project_type), slug=slug, locale=locale)

    @property
    def storage_key(self) -> str:
        """Flat string form used as a map key in stores."""
        return f"{self.type.value}:{self.slug}:{self.locale}"

    def with_type(self, project_type: ProjectType) -> "ProjectKey":
        """Return the same project and locale under another type."""
        return replace(self, type=project_type)

    def __str__(self) -> str:
        """Return the storage form."""
        return self.storage_key


@dataclass(frozen=True, slots=True)
class Snapshot:
    """Translation statistics of one project+locale at one point in time.

    Only the four raw counters are stored. ``total``, ``completion_pct`` and
    ``needs_attention`` are always derived from them.
    """

    translated: int
    untranslated: int
    fuzzy: int
    waiting: int
    fetched_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    project_type: ProjectType | None = None
    project_name: str | None = None
    locale_name: str | None = None

    def __post_init__(self) -> None:
        """Reject negative counters."""
        for name in ("translated", "untranslated", "fuzzy", "waiting"):
            if getattr(self, name) < 0:
                msg = f"Snapshot.{name} must be >= 0"
                raise ValueError(msg)

    @property
    def total(self) -> int:
        """Sum of all four counters."""
        return self.translated + self.untranslated + self.fuzzy + self.waiting

    @property
    def completion_pct(self) -> Decimal:
        """Translated share of the total, rounded half-up to 2 decimals."""
        total = self.total
        if total == 0:
            return Decimal(0)
        return (Decimal(self.translated) * 100 / Decimal(total)).quantize(_PCT_QUANTUM, rounding=ROUND_HALF_UP)

    @property
    def needs_attention(self) -> int:
        """Strings waiting for review plus fuzzy strings."""
        return self.waiting + self.fuzzy

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a JSON-compatible dict."""
        return {
            "translated": self.translated,
            "untranslated": self.untranslated,
            "fuzzy": self.fuzzy,
            "waiting": self.waiting,
            "fetched_at": self.fetched_at.isoformat(),
            "project_type": self.project_type.value if self.project_type else None,
            "project_name": self.project_name,
            "locale_name": self.locale_name,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Snapshot":
        """Deserialize from ``to_dict`` output."""
        project_type = data.get("project_type")
        return cls(
            translated=int(data.get("translated", 0)),
            untranslated=int(data.get("untranslated", 0)),
            fuzzy=int(data.get("fuzzy", 0)),
            waiting=int(data.get("waiting", 0)),
            fetched_at=datetime.fromisoformat(data["fetched_at"]),
            project_type=ProjectType(project_type) if project_type else None,
            project_name=data.get("project_name"),
            locale_name=data.get("locale_name"),
        )


@dataclass(frozen=True, slots=True)
class ScrapeError:
    """A failed scrape, returned as a value instead of raised."""

    kind: ScrapeErrorKind
    detail: str = ""
    status_code: int | None = None


ScrapeResult = Snapshot | ScrapeError


@dataclass(frozen=True, slots=True)
class WatchedProject:
    """A project+locale under surveillance and its last observation."""

    key: ProjectKey
    added_at: datetime
    next_check_at: datetime
    last_checked_at: datetime | None = None
    last_snapshot: Snapshot | None = None
    project_type_label: str = ""

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a JSON-compatible dict."""
        return {
            "key": self.key.storage_key,
            "added_at": self.added_at.isoformat(),
            "next_check_at": self.next_check_at.isoformat(),
            "last_checked_at": self.last_checked_at.isoformat() if self.last_checked_at else None,
            "last_snapshot": self.last_snapshot.to_dict() if self.last_snapshot else None,
            "project_type_label": self.project_type_label,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "WatchedProject":
        """Deserialize from ``to_dict`` output."""
        last_checked = data.get("last_checked_at")
        last_snapshot = data.get("last_snapshot")
        return cls(
            key=ProjectKey.from_storage_key(data["key"]),
            added_at=datetime.fromisoformat(data["added_at"]),
            next_check_at=datetime.fromisoformat(data["next_check_at"]),
            last_checked_at=datetime.fromisoformat(last_checked) if last_checked else None,
            last_snapshot=Snapshot.from_dict(last_snapshot) if last_snapshot else None,
            project_type_label=data.get("project_type_label", ""),
        )


@dataclass(frozen=True, slots=True)
class WatchResult:
    """Outcome of a watch request."""

    ok: bool
    issue: SurveillanceIssue | None = None
    detail: str | None = None


@dataclass(frozen=True, slots=True)
class DigestSchedule:
    """When a digest channel flushes its queue."""

    kind: DigestKind = DigestKind.INTERVAL
    minutes: int = 60
    hhmm: str = "09:00"

    def __post_init__(self) -> None:
        """Validate interval and fixed time."""
        if self.kind is DigestKind.INTERVAL and self.minutes < 15:
            msg = "Digest interval must be at least 15 minutes"
            raise ValueError(msg)
        if self.kind is DigestKind.FIXED_TIME and not re.fullmatch(r"(?:[01]\d|2[0-3]):[0-5]\d", self.hhmm):
            msg = f"Invalid digest time: {self.hhmm!r}"
            raise ValueError(msg)


@dataclass(frozen=True, slots=True)
class ProjectScope:
    """A ProjectKey prefix: unset fields match anything."""

    type: ProjectType
    slug: str | None = None
    locale: str | None = None

    def matches(self, key: ProjectKey) -> bool:
        """Check whether ``key`` starts with this prefix."""
        if key.type is not self.type:
            return False
        if self.slug is not None and key.slug != self.slug:
            return False
        return self.locale is None or key.locale == self.locale


@dataclass(frozen=True, slots=True)
class WebhookConfig:
    """Delivery channel configuration (global or one locale)."""

    channel_id: str
    url: str
    enabled: bool = True
    allowed_types: frozenset[ChangeType] = frozenset(ChangeType)
    scope_locales: frozenset[str] = frozenset()
    scope_projects: tuple[ProjectScope, ...] = ()
    new_strings_threshold: int = 0
    milestones: tuple[int, ...] = ()
    mode: NotificationMode = NotificationMode.IMMEDIATE
    digest: DigestSchedule = field(default_factory=DigestSchedule)

    @property
    def is_global(self) -> bool:
        """Whether this is the global channel."""
        return self.channel_id == GLOBAL_CHANNEL


@dataclass(frozen=True, slots=True)
class NotificationPolicy:
    """Per-locale change detection policy."""

    new_strings_threshold: int = 20
    milestones: tuple[int, ...] = (50, 80, 100)


@dataclass(frozen=True, slots=True)
class DigestQueueItem:
    """A rendered change waiting for its channel's next digest flush."""

    change_type: ChangeType
    project_key: ProjectKey
    message: str
    enqueued_at: datetime

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a JSON-compatible dict."""
        return {
            "type": self.change_type.value,
            "project_key": self.project_key.storage_key,
            "message": self.message,
            "enqueued_at": self.enqueued_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "DigestQueueItem":
        """Deserialize from ``to_dict`` output."""
        return cls(
            change_type=ChangeType(data["type"]),
            project_key=ProjectKey.from_storage_key(data["project_key"]),
            message=data["message"],
            enqueued_at=datetime.fromisoformat(data["enqueued_at"]),
        )


@dataclass(frozen=True, slots=True)
class RuntimeSettings:
    """Settings snapshot read once per tick."""

    surveillance_enabled: bool = True
    surveillance_interval: int = 15
    max_projects_per_check: int = 10
    default_policy: NotificationPolicy = field(default_factory=NotificationPolicy)
    locale_policies: dict[str, NotificationPolicy] = field(default_factory=dict)
    global_webhook: WebhookConfig | None = None
    locale_webhooks: dict[str, WebhookConfig] = field(default_factory=dict)

    def policy_for(self, locale: str) -> NotificationPolicy:
        """Return the change detection policy for a locale."""
        return self.locale_policies.get(locale, self.default_policy)

    def webhooks_for(self, locale: str) -> list[WebhookConfig]:
        """Return the configs applicable to a locale, global first."""
        configs: list[WebhookConfig] = []
        if self.global_webhook is not None:
            configs.append(self.global_webhook)
        locale_webhook = self.locale_webhooks.get(locale)
        if locale_webhook is not None:
            configs.append(locale_webhook)
        return configs

    def digest_channels(self) -> list[WebhookConfig]:
        """Return every enabled channel running in digest mode."""
        channels = [self.global_webhook, *self.locale_webhooks.values()]
        return [c for c in channels if c is not None and c.enabled and c.mode is NotificationMode.DIGEST]
