"""Runtime notification settings stored as one JSON document."""

import re
from typing import Any
from urllib.parse import urlparse

import structlog
from cryptography.fernet import Fernet, InvalidToken
from pydantic import BaseModel, Field, field_validator

from polywatch.application.ports.store import KeyValueStore
from polywatch.config import SURVEILLANCE_INTERVALS, Settings
from polywatch.domain.enums import ChangeType, DigestKind, NotificationMode, ProjectType
from polywatch.domain.models import (
    GLOBAL_CHANNEL,
    DigestSchedule,
    NotificationPolicy,
    ProjectScope,
    RuntimeSettings,
    WebhookConfig,
    normalize_locale,
    normalize_slug,
)

logger = structlog.get_logger()

SETTINGS_KEY = "settings:notifications"
SLACK_WEBHOOK_HOST = "hooks.slack.com"
FERNET_PREFIX = "gAAAA"

_HHMM_RE = re.compile(r"^(?:[01]\d|2[0-3]):[0-5]\d$")


def _sanitize_milestones(value: list[int] | None) -> list[int] | None:
    if value is None:
        return None
    return sorted({int(m) for m in value if 0 <= int(m) <= 100})


class DigestDoc(BaseModel):
    """Digest schedule as stored."""

    type: DigestKind = DigestKind.INTERVAL
    interval_minutes: int = 60
    fixed_time: str = "09:00"

    @field_validator("interval_minutes")
    @classmethod
    def clamp_interval(cls, value: int) -> int:
        """Digests never run more often than every 15 minutes."""
        return max(15, abs(value))

    @field_validator("fixed_time", mode="before")
    @classmethod
    def sanitize_fixed_time(cls, value: Any) -> str:
        """Fall back to 09:00 for anything that is not HH:MM."""
        text = re.sub(r"[^0-9:]", "", str(value))
        return text if _HHMM_RE.match(text) else "09:00"

    def to_schedule(self) -> DigestSchedule:
        """Convert to the domain schedule."""
        return DigestSchedule(kind=self.type, minutes=self.interval_minutes, hhmm=self.fixed_time)


class ScopeProjectDoc(BaseModel):
    """Project prefix a global webhook is restricted to."""

    type: ProjectType
    slug: str | None = None
    locale: str | None = None


class ScopesDoc(BaseModel):
    """Global webhook scopes; empty lists match everything."""

    locales: list[str] = Field(default_factory=list)
    projects: list[ScopeProjectDoc] = Field(default_factory=list)


class WebhookDoc(BaseModel):
    """Webhook channel as stored."""

    enabled: bool = False
    webhook_url: str = ""
    types: list[ChangeType] = Field(default_factory=lambda: list(ChangeType))
    threshold: int = Field(default=0, ge=0)
    milestones: list[int] = Field(default_factory=list)
    mode: NotificationMode | None = None
    digest: DigestDoc | None = None
    scopes: ScopesDoc = Field(default_factory=ScopesDoc)

    @field_validator("milestones")
    @classmethod
    def sanitize_milestones(cls, value: list[int] | None) -> list[int] | None:
        """Keep milestones within 0..100, sorted and unique."""
        return _sanitize_milestones(value)


class NotificationDefaultsDoc(BaseModel):
    """Defaults applied to every locale."""

    new_strings_threshold: int = Field(default=20, ge=0)
    milestones: list[int] = Field(default_factory=lambda: [50, 80, 100])
    mode: NotificationMode = NotificationMode.IMMEDIATE
    digest: DigestDoc = Field(default_factory=DigestDoc)

    @field_validator("milestones")
    @classmethod
    def sanitize_milestones(cls, value: list[int] | None) -> list[int] | None:
        """Keep milestones within 0..100, sorted and unique."""
        return _sanitize_milestones(value)


class LocaleDoc(BaseModel):
    """Per-locale overrides."""

    webhook: WebhookDoc | None = None
    new_strings_threshold: int | None = Field(default=None, ge=0)
    milestones: list[int] | None = None
    mode: NotificationMode | None = None
    digest: DigestDoc | None = None

    @field_validator("milestones")
    @classmethod
    def sanitize_milestones(cls, value: list[int] | None) -> list[int] | None:
        """Keep milestones within 0..100, sorted and unique."""
        return _sanitize_milestones(value)


class NotificationSettingsDoc(BaseModel):
    """The whole runtime settings document."""

    surveillance_enabled: bool | None = None
    surveillance_interval: int | None = None
    max_projects_per_check: int | None = Field(default=None, ge=1)
    notification_defaults: NotificationDefaultsDoc = Field(default_factory=NotificationDefaultsDoc)
    global_webhook: WebhookDoc | None = None
    locales: dict[str, LocaleDoc] = Field(default_factory=dict)

    @field_validator("surveillance_interval")
    @classmethod
    def validate_interval(cls, value: int | None) -> int | None:
        """Only accept the supported tick cadences."""
        if value is not None and value not in SURVEILLANCE_INTERVALS:
            msg = f"surveillance_interval must be one of {SURVEILLANCE_INTERVALS}"
            raise ValueError(msg)
        return value

    @field_validator("locales")
    @classmethod
    def normalize_locales(cls, value: dict[str, LocaleDoc]) -> dict[str, LocaleDoc]:
        """Key locales by their normalized code."""
        return {normalize_locale(code): doc for code, doc in value.items()}


class SettingsRepository:
    """Loads and stores the notification settings document.

    Webhook URLs may be stored as Fernet tokens; they are decrypted before
    being handed to the rest of the application. Only Slack incoming
    webhooks are accepted.
    """

    def __init__(self, store: KeyValueStore, settings: Settings) -> None:
        """Initialize the repository.

        Args:
            store: Backing key-value store.
            settings: Static settings providing defaults and the encryption key.

        """
        self._store = store
        self._settings = settings
        key = settings.encryption_key.get_secret_value() if settings.encryption_key else None
        self._fernet = Fernet(key.encode()) if key else None
        self._default_url = settings.slack_webhook_url.get_secret_value() if settings.slack_webhook_url else ""

    async def get_document(self) -> NotificationSettingsDoc:
        """Return the stored document, or defaults when none is stored."""
        raw = await self._store.get(SETTINGS_KEY)
        if raw is None:
            return NotificationSettingsDoc()
        return NotificationSettingsDoc.model_validate(raw)

    async def save_document(self, doc: NotificationSettingsDoc) -> NotificationSettingsDoc:
        """Validate webhook URLs, encrypt them when possible and store the document.

        Raises:
            ValueError: If a webhook URL is not a Slack incoming webhook.

        """
        for webhook in self._webhooks(doc):
            if webhook.webhook_url and not webhook.webhook_url.startswith(FERNET_PREFIX):
                if not is_slack_webhook_url(webhook.webhook_url):
                    msg = f"Webhook URL must point to {SLACK_WEBHOOK_HOST}"
                    raise ValueError(msg)
                if self._fernet is not None:
                    webhook.webhook_url = self._fernet.encrypt(webhook.webhook_url.encode()).decode()
        await self._store.set(SETTINGS_KEY, doc.model_dump(mode="json"))
        logger.info("Notification settings saved", locales=len(doc.locales))
        return doc

    async def load(self) -> RuntimeSettings:
        """Build the runtime settings snapshot used by one tick."""
        doc = await self.get_document()
        defaults = doc.notification_defaults

        global_webhook = None
        global_url = ""
        if doc.global_webhook is not None:
            # A global webhook without its own URL posts to the default channel.
            global_url = (
                self._resolve_url(doc.global_webhook.webhook_url, GLOBAL_CHANNEL)
                if doc.global_webhook.webhook_url
                else self._default_url
            )
            global_webhook = self._build_webhook(
                GLOBAL_CHANNEL,
                doc.global_webhook,
                global_url,
                doc.global_webhook.mode or defaults.mode,
                doc.global_webhook.digest or defaults.digest,
            )

        locale_policies: dict[str, NotificationPolicy] = {}
        locale_webhooks: dict[str, WebhookConfig] = {}
        for code, locale in doc.locales.items():
            locale_policies[code] = NotificationPolicy(
                new_strings_threshold=(
                    locale.new_strings_threshold
                    if locale.new_strings_threshold is not None
                    else defaults.new_strings_threshold
                ),
                milestones=tuple(locale.milestones if locale.milestones is not None else defaults.milestones),
            )
            if locale.webhook is None:
                continue
            # A locale without its own URL posts to the global one; an unusable URL posts nowhere.
            url = (
                self._resolve_url(locale.webhook.webhook_url, code)
                if locale.webhook.webhook_url
                else global_url
            )
            locale_webhooks[code] = self._build_webhook(
                code,
                locale.webhook,
                url,
                locale.webhook.mode or locale.mode or defaults.mode,
                locale.webhook.digest or locale.digest or defaults.digest,
            )

        return RuntimeSettings(
            surveillance_enabled=(
                doc.surveillance_enabled
                if doc.surveillance_enabled is not None
                else self._settings.surveillance_enabled
            ),
            surveillance_interval=doc.surveillance_interval or self._settings.surveillance_interval,
            max_projects_per_check=doc.max_projects_per_check or self._settings.max_projects_per_check,
            default_policy=NotificationPolicy(
                new_strings_threshold=defaults.new_strings_threshold,
                milestones=tuple(defaults.milestones),
            ),
            locale_policies=locale_policies,
            global_webhook=global_webhook,
            locale_webhooks=locale_webhooks,
        )

    @staticmethod
    def _webhooks(doc: NotificationSettingsDoc) -> list[WebhookDoc]:
        hooks = [doc.global_webhook] if doc.global_webhook else []
        hooks.extend(locale.webhook for locale in doc.locales.values() if locale.webhook)
        return hooks

    @staticmethod
    def _build_webhook(
        channel_id: str,
        doc: WebhookDoc,
        url: str,
        mode: NotificationMode,
        digest: DigestDoc,
    ) -> WebhookConfig:
        scopes = doc.scopes if channel_id == GLOBAL_CHANNEL else ScopesDoc()
        return WebhookConfig(
            channel_id=channel_id,
            url=url,
            enabled=doc.enabled,
            allowed_types=frozenset(doc.types),
            scope_locales=frozenset(normalize_locale(code) for code in scopes.locales),
            scope_projects=tuple(
                ProjectScope(
                    type=project.type,
                    slug=normalize_slug(project.slug) if project.slug else None,
                    locale=normalize_locale(project.locale) if project.locale else None,
                )
                for project in scopes.projects
            ),
            new_strings_threshold=doc.threshold,
            milestones=tuple(doc.milestones),
            mode=mode,
            digest=digest.to_schedule(),
        )

    def _resolve_url(self, value: str, channel_id: str) -> str:
        """Decrypt and validate a stored URL; unusable values resolve to ''."""
        if not value:
            return ""
        url = value
        if value.startswith(FERNET_PREFIX):
            if self._fernet is None:
                logger.warning("Encrypted webhook URL but no encryption key", channel=channel_id)
                return ""
            try:
                url = self._fernet.decrypt(value.encode()).decode()
            except InvalidToken:
                logger.warning("Cannot decrypt webhook URL", channel=channel_id)
                return ""
        if not is_slack_webhook_url(url):
            logger.warning("Dropping non-Slack webhook URL", channel=channel_id)
            return ""
        return url


def is_slack_webhook_url(url: str) -> bool:
    """Check that ``url`` is an https Slack incoming webhook."""
    parsed = urlparse(url)
    return parsed.scheme == "https" and parsed.hostname == SLACK_WEBHOOK_HOST
