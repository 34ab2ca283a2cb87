"""Tests for the notification settings repository."""

import pytest
from cryptography.fernet import Fernet
from pydantic import SecretStr, ValidationError

from polywatch.config import Settings
from polywatch.domain.enums import ChangeType, DigestKind, NotificationMode, ProjectType
from polywatch.domain.models import GLOBAL_CHANNEL, NotificationPolicy, ProjectScope
from polywatch.infrastructure.state import SettingsRepository
from polywatch.infrastructure.state.settings_repository import (
    SETTINGS_KEY,
    DigestDoc,
    LocaleDoc,
    NotificationDefaultsDoc,
    NotificationSettingsDoc,
    ScopeProjectDoc,
    ScopesDoc,
    WebhookDoc,
    is_slack_webhook_url,
)
from polywatch.infrastructure.store import InMemoryKeyValueStore
from tests.conftest import DEFAULT_WEBHOOK

GLOBAL_URL = "https://hooks.slack.com/services/T/B/global"
FRENCH_URL = "https://hooks.slack.com/services/T/B/french"


def _with_new_key(settings: Settings) -> Settings:
    return settings.model_copy(update={"encryption_key": SecretStr(Fernet.generate_key().decode())})


@pytest.fixture
def repository(store: InMemoryKeyValueStore, settings: Settings) -> SettingsRepository:
    """Return a repository without an encryption key."""
    return SettingsRepository(store, settings)


class TestDocumentModels:
    """Tests for settings document validation."""

    def test_digest_interval_clamped(self) -> None:
        """Test that digest intervals never go under 15 minutes."""
        assert DigestDoc(interval_minutes=5).interval_minutes == 15
        assert DigestDoc(interval_minutes=-120).interval_minutes == 120

    @pytest.mark.parametrize(("raw", "expected"), [("07:30", "07:30"), ("7h30", "09:00"), ("25:00", "09:00")])
    def test_fixed_time_sanitized(self, raw: str, expected: str) -> None:
        """Test that malformed fixed times fall back to 09:00."""
        assert DigestDoc(type=DigestKind.FIXED_TIME, fixed_time=raw).fixed_time == expected

    def test_milestones_sanitized(self) -> None:
        """Test that milestones are clipped to 0..100, sorted and unique."""
        doc = NotificationDefaultsDoc(milestones=[100, 50, 150, 50, -1])

        assert doc.milestones == [50, 100]

    def test_interval_must_be_supported(self) -> None:
        """Test that unsupported tick cadences are refused."""
        with pytest.raises(ValidationError):
            NotificationSettingsDoc(surveillance_interval=7)

    def test_locale_keys_normalized(self) -> None:
        """Test that locale codes are normalized."""
        doc = NotificationSettingsDoc(locales={"fr-fr": LocaleDoc()})

        assert list(doc.locales) == ["fr_FR"]

    def test_slack_url_check(self) -> None:
        """Test the Slack webhook URL check."""
        assert is_slack_webhook_url(GLOBAL_URL)
        assert not is_slack_webhook_url("http://hooks.slack.com/services/x")
        assert not is_slack_webhook_url("https://evil.example.com/hooks.slack.com")


class TestLoad:
    """Tests for building runtime settings."""

    @pytest.mark.asyncio
    async def test_defaults_when_nothing_stored(self, repository: SettingsRepository, settings: Settings) -> None:
        """Test runtime settings built from static defaults."""
        runtime = await repository.load()

        assert runtime.surveillance_enabled is settings.surveillance_enabled
        assert runtime.surveillance_interval == settings.surveillance_interval
        assert runtime.max_projects_per_check == settings.max_projects_per_check
        assert runtime.default_policy == NotificationPolicy(new_strings_threshold=20, milestones=(50, 80, 100))
        assert runtime.global_webhook is None
        assert runtime.locale_webhooks == {}

    @pytest.mark.asyncio
    async def test_global_webhook(self, repository: SettingsRepository) -> None:
        """Test the global webhook with scopes and filters."""
        await repository.save_document(
            NotificationSettingsDoc(
                surveillance_interval=30,
                global_webhook=WebhookDoc(
                    enabled=True,
                    webhook_url=GLOBAL_URL,
                    types=[ChangeType.MILESTONE],
                    milestones=[100],
                    scopes=ScopesDoc(
                        locales=["fr-fr"],
                        projects=[ScopeProjectDoc(type=ProjectType.PLUGIN, slug="Akismet")],
                    ),
                ),
            ),
        )

        runtime = await repository.load()

        hook = runtime.global_webhook
        assert hook is not None
        assert hook.channel_id == GLOBAL_CHANNEL
        assert hook.url == GLOBAL_URL
        assert hook.allowed_types == frozenset({ChangeType.MILESTONE})
        assert hook.milestones == (100,)
        assert hook.scope_locales == frozenset({"fr_FR"})
        assert hook.scope_projects == (ProjectScope(type=ProjectType.PLUGIN, slug="akismet"),)
        assert hook.mode is NotificationMode.IMMEDIATE
        assert runtime.surveillance_interval == 30

    @pytest.mark.asyncio
    async def test_locale_overrides(self, repository: SettingsRepository) -> None:
        """Test locale policy and webhook resolution."""
        await repository.save_document(
            NotificationSettingsDoc(
                notification_defaults=NotificationDefaultsDoc(
                    mode=NotificationMode.DIGEST,
                    digest=DigestDoc(type=DigestKind.FIXED_TIME, fixed_time="08:00"),
                ),
                global_webhook=WebhookDoc(enabled=True, webhook_url=GLOBAL_URL),
                locales={
                    "fr_FR": LocaleDoc(
                        new_strings_threshold=5,
                        webhook=WebhookDoc(enabled=True, webhook_url=FRENCH_URL, mode=NotificationMode.IMMEDIATE),
                    ),
                    "de": LocaleDoc(milestones=[90], webhook=WebhookDoc(enabled=True)),
                },
            ),
        )

        runtime = await repository.load()

        assert runtime.policy_for("fr_FR") == NotificationPolicy(new_strings_threshold=5, milestones=(50, 80, 100))
        assert runtime.policy_for("de") == NotificationPolicy(new_strings_threshold=20, milestones=(90,))
        french = runtime.locale_webhooks["fr_FR"]
        assert french.url == FRENCH_URL
        assert french.mode is NotificationMode.IMMEDIATE
        german = runtime.locale_webhooks["de"]
        assert german.url == GLOBAL_URL
        assert german.mode is NotificationMode.DIGEST
        assert german.digest.kind is DigestKind.FIXED_TIME
        assert german.digest.hhmm == "08:00"
        assert runtime.global_webhook is not None
        assert runtime.global_webhook.mode is NotificationMode.DIGEST

    @pytest.mark.asyncio
    async def test_locale_webhook_ignores_scopes(self, repository: SettingsRepository) -> None:
        """Test that scopes only apply to the global webhook."""
        await repository.save_document(
            NotificationSettingsDoc(
                locales={
                    "fr_FR": LocaleDoc(
                        webhook=WebhookDoc(enabled=True, webhook_url=FRENCH_URL, scopes=ScopesDoc(locales=["de"])),
                    ),
                },
            ),
        )

        runtime = await repository.load()

        assert runtime.locale_webhooks["fr_FR"].scope_locales == frozenset()

    @pytest.mark.asyncio
    async def test_stored_non_slack_url_dropped(
        self,
        repository: SettingsRepository,
        store: InMemoryKeyValueStore,
    ) -> None:
        """Test that a foreign URL written behind the API's back is not used."""
        doc = NotificationSettingsDoc(global_webhook=WebhookDoc(enabled=True, webhook_url="https://example.com/x"))
        await store.set(SETTINGS_KEY, doc.model_dump(mode="json"))

        runtime = await repository.load()

        assert runtime.global_webhook is not None
        assert runtime.global_webhook.url == ""

    @pytest.mark.asyncio
    async def test_global_webhook_without_url_uses_default(self, repository: SettingsRepository) -> None:
        """Test that a global webhook with no URL posts to the default channel."""
        await repository.save_document(NotificationSettingsDoc(global_webhook=WebhookDoc(enabled=True)))

        runtime = await repository.load()

        assert runtime.global_webhook is not None
        assert runtime.global_webhook.url == DEFAULT_WEBHOOK

    @pytest.mark.asyncio
    async def test_unusable_locale_url_does_not_fall_back(
        self,
        repository: SettingsRepository,
        store: InMemoryKeyValueStore,
    ) -> None:
        """Test that a locale whose stored URL is invalid gets no URL at all."""
        doc = NotificationSettingsDoc(
            global_webhook=WebhookDoc(enabled=True, webhook_url=GLOBAL_URL),
            locales={"fr_FR": LocaleDoc(webhook=WebhookDoc(enabled=True, webhook_url="https://example.com/fr"))},
        )
        await store.set(SETTINGS_KEY, doc.model_dump(mode="json"))

        runtime = await repository.load()

        assert runtime.locale_webhooks["fr_FR"].url == ""


class TestSave:
    """Tests for saving the document."""

    @pytest.mark.asyncio
    async def test_rejects_non_slack_url(self, repository: SettingsRepository) -> None:
        """Test that only Slack incoming webhooks are accepted."""
        doc = NotificationSettingsDoc(global_webhook=WebhookDoc(webhook_url="https://example.com/hook"))

        with pytest.raises(ValueError, match="hooks.slack.com"):
            await repository.save_document(doc)

    @pytest.mark.asyncio
    async def test_round_trip_without_key(self, repository: SettingsRepository) -> None:
        """Test that without an encryption key URLs are stored as given."""
        await repository.save_document(
            NotificationSettingsDoc(global_webhook=WebhookDoc(enabled=True, webhook_url=GLOBAL_URL)),
        )

        doc = await repository.get_document()

        assert doc.global_webhook is not None
        assert doc.global_webhook.webhook_url == GLOBAL_URL

    @pytest.mark.asyncio
    async def test_urls_encrypted_at_rest(self, store: InMemoryKeyValueStore, settings: Settings) -> None:
        """Test Fernet encryption of stored URLs and decryption on load."""
        repository = SettingsRepository(store, _with_new_key(settings))

        await repository.save_document(
            NotificationSettingsDoc(
                global_webhook=WebhookDoc(enabled=True, webhook_url=GLOBAL_URL),
                locales={"fr_FR": LocaleDoc(webhook=WebhookDoc(enabled=True, webhook_url=FRENCH_URL))},
            ),
        )

        raw = await store.get(SETTINGS_KEY)
        assert raw["global_webhook"]["webhook_url"].startswith("gAAAA")
        assert GLOBAL_URL not in str(raw)

        runtime = await repository.load()
        assert runtime.global_webhook is not None
        assert runtime.global_webhook.url == GLOBAL_URL
        assert runtime.locale_webhooks["fr_FR"].url == FRENCH_URL

    @pytest.mark.asyncio
    async def test_encrypted_url_with_wrong_key(self, store: InMemoryKeyValueStore, settings: Settings) -> None:
        """Test that URLs encrypted with another key resolve to nothing."""
        first = SettingsRepository(store, _with_new_key(settings))
        await first.save_document(
            NotificationSettingsDoc(global_webhook=WebhookDoc(enabled=True, webhook_url=GLOBAL_URL)),
        )
        second = SettingsRepository(store, _with_new_key(settings))

        runtime = await second.load()

        assert runtime.global_webhook is not None
        assert runtime.global_webhook.url == ""
