"""Domain enumerations."""

from enum import StrEnum


class ProjectType(StrEnum):
    """Kinds of projects hosted on translate.wordpress.org."""

    CORE = "core"
    PLUGIN = "plugin"
    THEME = "theme"
    META = "meta"
    APP = "app"

    @property
    def segment(self) -> str:
        """Path segment used by the remote API for this project type."""
        match self:
            case ProjectType.CORE:
                return "wp"
            case ProjectType.PLUGIN:
                return "wp-plugins"
            case ProjectType.THEME:
                return "wp-themes"
            case ProjectType.META:
                return "meta"
            case ProjectType.APP:
                return "apps"


class ChangeType(StrEnum):
    """Types of change events emitted by the change detector."""

    NEW_PROJECT = "new_project"
    COMPLETION_UPDATE = "completion_update"
    MILESTONE = "milestone"
    NEW_STRINGS = "new_strings"
    APPROVAL = "approval"
    NEEDS_ATTENTION = "needs_attention"


class NotificationMode(StrEnum):
    """How a webhook channel receives events."""

    IMMEDIATE = "immediate"
    DIGEST = "digest"


class DigestKind(StrEnum):
    """Digest flush schedule kinds."""

    INTERVAL = "interval"
    FIXED_TIME = "fixed_time"


class ScrapeErrorKind(StrEnum):
    """Closed set of scrape failure outcomes."""

    BACKOFF_ACTIVE = "backoff_active"
    TRANSPORT = "transport_error"
    HTTP_STATUS = "http_status_error"
    DECODE = "decode_error"
    NO_TRANSLATION_SET = "no_translation_set"
    SEGMENT_UNRESOLVED = "segment_unresolved"


class SurveillanceIssue(StrEnum):
    """User-visible reasons for a refused or failed operation."""

    NO_PROJECTS = "no_projects"
    API_ERROR = "api_error"
    SLACK_NOT_READY = "slack_not_ready"
    SLACK_SEND_ERROR = "slack_send_error"
