"""Slack message formatter for change events and digests."""

from collections import defaultdict
from datetime import UTC, datetime
from decimal import Decimal
from typing import Any

from polywatch.domain.events import (
    Approval,
    ChangeEvent,
    CompletionUpdate,
    Milestone,
    NeedsAttention,
    NewProject,
    NewStrings,
)
from polywatch.domain.models import DigestQueueItem, ProjectKey, Snapshot

FOOTER = "Polywatch - Translation Monitor"
LINK_LABEL = "Open on translate.wordpress.org"


def format_event(
    event: ChangeEvent,
    key: ProjectKey,
    site_base_url: str,
    translation_set: str = "default",
    now: datetime | None = None,
) -> tuple[str, dict[str, Any]]:
    """Render a change event into Slack text and payload.

    Args:
        event: The change to render.
        key: Watched project key.
        site_base_url: Base URL for project links.
        translation_set: Translation set slug used in links.
        now: Timestamp for the attachment; defaults to the current time.

    Returns:
        Tuple of (plain text, Slack payload with blocks and attachments).

    """
    current = event.current
    header = _header(current, key)
    link = f"<{project_link(site_base_url, key, current, translation_set)}|{LINK_LABEL}>"
    color = "good"

    match event:
        case NewProject():
            body = (
                f"👀 *Now watching a new project!*\n\n{header}\n"
                f"*Completion:* {_pct(current.completion_pct)}% ({current.translated}/{current.total})"
            )
        case CompletionUpdate(delta_pct=delta):
            body = (
                f"📈 *Translation progress update!*\n\n{header}\n"
                f"*Completion:* {_pct(current.completion_pct)}% ({current.translated}/{current.total})\n"
                f"*Change:* {_signed(delta)}%"
            )
            color = "good" if delta > 0 else "warning"
        case Milestone(threshold=threshold):
            body = (
                f"🏁 *Milestone reached: {threshold}%!*\n\n{header}\n"
                f"*Completion:* {_pct(current.completion_pct)}%"
            )
        case NewStrings(count=count):
            body = (
                f"🆕 *New strings detected!*\n\n{header}\n"
                f"*New strings:* {count}\n"
                f"*Total completion:* {_pct(current.completion_pct)}%"
            )
            color = "warning"
        case Approval(count=count):
            body = f"✅ *Recent approvals!*\n\n{header}\n*Approved since last check:* {count}"
        case NeedsAttention():
            body = (
                f"⚠️ *Translation needs attention!*\n\n{header}\n"
                f"*Waiting:* {current.waiting}\n"
                f"*Fuzzy:* {current.fuzzy}\n"
                f"*Completion:* {_pct(current.completion_pct)}%"
            )
            color = "warning"
        case _:
            msg = f"Unsupported change event: {type(event).__name__}"
            raise TypeError(msg)

    text = f"{body}\n\n{link}"
    return text, build_slack_message(text, color, now)


def summarize_event(event: ChangeEvent, key: ProjectKey) -> str:
    """Render a change event as one digest line."""
    current = event.current
    name = _project_name(current, key)
    match event:
        case NewProject():
            detail = f"now watched at {_pct(current.completion_pct)}%"
        case CompletionUpdate(delta_pct=delta):
            detail = f"{_pct(current.completion_pct)}% ({_signed(delta)}%)"
        case Milestone(threshold=threshold):
            detail = f"reached {threshold}%"
        case NewStrings(count=count):
            detail = f"{count} new strings"
        case Approval(count=count):
            detail = f"{count} strings approved"
        case NeedsAttention(count=count):
            detail = f"{count} strings need attention"
        case _:
            msg = f"Unsupported change event: {type(event).__name__}"
            raise TypeError(msg)
    return f"{name} ({key.locale}): {detail}"


def format_digest(
    items: list[DigestQueueItem],
    channel_id: str,
    max_items: int = 20,
    now: datetime | None = None,
) -> tuple[str, dict[str, Any]]:
    """Render queued items into one bulk digest message.

    Items are grouped by project in arrival order. At most ``max_items``
    lines are shown; the rest are summarized in a trailer.
    """
    by_project: dict[ProjectKey, list[DigestQueueItem]] = defaultdict(list)
    for item in items:
        by_project[item.project_key].append(item)

    lines = [
        f"📊 *Translation digest* ({channel_id})",
        f"*Changes:* {len(items)} across {len(by_project)} projects",
        "",
    ]
    shown = 0
    for key, project_items in by_project.items():
        if shown >= max_items:
            break
        lines.append(f"*{key.slug}* ({key.locale}, {key.type.value})")
        for item in project_items:
            if shown >= max_items:
                break
            lines.append(f"   • {item.message}")
            shown += 1
        lines.append("")

    if len(items) > shown:
        lines.append(f"_…and {len(items) - shown} more_")

    text = "\n".join(lines).rstrip()
    return text, build_slack_message(text, "good", now)


def format_test_message(status: str = "OK", now: datetime | None = None) -> tuple[str, dict[str, Any]]:
    """Render the notifier self-test message."""
    now = now or datetime.now(UTC)
    text = f"🧪 *Polywatch test message*\n\n*Status:* {status}\n*Time:* {now.strftime('%Y-%m-%d %H:%M:%S %Z')}"
    return text, build_slack_message(text, "good", now)


def project_link(
    site_base_url: str,
    key: ProjectKey,
    snapshot: Snapshot | None = None,
    translation_set: str = "default",
) -> str:
    """Link to the project page, using the resolved type when known."""
    project_type = snapshot.project_type if snapshot and snapshot.project_type else key.type
    return f"{site_base_url.rstrip('/')}/{project_type.segment}/{key.slug}/{key.locale}/{translation_set}/"


def build_slack_message(text: str, color: str = "good", now: datetime | None = None) -> dict[str, Any]:
    """Wrap text into a Slack payload with blocks and a footer attachment."""
    now = now or datetime.now(UTC)
    return {
        "text": text,
        "blocks": [
            {
                "type": "section",
                "text": {"type": "mrkdwn", "text": text},
            },
        ],
        "attachments": [
            {
                "color": color,
                "footer": FOOTER,
                "ts": int(now.timestamp()),
            },
        ],
    }


def _header(snapshot: Snapshot, key: ProjectKey) -> str:
    locale_name = snapshot.locale_name or key.locale
    return f"*Project:* {_project_name(snapshot, key)}\n*Locale:* {locale_name}"


def _project_name(snapshot: Snapshot, key: ProjectKey) -> str:
    return snapshot.project_name or key.slug


def _pct(value: Decimal) -> str:
    return format(value.normalize(), "f")


def _signed(value: Decimal) -> str:
    return format(value.normalize(), "+f")
