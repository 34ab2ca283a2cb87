"""Change detection between two snapshots of the same project."""

from decimal import Decimal

from .events import (
    Approval,
    ChangeEvent,
    CompletionUpdate,
    Milestone,
    NeedsAttention,
    NewProject,
    NewStrings,
)
from .models import NotificationPolicy, Snapshot

COMPLETION_DELTA_MIN = Decimal(1)


def detect_changes(
    previous: Snapshot | None,
    current: Snapshot,
    policy: NotificationPolicy,
) -> list[ChangeEvent]:
    """Compare two snapshots and return the changes between them.

    The rules run in a fixed order so the output is stable:
    new project, completion update, milestones (ascending), new strings,
    approvals, needs attention.

    Args:
        previous: Last stored snapshot, or None on first observation.
        current: Freshly scraped snapshot.
        policy: Threshold and milestones for the project's locale.

    Returns:
        Ordered list of change events; empty when nothing changed.
    """
    if previous is None:
        return [NewProject(snapshot=current)]

    events: list[ChangeEvent] = []
    prev_pct = previous.completion_pct
    curr_pct = current.completion_pct

    delta = curr_pct - prev_pct
    if abs(delta) >= COMPLETION_DELTA_MIN:
        events.append(CompletionUpdate(previous=previous, curr=current, delta_pct=delta))

    for milestone in sorted(set(policy.milestones)):
        if prev_pct < milestone <= curr_pct:
            events.append(Milestone(curr=current, threshold=milestone))

    added = current.total - previous.total
    if added > 0 and added >= policy.new_strings_threshold:
        events.append(NewStrings(curr=current, previous=previous, count=added))

    approved = current.translated - previous.translated
    if approved > 0:
        events.append(Approval(curr=current, count=approved))

    if current.needs_attention > 0 and current.needs_attention != previous.needs_attention:
        events.append(NeedsAttention(curr=current, previous=previous, count=current.needs_attention))

    return events

