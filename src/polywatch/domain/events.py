"""Change events emitted by the change detector."""

from dataclasses import dataclass
from decimal import Decimal
from typing import ClassVar

from .enums import ChangeType
from .models import Snapshot


@dataclass(frozen=True, slots=True, kw_only=True)
class ChangeEvent:
    """Base class for all change events."""

    change_type: ClassVar[ChangeType]

    @property
    def current(self) -> Snapshot:
        """Snapshot the event was computed from."""
        raise NotImplementedError


@dataclass(frozen=True, slots=True, kw_only=True)
class NewProject(ChangeEvent):
    """First observation of a watched project."""

    change_type: ClassVar[ChangeType] = ChangeType.NEW_PROJECT

    snapshot: Snapshot

    @property
    def current(self) -> Snapshot:
        return self.snapshot


@dataclass(frozen=True, slots=True, kw_only=True)
class CompletionUpdate(ChangeEvent):
    """Completion percentage moved by at least one point."""

    change_type: ClassVar[ChangeType] = ChangeType.COMPLETION_UPDATE

    previous: Snapshot
    curr: Snapshot
    delta_pct: Decimal

    @property
    def current(self) -> Snapshot:
        return self.curr


@dataclass(frozen=True, slots=True, kw_only=True)
class Milestone(ChangeEvent):
    """Completion crossed a configured milestone."""

    change_type: ClassVar[ChangeType] = ChangeType.MILESTONE

    curr: Snapshot
    threshold: int

    @property
    def current(self) -> Snapshot:
        return self.curr


@dataclass(frozen=True, slots=True, kw_only=True)
class NewStrings(ChangeEvent):
    """The project gained new source strings."""

    change_type: ClassVar[ChangeType] = ChangeType.NEW_STRINGS

    curr: Snapshot
    previous: Snapshot
    count: int

    @property
    def current(self) -> Snapshot:
        return self.curr


@dataclass(frozen=True, slots=True, kw_only=True)
class Approval(ChangeEvent):
    """More strings were approved since the last check."""

    change_type: ClassVar[ChangeType] = ChangeType.APPROVAL

    curr: Snapshot
    count: int

    @property
    def current(self) -> Snapshot:
        return self.curr


@dataclass(frozen=True, slots=True, kw_only=True)
class NeedsAttention(ChangeEvent):
    """Strings waiting for review or fuzzy changed and are non-zero."""

    change_type: ClassVar[ChangeType] = ChangeType.NEEDS_ATTENTION

    curr: Snapshot
    previous: Snapshot
    count: int

    @property
    def current(self) -> Snapshot:
        return self.curr
