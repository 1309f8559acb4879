"""Page lifecycle: which states a stored page can move between."""

from enum import Enum
from typing import Dict, FrozenSet, Optional

from .errors import InvalidTransition
from .models import PageRejection, PageSummary


class PageState(str, Enum):
    ABSENT = "absent"
    GENERATING = "generating"
    REJECTED_BY_GATE = "rejected_by_gate"
    PUBLISHED = "published"
    STALE = "stale"


TRANSITIONS: Dict[PageState, FrozenSet[PageState]] = {
    PageState.ABSENT: frozenset({PageState.GENERATING}),
    PageState.GENERATING: frozenset({PageState.PUBLISHED, PageState.REJECTED_BY_GATE}),
    # Only an explicit regenerate request (row deletion) leaves this state
    PageState.REJECTED_BY_GATE: frozenset({PageState.ABSENT}),
    PageState.PUBLISHED: frozenset({PageState.STALE, PageState.ABSENT}),
    PageState.STALE: frozenset({PageState.GENERATING, PageState.ABSENT}),
}


def can_transition(current: PageState, target: PageState) -> bool:
    return target in TRANSITIONS[current]


def transition(current: PageState, target: PageState) -> PageState:
    """Return ``target`` if the move is legal, otherwise raise InvalidTransition."""
    if not can_transition(current, target):
        raise InvalidTransition(current.value, target.value)
    return target


def state_of(page: Optional[PageSummary], rejection: Optional[PageRejection] = None) -> PageState:
    """
    Derive the persisted state of a page from its stored row and rejection record.

    Publishing clears any rejection, so a rejection on record always describes
    the latest attempt, even when an older stale row is still stored.
    """
    if rejection is not None:
        return PageState.REJECTED_BY_GATE
    if page is not None and page.summary_markdown is not None:
        return PageState.STALE if page.is_stale else PageState.PUBLISHED
    return PageState.ABSENT
