# lawnly/domain/booking_state_machine.py
"""
Lifecycle graphs for bookings, disputes and alternative suggestions.

Every status write goes through ``transition``/``assert_transition`` so
that an illegal edge fails here instead of at whichever call site tried
it.
"""

from typing import Dict, FrozenSet, Mapping, TypeVar

from ..core.exceptions import InvalidTransitionException
from ..models.alternative_suggestion import SuggestionStatus
from ..models.booking import BookingStatus
from ..models.dispute import DisputeStatus

S = TypeVar("S", BookingStatus, DisputeStatus, SuggestionStatus)

BOOKING_TRANSITIONS: Mapping[BookingStatus, FrozenSet[BookingStatus]] = {
    BookingStatus.PENDING_ADDRESS_VERIFICATION: frozenset(
        {BookingStatus.PRICE_CHANGE_PENDING, BookingStatus.PENDING, BookingStatus.CANCELLED}
    ),
    BookingStatus.PRICE_CHANGE_PENDING: frozenset(
        {BookingStatus.PENDING, BookingStatus.CANCELLED}
    ),
    BookingStatus.PENDING: frozenset({BookingStatus.CONFIRMED, BookingStatus.CANCELLED}),
    BookingStatus.CONFIRMED: frozenset(
        {
            BookingStatus.COMPLETED_PENDING_VERIFICATION,
            BookingStatus.COMPLETED_WITH_ISSUES,
            BookingStatus.CANCELLED,
        }
    ),
    BookingStatus.COMPLETED_PENDING_VERIFICATION: frozenset(
        {BookingStatus.COMPLETED, BookingStatus.DISPUTED}
    ),
    BookingStatus.COMPLETED_WITH_ISSUES: frozenset(
        {BookingStatus.COMPLETED, BookingStatus.CANCELLED}
    ),
    # Late dispute filing is the only way out of completed
    BookingStatus.COMPLETED: frozenset({BookingStatus.POST_PAYMENT_DISPUTE}),
    BookingStatus.DISPUTED: frozenset({BookingStatus.COMPLETED}),
    BookingStatus.POST_PAYMENT_DISPUTE: frozenset({BookingStatus.COMPLETED}),
    BookingStatus.CANCELLED: frozenset(),
}

DISPUTE_TRANSITIONS: Mapping[DisputeStatus, FrozenSet[DisputeStatus]] = {
    DisputeStatus.PENDING: frozenset({DisputeStatus.UNDER_REVIEW, DisputeStatus.RESOLVED}),
    DisputeStatus.UNDER_REVIEW: frozenset({DisputeStatus.RESOLVED}),
    DisputeStatus.RESOLVED: frozenset(),
}

SUGGESTION_TRANSITIONS: Mapping[SuggestionStatus, FrozenSet[SuggestionStatus]] = {
    SuggestionStatus.PENDING: frozenset({SuggestionStatus.ACCEPTED, SuggestionStatus.DECLINED}),
    SuggestionStatus.ACCEPTED: frozenset(),
    SuggestionStatus.DECLINED: frozenset(),
}

_GRAPHS: Dict[type, Mapping] = {
    BookingStatus: BOOKING_TRANSITIONS,
    DisputeStatus: DISPUTE_TRANSITIONS,
    SuggestionStatus: SUGGESTION_TRANSITIONS,
}

_ENTITY_NAMES: Dict[type, str] = {
    BookingStatus: "booking",
    DisputeStatus: "dispute",
    SuggestionStatus: "suggestion",
}

TERMINAL_BOOKING_STATUSES: FrozenSet[BookingStatus] = frozenset(
    {BookingStatus.COMPLETED, BookingStatus.CANCELLED}
)


def can_transition(current: S, target: S) -> bool:
    graph = _GRAPHS[type(target)]
    return target in graph.get(type(target)(current), frozenset())


def assert_transition(current: str, target: S) -> S:
    """
    Validate ``current -> target`` against the graph for ``target``'s enum.

    ``current`` may be the raw string stored on the row.

    Raises:
        InvalidTransitionException: if the edge does not exist or
            ``current`` is not a known status
    """
    enum_cls = type(target)
    entity = _ENTITY_NAMES[enum_cls]
    try:
        current_status = enum_cls(current)
    except ValueError:
        raise InvalidTransitionException(entity, str(current), target.value)
    if not can_transition(current_status, target):
        raise InvalidTransitionException(entity, current_status.value, target.value)
    return target


def transition(entity: object, target: S) -> None:
    """Validate and apply a status change to any row with a ``status`` column."""
    assert_transition(getattr(entity, "status"), target)
    setattr(entity, "status", target.value)


def allowed_targets(current: BookingStatus) -> FrozenSet[BookingStatus]:
    return BOOKING_TRANSITIONS.get(current, frozenset())
