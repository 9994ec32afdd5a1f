"""
Note analysis state machine.

The allowed transitions of a note's ``ai_status``. Repository writes pair
each transition with a ``WHERE ai_status = <expected>`` guard, so a
transition that lost a race simply matches no rows.
"""

from clientpulse.features.note_analysis.domain.models import NoteStatus

ALLOWED_TRANSITIONS: dict[NoteStatus, frozenset[NoteStatus]] = {
    NoteStatus.PENDING: frozenset({NoteStatus.PROCESSING}),
    # processing -> processing hands the note to the next queue-level attempt
    NoteStatus.PROCESSING: frozenset(
        {NoteStatus.PROCESSING, NoteStatus.COMPLETED, NoteStatus.FAILED}
    ),
    NoteStatus.COMPLETED: frozenset(),
    NoteStatus.FAILED: frozenset({NoteStatus.PENDING}),
}

# Statuses a delivered job may still act on
ACTIONABLE_STATUSES = frozenset({NoteStatus.PENDING, NoteStatus.PROCESSING})


class InvalidNoteTransitionError(ValueError):
    def __init__(self, current: NoteStatus, target: NoteStatus):
        super().__init__(f"Note cannot move from {current.value} to {target.value}")
        self.current = current
        self.target = target


def can_transition(current: NoteStatus, target: NoteStatus) -> bool:
    return target in ALLOWED_TRANSITIONS.get(current, frozenset())


def ensure_transition(current: NoteStatus, target: NoteStatus) -> None:
    """Raise InvalidNoteTransitionError unless current -> target is allowed."""
    if not can_transition(current, target):
        raise InvalidNoteTransitionError(current, target)
