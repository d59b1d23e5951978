import datetime as dt
from collections.abc import Callable
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from vetclinic.domain.exceptions import InvalidTransitionError
from vetclinic.domain.models import Appointment, AppointmentState


class AppointmentAction(str, Enum):
    CONFIRM = "confirm"
    CANCEL = "cancel"
    ATTEND = "attend"


class Transition(BaseModel):
    """Outcome of applying an action to an appointment.

    ``changes`` holds the field updates to persist; it is empty for idempotent
    no-ops, in which case ``note`` explains why nothing happened.
    """

    model_config = ConfigDict(frozen=True)

    action: AppointmentAction
    from_state: AppointmentState
    to_state: AppointmentState
    changes: dict[str, Any] = Field(default_factory=dict)
    note: str | None = None

    @property
    def state_changed(self) -> bool:
        return self.from_state != self.to_state

    @property
    def is_noop(self) -> bool:
        return not self.changes


_Handler = Callable[[Appointment, dt.datetime, str | None], Transition]


def _move(
    appointment: Appointment, action: AppointmentAction, to: AppointmentState, changes: dict[str, Any]
) -> Transition:
    return Transition(
        action=action,
        from_state=appointment.state,
        to_state=to,
        changes={"state": to, **changes},
    )


def _stay(appointment: Appointment, action: AppointmentAction, note: str) -> Transition:
    return Transition(
        action=action, from_state=appointment.state, to_state=appointment.state, note=note
    )


def _confirm(appointment: Appointment, now: dt.datetime, reason: str | None) -> Transition:
    return _move(appointment, AppointmentAction.CONFIRM, AppointmentState.CONFIRMED, {"confirmed_at": now})


def _confirm_again(appointment: Appointment, now: dt.datetime, reason: str | None) -> Transition:
    return _stay(appointment, AppointmentAction.CONFIRM, "appointment already confirmed")


def _cancel(appointment: Appointment, now: dt.datetime, reason: str | None) -> Transition:
    return _move(
        appointment,
        AppointmentAction.CANCEL,
        AppointmentState.CANCELLED,
        {"cancelled_at": now, "cancellation_reason": reason},
    )


def _cancel_again(appointment: Appointment, now: dt.datetime, reason: str | None) -> Transition:
    return _stay(appointment, AppointmentAction.CANCEL, "appointment already cancelled")


def _attend(appointment: Appointment, now: dt.datetime, reason: str | None) -> Transition:
    return _move(
        appointment, AppointmentAction.ATTEND, AppointmentState.ATTENDED, {"attendance_started_at": now}
    )


def _finish_attendance(appointment: Appointment, now: dt.datetime, reason: str | None) -> Transition:
    if appointment.attendance_ended_at is not None:
        return _stay(appointment, AppointmentAction.ATTEND, "attendance already finished")
    return Transition(
        action=AppointmentAction.ATTEND,
        from_state=appointment.state,
        to_state=appointment.state,
        changes={"attendance_ended_at": now},
    )


def _rejecting(action: AppointmentAction, reason: str) -> _Handler:
    def handler(appointment: Appointment, now: dt.datetime, payload: str | None) -> Transition:
        raise InvalidTransitionError(appointment.state.name, action.value, reason)

    return handler


S = AppointmentState
A = AppointmentAction

TRANSITIONS: dict[tuple[AppointmentState, AppointmentAction], _Handler] = {
    (S.SCHEDULED, A.CONFIRM): _confirm,
    (S.SCHEDULED, A.CANCEL): _cancel,
    (S.SCHEDULED, A.ATTEND): _rejecting(A.ATTEND, "must confirm before attending"),
    (S.CONFIRMED, A.CONFIRM): _confirm_again,
    (S.CONFIRMED, A.ATTEND): _attend,
    (S.CONFIRMED, A.CANCEL): _cancel,
    (S.ATTENDED, A.ATTEND): _finish_attendance,
    (S.ATTENDED, A.CONFIRM): _rejecting(A.CONFIRM, "appointment already attended"),
    (S.ATTENDED, A.CANCEL): _rejecting(A.CANCEL, "appointment already attended"),
    (S.CANCELLED, A.CANCEL): _cancel_again,
    (S.CANCELLED, A.CONFIRM): _rejecting(A.CONFIRM, "appointment is cancelled"),
    (S.CANCELLED, A.ATTEND): _rejecting(A.ATTEND, "appointment is cancelled"),
}


def plan_transition(
    appointment: Appointment,
    action: AppointmentAction,
    now: dt.datetime,
    reason: str | None = None,
) -> Transition:
    """Look up what ``action`` does to ``appointment`` without changing it.

    Raises:
        InvalidTransitionError: If the action is not allowed from the current state.
    """
    return TRANSITIONS[(appointment.state, action)](appointment, now, reason)


def apply_transition(appointment: Appointment, transition: Transition) -> Appointment:
    """Return the appointment with the transition's changes and a bumped version."""
    if transition.is_noop:
        return appointment
    return appointment.model_copy(
        update={**transition.changes, "version": appointment.version + 1}
    )
