import datetime as dt
from collections.abc import Iterable

from loguru import logger

from vetclinic.adapters.datetime_helpers import from_minutes, to_minutes
from vetclinic.domain.exceptions import ValidationError
from vetclinic.domain.models import Appointment, Availability, Slot, WorkWindow


def merge_windows(windows: Iterable[WorkWindow]) -> list[tuple[int, int]]:
    """Union overlapping or adjacent windows into disjoint ``(start, end)`` minute ranges.

    The result is sorted by start. ``09:00-11:00`` and ``11:00-12:00`` merge into
    one range; ``09:00-10:00`` and ``10:30-12:00`` stay separate.
    """
    ranges = sorted((to_minutes(w.start_time), to_minutes(w.end_time)) for w in windows)
    merged: list[tuple[int, int]] = []
    for start, end in ranges:
        if merged and start <= merged[-1][1]:
            last_start, last_end = merged[-1]
            merged[-1] = (last_start, max(last_end, end))
        else:
            merged.append((start, end))
    return merged


def windows_for_day(
    veterinarian_id: str, date: dt.date, windows: Iterable[WorkWindow]
) -> list[WorkWindow]:
    weekday = date.weekday()
    return [
        w for w in windows if w.veterinarian_id == veterinarian_id and w.weekday == weekday and w.active
    ]


def compute_availability(
    veterinarian_id: str,
    date: dt.date,
    duration_minutes: int,
    work_windows: Iterable[WorkWindow],
    existing_appointments: Iterable[Appointment],
    *,
    step_minutes: int | None = None,
) -> Availability:
    """Lay out candidate slots for one veterinarian and date.

    Candidates start at each merged window's opening and advance by
    ``step_minutes`` (the service duration when not given). A candidate is only
    produced when the whole service fits before the window closes. Candidates
    that intersect a non-cancelled appointment are returned as occupied.

    Args:
        veterinarian_id: The veterinarian whose calendar is queried.
        date: The calendar day.
        duration_minutes: Length of the service being booked.
        work_windows: Candidate windows; only active ones for ``date``'s weekday count.
        existing_appointments: Appointments to check against; cancelled ones
            and those for other veterinarians or dates are ignored.
        step_minutes: Grid granularity for mixed-duration calendars.

    Returns:
        The availability, with ``has_schedule=False`` and no slots when the
        veterinarian does not work that weekday.

    Raises:
        ValidationError: If the duration or step is not positive.
    """
    if duration_minutes <= 0:
        raise ValidationError("Service duration must be positive", field="duration_minutes")
    step = step_minutes if step_minutes is not None else duration_minutes
    if step <= 0:
        raise ValidationError("Slot step must be positive", field="step_minutes")

    day_windows = windows_for_day(veterinarian_id, date, work_windows)
    if not day_windows:
        logger.debug("No active work windows for vet={} on {}", veterinarian_id, date)
        return Availability(
            veterinarian_id=veterinarian_id,
            date=date,
            duration_minutes=duration_minutes,
            has_schedule=False,
        )

    booked = sorted(
        (
            a
            for a in existing_appointments
            if a.veterinarian_id == veterinarian_id and a.date == date and a.is_active
        ),
        key=lambda a: a.start_time,
    )

    slots: list[Slot] = []
    for window_start, window_end in merge_windows(day_windows):
        start = window_start
        while start + duration_minutes <= window_end:
            end = start + duration_minutes
            blocker = next((a for a in booked if a.overlaps(start, end)), None)
            slots.append(
                Slot(
                    time=from_minutes(start),
                    duration_minutes=duration_minutes,
                    free=blocker is None,
                    reason=None if blocker is None else f"occupied by appointment {blocker.appointment_id}",
                )
            )
            start += step

    logger.debug(
        "Availability for vet={} on {}: {} slot(s), {} free",
        veterinarian_id,
        date,
        len(slots),
        sum(1 for s in slots if s.free),
    )
    return Availability(
        veterinarian_id=veterinarian_id,
        date=date,
        duration_minutes=duration_minutes,
        has_schedule=True,
        slots=tuple(slots),
    )
