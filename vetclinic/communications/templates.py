from vetclinic.adapters.datetime_helpers import date_to_long, time_to_12h
from vetclinic.domain.models import Appointment, Contact

CLINIC_SIGNATURE = "Your veterinary clinic team"


def _when(appointment: Appointment) -> str:
    return f"{date_to_long(appointment.date)} at {time_to_12h(appointment.start_time)}"


def _greeting(contact: Contact) -> str:
    return f"Hello {contact.name}," if contact.name else "Hello,"


def reminder_message(appointment: Appointment, contact: Contact, lead_hours: int) -> tuple[str, str]:
    """Subject and body of the reminder sent ``lead_hours`` before the visit."""
    subject = f"Reminder: appointment in {lead_hours} hour{'s' if lead_hours != 1 else ''}"
    body = f"""\
{_greeting(contact)}

This is a reminder of your pet's appointment on {_when(appointment)}.
Please arrive 10 minutes early. If you cannot attend, let us know so we can offer the slot to someone else.

Reference: {appointment.appointment_id}

{CLINIC_SIGNATURE}
"""
    return subject, body


def created_message(appointment: Appointment, contact: Contact) -> tuple[str, str]:
    subject = "Appointment scheduled"
    emergency = "\nThis booking is marked as an emergency." if appointment.is_emergency else ""
    price = f"\nEstimated price: {appointment.price}" if appointment.price is not None else ""
    body = f"""\
{_greeting(contact)}

Your pet's appointment has been scheduled for {_when(appointment)} \
({appointment.duration_minutes} minutes).{emergency}{price}
Please confirm your attendance before the visit.

Reference: {appointment.appointment_id}

{CLINIC_SIGNATURE}
"""
    return subject, body


def confirmed_message(appointment: Appointment, contact: Contact) -> tuple[str, str]:
    subject = "Appointment confirmed"
    body = f"""\
{_greeting(contact)}

Thank you for confirming. We look forward to seeing you and your pet on {_when(appointment)}.

Reference: {appointment.appointment_id}

{CLINIC_SIGNATURE}
"""
    return subject, body


def cancelled_message(appointment: Appointment, contact: Contact) -> tuple[str, str]:
    subject = "Appointment cancelled"
    reason = f"\nReason: {appointment.cancellation_reason}" if appointment.cancellation_reason else ""
    body = f"""\
{_greeting(contact)}

Your pet's appointment on {_when(appointment)} has been cancelled.{reason}
You can book a new appointment at any time.

Reference: {appointment.appointment_id}

{CLINIC_SIGNATURE}
"""
    return subject, body
