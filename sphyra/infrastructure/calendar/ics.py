from datetime import datetime, timedelta
from zoneinfo import ZoneInfo

from icalendar import Alarm, Calendar, Event, vCalAddress, vText

from ...application.ports.appointments_repo import AppointmentDetails


def generate_ics(details: AppointmentDetails, organizer_email: str, tz_name: str = "Europe/Rome") -> str:
    """iCalendar invitation for an appointment, attached to reminder emails."""
    appointment = details.appointment
    tz = ZoneInfo(tz_name)

    cal = Calendar()
    cal.add("prodid", "-//Sphyra Wellness//Appointment Reminder//IT")
    cal.add("version", "2.0")
    cal.add("calscale", "GREGORIAN")
    cal.add("method", "REQUEST")

    event = Event()
    event.add("uid", f"{appointment.id}@sphyrawellness.com")
    event.add("dtstamp", datetime.utcnow().replace(tzinfo=ZoneInfo("UTC")))
    event.add("dtstart", _combine(appointment.date, appointment.start_time, tz))
    event.add("dtend", _combine(appointment.date, appointment.end_time, tz))
    event.add("summary", details.service.name)
    event.add("description", "\n".join([
        "Appuntamento presso Sphyra Wellness",
        f"Servizio: {details.service.name}",
        f"Operatore: {details.staff.full_name}",
        f"Durata: {details.service.duration} minuti",
        "",
        "Per qualsiasi informazione contattaci direttamente.",
    ]))
    event.add("location", "Sphyra Wellness")
    event.add("status", "CONFIRMED")
    event.add("sequence", 0)

    organizer = vCalAddress(f"mailto:{organizer_email}")
    organizer.params["cn"] = vText("Sphyra Wellness")
    event["organizer"] = organizer

    if details.customer.email:
        attendee = vCalAddress(f"mailto:{details.customer.email}")
        attendee.params["cn"] = vText(details.customer.full_name)
        attendee.params["rsvp"] = vText("TRUE")
        event.add("attendee", attendee, encode=0)

    alarm = Alarm()
    alarm.add("action", "DISPLAY")
    alarm.add("description", "Promemoria: Appuntamento tra 1 ora")
    alarm.add("trigger", timedelta(hours=-1))
    event.add_component(alarm)

    cal.add_component(event)
    return cal.to_ical().decode("utf-8")


def _combine(day, hhmm: str, tz: ZoneInfo) -> datetime:
    hours, minutes = (int(part) for part in hhmm.split(":")[:2])
    return datetime(day.year, day.month, day.day, hours, minutes, tzinfo=tz)
