# Reminder message templates (Italian, the studio's customer language)
from datetime import date
from html import escape

from ..application.ports.notification_channel import ReminderMessage

STUDIO_NAME = "Sphyra Wellness"

_WEEKDAYS = ["lunedì", "martedì", "mercoledì", "giovedì", "venerdì", "sabato", "domenica"]
_MONTHS = [
    "gennaio", "febbraio", "marzo", "aprile", "maggio", "giugno",
    "luglio", "agosto", "settembre", "ottobre", "novembre", "dicembre",
]


def format_appointment_date(value: date) -> str:
    """e.g. giovedì 21 dicembre 2025"""
    return f"{_WEEKDAYS[value.weekday()]} {value.day} {_MONTHS[value.month - 1]} {value.year}"


def reminder_email_subject(message: ReminderMessage) -> str:
    return f"Promemoria Appuntamento - {message.appointment_date}"


def reminder_email_text(message: ReminderMessage) -> str:
    return "\n".join([
        f"Gentile {message.customer_name},",
        "",
        f"Ti ricordiamo che hai un appuntamento presso {STUDIO_NAME}.",
        "",
        "DETTAGLI APPUNTAMENTO:",
        f"Data: {message.appointment_date}",
        f"Orario: {message.appointment_time}",
        f"Servizio: {message.service_name}",
        f"Operatore: {message.staff_name}",
        "",
        "Per confermare la tua presenza, clicca sul link seguente:",
        message.confirmation_link,
        "",
        "Se non puoi presentarti, ti preghiamo di contattarci il prima possibile.",
        "",
        "A presto,",
        f"Il Team di {STUDIO_NAME}",
        "",
        "Questa è una email automatica, ti preghiamo di non rispondere.",
    ])


def reminder_email_html(message: ReminderMessage) -> str:
    rows = [
        ("Data", message.appointment_date),
        ("Orario", message.appointment_time),
        ("Servizio", message.service_name),
        ("Operatore", message.staff_name),
    ]
    details = "\n".join(
        f'<tr><td style="color:#6b7280;font-weight:600;padding:6px 12px 6px 0">{label}:</td>'
        f'<td style="color:#111827;font-weight:500">{escape(value)}</td></tr>'
        for label, value in rows
    )
    link = escape(message.confirmation_link, quote=True)
    return f"""<!DOCTYPE html>
<html lang="it">
<head><meta charset="UTF-8"><title>Promemoria Appuntamento - {STUDIO_NAME}</title></head>
<body style="margin:0;padding:0;font-family:Helvetica,Arial,sans-serif;background:#f4f4f7;color:#333">
  <div style="max-width:600px;margin:0 auto;background:#fff">
    <div style="background:#db2777;padding:32px;text-align:center">
      <h1 style="margin:0;color:#fff;font-size:26px">{STUDIO_NAME}</h1>
    </div>
    <div style="padding:32px">
      <p>Gentile <strong>{escape(message.customer_name)}</strong>,</p>
      <p>Ti ricordiamo che hai un appuntamento presso il nostro centro.</p>
      <table style="background:#f9fafb;border-left:4px solid #db2777;padding:16px;margin:24px 0">
{details}
      </table>
      <p style="text-align:center;margin:32px 0">
        <a href="{link}" style="background:#db2777;color:#fff;text-decoration:none;padding:14px 36px;border-radius:8px;font-weight:600">Conferma Appuntamento</a>
      </p>
      <p style="font-size:14px;color:#6b7280">
        Cliccando sul pulsante confermerai la tua presenza all'appuntamento.
        Se non puoi presentarti, ti preghiamo di contattarci il prima possibile.
      </p>
      <p>A presto,<br><strong>Il Team di {STUDIO_NAME}</strong></p>
    </div>
    <div style="background:#f9fafb;padding:24px;text-align:center;font-size:13px;color:#9ca3af">
      Questa è una email automatica, ti preghiamo di non rispondere.
    </div>
  </div>
</body>
</html>"""


def reminder_sms_text(message: ReminderMessage) -> str:
    # First name only, SMS space is scarce
    first_name = message.customer_name.split(" ")[0]
    lines = [
        f"Ciao {first_name}!",
        "",
        "Promemoria appuntamento:",
        f"{message.appointment_date}",
        f"Ore {message.appointment_time}",
        f"{message.service_name}",
        f"Con {message.staff_name}",
        "",
    ]
    if message.confirmation_link:
        lines += [f"Conferma qui: {message.confirmation_link}", ""]
    lines.append(f"{STUDIO_NAME} Lab")
    return "\n".join(lines)
