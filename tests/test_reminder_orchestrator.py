from datetime import date, timedelta

import pytest
from sqlalchemy import event
from sqlalchemy.exc import OperationalError

from sphyra.application.ports.notification_channel import SendResult
from sphyra.application.services.reminder_orchestrator import ReminderOrchestrator, check_recipient
from sphyra.application.services.settings_cache import SettingsCache
from sphyra.application.services.token_service import MIN_TOKEN_LENGTH, TokenService
from sphyra.exceptions import ConsentMissing, ContactMissing, PhoneFormatInvalid
from sphyra.infrastructure.notifications.phone import normalize_phone_number
from sphyra.infrastructure.persistence.sqlalchemy.repositories.appointments_repository_sql import SqlAppointmentsRepository
from sphyra.infrastructure.persistence.sqlalchemy.repositories.reminder_repository_sql import SqlReminderRepository

# clock fixture: 2025-12-20 09:00 in Rome
TOMORROW = date(2025, 12, 21)


class FakeChannel:
    def __init__(self, fail_for=(), validate=None):
        self.sent = []
        self.fail_for = set(fail_for)
        self.validate = validate

    def validate_recipient(self, recipient):
        return self.validate(recipient) if self.validate else recipient

    def send(self, recipient, message):
        self.sent.append((recipient, message))
        if message.appointment_id in self.fail_for:
            return SendResult(success=False, error="Gateway timeout - smartphone might be offline or unreachable")
        return SendResult(success=True, message_id=f"msg-{len(self.sent)}")


class FakeReminderRepo:
    def __init__(self):
        self.rows = []

    def create(self, appointment_id, type, scheduled_for, sent, sent_at=None, error_message=None):
        row = {
            "id": f"rem-{len(self.rows) + 1}",
            "appointment_id": appointment_id,
            "type": type,
            "scheduled_for": scheduled_for,
            "sent": sent,
            "sent_at": sent_at,
            "error_message": error_message,
        }
        self.rows.append(row)
        return _Row(row)

    def list(self, appointment_id=None, limit=100):
        return [_Row(r) for r in self.rows if appointment_id in (None, r["appointment_id"])][:limit]


class _Row:
    def __init__(self, data):
        self.__dict__.update(data)


class FakeSettingsStore:
    def __init__(self, values=None):
        self.values = values or {}

    def get_values(self, keys):
        return dict(self.values)


@pytest.fixture
def email():
    return FakeChannel()


@pytest.fixture
def sms():
    return FakeChannel(validate=normalize_phone_number)


@pytest.fixture
def reminders():
    return FakeReminderRepo()


@pytest.fixture
def orchestrator(appointments_repo, reminders, email, sms, hasher, clock):
    return ReminderOrchestrator(
        appointments=appointments_repo,
        reminders=reminders,
        tokens=TokenService(repo=appointments_repo, hasher=hasher, clock=clock),
        settings_cache=SettingsCache(FakeSettingsStore(), clock=clock),
        channels={"email": email, "sms": sms},
        frontend_url="https://app.sphyrawellness.com/",
        clock=clock,
    )


def test_due_appointments_for_tomorrow(appointments_repo, make_details, orchestrator):
    appointments_repo.add(make_details("a1", day=TOMORROW))
    appointments_repo.add(make_details("a2", day=TOMORROW, status="confirmed"))
    appointments_repo.add(make_details("a3", day=TOMORROW, status="cancelled"))
    appointments_repo.add(make_details("a4", day=TOMORROW, reminder_sent=True))
    appointments_repo.add(make_details("a5", day=TOMORROW + timedelta(days=1)))

    due = orchestrator.get_appointments_needing_reminders()

    assert sorted(d.appointment.id for d in due) == ["a1", "a2"]


def test_days_before_setting_moves_target_date(appointments_repo, make_details, orchestrator):
    orchestrator.settings_cache.store.values["reminderDaysBefore"] = 2
    appointments_repo.add(make_details("a1", day=TOMORROW))
    appointments_repo.add(make_details("a2", day=TOMORROW + timedelta(days=1)))
    assert [d.appointment.id for d in orchestrator.get_appointments_needing_reminders()] == ["a2"]


def test_email_scenario_end_to_end(appointments_repo, make_details, orchestrator, reminders, email):
    appointments_repo.add(make_details("a1", day=TOMORROW, sms_consent=False))

    batch = orchestrator.send_all_due_reminders()

    assert (batch.total, batch.sent, batch.failed) == (1, 1, 0)
    assert len(reminders.rows) == 1
    row = reminders.rows[0]
    assert row["sent"] is True and row["type"] == "email" and row["sent_at"] is not None
    assert appointments_repo.appointment("a1").reminder_sent is True

    recipient, message = email.sent[0]
    assert recipient == "giulia.rossi@example.com"
    prefix = "https://app.sphyrawellness.com/confirm-appointment/a1/"
    assert message.confirmation_link.startswith(prefix)
    assert len(message.confirmation_link[len(prefix):]) >= MIN_TOKEN_LENGTH
    assert message.appointment_date == "domenica 21 dicembre 2025"
    assert message.service_name == "Massaggio Rilassante"
    assert message.staff_name == "Marco Bianchi"


def test_sms_consent_gate(appointments_repo, make_details, orchestrator, reminders, sms):
    appointments_repo.add(make_details("a1", sms_consent=False))

    result = orchestrator.send_reminder_for_appointment("a1", "sms")

    assert result.success is False
    assert "consented" in result.error
    assert sms.sent == []
    assert appointments_repo.token_writes == 0
    assert reminders.rows[0]["error_message"] == "Customer has not consented to SMS reminders (GDPR)"
    assert reminders.rows[0]["sent"] is False


def test_missing_phone(appointments_repo, make_details, orchestrator, sms):
    appointments_repo.add(make_details("a1", phone=None))
    result = orchestrator.send_reminder_for_appointment("a1", "sms")
    assert result.success is False
    assert result.error == "Customer phone not found (Giulia Rossi)"
    assert sms.sent == []
    assert appointments_repo.token_writes == 0


def test_invalid_phone_checked_before_token(appointments_repo, make_details, orchestrator, reminders, sms):
    appointments_repo.add(make_details("a1", phone="12"))
    result = orchestrator.send_reminder_for_appointment("a1", "sms")
    assert result.success is False
    assert "Invalid phone number format" in result.error
    assert sms.sent == []
    assert appointments_repo.token_writes == 0
    assert len(reminders.rows) == 1


def test_sms_recipient_is_normalized(appointments_repo, make_details, orchestrator, sms):
    appointments_repo.add(make_details("a1", phone="333 123 4567"))
    result = orchestrator.send_reminder_for_appointment("a1", "sms")
    assert result.success is True
    assert sms.sent[0][0] == "+393331234567"


def test_channel_failure_leaves_appointment_due(appointments_repo, make_details, orchestrator, reminders, email):
    appointments_repo.add(make_details("a1", day=TOMORROW))
    email.fail_for.add("a1")

    result = orchestrator.send_reminder_for_appointment("a1", "email")

    assert result.success is False
    assert result.reminder_id == "rem-1"
    assert appointments_repo.appointment("a1").reminder_sent is False
    assert reminders.rows[0]["sent"] is False
    assert reminders.rows[0]["error_message"].startswith("Gateway timeout")
    assert [d.appointment.id for d in orchestrator.get_appointments_needing_reminders()] == ["a1"]


def test_unknown_appointment_records_nothing(orchestrator, reminders):
    result = orchestrator.send_reminder_for_appointment("missing", "email")
    assert result.success is False
    assert result.error == "Appointment not found"
    assert reminders.rows == []


def test_unsupported_type(appointments_repo, make_details, orchestrator):
    appointments_repo.add(make_details("a1"))
    result = orchestrator.send_reminder_for_appointment("a1", "fax")
    assert result.success is False


def test_batch_accounting(appointments_repo, make_details, orchestrator, email):
    for i in range(5):
        appointments_repo.add(make_details(f"a{i}", day=TOMORROW))
    email.fail_for.update({"a1", "a3"})

    batch = orchestrator.send_all_due_reminders()

    assert (batch.total, batch.sent, batch.failed) == (5, 3, 2)
    assert len(batch.results) == 5
    assert [r.appointment_id for r in batch.results if not r.success] == ["a1", "a3"]


def test_batch_survives_repository_errors(appointments_repo, make_details, orchestrator):
    appointments_repo.add(make_details("a1", day=TOMORROW))
    appointments_repo.add(make_details("a2", day=TOMORROW))

    original = appointments_repo.set_confirmation_token

    def flaky(appointment_id, token_hash, expires_at):
        if appointment_id == "a1":
            raise RuntimeError("deadlock detected")
        return original(appointment_id, token_hash, expires_at)

    appointments_repo.set_confirmation_token = flaky
    batch = orchestrator.send_all_due_reminders()
    assert (batch.total, batch.sent, batch.failed) == (2, 1, 1)


def test_batch_falls_back_to_sms(appointments_repo, make_details, orchestrator, email, sms):
    appointments_repo.add(make_details("a1", day=TOMORROW, email=None))

    batch = orchestrator.send_all_due_reminders()

    assert batch.results[0].type == "sms"
    assert batch.sent == 1
    assert email.sent == []


def test_batch_without_any_consent_is_recorded_as_failure(appointments_repo, make_details, orchestrator, reminders):
    appointments_repo.add(make_details("a1", day=TOMORROW, email_consent=False, sms_consent=False))

    batch = orchestrator.send_all_due_reminders()

    assert batch.failed == 1
    assert batch.results[0].type == "email"
    assert reminders.rows[0]["error_message"] == "Customer has not consented to email reminders (GDPR)"


def test_check_recipient_messages(make_details):
    customer = make_details(email=None).customer
    with pytest.raises(ContactMissing):
        check_recipient(customer, "email")
    customer = make_details(email_consent=False).customer
    with pytest.raises(ConsentMissing):
        check_recipient(customer, "email")
    assert check_recipient(make_details().customer, "sms") == "+393331234567"


def test_phone_validation_error_type():
    with pytest.raises(PhoneFormatInvalid):
        normalize_phone_number("not a phone")


def test_ics_attached_to_email_only(appointments_repo, make_details, orchestrator, email, sms):
    calls = []

    def fake_ics(details, organizer, tz_name):
        calls.append((details.appointment.id, organizer, tz_name))
        return "BEGIN:VCALENDAR\r\nEND:VCALENDAR\r\n"

    orchestrator.ics_builder = fake_ics
    appointments_repo.add(make_details("a1"))
    orchestrator.send_reminder_for_appointment("a1", "email")
    orchestrator.send_reminder_for_appointment("a1", "sms")

    assert email.sent[0][1].ics_content.startswith("BEGIN:VCALENDAR")
    assert sms.sent[0][1].ics_content is None
    assert calls == [("a1", "noreply@sphyrawellness.com", "Europe/Rome")]


def test_broken_ics_does_not_block_send(appointments_repo, make_details, orchestrator, email):
    def broken(details, organizer, tz_name):
        raise ValueError("bad time")

    orchestrator.ics_builder = broken
    appointments_repo.add(make_details("a1"))
    assert orchestrator.send_reminder_for_appointment("a1", "email").success is True
    assert email.sent[0][1].ics_content is None


def test_storage_error_does_not_break_rest_of_batch(engine, session, seed_appointment, email, hasher, clock):
    ids = [seed_appointment(TOMORROW) for _ in range(3)]
    appointments = SqlAppointmentsRepository(session)
    orchestrator = ReminderOrchestrator(
        appointments=appointments,
        reminders=SqlReminderRepository(session),
        tokens=TokenService(repo=appointments, hasher=hasher, clock=clock),
        settings_cache=SettingsCache(FakeSettingsStore(), clock=clock),
        channels={"email": email},
        frontend_url="https://app.sphyrawellness.com",
        clock=clock,
    )
    failures = {"left": 1}

    def fail_first_reminder_insert(conn, cursor, statement, parameters, context, executemany):
        if statement.startswith("INSERT INTO reminders") and failures["left"]:
            failures["left"] -= 1
            raise OperationalError(statement, parameters, Exception("database is locked"))

    event.listen(engine, "before_cursor_execute", fail_first_reminder_insert)
    try:
        batch = orchestrator.send_all_due_reminders()
    finally:
        event.remove(engine, "before_cursor_execute", fail_first_reminder_insert)

    assert len(email.sent) == 3
    assert (batch.total, batch.sent, batch.failed) == (3, 2, 1)
    failed = [r for r in batch.results if not r.success]
    assert failed[0].error.startswith("Reminder sent but not recorded")
    # The unrecorded one is still due, the others are not
    still_due = [d.appointment.id for d in orchestrator.get_appointments_needing_reminders()]
    assert still_due == [failed[0].appointment_id]
    assert set(ids) == {r.appointment_id for r in batch.results}
    assert len(SqlReminderRepository(session).list()) == 2
