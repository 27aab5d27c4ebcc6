import logging
import smtplib
from datetime import datetime

import pytest

from scheduler.core import config
from scheduler.models.appointment import Appointment
from scheduler.services import notifications
from scheduler.services.notifications import AppointmentNotifier, send_email


def build_appointment(**overrides) -> Appointment:
    values = {
        'id': 'appt-1',
        'client_name': 'Ada Lovelace',
        'client_email': 'ada@example.com',
        'start_time': datetime(2030, 1, 7, 9, 0),
        'end_time': datetime(2030, 1, 7, 10, 0),
        'duration_minutes': 60,
        'requires_approval': True,
        'notes': None,
        'consultation_type': 'free',
        'meeting_link': None,
    }
    values.update(overrides)
    return Appointment(**values)


def test_requested_email_goes_to_client_and_admin(notifier, sender) -> None:
    assert notifier.appointment_requested(build_appointment(notes='About invoices')) is True

    assert [message[0] for message in sender.sent] == ['ada@example.com', 'owner@example.com']
    client_subject, client_body = sender.sent[0][1:]
    assert client_subject == 'Consultation booked - awaiting confirmation'
    assert 'Monday 07 January 2030, 09:00 UTC' in client_body
    assert 'Your notes: About invoices' in client_body
    assert 'Appointment id: appt-1' in sender.sent[1][2]


def test_requested_email_skips_admin_when_not_configured(sender, caplog) -> None:
    notifier = AppointmentNotifier(sender=sender, admin_email='')

    with caplog.at_level(logging.WARNING):
        notifier.appointment_requested(build_appointment(requires_approval=False))

    assert [message[0] for message in sender.sent] == ['ada@example.com']
    assert sender.sent[0][1] == 'Your consultation has been scheduled'
    assert 'ADMIN_EMAIL not configured' in caplog.text


def test_approved_email_includes_meeting_link(notifier, sender) -> None:
    notifier.appointment_approved(build_appointment(meeting_link='https://meet.jit.si/consult-appt-1'))

    subject, body = sender.sent[0][1:]
    assert subject == 'Your consultation is confirmed!'
    assert 'Join the call: https://meet.jit.si/consult-appt-1' in body


def test_rejected_email_includes_reason_when_given(notifier, sender) -> None:
    notifier.appointment_rejected(build_appointment(), 'Out of office')
    notifier.appointment_rejected(build_appointment())

    assert 'Reason: Out of office' in sender.sent[0][2]
    assert 'Reason:' not in sender.sent[1][2]


def test_failed_send_is_reported_not_raised(caplog) -> None:
    def failing_sender(to_email, subject, body):
        raise smtplib.SMTPException('boom')

    notifier = AppointmentNotifier(sender=failing_sender, admin_email='')

    with caplog.at_level(logging.ERROR):
        assert notifier.appointment_approved(build_appointment()) is False

    assert 'Email sender raised for ada@example.com' in caplog.text


def test_send_email_skips_without_credentials(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(config, 'SMTP_USER', '')
    monkeypatch.setattr(config, 'SMTP_PASSWORD', '')

    def unexpected_smtp(*args, **kwargs):
        raise AssertionError('SMTP should not be contacted')

    monkeypatch.setattr(notifications.smtplib, 'SMTP', unexpected_smtp)

    assert send_email('ada@example.com', 'Subject', 'Body') is False
    assert send_email('', 'Subject', 'Body') is False


def test_send_email_delivers_over_smtp(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(config, 'SMTP_USER', 'bot@example.com')
    monkeypatch.setattr(config, 'SMTP_PASSWORD', 'secret')
    monkeypatch.setattr(config, 'NOTIFY_FROM', '')
    sessions = []

    class FakeSMTP:
        def __init__(self, host, port, timeout):
            self.host = host
            self.port = port
            self.calls = []
            sessions.append(self)

        def __enter__(self):
            return self

        def __exit__(self, *exc_info):
            return False

        def starttls(self):
            self.calls.append('starttls')

        def login(self, user, password):
            self.calls.append(('login', user, password))

        def sendmail(self, from_addr, to_addrs, message):
            self.calls.append(('sendmail', from_addr, to_addrs))
            self.message = message

    monkeypatch.setattr(notifications.smtplib, 'SMTP', FakeSMTP)

    assert send_email('ada@example.com', 'Subject', 'Body') is True

    session = sessions[0]
    assert session.calls == [
        'starttls',
        ('login', 'bot@example.com', 'secret'),
        ('sendmail', 'bot@example.com', ['ada@example.com']),
    ]
    assert 'From: Consultations <bot@example.com>' in session.message


def test_send_email_returns_false_on_connection_error(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(config, 'SMTP_USER', 'bot@example.com')
    monkeypatch.setattr(config, 'SMTP_PASSWORD', 'secret')

    def refuse(*args, **kwargs):
        raise ConnectionRefusedError('no server')

    monkeypatch.setattr(notifications.smtplib, 'SMTP', refuse)

    assert send_email('ada@example.com', 'Subject', 'Body') is False
