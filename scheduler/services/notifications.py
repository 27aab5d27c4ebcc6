"""
Appointment emails over SMTP.
Set SMTP_USER and SMTP_PASSWORD (and optionally SMTP_HOST, SMTP_PORT, NOTIFY_FROM) in .env.
Without credentials every send is skipped. Sends never raise: a failed email is
logged and reported as False so a booking is never rolled back because of it.
"""
import logging
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Callable

from scheduler.core import config
from scheduler.models.appointment import Appointment

logger = logging.getLogger(__name__)

EmailSender = Callable[[str, str, str], bool]


def _from_address() -> str:
    if (config.NOTIFY_FROM or "").strip():
        return config.NOTIFY_FROM.strip()
    user = (config.SMTP_USER or "").strip()
    if user:
        return f"Consultations <{user}>"
    return "Consultations <noreply@localhost>"


def send_email(to_email: str, subject: str, body: str) -> bool:
    """Send a plain-text email (with an HTML copy). Returns True if sent."""
    to_email = (to_email or "").strip()
    if not to_email:
        return False
    user = (config.SMTP_USER or "").strip()
    password = (config.SMTP_PASSWORD or "").strip()
    if not user or not password:
        logger.debug("SMTP_USER or SMTP_PASSWORD not set; skipping email to %s", to_email)
        return False

    msg = MIMEMultipart("alternative")
    msg["Subject"] = subject
    msg["From"] = _from_address()
    msg["To"] = to_email
    msg.attach(MIMEText(body, "plain"))
    msg.attach(MIMEText(f"<pre style='font-family:sans-serif'>{body}</pre>", "html"))
    try:
        with smtplib.SMTP(config.SMTP_HOST, config.SMTP_PORT, timeout=10) as server:
            server.starttls()
            server.login(user, password)
            server.sendmail(user, [to_email], msg.as_string())
        logger.info("Email sent to %s: %s", to_email, subject)
        return True
    except (smtplib.SMTPException, OSError):
        logger.exception("Failed to send email to %s", to_email)
        return False


def _format_start(appointment: Appointment) -> str:
    return appointment.start_time.strftime("%A %d %B %Y, %H:%M UTC")


class AppointmentNotifier:
    """Builds the appointment emails and hands them to a sender."""

    def __init__(self, sender: EmailSender = send_email, admin_email: str | None = None):
        self.sender = sender
        self.admin_email = config.ADMIN_EMAIL if admin_email is None else admin_email

    def _deliver(self, to_email: str, subject: str, body: str) -> bool:
        try:
            sent = self.sender(to_email, subject, body)
        except Exception:
            logger.exception("Email sender raised for %s", to_email)
            return False
        if not sent:
            logger.warning("Email to %s was not sent: %s", to_email, subject)
        return bool(sent)

    def appointment_requested(self, appointment: Appointment) -> bool:
        if appointment.requires_approval:
            subject = "Consultation booked - awaiting confirmation"
            status_line = "We will confirm your booking shortly."
        else:
            subject = "Your consultation has been scheduled"
            status_line = "Your consultation is reserved."
        lines = [
            f"Hi {appointment.client_name},",
            "",
            f"Thanks for booking a {appointment.duration_minutes}-minute consultation on {_format_start(appointment)}.",
            status_line,
        ]
        if appointment.notes:
            lines += ["", f"Your notes: {appointment.notes}"]
        sent = self._deliver(appointment.client_email, subject, "\n".join(lines))

        if self.admin_email:
            admin_lines = [
                f"New booking request from {appointment.client_name} <{appointment.client_email}>",
                f"When: {_format_start(appointment)} ({appointment.duration_minutes} minutes)",
                f"Type: {appointment.consultation_type or 'free'}",
                f"Appointment id: {appointment.id}",
            ]
            self._deliver(self.admin_email, f"New booking request from {appointment.client_name}", "\n".join(admin_lines))
        else:
            logger.warning("ADMIN_EMAIL not configured - skipping admin notification")
        return sent

    def appointment_approved(self, appointment: Appointment) -> bool:
        lines = [
            f"Hi {appointment.client_name},",
            "",
            f"Your consultation on {_format_start(appointment)} is confirmed.",
        ]
        if appointment.meeting_link:
            lines.append(f"Join the call: {appointment.meeting_link}")
        return self._deliver(appointment.client_email, "Your consultation is confirmed!", "\n".join(lines))

    def appointment_rejected(self, appointment: Appointment, reason: str | None = None) -> bool:
        lines = [
            f"Hi {appointment.client_name},",
            "",
            f"Unfortunately we cannot accommodate your request for {_format_start(appointment)}.",
        ]
        if reason:
            lines.append(f"Reason: {reason}")
        lines.append("Please pick another time.")
        return self._deliver(
            appointment.client_email,
            "Booking update - Unable to accommodate your request",
            "\n".join(lines),
        )


default_notifier = AppointmentNotifier()
