"""
Email notifications.

Delivery is best-effort and at-most-once: every public method returns
nothing, messages are handed to a background worker pool, and transport
problems are logged there and never reach the caller.
"""
import logging
import smtplib
from concurrent.futures import ThreadPoolExecutor
from email.message import EmailMessage
from html import escape

from flask import current_app

logger = logging.getLogger(__name__)


class Notifier:
    """Send notification emails over SMTP from a worker pool"""

    def __init__(self, host=None, port=587, user=None, password=None,
                 mail_from='Health-Lock <no-reply@health-lock.local>', timeout=10, workers=2):
        self.host = host
        self.port = port
        self.user = user
        self.password = password
        self.mail_from = mail_from
        self.timeout = timeout
        self._executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix='notifier')

    @classmethod
    def from_config(cls, config):
        return cls(
            host=config.get('SMTP_HOST'),
            port=config.get('SMTP_PORT', 587),
            user=config.get('SMTP_USER'),
            password=config.get('SMTP_PASS'),
            mail_from=config.get('MAIL_FROM'),
            timeout=config.get('SMTP_TIMEOUT', 10),
            workers=config.get('MAIL_WORKERS', 2),
        )

    @property
    def configured(self):
        return bool(self.host and self.user and self.password)

    def send_mail(self, to, subject, html):
        """Queue one message; returns before any network I/O happens"""
        if not self.configured:
            logger.warning("Email transporter not configured. Skipping email notification.")
            return
        if not to:
            return

        try:
            message = EmailMessage()
            message['From'] = self.mail_from
            message['To'] = to
            message['Subject'] = subject
            message.set_content(html, subtype='html')
            self._executor.submit(self._deliver, message)
        except Exception as e:
            logger.error(f"Failed to queue email notification to {to!r} ({subject}): {str(e)}")

    def _deliver(self, message):
        # Runs on a worker thread without an application context
        to, subject = message['To'], message['Subject']
        try:
            if self.port == 465:
                smtp = smtplib.SMTP_SSL(self.host, self.port, timeout=self.timeout)
            else:
                smtp = smtplib.SMTP(self.host, self.port, timeout=self.timeout)
            with smtp:
                if self.port != 465:
                    smtp.starttls()
                smtp.login(self.user, self.password)
                smtp.send_message(message)
            logger.info(f"Email notification sent to {to} ({subject})")
        except Exception as e:
            logger.error(f"Failed to send email notification to {to} ({subject}): {str(e)}")

    def shutdown(self, wait=True):
        """Stop accepting messages; with wait, block until queued ones are delivered"""
        self._executor.shutdown(wait=wait)

    # ===== MESSAGES =====

    def send_signup_email(self, email, name, role):
        self.send_mail(email, 'Welcome to Health-Lock', (
            f"<p>Hello {escape(name or 'User')},</p>"
            f"<p>Your {escape(role)} account has been created successfully.</p>"
            "<p>If this wasn't you, please contact support.</p>"
        ))

    def send_login_email(self, email, name, role):
        self.send_mail(email, 'New Login to Health-Lock', (
            f"<p>Hello {escape(name or 'User')},</p>"
            f"<p>We detected a login to your {escape(role)} account.</p>"
            "<p>If this wasn't you, please reset your password immediately.</p>"
        ))

    def send_qr_generated_email(self, email, name, record_id, access_url, recipient_role):
        self.send_mail(email, 'QR Code Generated', (
            f"<p>Hello {escape(name or 'User')},</p>"
            f"<p>A QR code for medical record <strong>{record_id}</strong> was generated.</p>"
            "<p>You can access the report via:</p>"
            f"<a href=\"{escape(access_url)}\">{escape(access_url)}</a>"
            f"<p>Recipient: {escape(recipient_role or 'user')}</p>"
        ))

    def send_qr_accessed_email(self, email, name, record_id, access_url, when, recipient_role):
        self.send_mail(email, 'Medical Record Accessed', (
            f"<p>Hello {escape(name or 'User')},</p>"
            f"<p>The medical record <strong>{record_id}</strong> was accessed.</p>"
            f"<p><strong>Time:</strong> {when.strftime('%Y-%m-%d %H:%M:%S')} UTC</p>"
            "<p>Access link:</p>"
            f"<a href=\"{escape(access_url or '')}\">{escape(access_url or '')}</a>"
            f"<p>Recipient: {escape(recipient_role or 'user')}</p>"
        ))

    def send_profile_access_request_email(self, email, patient_name, doctor_name,
                                          request_id, approval_url, expires_at):
        self.send_mail(email, 'Profile Access Request', (
            f"<p>Hello {escape(patient_name or 'User')},</p>"
            f"<p>Dr. {escape(doctor_name or 'Unknown')} requested access to your health profile "
            f"(request {request_id}).</p>"
            f"<p>The request expires at {expires_at.strftime('%Y-%m-%d %H:%M:%S')} UTC.</p>"
            f"<p><a href=\"{escape(approval_url)}\">Review the request</a></p>"
        ))


def get_notifier():
    return current_app.extensions['notifier']
