"""Email integration utilities for sending emails."""

import smtplib
from email.mime.text import MIMEText
from email.mime.multipart import MIMEMultipart
from typing import Optional
import logging

from core.config import settings

logger = logging.getLogger(__name__)


class EmailDeliveryError(Exception):
    """Raised when the SMTP server rejects or cannot accept a message."""


class EmailService:
    """Email service for sending emails via SMTP."""

    def __init__(
        self,
        smtp_host: Optional[str] = None,
        smtp_port: Optional[int] = None,
        smtp_user: Optional[str] = None,
        smtp_password: Optional[str] = None,
        from_email: Optional[str] = None,
        from_name: Optional[str] = None,
        use_tls: Optional[bool] = None,
    ):
        """
        Initialize email service. Unset arguments fall back to settings.

        Args:
            smtp_host: SMTP server host
            smtp_port: SMTP server port
            smtp_user: SMTP username
            smtp_password: SMTP password
            from_email: Default sender email
            from_name: Default sender name
            use_tls: Whether to issue STARTTLS before login
        """
        self.smtp_host = smtp_host or settings.smtp_host
        self.smtp_port = smtp_port or settings.smtp_port
        self.smtp_user = smtp_user or settings.smtp_user
        self.smtp_password = smtp_password or settings.smtp_password
        self.from_email = from_email or settings.from_email
        self.from_name = from_name or settings.from_name
        self.use_tls = settings.smtp_use_tls if use_tls is None else use_tls

    def build_message(self, to: str, subject: str, body: str, html: bool = True) -> MIMEMultipart:
        msg = MIMEMultipart()
        msg["From"] = f"{self.from_name} <{self.from_email}>"
        msg["To"] = to
        msg["Subject"] = subject
        msg.attach(MIMEText(body, "html" if html else "plain"))
        return msg

    def send(self, to: str, subject: str, body: str, html: bool = True) -> None:
        """
        Send a single email.

        Raises:
            EmailDeliveryError: on any SMTP or socket failure
        """
        msg = self.build_message(to, subject, body, html=html)
        try:
            with smtplib.SMTP(self.smtp_host, self.smtp_port, timeout=30) as server:
                if self.use_tls:
                    server.starttls()
                if self.smtp_user and self.smtp_password:
                    server.login(self.smtp_user, self.smtp_password)
                server.send_message(msg, from_addr=self.from_email, to_addrs=[to])
        except (smtplib.SMTPException, OSError) as exc:
            raise EmailDeliveryError(f"Failed to send email: {exc}") from exc

        logger.info(f"Email sent: {subject}")


def _wrap(heading: str, color: str, paragraphs: list[str]) -> str:
    content = "\n".join(f"<p>{p}</p>" for p in paragraphs)
    return f"""
        <div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
            <h2 style="color: {color};">{heading}</h2>
            {content}
            <p>Best regards,<br>The {settings.from_name} Team</p>
        </div>
    """


# Pre-configured email templates
class EmailTemplates:
    """Pre-configured email templates. Each returns ``{"subject", "body"}``."""

    @staticmethod
    def job_application(job_title: str, company_name: str, applicant_name: str) -> dict:
        """Sent to the recruiter when a talent applies."""
        return {
            "subject": f"Application Received - {job_title}",
            "body": _wrap(
                "Application Received",
                "#2563eb",
                [
                    f"<strong>{applicant_name}</strong> has applied for "
                    f"<strong>{job_title}</strong> at <strong>{company_name}</strong>.",
                    "Review the application from your recruiter dashboard.",
                ],
            ),
        }

    @staticmethod
    def shortlisted(job_title: str, company_name: str) -> dict:
        return {
            "subject": f"Congratulations! You've been shortlisted for {job_title}",
            "body": _wrap(
                "Congratulations!",
                "#059669",
                [
                    "Great news! You've been shortlisted for the position of "
                    f"<strong>{job_title}</strong> at <strong>{company_name}</strong>.",
                    "The company will contact you soon with next steps.",
                ],
            ),
        }

    @staticmethod
    def interviewed(job_title: str, company_name: str) -> dict:
        return {
            "subject": f"Interview stage - {job_title}",
            "body": _wrap(
                "You're in the interview stage",
                "#059669",
                [
                    f"Your application for <strong>{job_title}</strong> at "
                    f"<strong>{company_name}</strong> has moved to the interview stage.",
                ],
            ),
        }

    @staticmethod
    def offered(job_title: str, company_name: str) -> dict:
        return {
            "subject": f"You have an offer for {job_title}",
            "body": _wrap(
                "You have an offer!",
                "#059669",
                [
                    f"<strong>{company_name}</strong> has made you an offer for "
                    f"<strong>{job_title}</strong>.",
                    "Log in to review the details.",
                ],
            ),
        }


# Global email service instance
_email_service: Optional[EmailService] = None


def get_email_service() -> EmailService:
    """Get or create global email service instance."""
    global _email_service
    if _email_service is None:
        _email_service = EmailService()
    return _email_service
