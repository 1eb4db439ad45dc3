"""Run reports and operator alerts."""

from __future__ import annotations

import logging
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Optional, Protocol

from autoblog import config
from autoblog.models import RunReport
from autoblog.providers.retry import BackoffPolicy
from autoblog.validation.report import format_run_report

logger = logging.getLogger(__name__)

_SUBJECTS = {
    "success": "Blog published: {title}",
    "failed": "Blog generation failed ({category})",
    "all-topics-duplicate": "Blog generation skipped: all topics duplicate ({category})",
}


def report_subject(report: RunReport) -> str:
    title = report.article.title if report.article else ""
    template = _SUBJECTS.get(report.outcome, "Blog generation report ({category})")
    return template.format(title=title, category=report.category)


class Notifier(Protocol):
    def send_report(self, report: RunReport) -> bool: ...

    def send_alert(self, subject: str, body: str) -> bool: ...


class LoggingNotifier:
    """Writes reports to the log; used when no mail server is configured."""

    def __init__(self):
        self.sent: list[tuple[str, str]] = []

    def send_report(self, report: RunReport) -> bool:
        subject = report_subject(report)
        body = format_run_report(report)
        self.sent.append((subject, body))
        level = logging.INFO if report.outcome == "success" else logging.WARNING
        logger.log(level, "%s\n%s", subject, body)
        return True

    def send_alert(self, subject: str, body: str) -> bool:
        self.sent.append((subject, body))
        logger.warning("ALERT: %s\n%s", subject, body)
        return True


def _smtp_retryable(exc: Exception) -> bool:
    if isinstance(exc, (smtplib.SMTPAuthenticationError, smtplib.SMTPRecipientsRefused)):
        return False
    return isinstance(exc, (smtplib.SMTPServerDisconnected, smtplib.SMTPConnectError, OSError))


class EmailNotifier:
    """Sends plain-text + HTML mail over SMTP with STARTTLS."""

    def __init__(
        self,
        to_addr: str = config.REPORTS_EMAIL,
        host: str = config.SMTP_HOST,
        port: int = config.SMTP_PORT,
        user: str = config.SMTP_USER,
        password: str = config.SMTP_PASSWORD,
        policy: Optional[BackoffPolicy] = None,
    ):
        self.to_addr = to_addr
        self.host = host
        self.port = port
        self.user = user
        self.password = password
        self.policy = policy or BackoffPolicy(retryable=_smtp_retryable)

    def _build(self, subject: str, body: str) -> MIMEMultipart:
        msg = MIMEMultipart("alternative")
        msg["From"] = self.user
        msg["To"] = self.to_addr
        msg["Subject"] = subject
        msg.attach(MIMEText(body, "plain"))
        escaped = body.replace("&", "&amp;").replace("<", "&lt;").replace(">", "&gt;")
        msg.attach(MIMEText(f"<html><body><pre>{escaped}</pre></body></html>", "html"))
        return msg

    def _send(self, subject: str, body: str) -> bool:
        msg = self._build(subject, body)

        def _deliver():
            with smtplib.SMTP(self.host, self.port, timeout=30) as server:
                server.starttls()
                if self.user:
                    server.login(self.user, self.password)
                server.sendmail(self.user, [self.to_addr], msg.as_string())

        try:
            self.policy.run(_deliver, label=f"email '{subject}'")
        except smtplib.SMTPAuthenticationError:
            logger.error("Email authentication failed - check SMTP credentials")
            return False
        except (smtplib.SMTPException, OSError) as e:
            logger.error("Email delivery failed: %s", e)
            return False
        logger.info("Email sent to %s: %s", self.to_addr, subject)
        return True

    def send_report(self, report: RunReport) -> bool:
        return self._send(report_subject(report), format_run_report(report))

    def send_alert(self, subject: str, body: str) -> bool:
        return self._send(f"[ALERT] {subject}", body)


def default_notifier() -> Notifier:
    if config.REPORTS_EMAIL and config.SMTP_USER:
        return EmailNotifier()
    return LoggingNotifier()
