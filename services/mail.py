"""
SMTP mail transport.

Built once in create_app from the MAIL_* settings and passed to the services
that send mail. send() reports whether the server accepted the recipient.
"""
from __future__ import annotations

import logging
import smtplib
import ssl
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Any, Mapping

logger = logging.getLogger(__name__)


def redact_email(email: str) -> str:
    """Redact an email address for logging."""
    if "@" not in email:
        return "redacted"
    local, domain = email.split("@", 1)
    return f"{local[:2]}***@{domain}"


class Mailer:
    def __init__(
        self,
        *,
        host: str = "localhost",
        port: int = 587,
        username: str | None = None,
        password: str | None = None,
        use_tls: bool = False,
        use_ssl: bool = False,
        from_addr: str | None = None,
        timeout: int = 30,
    ):
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.use_tls = use_tls
        self.use_ssl = use_ssl
        self.from_addr = from_addr or username or "no-reply@localhost"
        self.timeout = timeout

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> "Mailer":
        return cls(
            host=config.get("MAIL_HOST", "localhost"),
            port=int(config.get("MAIL_PORT", 587)),
            username=config.get("MAIL_USERNAME"),
            password=config.get("MAIL_PASSWORD"),
            use_tls=bool(config.get("MAIL_USE_TLS", False)),
            use_ssl=bool(config.get("MAIL_USE_SSL", False)),
            from_addr=config.get("MAIL_FROM"),
        )

    def _connect(self) -> smtplib.SMTP:
        context = ssl.create_default_context()
        if self.use_ssl:
            return smtplib.SMTP_SSL(self.host, self.port, context=context, timeout=self.timeout)
        server = smtplib.SMTP(self.host, self.port, timeout=self.timeout)
        if self.use_tls:
            server.starttls(context=context)
        return server

    def send(self, to: str, subject: str, html: str) -> bool:
        """
        Send an HTML email.

        Returns False when the server refuses the recipient; connection and
        authentication failures propagate to the caller.
        """
        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = self.from_addr
        msg["To"] = to
        msg.attach(MIMEText(html, "html"))

        try:
            with self._connect() as server:
                if self.username and self.password:
                    server.login(self.username, self.password)
                refused = server.sendmail(self.from_addr, [to], msg.as_string())
        except smtplib.SMTPRecipientsRefused:
            logger.warning("Mail server refused recipient %s", redact_email(to))
            return False

        if to in refused:
            logger.warning("Mail server refused recipient %s", redact_email(to))
            return False
        logger.info("Mail '%s' sent to %s", subject, redact_email(to))
        return True
