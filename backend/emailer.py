import os
import smtplib
import ssl
import logging
from dataclasses import dataclass
from email.message import EmailMessage
from typing import List, Optional

import requests

logger = logging.getLogger(__name__)

EMAIL_FUNCTION_TIMEOUT_SECONDS = 20
SMTP_TIMEOUT_SECONDS = 20
SMTP_PREFIXES = ("SMTP_PRIMARY", "SMTP_SECONDARY")


class EmailDeliveryError(RuntimeError):
    pass


def _env_flag(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def default_sender() -> str:
    return os.environ.get("EMAIL_FROM") or "Dance Entry System <noreply@dance-entry.local>"


@dataclass
class SMTPServer:
    name: str
    host: str
    port: int
    user: Optional[str]
    password: Optional[str]
    use_tls: bool
    use_ssl: bool
    sender: str

    @classmethod
    def from_env(cls, prefix: str) -> Optional["SMTPServer"]:
        host = os.environ.get(f"{prefix}_HOST")
        port = os.environ.get(f"{prefix}_PORT")
        sender = os.environ.get(f"{prefix}_FROM") or os.environ.get("EMAIL_FROM")
        if not host or not port or not sender:
            return None
        if not port.isdigit():
            raise EmailDeliveryError(f"Invalid {prefix}_PORT: {port}")
        return cls(
            name=prefix,
            host=host,
            port=int(port),
            user=os.environ.get(f"{prefix}_USER"),
            password=os.environ.get(f"{prefix}_PASS"),
            use_tls=_env_flag(f"{prefix}_TLS", True),
            use_ssl=_env_flag(f"{prefix}_SSL", False),
            sender=sender,
        )

    def _connect(self) -> smtplib.SMTP:
        context = ssl.create_default_context()
        if self.use_ssl:
            return smtplib.SMTP_SSL(self.host, self.port, context=context, timeout=SMTP_TIMEOUT_SECONDS)
        server = smtplib.SMTP(self.host, self.port, timeout=SMTP_TIMEOUT_SECONDS)
        server.ehlo()
        if self.use_tls:
            server.starttls(context=context)
            server.ehlo()
        return server

    def deliver(self, message: EmailMessage) -> None:
        message.replace_header("From", self.sender)
        with self._connect() as server:
            if self.user and self.password:
                server.login(self.user, self.password)
            server.send_message(message)


def build_message(to_email: str, subject: str, html: str, text: str, sender: str) -> EmailMessage:
    message = EmailMessage()
    message["From"] = sender
    message["To"] = to_email
    message["Subject"] = subject
    message.set_content(text)
    message.add_alternative(html, subtype="html")
    return message


def smtp_servers() -> List[SMTPServer]:
    servers = [SMTPServer.from_env(prefix) for prefix in SMTP_PREFIXES]
    return [server for server in servers if server is not None]


def _post_to_function(url: str, to_email: str, subject: str, html: str, sender: str) -> None:
    headers = {"Content-Type": "application/json"}
    key = os.environ.get("EMAIL_FUNCTION_KEY")
    if key:
        headers["Authorization"] = f"Bearer {key}"
    try:
        response = requests.post(
            url,
            json={"to": to_email, "subject": subject, "html": html, "from": sender},
            headers=headers,
            timeout=EMAIL_FUNCTION_TIMEOUT_SECONDS,
        )
    except requests.RequestException as exc:
        raise EmailDeliveryError(f"Email function request failed: {exc}") from exc
    if response.status_code >= 400:
        try:
            message = response.json().get("error")
        except ValueError:
            message = None
        raise EmailDeliveryError(message or f"Email function returned HTTP {response.status_code}")


def send_email(to_email: str, subject: str, html: str, text: str, sender: Optional[str] = None) -> None:
    """Deliver one message through the email function or the SMTP servers.

    The SMTP servers are tried in order; the error from the last one is raised.
    """
    sender = sender or default_sender()
    function_url = os.environ.get("EMAIL_FUNCTION_URL")
    if function_url:
        _post_to_function(function_url, to_email, subject, html, sender)
        logger.info("Email to %s sent via email function", to_email)
        return

    servers = smtp_servers()
    if not servers or servers[0].name != "SMTP_PRIMARY":
        raise EmailDeliveryError("SMTP_PRIMARY configuration missing")

    message = build_message(to_email, subject, html, text, sender)
    last_error: Optional[Exception] = None
    for server in servers:
        try:
            server.deliver(message)
        except (smtplib.SMTPException, OSError) as exc:
            logger.warning("%s failed for %s: %s", server.name, to_email, exc)
            last_error = exc
            continue
        logger.info("Email to %s sent via %s", to_email, server.name)
        return
    raise EmailDeliveryError(f"All SMTP servers failed: {last_error}") from last_error
