"""
Alert delivery transports.

Every notifier exposes one operation:

    send(destination, subject, body, attachment_path=None)

and raises NotifyError when the message could not be handed to the provider.
"""

import os
import abc
import logging
import mimetypes
import smtplib
from email.message import EmailMessage

import requests

from common.utils import get_email_api_credentials, get_mail_credentials
from inventory.errors import NotifyError

logger = logging.getLogger(__name__)

HTTP_TIMEOUT_SECONDS = 10


class Notifier(abc.ABC):

    @abc.abstractmethod
    def send(self, destination, subject, body, attachment_path=None):
        """Delivers a plaintext message, optionally with one file attached."""


def _check_attachment(attachment_path):
    if attachment_path and not os.path.isfile(attachment_path):
        raise NotifyError(f"Attachment not found: {attachment_path}")


def build_message(sender, destination, subject, body, attachment_path=None):
    """
    Builds the MIME message sent by SmtpNotifier.

    Without an attachment the result is a single text/plain part; with one it
    becomes multipart/mixed.
    """
    _check_attachment(attachment_path)
    message = EmailMessage()
    message['From'] = sender
    message['To'] = destination
    message['Subject'] = subject
    message.set_content(body)

    if attachment_path:
        ctype, _ = mimetypes.guess_type(attachment_path)
        maintype, subtype = (ctype or 'application/octet-stream').split('/', 1)
        with open(attachment_path, 'rb') as f:
            message.add_attachment(
                f.read(),
                maintype=maintype,
                subtype=subtype,
                filename=os.path.basename(attachment_path),
            )
    return message


class SmtpNotifier(Notifier):
    """
    Sends mail through an SMTP server with STARTTLS and login.

    Credentials come from `get_mail_credentials()` unless passed explicitly.
    """

    def __init__(self, user=None, password=None, host=None, port=None, timeout=30):
        if user is None or password is None:
            user, password, default_host, default_port = get_mail_credentials()
            host = host or default_host
            port = port or default_port
        self.user = user
        self.password = password
        self.host = host
        self.port = port
        self.timeout = timeout

    def send(self, destination, subject, body, attachment_path=None):
        if not self.user or not self.password:
            raise NotifyError("Email credentials not set. Set MAIL_USER and MAIL_PASS.")
        message = build_message(self.user, destination, subject, body, attachment_path)
        try:
            with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as server:
                server.starttls()
                server.login(self.user, self.password)
                server.send_message(message)
        except (smtplib.SMTPException, OSError) as e:
            raise NotifyError(f"SMTP delivery to {destination} failed: {e}") from e
        logger.info(f"Email sent to {destination}: {subject}")


class HttpEmailNotifier(Notifier):
    """
    Sends mail through an HTTP email provider (SendGrid-style JSON payload).

    Attachments are not supported by this transport; passing one raises NotifyError.
    """

    def __init__(self, api_url=None, api_key=None, sender=None, timeout=HTTP_TIMEOUT_SECONDS):
        default_url, default_key, default_sender = get_email_api_credentials()
        self.api_url = api_url or default_url
        self.api_key = api_key or default_key
        self.sender = sender or default_sender
        self.timeout = timeout

    def build_payload(self, destination, subject, body):
        return {
            "from": {"email": self.sender},
            "personalizations": [{"to": [{"email": destination}], "subject": subject}],
            "content": [{"type": "text/plain", "value": body}],
        }

    def send(self, destination, subject, body, attachment_path=None):
        if not self.api_url or not self.api_key:
            raise NotifyError("Email provider not configured. Set EMAIL_API_URL and EMAIL_API_KEY.")
        if attachment_path:
            raise NotifyError("HttpEmailNotifier does not support attachments")

        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        try:
            response = requests.post(
                self.api_url,
                json=self.build_payload(destination, subject, body),
                headers=headers,
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as e:
            raise NotifyError(f"Email provider request failed: {e}") from e

        if not 200 <= response.status_code < 300:
            raise NotifyError(
                f"Email send failed {response.status_code}: {response.text[:200]}"
            )
        logger.info(f"Email accepted by provider for {destination}: {subject}")


def get_notifier(kind=None):
    """
    Returns the notifier selected by `kind` or the NOTIFIER environment variable.

    Args:
        kind (str, optional): 'smtp' (default) or 'http'.
    """
    kind = (kind or os.getenv('NOTIFIER', 'smtp')).lower()
    if kind == 'smtp':
        return SmtpNotifier()
    if kind == 'http':
        return HttpEmailNotifier()
    raise ValueError(f"Unknown notifier '{kind}'. Expected 'smtp' or 'http'.")
