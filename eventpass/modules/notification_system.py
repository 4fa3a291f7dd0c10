"""
Notification System Module - Event Pass

Delivers one email per recipient for a dispatch job and reports what
happened to each of them.

The dispatcher is sequential. The mail provider caps sends per
time window, so recipients are processed one after another with a fixed
throttling pause between them, and a failed send is retried a bounded number
of times with a fixed pause between attempts. One recipient running out of
attempts never stops the job; every recipient ends up in the report as
sent, retried (delivered after at least one failure) or failed.

Features:
- Generic dispatcher parameterised by a message template
- Bounded per-recipient retry with fixed delay
- Throttling between recipients
- Optional cancellation between recipients
- SMTP transport and an in-memory outbox transport
"""

import smtplib
import ssl
import time
import logging
import threading
from email import encoders
from email.mime.base import MIMEBase
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import make_msgid
from dataclasses import dataclass, field, asdict
from typing import Dict, List, Any, Optional, Callable, Sequence
from jinja2 import Template


@dataclass(frozen=True)
class Attachment:
    filename: str
    content: bytes
    mimetype: str = 'application/octet-stream'


@dataclass(frozen=True)
class Recipient:
    """One addressee of a dispatch job; ``context`` feeds the template."""
    name: str
    address: str
    context: Dict[str, Any] = field(default_factory=dict)


@dataclass
class MessageTemplate:
    """
    Subject and HTML body as Jinja2 sources plus shared parameters.

    Templates are rendered with ``recipient`` (the Recipient), ``params`` and
    the recipient's context keys. ``attachments`` builds per-recipient files.
    """
    name: str
    subject: str
    body: str
    params: Dict[str, Any] = field(default_factory=dict)
    attachments: Optional[Callable[[Recipient], List[Attachment]]] = None

    def render(self, recipient: Recipient):
        variables = dict(self.params)
        variables.update(recipient.context)
        variables['recipient'] = recipient
        variables['params'] = self.params

        subject = Template(self.subject).render(**variables).strip()
        body = Template(self.body, autoescape=True).render(**variables)
        attachments = self.attachments(recipient) if self.attachments else []
        return subject, body, attachments


@dataclass
class DispatchOutcome:
    """Per-recipient result of a dispatch job."""

    SENT = 'sent'
    RETRIED = 'retried'
    FAILED = 'failed'

    address: str
    name: str
    status: str
    attempts: int
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class DispatchSummary:
    total: int = 0
    sent: int = 0
    retried: int = 0
    failed: int = 0
    cancelled: bool = False
    skipped: int = 0

    @classmethod
    def from_results(cls, results: Sequence[DispatchOutcome], skipped: int = 0) -> 'DispatchSummary':
        summary = cls(total=len(results), cancelled=skipped > 0, skipped=skipped)
        for outcome in results:
            if outcome.status == DispatchOutcome.SENT:
                summary.sent += 1
            elif outcome.status == DispatchOutcome.RETRIED:
                summary.retried += 1
            else:
                summary.failed += 1
        return summary

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class DispatchReport:
    results: List[DispatchOutcome]
    summary: DispatchSummary

    def to_dict(self) -> Dict[str, Any]:
        return {
            'summary': self.summary.to_dict(),
            'results': [outcome.to_dict() for outcome in self.results]
        }


class SMTPTransport:
    """
    Sends email through an SMTP server. Raises on any delivery failure.
    """

    def __init__(self, server: str, port: int = 587, username: str = None,
                 password: str = None, use_tls: bool = True,
                 sender: str = 'noreply@localhost', timeout: float = 30):
        self.server = server
        self.port = port
        self.username = username
        self.password = password
        self.use_tls = use_tls
        self.sender = sender
        self.timeout = timeout
        self.logger = logging.getLogger(__name__)

    @classmethod
    def from_config(cls, config) -> 'SMTPTransport':
        return cls(
            server=config['MAIL_SERVER'],
            port=config['MAIL_PORT'],
            username=config.get('MAIL_USERNAME'),
            password=config.get('MAIL_PASSWORD'),
            use_tls=config['MAIL_USE_TLS'],
            sender=config['MAIL_DEFAULT_SENDER'],
            timeout=config['MAIL_TIMEOUT']
        )

    def build_message(self, address: str, subject: str, html_body: str,
                      attachments: Sequence[Attachment] = ()) -> MIMEMultipart:
        msg = MIMEMultipart()
        msg['From'] = self.sender
        msg['To'] = address
        msg['Subject'] = subject
        msg['Message-ID'] = make_msgid()
        msg.attach(MIMEText(html_body, 'html'))

        for attachment in attachments or ():
            maintype, _, subtype = attachment.mimetype.partition('/')
            part = MIMEBase(maintype, subtype or 'octet-stream')
            part.set_payload(attachment.content)
            encoders.encode_base64(part)
            part.add_header('Content-Disposition', 'attachment', filename=attachment.filename)
            msg.attach(part)

        return msg

    def send(self, address: str, subject: str, html_body: str,
             attachments: Sequence[Attachment] = ()) -> str:
        """
        Deliver one message.

        Returns:
            str: The message id

        Raises:
            smtplib.SMTPException, OSError: On any delivery failure or timeout
        """
        msg = self.build_message(address, subject, html_body, attachments)

        with smtplib.SMTP(self.server, self.port, timeout=self.timeout) as server:
            if self.use_tls:
                server.starttls(context=ssl.create_default_context())
            if self.username and self.password:
                server.login(self.username, self.password)
            server.send_message(msg)

        return msg['Message-ID']


class OutboxTransport:
    """
    Keeps messages in memory instead of sending them. Used when mail
    sending is suppressed.
    """

    def __init__(self):
        self.outbox: List[Dict[str, Any]] = []
        self._lock = threading.Lock()
        self.logger = logging.getLogger(__name__)

    def send(self, address: str, subject: str, html_body: str,
             attachments: Sequence[Attachment] = ()) -> str:
        with self._lock:
            self.outbox.append({
                'address': address,
                'subject': subject,
                'body': html_body,
                'attachments': list(attachments or ())
            })
            message_id = f"outbox-{len(self.outbox)}"
        self.logger.info(f"Suppressed email to {address}: {subject}")
        return message_id


class NotificationDispatcher:
    """
    Sends a templated message to each recipient in order with bounded retry
    and throttling.
    """

    def __init__(self, transport, max_retries: int = 2, retry_delay: float = 1.0,
                 throttle_delay: float = 2.0, sleep: Callable[[float], None] = time.sleep):
        """
        Args:
            transport: Object with ``send(address, subject, html_body, attachments)``
            max_retries (int): Extra attempts after the first failure
            retry_delay (float): Seconds between attempts for one recipient
            throttle_delay (float): Seconds between recipients
            sleep: Blocking wait used for both delays
        """
        if max_retries < 0:
            raise ValueError("max_retries cannot be negative")

        self.transport = transport
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.throttle_delay = throttle_delay
        self.sleep = sleep
        self.logger = logging.getLogger(__name__)

    @classmethod
    def from_config(cls, transport, config, **kwargs) -> 'NotificationDispatcher':
        return cls(
            transport,
            max_retries=config['NOTIFICATION_MAX_RETRIES'],
            retry_delay=config['NOTIFICATION_RETRY_DELAY'],
            throttle_delay=config['NOTIFICATION_THROTTLE_DELAY'],
            **kwargs
        )

    def dispatch(self, recipients: Sequence[Recipient], template: MessageTemplate,
                 cancel_event: Optional[threading.Event] = None) -> DispatchReport:
        """
        Run one dispatch job.

        Args:
            recipients: Ordered recipients
            template (MessageTemplate): Message to render for each recipient
            cancel_event (threading.Event): When set, no further recipients are started

        Returns:
            DispatchReport: One outcome per processed recipient plus the summary
        """
        recipients = list(recipients)
        results: List[DispatchOutcome] = []
        skipped = 0

        self.logger.info(f"Starting '{template.name}' dispatch to {len(recipients)} recipient(s)")

        for index, recipient in enumerate(recipients):
            if cancel_event is not None and cancel_event.is_set():
                skipped = len(recipients) - index
                self.logger.warning(f"Dispatch '{template.name}' cancelled, {skipped} recipient(s) skipped")
                break

            self.logger.info(f"Processing {index + 1}/{len(recipients)}: {recipient.address}")
            results.append(self._deliver(recipient, template))

            if index < len(recipients) - 1 and self.throttle_delay > 0:
                self.sleep(self.throttle_delay)

        summary = DispatchSummary.from_results(results, skipped=skipped)
        self.logger.info(
            f"Dispatch '{template.name}' complete: {summary.sent} sent, "
            f"{summary.retried} retried, {summary.failed} failed of {summary.total}"
        )
        return DispatchReport(results=results, summary=summary)

    def _deliver(self, recipient: Recipient, template: MessageTemplate) -> DispatchOutcome:
        """Send to one recipient, retrying up to ``max_retries`` times."""
        if not (recipient.address or '').strip():
            self.logger.error(f"No email address for {recipient.name}")
            return DispatchOutcome(
                address=recipient.address or '',
                name=recipient.name,
                status=DispatchOutcome.FAILED,
                attempts=0,
                error='No email address'
            )

        try:
            subject, body, attachments = template.render(recipient)
        except Exception as e:
            # Rendering failures are not retried
            self.logger.error(f"Could not build message for {recipient.address}: {str(e)}")
            return DispatchOutcome(
                address=recipient.address,
                name=recipient.name,
                status=DispatchOutcome.FAILED,
                attempts=0,
                error=f"Message rendering failed: {str(e)}"
            )

        attempts = 0
        last_error = None
        while attempts <= self.max_retries:
            attempts += 1
            try:
                self.transport.send(recipient.address, subject, body, attachments)
            except Exception as e:
                last_error = str(e) or e.__class__.__name__
                self.logger.warning(f"[Attempt {attempts}] Send to {recipient.address} failed: {last_error}")
                if attempts <= self.max_retries:
                    if self.retry_delay > 0:
                        self.sleep(self.retry_delay)
                    continue
                break

            self.logger.info(f"[Attempt {attempts}] Sent to {recipient.address}")
            return DispatchOutcome(
                address=recipient.address,
                name=recipient.name,
                status=DispatchOutcome.SENT if attempts == 1 else DispatchOutcome.RETRIED,
                attempts=attempts
            )

        return DispatchOutcome(
            address=recipient.address,
            name=recipient.name,
            status=DispatchOutcome.FAILED,
            attempts=attempts,
            error=last_error
        )
