"""
Event Notifier Module - Event Pass

Entry points that turn portal events into dispatch jobs. Each one resolves
its recipient list, picks a template, and hands both to the
NotificationDispatcher:

- new event announced: approved club members (minus the graduated cohort)
  and every mentor
- event updated: everyone registered for the event
- certificates ready: newly certified attendees, each with their PDF
- registration pass: the registrant, with their QR entry pass
"""

import logging
from typing import Dict, List, Any, Callable, Iterable

from eventpass.modules.certificate_renderer import CertificateRenderer, format_event_date
from eventpass.modules.notification_system import (
    Attachment,
    DispatchReport,
    MessageTemplate,
    NotificationDispatcher,
    Recipient,
)
from eventpass.modules.qr_generator import QRGenerator


def dedupe_recipients(recipients: Iterable[Recipient],
                      key: Callable[[Recipient], str] = None) -> List[Recipient]:
    """
    Drop repeated recipients (first one wins).

    By default recipients are keyed by address, and those without an address
    are dropped. With ``key`` every recipient is kept unless its key repeats.
    """
    seen = set()
    unique = []
    for recipient in recipients:
        if key is None:
            identity = (recipient.address or '').strip().lower()
            if not identity:
                continue
        else:
            identity = key(recipient)
        if identity in seen:
            continue
        seen.add(identity)
        unique.append(recipient)
    return unique


class EventNotifier:
    """
    Resolves recipients for event notifications and dispatches them.
    """

    def __init__(self, database_manager, registration_manager,
                 dispatcher: NotificationDispatcher, qr_generator: QRGenerator = None,
                 renderer: CertificateRenderer = None, graduated_cohort: str = 'Pass Out',
                 system_name: str = 'KMIT Clubs'):
        self.db = database_manager
        self.registrations = registration_manager
        self.dispatcher = dispatcher
        self.qr_generator = qr_generator or QRGenerator()
        self.renderer = renderer or CertificateRenderer()
        self.graduated_cohort = graduated_cohort
        self.system_name = system_name
        self.logger = logging.getLogger(__name__)

    # Recipient resolution

    def resolve_new_event_recipients(self, event: Dict[str, Any]) -> List[Recipient]:
        members = self.db.execute_query(
            """SELECT student_name, student_email
               FROM club_registrations
               WHERE club_id = ? AND status = 'approved'
                 AND COALESCE(year, '') != ?
               ORDER BY id""",
            (event['club_id'], self.graduated_cohort)
        )
        mentors = self.db.execute_query("SELECT name, email FROM mentors ORDER BY id")

        recipients = [
            Recipient(name=row['student_name'], address=row['student_email'] or '',
                      context={'is_mentor': False})
            for row in members
        ]
        recipients.extend(
            Recipient(name=row['name'] or 'Mentor', address=row['email'] or '',
                      context={'is_mentor': True})
            for row in mentors
        )
        return dedupe_recipients(recipients)

    def resolve_registrant_recipients(self, event_id) -> List[Recipient]:
        return dedupe_recipients(
            Recipient(name=registration.student_name, address=registration.student_email)
            for registration in self.registrations.get_event_registrations(event_id)
        )

    # Dispatch entry points

    def announce_new_event(self, event_id, cancel_event=None) -> DispatchReport:
        event = self.registrations.get_event(event_id)
        recipients = self.resolve_new_event_recipients(event)
        if not recipients:
            self.logger.info(f"No recipients for new event {event_id}")

        template = MessageTemplate(
            name='new_event',
            subject=self._get_new_event_subject(),
            body=self._get_new_event_template(),
            params=self._event_params(event)
        )
        return self.dispatcher.dispatch(recipients, template, cancel_event=cancel_event)

    def announce_event_update(self, event_id, subject: str, message: str,
                              cancel_event=None) -> DispatchReport:
        if not (subject or '').strip() or not (message or '').strip():
            raise ValueError("Both subject and message are required")

        event = self.registrations.get_event(event_id)
        recipients = self.resolve_registrant_recipients(event_id)

        params = self._event_params(event)
        params.update({'update_subject': subject.strip(), 'update_message': message.strip()})
        template = MessageTemplate(
            name='event_update',
            subject='{{ event_title }}: {{ update_subject }}',
            body=self._get_event_update_template(),
            params=params
        )
        return self.dispatcher.dispatch(recipients, template, cancel_event=cancel_event)

    def notify_certificates_ready(self, event_id, certificates: List[Dict[str, Any]],
                                  cancel_event=None) -> DispatchReport:
        """
        Args:
            event_id: Event the certificates belong to
            certificates: Issued certificate rows (student_name, student_email,
                roll_number, branch, year)
        """
        event = self.registrations.get_event(event_id)
        # One email per certificate, even when students share an address
        recipients = dedupe_recipients(
            (
                Recipient(
                    name=cert['student_name'],
                    address=cert.get('student_email') or '',
                    context={
                        'roll_number': cert['roll_number'],
                        'branch': cert.get('branch'),
                        'year': cert.get('year')
                    }
                )
                for cert in certificates
            ),
            key=lambda recipient: recipient.context['roll_number']
        )

        def build_attachment(recipient: Recipient) -> List[Attachment]:
            pdf = self.renderer.render(
                student_name=recipient.name,
                event_title=event['title'],
                event_date=event['event_date'],
                club_name=event['club_name'] or '',
                branch=recipient.context.get('branch'),
                year=recipient.context.get('year')
            )
            return [Attachment(
                filename=self.renderer.filename_for(recipient.name, event['title']),
                content=pdf,
                mimetype='application/pdf'
            )]

        template = MessageTemplate(
            name='certificate_ready',
            subject='Certificate of Participation - {{ event_title }}',
            body=self._get_certificate_ready_template(),
            params=self._event_params(event),
            attachments=build_attachment
        )
        return self.dispatcher.dispatch(recipients, template, cancel_event=cancel_event)

    def send_registration_pass(self, registration, credential) -> DispatchReport:
        """
        Email the registrant their QR entry pass. A failed delivery leaves the
        credential valid; it can be re-sent later.
        """
        event = self.registrations.get_event(registration.event_id)
        image = self.qr_generator.generate_pass_image(credential.payload, {
            'student_name': registration.student_name,
            'roll_number': registration.roll_number,
            'event_title': event['title']
        })

        template = MessageTemplate(
            name='registration_pass',
            subject='Your Entry Pass for {{ event_title }} - {{ system_name }}',
            body=self._get_registration_pass_template(),
            params=dict(self._event_params(event), roll_number=registration.roll_number),
            attachments=lambda recipient: [Attachment('qr-code.png', image, 'image/png')]
        )
        recipient = Recipient(name=registration.student_name, address=registration.student_email)
        return self.dispatcher.dispatch([recipient], template)

    def _event_params(self, event: Dict[str, Any]) -> Dict[str, Any]:
        return {
            'event_title': event['title'],
            'event_description': event.get('description') or '',
            'event_date': format_event_date(event.get('event_date')),
            'club_name': event.get('club_name') or 'Club',
            'system_name': self.system_name
        }

    # Templates

    def _get_new_event_subject(self) -> str:
        return 'New Event: {{ event_title }} - {{ club_name }}'

    def _get_new_event_template(self) -> str:
        return """
        <html>
        <body style="font-family: Arial, sans-serif;">
            <h2 style="color: #667eea;">New Event Announced!</h2>
            <p>Hello {{ recipient.name }},</p>
            {% if is_mentor %}
            <p>A new event has been created by <strong>{{ club_name }}</strong>. Here are the details:</p>
            {% else %}
            <p>Great news! <strong>{{ club_name }}</strong> has announced a new event. Check out the details below:</p>
            {% endif %}

            <div style="background-color: #f8fafc; padding: 15px; border-left: 4px solid #667eea;">
                <p><strong>{{ event_title }}</strong></p>
                <p>{{ event_date }}</p>
                <p>{% for line in event_description.splitlines() %}{{ line }}<br>{% endfor %}</p>
            </div>

            {% if is_mentor %}
            <p>As a mentor, you are receiving this notification to stay updated on club activities.</p>
            {% else %}
            <p>Don't miss out on this event! Make sure to register and participate.</p>
            {% endif %}

            <hr>
            <p style="color: #6c757d; font-size: 12px;">
                You received this email because {% if is_mentor %}you are a mentor{% else %}you are a member of {{ club_name }}{% endif %}.
                {{ system_name }}
            </p>
        </body>
        </html>
        """

    def _get_event_update_template(self) -> str:
        return """
        <html>
        <body style="font-family: Arial, sans-serif;">
            <h2 style="color: #007bff;">Event Update</h2>
            <p>Hello {{ recipient.name }},</p>
            <p><strong>Event: {{ event_title }}</strong></p>
            <div style="background-color: #f1f5f9; padding: 15px; border-left: 4px solid #007bff;">
                {% for line in update_message.splitlines() %}{{ line }}<br>{% endfor %}
            </div>
            <p>Thank you for your registration!</p>
            <p>Best regards,<br><strong>{{ club_name }}</strong></p>

            <hr>
            <p style="color: #6c757d; font-size: 12px;">
                This email was sent to registered participants of {{ event_title }}.
            </p>
        </body>
        </html>
        """

    def _get_certificate_ready_template(self) -> str:
        return """
        <html>
        <body style="font-family: 'Times New Roman', Times, serif;">
            <h2 style="color: #1a365d;">Certificate of Participation</h2>
            <p>Dear <strong>{{ recipient.name }}</strong>,</p>
            <p>Congratulations! This is to certify that you have successfully participated in</p>
            <p style="color: #dc2626; font-weight: bold;">{{ event_title }}</p>
            <p>organized by <strong>{{ club_name }}</strong>, held on <strong>{{ event_date }}</strong>.</p>

            <p style="background-color: #fef3c7; padding: 10px;">
                Your participation certificate is attached to this email.
            </p>

            <p>Best regards,<br>{{ club_name }} Team</p>
        </body>
        </html>
        """

    def _get_registration_pass_template(self) -> str:
        return """
        <html>
        <body style="font-family: Arial, sans-serif;">
            <h2 style="color: #28a745;">Registration Confirmed</h2>
            <p>Hello {{ recipient.name }},</p>
            <p>You are registered for <strong>{{ event_title }}</strong> by {{ club_name }}.</p>
            <p><strong>Date:</strong> {{ event_date }}</p>
            <p><strong>Roll Number:</strong> {{ roll_number }}</p>

            <p style="background-color: #d4edda; padding: 10px; border-left: 4px solid #28a745;">
                Your entry pass QR code is attached. Show it at the venue to mark your attendance.
                It can be scanned only once.
            </p>

            <hr>
            <p style="color: #6c757d; font-size: 12px;">{{ system_name }}</p>
        </body>
        </html>
        """
