"""
Event Pass - Main Application

Entry point for the event check-in and certificate notification service.
The application factory wires the database, mail transport and pipeline
components per application instance; routes reach them through
``current_app.extensions['eventpass']``.

Endpoints:
- Event registration with credential issuance and entry pass email
- QR scan confirmation
- Attendance export
- Certificate issuance with certificate-ready emails
- New-event and event-update announcements
"""

import io
import logging
import sqlite3
from functools import wraps

from flask import Flask, Blueprint, Response, current_app, jsonify, request, send_file

from config import get_config, validate_config
from eventpass.exceptions import (
    CertificateIssueError,
    DuplicateRegistrationError,
    EventNotFoundError,
    RegistrationNotFoundError,
)
from eventpass.modules.attendance_manager import AttendanceManager
from eventpass.modules.certificate_manager import CertificateManager
from eventpass.modules.certificate_renderer import CertificateRenderer
from eventpass.modules.checkin_validator import CheckInValidator, ConfirmationResult
from eventpass.modules.credential_issuer import CredentialIssuer
from eventpass.modules.database_manager import DatabaseManager
from eventpass.modules.event_notifier import EventNotifier
from eventpass.modules.notification_system import NotificationDispatcher, OutboxTransport, SMTPTransport
from eventpass.modules.qr_generator import QRGenerator
from eventpass.modules.registration_manager import RegistrationManager
from eventpass.modules.report_generator import ReportGenerator

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s %(levelname)s: %(message)s [in %(pathname)s:%(lineno)d]'
)
logger = logging.getLogger(__name__)

api = Blueprint('api', __name__, url_prefix='/api')

SCAN_STATUS_CODES = {
    ConfirmationResult.REASON_MALFORMED: 400,
    ConfirmationResult.REASON_WRONG_EVENT: 400,
    ConfirmationResult.REASON_UNKNOWN_CREDENTIAL: 404,
}


def build_components(config, transport=None, sleep=None):
    """
    Build the pipeline components for one application.

    Args:
        config: Flask config mapping
        transport: Mail transport; chosen from config when omitted
        sleep: Optional wait function for the dispatcher
    """
    db = DatabaseManager(config['DATABASE_PATH'], timeout=config['DATABASE_TIMEOUT'])
    qr_generator = QRGenerator(
        token_bytes=config['CREDENTIAL_TOKEN_BYTES'],
        box_size=config['QR_CODE_BOX_SIZE'],
        border=config['QR_CODE_BORDER']
    )

    if transport is None:
        transport = OutboxTransport() if config['MAIL_SUPPRESS_SEND'] else SMTPTransport.from_config(config)

    dispatcher_kwargs = {'sleep': sleep} if sleep is not None else {}
    dispatcher = NotificationDispatcher.from_config(transport, config, **dispatcher_kwargs)

    registrations = RegistrationManager(db)
    attendance = AttendanceManager(db)

    return {
        'db': db,
        'qr_generator': qr_generator,
        'transport': transport,
        'dispatcher': dispatcher,
        'registrations': registrations,
        'attendance': attendance,
        'issuer': CredentialIssuer(db, qr_generator),
        'validator': CheckInValidator(db, qr_generator),
        'certificates': CertificateManager(db, attendance, registrations),
        'notifier': EventNotifier(
            db, registrations, dispatcher,
            qr_generator=qr_generator,
            renderer=CertificateRenderer(),
            graduated_cohort=config['GRADUATED_COHORT'],
            system_name=config['SYSTEM_NAME']
        ),
        'reports': ReportGenerator()
    }


def create_app(config_name=None, overrides=None, transport=None, sleep=None):
    """
    Application factory.

    Args:
        config_name (str): Key of the ``config`` dictionary
        overrides (dict): Config values applied after the config class
        transport: Mail transport to inject
        sleep: Wait function to inject into the dispatcher
    """
    app = Flask(__name__)

    config_class = get_config(config_name)
    config_class.init_app(app)
    if overrides:
        app.config.update(overrides)

    errors = validate_config(app.config)
    if errors:
        for error in errors:
            app.logger.error(f"Configuration error: {error}")
        raise RuntimeError("Configuration validation failed")

    log_level = str(app.config['LOG_LEVEL']).upper()
    logging.getLogger('eventpass').setLevel(log_level)
    app.logger.setLevel(log_level)

    app.extensions['eventpass'] = build_components(app.config, transport=transport, sleep=sleep)
    app.register_blueprint(api)
    return app


def components():
    return current_app.extensions['eventpass']


def json_errors(f):
    """Translate domain and store errors into JSON responses."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        try:
            return f(*args, **kwargs)
        except (EventNotFoundError, RegistrationNotFoundError) as e:
            return jsonify({'success': False, 'message': str(e)}), 404
        except DuplicateRegistrationError as e:
            return jsonify({'success': False, 'message': str(e)}), 409
        except ValueError as e:
            return jsonify({'success': False, 'message': str(e)}), 400
        except sqlite3.Error as e:
            logger.error(f"Store error in {f.__name__}: {str(e)}")
            return jsonify({'success': False, 'message': 'Database unavailable, please retry'}), 503
        except Exception as e:
            logger.error(f"Unexpected error in {f.__name__}: {str(e)}")
            return jsonify({'success': False, 'message': 'An unexpected error occurred'}), 500
    return decorated_function


def wants_csv():
    return request.args.get('format', '').lower() == 'csv'


def csv_response(content, filename):
    return Response(
        content,
        mimetype='text/csv',
        headers={'Content-Disposition': f'attachment; filename={filename}'}
    )


@api.route('/events/<int:event_id>/registrations', methods=['POST'])
@json_errors
def register_for_event(event_id):
    """Register a student, issue their credential and email the entry pass"""
    data = request.get_json(silent=True) or {}
    services = components()

    try:
        registration = services['registrations'].register_student(event_id, data)
    except DuplicateRegistrationError as e:
        existing = services['registrations'].find_registration(event_id, e.roll_number)
        if existing is None:
            raise
        # Issuing is idempotent, so a retried request recovers its credential
        credential = services['issuer'].issue_credential(existing)
        return jsonify({
            'success': False,
            'message': str(e),
            'registration': existing.to_dict(),
            'credential': credential.to_dict()
        }), 409

    credential = services['issuer'].issue_credential(registration)

    delivery = None
    if data.get('send_pass', True):
        delivery = services['notifier'].send_registration_pass(registration, credential)
        if delivery.summary.failed:
            logger.warning(f"Entry pass email failed for registration {registration.id}")

    return jsonify({
        'success': True,
        'message': f"Registered {registration.student_name} for event {event_id}",
        'registration': registration.to_dict(),
        'credential': credential.to_dict(),
        'delivery': delivery.to_dict() if delivery else None
    }), 201


@api.route('/registrations/<int:registration_id>/credential', methods=['POST'])
@json_errors
def issue_credential(registration_id):
    """Issue the check-in credential for a registration (idempotent)"""
    services = components()
    registration = services['registrations'].get_registration(registration_id)
    credential = services['issuer'].issue_credential(registration)

    return jsonify({
        'success': True,
        'credential': credential.to_dict()
    }), 201 if credential.created else 200


@api.route('/credentials/<token>/qr.png', methods=['GET'])
@json_errors
def credential_qr(token):
    """Entry pass image for a credential"""
    services = components()
    record = services['issuer'].get_credential(token)
    if not record:
        return jsonify({'success': False, 'message': 'Unknown credential'}), 404

    payload = services['qr_generator'].encode_scan_payload(
        record['qr_token'], record['event_id'], record['registration_id']
    )
    image = services['qr_generator'].generate_pass_image(payload, {
        'student_name': record['student_name'],
        'roll_number': record['roll_number']
    })
    return send_file(io.BytesIO(image), mimetype='image/png')


@api.route('/events/<int:event_id>/scan', methods=['POST'])
@json_errors
def process_scan(event_id):
    """Confirm attendance for a scanned entry pass"""
    data = request.get_json(silent=True) or {}
    services = components()

    services['registrations'].get_event(event_id)
    result = services['validator'].confirm(data.get('qr_code', ''), event_id)

    if result.outcome == ConfirmationResult.REJECTED:
        return jsonify(result.to_dict()), SCAN_STATUS_CODES.get(result.reason, 400)
    return jsonify(result.to_dict())


@api.route('/events/<int:event_id>/attendance', methods=['GET'])
@json_errors
def event_attendance(event_id):
    """Attendance summary and present attendees, as JSON or CSV"""
    services = components()
    event = services['registrations'].get_event(event_id)
    present = services['attendance'].get_present_attendees(event_id)

    if wants_csv():
        return csv_response(
            services['reports'].attendance_csv(present),
            services['reports'].export_filename(event['title'], 'attendance')
        )

    return jsonify({
        'success': True,
        'summary': services['attendance'].get_attendance_summary(event_id),
        'present': present
    })


@api.route('/events/<int:event_id>/certificates', methods=['POST'])
@json_errors
def issue_certificates(event_id):
    """Issue certificates to confirmed attendees and email them"""
    data = request.get_json(silent=True) or {}
    services = components()

    try:
        result = services['certificates'].issue_certificates(
            event_id,
            roll_numbers=data.get('roll_numbers'),
            title=data.get('title'),
            description=data.get('description')
        )
    except CertificateIssueError as e:
        logger.error(str(e))
        return jsonify({
            'success': False,
            'message': 'Certificates could not be issued; it is safe to retry',
            'roll_numbers': e.roll_numbers,
            'error': e.reason
        }), 500

    notification = None
    if result.issued and data.get('notify', True):
        notification = services['notifier'].notify_certificates_ready(event_id, result.issued)

    message = (f"Issued {len(result.issued)} certificate(s)" if result.issued
               else 'All present attendees already have certificates for this event')
    return jsonify({
        'success': True,
        'message': message,
        'certificates': result.to_dict(),
        'notification': notification.to_dict() if notification else None
    })


@api.route('/events/<int:event_id>/notify/new-event', methods=['POST'])
@json_errors
def notify_new_event(event_id):
    """Announce a new event to club members and mentors"""
    services = components()
    report = services['notifier'].announce_new_event(event_id)
    return dispatch_response(report, event_id, 'new_event')


@api.route('/events/<int:event_id>/notify/update', methods=['POST'])
@json_errors
def notify_event_update(event_id):
    """Send an update to everyone registered for the event"""
    data = request.get_json(silent=True) or {}
    services = components()
    report = services['notifier'].announce_event_update(
        event_id, data.get('subject', ''), data.get('message', '')
    )
    return dispatch_response(report, event_id, 'event_update')


def dispatch_response(report, event_id, kind):
    if wants_csv():
        return csv_response(
            components()['reports'].dispatch_csv(report),
            f"event_{event_id}_{kind}_dispatch.csv"
        )

    summary = report.summary
    return jsonify({
        'success': True,
        'message': f"Emails sent: {summary.sent + summary.retried} successful, {summary.failed} failed",
        **report.to_dict()
    })


if __name__ == '__main__':
    application = create_app()
    application.run(debug=application.config['DEBUG'], host='0.0.0.0', port=5000)
