import pytest

from eventpass.modules.attendance_manager import AttendanceManager
from eventpass.modules.certificate_manager import CertificateManager
from eventpass.modules.checkin_validator import CheckInValidator
from eventpass.modules.credential_issuer import CredentialIssuer
from eventpass.modules.database_manager import DatabaseManager
from eventpass.modules.notification_system import NotificationDispatcher, OutboxTransport
from eventpass.modules.qr_generator import QRGenerator
from eventpass.modules.registration_manager import RegistrationManager


class FlakyTransport:
    """Fails a scripted number of times per address, then delivers."""

    def __init__(self, failures=None, always_fail=()):
        self.failures = dict(failures or {})
        self.always_fail = set(always_fail)
        self.calls = []
        self.delivered = []

    def send(self, address, subject, html_body, attachments=()):
        self.calls.append(address)
        if address in self.always_fail:
            raise ConnectionError(f"provider rejected {address}")
        if self.failures.get(address, 0) > 0:
            self.failures[address] -= 1
            raise TimeoutError("provider timed out")
        self.delivered.append({
            'address': address,
            'subject': subject,
            'body': html_body,
            'attachments': list(attachments)
        })
        return f"msg-{len(self.delivered)}"


class RecordingSleep:
    def __init__(self):
        self.calls = []

    def __call__(self, seconds):
        self.calls.append(seconds)


@pytest.fixture
def db(tmp_path):
    manager = DatabaseManager(tmp_path / 'eventpass.db', timeout=10.0)
    yield manager
    manager.close_all_connections()


@pytest.fixture
def qr_generator():
    return QRGenerator()


@pytest.fixture
def registrations(db):
    return RegistrationManager(db)


@pytest.fixture
def attendance(db):
    return AttendanceManager(db)


@pytest.fixture
def issuer(db, qr_generator):
    return CredentialIssuer(db, qr_generator)


@pytest.fixture
def validator(db, qr_generator):
    return CheckInValidator(db, qr_generator)


@pytest.fixture
def certificates(db, attendance, registrations):
    return CertificateManager(db, attendance, registrations)


@pytest.fixture
def sleep():
    return RecordingSleep()


@pytest.fixture
def outbox():
    return OutboxTransport()


@pytest.fixture
def dispatcher(outbox, sleep):
    return NotificationDispatcher(outbox, max_retries=2, retry_delay=1.0,
                                  throttle_delay=2.0, sleep=sleep)


@pytest.fixture
def club_id(db):
    return db.execute_update("INSERT INTO clubs (name) VALUES (?)", ('Coding Club',))


@pytest.fixture
def event_id(db, club_id):
    return create_event(db, club_id, 'Hackathon 2025')


def create_event(db, club_id, title, event_date='2025-03-05 10:00:00'):
    return db.execute_update(
        "INSERT INTO events (club_id, title, description, event_date) VALUES (?, ?, ?, ?)",
        (club_id, title, f"{title} description", event_date)
    )


def add_member(db, club_id, name, email, roll_number, year='2', status='approved'):
    return db.execute_update(
        """INSERT INTO club_registrations
           (club_id, student_name, student_email, roll_number, branch, year, status)
           VALUES (?, ?, ?, ?, ?, ?, ?)""",
        (club_id, name, email, roll_number, 'CSE', year, status)
    )


def add_mentor(db, name, email):
    return db.execute_update("INSERT INTO mentors (name, email) VALUES (?, ?)", (name, email))


def student(roll_number, name=None, email=None, year='3'):
    name = name or f"Student {roll_number}"
    return {
        'student_name': name,
        'student_email': email or f"{roll_number.lower()}@kmit.in",
        'roll_number': roll_number,
        'branch': 'CSE',
        'year': year
    }


def register_and_issue(registrations, issuer, event_id, roll_number, **kwargs):
    registration = registrations.register_student(event_id, student(roll_number, **kwargs))
    return registration, issuer.issue_credential(registration)
