# Event Pass - App Package
"""
Event check-in and certificate notification pipeline for the club portal:
single-use check-in credentials, exactly-once scan confirmation, deduplicated
certificate issuance, and throttled, retrying email notifications.
"""

__version__ = "1.0.0"
__description__ = "Event check-in credentials, attendance confirmation and certificate notifications"

from .modules.database_manager import DatabaseManager
from .modules.qr_generator import QRGenerator
from .modules.registration_manager import RegistrationManager, RegistrationRecord
from .modules.credential_issuer import CredentialIssuer, Credential
from .modules.checkin_validator import CheckInValidator, ConfirmationResult
from .modules.attendance_manager import AttendanceManager
from .modules.certificate_manager import CertificateManager, EligibilityResolver, EligibilityResult
from .modules.certificate_renderer import CertificateRenderer
from .modules.notification_system import (
    NotificationDispatcher,
    MessageTemplate,
    Recipient,
    DispatchOutcome,
    DispatchSummary,
    DispatchReport,
    SMTPTransport,
    OutboxTransport,
)
from .modules.event_notifier import EventNotifier
from .modules.report_generator import ReportGenerator

__all__ = [
    'DatabaseManager',
    'QRGenerator',
    'RegistrationManager',
    'RegistrationRecord',
    'CredentialIssuer',
    'Credential',
    'CheckInValidator',
    'ConfirmationResult',
    'AttendanceManager',
    'CertificateManager',
    'EligibilityResolver',
    'EligibilityResult',
    'CertificateRenderer',
    'NotificationDispatcher',
    'MessageTemplate',
    'Recipient',
    'DispatchOutcome',
    'DispatchSummary',
    'DispatchReport',
    'SMTPTransport',
    'OutboxTransport',
    'EventNotifier',
    'ReportGenerator'
]
