# Event Pass - Modules Package
"""
Core business logic modules for the event check-in and certificate
notification pipeline.
"""

__version__ = "1.0.0"
__description__ = "Core modules for event check-in and notification functionality"

# Module descriptions
MODULES = {
    'database_manager': 'Database connections and schema management',
    'qr_generator': 'Credential tokens, scan payloads and entry pass images',
    'registration_manager': 'Event registrations and event lookup',
    'credential_issuer': 'Idempotent check-in credential issuance',
    'checkin_validator': 'Exactly-once attendance confirmation',
    'attendance_manager': 'Attendance queries and summaries',
    'certificate_manager': 'Certificate eligibility and issuance',
    'certificate_renderer': 'Certificate PDF rendering',
    'notification_system': 'Retrying, throttled notification dispatch',
    'event_notifier': 'Recipient resolution and notification templates',
    'report_generator': 'CSV exports'
}
