"""
Attendance Manager Module - Event Pass

Read side of the attendance table: who registered, who checked in, and the
per-event summary shown to organisers. Writes happen only in the credential
issuer (pending rows) and the check-in validator (pending -> present).
"""

import logging
from typing import Dict, List, Any

from eventpass.modules.checkin_validator import STATUS_PENDING, STATUS_PRESENT


class AttendanceManager:
    """
    Attendance queries for a single event.
    """

    def __init__(self, database_manager):
        """
        Args:
            database_manager: Database manager instance
        """
        self.db = database_manager
        self.logger = logging.getLogger(__name__)

    def get_event_attendance(self, event_id) -> List[Dict[str, Any]]:
        """All attendance rows for an event, present first, then by name."""
        return self.db.execute_query(
            """SELECT id, qr_token, event_id, registration_id, student_name, student_email,
                      roll_number, branch, year, status, confirmed_at, created_at
               FROM event_attendance
               WHERE event_id = ?
               ORDER BY CASE status WHEN ? THEN 0 ELSE 1 END, confirmed_at, student_name""",
            (event_id, STATUS_PRESENT)
        )

    def get_present_attendees(self, event_id) -> List[Dict[str, Any]]:
        """Attendees whose credential was confirmed, in check-in order."""
        return self.db.execute_query(
            """SELECT student_name, student_email, roll_number, branch, year, confirmed_at
               FROM event_attendance
               WHERE event_id = ? AND status = ?
               ORDER BY confirmed_at, id""",
            (event_id, STATUS_PRESENT)
        )

    def get_attendance_summary(self, event_id) -> Dict[str, Any]:
        """
        Registered / present / pending counts for an event.
        """
        rows = self.db.execute_query(
            """SELECT status, COUNT(*) AS count
               FROM event_attendance
               WHERE event_id = ?
               GROUP BY status""",
            (event_id,)
        )
        counts = {row['status']: row['count'] for row in rows}
        present = counts.get(STATUS_PRESENT, 0)
        pending = counts.get(STATUS_PENDING, 0)

        return {
            'event_id': event_id,
            'registered': present + pending,
            'present': present,
            'pending': pending
        }
