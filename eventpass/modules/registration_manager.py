"""
Registration Manager Module - Event Pass

Thin access layer over the registration subsystem's tables. Registrations
are owned by the surrounding portal; this module only records new ones,
reads them back, and looks up the events they point to.
"""

import logging
import re
import sqlite3
from dataclasses import dataclass, asdict
from typing import Dict, List, Any, Optional

from eventpass.exceptions import (
    DuplicateRegistrationError,
    EventNotFoundError,
    RegistrationNotFoundError,
)

EMAIL_PATTERN = re.compile(r'^[^@\s]+@[^@\s]+\.[^@\s]+$')


@dataclass(frozen=True)
class RegistrationRecord:
    """A committed registration of one student for one event."""
    id: int
    event_id: int
    student_name: str
    student_email: str
    roll_number: str
    branch: Optional[str]
    year: Optional[str]
    created_at: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class RegistrationManager:
    """
    Reads and records event registrations.
    """

    REQUIRED_FIELDS = ('student_name', 'student_email', 'roll_number')

    def __init__(self, database_manager):
        """
        Args:
            database_manager: Database manager instance
        """
        self.db = database_manager
        self.logger = logging.getLogger(__name__)

    def get_event(self, event_id) -> Dict[str, Any]:
        """
        Get an event together with its club name.

        Raises:
            EventNotFoundError: If the event does not exist
        """
        event = self.db.execute_query(
            """SELECT e.*, c.name AS club_name
               FROM events e
               LEFT JOIN clubs c ON e.club_id = c.id
               WHERE e.id = ?""",
            (event_id,),
            fetch_all=False
        )
        if not event:
            raise EventNotFoundError(event_id)
        return event

    def register_student(self, event_id, student_data: Dict[str, Any]) -> RegistrationRecord:
        """
        Record a student's registration for an event.

        Args:
            event_id: Event to register for
            student_data (dict): student_name, student_email, roll_number, branch, year

        Returns:
            RegistrationRecord: The committed registration

        Raises:
            ValueError: If required fields are missing or malformed
            EventNotFoundError: If the event does not exist
            DuplicateRegistrationError: If the roll number is already registered
        """
        for field in self.REQUIRED_FIELDS:
            if not str(student_data.get(field) or '').strip():
                raise ValueError(f"Missing required field: {field}")

        email = student_data['student_email'].strip()
        if not EMAIL_PATTERN.match(email):
            raise ValueError(f"Invalid email address: {email}")

        self.get_event(event_id)

        roll_number = student_data['roll_number'].strip().upper()
        year = student_data.get('year')
        try:
            registration_id = self.db.execute_update(
                """INSERT INTO event_registrations
                   (event_id, student_name, student_email, roll_number, branch, year)
                   VALUES (?, ?, ?, ?, ?, ?)""",
                (event_id, student_data['student_name'].strip(), email, roll_number,
                 student_data.get('branch'), str(year) if year is not None else None)
            )
        except sqlite3.IntegrityError:
            raise DuplicateRegistrationError(event_id, roll_number)

        self.logger.info(f"Registered {roll_number} for event {event_id}")
        return self.get_registration(registration_id)

    def get_registration(self, registration_id) -> RegistrationRecord:
        """
        Raises:
            RegistrationNotFoundError: If no such registration exists
        """
        row = self.db.execute_query(
            "SELECT * FROM event_registrations WHERE id = ?",
            (registration_id,),
            fetch_all=False
        )
        if not row:
            raise RegistrationNotFoundError(registration_id)
        return RegistrationRecord(**row)

    def get_event_registrations(self, event_id) -> List[RegistrationRecord]:
        rows = self.db.execute_query(
            "SELECT * FROM event_registrations WHERE event_id = ? ORDER BY created_at, id",
            (event_id,)
        )
        return [RegistrationRecord(**row) for row in rows]

    def find_registration(self, event_id, roll_number: str) -> Optional[RegistrationRecord]:
        """The registration of a roll number for an event, or None."""
        row = self.db.execute_query(
            "SELECT * FROM event_registrations WHERE event_id = ? AND roll_number = ?",
            (event_id, str(roll_number).strip().upper()),
            fetch_all=False
        )
        return RegistrationRecord(**row) if row else None
