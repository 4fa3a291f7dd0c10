"""
Certificate Manager Module - Event Pass

Derives certificate eligibility from confirmed attendance and records the
certificates. There is at most one certificate per (event, roll number);
the store has no constraint for that pair, so the resolver's check and the
batch insert run in one transaction that holds the write lock from its first
statement. Concurrent issuance runs for an event therefore see each other's
certificates. Issuance can be re-run at any time:
roll numbers that already hold a certificate are reported, not re-issued.
"""

import logging
import secrets
import sqlite3
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Any, Iterable, Optional, Set

from eventpass.exceptions import CertificateIssueError

# Keeps IN (...) lists under SQLite's bound-parameter limit
QUERY_CHUNK_SIZE = 500


@dataclass
class EligibilityResult:
    """Split of confirmed roll numbers into those to issue and those already issued."""
    eligible: Set[str] = field(default_factory=set)
    already_issued: Set[str] = field(default_factory=set)

    @property
    def nothing_to_issue(self) -> bool:
        return not self.eligible

    def to_dict(self) -> Dict[str, Any]:
        return {
            'eligible': sorted(self.eligible),
            'already_issued': sorted(self.already_issued)
        }


@dataclass
class CertificateIssueResult:
    event_id: int
    issued: List[Dict[str, Any]]
    already_issued: List[str]
    ignored: List[str]

    def to_dict(self) -> Dict[str, Any]:
        return {
            'event_id': self.event_id,
            'issued_count': len(self.issued),
            'issued': self.issued,
            'already_issued': self.already_issued,
            'ignored': self.ignored
        }


class EligibilityResolver:
    """
    Computes which confirmed attendees still need a certificate. Read only.
    """

    def __init__(self, database_manager):
        self.db = database_manager
        self.logger = logging.getLogger(__name__)

    def resolve_eligible(self, event_id, confirmed_roll_numbers: Iterable[str],
                         conn: Optional[sqlite3.Connection] = None) -> EligibilityResult:
        """
        Args:
            event_id: Event the certificates are for
            confirmed_roll_numbers: Roll numbers with present attendance
            conn: Connection of an open write transaction; the check then
                excludes any concurrent issuance until that transaction ends

        Returns:
            EligibilityResult: eligible = confirmed minus already certified
        """
        confirmed = {str(roll).strip() for roll in confirmed_roll_numbers if str(roll).strip()}
        if not confirmed:
            return EligibilityResult()

        existing = self.get_certified_roll_numbers(event_id, confirmed, conn=conn)
        result = EligibilityResult(
            eligible=confirmed - existing,
            already_issued=confirmed & existing
        )

        self.logger.info(
            f"Event {event_id}: {len(result.eligible)} eligible, "
            f"{len(result.already_issued)} already certified"
        )
        return result

    def get_certified_roll_numbers(self, event_id, roll_numbers: Iterable[str],
                                   conn: Optional[sqlite3.Connection] = None) -> Set[str]:
        """Roll numbers among ``roll_numbers`` holding a certificate for the event."""
        roll_numbers = sorted(set(roll_numbers))
        certified = set()

        for start in range(0, len(roll_numbers), QUERY_CHUNK_SIZE):
            chunk = roll_numbers[start:start + QUERY_CHUNK_SIZE]
            placeholders = ', '.join('?' for _ in chunk)
            query = f"""SELECT DISTINCT roll_number FROM certificates
                        WHERE event_id = ? AND roll_number IN ({placeholders})"""
            params = (event_id, *chunk)
            if conn is not None:
                rows = conn.execute(query, params).fetchall()
            else:
                rows = self.db.execute_query(query, params)
            certified.update(row['roll_number'] for row in rows)

        return certified


class CertificateManager:
    """
    Issues certificates for an event's confirmed attendees.
    """

    def __init__(self, database_manager, attendance_manager, registration_manager,
                 resolver: EligibilityResolver = None):
        self.db = database_manager
        self.attendance = attendance_manager
        self.registrations = registration_manager
        self.resolver = resolver or EligibilityResolver(database_manager)
        self.logger = logging.getLogger(__name__)

    def issue_certificates(self, event_id, roll_numbers: Optional[Iterable[str]] = None,
                           title: str = None, description: str = None) -> CertificateIssueResult:
        """
        Issue certificates to confirmed attendees who do not have one yet.

        Args:
            event_id: Event to issue for
            roll_numbers: Optional manual selection; only confirmed attendees
                in it are considered, the rest are returned as ``ignored``
            title (str): Certificate title, defaults to "Certificate of Participation - <event>"
            description (str): Defaults to "Awarded for attending <event>"

        Returns:
            CertificateIssueResult: ``issued`` is empty when there is nothing to issue

        Raises:
            EventNotFoundError: If the event does not exist
            CertificateIssueError: If the batch insert failed; nothing was issued
        """
        event = self.registrations.get_event(event_id)
        attendees = {row['roll_number']: row for row in self.attendance.get_present_attendees(event_id)}

        ignored = []
        confirmed = set(attendees)
        if roll_numbers is not None:
            selected = {str(roll).strip().upper() for roll in roll_numbers if str(roll).strip()}
            ignored = sorted(selected - confirmed)
            confirmed &= selected

        title = title or f"Certificate of Participation - {event['title']}"
        description = description or f"Awarded for attending {event['title']}"
        issued_at = datetime.now().isoformat(sep=' ', timespec='seconds')
        rows = []

        # The check and the insert share one write-locked transaction
        try:
            with self.db.transaction(immediate=True) as conn:
                eligibility = self.resolver.resolve_eligible(event_id, confirmed, conn=conn)

                for roll_number in sorted(eligibility.eligible):
                    attendee = attendees[roll_number]
                    rows.append({
                        'certificate_number': self._generate_certificate_number(),
                        'event_id': event_id,
                        'club_id': event['club_id'],
                        'roll_number': roll_number,
                        'student_name': attendee['student_name'],
                        'student_email': attendee['student_email'],
                        'branch': attendee['branch'],
                        'year': attendee['year'],
                        'certificate_title': title,
                        'description': description,
                        'issued_at': issued_at
                    })

                if rows:
                    conn.executemany(
                        """INSERT INTO certificates
                           (certificate_number, event_id, club_id, roll_number, student_name,
                            student_email, certificate_title, description, issued_at)
                           VALUES (:certificate_number, :event_id, :club_id, :roll_number, :student_name,
                                   :student_email, :certificate_title, :description, :issued_at)""",
                        rows
                    )
        except sqlite3.Error as e:
            pending = [row['roll_number'] for row in rows] or sorted(confirmed)
            raise CertificateIssueError(event_id, pending, str(e)) from e

        if eligibility.nothing_to_issue:
            self.logger.info(f"No certificates to issue for event {event_id}")
            return CertificateIssueResult(
                event_id=event_id,
                issued=[],
                already_issued=sorted(eligibility.already_issued),
                ignored=ignored
            )

        self.logger.info(f"Issued {len(rows)} certificate(s) for event {event_id}")
        return CertificateIssueResult(
            event_id=event_id,
            issued=rows,
            already_issued=sorted(eligibility.already_issued),
            ignored=ignored
        )

    def get_event_certificates(self, event_id) -> List[Dict[str, Any]]:
        return self.db.execute_query(
            "SELECT * FROM certificates WHERE event_id = ? ORDER BY issued_at DESC, id",
            (event_id,)
        )

    @staticmethod
    def _generate_certificate_number() -> str:
        return f"CERT-{datetime.now().strftime('%Y%m%d')}-{secrets.token_hex(4).upper()}"
