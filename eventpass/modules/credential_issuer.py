"""
Credential Issuer Module - Event Pass

Mints the single-use check-in credential for a registration and stores the
matching pending attendance record. Issuing is idempotent per registration:
the attendance table's unique registration_id column decides which of two
racing calls wins, and the loser returns the winner's credential.
"""

import logging
import sqlite3
from dataclasses import dataclass, asdict
from typing import Dict, Any

from eventpass.modules.qr_generator import QRGenerator


@dataclass(frozen=True)
class Credential:
    """A check-in credential and the payload that carries it."""
    token: str
    event_id: int
    registration_id: int
    payload: str
    created: bool

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class CredentialIssuer:
    """Issues check-in credentials for committed registrations."""

    def __init__(self, database_manager, qr_generator: QRGenerator = None):
        """
        Args:
            database_manager: Database manager instance
            qr_generator (QRGenerator): Token and payload source
        """
        self.db = database_manager
        self.qr_generator = qr_generator or QRGenerator()
        self.logger = logging.getLogger(__name__)

    def issue_credential(self, registration) -> Credential:
        """
        Issue (or return the already issued) credential for a registration.

        Identity fields are snapshotted onto the attendance record so later
        display does not depend on the registration row.

        Args:
            registration (RegistrationRecord): Committed registration

        Returns:
            Credential: ``created`` is False when an earlier call already issued it
        """
        token = self.qr_generator.generate_credential_token()

        try:
            self.db.execute_update(
                """INSERT INTO event_attendance
                   (qr_token, event_id, registration_id, student_name, student_email,
                    roll_number, branch, year, status)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?, 'pending')""",
                (token, registration.event_id, registration.id, registration.student_name,
                 registration.student_email, registration.roll_number,
                 registration.branch, registration.year)
            )
        except sqlite3.IntegrityError:
            existing = self.db.execute_query(
                "SELECT qr_token, event_id FROM event_attendance WHERE registration_id = ?",
                (registration.id,),
                fetch_all=False
            )
            if existing is None:
                # Not a duplicate registration; e.g. a token collision or bad event reference
                raise

            self.logger.info(f"Credential already issued for registration {registration.id}")
            return self._build_credential(existing['qr_token'], existing['event_id'],
                                          registration.id, created=False)

        self.logger.info(
            f"Issued credential for registration {registration.id} "
            f"({registration.roll_number}, event {registration.event_id})"
        )
        return self._build_credential(token, registration.event_id, registration.id, created=True)

    def get_credential(self, token: str):
        """Look up a credential's attendance record; None if unknown."""
        return self.db.execute_query(
            "SELECT * FROM event_attendance WHERE qr_token = ?",
            (token,),
            fetch_all=False
        )

    def _build_credential(self, token, event_id, registration_id, created) -> Credential:
        return Credential(
            token=token,
            event_id=event_id,
            registration_id=registration_id,
            payload=self.qr_generator.encode_scan_payload(token, event_id, registration_id),
            created=created
        )
