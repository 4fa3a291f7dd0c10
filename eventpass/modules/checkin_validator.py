"""
Check-in Validator Module - Event Pass

Validates scanned entry passes and commits attendance.

Each credential moves through a two-state machine, ``pending -> present``,
and ``present`` is terminal. The transition is a single conditional UPDATE
whose WHERE clause includes ``status = 'pending'``; the store applies it to
at most one caller no matter how many scanners (threads or processes) fire
on the same credential. Everyone else sees zero affected rows and is told
the credential was already confirmed, along with the original timestamp.
"""

import logging
from dataclasses import dataclass, asdict
from datetime import datetime
from typing import Dict, Any, Optional, Callable

from eventpass.modules.qr_generator import QRGenerator

STATUS_PENDING = 'pending'
STATUS_PRESENT = 'present'


@dataclass(frozen=True)
class ConfirmationResult:
    """Outcome of one scan."""

    CONFIRMED = 'confirmed'
    ALREADY_CONFIRMED = 'already_confirmed'
    REJECTED = 'rejected'

    REASON_MALFORMED = 'malformed'
    REASON_WRONG_EVENT = 'wrong_event'
    REASON_UNKNOWN_CREDENTIAL = 'unknown_credential'

    outcome: str
    message: str
    reason: Optional[str] = None
    student_name: Optional[str] = None
    roll_number: Optional[str] = None
    student_email: Optional[str] = None
    confirmed_at: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.outcome == self.CONFIRMED

    def to_dict(self) -> Dict[str, Any]:
        result = asdict(self)
        result['success'] = self.success
        return result


class CheckInValidator:
    """
    Confirms attendance from scanned payloads.
    """

    def __init__(self, database_manager, qr_generator: QRGenerator = None,
                 clock: Callable[[], datetime] = datetime.now):
        """
        Args:
            database_manager: Database manager instance
            qr_generator (QRGenerator): Payload decoder
            clock: Source of confirmation timestamps
        """
        self.db = database_manager
        self.qr_generator = qr_generator or QRGenerator()
        self.clock = clock
        self.logger = logging.getLogger(__name__)

    def confirm(self, scanned_payload: str, target_event_id) -> ConfirmationResult:
        """
        Confirm attendance for a scanned payload at the given event's scanner.

        Args:
            scanned_payload (str): Raw text read from the QR code
            target_event_id: Event the scanner is operating for

        Returns:
            ConfirmationResult: confirmed, already_confirmed, or rejected with a reason
        """
        decoded = self.qr_generator.validate_scan_payload(scanned_payload)
        if not decoded['valid']:
            self.logger.warning(f"Rejected malformed scan payload: {decoded['error']}")
            return ConfirmationResult(
                outcome=ConfirmationResult.REJECTED,
                reason=ConfirmationResult.REASON_MALFORMED,
                message=f"Invalid QR code: {decoded['error']}"
            )

        if decoded['event_id'] != str(target_event_id):
            self.logger.warning(
                f"Rejected credential for event {decoded['event_id']} scanned at event {target_event_id}"
            )
            return ConfirmationResult(
                outcome=ConfirmationResult.REJECTED,
                reason=ConfirmationResult.REASON_WRONG_EVENT,
                message='This QR code is for a different event'
            )

        token = decoded['token']
        confirmed_at = self.clock().isoformat(sep=' ', timespec='seconds')

        affected = self.db.execute_update(
            """UPDATE event_attendance
               SET status = ?, confirmed_at = ?
               WHERE qr_token = ? AND event_id = ? AND status = ?""",
            (STATUS_PRESENT, confirmed_at, token, target_event_id, STATUS_PENDING)
        )

        record = self.db.execute_query(
            """SELECT student_name, student_email, roll_number, status, confirmed_at
               FROM event_attendance
               WHERE qr_token = ? AND event_id = ?""",
            (token, target_event_id),
            fetch_all=False
        )

        if affected == 1:
            self.logger.info(f"Attendance confirmed for {record['roll_number']} at event {target_event_id}")
            return ConfirmationResult(
                outcome=ConfirmationResult.CONFIRMED,
                message=f"Attendance marked for {record['student_name']}",
                student_name=record['student_name'],
                roll_number=record['roll_number'],
                student_email=record['student_email'],
                confirmed_at=record['confirmed_at']
            )

        if record is None:
            self.logger.warning(f"Rejected unknown credential at event {target_event_id}")
            return ConfirmationResult(
                outcome=ConfirmationResult.REJECTED,
                reason=ConfirmationResult.REASON_UNKNOWN_CREDENTIAL,
                message='QR code not recognised for this event'
            )

        self.logger.info(f"Duplicate scan for {record['roll_number']} at event {target_event_id}")
        return ConfirmationResult(
            outcome=ConfirmationResult.ALREADY_CONFIRMED,
            message=f"Attendance already marked for {record['student_name']}",
            student_name=record['student_name'],
            roll_number=record['roll_number'],
            student_email=record['student_email'],
            confirmed_at=record['confirmed_at']
        )
