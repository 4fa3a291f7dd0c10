"""
Report Generator Module - Event Pass

CSV exports for organisers: the attendance sheet of an event and the
per-recipient outcome list of a dispatch job.
"""

import logging
from datetime import datetime
from typing import Dict, List, Any

import pandas as pd

ATTENDANCE_COLUMNS = ['S.No', 'Student Name', 'Roll Number', 'Email', 'Status', 'Scan Time']
DISPATCH_COLUMNS = ['Name', 'Email', 'Status', 'Attempts', 'Error']


class ReportGenerator:
    """Builds CSV documents with pandas."""

    def __init__(self):
        self.logger = logging.getLogger(__name__)

    def attendance_csv(self, attendees: List[Dict[str, Any]]) -> str:
        """
        Args:
            attendees: Present attendee rows (student_name, roll_number,
                student_email, confirmed_at)

        Returns:
            str: CSV text with a header row even when empty
        """
        records = [
            {
                'S.No': index,
                'Student Name': row['student_name'],
                'Roll Number': row['roll_number'],
                'Email': row.get('student_email') or '',
                'Status': 'Present',
                'Scan Time': self._format_timestamp(row.get('confirmed_at'))
            }
            for index, row in enumerate(attendees, start=1)
        ]
        df = pd.DataFrame(records, columns=ATTENDANCE_COLUMNS)
        self.logger.info(f"Attendance export built with {len(df)} row(s)")
        return df.to_csv(index=False)

    def dispatch_csv(self, report) -> str:
        """
        Args:
            report (DispatchReport): Result of a dispatch job

        Returns:
            str: One CSV row per recipient
        """
        records = [
            {
                'Name': outcome.name,
                'Email': outcome.address,
                'Status': outcome.status,
                'Attempts': outcome.attempts,
                'Error': outcome.error or ''
            }
            for outcome in report.results
        ]
        df = pd.DataFrame(records, columns=DISPATCH_COLUMNS)
        return df.to_csv(index=False)

    @staticmethod
    def _format_timestamp(value) -> str:
        if not value:
            return ''
        try:
            return datetime.fromisoformat(str(value)).strftime('%d/%m/%Y, %I:%M:%S %p')
        except ValueError:
            return str(value)

    @staticmethod
    def export_filename(title: str, suffix: str) -> str:
        safe_title = ''.join(ch if ch.isalnum() else '_' for ch in title)
        return f"{safe_title}_{suffix}.csv"
