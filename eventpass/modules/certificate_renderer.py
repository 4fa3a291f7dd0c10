"""
Certificate Renderer Module - Event Pass

Renders a one-page participation certificate as PDF bytes for the
certificate-ready email.
"""

import io
from datetime import datetime
from typing import Optional

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4, landscape
from reportlab.pdfgen import canvas

ROMAN_YEARS = {1: 'I', 2: 'II', 3: 'III', 4: 'IV'}


def to_roman_year(year) -> str:
    """Render a B.Tech year (1-4) as a Roman numeral; anything else is returned as text."""
    try:
        number = int(str(year).strip())
    except (TypeError, ValueError):
        return str(year or 'I')
    return ROMAN_YEARS.get(number, str(number))


def format_event_date(event_date) -> str:
    """Format an ISO date/datetime as e.g. '05 March 2025'."""
    if not event_date:
        return 'Date to be announced'
    if isinstance(event_date, datetime):
        value = event_date
    else:
        try:
            value = datetime.fromisoformat(str(event_date))
        except ValueError:
            return str(event_date)
    return value.strftime('%d %B %Y')


def safe_filename(text: str) -> str:
    return ''.join(ch if ch.isalnum() else '_' for ch in text)


class CertificateRenderer:
    """Produces certificate PDFs with reportlab."""

    def __init__(self, organisation: str = 'KMIT'):
        self.organisation = organisation

    def render(self, student_name: str, event_title: str, event_date=None,
               club_name: str = '', branch: Optional[str] = None, year=None) -> bytes:
        """
        Args:
            student_name (str): Name printed on the certificate
            event_title (str): Event attended
            event_date: ISO date string or datetime
            club_name (str): Organising club
            branch (str): Student's branch, defaults to Computer Science
            year: Student's year of study, defaults to 1

        Returns:
            bytes: PDF document
        """
        buffer = io.BytesIO()
        width, height = landscape(A4)
        pdf = canvas.Canvas(buffer, pagesize=(width, height))
        pdf.setTitle(f"Certificate - {student_name}")

        # Border
        pdf.setStrokeColor(colors.HexColor('#1a365d'))
        pdf.setLineWidth(4)
        pdf.rect(30, 30, width - 60, height - 60)

        center = width / 2
        pdf.setFillColor(colors.HexColor('#1a365d'))
        pdf.setFont('Times-Bold', 32)
        pdf.drawCentredString(center, height - 130, 'CERTIFICATE OF PARTICIPATION')

        pdf.setFillColor(colors.black)
        pdf.setFont('Times-Roman', 16)
        pdf.drawCentredString(center, height - 190, 'This is to certify that')

        pdf.setFillColor(colors.HexColor('#2563eb'))
        pdf.setFont('Times-Bold', 26)
        pdf.drawCentredString(center, height - 230, student_name)

        pdf.setFillColor(colors.black)
        pdf.setFont('Times-Roman', 14)
        pdf.drawCentredString(
            center, height - 260,
            f"B.Tech {to_roman_year(year or 1)} Year - {branch or 'Computer Science'}"
        )

        pdf.setFont('Times-Roman', 16)
        pdf.drawCentredString(center, height - 300, 'has successfully participated in')

        pdf.setFillColor(colors.HexColor('#dc2626'))
        pdf.setFont('Times-Bold', 20)
        pdf.drawCentredString(center, height - 335, event_title)

        pdf.setFillColor(colors.black)
        pdf.setFont('Times-Roman', 14)
        organiser = f"organized by {club_name}, {self.organisation}" if club_name else f"organized at {self.organisation}"
        pdf.drawCentredString(center, height - 365, organiser)
        pdf.drawCentredString(center, height - 390, f"held on {format_event_date(event_date)}")

        pdf.showPage()
        pdf.save()
        return buffer.getvalue()

    @staticmethod
    def filename_for(student_name: str, event_title: str) -> str:
        return f"Certificate_{safe_filename(student_name)}_{safe_filename(event_title)}.pdf"
