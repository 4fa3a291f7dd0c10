"""
QR Code Generator Module - Event Pass

This module mints check-in credentials and handles the scan payload that is
embedded in each registrant's entry pass. The payload is compact JSON so it
survives the QR round trip unchanged, and the image is a plain PNG that can
be attached to an email or served directly.

Features:
- Cryptographically random credential tokens
- Scan payload encoding and validation
- Entry pass QR image generation with attendee details
"""

import qrcode
import io
import json
import secrets
import logging
from typing import Dict, Any, Optional
from PIL import Image, ImageDraw, ImageFont

PAYLOAD_KEYS = ('token', 'event_id', 'registration_id')


class QRGenerator:
    """
    Credential and entry pass generator.
    """

    def __init__(self, token_bytes: int = 32, box_size: int = 10, border: int = 4):
        """
        Initialize the generator.

        Args:
            token_bytes (int): Random bytes per credential (minimum 16)
            box_size (int): Size of each QR box in pixels
            border (int): QR quiet zone in boxes (minimum is 4)
        """
        if token_bytes < 16:
            raise ValueError("Credential tokens need at least 16 random bytes")

        self.logger = logging.getLogger(__name__)
        self.token_bytes = token_bytes
        self.default_settings = {
            'version': None,  # fit to payload
            'error_correction': qrcode.constants.ERROR_CORRECT_M,
            'box_size': box_size,
            'border': border,
            'fill_color': 'black',
            'back_color': 'white'
        }

    def generate_credential_token(self) -> str:
        """Return a new URL-safe credential token."""
        return secrets.token_urlsafe(self.token_bytes)

    @staticmethod
    def encode_scan_payload(token: str, event_id, registration_id=None) -> str:
        """
        Build the string embedded in the QR code.

        Args:
            token (str): Credential token
            event_id: Event the credential belongs to
            registration_id: Registration the credential was issued for

        Returns:
            str: Compact JSON payload
        """
        payload = {'token': token, 'event_id': str(event_id)}
        if registration_id is not None:
            payload['registration_id'] = str(registration_id)
        return json.dumps(payload, sort_keys=True, separators=(',', ':'))

    @staticmethod
    def validate_scan_payload(qr_data) -> Dict[str, Any]:
        """
        Validate and decode a scanned payload.

        Args:
            qr_data (str): Raw text read from the QR code

        Returns:
            dict: ``{'valid': True, 'token', 'event_id', 'registration_id'}`` or
            ``{'valid': False, 'error', 'error_type'}``
        """
        if not isinstance(qr_data, str) or not qr_data.strip():
            return {
                'valid': False,
                'error': 'No QR code data provided',
                'error_type': 'malformed'
            }

        try:
            decoded = json.loads(qr_data.strip())
        except json.JSONDecodeError:
            return {
                'valid': False,
                'error': 'Invalid QR code format',
                'error_type': 'malformed'
            }

        if not isinstance(decoded, dict):
            return {
                'valid': False,
                'error': 'Invalid QR code format',
                'error_type': 'malformed'
            }

        token = decoded.get('token')
        event_id = decoded.get('event_id')
        if not isinstance(token, str) or not token:
            return {
                'valid': False,
                'error': 'Missing required field: token',
                'error_type': 'malformed'
            }
        if event_id is None or str(event_id) == '':
            return {
                'valid': False,
                'error': 'Missing required field: event_id',
                'error_type': 'malformed'
            }

        registration_id = decoded.get('registration_id')
        return {
            'valid': True,
            'token': token,
            'event_id': str(event_id),
            'registration_id': str(registration_id) if registration_id is not None else None
        }

    def generate_pass_image(self, payload: str,
                            attendee: Optional[Dict[str, Any]] = None) -> bytes:
        """
        Render the entry pass as PNG bytes.

        Args:
            payload (str): Encoded scan payload
            attendee (dict): Optional name / roll number / event title shown under the code

        Returns:
            bytes: PNG image data
        """
        settings = self.default_settings
        qr = qrcode.QRCode(
            version=settings['version'],
            error_correction=settings['error_correction'],
            box_size=settings['box_size'],
            border=settings['border']
        )
        qr.add_data(payload)
        qr.make(fit=True)

        img = qr.make_image(
            fill_color=settings['fill_color'],
            back_color=settings['back_color']
        ).convert('RGB')

        if attendee:
            img = self._add_attendee_overlay(img, attendee)

        buffer = io.BytesIO()
        img.save(buffer, format='PNG')
        return buffer.getvalue()

    def _add_attendee_overlay(self, qr_img: Image.Image, attendee: Dict[str, Any]) -> Image.Image:
        """
        Add a caption with the attendee's details below the QR code.

        Args:
            qr_img (Image.Image): QR code image
            attendee (dict): Attendee information

        Returns:
            Image.Image: QR code with caption
        """
        lines = [
            attendee.get('student_name', ''),
            attendee.get('roll_number', ''),
            attendee.get('event_title', '')
        ]
        lines = [str(line) for line in lines if line]
        if not lines:
            return qr_img

        width, height = qr_img.size
        canvas = Image.new('RGB', (width, height + 25 * len(lines) + 10), 'white')
        canvas.paste(qr_img, (0, 0))
        draw = ImageDraw.Draw(canvas)

        try:
            font = ImageFont.truetype("DejaVuSans.ttf", 14)
        except OSError:
            font = ImageFont.load_default()

        text_y = height + 5
        for line in lines:
            bbox = draw.textbbox((0, 0), line, font=font)
            text_width = bbox[2] - bbox[0]
            draw.text(((width - text_width) // 2, text_y), line, fill='black', font=font)
            text_y += 25

        return canvas
