"""QR payload encoding and image rendering."""
import base64
import io
import json
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict

import qrcode
from qrcode.constants import ERROR_CORRECT_H, ERROR_CORRECT_L, ERROR_CORRECT_M, ERROR_CORRECT_Q

from edutend.utils.errors import MalformedPayload

ERROR_CORRECTION_LEVELS = {
    'L': ERROR_CORRECT_L,
    'M': ERROR_CORRECT_M,
    'Q': ERROR_CORRECT_Q,
    'H': ERROR_CORRECT_H,
}


@dataclass(frozen=True)
class SessionPayload:
    """Identifiers embedded in a session's QR image."""

    session_id: str
    course_id: int
    expires_at: datetime

    def encode(self) -> str:
        return json.dumps({
            'sessionId': self.session_id,
            'courseId': self.course_id,
            'expiresAt': self.expires_at.isoformat() + 'Z'
        }, separators=(',', ':'))

    @classmethod
    def decode(cls, raw: Any) -> 'SessionPayload':
        """Parse a scanned payload, raising MalformedPayload on any shape mismatch."""
        if not isinstance(raw, str) or not raw.strip():
            raise MalformedPayload()

        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            raise MalformedPayload()

        if not isinstance(data, dict):
            raise MalformedPayload()

        session_id = data.get('sessionId')
        course_id = data.get('courseId')
        expires_at = data.get('expiresAt')

        if not isinstance(session_id, str) or not session_id:
            raise MalformedPayload("Invalid QR code format: missing session")
        # bool is an int subclass
        if isinstance(course_id, bool) or not isinstance(course_id, int):
            raise MalformedPayload("Invalid QR code format: missing course")
        if not isinstance(expires_at, str):
            raise MalformedPayload("Invalid QR code format: missing expiry")

        try:
            parsed_expiry = datetime.fromisoformat(expires_at.rstrip('Z'))
        except ValueError:
            raise MalformedPayload("Invalid QR code format: bad expiry")

        return cls(session_id=session_id, course_id=course_id, expires_at=parsed_expiry.replace(tzinfo=None))


class QRService:
    """Service for QR code operations."""

    def __init__(self, error_correction: str = 'M', box_size: int = 10, border: int = 1):
        self.error_correction = ERROR_CORRECTION_LEVELS.get(error_correction.upper(), ERROR_CORRECT_M)
        self.box_size = box_size
        self.border = border

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> 'QRService':
        return cls(
            error_correction=config.get('QR_ERROR_CORRECTION', 'M'),
            box_size=config.get('QR_BOX_SIZE', 10),
            border=config.get('QR_BORDER', 1)
        )

    def render(self, payload: str) -> str:
        """Render a payload string as a PNG data URI."""
        qr = qrcode.QRCode(
            version=None,  # Auto-determine size
            error_correction=self.error_correction,
            box_size=self.box_size,
            border=self.border,
        )
        qr.add_data(payload)
        qr.make(fit=True)

        img = qr.make_image(fill_color="black", back_color="white")

        buffered = io.BytesIO()
        img.save(buffered, format="PNG")
        img_str = base64.b64encode(buffered.getvalue()).decode()

        return f"data:image/png;base64,{img_str}"
