#
# qr_encoder.py
# Renders QR codes for wallet pass hand-off and attendance check-in
#

import base64
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from io import BytesIO
from typing import Optional, Tuple, Union

import jwt
import qrcode
from qrcode.constants import ERROR_CORRECT_L, ERROR_CORRECT_M, ERROR_CORRECT_Q, ERROR_CORRECT_H

from app.config import get_settings
from app.core.exceptions import PermissionDeniedError
from app.services.pass_descriptor_builder import iso_timestamp
from app.services.wallet_pass_service import ArchiveArtifact, TokenArtifact

logger = logging.getLogger(__name__)

ERROR_CORRECTION_LEVELS = {
    "L": ERROR_CORRECT_L,
    "M": ERROR_CORRECT_M,
    "Q": ERROR_CORRECT_Q,
    "H": ERROR_CORRECT_H,
}
DOWNLOAD_TICKET_AUDIENCE = "pass-download"


@dataclass
class ScannableCode:
    payload: str
    png: bytes
    error_correction: str
    is_reference: bool = False

    @property
    def png_base64(self) -> str:
        return base64.b64encode(self.png).decode("utf-8")


def attendance_token(employee_id: str, at: Optional[datetime] = None) -> str:
    """Short attendance-check payload: ATTENDANCE_<id>_<timestamp>."""
    at = at or datetime.now(timezone.utc)
    return f"ATTENDANCE_{employee_id}_{iso_timestamp(at)}"


class QREncoder:
    """Stateless QR renderer plus download-ticket helpers."""

    def __init__(
        self,
        inline_max_bytes: Optional[int] = None,
        download_secret: Optional[str] = None,
        download_ttl_seconds: Optional[int] = None,
        public_base_url: Optional[str] = None,
        api_prefix: Optional[str] = None,
    ):
        settings = get_settings()
        self.inline_max_bytes = (
            inline_max_bytes if inline_max_bytes is not None else settings.QR_INLINE_MAX_BYTES
        )
        self.download_secret = download_secret or settings.PASS_DOWNLOAD_SECRET
        self.download_ttl_seconds = (
            download_ttl_seconds
            if download_ttl_seconds is not None
            else settings.PASS_DOWNLOAD_TTL_SECONDS
        )
        self.public_base_url = (public_base_url or settings.PUBLIC_BASE_URL).rstrip("/")
        self.api_prefix = api_prefix if api_prefix is not None else settings.API_V1_PREFIX

    def encode(self, payload: Union[str, bytes], error_correction: str = "M") -> ScannableCode:
        """Render a payload as a PNG QR code."""
        if error_correction not in ERROR_CORRECTION_LEVELS:
            raise ValueError(f"Unknown error correction level: {error_correction}")

        text = payload.decode("utf-8") if isinstance(payload, bytes) else payload
        qr = qrcode.QRCode(
            error_correction=ERROR_CORRECTION_LEVELS[error_correction],
            box_size=10,
            border=2,
        )
        qr.add_data(text)
        qr.make(fit=True)
        img = qr.make_image(fill_color="black", back_color="white")

        buffer = BytesIO()
        img.save(buffer, format="PNG")
        return ScannableCode(payload=text, png=buffer.getvalue(), error_correction=error_correction)

    def encode_attendance(self, employee_id: str, at: Optional[datetime] = None) -> ScannableCode:
        return self.encode(attendance_token(employee_id, at), error_correction="M")

    def encode_artifact(
        self,
        artifact: Union[ArchiveArtifact, TokenArtifact],
        reference_url: Optional[str] = None,
    ) -> ScannableCode:
        """
        Encode an artifact for camera scanning.

        Small artifacts are embedded inline; anything above
        inline_max_bytes is replaced by a short reference that the server
        resolves back to the artifact.
        """
        if isinstance(artifact, TokenArtifact):
            size = len(artifact.save_url.encode("utf-8"))
            if size <= self.inline_max_bytes:
                return self.encode(artifact.save_url, error_correction="H")
            employee_id, platform = artifact.employee_id, "google"
        else:
            size = artifact.size
            if size <= self.inline_max_bytes:
                encoded = base64.b64encode(artifact.data).decode("ascii")
                return self.encode(
                    f"data:{artifact.content_type};base64,{encoded}", error_correction="H"
                )
            employee_id, platform = artifact.serial_number, "apple"

        if reference_url is None:
            reference_url = self.download_url(employee_id, platform)

        logger.debug(f"Artifact of {size} bytes exceeds inline QR limit, encoding reference")
        code = self.encode(reference_url, error_correction="H")
        code.is_reference = True
        return code

    def create_download_ticket(self, employee_id: str, platform: str = "apple") -> str:
        """Short-lived signed ticket identifying a pass to download."""
        now = int(time.time())
        payload = {
            "sub": employee_id,
            "aud": DOWNLOAD_TICKET_AUDIENCE,
            "platform": platform,
            "iat": now,
            "exp": now + self.download_ttl_seconds,
        }
        return jwt.encode(payload, self.download_secret, algorithm="HS256")

    def resolve_download_ticket(self, ticket: str) -> Tuple[str, str]:
        """Return the (employee id, platform) a ticket refers to."""
        try:
            payload = jwt.decode(
                ticket,
                self.download_secret,
                algorithms=["HS256"],
                audience=DOWNLOAD_TICKET_AUDIENCE,
            )
        except jwt.ExpiredSignatureError:
            raise PermissionDeniedError("Download link has expired")
        except jwt.InvalidTokenError:
            raise PermissionDeniedError("Invalid download link")
        return payload["sub"], payload.get("platform", "apple")

    def download_url(self, employee_id: str, platform: str = "apple") -> str:
        ticket = self.create_download_ticket(employee_id, platform)
        return f"{self.public_base_url}{self.api_prefix}/employee-cards/download?ticket={ticket}"
