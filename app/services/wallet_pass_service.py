#
# wallet_pass_service.py
# Packages pass descriptors into signed Apple Wallet archives and Google Wallet tokens
#

import json
import hashlib
import logging
import zipfile
from dataclasses import dataclass
from io import BytesIO
from typing import Optional, Dict, Tuple

from jwt.utils import base64url_encode
from PIL import Image

from app.core.exceptions import PackagingFailure
from app.services.pass_descriptor_builder import ApplePassDescriptor, GooglePassDescriptor
from app.services.pass_signer import PassSigner

logger = logging.getLogger(__name__)

PKPASS_CONTENT_TYPE = "application/vnd.apple.pkpass"
GOOGLE_SAVE_URL = "https://pay.google.com/gp/v/save/"

PASS_JSON = "pass.json"
MANIFEST_JSON = "manifest.json"
SIGNATURE = "signature"

# Apple's documented point sizes for generic passes
ICON_SIZES: Dict[str, Tuple[int, int]] = {
    "icon.png": (29, 29),
    "icon@2x.png": (58, 58),
    "logo.png": (160, 50),
    "logo@2x.png": (320, 100),
}


@dataclass
class ArchiveArtifact:
    serial_number: str
    data: bytes
    content_type: str = PKPASS_CONTENT_TYPE

    @property
    def filename(self) -> str:
        return f"{self.serial_number}_apple.pkpass"

    @property
    def size(self) -> int:
        return len(self.data)


@dataclass
class TokenArtifact:
    employee_id: str
    token: str

    @property
    def save_url(self) -> str:
        return f"{GOOGLE_SAVE_URL}{self.token}"


def _compact_json(value: dict) -> bytes:
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


class WalletPassService:
    """Service for packaging signed wallet passes."""

    def __init__(self, signer: PassSigner):
        self.signer = signer

    def _create_icon(self, size: Tuple[int, int], color: Tuple[int, int, int]) -> bytes:
        """Render a solid-colour PNG at the given pixel size."""
        image = Image.new("RGB", size, color)
        output = BytesIO()
        image.save(output, format="PNG")
        return output.getvalue()

    def _default_assets(self, pass_json: dict) -> Dict[str, bytes]:
        color = _parse_rgb(pass_json.get("backgroundColor"))
        try:
            return {name: self._create_icon(size, color) for name, size in ICON_SIZES.items()}
        except (OSError, ValueError) as e:
            raise PackagingFailure(
                "Failed to generate pass icon assets",
                details={"error_type": "assets", "error": str(e)},
            )

    def _compute_manifest(self, files: Dict[str, bytes]) -> Dict[str, str]:
        """Compute SHA1 hashes for all files."""
        return {filename: hashlib.sha1(data).hexdigest() for filename, data in files.items()}

    def create_archive(
        self,
        descriptor: ApplePassDescriptor,
        assets: Optional[Dict[str, bytes]] = None,
    ) -> ArchiveArtifact:
        """
        Create a signed .pkpass archive.

        Layout: pass.json, manifest.json, signature and icon/logo PNGs at the
        archive root. Raises PackagingFailure if signing material is missing
        or assets cannot be produced; SignatureFailure if signing errors.
        """
        if not self.signer.has_apple_material:
            raise PackagingFailure(
                "Pass signing not configured. Set WALLET_CERT_BASE64, WALLET_CERT_PASSWORD, "
                "WALLET_TEAM_ID, and WALLET_WWDR_CERT_BASE64.",
                details={"error_type": "configuration", "platform": "apple"},
            )

        files = {PASS_JSON: json.dumps(descriptor.pass_json, indent=2).encode("utf-8")}
        files.update(self._default_assets(descriptor.pass_json))
        if assets:
            files.update(assets)

        manifest = self._compute_manifest(files)
        manifest_data = json.dumps(manifest, indent=2).encode("utf-8")
        files[MANIFEST_JSON] = manifest_data
        files[SIGNATURE] = self.signer.sign_manifest(manifest_data)

        pass_buffer = BytesIO()
        with zipfile.ZipFile(pass_buffer, "w", zipfile.ZIP_DEFLATED) as zf:
            for filename, data in files.items():
                zf.writestr(filename, data)

        artifact = ArchiveArtifact(serial_number=descriptor.serial_number, data=pass_buffer.getvalue())
        logger.info(f"Packaged Apple Wallet pass {artifact.serial_number} ({artifact.size} bytes)")
        return artifact

    def create_token(self, descriptor: GooglePassDescriptor) -> TokenArtifact:
        """Create the signed three-segment save-to-wallet JWT."""
        segments = [
            base64url_encode(_compact_json(descriptor.header)),
            base64url_encode(_compact_json(descriptor.claims)),
        ]
        signing_input = b".".join(segments)
        signature = self.signer.sign_token(signing_input)
        token = b".".join([signing_input, base64url_encode(signature)]).decode("ascii")

        logger.info(f"Packaged Google Wallet token for {descriptor.employee_id}")
        return TokenArtifact(employee_id=descriptor.employee_id, token=token)


def _parse_rgb(value: Optional[str]) -> Tuple[int, int, int]:
    """Parse an 'rgb(r, g, b)' colour string; white if absent."""
    if not value or not value.startswith("rgb(") or not value.endswith(")"):
        return (255, 255, 255)
    try:
        r, g, b = (int(part.strip()) for part in value[4:-1].split(","))
    except ValueError:
        return (255, 255, 255)
    return (r, g, b)
