import hashlib
import io
import json
import logging
import time
import zipfile
from dataclasses import dataclass, field
from typing import List, Optional

from jwt.exceptions import DecodeError
from jwt.utils import base64url_decode

from app.core.exceptions import ValidationFailure
from app.services.wallet_pass_service import (
    ArchiveArtifact,
    TokenArtifact,
    PKPASS_CONTENT_TYPE,
    PASS_JSON,
    MANIFEST_JSON,
    SIGNATURE,
)

logger = logging.getLogger(__name__)


@dataclass
class ValidationResult:
    is_valid: bool
    errors: List[str] = field(default_factory=list)


class PassValidator:
    """Structural checks on produced artifacts before they are handed out."""

    MIN_ARCHIVE_BYTES = 1024
    REQUIRED_ARCHIVE_MEMBERS = (PASS_JSON, MANIFEST_JSON, SIGNATURE)
    REQUIRED_TOKEN_CLAIMS = ("iss", "aud", "payload")

    def validate_archive(self, artifact: ArchiveArtifact) -> ValidationResult:
        """
        Validate a .pkpass archive.

        Checks:
        1. Size is at least MIN_ARCHIVE_BYTES
        2. Content type is the Apple pass media type
        3. The ZIP contains pass.json, manifest.json and signature
        4. Every manifest hash matches its member
        """
        errors = []

        if artifact.size < self.MIN_ARCHIVE_BYTES:
            errors.append(
                f"Archive is {artifact.size} bytes, below minimum {self.MIN_ARCHIVE_BYTES}"
            )

        if artifact.content_type != PKPASS_CONTENT_TYPE:
            errors.append(f"Unexpected content type: {artifact.content_type}")

        if errors:
            return ValidationResult(is_valid=False, errors=errors)

        try:
            with zipfile.ZipFile(io.BytesIO(artifact.data)) as zf:
                names = set(zf.namelist())
                missing = [m for m in self.REQUIRED_ARCHIVE_MEMBERS if m not in names]
                if missing:
                    errors.append(f"Archive is missing members: {', '.join(missing)}")
                else:
                    manifest = json.loads(zf.read(MANIFEST_JSON))
                    if not isinstance(manifest, dict):
                        errors.append("Manifest is not a JSON object")
                    else:
                        for name, expected in manifest.items():
                            if name not in names:
                                errors.append(f"Manifest lists absent member: {name}")
                            elif hashlib.sha1(zf.read(name)).hexdigest() != expected:
                                errors.append(f"Manifest hash mismatch for {name}")
                        if PASS_JSON not in manifest:
                            errors.append("Manifest does not cover pass.json")
        # zipfile raises NotImplementedError/RuntimeError for unsupported or encrypted members
        except (zipfile.BadZipFile, ValueError, NotImplementedError, RuntimeError) as e:
            errors.append(f"Invalid or corrupted archive: {str(e)}")

        return ValidationResult(is_valid=len(errors) == 0, errors=errors)

    def validate_token(self, token: str, now: Optional[float] = None) -> ValidationResult:
        """
        Validate a save-to-wallet JWT without verifying its signature.

        Checks segment count, claims shape and expiry.
        """
        parts = token.split(".")
        if len(parts) != 3:
            return ValidationResult(
                is_valid=False,
                errors=[f"Token has {len(parts)} segments, expected 3"],
            )

        try:
            claims = json.loads(base64url_decode(parts[1]))
        except (DecodeError, ValueError, UnicodeDecodeError) as e:
            return ValidationResult(
                is_valid=False,
                errors=[f"Claims segment is not valid base64url JSON: {str(e)}"],
            )

        if not isinstance(claims, dict):
            return ValidationResult(is_valid=False, errors=["Claims segment is not a JSON object"])

        errors = [
            f"Claims missing required field: {name}"
            for name in self.REQUIRED_TOKEN_CLAIMS
            if not claims.get(name)
        ]

        payload = claims.get("payload")
        if payload and not isinstance(payload, dict):
            errors.append("Claim payload is not a JSON object")
        elif payload:
            objects = payload.get("genericObjects")
            if not isinstance(objects, list) or not objects:
                errors.append("Claim payload has no genericObjects")

        exp = claims.get("exp")
        if exp is not None:
            now = time.time() if now is None else now
            if not isinstance(exp, (int, float)):
                errors.append("Claim exp is not a numeric timestamp")
            elif exp <= now:
                errors.append("Token has expired")

        return ValidationResult(is_valid=len(errors) == 0, errors=errors)

    def validate(self, artifact) -> ValidationResult:
        if isinstance(artifact, TokenArtifact):
            return self.validate_token(artifact.token)
        return self.validate_archive(artifact)

    def raise_if_invalid(self, artifact) -> None:
        """Validate and raise ValidationFailure if invalid."""
        result = self.validate(artifact)
        if not result.is_valid:
            logger.warning(f"Artifact failed validation: {result.errors}")
            raise ValidationFailure(
                "Artifact validation failed",
                details={"errors": result.errors},
            )
