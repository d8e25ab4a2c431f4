#
# pass_signer.py
# Signs Apple Wallet manifests (PKCS#7) and Google Wallet JWTs (RS256)
#

import base64
import json
import logging
from typing import Optional, Dict, Any, List, Tuple

from cryptography import x509
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.serialization import pkcs12, pkcs7, Encoding
from jwt.algorithms import RSAAlgorithm
from jwt.exceptions import InvalidKeyError

from app.config import get_settings
from app.core.exceptions import PackagingFailure, SignatureFailure

logger = logging.getLogger(__name__)


def load_service_account_info(
    service_account_json: Optional[str] = None,
    service_account_path: Optional[str] = None,
) -> Optional[Dict[str, Any]]:
    """Load the Google service account from a JSON string or a file path."""
    if service_account_json is None and service_account_path is None:
        settings = get_settings()
        service_account_json = settings.GOOGLE_WALLET_SERVICE_ACCOUNT
        service_account_path = settings.GOOGLE_WALLET_SERVICE_ACCOUNT_PATH

    try:
        if service_account_json:
            return json.loads(service_account_json)
        if service_account_path:
            with open(service_account_path, "r") as f:
                return json.load(f)
    except (OSError, ValueError) as e:
        raise PackagingFailure(
            "Google Wallet service account could not be loaded",
            details={"error_type": "configuration", "error": type(e).__name__},
        )
    return None


class PassSigner:
    """Holds issuer signing material and produces wallet signatures."""

    def __init__(
        self,
        cert_base64: Optional[str] = None,
        cert_password: Optional[str] = None,
        wwdr_cert_base64: Optional[str] = None,
        service_account: Optional[Dict[str, Any]] = None,
    ):
        settings = get_settings()
        self.cert_base64 = cert_base64 if cert_base64 is not None else settings.WALLET_CERT_BASE64
        self.cert_password = (
            cert_password if cert_password is not None else settings.WALLET_CERT_PASSWORD
        )
        self.wwdr_cert_base64 = (
            wwdr_cert_base64 if wwdr_cert_base64 is not None else settings.WALLET_WWDR_CERT_BASE64
        )
        self.service_account = service_account
        self._apple_credentials = None

    @property
    def has_apple_material(self) -> bool:
        return bool(self.cert_base64)

    @property
    def has_google_material(self) -> bool:
        return bool(self.service_account and self.service_account.get("private_key"))

    def _load_apple_credentials(self) -> Tuple[Any, x509.Certificate, List[x509.Certificate]]:
        """Parse the PKCS#12 bundle and WWDR intermediate once."""
        if self._apple_credentials is not None:
            return self._apple_credentials

        if not self.cert_base64:
            raise PackagingFailure(
                "Apple Wallet signing not configured",
                details={"error_type": "configuration", "missing": ["WALLET_CERT_BASE64"]},
            )

        try:
            cert_data = base64.b64decode(self.cert_base64)
            password = self.cert_password.encode() if self.cert_password else None
            private_key, certificate, additional_certs = pkcs12.load_key_and_certificates(
                cert_data, password
            )

            chain = list(additional_certs or [])
            if self.wwdr_cert_base64:
                wwdr_data = base64.b64decode(self.wwdr_cert_base64)
                chain.append(x509.load_pem_x509_certificate(wwdr_data))
        except ValueError as e:
            raise PackagingFailure(
                "Apple Wallet signing certificate could not be loaded",
                details={"error_type": "configuration", "error": str(e)},
            )

        if not private_key or not certificate:
            raise PackagingFailure(
                "PKCS12 bundle does not contain a private key and certificate",
                details={"error_type": "configuration"},
            )

        self._apple_credentials = (private_key, certificate, chain)
        return self._apple_credentials

    def sign_manifest(self, manifest_data: bytes) -> bytes:
        """Create a detached DER PKCS#7 signature over manifest.json."""
        private_key, certificate, chain = self._load_apple_credentials()

        try:
            builder = pkcs7.PKCS7SignatureBuilder().set_data(manifest_data)
            builder = builder.add_signer(certificate, private_key, hashes.SHA256())
            for cert in chain:
                builder = builder.add_certificate(cert)

            options = [pkcs7.PKCS7Options.DetachedSignature, pkcs7.PKCS7Options.Binary]
            return builder.sign(Encoding.DER, options)
        except (ValueError, TypeError) as e:
            logger.error(f"Error signing manifest: {e}")
            raise SignatureFailure(
                "Manifest signing failed",
                details={"error_type": "pkcs7", "error": str(e)},
            )

    def _google_private_key(self) -> str:
        if not self.has_google_material:
            raise PackagingFailure(
                "Google Wallet signing not configured",
                details={
                    "error_type": "configuration",
                    "missing": ["GOOGLE_WALLET_SERVICE_ACCOUNT or GOOGLE_WALLET_SERVICE_ACCOUNT_PATH"],
                },
            )
        key = self.service_account["private_key"]
        # PEM keys stored in env vars often carry literal \n sequences
        if "\\n" in key:
            key = key.replace("\\n", "\n")
        return key

    def sign_token(self, signing_input: bytes) -> bytes:
        """RS256 signature over '<header>.<claims>'."""
        algorithm = RSAAlgorithm(RSAAlgorithm.SHA256)
        try:
            key = algorithm.prepare_key(self._google_private_key())
        except (InvalidKeyError, ValueError) as e:
            raise PackagingFailure(
                "Google Wallet service account key is not a valid RSA private key",
                details={"error_type": "configuration", "error": type(e).__name__},
            )

        try:
            return algorithm.sign(signing_input, key)
        except (ValueError, TypeError, AttributeError) as e:
            logger.error(f"Error signing wallet token: {type(e).__name__}")
            raise SignatureFailure(
                "Token signing failed",
                details={"error_type": "rs256", "error": str(e)},
            )
