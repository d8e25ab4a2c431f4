#
# pass_descriptor_builder.py
# Maps employee records into Apple Wallet and Google Wallet pass descriptors
#

import colorsys
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Optional, Dict, Any, Tuple

from app.config import get_settings
from app.core.exceptions import BuildError

APPLE_BARCODE_FORMAT = "PKBarcodeFormatQR"
APPLE_BARCODE_ENCODING = "iso-8859-1"
GOOGLE_AUDIENCE = "google"
GOOGLE_TOKEN_TYPE = "savetowallet"
GOOGLE_CLASS_SUFFIX = "employee_badge"
CARD_TITLE = "Employee Badge"
DEFAULT_BACKGROUND_RGB = (66, 133, 244)  # #4285f4

REQUIRED_RECORD_FIELDS = ("name", "department", "workplace")


@dataclass(frozen=True)
class WorkplaceLocation:
    latitude: float
    longitude: float


@dataclass(frozen=True)
class EmployeeRecord:
    """Employee attributes handed to the pipeline by the issuing workflow."""

    name: Optional[str]
    department: Optional[str]
    workplace: Optional[str]
    employee_id: Optional[str] = None  # placeholder, replaced by the allocated identifier
    company_name: Optional[str] = None
    location: Optional[WorkplaceLocation] = None


@dataclass(frozen=True)
class IssuerConfig:
    """Static, deployment-wide issuer identity."""

    pass_type_identifier: str
    team_identifier: str
    organization_name: str
    google_issuer_id: str = ""
    google_service_account_email: str = ""
    google_key_id: Optional[str] = None
    locale: str = "en-US"
    default_location: WorkplaceLocation = field(
        default_factory=lambda: WorkplaceLocation(latitude=37.5, longitude=127.0)
    )
    token_ttl_seconds: int = 3600
    validity_days: int = 365

    @classmethod
    def from_settings(cls, service_account: Optional[Dict[str, Any]] = None) -> "IssuerConfig":
        settings = get_settings()
        service_account = service_account or {}
        return cls(
            pass_type_identifier=settings.WALLET_PASS_TYPE_ID,
            team_identifier=settings.WALLET_TEAM_ID,
            organization_name=settings.WALLET_ORGANIZATION_NAME,
            google_issuer_id=settings.GOOGLE_WALLET_ISSUER_ID,
            google_service_account_email=service_account.get("client_email", ""),
            google_key_id=service_account.get("private_key_id"),
            locale=settings.WALLET_LOCALE,
            default_location=WorkplaceLocation(
                latitude=settings.WALLET_DEFAULT_LATITUDE,
                longitude=settings.WALLET_DEFAULT_LONGITUDE,
            ),
            token_ttl_seconds=settings.GOOGLE_WALLET_JWT_TTL_SECONDS,
            validity_days=settings.BADGE_VALIDITY_DAYS,
        )


@dataclass(frozen=True)
class BadgeColors:
    background: Tuple[int, int, int]
    foreground: Tuple[int, int, int]

    @property
    def background_rgb(self) -> str:
        return _rgb_string(self.background)

    @property
    def foreground_rgb(self) -> str:
        return _rgb_string(self.foreground)

    @property
    def background_hex(self) -> str:
        return "#{:02x}{:02x}{:02x}".format(*self.background)


@dataclass
class ApplePassDescriptor:
    serial_number: str
    pass_json: Dict[str, Any]


@dataclass
class GooglePassDescriptor:
    employee_id: str
    header: Dict[str, Any]
    claims: Dict[str, Any]


def _rgb_string(rgb: Tuple[int, int, int]) -> str:
    r, g, b = rgb
    return f"rgb({r}, {g}, {b})"


def _string_hash(value: str) -> int:
    # 32-bit rolling hash (hash * 31 + code), wrapped to a signed int
    h = 0
    for char in value:
        h = ((h << 5) - h + ord(char)) & 0xFFFFFFFF
    if h >= 0x80000000:
        h -= 0x100000000
    return abs(h)


def _contrast_color(rgb: Tuple[int, int, int]) -> Tuple[int, int, int]:
    r, g, b = rgb
    brightness = (r * 299 + g * 587 + b * 114) / 1000
    return (0, 0, 0) if brightness > 128 else (255, 255, 255)


def badge_colors(company_name: Optional[str]) -> BadgeColors:
    """Derive a stable card colour scheme from the company name."""
    if not company_name:
        background = DEFAULT_BACKGROUND_RGB
    else:
        h = _string_hash(company_name)
        hue = h % 360
        saturation = 60 + (h % 20)
        lightness = 40 + (h % 20)
        r, g, b = colorsys.hls_to_rgb(hue / 360, lightness / 100, saturation / 100)
        background = (round(r * 255), round(g * 255), round(b * 255))
    return BadgeColors(background=background, foreground=_contrast_color(background))


def _utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def iso_timestamp(value: datetime) -> str:
    """ISO-8601 UTC timestamp with millisecond precision and a Z suffix."""
    return _utc(value).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def barcode_payload(employee_id: str, issued_at: datetime) -> str:
    return f"{employee_id}_{iso_timestamp(issued_at)}"


def validate_record(record: EmployeeRecord) -> None:
    """Raise BuildError if a required employee attribute is missing or blank."""
    missing = [
        name for name in REQUIRED_RECORD_FIELDS
        if not (getattr(record, name, None) or "").strip()
    ]
    if missing:
        raise BuildError(
            f"Employee record is missing required fields: {', '.join(missing)}",
            details={"missing_fields": missing},
        )


def _location_for(record: EmployeeRecord, issuer: IssuerConfig) -> WorkplaceLocation:
    return record.location or issuer.default_location


def build_apple_descriptor(
    record: EmployeeRecord,
    employee_id: str,
    issuer: IssuerConfig,
    issued_at: datetime,
) -> ApplePassDescriptor:
    """Create the pass.json structure for a generic-style employee badge."""
    validate_record(record)

    colors = badge_colors(record.company_name)
    location = _location_for(record, issuer)
    barcode = {
        "format": APPLE_BARCODE_FORMAT,
        "message": barcode_payload(employee_id, issued_at),
        "messageEncoding": APPLE_BARCODE_ENCODING,
    }
    expires_at = _utc(issued_at) + timedelta(days=issuer.validity_days)

    pass_json = {
        "formatVersion": 1,
        "passTypeIdentifier": issuer.pass_type_identifier,
        "serialNumber": employee_id,
        "teamIdentifier": issuer.team_identifier,
        "organizationName": record.company_name or issuer.organization_name,
        "description": CARD_TITLE,
        "logoText": record.company_name or issuer.organization_name,
        "backgroundColor": colors.background_rgb,
        "foregroundColor": colors.foreground_rgb,
        "labelColor": colors.foreground_rgb,
        "expirationDate": _utc(expires_at).isoformat(timespec="seconds").replace("+00:00", "Z"),
        "generic": {
            "primaryFields": [
                {"key": "name", "label": "NAME", "value": record.name}
            ],
            "secondaryFields": [
                {"key": "department", "label": "DEPARTMENT", "value": record.department},
                {"key": "employeeId", "label": "EMPLOYEE ID", "value": employee_id},
            ],
            "auxiliaryFields": [
                {"key": "workplace", "label": "WORKPLACE", "value": record.workplace}
            ],
            "backFields": [
                {"key": "issued", "label": "Issued", "value": iso_timestamp(issued_at)}
            ],
        },
        "barcode": barcode,
        "barcodes": [dict(barcode)],
        "locations": [
            {
                "latitude": location.latitude,
                "longitude": location.longitude,
                "relevantText": record.workplace,
            }
        ],
    }
    return ApplePassDescriptor(serial_number=employee_id, pass_json=pass_json)


def _localized(value: str, locale: str) -> Dict[str, Any]:
    return {"defaultValue": {"language": locale, "value": value}}


def build_google_descriptor(
    record: EmployeeRecord,
    employee_id: str,
    issuer: IssuerConfig,
    issued_at: datetime,
) -> GooglePassDescriptor:
    """Create the JWT header and save-to-wallet claims for a generic object."""
    validate_record(record)

    colors = badge_colors(record.company_name)
    iat = int(_utc(issued_at).timestamp())

    header = {"alg": "RS256", "typ": "JWT"}
    if issuer.google_key_id:
        header["kid"] = issuer.google_key_id

    generic_object = {
        "id": f"{issuer.google_issuer_id}.{employee_id}",
        "classId": f"{issuer.google_issuer_id}.{GOOGLE_CLASS_SUFFIX}",
        "state": "ACTIVE",
        "cardTitle": _localized(CARD_TITLE, issuer.locale),
        "header": _localized(record.department, issuer.locale),
        "subheader": _localized(record.name, issuer.locale),
        "barcode": {
            "type": "QR_CODE",
            "value": barcode_payload(employee_id, issued_at),
        },
        "hexBackgroundColor": colors.background_hex,
    }

    claims = {
        "iss": issuer.google_service_account_email,
        "aud": GOOGLE_AUDIENCE,
        "typ": GOOGLE_TOKEN_TYPE,
        "iat": iat,
        "exp": iat + issuer.token_ttl_seconds,
        "origins": [],
        "payload": {"genericObjects": [generic_object]},
    }
    return GooglePassDescriptor(employee_id=employee_id, header=header, claims=claims)
