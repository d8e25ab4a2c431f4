#
# issuance_service.py
# Runs the badge issuance pipeline: allocate, build, package, sign, validate, encode
#

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import ValidationFailure
from app.db.repositories.employee_card_repo import EmployeeCardRepository
from app.models.employee_card import EmployeeCard
from app.models.enums import WalletPlatform
from app.services.employee_card_service import calculate_expiry_date
from app.services.identity_allocator import IdentityAllocator
from app.services.pass_descriptor_builder import (
    EmployeeRecord,
    IssuerConfig,
    WorkplaceLocation,
    build_apple_descriptor,
    build_google_descriptor,
    validate_record,
)
from app.services.pass_signer import PassSigner, load_service_account_info
from app.services.pass_validator import PassValidator
from app.services.qr_encoder import QREncoder, ScannableCode
from app.services.wallet_pass_service import ArchiveArtifact, TokenArtifact, WalletPassService

logger = logging.getLogger(__name__)

ALL_PLATFORMS = (WalletPlatform.APPLE, WalletPlatform.GOOGLE)


@dataclass
class IssuanceResult:
    employee_id: str
    card: EmployeeCard
    attendance_qr: ScannableCode
    archive: Optional[ArchiveArtifact] = None
    token: Optional[TokenArtifact] = None
    wallet_qr: Optional[ScannableCode] = None
    failures: Dict[str, List[str]] = field(default_factory=dict)


class IssuanceService:
    """Issues employee badges for one or both wallet ecosystems."""

    def __init__(
        self,
        db: AsyncSession,
        signer: Optional[PassSigner] = None,
        issuer: Optional[IssuerConfig] = None,
        encoder: Optional[QREncoder] = None,
        validator: Optional[PassValidator] = None,
    ):
        self.db = db
        if signer is None or issuer is None:
            service_account = load_service_account_info()
            signer = signer or PassSigner(service_account=service_account)
            issuer = issuer or IssuerConfig.from_settings(service_account)
        self.signer = signer
        self.issuer = issuer
        self.packager = WalletPassService(signer)
        self.encoder = encoder or QREncoder()
        self.validator = validator or PassValidator()
        self.allocator = IdentityAllocator(db)
        self.card_repo = EmployeeCardRepository(db)

    def build_archive(self, record: EmployeeRecord, employee_id: str, issued_at: datetime) -> ArchiveArtifact:
        descriptor = build_apple_descriptor(record, employee_id, self.issuer, issued_at)
        return self.packager.create_archive(descriptor)

    def build_token(self, record: EmployeeRecord, employee_id: str, issued_at: datetime) -> TokenArtifact:
        descriptor = build_google_descriptor(record, employee_id, self.issuer, issued_at)
        return self.packager.create_token(descriptor)

    async def issue(
        self,
        record: EmployeeRecord,
        platforms: Sequence[WalletPlatform] = ALL_PLATFORMS,
        user_id: Optional[str] = None,
        issued_at: Optional[datetime] = None,
    ) -> IssuanceResult:
        """
        Issue a badge.

        BuildError is raised before an identifier is allocated. Packaging and
        signature errors are terminal. An artifact that fails validation is
        withheld and reported in `failures`; if every requested platform
        fails, ValidationFailure is raised and nothing is persisted.
        """
        validate_record(record)
        platforms = list(dict.fromkeys(platforms)) or list(ALL_PLATFORMS)
        issued_at = issued_at or datetime.now(timezone.utc)

        employee_id = await self.allocator.allocate(issued_at.year)

        archive = token = None
        failures: Dict[str, List[str]] = {}

        if WalletPlatform.APPLE in platforms:
            candidate = self.build_archive(record, employee_id, issued_at)
            result = self.validator.validate_archive(candidate)
            if result.is_valid:
                archive = candidate
            else:
                failures[WalletPlatform.APPLE.value] = result.errors

        if WalletPlatform.GOOGLE in platforms:
            candidate = self.build_token(record, employee_id, issued_at)
            result = self.validator.validate_token(candidate.token)
            if result.is_valid:
                token = candidate
            else:
                failures[WalletPlatform.GOOGLE.value] = result.errors

        if archive is None and token is None:
            logger.error(f"All artifacts for {employee_id} failed validation: {failures}")
            raise ValidationFailure(
                "Issued artifacts failed validation",
                details={"employee_id": employee_id, "failures": failures},
            )

        card = await self.card_repo.create(
            employee_id=employee_id,
            user_id=user_id,
            name=record.name,
            department=record.department,
            workplace=record.workplace,
            company_name=record.company_name,
            latitude=record.location.latitude if record.location else None,
            longitude=record.location.longitude if record.location else None,
            issued_at=issued_at,
            expires_at=calculate_expiry_date(issued_at, self.issuer.validity_days),
        )

        wallet_qr = self.encoder.encode_artifact(archive if archive is not None else token)
        attendance_qr = self.encoder.encode_attendance(employee_id, issued_at)

        logger.info(
            f"Issued employee badge {employee_id} "
            f"(apple={archive is not None}, google={token is not None})"
        )
        return IssuanceResult(
            employee_id=employee_id,
            card=card,
            archive=archive,
            token=token,
            wallet_qr=wallet_qr,
            attendance_qr=attendance_qr,
            failures=failures,
        )

    def regenerate(self, card: EmployeeCard, platform: WalletPlatform):
        """Rebuild a validated artifact for an already-issued card."""
        record = record_from_card(card)
        if platform == WalletPlatform.GOOGLE:
            # Save-to-wallet tokens are short-lived, so they are always minted fresh
            artifact = self.build_token(record, card.employee_id, datetime.now(timezone.utc))
        else:
            artifact = self.build_archive(record, card.employee_id, card.issued_at)
        self.validator.raise_if_invalid(artifact)
        return artifact


def record_from_card(card: EmployeeCard) -> EmployeeRecord:
    location = None
    if card.latitude is not None and card.longitude is not None:
        location = WorkplaceLocation(latitude=card.latitude, longitude=card.longitude)
    return EmployeeRecord(
        name=card.name,
        department=card.department,
        workplace=card.workplace,
        employee_id=card.employee_id,
        company_name=card.company_name,
        location=location,
    )
