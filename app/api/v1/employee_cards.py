#
# employee_cards.py
# API endpoints for employee badge issuance and lifecycle
#

import base64
import logging

from fastapi import APIRouter, Depends, Query
from fastapi.responses import Response, RedirectResponse
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_db, get_current_db_user, get_card_admin
from app.models.enums import CardStatus, WalletPlatform
from app.models.user import User
from app.schemas.employee_card import (
    EmployeeCardIssueRequest,
    EmployeeCardIssueResponse,
    EmployeeCardResponse,
    EmployeeCardStatusUpdate,
    ExpireCardsResponse,
)
from app.services.employee_card_service import EmployeeCardService
from app.core.exceptions import PermissionDeniedError
from app.services.issuance_service import IssuanceService
from app.services.pass_descriptor_builder import EmployeeRecord, WorkplaceLocation
from app.services.qr_encoder import QREncoder

logger = logging.getLogger(__name__)

router = APIRouter()


def get_issuance_service(db: AsyncSession = Depends(get_db)) -> IssuanceService:
    return IssuanceService(db)


def get_qr_encoder() -> QREncoder:
    return QREncoder()


@router.post("", response_model=EmployeeCardIssueResponse)
async def issue_employee_card(
    request: EmployeeCardIssueRequest,
    current_user: User = Depends(get_current_db_user),
    db: AsyncSession = Depends(get_db),
    service: IssuanceService = Depends(get_issuance_service),
):
    """
    Issue a digital employee badge.

    Returns the signed .pkpass (base64), the Google Wallet save JWT and URL,
    and QR codes for wallet hand-off and attendance check-in.

    Returns:
    - 200: Badge issued (per-platform validation failures listed in `failures`)
    - 409: Identifier allocation conflict
    - 422: Missing employee attributes or every artifact failed validation
    - 502/503: Signing failed or signing material is not configured
    """
    location = None
    if request.latitude is not None and request.longitude is not None:
        location = WorkplaceLocation(latitude=request.latitude, longitude=request.longitude)

    record = EmployeeRecord(
        name=request.name,
        department=request.department,
        workplace=request.workplace,
        company_name=request.company_name,
        location=location,
    )

    result = await service.issue(record, platforms=request.platforms, user_id=current_user.id)
    await db.commit()

    return EmployeeCardIssueResponse(
        card=EmployeeCardResponse.model_validate(result.card),
        apple_pass=(
            base64.b64encode(result.archive.data).decode("utf-8") if result.archive else None
        ),
        google_jwt=result.token.token if result.token else None,
        google_save_url=result.token.save_url if result.token else None,
        wallet_qr_png=result.wallet_qr.png_base64 if result.wallet_qr else None,
        wallet_qr_is_reference=result.wallet_qr.is_reference if result.wallet_qr else False,
        attendance_qr_png=result.attendance_qr.png_base64,
        attendance_payload=result.attendance_qr.payload,
        failures=result.failures,
    )


@router.get("/me", response_model=EmployeeCardResponse)
async def get_my_employee_card(
    current_user: User = Depends(get_current_db_user),
    db: AsyncSession = Depends(get_db),
):
    """Get the authenticated user's most recent badge."""
    service = EmployeeCardService(db)
    card = await service.get_current_card(current_user.id)
    await db.commit()
    return card


@router.get("/download")
async def download_employee_card(
    ticket: str = Query(..., min_length=1),
    db: AsyncSession = Depends(get_db),
    service: IssuanceService = Depends(get_issuance_service),
    encoder: QREncoder = Depends(get_qr_encoder),
):
    """
    Resolve a scanned download reference.

    Apple tickets stream a fresh .pkpass; Google tickets redirect to the
    save-to-wallet URL. No bearer token is needed: the ticket is the credential.
    """
    employee_id, platform = encoder.resolve_download_ticket(ticket)
    card = await EmployeeCardService(db).get_card(employee_id)
    if card.status == CardStatus.REVOKED.value:
        raise PermissionDeniedError(f"Employee card {employee_id} has been revoked")

    if platform == WalletPlatform.GOOGLE.value:
        token = service.regenerate(card, WalletPlatform.GOOGLE)
        return RedirectResponse(token.save_url)

    archive = service.regenerate(card, WalletPlatform.APPLE)
    return Response(
        content=archive.data,
        media_type=archive.content_type,
        headers={"Content-Disposition": f"attachment; filename={archive.filename}"},
    )


@router.get("/{employee_id}/attendance-qr")
async def get_attendance_qr(
    employee_id: str,
    current_user: User = Depends(get_current_db_user),
    db: AsyncSession = Depends(get_db),
    encoder: QREncoder = Depends(get_qr_encoder),
):
    """Render a fresh attendance check-in QR code as PNG."""
    card = await EmployeeCardService(db).get_card(employee_id)
    if card.user_id != current_user.id:
        await get_card_admin(current_user)

    code = encoder.encode_attendance(card.employee_id)
    return Response(content=code.png, media_type="image/png")


@router.patch("/{employee_id}/status", response_model=EmployeeCardResponse)
async def update_employee_card_status(
    employee_id: str,
    update: EmployeeCardStatusUpdate,
    admin: User = Depends(get_card_admin),
    db: AsyncSession = Depends(get_db),
):
    """Change a badge's status (admin only). Revoking stamps revoked_at."""
    service = EmployeeCardService(db)
    card = await service.update_status(employee_id, update.status)
    await db.commit()
    logger.info(f"User {admin.id} set card {employee_id} to {update.status.value}")
    return card


@router.post("/expire", response_model=ExpireCardsResponse)
async def expire_employee_cards(
    admin: User = Depends(get_card_admin),
    db: AsyncSession = Depends(get_db),
):
    """Mark every active badge past its expiry date as expired (admin only)."""
    service = EmployeeCardService(db)
    cards = await service.expire_cards()
    await db.commit()
    expired = [card.employee_id for card in cards]
    return ExpireCardsResponse(expired=expired, count=len(expired))
