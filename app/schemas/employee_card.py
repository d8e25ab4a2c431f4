#
# employee_card.py
# Pydantic schemas for employee badge issuance
#

from datetime import datetime
from typing import Optional, List, Dict

from pydantic import BaseModel, Field

from app.models.enums import CardStatus, WalletPlatform


class EmployeeCardIssueRequest(BaseModel):
    # Required fields are checked by the descriptor builder so a missing
    # attribute surfaces as a build_error rather than a schema error
    name: Optional[str] = Field(None, max_length=200)
    department: Optional[str] = Field(None, max_length=200)
    workplace: Optional[str] = Field(None, max_length=200)
    company_name: Optional[str] = Field(None, max_length=200)
    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)
    platforms: List[WalletPlatform] = Field(
        default_factory=lambda: [WalletPlatform.APPLE, WalletPlatform.GOOGLE]
    )


class EmployeeCardResponse(BaseModel):
    employee_id: str
    name: str
    department: str
    workplace: str
    company_name: Optional[str] = None
    status: CardStatus
    issued_at: datetime
    expires_at: datetime
    revoked_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class EmployeeCardIssueResponse(BaseModel):
    card: EmployeeCardResponse
    apple_pass: Optional[str] = None  # Base64 encoded .pkpass file
    google_jwt: Optional[str] = None
    google_save_url: Optional[str] = None
    wallet_qr_png: Optional[str] = Field(
        None,
        description=(
            "Base64 encoded PNG. When wallet_qr_is_reference is true the code holds a "
            "download link that expires after PASS_DOWNLOAD_TTL_SECONDS (default 900)."
        ),
    )
    wallet_qr_is_reference: bool = False
    attendance_qr_png: str  # Base64 encoded PNG
    attendance_payload: str
    failures: Dict[str, List[str]] = Field(default_factory=dict)


class EmployeeCardStatusUpdate(BaseModel):
    status: CardStatus


class ExpireCardsResponse(BaseModel):
    expired: List[str]
    count: int
