from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from app.api.deps import get_db
from app.services.pass_signer import PassSigner, load_service_account_info

router = APIRouter()


@router.get("/ready")
async def readiness_check(db: AsyncSession = Depends(get_db)):
    """Check if service is ready (database connection, signing material)."""
    signer = PassSigner(service_account=load_service_account_info())
    signing = {
        "apple": signer.has_apple_material,
        "google": signer.has_google_material,
    }
    try:
        await db.execute(text("SELECT 1"))
        return {"status": "ready", "database": "connected", "signing": signing}
    except SQLAlchemyError as e:
        return {
            "status": "not_ready",
            "database": "disconnected",
            "signing": signing,
            "error": str(e),
        }
