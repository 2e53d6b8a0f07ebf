"""Health check endpoint for monitoring and deployment verification.

Reports whether the session-store database answers queries, together
with the portal's runtime state: the configured API, whether a user
profile is signed in and how many assessment sessions are open.
"""

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import text
from sqlalchemy.orm import Session

from assessment_portal.dependencies import Portal, get_portal
from assessment_portal.models.database import get_db
from assessment_portal.logging_config import get_logger

logger = get_logger(__name__)

router = APIRouter()


@router.get("/health")
async def health_check(
    db: Session = Depends(get_db),
    portal: Portal = Depends(get_portal),
) -> dict:
    """Health check endpoint.

    Raises:
        HTTPException: If the session store cannot be queried (503)

    Example response:
        {
            "status": "healthy",
            "session_store": "connected",
            "api_base_url": "http://localhost:8000/api/",
            "signed_in": false,
            "open_sessions": 2
        }
    """
    try:
        db.execute(text("SELECT 1"))
    except Exception as e:
        logger.error(f"Session store unreachable: {e}")
        raise HTTPException(
            status_code=503,
            detail="Service unavailable - session store unreachable"
        )

    return {
        "status": "healthy",
        "session_store": "connected",
        "api_base_url": portal.settings.api_base_url,
        "signed_in": portal.store.is_authenticated,
        "open_sessions": len(portal.registry),
    }
