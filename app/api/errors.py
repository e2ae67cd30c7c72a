from fastapi import HTTPException, status
from app.errors import LMSError
import logging

logger = logging.getLogger(__name__)

def domain_error(action: str, e: LMSError) -> HTTPException:
    logger.warning(f"{action} rejected: {str(e)}")
    return HTTPException(status_code=e.status_code, detail=str(e))

def internal_error(action: str, e: Exception) -> HTTPException:
    logger.error(f"Error during {action}: {str(e)}")
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=f"Failed to {action}: {str(e)}"
    )
