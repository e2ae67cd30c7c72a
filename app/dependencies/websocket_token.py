from typing import Optional
from app.database import Database
from app.models.user import User
from app.services.auth_service import auth_service
import logging

logger = logging.getLogger(__name__)

def get_user_from_websocket_token(database: Database, token: str) -> Optional[User]:
    """Authenticate user from WebSocket token parameter"""
    token_data = auth_service.decode_token(token)
    if not token_data:
        logger.warning("WebSocket token verification failed")
        return None

    db = database.session()
    try:
        user = auth_service.get_user_by_email(db, token_data.email)
        if not user or not user.is_active:
            return None
        db.expunge(user)
        return user
    finally:
        db.close()
