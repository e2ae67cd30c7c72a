from app.websocket.manager import websocket_manager
from app.utils.timeutil import utcnow
import logging

logger = logging.getLogger(__name__)

class NotificationService:

    @staticmethod
    async def notify_new_assessment(assessment_title: str, course_title: str):
        """Notify connected users about a newly published assessment"""
        message = {
            "type": "new_assessment",
            "title": "New Assessment Available",
            "message": f"Assessment '{assessment_title}' has been published in {course_title}",
            "timestamp": utcnow().isoformat()
        }
        await websocket_manager.broadcast(message)

    @staticmethod
    async def notify_result_available(user_id: int, assessment_title: str, submission_id: int):
        """Notify a student that their reviewed result can be viewed"""
        message = {
            "type": "result_available",
            "title": "Assessment Reviewed",
            "message": f"Your result for '{assessment_title}' is now available",
            "submission_id": submission_id,
            "timestamp": utcnow().isoformat()
        }
        await websocket_manager.send_to_user(user_id, message)

# Service instance
notification_service = NotificationService()
