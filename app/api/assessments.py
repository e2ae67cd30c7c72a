from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from app.database import get_db
from app.api.errors import domain_error, internal_error
from app.dependencies.dependencies import require_capability
from app.models.user import User
from app.schemas.assessments import SaveAnswerRequest, SubmitAssessmentRequest
from app.services.attempts import attempt_service
from app.services.results import results_service
from app.errors import LMSError
import logging

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/assessments/student", tags=["assessments"])

@router.get("/my-assessments")
async def get_my_assessments(
    db: Session = Depends(get_db),
    current_user: User = Depends(require_capability("view_all_enrolled_assessment"))
):
    """Assessments from every course the student is enrolled in"""
    try:
        assessments = attempt_service.list_my_assessments(db, current_user.id)
        return {"success": True, "count": len(assessments), "data": assessments}
    except Exception as e:
        raise internal_error("fetch assessments", e)

@router.get("/assessments/{assessment_id}/details")
async def get_assessment_details(
    assessment_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_capability("view_enrolled_assessment_by_id"))
):
    try:
        details = attempt_service.get_assessment_details(db, assessment_id, current_user.id)
        return {"success": True, "data": details}
    except LMSError as e:
        raise domain_error("assessment details", e)
    except Exception as e:
        raise internal_error("fetch assessment details", e)

@router.post("/assessments/{assessment_id}/start")
async def start_assessment(
    assessment_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_capability("start_taking_assessment"))
):
    """Start a new attempt, or resume the one in progress"""
    try:
        attempt = attempt_service.start_attempt(db, assessment_id, current_user.id)
        return {
            "success": True,
            "message": "Resuming assessment" if attempt.resumed else "Assessment started successfully",
            "data": attempt
        }
    except LMSError as e:
        raise domain_error("start assessment", e)
    except Exception as e:
        raise internal_error("start assessment", e)

@router.post("/save-answer")
async def save_answer(
    request: SaveAnswerRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_capability("save_answer"))
):
    try:
        answer = attempt_service.save_answer(
            db,
            request.submission_id,
            current_user.id,
            request.question_id,
            selected_option_id=request.selected_option_id,
            text_answer=request.text_answer,
            time_spent=request.time_spent
        )
        # correctness stays hidden until the review is approved
        return {
            "success": True,
            "message": "Answer saved successfully",
            "data": {
                "answer_id": answer.id,
                "question_id": answer.question_id,
                "saved_at": answer.updated_at or answer.created_at
            }
        }
    except LMSError as e:
        raise domain_error("save answer", e)
    except Exception as e:
        raise internal_error("save answer", e)

@router.post("/assessments/{assessment_id}/submit")
async def submit_assessment(
    assessment_id: int,
    request: SubmitAssessmentRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_capability("submit_assessment"))
):
    try:
        receipt = attempt_service.submit(db, request.submission_id, current_user.id, assessment_id)
        return {"success": True, "message": receipt.message, "data": receipt}
    except LMSError as e:
        raise domain_error("submit assessment", e)
    except Exception as e:
        raise internal_error("submit assessment", e)

@router.get("/my-results")
async def get_my_results(
    db: Session = Depends(get_db),
    current_user: User = Depends(require_capability("get_user_result"))
):
    try:
        results = results_service.my_results(db, current_user.id)
        return {"success": True, "count": len(results), "data": results}
    except Exception as e:
        raise internal_error("fetch results", e)

@router.get("/submissions/{submission_id}/review")
async def review_submission(
    submission_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_capability("review_submission"))
):
    try:
        review = results_service.review_submission(db, submission_id, current_user.id)
        return {"success": True, "data": review}
    except LMSError as e:
        raise domain_error("submission review", e)
    except Exception as e:
        raise internal_error("fetch submission review", e)

@router.get("/courses/{course_id}/progress")
async def get_course_progress(
    course_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_capability("view_assessment_progress"))
):
    try:
        progress = results_service.course_progress(db, course_id, current_user.id)
        return {"success": True, "data": progress}
    except LMSError as e:
        raise domain_error("course progress", e)
    except Exception as e:
        raise internal_error("fetch course progress", e)
