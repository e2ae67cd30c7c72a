from typing import Optional
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from app.database import get_db
from app.api.errors import domain_error, internal_error
from app.dependencies.dependencies import require_capability
from app.models.user import User
from app.schemas.assessments import (
    AssessmentCreate, AssessmentUpdate, QuestionCreate, QuestionUpdate, GradeAnswerRequest
)
from app.services.assessments import assessment_service, serialize_assessment, serialize_question
from app.services.grading import grading_service
from app.services.analytics import analytics_service
from app.websocket.notifications import notification_service
from app.errors import LMSError
import logging

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/assessments/admin", tags=["assessment admin"])

# Assessment CRUD
@router.post("/assessments", status_code=status.HTTP_201_CREATED)
async def create_assessment(
    assessment_data: AssessmentCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_capability("create_assessments"))
):
    try:
        assessment = assessment_service.create_assessment(db, current_user.id, assessment_data)
    except LMSError as e:
        raise domain_error("create assessment", e)
    except Exception as e:
        raise internal_error("create assessment", e)

    await notification_service.notify_new_assessment(assessment.title, assessment.course.title)
    return {
        "success": True,
        "message": "Assessment created successfully",
        "data": serialize_assessment(assessment, with_questions=True)
    }

@router.get("/assessments")
async def list_assessments(
    course_id: Optional[int] = None,
    status_filter: Optional[str] = Query(None, alias="status", pattern="^(active|inactive)$"),
    search: Optional[str] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_capability("view_assessments"))
):
    try:
        assessments = assessment_service.list_assessments(db, course_id, status_filter, search)
        return {"success": True, "count": len(assessments), "data": assessments}
    except Exception as e:
        raise internal_error("fetch assessments", e)

@router.get("/assessments/{assessment_id}")
async def get_assessment(
    assessment_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_capability("view_assessment_by_id"))
):
    try:
        return {"success": True, "data": assessment_service.get_assessment(db, assessment_id)}
    except LMSError as e:
        raise domain_error("get assessment", e)

@router.put("/assessments/{assessment_id}")
async def update_assessment(
    assessment_id: int,
    patch: AssessmentUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_capability("update_assessments"))
):
    try:
        assessment = assessment_service.update_assessment(db, assessment_id, patch)
        return {
            "success": True,
            "message": "Assessment updated successfully",
            "data": serialize_assessment(assessment)
        }
    except LMSError as e:
        raise domain_error("update assessment", e)
    except Exception as e:
        raise internal_error("update assessment", e)

@router.delete("/assessments/{assessment_id}")
async def delete_assessment(
    assessment_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_capability("delete_assessments"))
):
    try:
        assessment_service.delete_assessment(db, assessment_id)
        return {"success": True, "message": "Assessment deleted successfully"}
    except LMSError as e:
        raise domain_error("delete assessment", e)
    except Exception as e:
        raise internal_error("delete assessment", e)

@router.patch("/assessments/{assessment_id}/toggle-status")
async def toggle_assessment_status(
    assessment_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_capability("toggle_assessment_status"))
):
    try:
        assessment = assessment_service.toggle_status(db, assessment_id)
    except LMSError as e:
        raise domain_error("toggle assessment status", e)

    if assessment.is_active:
        await notification_service.notify_new_assessment(assessment.title, assessment.course.title)
    return {
        "success": True,
        "message": f"Assessment {'activated' if assessment.is_active else 'deactivated'} successfully",
        "data": {"id": assessment.id, "is_active": assessment.is_active}
    }

@router.post("/assessments/{assessment_id}/duplicate", status_code=status.HTTP_201_CREATED)
async def duplicate_assessment(
    assessment_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_capability("duplicate_assessment"))
):
    try:
        duplicate = assessment_service.duplicate_assessment(db, assessment_id, current_user.id)
        return {
            "success": True,
            "message": "Assessment duplicated successfully",
            "data": serialize_assessment(duplicate, with_questions=True)
        }
    except LMSError as e:
        raise domain_error("duplicate assessment", e)
    except Exception as e:
        raise internal_error("duplicate assessment", e)

# Questions
@router.post("/assessments/{assessment_id}/questions", status_code=status.HTTP_201_CREATED)
async def add_question(
    assessment_id: int,
    question_data: QuestionCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_capability("add_question_to_assessment"))
):
    try:
        question = assessment_service.add_question(db, assessment_id, question_data)
        return {"success": True, "data": serialize_question(question)}
    except LMSError as e:
        raise domain_error("add question", e)
    except Exception as e:
        raise internal_error("add question", e)

@router.put("/questions/{question_id}")
async def update_question(
    question_id: int,
    patch: QuestionUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_capability("update_question"))
):
    try:
        question = assessment_service.update_question(db, question_id, patch)
        return {"success": True, "data": serialize_question(question)}
    except LMSError as e:
        raise domain_error("update question", e)
    except Exception as e:
        raise internal_error("update question", e)

@router.delete("/questions/{question_id}")
async def delete_question(
    question_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_capability("delete_question"))
):
    try:
        rescored = assessment_service.delete_question(db, question_id)
        return {
            "success": True,
            "message": "Question deleted successfully",
            "rescored_submissions": rescored
        }
    except LMSError as e:
        raise domain_error("delete question", e)

# Grading and review
@router.get("/pending-grading")
async def pending_grading(
    course_id: Optional[int] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_capability("pending_grading"))
):
    try:
        queue = grading_service.pending_grading_queue(db, course_id)
        return {"success": True, "count": len(queue), "data": queue}
    except Exception as e:
        raise internal_error("fetch pending grading", e)

@router.get("/submissions/{submission_id}/details")
async def submission_details(
    submission_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_capability("view_submission_details"))
):
    try:
        return {"success": True, "data": grading_service.submission_details(db, submission_id)}
    except LMSError as e:
        raise domain_error("submission details", e)
    except Exception as e:
        raise internal_error("fetch submission details", e)

@router.post("/answers/{answer_id}/grade")
async def grade_answer(
    answer_id: int,
    request: GradeAnswerRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_capability("give_grade_to_questions"))
):
    try:
        result = grading_service.grade_answer(db, answer_id, current_user.id, request.marks_obtained)
        return {"success": True, "message": "Answer graded successfully", "data": result}
    except LMSError as e:
        raise domain_error("grade answer", e)
    except Exception as e:
        raise internal_error("grade answer", e)

@router.post("/submissions/{submission_id}/approve-review")
async def approve_review(
    submission_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_capability("approve_submission_review"))
):
    """Release the submission's result to the student"""
    try:
        approval = grading_service.approve_review(db, submission_id, current_user.id)
    except LMSError as e:
        raise domain_error("approve review", e)
    except Exception as e:
        raise internal_error("approve review", e)

    await notification_service.notify_result_available(approval.student_id, approval.assessment_title, submission_id)
    return {
        "success": True,
        "message": "Submission approved. The student can now view their results.",
        "data": approval
    }

# Analytics
@router.get("/assessments/{assessment_id}/analytics")
async def assessment_analytics(
    assessment_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_capability("view_assessment_analytics"))
):
    try:
        return {"success": True, "data": analytics_service.assessment_analytics(db, assessment_id)}
    except LMSError as e:
        raise domain_error("assessment analytics", e)
    except Exception as e:
        raise internal_error("fetch analytics", e)

@router.get("/assessments/{assessment_id}/submissions")
async def assessment_submissions(
    assessment_id: int,
    status_filter: Optional[str] = Query(None, alias="status", pattern="^(pending|checked)$"),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_capability("view_assessments_submissions"))
):
    try:
        submissions = grading_service.list_assessment_submissions(db, assessment_id, status_filter)
        return {"success": True, "count": len(submissions), "data": submissions}
    except LMSError as e:
        raise domain_error("list submissions", e)
    except Exception as e:
        raise internal_error("fetch submissions", e)

@router.get("/courses/{course_id}/analytics")
async def course_analytics(
    course_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_capability("view_assessment_analytics_courselevel"))
):
    try:
        return {"success": True, "data": analytics_service.course_analytics(db, course_id)}
    except LMSError as e:
        raise domain_error("course analytics", e)
    except Exception as e:
        raise internal_error("fetch course analytics", e)
