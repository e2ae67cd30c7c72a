from typing import List, Dict, Any, Optional
from sqlalchemy import func, or_
from sqlalchemy.orm import Session
from app.models.assessments import (
    Assessment, Question, QuestionOption, AssessmentSubmission, SubmissionAnswer, SubmissionStatus
)
from app.models.courses import Course
from app.schemas.assessments import (
    AssessmentCreate, AssessmentUpdate, QuestionCreate, QuestionUpdate, OptionCreate,
    check_question_options
)
from app.services.scoring import compute_percentage, round_half_up, score_submission
from app.utils.patch import FieldRule, apply_patch, non_blank, non_negative, positive
from app.utils.timeutil import as_utc
from app.errors import AssessmentNotFound, CourseNotFound, InvalidPatch, QuestionNotFound
import logging

logger = logging.getLogger(__name__)

ASSESSMENT_RULES = {
    "title": FieldRule(check=non_blank),
    "description": FieldRule(nullable=True),
    "course_id": FieldRule(),
    "time_limit": FieldRule(nullable=True, check=positive),
    "total_marks": FieldRule(check=positive),
    "passing_marks": FieldRule(check=non_negative),
    "attempts": FieldRule(check=positive),
    "randomize_questions": FieldRule(),
    "start_date": FieldRule(nullable=True),
    "end_date": FieldRule(nullable=True),
    "is_active": FieldRule(),
}

QUESTION_RULES = {
    "question_text": FieldRule(check=non_blank),
    "question_type": FieldRule(),
    "marks": FieldRule(check=positive),
    "explanation": FieldRule(nullable=True),
    "image_url": FieldRule(nullable=True),
    "is_active": FieldRule(),
}

def _build_options(options: List[OptionCreate]) -> List[QuestionOption]:
    return [
        QuestionOption(option_text=opt.option_text, is_correct=opt.is_correct, order=index)
        for index, opt in enumerate(options, start=1)
    ]

def serialize_question(question: Question) -> Dict[str, Any]:
    """Full question view for authors, correctness flags included"""
    return {
        "id": question.id,
        "question_text": question.question_text,
        "question_type": question.question_type.value,
        "marks": question.marks,
        "order": question.order,
        "is_active": question.is_active,
        "explanation": question.explanation,
        "image_url": question.image_url,
        "options": [
            {
                "id": opt.id,
                "option_text": opt.option_text,
                "is_correct": opt.is_correct,
                "order": opt.order
            } for opt in question.options
        ]
    }

def serialize_assessment(assessment: Assessment, with_questions: bool = False) -> Dict[str, Any]:
    data = {
        "id": assessment.id,
        "title": assessment.title,
        "description": assessment.description,
        "course_id": assessment.course_id,
        "course_title": assessment.course.title if assessment.course else None,
        "time_limit": assessment.time_limit,
        "total_marks": assessment.total_marks,
        "passing_marks": assessment.passing_marks,
        "attempts": assessment.attempts,
        "is_active": assessment.is_active,
        "randomize_questions": assessment.randomize_questions,
        "start_date": assessment.start_date,
        "end_date": assessment.end_date,
        "created_at": assessment.created_at,
    }
    if with_questions:
        data["questions"] = [serialize_question(q) for q in assessment.questions]
    return data

class AssessmentService:

    @staticmethod
    def get_assessment_or_404(db: Session, assessment_id: int) -> Assessment:
        assessment = db.query(Assessment).filter(Assessment.id == assessment_id).first()
        if not assessment:
            raise AssessmentNotFound()
        return assessment

    @staticmethod
    def get_question_or_404(db: Session, question_id: int) -> Question:
        question = db.query(Question).filter(Question.id == question_id).first()
        if not question:
            raise QuestionNotFound()
        return question

    @staticmethod
    def create_assessment(db: Session, creator_id: int, data: AssessmentCreate) -> Assessment:
        """Create an assessment with its nested questions and options"""
        if not db.query(Course.id).filter(Course.id == data.course_id).first():
            raise CourseNotFound()

        try:
            assessment = Assessment(
                title=data.title,
                description=data.description,
                course_id=data.course_id,
                created_by=creator_id,
                time_limit=data.time_limit,
                total_marks=data.total_marks,
                passing_marks=data.passing_marks,
                attempts=data.attempts,
                randomize_questions=data.randomize_questions,
                start_date=data.start_date,
                end_date=data.end_date,
                is_active=True
            )
            for index, q in enumerate(data.questions, start=1):
                assessment.questions.append(Question(
                    question_text=q.question_text,
                    question_type=q.question_type,
                    marks=q.marks,
                    order=q.order or index,
                    explanation=q.explanation,
                    image_url=q.image_url,
                    options=_build_options(q.options)
                ))
            db.add(assessment)
            db.commit()
            db.refresh(assessment)
        except Exception as e:
            logger.error(f"Error creating assessment: {str(e)}")
            db.rollback()
            raise

        logger.info(f"Assessment created: {assessment.title} ({len(data.questions)} questions)")
        return assessment

    @staticmethod
    def list_assessments(
        db: Session,
        course_id: Optional[int] = None,
        status: Optional[str] = None,
        search: Optional[str] = None
    ) -> List[Dict[str, Any]]:
        """List assessments with submission statistics over approved results"""
        query = db.query(Assessment)
        if course_id:
            query = query.filter(Assessment.course_id == course_id)
        if status == "active":
            query = query.filter(Assessment.is_active == True)
        elif status == "inactive":
            query = query.filter(Assessment.is_active == False)
        if search:
            pattern = f"%{search}%"
            query = query.filter(or_(
                Assessment.title.ilike(pattern),
                Assessment.description.ilike(pattern)
            ))

        result = []
        for assessment in query.order_by(Assessment.created_at.desc(), Assessment.id.desc()).all():
            submissions = assessment.submissions
            completed = [s for s in submissions if s.status == SubmissionStatus.COMPLETED]
            checked = [s for s in completed if s.is_checked_by_teacher]
            passed = [s for s in checked if s.is_passed]
            average = sum(s.percentage for s in checked) / len(checked) if checked else 0

            data = serialize_assessment(assessment)
            data["statistics"] = {
                "total_questions": len(assessment.questions),
                "total_submissions": len(submissions),
                "completed_submissions": len(completed),
                "checked_submissions": len(checked),
                "pending_review": len(completed) - len(checked),
                "passed_submissions": len(passed),
                "pass_rate": compute_percentage(len(passed), len(checked)) if checked else 0,
                "average_score": round_half_up(average),
            }
            result.append(data)
        return result

    @staticmethod
    def get_assessment(db: Session, assessment_id: int) -> Dict[str, Any]:
        assessment = AssessmentService.get_assessment_or_404(db, assessment_id)
        data = serialize_assessment(assessment, with_questions=True)
        data["submission_count"] = len(assessment.submissions)
        return data

    @staticmethod
    def update_assessment(db: Session, assessment_id: int, patch: AssessmentUpdate) -> Assessment:
        assessment = AssessmentService.get_assessment_or_404(db, assessment_id)

        course_id = patch.model_dump(exclude_unset=True).get("course_id")
        if course_id is not None and not db.query(Course.id).filter(Course.id == course_id).first():
            raise CourseNotFound()

        changed = apply_patch(assessment, patch, ASSESSMENT_RULES)
        start, end = as_utc(assessment.start_date), as_utc(assessment.end_date)
        if start and end and end < start:
            db.rollback()
            raise InvalidPatch("end_date must not be before start_date")

        db.commit()
        db.refresh(assessment)
        logger.info(f"Assessment {assessment_id} updated: {changed}")
        return assessment

    @staticmethod
    def delete_assessment(db: Session, assessment_id: int) -> None:
        assessment = AssessmentService.get_assessment_or_404(db, assessment_id)
        try:
            db.delete(assessment)
            db.commit()
        except Exception as e:
            logger.error(f"Error deleting assessment {assessment_id}: {str(e)}")
            db.rollback()
            raise
        logger.info(f"Assessment {assessment_id} deleted")

    @staticmethod
    def toggle_status(db: Session, assessment_id: int) -> Assessment:
        assessment = AssessmentService.get_assessment_or_404(db, assessment_id)
        assessment.is_active = not assessment.is_active
        db.commit()
        db.refresh(assessment)
        logger.info(f"Assessment {assessment_id} {'activated' if assessment.is_active else 'deactivated'}")
        return assessment

    @staticmethod
    def duplicate_assessment(db: Session, assessment_id: int, creator_id: int) -> Assessment:
        """Copy an assessment with its questions; the copy starts inactive"""
        original = AssessmentService.get_assessment_or_404(db, assessment_id)

        duplicate = Assessment(
            title=f"{original.title} (Copy)",
            description=original.description,
            course_id=original.course_id,
            created_by=creator_id,
            time_limit=original.time_limit,
            total_marks=original.total_marks,
            passing_marks=original.passing_marks,
            attempts=original.attempts,
            randomize_questions=original.randomize_questions,
            start_date=original.start_date,
            end_date=original.end_date,
            is_active=False
        )
        for q in original.questions:
            duplicate.questions.append(Question(
                question_text=q.question_text,
                question_type=q.question_type,
                marks=q.marks,
                order=q.order,
                is_active=q.is_active,
                explanation=q.explanation,
                image_url=q.image_url,
                options=[
                    QuestionOption(option_text=o.option_text, is_correct=o.is_correct, order=o.order)
                    for o in q.options
                ]
            ))
        db.add(duplicate)
        db.commit()
        db.refresh(duplicate)
        logger.info(f"Assessment {assessment_id} duplicated as {duplicate.id}")
        return duplicate

    # Question management
    @staticmethod
    def add_question(db: Session, assessment_id: int, data: QuestionCreate) -> Question:
        AssessmentService.get_assessment_or_404(db, assessment_id)

        order = data.order
        if order is None:
            order = db.query(func.count(Question.id)).filter(
                Question.assessment_id == assessment_id
            ).scalar() + 1

        question = Question(
            assessment_id=assessment_id,
            question_text=data.question_text,
            question_type=data.question_type,
            marks=data.marks,
            order=order,
            explanation=data.explanation,
            image_url=data.image_url,
            options=_build_options(data.options)
        )
        db.add(question)
        db.commit()
        db.refresh(question)
        logger.info(f"Question {question.id} added to assessment {assessment_id}")
        return question

    @staticmethod
    def update_question(db: Session, question_id: int, patch: QuestionUpdate) -> Question:
        question = AssessmentService.get_question_or_404(db, question_id)

        try:
            apply_patch(question, patch, QUESTION_RULES)
            if patch.options is not None:
                question.options = _build_options(patch.options)
                options = patch.options
            else:
                options = [
                    OptionCreate(option_text=o.option_text, is_correct=o.is_correct)
                    for o in question.options
                ]
            try:
                check_question_options(question.question_type, options)
            except ValueError as e:
                raise InvalidPatch(str(e))
            db.commit()
        except Exception:
            db.rollback()
            raise

        db.refresh(question)
        logger.info(f"Question {question_id} updated")
        return question

    @staticmethod
    def delete_question(db: Session, question_id: int) -> List[int]:
        """Delete a question with its answers and rescore the unapproved
        completed submissions that had answered it.

        Approved submissions keep the marks they were approved with.
        Returns the ids of the rescored submissions.
        """
        question = AssessmentService.get_question_or_404(db, question_id)
        assessment = question.assessment

        affected_ids = [
            submission_id for (submission_id,) in db.query(SubmissionAnswer.submission_id).filter(
                SubmissionAnswer.question_id == question_id
            ).distinct().all()
        ]
        rescored = []
        try:
            db.query(SubmissionAnswer).filter(
                SubmissionAnswer.question_id == question_id
            ).delete(synchronize_session=False)
            db.delete(question)
            db.flush()

            if affected_ids and assessment.total_marks > 0:
                submissions = db.query(AssessmentSubmission).filter(
                    AssessmentSubmission.id.in_(affected_ids),
                    AssessmentSubmission.status == SubmissionStatus.COMPLETED,
                    AssessmentSubmission.is_checked_by_teacher == False
                ).with_for_update().populate_existing().all()
                for submission in submissions:
                    score = score_submission(db, submission.id, assessment)
                    submission.obtained_marks = score.obtained_marks
                    submission.percentage = score.percentage
                    submission.is_passed = score.is_passed
                    rescored.append(submission.id)
            db.commit()
        except Exception as e:
            logger.error(f"Error deleting question {question_id}: {str(e)}")
            db.rollback()
            raise

        logger.info(f"Question {question_id} deleted, rescored submissions: {rescored}")
        return rescored

# Create service instance
assessment_service = AssessmentService()
