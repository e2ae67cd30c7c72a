from decimal import Decimal, ROUND_HALF_UP
from typing import NamedTuple
from sqlalchemy import func
from sqlalchemy.orm import Session
from app.models.assessments import Assessment, SubmissionAnswer


class Score(NamedTuple):
    obtained_marks: int
    total_marks: int
    percentage: float
    is_passed: bool


TWO_PLACES = Decimal("0.01")


def round_half_up(value) -> float:
    """Two decimals with ties rounded away from zero (3.125 -> 3.13)"""
    return float(Decimal(str(value)).quantize(TWO_PLACES, rounding=ROUND_HALF_UP))


def compute_percentage(obtained_marks: int, total_marks: int) -> float:
    exact = Decimal(obtained_marks * 100) / Decimal(total_marks)
    return float(exact.quantize(TWO_PLACES, rounding=ROUND_HALF_UP))


def score_submission(db: Session, submission_id: int, assessment: Assessment) -> Score:
    """Re-sum every stored answer of a submission against the assessment's current marks.

    Callers hold the submission row lock and have flushed their own answer
    changes, so the sum reflects everything committed plus this transaction.
    """
    obtained = db.query(
        func.coalesce(func.sum(SubmissionAnswer.marks_obtained), 0)
    ).filter(SubmissionAnswer.submission_id == submission_id).scalar()
    obtained = int(obtained or 0)
    total = assessment.total_marks
    return Score(
        obtained_marks=obtained,
        total_marks=total,
        percentage=compute_percentage(obtained, total),
        is_passed=obtained >= assessment.passing_marks,
    )
