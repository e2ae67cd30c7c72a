from pydantic import BaseModel, ConfigDict, Field, model_validator
from typing import List, Dict, Any, Optional
from datetime import datetime
from app.models.assessments import QuestionType

# Question bank schemas
class OptionCreate(BaseModel):
    option_text: str = Field(..., min_length=1)
    is_correct: bool = False

class QuestionCreate(BaseModel):
    question_text: str = Field(..., min_length=1)
    question_type: QuestionType
    marks: int = Field(1, ge=1)
    order: Optional[int] = None
    explanation: Optional[str] = None
    image_url: Optional[str] = None
    options: List[OptionCreate] = []

    @model_validator(mode="after")
    def check_options(self):
        check_question_options(self.question_type, self.options)
        return self

def check_question_options(question_type: QuestionType, options: List[OptionCreate]) -> None:
    """Choice questions need options with exactly one marked correct"""
    if question_type.is_objective:
        if len(options) < 2:
            raise ValueError(f"{question_type.value} questions need at least two options")
        correct = sum(1 for opt in options if opt.is_correct)
        if correct != 1:
            raise ValueError(
                f"{question_type.value} questions need exactly one correct option (got {correct})"
            )
    elif options:
        raise ValueError(f"{question_type.value} questions do not take options")

class QuestionUpdate(BaseModel):
    """Partial question update; a supplied option list replaces every option"""
    question_text: Optional[str] = None
    question_type: Optional[QuestionType] = None
    marks: Optional[int] = None
    explanation: Optional[str] = None
    image_url: Optional[str] = None
    is_active: Optional[bool] = None
    options: Optional[List[OptionCreate]] = None

class AssessmentCreate(BaseModel):
    title: str = Field(..., min_length=1)
    description: Optional[str] = None
    course_id: int
    time_limit: Optional[int] = Field(None, ge=1, description="Minutes")
    total_marks: int = Field(100, gt=0)
    passing_marks: int = Field(40, ge=0)
    attempts: int = Field(1, ge=1)
    randomize_questions: bool = False
    start_date: Optional[datetime] = Field(None, description="Window start in UTC")
    end_date: Optional[datetime] = Field(None, description="Window end in UTC")
    questions: List[QuestionCreate] = []

    @model_validator(mode="after")
    def check_window(self):
        if self.start_date and self.end_date and self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        return self

class AssessmentUpdate(BaseModel):
    """Partial assessment update, only fields sent by the caller are applied"""
    title: Optional[str] = None
    description: Optional[str] = None
    course_id: Optional[int] = None
    time_limit: Optional[int] = None
    total_marks: Optional[int] = None
    passing_marks: Optional[int] = None
    attempts: Optional[int] = None
    randomize_questions: Optional[bool] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    is_active: Optional[bool] = None

# Attempt schemas
class SaveAnswerRequest(BaseModel):
    submission_id: int
    question_id: int
    selected_option_id: Optional[int] = None
    text_answer: Optional[str] = None
    time_spent: Optional[int] = Field(None, ge=0)

class SubmitAssessmentRequest(BaseModel):
    submission_id: int

class OptionView(BaseModel):
    """Option as shown to a student taking the assessment (no correctness flag)"""
    id: int
    option_text: str

    model_config = ConfigDict(from_attributes=True)

class QuestionView(BaseModel):
    id: int
    question_text: str
    question_type: QuestionType
    marks: int
    image_url: Optional[str] = None
    options: List[OptionView]

class AttemptAssessmentInfo(BaseModel):
    id: int
    title: str
    description: Optional[str] = None
    time_limit: Optional[int] = None
    total_marks: int
    start_time: datetime

class AttemptStarted(BaseModel):
    submission_id: int
    attempt_number: int
    resumed: bool
    assessment: AttemptAssessmentInfo
    questions: List[QuestionView]

class SubmissionReceipt(BaseModel):
    submission_id: int
    status: str = "PENDING_REVIEW"
    message: str = (
        "Your assessment has been submitted. Results will be available "
        "once the teacher reviews your submission."
    )
    submitted_at: datetime
    time_spent: int
    obtained_marks: int
    total_marks: int
    percentage: float

# Grading schemas
class GradeAnswerRequest(BaseModel):
    marks_obtained: int

class GradeResult(BaseModel):
    answer_id: int
    submission_id: int
    marks_awarded: int
    max_marks: int
    new_total_score: int
    new_percentage: float
    is_passed: bool

class ReviewApproval(BaseModel):
    submission_id: int
    student_id: int
    student_name: str
    assessment_title: str
    approved_at: datetime
    obtained_marks: int
    total_marks: int
    percentage: float
    is_passed: bool

class AnalyticsOverview(BaseModel):
    total_submissions: int
    checked_submissions: int
    pending_review: int
    total_students: int
    total_attempts: int
    passed_count: int
    pass_rate: float
    average_score: float
    score_distribution: Dict[str, int]

class AssessmentAnalytics(BaseModel):
    overview: AnalyticsOverview
    question_analytics: List[Dict[str, Any]]
    student_performance: List[Dict[str, Any]]
