from app.models.user import User, Role, Capability, RoleCapability
from app.models.courses import Course, CourseCategory, CourseModule, Enrollment, ModuleProgress
from app.models.assessments import (
    Assessment,
    Question,
    QuestionOption,
    AssessmentSubmission,
    SubmissionAnswer
)
