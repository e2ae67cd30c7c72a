"""Domain errors raised by the service layer.

Every failure a caller can act on is one of these; routers map them to
HTTP responses through ``status_code``. Anything else escaping a service
is an internal error.
"""


class LMSError(Exception):
    status_code = 400
    default_message = "Request could not be processed"

    def __init__(self, message: str = None):
        super().__init__(message or self.default_message)


# NotFound
class NotFoundError(LMSError):
    status_code = 404
    default_message = "Resource not found"

class AssessmentNotFound(NotFoundError):
    default_message = "Assessment not found"

class SubmissionNotFound(NotFoundError):
    default_message = "Submission not found"

class QuestionNotFound(NotFoundError):
    default_message = "Question not found"

class OptionNotFound(NotFoundError):
    default_message = "Option not found for this question"

class AnswerNotFound(NotFoundError):
    default_message = "Answer not found"

class CourseNotFound(NotFoundError):
    default_message = "Course not found"

class ModuleNotFound(NotFoundError):
    default_message = "Module not found"

class UserNotFound(NotFoundError):
    default_message = "User not found"

class RoleNotFound(NotFoundError):
    default_message = "Role not found"

class CategoryNotFound(NotFoundError):
    default_message = "Category not found"


# Forbidden
class ForbiddenError(LMSError):
    status_code = 403
    default_message = "Access denied"

class NotEnrolled(ForbiddenError):
    default_message = "You are not enrolled in this course"

class NotSubmissionOwner(ForbiddenError):
    default_message = "Submission does not belong to this user"

class ResultsPending(ForbiddenError):
    default_message = (
        "Your assessment has been submitted and result is pending teacher review"
    )


# InvalidState
class InvalidStateError(LMSError):
    status_code = 409
    default_message = "Operation not allowed in the current state"

class SubmissionClosed(InvalidStateError):
    default_message = "Submission is no longer in progress"

class AlreadyCompleted(InvalidStateError):
    default_message = "Submission already completed"

class AssessmentUnavailable(InvalidStateError):
    default_message = "Assessment is not available at this time"

class ReviewAlreadyApproved(InvalidStateError):
    default_message = "Submission review has already been approved"

class AlreadyEnrolled(InvalidStateError):
    default_message = "Already enrolled in this course"

class CategoryExists(InvalidStateError):
    default_message = "Category already exists"

class EmailAlreadyRegistered(InvalidStateError):
    default_message = "Email already registered"


class AttemptsExceeded(LMSError):
    default_message = "Maximum attempts exceeded"

class InvalidConfiguration(LMSError):
    default_message = "Assessment has invalid total marks configuration"

class MarksOutOfRange(LMSError):
    default_message = "Marks out of range"

class GradingIncomplete(LMSError):
    default_message = "Submission still has ungraded answers"

class InvalidPatch(LMSError):
    default_message = "Invalid update"

class ConcurrentAttemptConflict(LMSError):
    status_code = 409
    default_message = "Another attempt was started concurrently, please retry"
