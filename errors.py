class LMSError(Exception):
    reason = "error"

    def __init__(self, message: str = "", reason: str = None):
        super().__init__(message or self.reason)
        self.message = message or self.reason
        if reason:
            self.reason = reason


class NotFound(LMSError):
    """Course document, team record or account does not exist"""
    reason = "not_found"


class InvalidCredentials(LMSError):
    reason = "invalid_credentials"


class WrongPassword(InvalidCredentials):
    reason = "wrong_password"


class InvalidCredentialsFormat(InvalidCredentials):
    """Email or password rejected by the identity provider before any lookup"""
    reason = "invalid_credentials_format"


class AlreadyExists(LMSError):
    reason = "already_exists"


class InvalidQuizDefinition(LMSError):
    """Quiz cannot be scored, e.g. it has no questions"""
    reason = "invalid_quiz_definition"


class StaleNavigation(LMSError):
    """Navigation into a module that is not unlocked yet"""
    reason = "stale_navigation"


class NotReady(LMSError):
    """Session has no course and progress record loaded"""
    reason = "not_ready"


class BackendUnavailable(LMSError):
    reason = "backend_unavailable"


class CourseFormatError(LMSError):
    reason = "course_format"


class TeamRecordError(LMSError):
    """Stored team record is missing fields or has the wrong shape"""
    reason = "team_record_invalid"


class RegistrationError(LMSError):
    reason = "registration_invalid"


class CompletionRefused(LMSError):
    """Chapter cannot be completed by the requested action"""
    reason = "completion_refused"
