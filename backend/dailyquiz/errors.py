"""Error taxonomy surfaced by the daily quiz services.

Services translate storage exceptions into these classes so callers can
decide on retries without knowing the database engine. Each error
carries the HTTP status the API maps it to and whether repeating the
same request may succeed.
"""


class QuizError(Exception):
    status_code = 500
    retryable = False
    code = "quiz_error"

    def __init__(self, message: str = ""):
        self.message = message or (self.__doc__ or self.code).strip()
        super().__init__(self.message)


class ValidationError(QuizError):
    """Request is malformed."""
    status_code = 400
    code = "validation_error"


class NoActiveSession(QuizError):
    """No active quiz session for today."""
    status_code = 404
    code = "no_active_session"


class LimitExceeded(QuizError):
    """Daily quiz limit reached."""
    status_code = 403
    code = "limit_exceeded"


class AlreadySubmittedToday(QuizError):
    """Today's quiz was already submitted."""
    status_code = 409
    code = "already_submitted_today"


class StorageUnavailable(QuizError):
    """Storage temporarily unavailable, retry the request."""
    status_code = 503
    retryable = True
    code = "storage_unavailable"


class SessionUnavailable(StorageUnavailable):
    """Today's quiz session could not be obtained, retry the request."""
    code = "session_unavailable"
