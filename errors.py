class QuestError(Exception):
    status_code = 400

    def __init__(self, message=None):
        super().__init__(message or self.__class__.__doc__)
        self.message = message or self.__class__.__doc__


class ValidationError(QuestError):
    """Invalid request"""
    status_code = 400


class Forbidden(QuestError):
    """Unauthorized"""
    status_code = 403


class QuestNotFoundOrCompleted(QuestError):
    """Quest not found or already completed"""
    status_code = 404


class GenerationFailure(Exception):
    """The AI backend did not produce a usable quest."""
