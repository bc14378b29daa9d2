"""
Error kinds raised by the request engine.

Each carries a short, user-facing message. Routers translate them to HTTP
responses; nothing internal is attached to the message.
"""


class RequestEngineError(Exception):
    status_code = 400
    default_message = "Request could not be processed"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class NotAuthenticatedError(RequestEngineError):
    status_code = 401
    default_message = "Not authenticated"


class ForbiddenError(RequestEngineError):
    status_code = 403
    default_message = "You do not have permission to perform this action"


class InvalidRequestError(RequestEngineError):
    status_code = 400
    default_message = "Invalid request"


class NotFoundError(RequestEngineError):
    status_code = 404
    default_message = "Request not found"


class InvalidStateError(RequestEngineError):
    status_code = 409
    default_message = "Request is not pending"


class MergeFailedError(RequestEngineError):
    status_code = 500
    default_message = "Account merge failed; the claim stays approved and can be retried"
