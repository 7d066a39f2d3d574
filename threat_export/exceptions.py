from http import HTTPStatus
from typing import Dict, Optional


class DocumentParseError(Exception):
    """Raised when a stored model cannot be read as a threat model document."""
    pass


class ThreatSchemaError(Exception):
    """Raised when the gameplay identified-threats structure has the wrong shape."""
    pass


class MatchNotFoundError(Exception):
    """Raised by a match store when no match exists for the requested id."""

    def __init__(self, match_id: str):
        super().__init__(f"Match not found: {match_id}")
        self.match_id = match_id


class ViewError(Exception):
    """
    Exceptions of this type are converted to user-visible errors.
    Subclasses overwrite STATUS to specify the HTTP status code of the response.
    """

    STATUS = HTTPStatus.INTERNAL_SERVER_ERROR

    def to_dict(self, request_id: Optional[str] = None) -> Dict[str, str]:
        error_dict = {"code": type(self).__name__, "message": str(self)}
        if request_id:
            error_dict["requestId"] = request_id
        return error_dict


class BadRequestError(ViewError):
    STATUS = HTTPStatus.BAD_REQUEST


class NotFoundError(ViewError):
    STATUS = HTTPStatus.NOT_FOUND


class UnsupportedModelError(BadRequestError):
    """The match stores a model kind the requested export cannot use."""

    def __init__(self, message: str, model_type: Optional[str] = None):
        super().__init__(message)
        self.model_type = model_type
