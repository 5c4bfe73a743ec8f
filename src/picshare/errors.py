"""Error definitions for PicShare.

Every failure surfaced to a client is one of four kinds, each bound to a
single HTTP status. Messages carried by these errors are the generic,
client-safe text; internal detail is logged where the error is raised and
kept on the exception chain.
"""


class PicShareError(Exception):
    """A client-visible error with code, message, and HTTP status.

    Attributes:
        code: Short error kind (e.g. "ValidationError", "AuthError").
        message: Client-safe description.
        http_status: The HTTP status code to return.
    """

    code = "PicShareError"
    http_status = 500
    default_message = "Request failed"

    def __init__(self, message: str | None = None) -> None:
        """Initialize the error.

        Args:
            message: Client-safe description. Defaults to the class message.
        """
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_dict(self, request_id: str = "") -> dict[str, str]:
        body = {"error": self.code, "message": self.message}
        if request_id:
            body["requestId"] = request_id
        return body


# -- The four kinds ------------------------------------------------------------


class ValidationError(PicShareError):
    """Malformed input, unsupported media type, or owner/path mismatch."""

    code = "ValidationError"
    http_status = 400
    default_message = "Bad request"


class AuthError(PicShareError):
    """Missing/invalid/expired token, bad credentials, or forbidden access."""

    code = "AuthError"
    http_status = 401
    default_message = "Unauthorized"


class NotFoundError(PicShareError):
    """No record exists for the given identifier."""

    code = "NotFoundError"
    http_status = 404
    default_message = "Not found"


class InternalError(PicShareError):
    """Storage, blob I/O, or serialization failure."""

    code = "InternalError"
    http_status = 500
    default_message = "We encountered an internal error. Please try again."


# -- Common pre-defined errors ------------------------------------------------


class UnsupportedMediaType(ValidationError):
    """The uploaded bytes are not one of the accepted image encodings."""

    default_message = "Unsupported file type, upload a jpeg or png image"


class OwnerMismatch(ValidationError):
    """The owner id in the path does not match the record's owner."""

    default_message = "Owner mismatch, check the image reference"


class DuplicateEmail(ValidationError):
    """An account with this email already exists."""

    default_message = "That email is already registered"


class InvalidCredentials(AuthError):
    """Login failed. Deliberately identical for every underlying cause."""

    default_message = "Invalid login"


class InvalidToken(AuthError):
    """The bearer token is missing, malformed, or expired."""

    default_message = "Missing or invalid token, sign in to obtain a new one"
