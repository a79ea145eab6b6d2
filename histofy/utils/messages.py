"""User-facing guidance for hosting API errors."""

from histofy.errors import (
    AuthenticationError,
    ConflictError,
    HostingAPIError,
    NotFoundError,
    PermissionDeniedError,
    RateLimitExceeded,
)

REQUIRED_SCOPES = ("repo", "user")

_AUTH_HINT = (
    "Authentication failed. Please check your GitHub token. "
    f"Required token scopes: {', '.join(REQUIRED_SCOPES)}."
)
_PERMISSION_HINT = "Access forbidden. Check repository permissions and that the token has push access."
_NOT_FOUND_HINT = "Resource not found. Check the repository owner and name."
_CONFLICT_HINT = "Branch conflict. The repository may still be initialising; retry in a moment."


def _rate_limit_hint(error: RateLimitExceeded | None) -> str:
    if error is not None and error.reset_time is not None:
        return f"Rate limit exceeded. Resets at {error.reset_time.isoformat()}."
    return "Rate limit exceeded. Wait for the quota to reset and try again."


def describe_error(error: BaseException | str, context: str = "") -> str:
    """
    Translate an error into guidance text.

    Typed hosting errors map by class; plain messages are matched on the
    status codes or phrases they contain.

    Args:
        error: Exception or message to describe
        context: Optional trailing context (e.g. the repository)

    Returns:
        Human readable message
    """
    match error:
        case RateLimitExceeded():
            text = _rate_limit_hint(error)
        case AuthenticationError():
            text = _AUTH_HINT
        case PermissionDeniedError():
            text = _PERMISSION_HINT
        case NotFoundError():
            text = _NOT_FOUND_HINT
        case ConflictError():
            text = _CONFLICT_HINT
        case HostingAPIError():
            text = f"API error: {error.message}"
        case _:
            message = str(error)
            lowered = message.lower()
            if "rate limit" in lowered:
                text = _rate_limit_hint(None)
            elif "401" in message or "bad credentials" in lowered:
                text = _AUTH_HINT
            elif "403" in message:
                text = _PERMISSION_HINT
            elif "404" in message:
                text = _NOT_FOUND_HINT
            elif "409" in message:
                text = _CONFLICT_HINT
            else:
                text = message

    return f"{text} {context}".strip()
