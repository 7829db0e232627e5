import secrets

from fastapi import Header, Request

from shared.helper.errors import UnauthorizedError


async def verify_admin_token(request: Request, x_admin_token: str | None = Header(default=None)) -> None:
    """Verify the X-Admin-Token header against the configured admin token.

    Args:
        request (Request): The FastAPI request object (provides app.state).
        x_admin_token (str | None): The value of the X-Admin-Token header.

    Raises:
        ConfigurationError: If ADMIN_TOKEN is not configured.
        UnauthorizedError: 401 if the token is missing or does not match.
    """
    helper_config = request.app.state.helper_config
    expected = helper_config.get_string_val("ADMIN_TOKEN")
    if not x_admin_token or not secrets.compare_digest(x_admin_token, expected):
        raise UnauthorizedError("unauthorized")
