"""FastAPI dependencies shared by the endpoints."""
from fastapi import Depends, Request

from media_relay.core.config import Settings
from media_relay.services.errors import PayloadTooLargeError


def get_app_settings(request: Request) -> Settings:
    """Settings the running application was created with."""
    return request.app.state.settings


async def enforce_body_limit(
    request: Request,
    settings: Settings = Depends(get_app_settings),
) -> None:
    """Reject requests whose declared body exceeds ``MAX_BODY_BYTES``."""
    content_length = request.headers.get("content-length", "")
    if content_length.isdigit() and int(content_length) > settings.MAX_BODY_BYTES:
        raise PayloadTooLargeError(
            f"Request body exceeds {settings.MAX_BODY_BYTES} bytes"
        )
