"""Request guards: API key authentication and upload size limits."""

from __future__ import annotations

import secrets
from http import HTTPStatus
from typing import TYPE_CHECKING, Annotated

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

if TYPE_CHECKING:
    from cascadex.config import Settings

_bearer_scheme = HTTPBearer(auto_error=False)


def get_settings_from_request(request: Request) -> Settings:
    settings: Settings = request.app.state.settings
    return settings


async def verify_api_key(
    request: Request,
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(_bearer_scheme)],
) -> None:
    """Check the Bearer token against CASCADEX_API_KEY.

    Without a configured key every request passes. Otherwise requests must
    carry 'Authorization: Bearer <key>'.
    """
    expected = get_settings_from_request(request).api_key
    if expected is None:
        return

    supplied = credentials.credentials if credentials is not None else ""
    if not secrets.compare_digest(supplied.encode(), expected.encode()):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or missing API key",
            headers={"WWW-Authenticate": "Bearer"},
        )


def check_upload_size(settings: Settings, payload: bytes) -> None:
    """Reject uploads larger than CASCADEX_MAX_FILE_SIZE with 413."""
    if len(payload) > settings.max_file_size:
        raise HTTPException(
            status_code=HTTPStatus.REQUEST_ENTITY_TOO_LARGE,
            detail=f"Upload of {len(payload)} bytes exceeds the limit of {settings.max_file_size}",
        )
