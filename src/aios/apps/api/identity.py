from __future__ import annotations

from uuid import uuid4

from fastapi import Request, Response

USER_HEADER = "X-AIOS-USER"
USER_COOKIE = "aios_user"


def extract_user_id(request: Request) -> str | None:
    header_id = request.headers.get(USER_HEADER)
    if header_id:
        return header_id.strip()
    cookie_id = request.cookies.get(USER_COOKIE)
    if cookie_id:
        return cookie_id
    return None


def get_user_id(request: Request, response: Response) -> str:
    """Stable opaque id for the caller; issues an anonymous one on first contact."""
    user_id = extract_user_id(request)
    if user_id:
        return user_id
    user_id = uuid4().hex
    response.set_cookie(USER_COOKIE, user_id, httponly=True, samesite="lax")
    return user_id
