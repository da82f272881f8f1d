"""
Plantwatch — Session Gate

A UI gate, not access control: the credentials are literal settings values
and the logged-in flag lives in the signed session cookie. Anyone with the
configured username/password (or the session secret) gets in.
"""
import secrets

from fastapi import HTTPException, Request

from config import Settings

SESSION_FLAG = "logged_in"


def check_credentials(username: str, password: str, settings: Settings) -> bool:
    user_ok = secrets.compare_digest(username.encode(), settings.DASHBOARD_USERNAME.encode())
    pass_ok = secrets.compare_digest(password.encode(), settings.DASHBOARD_PASSWORD.encode())
    return user_ok and pass_ok


def is_logged_in(request: Request) -> bool:
    return request.session.get(SESSION_FLAG) is True


def mark_logged_in(request: Request) -> None:
    request.session[SESSION_FLAG] = True


def clear_login(request: Request) -> None:
    request.session.pop(SESSION_FLAG, None)


async def require_login(request: Request) -> None:
    """Dependency for JSON endpoints: 401 without a session flag."""
    if not is_logged_in(request):
        raise HTTPException(status_code=401, detail="Login required")
