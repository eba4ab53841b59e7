from __future__ import annotations

from typing import Any, Dict

from fastapi import Request

from utils.errors import AuthenticationRequired


def is_admin(request: Request) -> bool:
    return bool(request.session.get("is_admin"))


def require_admin(request: Request) -> Dict[str, Any]:
    """FastAPI-Dependency: nur angemeldete Admins."""
    if not is_admin(request):
        raise AuthenticationRequired()
    return {
        "username": request.session.get("username"),
        "login_time": request.session.get("login_time"),
        "role": "admin",
    }
