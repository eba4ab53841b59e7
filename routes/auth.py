# routes/auth.py
import hmac
import logging
from datetime import datetime, timezone
from typing import Any, Dict

from fastapi import APIRouter, Depends, Request
from passlib.hash import bcrypt
from pydantic import BaseModel

from config import get_admin_credentials
from routes.utils import client_ip, get_login_limiter
from utils.access_control import is_admin, require_admin
from utils.errors import AppError, InvalidCredentials, ValidationError
from utils.rate_limit import LoginRateLimiter

logger = logging.getLogger(__name__)

# ─────────────────────────────────────────────
# 🔐 Authentifizierungs-Router (Admin)
# ─────────────────────────────────────────────
router = APIRouter(prefix="/api/auth", tags=["Authentication"])

USERNAME_MAX_LENGTH = 100
PASSWORD_MAX_LENGTH = 200


class LoginIn(BaseModel):
    username: str = ""
    password: str = ""


def _verify_admin(username: str, password: str) -> bool:
    """Vergleicht mit ADMIN_USERNAME und ADMIN_PASSWORD bzw. ADMIN_PASSWORD_HASH (bcrypt)."""
    admin_user, admin_password, admin_hash = get_admin_credentials()
    if not admin_user or not (admin_password or admin_hash):
        logger.error("❌ Admin-Zugangsdaten sind nicht konfiguriert")
        raise AppError("Admin credentials are not configured")

    username_ok = hmac.compare_digest(username.lower(), admin_user.lower())
    if admin_hash:
        try:
            password_ok = bcrypt.verify(password, admin_hash)
        except ValueError:
            logger.error("❌ ADMIN_PASSWORD_HASH ist kein gültiger bcrypt-Hash")
            password_ok = False
    else:
        password_ok = hmac.compare_digest(password.encode("utf-8"), admin_password.encode("utf-8"))
    return username_ok and password_ok


# ─────────────────────────────────────────────
# 🔑 Login
# ─────────────────────────────────────────────
@router.post("/login")
def login(
    payload: LoginIn,
    request: Request,
    limiter: LoginRateLimiter = Depends(get_login_limiter),
) -> Dict[str, Any]:
    username = payload.username.strip().lower()
    password = payload.password.strip()

    if not username or not password:
        raise ValidationError("Username and password are required")
    if len(username) > USERNAME_MAX_LENGTH or len(password) > PASSWORD_MAX_LENGTH:
        raise ValidationError("Username or password is too long")

    client = client_ip(request)
    limiter.check(client)

    authenticated = _verify_admin(username, password)
    limiter.record(client, authenticated)

    if not authenticated:
        logger.warning(f"⚠️ Fehlgeschlagener Login: {username} – IP: {client}")
        raise InvalidCredentials()

    login_time = datetime.now(timezone.utc).isoformat()
    request.session["is_admin"] = True
    request.session["username"] = username
    request.session["login_time"] = login_time

    logger.info(f"✅ Login erfolgreich: {username} – IP: {client}")
    return {
        "success": True,
        "message": "Login successful",
        "user": {"username": username, "login_time": login_time, "role": "admin"},
    }


# ─────────────────────────────────────────────
# 🚪 Logout
# ─────────────────────────────────────────────
@router.post("/logout")
def logout(request: Request) -> Dict[str, Any]:
    logger.info(f"👋 Logout: {request.session.get('username') or 'unbekannt'} – IP: {client_ip(request)}")
    request.session.clear()
    return {
        "success": True,
        "message": "Logged out",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


# ─────────────────────────────────────────────
# ℹ️ Status
# ─────────────────────────────────────────────
@router.get("/status")
def status(request: Request) -> Dict[str, Any]:
    if is_admin(request):
        return {
            "success": True,
            "authenticated": True,
            "user": {
                "username": request.session.get("username"),
                "login_time": request.session.get("login_time"),
                "role": "admin",
            },
        }
    return {"success": True, "authenticated": False, "message": "No active session"}


# ─────────────────────────────────────────────
# 📊 Login-Statistik & Zurücksetzen (nur Admin)
# ─────────────────────────────────────────────
@router.get("/login-stats", dependencies=[Depends(require_admin)])
def login_stats(limiter: LoginRateLimiter = Depends(get_login_limiter)) -> Dict[str, Any]:
    return {"success": True, "login_stats": limiter.stats()}


@router.post("/clear-attempts", dependencies=[Depends(require_admin)])
def clear_attempts(limiter: LoginRateLimiter = Depends(get_login_limiter)) -> Dict[str, Any]:
    cleared = limiter.clear()
    return {
        "success": True,
        "message": f"{cleared} login attempt record(s) cleared",
        "cleared_count": cleared,
    }
