# =============================================================================
# 🚀 Dynamic QR – Hauptapplikation (main.py)
# =============================================================================

from __future__ import annotations
import logging
import os
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Dict

from fastapi import FastAPI, Request, Depends
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.middleware.sessions import SessionMiddleware
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

import config
from database import get_db, init_db
from utils.errors import AppError, GENERIC_ERROR_MESSAGE
from utils.rate_limit import LoginRateLimiter

# -------------------------------------------------------------------------
# 1️⃣ Logging
# -------------------------------------------------------------------------
logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


# -------------------------------------------------------------------------
# 2️⃣ FastAPI App
# -------------------------------------------------------------------------
@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    config.UPLOAD_DIR.mkdir(parents=True, exist_ok=True)
    logger.info(f"🚀 Dynamic QR gestartet – BASE_URL={config.get_base_url()}")
    yield


app = FastAPI(title="Dynamic QR", version="1.0", lifespan=lifespan)

# Login-Sperren leben nur im Prozess
app.state.login_limiter = LoginRateLimiter(
    max_attempts=config.LOGIN_MAX_ATTEMPTS,
    lockout_seconds=config.LOGIN_LOCKOUT_MINUTES * 60,
)

# -------------------------------------------------------------------------
# 3️⃣ Session Middleware
# -------------------------------------------------------------------------
app.add_middleware(
    SessionMiddleware,
    secret_key=config.SESSION_SECRET,
    max_age=config.SESSION_MAX_AGE,
    session_cookie=config.SESSION_COOKIE_NAME,
    same_site=config.SESSION_SAME_SITE,
    https_only=config.SESSION_HTTPS_ONLY,
)


# -------------------------------------------------------------------------
# 4️⃣ Fehlerbehandlung → {"success": false, "error": ...}
# -------------------------------------------------------------------------
@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    if exc.expose_message:
        logger.warning(f"⚠️ {request.method} {request.url.path}: {exc.public_message}")
    else:
        logger.error(f"❌ {request.method} {request.url.path}: {exc.message}", exc_info=exc)

    headers = None
    retry_after = getattr(exc, "retry_after_seconds", None)
    if retry_after is not None:
        headers = {"Retry-After": str(retry_after)}

    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "error": exc.public_message},
        headers=headers,
    )


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    first = exc.errors()[0] if exc.errors() else {}
    field = ".".join(str(part) for part in first.get("loc", ()) if part not in ("body", "query", "path"))
    message = first.get("msg", "Invalid request")
    return JSONResponse(
        status_code=400,
        content={"success": False, "error": f"{field}: {message}" if field else message},
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(f"💥 Unerwarteter Fehler bei {request.method} {request.url.path}", exc_info=exc)
    return JSONResponse(status_code=500, content={"success": False, "error": GENERIC_ERROR_MESSAGE})


# -------------------------------------------------------------------------
# 5️⃣ Routen laden
# -------------------------------------------------------------------------
from routes import auth
from routes import qr_base
from routes import qr_resolve

app.include_router(auth.router)
app.include_router(qr_base.router)
app.include_router(qr_resolve.router)


# -------------------------------------------------------------------------
# 6️⃣ Health
# -------------------------------------------------------------------------
@app.get("/health")
def health(db: Session = Depends(get_db)) -> JSONResponse:
    payload: Dict[str, Any] = {
        "status": "ok",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "database": "ok",
    }
    try:
        db.execute(text("SELECT 1"))
    except SQLAlchemyError:
        logger.exception("❌ Health-Check: Datenbank nicht erreichbar")
        payload.update(status="degraded", database="unavailable")
        return JSONResponse(status_code=503, content=payload)
    return JSONResponse(content=payload)
