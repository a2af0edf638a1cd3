import logging
import os
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from fastapi import Cookie, FastAPI, HTTPException, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import psycopg2
from dotenv import load_dotenv
from jose import JWTError, jwt

_project_root = Path(__file__).resolve().parents[1]
if str(_project_root) not in sys.path:
    sys.path.append(str(_project_root))

try:
    from backend import app_context
    from backend.config import load_gateway_config
    from backend.app.feature_gates import GatewayError
    from backend.app.routes.quota import routers as quota_routers
except ModuleNotFoundError as exc:
    if exc.name != "backend":
        raise
    import app_context  # type: ignore[no-redef]
    from config import load_gateway_config  # type: ignore[no-redef]
    from app.feature_gates import GatewayError  # type: ignore[no-redef]
    from app.routes.quota import routers as quota_routers  # type: ignore[no-redef]


load_dotenv()

GATEWAY_CONFIG = load_gateway_config()

logging.basicConfig(
    level=GATEWAY_CONFIG.log_level,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "dev-secret-change-me")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
SESSION_COOKIE_NAME = os.getenv("SESSION_COOKIE_NAME", "session")
CORS_ORIGINS = [
    origin.strip()
    for origin in os.getenv("CORS_ORIGINS", "http://localhost:5173").split(",")
    if origin.strip()
]

logger = logging.getLogger("quota")


@dataclass(frozen=True)
class SessionUser:
    """Identity carried by the platform session token."""

    id: str
    is_admin: bool = False


def get_conn():
    return psycopg2.connect(GATEWAY_CONFIG.database_url)


def resolve_user_from_session_token(session_token: str) -> Optional[SessionUser]:
    # Tokens are issued by the platform's auth service; only verify and read them here.
    try:
        payload = jwt.decode(session_token, JWT_SECRET_KEY, algorithms=[JWT_ALGORITHM])
    except JWTError:
        return None
    subject = payload.get("sub")
    if subject is None or str(subject).strip() == "":
        return None
    is_admin = bool(payload.get("is_admin")) or payload.get("role") == "admin"
    return SessionUser(id=str(subject), is_admin=is_admin)


def get_current_user(session_token: Optional[str] = Cookie(None, alias=SESSION_COOKIE_NAME)) -> SessionUser:
    if not session_token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")

    user = resolve_user_from_session_token(session_token)
    if user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
    return user


async def handle_gateway_error(request: Request, exc: GatewayError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=dict(exc.payload))


def create_app() -> FastAPI:
    app_context.configure(get_conn=get_conn)

    application = FastAPI(title="DevOps Quota Gateway")
    application.add_middleware(
        CORSMiddleware,
        allow_origins=CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    for router in quota_routers:
        application.include_router(router)
    application.add_exception_handler(GatewayError, handle_gateway_error)

    logger.info(
        "Quota gateway ready (ledger=%s, policy=%s)",
        GATEWAY_CONFIG.ledger_backend,
        GATEWAY_CONFIG.charge_policy,
    )
    return application


app = create_app()
