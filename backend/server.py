from fastapi import FastAPI, APIRouter, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from dotenv import load_dotenv
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.cors import CORSMiddleware
import os
import logging
from pathlib import Path

ROOT_DIR = Path(__file__).parent
load_dotenv(ROOT_DIR / '.env')

import debug_log
from bootstrap import run_bootstrap_migrations
from routers import (
    admin_data,
    admin_email,
    admin_entries,
    admin_settings,
    auth_users,
    entries,
    files,
    public,
)

# Configure logging
logging.basicConfig(
    level=os.environ.get("LOG_LEVEL", "INFO").upper(),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
)
debug_log.install()
logger = logging.getLogger(__name__)

app = FastAPI(title="Dance Entry API", version="1.0.0")
api_router = APIRouter(prefix="/api")

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Referrer-Policy": "strict-origin-when-cross-origin",
}


def _allowed_origins():
    raw = os.environ.get("ALLOWED_ORIGINS") or os.environ.get("APP_URL") or "http://localhost:3000"
    return [origin.strip() for origin in raw.split(",") if origin.strip()]


# ==================== STARTUP ====================
@app.on_event("startup")
def startup_event():
    run_bootstrap_migrations()
    logger.info("Dance Entry API started")


# ==================== ERRORS ====================
@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    body = exc.detail if isinstance(exc.detail, dict) else {"error": exc.detail}
    return JSONResponse(status_code=exc.status_code, content=body, headers=getattr(exc, "headers", None))


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"error": "Invalid request", "details": jsonable_encoder(exc.errors(), custom_encoder={Exception: str})},
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content={"error": "Internal server error"})


@app.middleware("http")
async def add_security_headers(request: Request, call_next):
    response = await call_next(request)
    for name, value in SECURITY_HEADERS.items():
        response.headers.setdefault(name, value)
    return response


# Include router and add middleware
api_router.include_router(public.router)
api_router.include_router(auth_users.router)
api_router.include_router(entries.router)
api_router.include_router(files.router)
api_router.include_router(admin_entries.router)
api_router.include_router(admin_data.router)
api_router.include_router(admin_email.router)
api_router.include_router(admin_settings.router)
app.include_router(api_router)

app.add_middleware(
    CORSMiddleware,
    allow_credentials=True,
    allow_origins=_allowed_origins(),
    allow_methods=["*"],
    allow_headers=["*"],
)
