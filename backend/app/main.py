import logging
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from starlette.exceptions import HTTPException as StarletteHTTPException
from .settings import settings
from .api import router as api_router
from .auth_router import router as auth_router
from .user_router import router as user_router
from .profile_router import router as profile_router
from .database import init_db
from . import jobs

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Company Site API",
    version="0.1.0",
    description="Articles, events, gallery and admin management for the company site.",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    # The admin UI authenticates with the auth cookie
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

@app.middleware("http")
async def cache_control_middleware(request: Request, call_next):
    response = await call_next(request)
    response.headers["Vary"] = "Accept-Encoding, Authorization, Cookie"
    # API responses carry per-user data; never let a proxy cache them by default
    if not response.headers.get("Cache-Control") and request.url.path.startswith("/api"):
        response.headers["Cache-Control"] = "no-cache, no-store, must-revalidate"
    return response

@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "error": exc.detail},
        headers=getattr(exc, "headers", None),
    )

@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    logger.warning(f"Invalid request to {request.url.path}: {exc.errors()}")
    return JSONResponse(
        status_code=422,
        content={"success": False, "error": "Validation failed", "details": jsonable_encoder(exc.errors())},
    )

@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return JSONResponse(status_code=500, content={"success": False, "error": "Internal server error"})

app.include_router(api_router)
app.include_router(auth_router)
app.include_router(user_router)
app.include_router(profile_router)

app.mount("/uploads", StaticFiles(directory=settings.upload_dir, check_dir=False), name="uploads")

@app.get("/api/health")
def health():
    return {"success": True, "ok": True}

@app.on_event("startup")
async def on_startup():
    # 0. Tables and the upload folder
    init_db()
    settings.upload_dir.mkdir(parents=True, exist_ok=True)

    # 1. Periodic event status refresh
    if settings.scheduler_enabled:
        jobs.start_scheduler()

@app.on_event("shutdown")
def on_shutdown():
    jobs.shutdown_scheduler()
