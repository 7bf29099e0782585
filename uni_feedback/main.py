# uni_feedback/main.py
import logging
import time
import uuid

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from uni_feedback.config import settings
from uni_feedback.database import Base, engine
from uni_feedback.logging_config import setup_logging
from uni_feedback.models import registry  # noqa: F401
from uni_feedback.routers import (
    auth,
    faculties,
    degrees,
    courses,
    feedback,
    feedback_drafts,
    admin,
    admin_course,
    admin_feedback,
    admin_reports,
)

setup_logging()
logger = logging.getLogger("app")


# create tables if missing
Base.metadata.create_all(bind=engine)

app = FastAPI(title="Uni Feedback API", version="1.0.0")


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.time()
    try:
        response = await call_next(request)
        ms = int((time.time() - start) * 1000)
        logger.info("%s %s -> %s (%dms)", request.method, request.url.path, response.status_code, ms)
        return response
    except Exception:
        ms = int((time.time() - start) * 1000)
        logger.exception("Unhandled error %s %s (%dms)", request.method, request.url.path, ms)
        raise


app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    body = {"error": exc.detail}
    body.update(getattr(exc, "extra", None) or {})
    return JSONResponse(status_code=exc.status_code, content=body, headers=getattr(exc, "headers", None))


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = [
        {"field": ".".join(str(p) for p in e.get("loc", ()) if p != "body"), "message": e.get("msg")}
        for e in exc.errors()
    ]
    first = errors[0] if errors else {"field": "", "message": "Invalid request"}
    message = f"{first['field']}: {first['message']}" if first["field"] else first["message"]
    return JSONResponse(status_code=400, content={"error": message, "errors": errors})


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    correlation_id = uuid.uuid4().hex[:12]
    logger.error(
        "Unhandled error correlation_id=%s %s %s",
        correlation_id, request.method, request.url.path,
        exc_info=(type(exc), exc, exc.__traceback__),
    )
    return JSONResponse(
        status_code=500,
        content={"error": "Internal server error", "correlationId": correlation_id},
        headers={"X-Correlation-ID": correlation_id},
    )


# Routers
app.include_router(auth.router)
app.include_router(faculties.router)
app.include_router(degrees.router)
app.include_router(courses.router)
app.include_router(feedback.router)
app.include_router(feedback_drafts.router)
app.include_router(admin.router)
app.include_router(admin_course.router)
app.include_router(admin_feedback.router)
app.include_router(admin_reports.router)


@app.get("/")
def root():
    return {"message": "Uni Feedback API is running!"}
