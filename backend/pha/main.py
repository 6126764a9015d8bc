import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from pha.api.v1.router import api_router
from pha.core.config import settings

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title=settings.APP_NAME,
    description="Practice health assessments: survey submission, scoring and reports",
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
)

# CORS middleware - must be added before other middleware and routes
app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.FRONTEND_URL],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["*"],
)

CORS_HEADERS = {
    "Access-Control-Allow-Origin": settings.FRONTEND_URL,
    "Access-Control-Allow-Credentials": "true",
}


# Custom exception handler to ensure CORS headers are included in error responses
@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail},
        headers={**CORS_HEADERS, **(exc.headers or {})},
    )


# Malformed bodies are client errors like any other validation failure
@app.exception_handler(RequestValidationError)
async def request_validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    first = errors[0] if errors else {}
    location = ".".join(str(part) for part in first.get("loc", ()))
    logger.info(f"[API] Rejected request body for {request.url.path}: {location} {first.get('msg')}")
    return JSONResponse(
        status_code=400,
        content={
            "detail": f"Invalid request: {location} {first.get('msg', '')}".strip(),
            "errors": [
                {"loc": [str(part) for part in e.get("loc", ())], "msg": e.get("msg")} for e in errors
            ],
        },
        headers=CORS_HEADERS,
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    logger.exception(f"[API] Unhandled error on {request.method} {request.url.path}")
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error"},
        headers=CORS_HEADERS,
    )


# Include API routes
app.include_router(api_router)


@app.get("/")
async def root():
    return {"message": settings.APP_NAME, "version": "0.1.0"}


@app.get("/health")
async def health_check():
    return {"status": "healthy"}
