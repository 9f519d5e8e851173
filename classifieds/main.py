# classifieds/main.py
import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from classifieds.database import engine, Base
from classifieds.apis.v1.api import api_router
from classifieds.core.config import settings

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Create database tables
logger.info("Attempting to create database tables...")
try:
    Base.metadata.create_all(bind=engine)
    logger.info("Database tables should be created if they didn't exist.")
except SQLAlchemyError as e:
    logger.error("Error creating database tables: %s", e)

fastapi_kwargs = {
    "title": settings.PROJECT_NAME,
    "version": "0.1.0"
}

if settings.ENV == 'prod':
    fastapi_kwargs["docs_url"] = None
    fastapi_kwargs["redoc_url"] = None
    fastapi_kwargs["openapi_url"] = None

app = FastAPI(**fastapi_kwargs)

# CORS Middleware configuration
if settings.ENV == 'nonprod':
    origins = [
        "http://localhost",
        "http://localhost:3000",
        "http://127.0.0.1:3000",
        "*",
    ]
elif settings.ENV == 'prod':
    origins = [settings.FRONTEND_SERVER_HOST]
else:
    origins = []

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.detail},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    message = errors[0].get("msg", "Invalid request") if errors else "Invalid request"
    return JSONResponse(status_code=400, content={"error": message})


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


# Include API routers
app.include_router(api_router)


@app.get("/", tags=["Root"])
async def read_root():
    return {"message": f"Welcome to {settings.PROJECT_NAME}!"}


@app.get(f"{settings.API_V1_STR}/health", tags=["Root"])
def health_check():
    return {"status": "ok"}
