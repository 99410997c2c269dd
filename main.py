import logging
import os
from contextlib import asynccontextmanager

import aiohttp
import firebase_admin
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from firebase_admin import credentials
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.cors import CORSMiddleware

from config import settings
from context import RequestContextMiddleware, RequestIdFilter
from routes.auth import router as auth_router
from routes.comments import router as comments_router
from routes.locations import router as locations_router
from routes.posts import router as posts_router
from routes.properties import router as properties_router
from services.errors import CommunityError, ValidationError
from services.firestore import FirestoreDB
from services.identity import FirebaseVerifier
from services.validation import field_errors

logging.basicConfig(level=settings.LOG_LEVEL,
                    format="%(levelname)s: [%(request_id)s] %(name)s: %(message)s")
for handler in logging.getLogger().handlers:
    handler.addFilter(RequestIdFilter())

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Initialize Firebase Admin SDK
    if os.path.exists(settings.FIREBASE_CREDENTIALS):
        cred = credentials.Certificate(settings.FIREBASE_CREDENTIALS)
    else:
        cred = credentials.ApplicationDefault()
    firebase_app = firebase_admin.initialize_app(cred)

    # Initialize dependencies
    session = aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=10))

    app.state.session = session
    app.state.firestore = FirestoreDB(firebase_app)
    app.state.verifier = FirebaseVerifier(firebase_app)

    yield
    # Cleanup resources
    await session.close()
    firebase_admin.delete_app(firebase_app)


def register_exception_handlers(app: FastAPI):
    @app.exception_handler(CommunityError)
    async def community_error_handler(request: Request, exc: CommunityError):
        if exc.status_code >= 500:
            logger.error("%s %s failed: %r", request.method, request.url.path, exc.__cause__ or exc)
        return JSONResponse(status_code=exc.status_code, content=exc.to_body())

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        errors = field_errors(exc, from_request=True)
        message = errors[0]["message"] if errors else ValidationError.message
        return JSONResponse(status_code=400, content=ValidationError(message, errors=errors).to_body())

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content={"success": False, "message": str(exc.detail)},
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(Exception)
    async def unexpected_error_handler(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(status_code=500, content={"success": False, "message": "Internal server error"})


def create_app(lifespan=lifespan) -> FastAPI:
    app = FastAPI(title="HomeViet Community API", lifespan=lifespan)

    # middleware to set request context
    app.add_middleware(RequestContextMiddleware)

    # Configure CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["set-cookie", "x-request-id"]
    )

    register_exception_handlers(app)

    # Include routers
    app.include_router(posts_router, prefix="/api/community", tags=["community"])
    app.include_router(comments_router, prefix="/api/community", tags=["comments"])
    app.include_router(locations_router, prefix="/api/community", tags=["locations"])
    app.include_router(properties_router, prefix="/api/properties", tags=["properties"])
    app.include_router(auth_router, prefix="/auth", tags=["auth"])

    return app


app = create_app()
