from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
import logging
import uvicorn

from panelhub.core.config import settings
from panelhub.core.logging_config import setup_logging
from panelhub.database import init_database, close_database, create_tables
from panelhub.services.supabase_auth_service import supabase_auth_service as auth_service
from panelhub.api.admin import admin_router
from panelhub.api.contest_routes import router as contest_router
from panelhub.api.survey_routes import router as survey_router
from panelhub.api.qualification_routes import router as qualification_router
from panelhub.api.offer_routes import router as offer_router
from panelhub.api.redemption_routes import router as redemption_router
from panelhub.api.panelist_routes import router as panelist_router
from panelhub.api.endpoints.health import router as health_router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    setup_logging()
    logger.info("Starting Panel Hub Backend...")

    try:
        await init_database()
        if settings.CREATE_TABLES_ON_STARTUP:
            await create_tables()
        logger.info("Database ready")
    except Exception as e:
        # Keep serving so /health can report the outage
        logger.error(f"Database initialization failed: {e}")

    try:
        auth_init_success = await auth_service.initialize()
        logger.info(f"Auth service initialized: {auth_init_success}")
    except Exception as e:
        logger.error(f"Auth service failed: {e}")

    yield
    # Shutdown
    logger.info("Shutting down Panel Hub Backend...")
    try:
        await close_database()
    except Exception as e:
        logger.error(f"Cleanup failed: {e}")


app = FastAPI(
    title="Panel Hub Backend",
    description="Survey panel, audience qualification and contest rewards API",
    version="1.0.0",
    lifespan=lifespan
)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    logger.warning(f"Validation error on {request.url}: {exc.errors()}")
    return JSONResponse(
        status_code=400,
        content={"detail": jsonable_encoder(exc.errors())}
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled error on {request.method} {request.url}: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error"}
    )


app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)

# Include API routes
app.include_router(admin_router, prefix="/api/v1")
app.include_router(contest_router, prefix="/api/v1")
app.include_router(survey_router, prefix="/api/v1")
app.include_router(qualification_router, prefix="/api/v1")
app.include_router(offer_router, prefix="/api/v1")
app.include_router(redemption_router, prefix="/api/v1")
app.include_router(panelist_router, prefix="/api/v1")
app.include_router(health_router, prefix="/api/v1")


@app.get("/")
async def root():
    return {"message": "Panel Hub Backend", "status": "running", "version": "1.0.0"}


if __name__ == "__main__":
    uvicorn.run(
        "main:app",
        host=settings.API_HOST,
        port=settings.API_PORT,
        reload=settings.DEBUG
    )
