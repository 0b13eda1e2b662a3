"""SSGMS -- State Grant Management System API."""
from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from ssgms.config import settings
from ssgms.database import async_engine
from ssgms.exceptions import GrantsAppError

logging.basicConfig(level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO))
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting SSGMS API...")

    # Verify DB connection
    try:
        async with async_engine.begin() as conn:
            await conn.exec_driver_sql("SELECT 1")
        logger.info("Database connection verified")
    except Exception as e:
        logger.error(f"Database connection failed: {e}")

    if not settings.SUPABASE_URL or not settings.SUPABASE_SERVICE_ROLE_KEY:
        logger.warning("SUPABASE_URL / SUPABASE_SERVICE_ROLE_KEY not set -- team admin and documents will fail")

    logger.info("SSGMS API started successfully")
    yield

    await async_engine.dispose()
    logger.info("SSGMS API shut down")


app = FastAPI(
    title="SSGMS",
    description="State grant management -- grants, disbursements, fund sources and team administration",
    version="1.0.0",
    lifespan=lifespan,
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(GrantsAppError)
async def grants_app_error_handler(request: Request, exc: GrantsAppError):
    if exc.status_code >= 500:
        logger.warning(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "code": exc.code},
    )


# Import and register routers
from ssgms.routes import auth, dashboard, disbursements, functions, fund_sources, grant_years, grants, team

app.include_router(auth.router)
app.include_router(dashboard.router)
app.include_router(grants.router)
app.include_router(disbursements.router)
app.include_router(fund_sources.router)
app.include_router(grant_years.router)
app.include_router(team.router)
app.include_router(functions.router)


@app.get("/api/health")
async def health_check():
    return {"status": "healthy", "service": "SSGMS API", "version": "1.0.0"}
