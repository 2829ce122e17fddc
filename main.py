from contextlib import asynccontextmanager
from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from app.database.databse import test_connection
from app.api import api_router
from app.database.migration import run_migration
import logging
import os

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s"
)
logger = logging.getLogger(__name__)

API_VERSION = "1.0.0"

def cors_origins():
    """Explicit CORS_ORIGINS wins; hosted deployments allow every origin"""
    configured = os.getenv("CORS_ORIGINS")
    if configured:
        return [origin.strip() for origin in configured.split(",") if origin.strip()]
    if os.getenv("RENDER") or os.getenv("RAILWAY_ENVIRONMENT"):
        logger.info("Production environment detected, allowing all origins")
        return ["*"]
    return ["http://localhost:3000", "http://127.0.0.1:3000"]

@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting Expense Approval Workflow API...")
    # Startup never aborts on database errors
    if test_connection():
        try:
            run_migration()
        except Exception as e:
            logger.error(f"Database migration failed: {e}")
    else:
        logger.error("Database connection failed, skipping migration")
    yield
    logger.info("Shutting down Expense Approval Workflow API")

app = FastAPI(
    title="Expense Approval Workflow API",
    description="Multi-step approval chains, approval history and notifications for company expenses",
    version=API_VERSION,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(api_router)

@app.get("/")
def read_root():
    return {"message": "Expense Approval Workflow API", "version": API_VERSION, "status": "running"}

@app.get("/health")
def health_check():
    """Liveness plus database reachability"""
    try:
        connected = test_connection()
    except Exception as e:
        logger.error(f"Health check failed: {e}")
        raise HTTPException(status_code=503, detail="Service unavailable")
    return {
        "status": "healthy" if connected else "unhealthy",
        "database": "connected" if connected else "disconnected",
        "version": API_VERSION
    }
