"""
Medication Safety Core

Prescription lifecycle and medication-safety engine for hospital use:
- Prescription lifecycle with pharmacist approval
- Drug-allergy, drug-drug and duplicate therapy checks
- Interaction alert acknowledgement and override trail
- Medication administration records
"""
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from medsafety.config import settings
from medsafety.api import administrations, alerts, allergies, prescriptions
from medsafety.api.errors import register_exception_handlers
from medsafety.database.connection import db_manager

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

# Create FastAPI app
app = FastAPI(
    title=settings.APP_NAME,
    description="""
    Hospital prescription lifecycle and medication-safety engine:

    * **Prescriptions** - Create, approve, refill, cancel and expire
    * **Safety Checks** - Allergy conflicts, drug-drug interactions, duplicate therapy
    * **Alerts** - Acknowledge, override and resolve safety findings
    * **Administrations** - Record doses given against active prescriptions
    * **Allergies** - Patient medication allergy registry
    """,
    version=settings.VERSION,
    docs_url="/api/docs",
    redoc_url="/api/redoc"
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include API routers
app.include_router(prescriptions.router)
app.include_router(alerts.router)
app.include_router(allergies.router)
app.include_router(administrations.router)

register_exception_handlers(app)


@app.on_event("startup")
async def startup_event():
    """Initialize database on startup"""
    logger.info(f"Starting {settings.APP_NAME} {settings.VERSION}...")
    db_manager.init_db()
    logger.info("API documentation available at /api/docs")


@app.on_event("shutdown")
async def shutdown_event():
    db_manager.close()


@app.get("/health")
async def health_check():
    """Health check endpoint"""
    return {
        "status": "healthy",
        "version": settings.VERSION,
        "services": {
            "database": "ok" if db_manager.ping() else "unavailable"
        }
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG,
        log_level=settings.LOG_LEVEL.lower()
    )
