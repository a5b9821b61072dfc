# main.py
# Role: Application entry point for the Budgetly backend.
#       Initializes the FastAPI app, creates database tables, seeds
#       categories, runs startup housekeeping, and registers all route modules.

"""
Main FastAPI app for Budgetly.

Here we only:
- create the FastAPI app
- create DB tables and seed reference data on startup
- map domain errors to JSON responses
- include route modules

Run with:  uvicorn main:app --reload --port 8080
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

import config
import models  # noqa: F401  (registers the tables on Base.metadata)
from db import Base, SessionLocal, engine
from budgetly.errors import BudgetlyError
from budgetly.log import get_logger
from budgetly.routes_categories import router as categories_router
from budgetly.routes_invoices import router as invoices_router
from budgetly.routes_root import router as root_router
from budgetly.routes_transactions import router as transactions_router
from budgetly.services.categories import seed_categories
from budgetly.services.import_cleanup import fail_stale_processing, remove_orphaned_files

log = get_logger("budgetly")


# -------------------------------------------------------------------
# App & DB setup
# -------------------------------------------------------------------

# Create database tables (only if they don't exist yet).
Base.metadata.create_all(bind=engine)


@asynccontextmanager
async def lifespan(app: FastAPI):
    db = SessionLocal()
    try:
        seed_categories(db)
        fail_stale_processing(db)
        remove_orphaned_files(db)
    finally:
        db.close()
    log.info(f"[startup] Budgetly {config.APP_VERSION} ready")
    yield


# FastAPI application instance
app = FastAPI(title="Budgetly", version=config.APP_VERSION, lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)


@app.exception_handler(BudgetlyError)
async def budgetly_error_handler(request: Request, exc: BudgetlyError):
    if exc.status_code >= 500:
        log.error(f"[{request.method} {request.url.path}] {exc.code}: {exc.message}")
    else:
        log.info(f"[{request.method} {request.url.path}] {exc.code}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


# -------------------------------------------------------------------
# Include routers
# -------------------------------------------------------------------

# Health / landing
app.include_router(root_router)

# Upload → process → review → confirm
app.include_router(invoices_router)

# Single transaction edits
app.include_router(transactions_router)

# Category reference data
app.include_router(categories_router)
