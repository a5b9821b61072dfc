# budgetly/deps.py
# Role: Shared FastAPI dependencies.
#       Provides the request-scoped SQLAlchemy session, the extraction
#       orchestrator (overridable in tests), and the caller's vision API key.

"""
Shared dependencies for the Budgetly API.
"""

from typing import Generator, Optional

from fastapi import Header
from sqlalchemy.orm import Session

import config
from db import SessionLocal
from budgetly.services.extraction import ExtractionOrchestrator
from budgetly.services.vision_client import OpenAIVisionClient

# -------------------------------------------------------------------
# Database dependency
# -------------------------------------------------------------------

def get_db() -> Generator[Session, None, None]:
    """
    FastAPI dependency that yields a database session and ensures it is closed.

    Typical usage in routes:
        db: Session = Depends(get_db)
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


# -------------------------------------------------------------------
# Extraction dependencies
# -------------------------------------------------------------------

def get_orchestrator() -> ExtractionOrchestrator:
    """Orchestrator backed by the live OpenAI vision client."""
    return ExtractionOrchestrator(OpenAIVisionClient())


def get_vision_api_key(
    api_key: Optional[str] = Header(default=None, alias=config.API_KEY_HEADER),
) -> Optional[str]:
    """Caller-supplied credential for the vision API; used once, never stored."""
    return api_key
