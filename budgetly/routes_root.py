# routes_root.py
"""
Root / basic endpoints (health, landing).
"""

from fastapi import APIRouter

import config
from schemas import HealthOut

router = APIRouter()


@router.get("/")
def read_root():
    """
    Simple landing endpoint.
    """
    return {"message": "Budgetly API is running"}


@router.get("/health", response_model=HealthOut)
def health():
    """
    Health check polled by the frontend status card.
    """
    return HealthOut(status="ok", version=config.APP_VERSION, service="budgetly")
