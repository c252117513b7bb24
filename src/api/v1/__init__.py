"""
API v1 routes.
"""

from fastapi import APIRouter

from src.api.v1 import audits, escrow

router = APIRouter()

router.include_router(escrow.router, prefix="/escrow", tags=["Escrow"])
router.include_router(audits.router, prefix="/audits", tags=["Audits"])
