"""
API router.

Memberships are nested under their organization:
/organizations/{organizationId}/memberships.
"""

from fastapi import APIRouter

from . import memberships, organizations

router = APIRouter()

router.include_router(organizations.router, prefix="/organizations", tags=["Organizations"])
router.include_router(
    memberships.router,
    prefix="/organizations/{organizationId}/memberships",
    tags=["Organization / Membership"],
)
