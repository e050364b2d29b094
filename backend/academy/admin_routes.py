"""Administrative maintenance endpoints."""

from __future__ import annotations

import logging
from typing import Callable, Tuple

from fastapi import APIRouter, Depends, status
from starlette.responses import JSONResponse

from .config import Settings, get_settings
from .guardian_migration import MigrationOptions, build_migration_collaborators, run_guardian_migration
from .repositories.base import IdentityService, MemberStore

router = APIRouter(prefix="/api/admin", tags=["admin"])
logger = logging.getLogger(__name__)

CollaboratorFactory = Callable[[Settings], Tuple[MemberStore, IdentityService]]


def get_collaborator_factory() -> CollaboratorFactory:
    return build_migration_collaborators


@router.get("/fix-migration")
def fix_migration(
    settings: Settings = Depends(get_settings),
    build: CollaboratorFactory = Depends(get_collaborator_factory),
) -> JSONResponse:
    """Split every child profile that other profiles use as their guardian.

    ``migrated_count`` counts only candidates that ended as ``success`` or
    ``repaired``. Earlier releases of this endpoint reported the number of
    attempted candidates there, failures included. That number is now
    ``candidate_count``, and failures are counted in ``failed_count``.
    """
    logger.info("Starting retrospective migration via API...")
    try:
        store, identities = build(settings)
        options = MigrationOptions.from_settings(settings, restore_guardian_names=True)
        report = run_guardian_migration(store, identities, options)
    except Exception as exc:  # noqa: BLE001
        logger.exception("Guardian migration aborted")
        return JSONResponse({"error": str(exc)}, status_code=status.HTTP_500_INTERNAL_SERVER_ERROR)
    return JSONResponse({"success": True, **report.payload()})
