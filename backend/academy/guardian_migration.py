"""Retrospective repair of child profiles that act as guardians.

Older registration flows stored some parents as ``is_child = true`` on
their own profile and then attached real children to that row through
``parent_guardian_id``. This module finds those rows and splits each one
into a proper guardian (the original row) and a new child profile backed
by a phantom identity.

The split is a sequence of independently committed steps:

    PENDING -> IDENTITY_CREATED -> PROFILE_INSERTED -> RELINKED
            -> MEMBERSHIPS_MOVED -> GUARDIAN_CONVERTED

Only the first two transitions are compensated (the phantom identity is
deleted when the child profile cannot be inserted). Relinking history
and memberships is best effort, and a failed guardian conversion leaves
steps 1-5 committed. A later run picks such rows up again through the
repair pass, which recognises the child minted earlier by the
``migrated_from`` marker on its identity and only finishes the
conversion.
"""

from __future__ import annotations

import logging
import re
import secrets
import string
import time
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import List, Literal, Optional

from pydantic import BaseModel, Field

from .config import Settings
from .repositories import build_collaborators
from .repositories.base import IdentityService, MemberStore, Row, StoreError
from .telemetry import emit_event, telemetry_run

logger = logging.getLogger(__name__)

CHILD_PROFILE_COPY_FIELDS = (
    "first_name",
    "last_name",
    "date_of_birth",
    "gender",
    "phone",
    "address",
    "city",
    "postcode",
    "emergency_contact_name",
    "emergency_contact_phone",
    "medical_info",
    "belt_rank",
    "stripes",
    "profile_image_url",
    "best_practice_accepted",
    "waiver_accepted",
)

# (table, column) pairs that reference the attendee by profile id.
RELINKED_TABLES = (
    ("attendance_records", "student_id"),
    ("class_bookings", "student_id"),
)

_BASE36 = string.digits + string.ascii_lowercase


class MigrationConfigError(RuntimeError):
    """Raised when the privileged store credentials are missing."""


class MigrationStage(str, Enum):
    PENDING = "pending"
    IDENTITY_CREATED = "identity_created"
    PROFILE_INSERTED = "profile_inserted"
    RELINKED = "relinked"
    MEMBERSHIPS_MOVED = "memberships_moved"
    GUARDIAN_CONVERTED = "guardian_converted"


class MigrationStepError(RuntimeError):
    """A splitter step failed; ``stage`` is the last stage fully reached."""

    def __init__(self, message: str, stage: MigrationStage) -> None:
        super().__init__(message)
        self.stage = stage


class GuardianCandidate(BaseModel):
    id: str
    user_id: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[str] = None
    parent_guardian_id: Optional[str] = None
    dependent_count: int = 0

    @property
    def display_name(self) -> str:
        return f"{self.first_name or ''} {self.last_name or ''}".strip() or self.id


class MigrationResult(BaseModel):
    original_user: str
    status: Literal["success", "repaired", "failed", "dry_run"]
    new_child_id: Optional[str] = None
    error: Optional[str] = None
    stage: Optional[MigrationStage] = None
    dependent_count: Optional[int] = None

    def payload(self) -> dict:
        return self.model_dump(mode="json", exclude_none=True)


class MigrationReport(BaseModel):
    candidate_count: int = 0
    migrated_count: int = 0
    failed_count: int = 0
    results: List[MigrationResult] = Field(default_factory=list)

    @classmethod
    def from_results(cls, candidate_count: int, results: List[MigrationResult]) -> "MigrationReport":
        return cls(
            candidate_count=candidate_count,
            migrated_count=sum(1 for result in results if result.status in ("success", "repaired")),
            failed_count=sum(1 for result in results if result.status == "failed"),
            results=results,
        )

    def payload(self) -> dict:
        return {
            "candidate_count": self.candidate_count,
            "migrated_count": self.migrated_count,
            "failed_count": self.failed_count,
            "results": [result.payload() for result in self.results],
        }


@dataclass
class MigrationOptions:
    restore_guardian_names: bool = False
    repair_partial: bool = True
    dry_run: bool = False
    email_domain: str = "sport-of-kings"
    baseline_belt_rank: str = "white"

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        *,
        restore_guardian_names: bool,
        repair_partial: bool = True,
        dry_run: bool = False,
    ) -> "MigrationOptions":
        """Build options; ``GUARDIAN_MIGRATION_RESTORE_NAMES`` beats the caller default."""
        restore = settings.restore_guardian_names
        return cls(
            restore_guardian_names=restore_guardian_names if restore is None else restore,
            repair_partial=repair_partial,
            dry_run=dry_run,
            email_domain=settings.phantom_email_domain,
            baseline_belt_rank=settings.baseline_belt_rank,
        )


def require_credentials(settings: Settings) -> None:
    missing = [
        name
        for name, value in (
            ("NEXT_PUBLIC_SUPABASE_URL", settings.supabase_url),
            ("SUPABASE_SERVICE_ROLE_KEY", settings.supabase_service_role_key),
        )
        if not value
    ]
    if missing:
        raise MigrationConfigError(f"Guardian migration requires {', '.join(missing)}.")


def build_migration_collaborators(settings: Settings) -> tuple[MemberStore, IdentityService]:
    """Privileged store and identity clients; missing credentials are fatal here."""
    require_credentials(settings)
    return build_collaborators(settings)


def phantom_email(domain: str, *, now_ms: Optional[int] = None) -> str:
    stamp = now_ms if now_ms is not None else int(time.time() * 1000)
    suffix = "".join(secrets.choice(_BASE36) for _ in range(6))
    return f"child-{stamp}-{suffix}@child.{domain}.local"


def is_phantom_email(email: Optional[str], domain: str) -> bool:
    if not email:
        return False
    pattern = rf"child-\d+-[0-9a-z]+@child\.{re.escape(domain)}\.local"
    return re.fullmatch(pattern, email) is not None


def scan_candidates(store: MemberStore) -> List[GuardianCandidate]:
    """Return child profiles that other profiles reference as their guardian.

    A failure of the initial bulk query propagates as ``StoreError``; a
    failed per-profile count only skips that profile.
    """
    rows = store.list_child_profiles()
    logger.info("Found %d child profiles. Checking for dependents...", len(rows))
    candidates: List[GuardianCandidate] = []
    for row in rows:
        profile_id = str(row["id"])
        try:
            count = store.count_dependents(profile_id)
        except StoreError as exc:
            logger.warning("Skipping profile %s; dependent count failed: %s", profile_id, exc)
            continue
        if count > 0:
            candidates.append(GuardianCandidate.model_validate({**row, "dependent_count": count}))
    return candidates


class GuardianSplitter:
    """Turns one contradictory child/guardian profile into a guardian plus a child."""

    def __init__(self, store: MemberStore, identities: IdentityService, options: MigrationOptions) -> None:
        self.store = store
        self.identities = identities
        self.options = options

    def split(self, candidate: GuardianCandidate) -> MigrationResult:
        stage = MigrationStage.PENDING
        try:
            if self.options.repair_partial:
                existing_child_id = self._find_migrated_child(candidate)
                if existing_child_id is not None:
                    logger.info(
                        "Profile %s already has migrated child %s; finishing guardian conversion",
                        candidate.id,
                        existing_child_id,
                    )
                    self._convert_guardian(candidate, stage)
                    return MigrationResult(
                        original_user=candidate.user_id,
                        status="repaired",
                        new_child_id=existing_child_id,
                        stage=MigrationStage.GUARDIAN_CONVERTED,
                    )

            child_user_id, child_email = self._create_phantom_identity(candidate)
            stage = MigrationStage.IDENTITY_CREATED

            child_profile_id = self._insert_child_profile(candidate, child_user_id, child_email)
            stage = MigrationStage.PROFILE_INSERTED

            self._relink_history(candidate, child_profile_id)
            stage = MigrationStage.RELINKED

            self._move_memberships(candidate, child_user_id)
            stage = MigrationStage.MEMBERSHIPS_MOVED

            self._convert_guardian(candidate, stage)
            stage = MigrationStage.GUARDIAN_CONVERTED
        except MigrationStepError as exc:
            logger.error("FAILED to migrate %s: %s", candidate.id, exc)
            return MigrationResult(original_user=candidate.user_id, status="failed", error=str(exc), stage=exc.stage)
        except Exception as exc:  # noqa: BLE001
            logger.exception("FAILED to migrate %s", candidate.id)
            return MigrationResult(original_user=candidate.user_id, status="failed", error=str(exc), stage=stage)

        logger.info("SUCCESS: migrated %s", candidate.display_name)
        return MigrationResult(
            original_user=candidate.user_id,
            status="success",
            new_child_id=child_profile_id,
            stage=stage,
        )

    def _find_migrated_child(self, candidate: GuardianCandidate) -> Optional[str]:
        for dependent in self.store.list_dependents(candidate.id):
            if not dependent.get("is_child") or not is_phantom_email(dependent.get("email"), self.options.email_domain):
                continue
            # Dependents added through the parent portal share the phantom
            # email shape, so only the identity marker tells them apart.
            try:
                metadata = self.identities.get_user_metadata(str(dependent["user_id"]))
            except StoreError as exc:
                logger.warning(
                    "Treating dependent %s as unmigrated; metadata lookup failed: %s", dependent["id"], exc
                )
                continue
            if metadata.get("migrated_from") == candidate.user_id:
                return str(dependent["id"])
        return None

    def _create_phantom_identity(self, candidate: GuardianCandidate) -> tuple[str, str]:
        email = phantom_email(self.options.email_domain)
        logger.info("Creating phantom auth user %s for %s", email, candidate.user_id)
        try:
            user_id = self.identities.create_user(
                email,
                str(uuid.uuid4()),
                {
                    "first_name": candidate.first_name,
                    "last_name": candidate.last_name,
                    "is_child": True,
                    "migrated_from": candidate.user_id,
                },
            )
        except StoreError as exc:
            raise MigrationStepError(f"Auth creation failed: {exc}", MigrationStage.PENDING) from exc
        return user_id, email

    def _insert_child_profile(self, candidate: GuardianCandidate, child_user_id: str, child_email: str) -> str:
        try:
            source = self.store.get_profile(candidate.id)
            if source is None:
                raise StoreError(f"profile {candidate.id} no longer exists")
            values: Row = {field: source.get(field) for field in CHILD_PROFILE_COPY_FIELDS}
            values.update(
                user_id=child_user_id,
                email=child_email,
                is_child=True,
                role="member",
                parent_guardian_id=candidate.id,
            )
            logger.info("Creating new child profile for %s", candidate.display_name)
            child = self.store.insert_profile(values)
        except StoreError as exc:
            message = f"Profile creation failed: {exc}"
            try:
                self.identities.delete_user(child_user_id)
            except StoreError as cleanup_exc:
                logger.error("Could not delete phantom user %s: %s", child_user_id, cleanup_exc)
                message = f"{message} (phantom user {child_user_id} not removed: {cleanup_exc})"
            raise MigrationStepError(message, MigrationStage.IDENTITY_CREATED) from exc
        logger.info("New child profile id: %s", child["id"])
        return str(child["id"])

    def _relink_history(self, candidate: GuardianCandidate, child_profile_id: str) -> None:
        for table, column in RELINKED_TABLES:
            try:
                moved = self.store.reassign(table, column, candidate.id, child_profile_id)
                logger.info("Moved %d %s row(s) to %s", moved, table, child_profile_id)
            except StoreError as exc:
                logger.error("Error moving %s for %s: %s", table, candidate.id, exc)

    def _move_memberships(self, candidate: GuardianCandidate, child_user_id: str) -> None:
        try:
            membership_ids = self.store.select_ids("memberships", "user_id", candidate.user_id)
            if not membership_ids:
                return
            logger.info("Moving %d membership(s)...", len(membership_ids))
            self.store.reassign("memberships", "user_id", candidate.user_id, child_user_id)
        except StoreError as exc:
            logger.error("Error moving memberships for %s: %s", candidate.user_id, exc)

    def _convert_guardian(self, candidate: GuardianCandidate, stage: MigrationStage) -> None:
        values: Row = {
            "is_child": False,
            "belt_rank": self.options.baseline_belt_rank,
            "stripes": 0,
            "parent_guardian_id": None,
        }
        if self.options.restore_guardian_names:
            values.update(self._guardian_name(candidate))
        logger.info("Converting profile %s to guardian", candidate.id)
        try:
            self.store.update_profile(candidate.id, values)
        except StoreError as exc:
            raise MigrationStepError(f"Failed to update guardian profile: {exc}", stage) from exc

    def _guardian_name(self, candidate: GuardianCandidate) -> Row:
        try:
            metadata = self.identities.get_user_metadata(candidate.user_id)
        except StoreError as exc:
            logger.warning("Keeping profile name for %s; metadata lookup failed: %s", candidate.user_id, exc)
            metadata = {}
        return {
            "first_name": metadata.get("first_name") or candidate.first_name,
            "last_name": metadata.get("last_name") or candidate.last_name,
        }


def run_guardian_migration(
    store: MemberStore,
    identities: IdentityService,
    options: Optional[MigrationOptions] = None,
) -> MigrationReport:
    """Scan once, then split every candidate in order.

    Scan failures propagate; per-candidate failures are recorded in the
    report and never stop the batch. All telemetry events of one call share
    a run id.
    """
    options = options or MigrationOptions()
    with telemetry_run("guardian-migration") as run_id:
        logger.info("Starting retrospective guardian migration %s (dry_run=%s)", run_id, options.dry_run)
        candidates = scan_candidates(store)
        splitter = GuardianSplitter(store, identities, options)

        results: List[MigrationResult] = []
        for candidate in candidates:
            if options.dry_run:
                results.append(
                    MigrationResult(
                        original_user=candidate.user_id,
                        status="dry_run",
                        dependent_count=candidate.dependent_count,
                    )
                )
                continue
            logger.info(
                "Candidate %s (%s) has %d dependent(s). Migrating...",
                candidate.display_name,
                candidate.id,
                candidate.dependent_count,
            )
            result = splitter.split(candidate)
            emit_event(
                "guardian_migration_candidate",
                profile_id=candidate.id,
                original_user=result.original_user,
                status=result.status,
                stage=result.stage,
                new_child_id=result.new_child_id,
                error=result.error,
            )
            results.append(result)

        report = MigrationReport.from_results(len(candidates), results)
        if not candidates:
            logger.info("No users needed migration.")
        emit_event(
            "guardian_migration_batch",
            candidate_count=report.candidate_count,
            migrated_count=report.migrated_count,
            failed_count=report.failed_count,
            dry_run=options.dry_run,
        )
    return report


__all__ = [
    "CHILD_PROFILE_COPY_FIELDS",
    "GuardianCandidate",
    "GuardianSplitter",
    "MigrationConfigError",
    "MigrationOptions",
    "MigrationReport",
    "MigrationResult",
    "MigrationStage",
    "MigrationStepError",
    "RELINKED_TABLES",
    "build_migration_collaborators",
    "is_phantom_email",
    "phantom_email",
    "require_credentials",
    "run_guardian_migration",
    "scan_candidates",
]
