"""
Storage layer for users, requests and leaks.

LeakStore is the only component that touches the database. It serves the
consensus engine (pending leaks, request state, guarded verification) and
the intake side (users, requests, submissions, trusted imports).
"""

from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import selectinload

from .consensus import PendingLeak
from .database import ClosedBy, Leak, Request, TargetType, User, get_session, init_database
from .logger import get_logger
from .normalize import normalize_provider, normalize_target_name
from .schema import ValidationError, validate_leak, validate_request

logger = get_logger()

SUBMITTER_POINTS = 100
VERIFIER_POINTS = 50
REQUEST_CREATOR_POINTS = 20
MAX_OPEN_REQUESTS = 3
SEARCH_LIMIT = 10
SAMPLE_TARGETS = 5


class StorageError(Exception):
    """Raised when the database fails; the operation can be retried."""
    pass


class IntakeError(Exception):
    """Raised when a user action is rejected by a business rule."""
    pass


@dataclass(frozen=True)
class RequestState:
    closed: bool
    submitted_by: int


class LeakStore:
    """
    Database-backed store for the consensus engine and intake actions.

    Args:
        db_path: Path to SQLite database file
        on_submission: Called with the request id after each request-bound leak is stored
    """

    def __init__(self, db_path: Path, on_submission: Optional[Callable[[int], Any]] = None):
        self.db_path = Path(db_path)
        self.on_submission = on_submission
        init_database(self.db_path)

    @contextmanager
    def session_scope(self):
        """Session that rolls back on any error and maps database errors to StorageError."""
        session = get_session(self.db_path)
        try:
            yield session
        except SQLAlchemyError as e:
            session.rollback()
            logger.record_error(type(e).__name__)
            logger.error("Storage operation failed", db_path=str(self.db_path), error=str(e))
            raise StorageError(f"Storage operation failed: {e}") from e
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    # Consensus engine interface

    def load_pending_submissions(self, request_id: int) -> List[PendingLeak]:
        """Leaks of a request that have a submitter, in submission order."""
        with self.session_scope() as session:
            rows = session.execute(
                select(Leak.id, Leak.leak_text, Leak.submitted_by, Leak.is_fully_verified)
                .where(Leak.request_id == request_id, Leak.submitted_by.is_not(None))
                .order_by(Leak.id)
            ).all()
            return [
                PendingLeak(
                    leak_id=row.id,
                    leak_text=row.leak_text,
                    submitted_by=row.submitted_by,
                    is_fully_verified=row.is_fully_verified,
                )
                for row in rows
            ]

    def load_request_state(self, request_id: int) -> Optional[RequestState]:
        with self.session_scope() as session:
            row = session.execute(
                select(Request.closed, Request.submitted_by).where(Request.id == request_id)
            ).first()
            if row is None:
                return None
            return RequestState(closed=bool(row.closed), submitted_by=row.submitted_by)

    def apply_verification(self, request_id: int, leak_id: int, verifier_ids: Sequence[int]) -> bool:
        """
        Verify a leak, close its request and award points in one transaction.

        The request and the leak are claimed with conditional updates, so a
        concurrent or repeated call finds them already taken and commits
        nothing.

        Args:
            request_id: Request being resolved
            leak_id: Canonical leak to mark verified
            verifier_ids: Users whose submissions agreed with the leak

        Returns:
            True if the verification was committed, False if a guard failed

        Raises:
            StorageError: If the database fails; nothing is committed
        """
        verifier_ids = list(verifier_ids)

        with self.session_scope() as session:
            claimed = session.execute(
                update(Request)
                .where(Request.id == request_id, Request.closed.is_(False))
                .values(closed=True, closed_by=ClosedBy.VERIFICATION)
                .execution_options(synchronize_session=False)
            )
            if claimed.rowcount != 1:
                session.rollback()
                if session.get(Request, request_id) is None:
                    logger.warning("Request not found, nothing to verify", request_id=request_id)
                else:
                    logger.debug("Request already closed", request_id=request_id)
                return False

            verified = session.execute(
                update(Leak)
                .where(
                    Leak.id == leak_id,
                    Leak.is_fully_verified.is_(False),
                    Leak.submitted_by.is_not(None),
                )
                .values(is_fully_verified=True, verified_by=verifier_ids)
                .execution_options(synchronize_session=False)
            )
            if verified.rowcount != 1:
                session.rollback()
                logger.warning(
                    "Leak missing, already verified or without submitter",
                    request_id=request_id,
                    leak_id=leak_id,
                )
                return False

            submitter_id = session.execute(
                select(Leak.submitted_by).where(Leak.id == leak_id)
            ).scalar_one()
            creator_id = session.execute(
                select(Request.submitted_by).where(Request.id == request_id)
            ).scalar_one()

            self._add_points(session, submitter_id, SUBMITTER_POINTS)
            for verifier_id in verifier_ids:
                self._add_points(session, verifier_id, VERIFIER_POINTS)
            if creator_id is not None:
                self._add_points(session, creator_id, REQUEST_CREATOR_POINTS)

            session.commit()

        logger.info(
            "Leak verified by consensus",
            request_id=request_id,
            leak_id=leak_id,
            submitter_id=submitter_id,
            verifier_ids=verifier_ids,
        )
        return True

    @staticmethod
    def _add_points(session, user_id: int, points: int) -> None:
        session.execute(
            update(User)
            .where(User.id == user_id)
            .values(points=User.points + points)
            .execution_options(synchronize_session=False)
        )

    # Intake

    def create_user(self, name: str, email: str, image: str = "") -> int:
        with self.session_scope() as session:
            if session.execute(select(User.id).where(User.email == email)).first():
                raise IntakeError(f"A user with email {email} already exists")
            user = User(name=name, email=email, image=image, points=0)
            session.add(user)
            session.commit()
            return user.id

    def create_request(
        self,
        user_id: int,
        target_name: str,
        provider: str,
        target_type: str,
        target_url: str,
    ) -> int:
        """
        Open a request for a target.

        Raises:
            ValidationError: If a field is missing or malformed
            IntakeError: If the target was already requested or the user has too many open requests
        """
        data = {
            "target_name": target_name,
            "provider": provider,
            "target_type": target_type,
            "target_url": target_url,
        }
        errors = validate_request(data)
        if errors:
            raise ValidationError(errors)

        with self.session_scope() as session:
            if session.get(User, user_id) is None:
                raise IntakeError("User not found")

            wanted = normalize_target_name(target_name)
            for (existing_name,) in session.execute(select(Request.target_name)):
                if normalize_target_name(existing_name) == wanted:
                    raise IntakeError(
                        f'A request for "{existing_name}" has already been made. '
                        "Please search for it in the existing requests."
                    )

            open_count = session.execute(
                select(func.count(Request.id)).where(
                    Request.submitted_by == user_id, Request.closed.is_(False)
                )
            ).scalar_one()
            if open_count >= MAX_OPEN_REQUESTS:
                raise IntakeError(
                    f"You have reached the maximum limit of {MAX_OPEN_REQUESTS} open requests. "
                    "Please wait for some to be fulfilled before creating more."
                )

            request = Request(
                target_name=target_name,
                provider=normalize_provider(provider),
                target_type=TargetType(target_type),
                target_url=target_url,
                closed=False,
                submitted_by=user_id,
            )
            session.add(request)
            session.commit()
            request_id = request.id

        logger.info("Request created", request_id=request_id, user_id=user_id, target_name=target_name)
        return request_id

    def submit_leak(
        self,
        user_id: int,
        target_name: str,
        provider: str,
        leak_text: str,
        target_type: str,
        request_id: Optional[int] = None,
        **details,
    ) -> int:
        """
        Store a user's leak; request-bound leaks trigger a consensus evaluation.

        Leaks always start unverified. A leak for a closed request is still
        stored, its evaluation just finds the request closed.

        Args:
            user_id: Submitting user
            target_name: Name of the model/app/... the leak is for
            provider: Provider of the target
            leak_text: Raw leaked text
            target_type: One of the TargetType values
            request_id: Request this leak answers, if any
            **details: Optional leak_context, url, access_notes, requires_login, is_paid, has_tool_prompts

        Returns:
            The new leak id

        Raises:
            ValidationError: If a field is missing or malformed
            IntakeError: If the request is unknown or the user already answered it
        """
        data = {
            "target_name": target_name,
            "provider": provider,
            "leak_text": leak_text,
            "target_type": target_type,
            **details,
        }
        errors = validate_leak(data)
        if errors:
            raise ValidationError(errors)

        with self.session_scope() as session:
            if session.get(User, user_id) is None:
                raise IntakeError("User not found")

            if request_id is not None:
                if session.get(Request, request_id) is None:
                    raise IntakeError("Request not found")
                already = session.execute(
                    select(Leak.id).where(Leak.request_id == request_id, Leak.submitted_by == user_id)
                ).first()
                if already:
                    raise IntakeError(
                        "You have already submitted a leak for this request. "
                        "Each user can only submit once per request."
                    )

            leak = Leak(
                target_name=target_name,
                provider=provider,
                leak_text=leak_text,
                target_type=TargetType(target_type),
                request_id=request_id,
                submitted_by=user_id,
                is_fully_verified=False,
                verified_by=[],
                **details,
            )
            session.add(leak)
            try:
                session.commit()
            except IntegrityError as e:
                raise IntakeError(
                    "You have already submitted a leak for this request. "
                    "Each user can only submit once per request."
                ) from e
            leak_id = leak.id

        logger.info("Leak submitted", leak_id=leak_id, request_id=request_id, user_id=user_id)

        if request_id is not None and self.on_submission is not None:
            self.on_submission(request_id)

        return leak_id

    def close_request(self, request_id: int, user_id: int) -> None:
        """
        Close a request on behalf of its owner.

        Raises:
            IntakeError: If the request is unknown, not owned by the user, or already closed
        """
        with self.session_scope() as session:
            request = session.get(Request, request_id)
            if request is None:
                raise IntakeError("Request not found")
            if request.submitted_by != user_id:
                raise IntakeError("You can only close your own requests")

            closed = session.execute(
                update(Request)
                .where(Request.id == request_id, Request.closed.is_(False))
                .values(closed=True, closed_by=ClosedBy.USER)
                .execution_options(synchronize_session=False)
            )
            if closed.rowcount != 1:
                session.rollback()
                raise IntakeError("Request is already closed")
            session.commit()

        logger.info("Request closed by owner", request_id=request_id, user_id=user_id)

    def insert_verified_leak(
        self,
        target_name: str,
        provider: str,
        leak_text: str,
        target_type: str = TargetType.MODEL.value,
        **details,
    ) -> int:
        """Insert a leak from a trusted source as already verified, with no submitter or request."""
        data = {
            "target_name": target_name,
            "provider": provider,
            "leak_text": leak_text,
            "target_type": target_type,
            **details,
        }
        errors = validate_leak(data)
        if errors:
            raise ValidationError(errors)

        with self.session_scope() as session:
            leak = Leak(
                target_name=target_name,
                provider=provider,
                leak_text=leak_text,
                target_type=TargetType(target_type),
                is_fully_verified=True,
                verified_by=[],
                **details,
            )
            session.add(leak)
            session.commit()
            return leak.id

    # Housekeeping

    def delete_closed_requests(self, created_before: datetime) -> Tuple[int, int]:
        """
        Delete user-closed requests created before a cutoff.

        Verification-closed requests are kept. Leaks of deleted requests are
        detached, not deleted.

        Returns:
            Tuple of (total_requests_before, total_requests_after)
        """
        with self.session_scope() as session:
            total_before = session.execute(select(func.count(Request.id))).scalar_one()
            stale_ids = session.execute(
                select(Request.id).where(
                    Request.closed.is_(True),
                    Request.closed_by == ClosedBy.USER,
                    Request.created_at < created_before,
                )
            ).scalars().all()

            if stale_ids:
                session.execute(
                    update(Leak)
                    .where(Leak.request_id.in_(stale_ids))
                    .values(request_id=None)
                    .execution_options(synchronize_session=False)
                )
                for request_id in stale_ids:
                    session.delete(session.get(Request, request_id))
                session.commit()

            return (total_before, total_before - len(stale_ids))

    # Reads

    def get_request(self, request_id: int) -> Optional[Dict[str, Any]]:
        with self.session_scope() as session:
            request = session.get(Request, request_id)
            if request is None:
                return None
            return _request_to_dict(request)

    def list_open_requests(self, user_id: Optional[int] = None) -> List[Dict[str, Any]]:
        """
        Open requests, newest first, with the requesting user's name.

        Args:
            user_id: Only this user's requests when given
        """
        with self.session_scope() as session:
            query = self._open_requests_query()
            if user_id is not None:
                query = query.where(Request.submitted_by == user_id)
            return [
                _request_to_dict(request, submitter_name=name or "Unknown")
                for request, name in session.execute(query).all()
            ]

    def search_requests(self, text: str, limit: int = SEARCH_LIMIT) -> List[Dict[str, Any]]:
        """
        Open requests whose target name contains every word of `text`.

        Matching ignores case. A blank query returns no results.
        """
        terms = text.lower().split() if text else []
        if not terms:
            return []

        with self.session_scope() as session:
            query = self._open_requests_query()
            for term in terms:
                query = query.where(func.lower(Request.target_name).contains(term, autoescape=True))
            return [
                _request_to_dict(request, submitter_name=name or "Unknown")
                for request, name in session.execute(query.limit(limit)).all()
            ]

    def list_requests_with_verification_status(self) -> List[Dict[str, Any]]:
        """
        Open requests with how far they are from consensus.

        Each entry adds `confirmation_count` (leaks attached) and
        `unique_submitters` (distinct users among them).
        """
        with self.session_scope() as session:
            rows = session.execute(self._open_requests_query()).all()
            entries = []
            for request, name in rows:
                entry = _request_to_dict(request, submitter_name=name or "Unknown")
                entry["confirmation_count"] = len(request.leaks)
                entry["unique_submitters"] = len(
                    {leak.submitted_by for leak in request.leaks if leak.submitted_by is not None}
                )
                entries.append(entry)
            return entries

    @staticmethod
    def _open_requests_query():
        return (
            select(Request, User.name)
            .outerjoin(User, User.id == Request.submitted_by)
            .where(Request.closed.is_(False))
            .options(selectinload(Request.leaks))
            .order_by(Request.created_at.desc(), Request.id.desc())
        )

    def get_leak(self, leak_id: int) -> Optional[Dict[str, Any]]:
        with self.session_scope() as session:
            leak = session.get(Leak, leak_id)
            return _leak_to_dict(leak) if leak is not None else None

    def get_user_points(self, user_id: int) -> Optional[int]:
        with self.session_scope() as session:
            return session.execute(select(User.points).where(User.id == user_id)).scalar_one_or_none()

    def list_verified_leaks(self, provider: Optional[str] = None) -> List[Dict[str, Any]]:
        with self.session_scope() as session:
            query = select(Leak).where(Leak.is_fully_verified.is_(True))
            if provider is not None:
                query = query.where(Leak.provider == provider)
            leaks = session.execute(query.order_by(Leak.id.desc())).scalars().all()
            return [_leak_to_dict(leak) for leak in leaks]

    def list_unverified_leaks(self) -> List[Dict[str, Any]]:
        """Leaks still awaiting verification, in submission order."""
        with self.session_scope() as session:
            leaks = session.execute(
                select(Leak).where(Leak.is_fully_verified.is_(False)).order_by(Leak.id)
            ).scalars().all()
            return [_leak_to_dict(leak) for leak in leaks]

    def list_providers(self) -> List[Dict[str, Any]]:
        """
        Verified leaks grouped by provider, largest provider first.

        Each entry holds the provider, leak_count, target_types and up to
        five sample_targets (both in first-seen order) and latest_leak_at.
        """
        with self.session_scope() as session:
            rows = session.execute(
                select(Leak.provider, Leak.target_type, Leak.target_name, Leak.created_at)
                .where(Leak.is_fully_verified.is_(True))
                .order_by(Leak.id)
            ).all()

        providers: Dict[str, Dict[str, Any]] = {}
        for row in rows:
            entry = providers.get(row.provider)
            if entry is None:
                entry = providers[row.provider] = {
                    "provider": row.provider,
                    "leak_count": 0,
                    "target_types": [],
                    "sample_targets": [],
                    "latest_leak_at": row.created_at,
                }
            entry["leak_count"] += 1
            if row.target_type.value not in entry["target_types"]:
                entry["target_types"].append(row.target_type.value)
            if row.target_name not in entry["sample_targets"] and len(entry["sample_targets"]) < SAMPLE_TARGETS:
                entry["sample_targets"].append(row.target_name)
            entry["latest_leak_at"] = max(entry["latest_leak_at"], row.created_at)

        # sorted() is stable, ties keep first-seen order
        return sorted(providers.values(), key=lambda entry: entry["leak_count"], reverse=True)


def _request_to_dict(request: Request, submitter_name: Optional[str] = None) -> Dict[str, Any]:
    data = {
        "id": request.id,
        "target_name": request.target_name,
        "provider": request.provider,
        "target_type": request.target_type.value,
        "target_url": request.target_url,
        "closed": request.closed,
        "closed_by": request.closed_by.value if request.closed_by else None,
        "submitted_by": request.submitted_by,
        "created_at": request.created_at,
        "leaks": [leak.id for leak in request.leaks],
    }
    if submitter_name is not None:
        data["submitter_name"] = submitter_name
    return data


def _leak_to_dict(leak: Leak) -> Dict[str, Any]:
    return {
        "id": leak.id,
        "request_id": leak.request_id,
        "leak_text": leak.leak_text,
        "target_name": leak.target_name,
        "provider": leak.provider,
        "target_type": leak.target_type.value,
        "leak_context": leak.leak_context,
        "url": leak.url,
        "access_notes": leak.access_notes,
        "requires_login": leak.requires_login,
        "is_paid": leak.is_paid,
        "has_tool_prompts": leak.has_tool_prompts,
        "submitted_by": leak.submitted_by,
        "is_fully_verified": leak.is_fully_verified,
        "verified_by": list(leak.verified_by or []),
    }
