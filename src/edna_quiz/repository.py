"""Persistence for quiz results, download tokens, and saved quiz progress.

Every database failure surfaces as PersistenceError; lookups that find nothing
raise NotFoundError. The database is the only serialization point: the token
primary key guarantees uniqueness and results are upserted by id.
"""

from __future__ import annotations

import logging
import secrets
from datetime import datetime, timedelta
from typing import Any, Callable, Optional

from sqlalchemy import delete, func, select
from sqlalchemy.exc import SQLAlchemyError

from .core.errors import ExpiredError, NotFoundError, PersistenceError
from .core.models import DownloadToken, QuizProgress, QuizResult, RedeemedToken, StoredResult
from .db import Database
from .sqlmodels import DownloadTokenRecord, QuizProgressRecord, QuizResultRecord, utcnow

logger = logging.getLogger(__name__)

TOKEN_BYTES = 32  # 256 bits of entropy


def normalize_email(email: str) -> str:
    return email.strip().lower()


def new_token() -> str:
    """A URL-safe download token with 256 bits of entropy."""
    return secrets.token_urlsafe(TOKEN_BYTES)


def _token_hint(token: str) -> str:
    return f"{token[:8]}..." if token else "<empty>"


def _to_stored_result(row: QuizResultRecord) -> StoredResult:
    return StoredResult(
        id=row.id,
        email=row.email,
        name=row.name,
        result=QuizResult.model_validate(row.quiz_data),
        edna_type=row.edna_type,
        core_type=row.core_type,
        subtype=row.subtype,
        pdf_url=row.pdf_url,
        storage_key=row.s3_key,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


class ResultRepository:
    """Quiz result, download token and progress storage on top of a Database."""

    def __init__(self, database: Database, clock: Optional[Callable[[], datetime]] = None):
        self._db = database
        self._clock = clock or utcnow

    def now(self) -> datetime:
        return self._clock()

    # ─── Results ─────────────────────────────────────────────────────────────

    async def save_result(
        self,
        result_id: str,
        email: str,
        name: Optional[str],
        quiz_result: QuizResult,
        pdf_url: Optional[str] = None,
        storage_key: Optional[str] = None,
    ) -> StoredResult:
        """Insert a result, or replace the scored payload of an existing id."""
        normalized = normalize_email(email)
        now = self.now()
        try:
            async with self._db.session() as session:
                row = await session.get(QuizResultRecord, result_id)
                if row is None:
                    row = QuizResultRecord(id=result_id, email=normalized, created_at=now)
                    session.add(row)
                row.email = normalized
                row.name = name
                row.quiz_data = quiz_result.to_payload()
                row.edna_type = quiz_result.layer1.type
                row.core_type = quiz_result.core_type
                row.subtype = quiz_result.subtype or None
                row.pdf_url = pdf_url
                row.s3_key = storage_key
                row.updated_at = now
                await session.commit()
                stored = _to_stored_result(row)
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to save quiz result {result_id}: {exc}") from exc

        logger.info("Saved quiz result %s for %s", result_id, normalized)
        return stored

    async def get_result(self, result_id: str) -> StoredResult:
        try:
            async with self._db.session() as session:
                row = await session.get(QuizResultRecord, result_id)
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to load quiz result {result_id}: {exc}") from exc
        if row is None:
            raise NotFoundError(f"Quiz result {result_id} not found")
        return _to_stored_result(row)

    async def get_result_by_email(self, email: str) -> StoredResult:
        """Most recent result for an email, matched case-insensitively."""
        normalized = normalize_email(email)
        try:
            async with self._db.session() as session:
                result = await session.execute(
                    select(QuizResultRecord)
                    .where(func.lower(func.trim(QuizResultRecord.email)) == normalized)
                    .order_by(QuizResultRecord.created_at.desc())
                    .limit(1)
                )
                row = result.scalar_one_or_none()
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to look up results for {normalized}: {exc}") from exc
        if row is None:
            raise NotFoundError(f"No quiz results found for {normalized}")
        return _to_stored_result(row)

    async def attach_artifact(self, result_id: str, pdf_url: str, storage_key: str) -> None:
        """Record the uploaded PDF on a result. Last write wins; repeats are harmless."""
        try:
            async with self._db.session() as session:
                row = await session.get(QuizResultRecord, result_id)
                if row is None:
                    raise NotFoundError(f"Quiz result {result_id} not found")
                row.pdf_url = pdf_url
                row.s3_key = storage_key
                row.updated_at = self.now()
                await session.commit()
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to attach artifact to {result_id}: {exc}") from exc

        logger.info("Attached artifact %s to quiz result %s", storage_key, result_id)

    # ─── Download tokens ─────────────────────────────────────────────────────

    async def issue_token(self, result_id: str, storage_key: str, ttl: timedelta) -> DownloadToken:
        """Mint and persist a download token valid for ``ttl`` from now.

        The result must exist; the foreign key rejects tokens for unknown results.
        """
        now = self.now()
        record = DownloadTokenRecord(
            token=new_token(),
            quiz_result_id=result_id,
            s3_key=storage_key,
            expires_at=now + ttl,
            created_at=now,
        )
        try:
            async with self._db.session() as session:
                session.add(record)
                await session.commit()
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to create download token for {result_id}: {exc}") from exc

        logger.info("Download token %s issued for %s (expires %s)", _token_hint(record.token), result_id, record.expires_at.isoformat())
        return DownloadToken(
            token=record.token,
            result_id=record.quiz_result_id,
            storage_key=record.s3_key,
            expires_at=record.expires_at,
            created_at=record.created_at,
        )

    async def redeem_token(self, token: str) -> RedeemedToken:
        """Validate a token and return what is needed to presign its object.

        A token is valid while now < expires_at; at expires_at it is expired.
        Redemption does not change the token, so it can be repeated until expiry.
        """
        try:
            async with self._db.session() as session:
                result = await session.execute(
                    select(DownloadTokenRecord, QuizResultRecord)
                    .join(QuizResultRecord, DownloadTokenRecord.quiz_result_id == QuizResultRecord.id)
                    .where(DownloadTokenRecord.token == token)
                )
                row = result.one_or_none()
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to look up download token: {exc}") from exc

        if row is None:
            raise NotFoundError("Invalid or unknown link")

        token_row, result_row = row
        if self.now() >= token_row.expires_at:
            logger.info("Download token %s expired at %s", _token_hint(token), token_row.expires_at.isoformat())
            raise ExpiredError("This download link has expired")

        return RedeemedToken(
            token=token_row.token,
            result_id=result_row.id,
            storage_key=token_row.s3_key,
            expires_at=token_row.expires_at,
            email=result_row.email,
            name=result_row.name,
            core_type=result_row.core_type,
            subtype=result_row.subtype,
        )

    async def reap_expired_tokens(self) -> int:
        """Delete tokens whose expiry has passed. Returns the number removed."""
        try:
            async with self._db.session() as session:
                result = await session.execute(
                    delete(DownloadTokenRecord).where(DownloadTokenRecord.expires_at < self.now())
                )
                await session.commit()
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to reap expired tokens: {exc}") from exc
        return result.rowcount or 0

    # ─── Quiz progress ───────────────────────────────────────────────────────

    async def save_progress(self, email: str, progress_data: dict[str, Any]) -> QuizProgress:
        normalized = normalize_email(email)
        now = self.now()
        try:
            async with self._db.session() as session:
                row = await session.get(QuizProgressRecord, normalized)
                if row is None:
                    row = QuizProgressRecord(email=normalized, created_at=now)
                    session.add(row)
                row.progress_data = progress_data
                row.updated_at = now
                await session.commit()
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to save quiz progress for {normalized}: {exc}") from exc
        return QuizProgress(email=normalized, progress_data=progress_data, updated_at=now)

    async def get_progress(self, email: str) -> Optional[QuizProgress]:
        normalized = normalize_email(email)
        try:
            async with self._db.session() as session:
                row = await session.get(QuizProgressRecord, normalized)
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to load quiz progress for {normalized}: {exc}") from exc
        if row is None:
            return None
        return QuizProgress(email=row.email, progress_data=row.progress_data, updated_at=row.updated_at)

    async def delete_progress(self, email: str) -> bool:
        normalized = normalize_email(email)
        try:
            async with self._db.session() as session:
                result = await session.execute(
                    delete(QuizProgressRecord).where(QuizProgressRecord.email == normalized)
                )
                await session.commit()
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to delete quiz progress for {normalized}: {exc}") from exc
        return bool(result.rowcount)
