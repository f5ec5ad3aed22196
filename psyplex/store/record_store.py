"""
RecordStore - One credential tier's view of the practice database.

A store is bound to a session factory, an access tier and (for the
restricted tier) the principal whose rows it may see. Every public
operation is async and runs its blocking SQLAlchemy work in a worker
thread, returning a StoreResult instead of raising.
"""

import asyncio
from enum import Enum
from typing import Any, Callable, NamedTuple, Optional, Sequence
from uuid import UUID

import structlog
from sqlalchemy import delete as sa_delete
from sqlalchemy import select, text
from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session as DBSession

from psyplex.errors import (
    ConstraintViolation,
    DuplicateKey,
    NotFound,
    PolicyDenied,
    StoreError,
    StoreUnavailable,
)
from psyplex.store import policy

logger = structlog.get_logger(__name__)


class AccessTier(str, Enum):
    """Credential tier a store operation runs under."""
    RESTRICTED = "restricted"
    PRIVILEGED = "privileged"


class StoreResult(NamedTuple):
    """Uniform (data, error) pair returned by every store operation."""
    data: Any
    error: Optional[StoreError]

    @property
    def ok(self) -> bool:
        return self.error is None


def to_uuid(value: Any) -> Optional[UUID]:
    """Coerce an identifier to UUID; malformed identifiers become None."""
    if value is None or isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except ValueError:
        return None


def map_integrity_error(exc: IntegrityError) -> StoreError:
    """Translate a driver integrity error into a typed store error."""
    pgcode = getattr(exc.orig, "pgcode", None)
    message = str(exc.orig)

    if pgcode == DuplicateKey.code or "UNIQUE constraint failed" in message:
        return DuplicateKey(message)
    if pgcode == ConstraintViolation.code or "FOREIGN KEY constraint failed" in message:
        return ConstraintViolation(message)
    return ConstraintViolation(message, code=pgcode)


class RecordStore:
    """
    Store bound to one credential tier.

    On the restricted tier reads only return rows owned by the principal
    and writes touching rows the principal does not own are rejected with
    PolicyDenied. On PostgreSQL the principal is also handed to the
    database as the ``request.jwt.claim.sub`` setting so native RLS
    policies apply. The privileged tier applies no policy.

    Args:
        session_factory: SQLAlchemy session factory for this tier.
        tier: Which credential tier the store represents.
        principal_id: Principal the restricted tier is scoped to.
    """

    def __init__(
        self,
        session_factory: Callable[[], DBSession],
        tier: AccessTier = AccessTier.RESTRICTED,
        principal_id: Optional[str] = None,
    ) -> None:
        if tier is AccessTier.RESTRICTED and not principal_id:
            raise ValueError("restricted store requires a principal_id")
        self._session_factory = session_factory
        self.tier = tier
        self.principal_id = principal_id

    @property
    def restricted(self) -> bool:
        return self.tier is AccessTier.RESTRICTED

    # -------------------------------------------------------------------------
    # Public operations
    # -------------------------------------------------------------------------

    async def get(self, model, record_id: Any) -> StoreResult:
        """Fetch one row by primary key (NotFound if absent or not visible)."""
        return await asyncio.to_thread(self._run, "get", model, self._get, model, record_id)

    async def select(
        self,
        model,
        *criteria,
        order_by: Sequence = (),
        limit: Optional[int] = None,
    ) -> StoreResult:
        """Fetch the visible rows matching ``criteria`` as a list."""
        return await asyncio.to_thread(
            self._run, "select", model, self._select, model, criteria, order_by, limit
        )

    async def insert(self, model, values: dict[str, Any]) -> StoreResult:
        """Insert one row and return it."""
        return await asyncio.to_thread(self._run, "insert", model, self._insert, model, values)

    async def update(self, model, record_id: Any, values: dict[str, Any]) -> StoreResult:
        """Apply ``values`` to one row and return the updated row."""
        return await asyncio.to_thread(
            self._run, "update", model, self._update, model, record_id, values
        )

    async def delete(self, model, record_id: Any) -> StoreResult:
        """Delete one row by primary key. Data is True on success."""
        return await asyncio.to_thread(self._run, "delete", model, self._delete, model, record_id)

    async def delete_where(self, model, *criteria) -> StoreResult:
        """Delete every row matching ``criteria``. Data is the row count."""
        return await asyncio.to_thread(
            self._run, "delete_where", model, self._delete_where, model, criteria
        )

    # -------------------------------------------------------------------------
    # Transaction wrapper
    # -------------------------------------------------------------------------

    def _run(self, op_name: str, model, fn: Callable, *args) -> StoreResult:
        db = self._session_factory()
        try:
            self._apply_claims(db)
            data = fn(db, *args)
            db.commit()
            return StoreResult(data, None)
        except StoreError as e:
            db.rollback()
            return StoreResult(None, e)
        except IntegrityError as e:
            db.rollback()
            return StoreResult(None, map_integrity_error(e))
        except OperationalError as e:
            db.rollback()
            logger.error(
                "store_unreachable",
                op=op_name,
                table=model.__tablename__,
                tier=self.tier.value,
                error=str(e.orig),
            )
            return StoreResult(None, StoreUnavailable(str(e.orig)))
        except DBAPIError as e:
            db.rollback()
            pgcode = getattr(e.orig, "pgcode", None)
            if pgcode == PolicyDenied.code:
                return StoreResult(None, PolicyDenied(str(e.orig)))
            logger.error(
                "store_operation_failed",
                op=op_name,
                table=model.__tablename__,
                tier=self.tier.value,
                code=pgcode,
            )
            return StoreResult(None, StoreError(str(e.orig), code=pgcode))
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(
                "store_operation_failed",
                op=op_name,
                table=model.__tablename__,
                tier=self.tier.value,
                error=str(e),
            )
            return StoreResult(None, StoreError(str(e)))
        finally:
            db.close()

    def _apply_claims(self, db: DBSession) -> None:
        if self.restricted and db.get_bind().dialect.name == "postgresql":
            db.execute(
                text("SELECT set_config('request.jwt.claim.sub', :sub, true)"),
                {"sub": self.principal_id},
            )

    def _governed(self, model) -> bool:
        return self.restricted and policy.is_governed(model)

    # -------------------------------------------------------------------------
    # Operation bodies (run inside _run)
    # -------------------------------------------------------------------------

    def _get(self, db: DBSession, model, record_id: Any):
        key = to_uuid(record_id)
        if key is None:
            raise NotFound(f"{model.__tablename__} {record_id} not found")

        stmt = select(model).where(model.id == key)
        if self._governed(model):
            stmt = stmt.where(policy.visibility_clause(model, self.principal_id))

        row = db.scalars(stmt).first()
        if row is None:
            raise NotFound(f"{model.__tablename__} {record_id} not found")
        return row

    def _select(self, db: DBSession, model, criteria, order_by, limit):
        stmt = select(model)
        if criteria:
            stmt = stmt.where(*criteria)
        if self._governed(model):
            stmt = stmt.where(policy.visibility_clause(model, self.principal_id))
        if order_by:
            stmt = stmt.order_by(*order_by)
        if limit is not None:
            stmt = stmt.limit(limit)
        return list(db.scalars(stmt).all())

    def _insert(self, db: DBSession, model, values: dict[str, Any]):
        if self._governed(model) and not policy.owns_reference(db, model, values, self.principal_id):
            raise PolicyDenied(f"new row violates row-level security policy for {model.__tablename__}")

        row = model(**values)
        db.add(row)
        db.flush()
        db.refresh(row)
        return row

    def _update(self, db: DBSession, model, record_id: Any, values: dict[str, Any]):
        row = self._existing(db, model, record_id)

        if self._governed(model):
            if not policy.is_visible(db, model, row.id, self.principal_id):
                raise PolicyDenied(f"update on {model.__tablename__} rejected by row-level security policy")
            post_image = {c.name: getattr(row, c.name) for c in model.__table__.columns}
            post_image.update(values)
            if not policy.owns_reference(db, model, post_image, self.principal_id):
                raise PolicyDenied(f"updated row violates row-level security policy for {model.__tablename__}")

        for key, value in values.items():
            setattr(row, key, value)
        db.flush()
        db.refresh(row)
        return row

    def _delete(self, db: DBSession, model, record_id: Any) -> bool:
        row = self._existing(db, model, record_id)

        if self._governed(model) and not policy.is_visible(db, model, row.id, self.principal_id):
            raise PolicyDenied(f"delete on {model.__tablename__} rejected by row-level security policy")

        # Core delete so database-level ON DELETE rules apply instead of ORM nulling
        db.execute(sa_delete(model).where(model.id == row.id))
        return True

    def _delete_where(self, db: DBSession, model, criteria) -> int:
        if self._governed(model):
            matching = db.scalars(select(model.id).where(*criteria)).all()
            for record_id in matching:
                if not policy.is_visible(db, model, record_id, self.principal_id):
                    raise PolicyDenied(
                        f"delete on {model.__tablename__} rejected by row-level security policy"
                    )

        result = db.execute(sa_delete(model).where(*criteria))
        return result.rowcount

    def _existing(self, db: DBSession, model, record_id: Any):
        key = to_uuid(record_id)
        row = db.get(model, key) if key is not None else None
        if row is None:
            raise NotFound(f"{model.__tablename__} {record_id} not found")
        return row
