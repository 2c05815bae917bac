"""
Entity store: the single mutation entry point for every hospital entity.

Each create/update/delete runs inside a unit of work bound to one database
transaction. A write is admitted only after type coercion, derived-field
computation, the constraint engine, referential checks, duplicate-key checks
and the cross-row guards all pass; reactive rules then run before commit and
any failure rolls the whole unit of work back.
"""

import logging
import threading
import weakref
from collections import defaultdict
from contextlib import ExitStack, contextmanager
from datetime import date
from typing import Any, Callable, Dict, Iterator, List, Optional, Set, Tuple

from sqlalchemy import inspect
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from hms_backend import models
from hms_backend.exceptions import (
    CascadeFailure, ConstraintViolation, DuplicateKey, HospitalDataError, NotFound,
)
from hms_backend.services import constraints, referential
from hms_backend.services.hooks import HookRegistry, default_registry

logger = logging.getLogger(__name__)

Row = Dict[str, Any]


def resolve_model(entity_type: str):
    try:
        return models.ENTITIES[entity_type]
    except KeyError:
        raise NotFound("entity type", entity_type) from None


def pk_fields(entity_type: str) -> List[str]:
    return [col.key for col in inspect(resolve_model(entity_type)).primary_key]


def to_dict(obj) -> Row:
    return {column.name: getattr(obj, column.name) for column in obj.__table__.columns}


def _unique_fields(entity_type: str) -> List[str]:
    table = resolve_model(entity_type).__table__
    return [column.name for column in table.columns if column.unique]


class NamedLock:
    """Re-entrant lock that can be weakly referenced."""

    def __init__(self):
        self._lock = threading.RLock()

    def __enter__(self):
        return self._lock.__enter__()

    def __exit__(self, *exc_info):
        return self._lock.__exit__(*exc_info)


class LockRegistry:
    """
    Named in-process locks, e.g. one per doctor for specialty-count checks.
    An entry lives only while some unit of work holds or awaits its lock.
    """

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: "weakref.WeakValueDictionary[Any, NamedLock]" = weakref.WeakValueDictionary()

    def get(self, name: Any) -> NamedLock:
        with self._guard:
            lock = self._locks.get(name)
            if lock is None:
                lock = self._locks[name] = NamedLock()
            return lock

    def __len__(self) -> int:
        return len(self._locks)


class UnitOfWork:
    """Mutation API bound to one open transaction; obtained from EntityStore.transaction()."""

    def __init__(self, store: "EntityStore", session: Session):
        self.store = store
        self.session = session
        self.today: date = store.clock()
        self.hooks: HookRegistry = store.hooks
        self.plan: Optional[referential.DeletionPlan] = None
        # Commit-time checks, filled by the reactive rules
        self.touched_doctors: Set[int] = set()
        self.touched_admissions: Set[int] = set()
        self._locks = ExitStack()

    # NOTE: Locks are held until the unit of work ends
    def acquire(self, name: Any) -> None:
        self._locks.enter_context(self.store.locks.get(name))

    def _load(self, entity_type: str, key: Any):
        model = resolve_model(entity_type)
        obj = self.session.get(model, key)
        if obj is None:
            raise NotFound(entity_type, key)
        return obj

    def get(self, entity_type: str, key: Any) -> Row:
        return to_dict(self._load(entity_type, key))

    def query(self, entity_type: str, predicate: Optional[Callable[[Row], bool]] = None, **filters) -> List[Row]:
        model = resolve_model(entity_type)
        q = self.session.query(model)
        for field, value in constraints.coerce_row(entity_type, filters).items():
            q = q.filter(getattr(model, field) == value)
        q = q.order_by(*inspect(model).primary_key)
        rows = [to_dict(obj) for obj in q.all()]
        return [row for row in rows if predicate(row)] if predicate else rows

    def _check_duplicates(self, entity_type: str, row: Row, self_key: Any = None) -> None:
        model = resolve_model(entity_type)
        fields = pk_fields(entity_type)
        key_values = tuple(row.get(f) for f in fields)
        if self_key is None and all(v is not None for v in key_values):
            key = key_values[0] if len(key_values) == 1 else key_values
            if self.session.get(model, key) is not None:
                raise DuplicateKey(entity_type, key)
        for field in _unique_fields(entity_type):
            value = row.get(field)
            if value is None:
                continue
            clash = self.session.query(model).filter(getattr(model, field) == value).first()
            if clash is not None and referential.primary_key(entity_type, clash) != self_key:
                raise DuplicateKey(entity_type, value, field)

    def create(self, entity_type: str, values: Row) -> Row:
        model = resolve_model(entity_type)
        values = dict(values)
        self.hooks.fire(entity_type, "prepare", self, "insert", values)
        row = constraints.apply_defaults(entity_type, constraints.coerce_row(entity_type, values))
        self.hooks.fire(entity_type, "derive", self, "insert", row)
        constraints.validate(entity_type, row, self.today)
        referential.check_references(self.session, entity_type, row)
        self._check_duplicates(entity_type, row)
        self.hooks.fire(entity_type, "check", self, "insert", row)

        obj = model(**row)
        self.session.add(obj)
        self.session.flush()
        created = to_dict(obj)
        self.hooks.fire(entity_type, "after_write", self, "insert", created)
        logger.debug(f"Created {entity_type} {referential.primary_key(entity_type, obj)!r}")
        return to_dict(obj)

    def update(self, entity_type: str, key: Any, patch: Row) -> Row:
        obj = self._load(entity_type, key)
        old = to_dict(obj)
        patch = dict(patch)
        self.hooks.fire(entity_type, "prepare", self, "update", patch, old)
        patch = constraints.coerce_row(entity_type, patch)
        for field in pk_fields(entity_type):
            if field in patch and patch[field] != old[field]:
                raise ConstraintViolation(field, "primary key cannot be changed", entity_type)
        row = {**old, **patch}
        self.hooks.fire(entity_type, "derive", self, "update", row, old)
        constraints.validate(entity_type, row, self.today)
        referential.check_references(self.session, entity_type, row, old)
        referential.check_discriminator_change(self.session, entity_type, row, old)
        self._check_duplicates(entity_type, row, self_key=referential.primary_key(entity_type, obj))
        self.hooks.fire(entity_type, "check", self, "update", row, old)

        for field, value in row.items():
            if value != old[field]:
                setattr(obj, field, value)
        self.session.flush()
        updated = to_dict(obj)
        self.hooks.fire(entity_type, "after_write", self, "update", updated, old)
        return to_dict(obj)

    def delete(self, entity_type: str, key: Any) -> Dict[str, int]:
        """Delete a row and its whole CASCADE closure; returns per-entity delete counts."""
        obj = self._load(entity_type, key)
        plan = referential.plan_deletion(self.session, entity_type, obj)
        self.plan = plan
        root_key = referential.primary_key(entity_type, obj)
        counts: Dict[str, int] = defaultdict(int)
        try:
            for source, row_obj, field in plan.nullify:
                setattr(row_obj, field, None)
            self.session.flush()
            for row_type, row_obj in plan.deletes:
                removed = to_dict(row_obj)
                row_key = referential.primary_key(row_type, row_obj)
                try:
                    self.session.delete(row_obj)
                    self.session.flush()
                    self.hooks.fire(row_type, "after_delete", self, "delete", removed)
                except HospitalDataError as e:
                    if (row_type, row_key) == (entity_type, root_key):
                        raise
                    raise CascadeFailure(entity_type, root_key, f"{row_type} {row_key!r}: {e}") from e
                counts[row_type] += 1
        finally:
            self.plan = None
        return dict(counts)

    def run_commit_checks(self) -> None:
        for stage_hook in self.store.commit_checks:
            stage_hook(self)


class EntityStore:
    """Atomic create/update/delete/get/query over every hospital entity."""

    def __init__(
        self,
        session_factory: sessionmaker,
        hooks: Optional[HookRegistry] = None,
        clock: Callable[[], date] = date.today,
    ):
        self.session_factory = session_factory
        self.hooks = hooks or default_registry()
        self.clock = clock
        self.locks = LockRegistry()
        self.commit_checks: List[Callable[[UnitOfWork], None]] = []
        from hms_backend.services import admissions, specialty_rule
        self.commit_checks.extend([specialty_rule.check_touched_doctors, admissions.check_touched_admissions])

    @contextmanager
    def transaction(self) -> Iterator[UnitOfWork]:
        session = self.session_factory()
        uow = UnitOfWork(self, session)
        try:
            yield uow
            uow.run_commit_checks()
            session.commit()
        except HospitalDataError as e:
            session.rollback()
            logger.warning(f"Mutation rejected: {type(e).__name__}: {e}")
            raise
        except IntegrityError as e:
            session.rollback()
            logger.error(f"Database rejected mutation: {e.orig}")
            raise _translate_integrity_error(e) from e
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()
            uow._locks.close()

    def create(self, entity_type: str, values: Row) -> Row:
        with self.transaction() as uow:
            return uow.create(entity_type, values)

    def update(self, entity_type: str, key: Any, patch: Row) -> Row:
        with self.transaction() as uow:
            return uow.update(entity_type, key, patch)

    def delete(self, entity_type: str, key: Any) -> Dict[str, int]:
        with self.transaction() as uow:
            return uow.delete(entity_type, key)

    def get(self, entity_type: str, key: Any) -> Row:
        session = self.session_factory()
        try:
            return UnitOfWork(self, session).get(entity_type, key)
        finally:
            session.close()

    def query(self, entity_type: str, predicate: Optional[Callable[[Row], bool]] = None, **filters) -> List[Row]:
        session = self.session_factory()
        try:
            return UnitOfWork(self, session).query(entity_type, predicate, **filters)
        finally:
            session.close()


def _translate_integrity_error(error: IntegrityError) -> HospitalDataError:
    message = str(error.orig)
    lowered = message.lower()
    if "unique" in lowered or "duplicate" in lowered:
        return DuplicateKey("row", message)
    return ConstraintViolation("row", message)


def parse_key(entity_type: str, parts: Tuple[str, ...]) -> Any:
    """Turn URL/CLI key segments into a typed primary key (tuple for composite keys)."""
    fields = pk_fields(entity_type)
    if len(parts) != len(fields):
        raise NotFound(entity_type, "/".join(parts))
    try:
        typed = constraints.coerce_row(entity_type, dict(zip(fields, parts)))
    except ConstraintViolation:
        raise NotFound(entity_type, "/".join(parts)) from None
    values = tuple(typed[f] for f in fields)
    return values[0] if len(values) == 1 else values
