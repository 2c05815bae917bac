"""
Read-only DataFrame access to committed hospital data for reporting clients.
"""

import logging
import re
from typing import Dict, Iterable, Optional

import pandas as pd
from sqlalchemy import select, text
from sqlalchemy.engine import Engine

from hms_backend import models
from hms_backend.exceptions import NotFound

logger = logging.getLogger(__name__)

_READ_STATEMENT = re.compile(r"\s*(select|with)\b", re.IGNORECASE)


def load_frame(bind: Engine, entity_type: str) -> pd.DataFrame:
    """One entity table as a DataFrame, ordered by primary key."""
    model = models.ENTITIES.get(entity_type)
    if model is None:
        raise NotFound("entity type", entity_type)
    table = model.__table__
    stmt = select(table).order_by(*table.primary_key.columns)
    with bind.connect() as conn:
        return pd.read_sql(stmt, conn)


def load_frames(bind: Engine, entity_types: Optional[Iterable[str]] = None) -> Dict[str, pd.DataFrame]:
    return {name: load_frame(bind, name) for name in (entity_types or models.ENTITIES)}


def read_sql(bind: Engine, sql: str, params: Optional[dict] = None) -> pd.DataFrame:
    """
    Run one SELECT (or WITH ... SELECT) report query.
    The connection is always rolled back, so nothing the query does is kept.
    """
    if not _READ_STATEMENT.match(sql) or ";" in sql.strip().rstrip(";"):
        raise ValueError("Only a single read-only SELECT query is allowed")
    with bind.connect() as conn:
        frame = pd.read_sql(text(sql), conn, params=params or {})
        conn.rollback()
    logger.info(f"Report query returned {len(frame)} rows")
    return frame


def bed_status_audit(bind: Engine) -> pd.DataFrame:
    """Bed status next to the status re-derived from active admissions; mismatches flag drift."""
    beds = load_frame(bind, "Bed")
    admissions = load_frame(bind, "Admission")
    active = admissions[admissions["discharge_date"].isna() & admissions["bed_id"].notna()]
    occupied_ids = set(active["bed_id"].astype(int))
    audit = beds[["bed_id", "ward_id", "status"]].copy()
    audit["expected_occupied"] = audit["bed_id"].isin(occupied_ids)
    audit["consistent"] = (audit["status"] == "Occupied") == audit["expected_occupied"]
    return audit
