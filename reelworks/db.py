"""
Supabase access for the relational store.

The worker talks to Postgres only through PostgREST query builders. Every
builder is run through `execute()` so a store failure always surfaces as
PersistenceError instead of leaking driver exceptions.
"""

import logging
from datetime import datetime, timezone
from typing import Optional

import httpx
from postgrest.exceptions import APIError
from supabase import Client, create_client

from . import config
from .errors import ConflictError, PersistenceError

logger = logging.getLogger(__name__)

UNIQUE_VIOLATION = "23505"


def create_supabase() -> Client:
    """Build the service-role client. Called once at process start."""
    if not config.SUPABASE_URL or not config.SUPABASE_SERVICE_ROLE_KEY:
        raise RuntimeError("SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY must be set")
    return create_client(config.SUPABASE_URL, config.SUPABASE_SERVICE_ROLE_KEY)


def execute(query, action: str, on_conflict: Optional[str] = None) -> list[dict]:
    """Run a query builder and return its rows.

    When `on_conflict` is given, a unique-constraint violation raises
    ConflictError with that message instead of PersistenceError.
    """
    try:
        result = query.execute()
    except APIError as e:
        if on_conflict is not None and e.code == UNIQUE_VIOLATION:
            logger.info(f"Unique constraint hit during {action}: {e.message}")
            raise ConflictError(on_conflict) from e
        logger.error(f"Store failure during {action}: {e}")
        raise PersistenceError(f"Store unavailable during {action}: {e}") from e
    except httpx.HTTPError as e:
        logger.error(f"Store failure during {action}: {e}")
        raise PersistenceError(f"Store unavailable during {action}: {e}") from e
    return result.data or []


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def parse_ts(value) -> datetime:
    """Parse a stored timestamp. Naive values are treated as UTC."""
    if isinstance(value, datetime):
        ts = value
    else:
        ts = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts
