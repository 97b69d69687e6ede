"""
Shared column types and defaults for the ORM models.

JSON documents (addresses, image references, tracking history) are stored
as JSONB on PostgreSQL and plain JSON elsewhere. Mutations must assign a new
value; in-place edits of a loaded dict/list are not tracked.
"""

from datetime import datetime, timezone

from sqlalchemy import JSON
from sqlalchemy.dialects.postgresql import JSONB

JSONType = JSON().with_variant(JSONB(), "postgresql")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)
