from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, ConfigDict

from path_store.app.errors import StoreError

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


def format_timestamp(moment: datetime) -> str:
    """Render a datetime as the UTC, second precision text stored in the database."""
    if moment.tzinfo is not None:
        moment = moment.astimezone(timezone.utc)
    return moment.strftime(TIMESTAMP_FORMAT)


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Parse a stored timestamp; empty values mean the column was never set."""
    if not value:
        return None
    try:
        return datetime.strptime(value, TIMESTAMP_FORMAT).replace(tzinfo=timezone.utc)
    except ValueError as e:
        raise StoreError(f"Malformed stored timestamp {value!r}") from e


class ContentEntry(BaseModel):
    """One stored row, without its payload."""

    model_config = ConfigDict(frozen=True)

    id: int
    path: str
    content_type: str
    length: int
    created_at: datetime
    updated_at: Optional[datetime] = None
    accessed_at: Optional[datetime] = None

    @property
    def last_modified(self) -> datetime:
        return self.updated_at or self.created_at

    @classmethod
    def from_row(cls, row) -> "ContentEntry":
        created_at = parse_timestamp(row["created_at"])
        if created_at is None:
            raise StoreError(f"Entry {row['path']!r} has no created_at")
        return cls(
            id=row["id"],
            path=row["path"],
            content_type=row["content_type"],
            length=row["length"],
            created_at=created_at,
            updated_at=parse_timestamp(row["updated_at"]),
            accessed_at=parse_timestamp(row["accessed_at"]),
        )
