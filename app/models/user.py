from typing import Optional
from sqlmodel import Field, SQLModel
from datetime import datetime, timezone

def _utc_now() -> datetime:
    """Get current UTC time (timezone-aware)."""
    return datetime.now(timezone.utc)

class User(SQLModel, table=True):
    """
    Account directory entry.

    Owned by the auth layer; the billing pipeline only reads it when
    resolving which user a subscription belongs to.
    """
    id: str = Field(primary_key=True)  # Application-assigned user ID
    email: str = Field(unique=True, index=True)
    name: Optional[str] = Field(default=None, nullable=True)
    email_verified: bool = Field(default=False)
    created_at: datetime = Field(default_factory=_utc_now)
