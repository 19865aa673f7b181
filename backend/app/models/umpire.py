from datetime import datetime
from typing import Optional

from sqlmodel import Field, SQLModel


class Umpire(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    tournament_id: Optional[int] = Field(default=None, foreign_key="tournament.id", index=True)
    full_name: str
    license_no: Optional[str] = Field(default=None, index=True)
    contact: Optional[str] = None

    # Idle tracking. Written only through claim / conditional release.
    is_idle: bool = Field(default=True, index=True)
    last_assigned_start_time: Optional[datetime] = Field(default=None)
    last_assigned_match_id: Optional[int] = Field(default=None, index=True)

    updated_at: datetime = Field(default_factory=datetime.utcnow, sa_column_kwargs={"onupdate": datetime.utcnow})
