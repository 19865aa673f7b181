from datetime import datetime
from typing import TYPE_CHECKING, Optional

from sqlmodel import Field, Relationship, SQLModel

if TYPE_CHECKING:
    from app.models.tournament import Tournament


class Court(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    tournament_id: int = Field(foreign_key="tournament.id", index=True)
    name: str
    venue: Optional[str] = None

    # Idle tracking. Written only through claim / conditional release.
    is_idle: bool = Field(default=True, index=True)
    last_assigned_start_time: Optional[datetime] = Field(default=None)
    last_assigned_match_id: Optional[int] = Field(default=None, index=True)  # no FK: match.court_id already points here

    updated_at: datetime = Field(default_factory=datetime.utcnow, sa_column_kwargs={"onupdate": datetime.utcnow})

    # Relationships
    tournament: "Tournament" = Relationship(back_populates="courts")
