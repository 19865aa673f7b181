from datetime import datetime
from typing import TYPE_CHECKING, Optional

from sqlmodel import Field, Relationship, SQLModel

if TYPE_CHECKING:
    from app.models.tournament import Tournament


class Match(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    tournament_id: Optional[int] = Field(default=None, foreign_key="tournament.id", index=True)

    # Bracket placement (written by fixture generation, read-only here)
    round: Optional[str] = Field(default=None)
    match_order: Optional[int] = Field(default=None)
    entry1_id: Optional[int] = Field(default=None)
    entry2_id: Optional[int] = Field(default=None)

    # Shared resources (nullable until assigned)
    umpire_id: Optional[int] = Field(default=None, foreign_key="umpire.id", index=True)
    court_id: Optional[int] = Field(default=None, foreign_key="court.id", index=True)

    # Planned window
    scheduled_time: Optional[datetime] = Field(default=None)
    duration_minutes: Optional[int] = Field(default=None)

    # Umpire scoring code; invalidated once a result is submitted
    match_code: Optional[str] = Field(default=None)
    code_valid: bool = Field(default=True)

    # Lifecycle (stored as zone-naive UTC)
    actual_start_time: Optional[datetime] = Field(default=None, index=True)  # set once by start
    awaiting_result: bool = Field(default=False, index=True)
    is_completed: bool = Field(default=False)
    winner_entry_id: Optional[int] = Field(default=None)
    entry1_score: Optional[int] = Field(default=None)
    entry2_score: Optional[int] = Field(default=None)

    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow, sa_column_kwargs={"onupdate": datetime.utcnow})

    # Relationships
    tournament: Optional["Tournament"] = Relationship(back_populates="matches")
