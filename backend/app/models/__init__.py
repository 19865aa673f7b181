from app.models.court import Court
from app.models.match import Match
from app.models.tournament import Tournament
from app.models.umpire import Umpire

__all__ = [
    "Tournament",
    "Match",
    "Umpire",
    "Court",
]
