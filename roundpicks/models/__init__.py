from roundpicks import db  # noqa: F401 - imported for model imports

from .access_token import AccessToken
from .admin import Admin
from .admin_action import AdminAction
from .participant import Participant
from .point_schedule import PointSchedule
from .prediction import Prediction, PredictionValue
from .round import Round, RoundEntrant, RoundResult
from .score_record import ScoreRecord
from .season import Season, season_participants
from .season_winner import SeasonWinner

__all__ = [
    "AccessToken",
    "Admin",
    "AdminAction",
    "Participant",
    "PointSchedule",
    "Prediction",
    "PredictionValue",
    "Round",
    "RoundEntrant",
    "RoundResult",
    "ScoreRecord",
    "Season",
    "SeasonWinner",
    "season_participants",
]
