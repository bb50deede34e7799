from liga_typerow import db  # noqa: F401 - imported for model imports

from .admin_action import AdminAction
from .bet import Bet
from .knockout_bet import KnockoutBet
from .knockout_tree import KnockoutResolution, KnockoutTree
from .match import Match
from .player import Player
from .profile import Profile
from .ranking import Ranking
from .scorer_bet import ScorerBet
from .setting import Setting
from .team import Team

__all__ = [
    "Profile",
    "Team",
    "Player",
    "Match",
    "Bet",
    "KnockoutTree",
    "KnockoutResolution",
    "KnockoutBet",
    "ScorerBet",
    "Ranking",
    "Setting",
    "AdminAction",
]
