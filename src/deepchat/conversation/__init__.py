from .engine import ConversationEngine, UpdateCallback
from .errors import TurnInProgressError
from .models import Turn, TurnState

__all__ = [
    "ConversationEngine",
    "Turn",
    "TurnInProgressError",
    "TurnState",
    "UpdateCallback",
]
