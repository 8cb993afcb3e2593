"""Per-turn state of the conversation engine."""

from dataclasses import dataclass, field
from enum import Enum

from ..storage.errors import PersistenceError
from ..storage.models import Chat, Message
from ..streaming.errors import StreamError
from ..streaming.session import CancellationToken, StreamSession


class TurnState(str, Enum):
    """States a turn moves through, in order.

    A turn ends in exactly one of ``committed``, ``failed`` or ``cancelled``.
    """

    IDLE = "idle"
    USER_PERSISTING = "user_persisting"
    AWAITING_FIRST_TOKEN = "awaiting_first_token"
    STREAMING = "streaming"
    FINALIZING = "finalizing"
    COMMITTED = "committed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (TurnState.COMMITTED, TurnState.FAILED, TurnState.CANCELLED)


@dataclass
class Turn:
    """One user message and the assistant reply it triggers.

    Attributes:
        chat: The chat the turn belongs to (mutated in place)
        token: Cancels the reply stream when fired
        deep_thinking: Whether the reasoner model was requested
        state: Current state machine position
        user_message: The user's message, once appended
        assistant_message: The assistant placeholder, once the stream opens
        session: The stream session carrying the reply
        error: Why the turn failed (stream or user-message persistence)
        commit_error: Set when the final write failed; see
            ``ConversationEngine.retry_commit``
        finalized: Guards the finalize step against running twice
    """

    chat: Chat
    token: CancellationToken = field(default_factory=CancellationToken)
    deep_thinking: bool = False
    state: TurnState = TurnState.IDLE
    user_message: Message | None = None
    assistant_message: Message | None = None
    session: StreamSession | None = None
    error: StreamError | PersistenceError | None = None
    commit_error: PersistenceError | None = None
    finalized: bool = False
    thinking: bool = False

    @property
    def succeeded(self) -> bool:
        return self.state is TurnState.COMMITTED and self.commit_error is None

    @property
    def needs_commit(self) -> bool:
        """True when the reply is final in memory but not yet persisted."""
        return self.finalized and self.commit_error is not None

    def cancel(self) -> None:
        self.token.cancel()
