"""Conversation engine: drives one chat turn from user input to committed reply.

Per turn:
    idle -> user_persisting -> awaiting_first_token -> streaming
         -> finalizing -> committed | failed | cancelled

The engine owns the in-memory chat while a turn is open and applies stream
snapshots to the assistant message as they arrive. Collaborators are injected:
a settings provider, a chat store and a streaming client.
"""

import asyncio
import contextlib
import logging
from collections.abc import Callable

from ..config import SettingsProvider
from ..storage.base import ChatStore
from ..storage.errors import PersistenceError
from ..storage.models import Chat, Message, MessageRole, MessageStatus
from ..streaming.client import DeepSeekClient
from ..streaming.errors import StreamError
from ..streaming.models import ChatCompletionRequest, ChatMessage, StreamOutcome, StreamSnapshot
from ..streaming.session import CancellationToken
from .errors import TurnInProgressError
from .models import Turn, TurnState

logger = logging.getLogger(__name__)

UpdateCallback = Callable[[Message], None]


class ConversationEngine:
    """State machine for chat turns.

    At most one turn per chat is open at a time. Settings are read once per
    turn, when the request is built.

    Example:
        >>> engine = ConversationEngine(settings_store, chat_store, client)
        >>> turn = await engine.start_chat("Hello")
        >>> turn.assistant_message.content
        'Hi there'
    """

    def __init__(
        self,
        settings: SettingsProvider,
        store: ChatStore,
        client: DeepSeekClient,
    ) -> None:
        self._settings = settings
        self._store = store
        self._client = client
        self._active: dict[str, Turn] = {}

    def is_busy(self, chat_id: str) -> bool:
        return chat_id in self._active

    def cancel(self, chat_id: str) -> bool:
        """Cancel the open turn of a chat.

        Returns:
            True if a turn was open and has been told to stop
        """
        turn = self._active.get(chat_id)
        if turn is None:
            return False
        turn.cancel()
        return True

    async def start_chat(
        self,
        content: str,
        *,
        deep_thinking: bool = False,
        on_update: UpdateCallback | None = None,
        token: CancellationToken | None = None,
    ) -> Turn:
        """Create a chat and run its first turn.

        The chat title is derived from `content`.
        """
        return await self.send_message(
            Chat(), content, deep_thinking=deep_thinking, on_update=on_update, token=token
        )

    async def send_message(
        self,
        chat: Chat,
        content: str,
        *,
        deep_thinking: bool = False,
        on_update: UpdateCallback | None = None,
        token: CancellationToken | None = None,
    ) -> Turn:
        """Run one turn on `chat`.

        Args:
            chat: Chat to extend; mutated in place
            content: The user's message
            deep_thinking: Use the reasoner model instead of the chat model
            on_update: Called with the assistant message after every snapshot
            token: Cancels the reply; the partial answer is kept

        Returns:
            The finished turn. Stream and persistence failures are recorded on
            it rather than raised.

        Raises:
            ConfigurationError: If endpoint, key or models are not set
            TurnInProgressError: If the chat already has an open turn
            ValueError: If `content` is blank
        """
        if chat.id in self._active:
            raise TurnInProgressError(chat.id)
        if not content.strip():
            raise ValueError("Message content is empty")
        settings = self._settings.get().require_valid()

        turn = Turn(chat=chat, token=token or CancellationToken(), deep_thinking=deep_thinking)
        self._active[chat.id] = turn
        try:
            if not await self._persist_user_message(turn, content):
                return turn

            history = self._history(chat, exclude=turn.user_message)
            self._open_placeholder(turn)

            request = ChatCompletionRequest(
                endpoint=settings.api_endpoint,
                api_key=settings.api_key,
                model=settings.model_for(deep_thinking),
                messages=[*history, ChatMessage(role="user", content=content)],
            )
            turn.session = self._client.open_stream(request, token=turn.token)

            try:
                async with contextlib.aclosing(turn.session.open()) as snapshots:
                    async for snapshot in snapshots:
                        self._apply(turn, snapshot, on_update)
            except StreamError as e:
                await self._finalize(turn, error=e)
            except asyncio.CancelledError:
                turn.token.cancel()
                await self._finalize(turn)
                raise
            else:
                await self._finalize(turn)
            return turn
        finally:
            self._active.pop(chat.id, None)

    async def retry_commit(self, turn: Turn) -> bool:
        """Retry the final writes of a turn whose commit failed.

        The reply is not requested again.

        Returns:
            True if the turn is now persisted
        """
        if not turn.finalized:
            raise RuntimeError("Turn has not been finalized yet")
        if turn.commit_error is None:
            return True
        await self._commit(turn)
        return turn.commit_error is None

    async def get_chat(self, chat_id: str) -> Chat | None:
        return await self._store.get_chat(chat_id)

    async def list_chats(self) -> list[Chat]:
        """All chats, most recently updated first."""
        return await self._store.fetch_all_chats()

    async def delete_chat(self, chat: Chat) -> None:
        if chat.id in self._active:
            raise TurnInProgressError(chat.id)
        await self._store.delete_chat(chat)

    async def _persist_user_message(self, turn: Turn, content: str) -> bool:
        chat = turn.chat
        self._advance(turn, TurnState.USER_PERSISTING)

        if chat.is_new and not chat.title:
            chat.title = Chat.derive_title(content)

        message = Message(role=MessageRole.USER, content=content, status=MessageStatus.SENDING)
        chat.messages.append(message)
        turn.user_message = message

        # The chat row goes with every user message; a chat whose first write
        # failed has no row yet and messages reference it
        written = False
        try:
            await self._store.save_chat(chat)
            written = True
            message.status = MessageStatus.SUCCESS
            chat.touch()
            await self._store.save_chat(chat)
        except PersistenceError as e:
            logger.warning("Could not persist user message in chat %s: %s", chat.id, e)
            message.status = MessageStatus.FAILED
            if written:
                await self._settle_failed(message, chat.id)
            turn.error = e
            turn.finalized = True
            self._advance(turn, TurnState.FAILED)
            return False
        return True

    async def _settle_failed(self, message: Message, chat_id: str) -> None:
        """Replace a stored ``sending`` status with ``failed``."""
        try:
            await self._store.save_message(message, chat_id)
        except PersistenceError as e:
            logger.warning("Message %s is stored as %s: %s", message.id, MessageStatus.SENDING.value, e)

    def _open_placeholder(self, turn: Turn) -> None:
        placeholder = Message(role=MessageRole.ASSISTANT, status=MessageStatus.STREAMING)
        turn.chat.messages.append(placeholder)
        turn.assistant_message = placeholder
        self._advance(turn, TurnState.AWAITING_FIRST_TOKEN)

    @staticmethod
    def _history(chat: Chat, exclude: Message | None) -> list[ChatMessage]:
        # Only completed exchanges are replayed; reasoning is never sent back
        return [
            ChatMessage(role=m.role.value, content=m.content)
            for m in chat.messages
            if m is not exclude and m.status is MessageStatus.SUCCESS and m.content
        ]

    def _apply(self, turn: Turn, snapshot: StreamSnapshot, on_update: UpdateCallback | None) -> None:
        if turn.state is TurnState.AWAITING_FIRST_TOKEN:
            self._advance(turn, TurnState.STREAMING)

        message = turn.assistant_message
        message.content += snapshot.content_delta
        if snapshot.accumulated_reasoning is not None:
            message.reasoning_content = snapshot.accumulated_reasoning
        turn.thinking = snapshot.thinking

        if on_update is not None:
            on_update(message)

    async def _finalize(self, turn: Turn, error: StreamError | None = None) -> None:
        if turn.finalized:
            return
        turn.finalized = True
        self._advance(turn, TurnState.FINALIZING)

        message = turn.assistant_message
        if not message.reasoning_content:
            message.reasoning_content = None

        cancelled = turn.token.cancelled or (
            turn.session is not None and turn.session.outcome is StreamOutcome.CANCELLED
        )
        if error is not None:
            message.status = MessageStatus.FAILED
            turn.error = error
            final_state = TurnState.FAILED
        elif cancelled:
            has_output = bool(message.content or message.reasoning_content)
            message.status = MessageStatus.SUCCESS if has_output else MessageStatus.FAILED
            final_state = TurnState.CANCELLED
        else:
            message.status = MessageStatus.SUCCESS
            final_state = TurnState.COMMITTED

        await self._commit(turn)
        self._advance(turn, final_state)

    async def _commit(self, turn: Turn) -> None:
        chat = turn.chat
        try:
            await self._store.save_message(turn.assistant_message, chat.id)
            chat.touch()
            await self._store.save_chat(chat)
        except PersistenceError as e:
            logger.warning("Final commit failed for chat %s: %s", chat.id, e)
            turn.commit_error = e
        else:
            turn.commit_error = None

    @staticmethod
    def _advance(turn: Turn, state: TurnState) -> None:
        logger.debug("Turn in chat %s: %s -> %s", turn.chat.id, turn.state.value, state.value)
        turn.state = state
