"""Terminal rendering for chats and messages.

Hides how messages are laid out in the console.
"""

from datetime import datetime

from rich.console import Group, RenderableType
from rich.markdown import Markdown
from rich.panel import Panel
from rich.text import Text

from ..storage.models import Message, MessageRole, MessageStatus, utcnow


def time_ago(moment: datetime, now: datetime | None = None) -> str:
    """Describe how long ago `moment` was, coarsely.

    Past a week the date itself (``MM-DD``) is shown instead.
    """
    delta = (now or utcnow()) - moment
    seconds = max(0, int(delta.total_seconds()))
    days, remainder = divmod(seconds, 86400)
    hours, remainder = divmod(remainder, 3600)
    minutes, seconds = divmod(remainder, 60)

    if days > 7:
        return moment.strftime("%m-%d")
    if days > 0:
        return f"{days} day{'s' if days != 1 else ''} ago"
    if hours > 0:
        return f"{hours} hour{'s' if hours != 1 else ''} ago"
    if minutes > 0:
        return f"{minutes} minute{'s' if minutes != 1 else ''} ago"
    if seconds > 30:
        return "within a minute"
    return "just now"


def render_reasoning(reasoning: str) -> Text:
    return Text(reasoning, style="dim italic")


def render_reply(message: Message) -> RenderableType:
    """Live view of an assistant message while it streams."""
    parts: list[RenderableType] = []
    if message.reasoning_content:
        parts.append(Panel(
            render_reasoning(message.reasoning_content),
            title="reasoning" if message.content else "thinking",
            title_align="left",
            border_style="dim",
        ))
    if message.content:
        parts.append(Markdown(message.content))
    elif not parts:
        parts.append(Text("...", style="dim"))
    return Group(*parts)


def render_message(message: Message) -> RenderableType:
    """Transcript view of a finished message.

    Failed messages get a red border and label so they are never mistaken for
    a complete reply.
    """
    failed = message.status is MessageStatus.FAILED
    if message.role is MessageRole.USER:
        title = "You"
        body: RenderableType = Text(message.content)
        border = "cyan"
    else:
        title = "Assistant"
        body = render_reply(message)
        border = "green"

    if failed:
        title += " [failed]"
        border = "red"

    return Panel(
        body,
        title=Text(title),
        title_align="left",
        subtitle=message.timestamp.astimezone().strftime("%Y-%m-%d %H:%M"),
        subtitle_align="right",
        border_style=border,
    )
