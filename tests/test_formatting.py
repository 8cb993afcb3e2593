"""Tests for terminal rendering helpers."""
from datetime import datetime, timedelta, timezone

import pytest
from rich.console import Console

from deepchat.cli.formatting import render_message, render_reply, time_ago
from deepchat.storage import Message, MessageRole, MessageStatus

NOW = datetime(2024, 5, 20, 12, 0, tzinfo=timezone.utc)


@pytest.mark.parametrize("delta,expected", [
    (timedelta(seconds=0), "just now"),
    (timedelta(seconds=20), "just now"),
    (timedelta(seconds=45), "within a minute"),
    (timedelta(minutes=1), "1 minute ago"),
    (timedelta(minutes=5, seconds=10), "5 minutes ago"),
    (timedelta(hours=1), "1 hour ago"),
    (timedelta(hours=3, minutes=59), "3 hours ago"),
    (timedelta(days=1), "1 day ago"),
    (timedelta(days=7), "7 days ago"),
    (timedelta(days=8), "05-12"),
    (timedelta(seconds=-30), "just now"),
])
def test_time_ago(delta, expected):
    """Test the coarse relative time labels."""
    assert time_ago(NOW - delta, now=NOW) == expected


def render(renderable) -> str:
    console = Console(width=80, record=True, color_system=None)
    console.print(renderable)
    return console.export_text()


class TestRendering:
    """Tests for message rendering."""

    def test_reply_placeholder(self):
        """Test that an empty reply shows an ellipsis."""
        message = Message(role=MessageRole.ASSISTANT, status=MessageStatus.STREAMING)
        assert "..." in render(render_reply(message))

    def test_reply_while_thinking(self):
        message = Message(role=MessageRole.ASSISTANT, reasoning_content="Weighing options")
        text = render(render_reply(message))
        assert "thinking" in text
        assert "Weighing options" in text

    def test_reply_with_reasoning_and_content(self):
        message = Message(role=MessageRole.ASSISTANT, content="Paris", reasoning_content="Capital")
        text = render(render_reply(message))
        assert "reasoning" in text
        assert "Paris" in text

    def test_failed_message_is_labelled(self):
        """Test that failed messages are marked in the transcript."""
        message = Message(role=MessageRole.ASSISTANT, content="Hi", status=MessageStatus.FAILED)
        assert "Assistant [failed]" in render(render_message(message))

    def test_user_message(self):
        text = render(render_message(Message(role=MessageRole.USER, content="Hello")))
        assert "You" in text
        assert "Hello" in text
