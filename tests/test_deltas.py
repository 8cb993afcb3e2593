"""Unit tests for chunk payload decoding."""
import json

import pytest
from hypothesis import given
from hypothesis import strategies as st

from deepchat.streaming import DecodedDelta, DeltaDecoder


def payload(delta) -> str:
    return json.dumps({"id": "x", "choices": [{"index": 0, "delta": delta}]})


class TestDeltaDecoder:
    """Tests for DeltaDecoder."""

    @pytest.fixture
    def decoder(self):
        """Create a decoder instance."""
        return DeltaDecoder()

    def test_content_delta(self, decoder):
        """Test decoding a plain content fragment."""
        assert decoder.decode(payload({"content": "Hi"})) == DecodedDelta(content="Hi")

    def test_reasoning_delta(self, decoder):
        """Test decoding a reasoning fragment."""
        delta = decoder.decode(payload({"content": None, "reasoning_content": "Let me"}))
        assert delta == DecodedDelta(reasoning="Let me")

    def test_both_channels_in_one_frame(self, decoder):
        """Test a frame carrying content and reasoning."""
        delta = decoder.decode(payload({"content": "A", "reasoning_content": "R"}))
        assert delta.content == "A"
        assert delta.reasoning == "R"

    @pytest.mark.parametrize("delta", [{}, {"role": "assistant"}, {"content": ""}, {"content": None}])
    def test_frame_without_text_is_a_no_op(self, decoder, delta):
        """Test that frames without text produce nothing and are not errors."""
        assert decoder.decode(payload(delta)) is None
        assert decoder.discarded == 0

    @pytest.mark.parametrize("text", [
        "{not json",
        "[]",
        "42",
        '{"choices": []}',
        '{"object": "chat.completion.chunk"}',
        '{"choices": [{"delta": "text"}]}',
        '{"choices": [{"index": 0}]}',
        '{"choices": [{"delta": {"content": 5}}]}',
        '{"choices": null}',
    ])
    def test_malformed_payload_is_discarded(self, decoder, text):
        """Test that unexpected shapes are dropped without raising."""
        assert decoder.decode(text) is None
        assert decoder.discarded == 1

    def test_reasoning_flag_is_informational(self, decoder):
        """Test that reasoning_flag updates state but never suppresses text."""
        delta = decoder.decode(payload({"content": "A", "reasoning_flag": True}))
        assert delta.content == "A"
        assert decoder.thinking is True

        delta = decoder.decode(payload({"reasoning_content": "R", "reasoning_flag": False}))
        assert delta.reasoning == "R"
        assert decoder.thinking is False

    def test_flag_persists_across_frames_without_it(self, decoder):
        """Test that thinking keeps its last value."""
        decoder.decode(payload({"reasoning_flag": True}))
        decoder.decode(payload({"content": "x"}))
        assert decoder.thinking is True

    def test_only_first_choice_is_read(self, decoder):
        """Test that additional choices are ignored."""
        text = json.dumps({"choices": [{"delta": {"content": "first"}}, {"delta": {"content": "second"}}]})
        assert decoder.decode(text).content == "first"

    @given(st.text(max_size=100))
    def test_never_raises(self, text: str):
        """Property test: arbitrary payloads never raise."""
        result = DeltaDecoder().decode(text)
        assert result is None or isinstance(result, DecodedDelta)
