"""Tests for AnthropicTransformer."""

import json

import pytest

from llmux.gateway.errors import MalformedUpstreamError
from llmux.gateway.transforms.anthropic import AnthropicTransformer
from llmux.gateway.transforms.framing import FrameDecoder
from llmux.gateway.transforms.types import STREAM_DONE, ChatChunk, StreamContext


def sse_event(event_type: str, **data) -> str:
    payload = json.dumps({"type": event_type, **data})
    return f"event: {event_type}\ndata: {payload}\n\n"


class TestAnthropicToUpstream:
    """Tests for converting canonical requests to Anthropic format."""

    def test_simple_message(self, config, make_request):
        """Simple user message should be converted correctly."""
        request = make_request("anthropic/claude-3-5-sonnet-20241022", ("user", "Hello!"))

        result = AnthropicTransformer().to_upstream(request, config)

        assert result.url == config.anthropic_url
        assert result.body["model"] == "claude-3-5-sonnet-20241022"
        assert result.body["messages"] == [{"role": "user", "content": "Hello!"}]
        assert result.body["stream"] is False
        assert "system" not in result.body

    def test_max_tokens_defaults_to_1024(self, config, make_request):
        request = make_request("anthropic/claude-3-haiku")

        result = AnthropicTransformer().to_upstream(request, config)

        assert result.body["max_tokens"] == 1024

    def test_max_tokens_passes_through(self, config, make_request):
        request = make_request("anthropic/claude-3-haiku", max_tokens=200)

        result = AnthropicTransformer().to_upstream(request, config)

        assert result.body["max_tokens"] == 200

    def test_explicit_zero_max_tokens_is_kept(self, config, make_request):
        request = make_request("anthropic/claude-3-haiku", max_tokens=0)

        result = AnthropicTransformer().to_upstream(request, config)

        assert result.body["max_tokens"] == 0

    def test_system_message_moves_to_top_level(self, config, make_request):
        """System prompt goes to `system`; only user/assistant stay in messages."""
        request = make_request(
            "anthropic/claude-3-haiku",
            ("system", "You are terse."),
            ("user", "Hi"),
            ("assistant", "Hello."),
            ("user", "Bye"),
        )

        result = AnthropicTransformer().to_upstream(request, config)

        assert result.body["system"] == "You are terse."
        assert [m["role"] for m in result.body["messages"]] == ["user", "assistant", "user"]

    def test_only_first_system_message_is_used(self, config, make_request):
        request = make_request(
            "anthropic/claude-3-haiku",
            ("system", "First"),
            ("system", "Second"),
            ("user", "Hi"),
        )

        result = AnthropicTransformer().to_upstream(request, config)

        assert result.body["system"] == "First"
        assert result.body["messages"] == [{"role": "user", "content": "Hi"}]

    def test_sampling_parameters(self, config, make_request):
        """temperature and top_p pass through; unset values are omitted."""
        request = make_request("anthropic/claude-3-haiku", temperature=0.2, stream=True)

        result = AnthropicTransformer().to_upstream(request, config)

        assert result.body["temperature"] == 0.2
        assert "top_p" not in result.body
        assert result.body["stream"] is True
        assert result.stream is True

    def test_headers(self, config, make_request):
        result = AnthropicTransformer().to_upstream(make_request("anthropic/claude-3-haiku"), config)

        assert result.headers["x-api-key"] == "test-anthropic-key"
        assert result.headers["anthropic-version"] == "2023-06-01"
        assert result.headers["Content-Type"] == "application/json"

    def test_redacted_view_hides_key(self, config, make_request):
        result = AnthropicTransformer().to_upstream(make_request("anthropic/claude-3-haiku"), config)

        redacted = result.redacted()

        assert redacted["headers"]["x-api-key"] == "***"
        assert "test-anthropic-key" not in json.dumps(redacted)


class TestAnthropicFromUpstream:
    """Tests for normalizing Anthropic responses."""

    def test_text_response(self, make_request):
        request = make_request("anthropic/claude-3-haiku")
        data = {
            "id": "msg_123",
            "type": "message",
            "role": "assistant",
            "content": [{"type": "text", "text": "Hello there"}],
            "model": "claude-3-haiku",
            "stop_reason": "end_turn",
            "usage": {"input_tokens": 10, "output_tokens": 4},
        }

        response = AnthropicTransformer().from_upstream(data, request)

        assert response.id == "msg_123"
        assert response.content == "Hello there"
        assert response.finish_reason == "end_turn"
        assert response.model == "anthropic/claude-3-haiku"
        assert response.usage.prompt_tokens == 10
        assert response.usage.completion_tokens == 4
        assert response.usage.total_tokens == 14

    def test_serialises_to_chat_completion(self, make_request):
        data = {
            "id": "msg_1",
            "content": [{"type": "text", "text": "Hi"}],
            "stop_reason": None,
            "usage": {"input_tokens": 1, "output_tokens": 1},
        }

        result = AnthropicTransformer().from_upstream(data, make_request("claude/x")).to_dict()

        assert result["object"] == "chat.completion"
        assert result["choices"][0]["message"] == {"role": "assistant", "content": "Hi"}
        assert result["choices"][0]["finish_reason"] == "stop"
        assert result["usage"] == {"prompt_tokens": 1, "completion_tokens": 1, "total_tokens": 2}

    def test_first_text_block_wins(self, make_request):
        data = {
            "id": "msg_1",
            "content": [
                {"type": "tool_use", "id": "toolu_1", "name": "x", "input": {}},
                {"type": "text", "text": "first"},
                {"type": "text", "text": "second"},
            ],
            "usage": {"input_tokens": 1, "output_tokens": 1},
        }

        response = AnthropicTransformer().from_upstream(data, make_request("anthropic/x"))

        assert response.content == "first"

    def test_no_text_block_gives_empty_content(self, make_request):
        data = {"id": "msg_1", "content": [], "usage": {"input_tokens": 3, "output_tokens": 0}}

        response = AnthropicTransformer().from_upstream(data, make_request("anthropic/x"))

        assert response.content == ""

    def test_missing_content_is_malformed(self, make_request):
        with pytest.raises(MalformedUpstreamError):
            AnthropicTransformer().from_upstream({"id": "msg_1"}, make_request("anthropic/x"))


class TestAnthropicStream:
    """Tests for decoding Anthropic SSE streams."""

    def decode(self, text: str) -> list:
        decoder = FrameDecoder(AnthropicTransformer(), StreamContext(model="anthropic/claude"))
        items = decoder.feed(text.encode())
        items.extend(decoder.close())
        return items

    def test_deltas_terminal_and_done(self):
        """N text deltas give N delta chunks, one terminal chunk, then the marker."""
        body = (
            sse_event("message_start", message={"id": "msg_abc", "usage": {"input_tokens": 5}})
            + sse_event("content_block_start", index=0, content_block={"type": "text", "text": ""})
            + sse_event("ping")
            + "".join(
                sse_event("content_block_delta", index=0, delta={"type": "text_delta", "text": t})
                for t in ["Hel", "lo", " world"]
            )
            + sse_event("content_block_stop", index=0)
            + sse_event("message_delta", delta={"stop_reason": "end_turn"}, usage={"output_tokens": 3})
            + sse_event("message_stop")
        )

        items = self.decode(body)

        assert len(items) == 5
        assert [c.delta for c in items[:3]] == ["Hel", "lo", " world"]
        assert all(c.finish_reason is None for c in items[:3])
        assert items[3].delta == ""
        assert items[3].finish_reason == "stop"
        assert items[4] is STREAM_DONE

    def test_chunks_share_message_id(self):
        body = (
            sse_event("message_start", message={"id": "msg_abc"})
            + sse_event("content_block_delta", delta={"text": "a"})
            + sse_event("message_stop")
        )

        items = self.decode(body)

        assert {c.id for c in items if isinstance(c, ChatChunk)} == {"msg_abc"}
        assert items[0].model == "anthropic/claude"

    def test_chunk_serialisation(self):
        body = sse_event("content_block_delta", delta={"text": "hi"}) + sse_event("message_stop")

        items = self.decode(body)

        assert items[0].to_dict()["object"] == "chat.completion.chunk"
        assert items[0].to_dict()["choices"][0]["delta"] == {"content": "hi"}
        assert items[1].to_dict()["choices"][0]["delta"] == {}

    def test_malformed_event_is_skipped(self):
        body = (
            "data: {not json\n\n"
            + sse_event("content_block_delta", delta={"text": "ok"})
            + sse_event("message_stop")
        )

        items = self.decode(body)

        assert items[0].delta == "ok"
        assert items[-1] is STREAM_DONE

    def test_error_event_is_not_a_chunk(self):
        body = sse_event("error", error={"type": "overloaded_error", "message": "Overloaded"})

        items = self.decode(body)

        assert items == []

    def test_stream_without_message_stop_has_no_marker(self):
        body = sse_event("content_block_delta", delta={"text": "partial"})

        items = self.decode(body)

        assert [c.delta for c in items] == ["partial"]
        assert STREAM_DONE not in items
