"""Tests for ProofFetchTransport."""

import json

import pytest

from llmux.gateway.clients.proof_fetch import ProofFetchTransport
from llmux.gateway.clients.transport import Transport, TransportError, UpstreamError
from llmux.gateway.dispatcher import ChatGateway
from llmux.gateway.transforms.base import UpstreamRequest
from llmux.gateway.transforms.resolver import ProviderTag
from llmux.gateway.transforms.types import STREAM_DONE


def chunked(payload: str) -> str:
    return f"{len(payload.encode()):x}\r\n{payload}\r\n0\r\n\r\n"


class RecordingFetcher:
    """Proof fetcher stand-in that records its calls."""

    def __init__(self, result: str = "", error: Exception | None = None):
        self.result = result
        self.error = error
        self.calls: list[dict] = []

    async def __call__(self, url, *, method, headers, params, body):
        self.calls.append(
            {"url": url, "method": method, "headers": headers, "params": params, "body": body}
        )
        if self.error is not None:
            raise self.error
        return self.result


def upstream_request(stream: bool = False) -> UpstreamRequest:
    return UpstreamRequest(
        provider=ProviderTag.ANTHROPIC,
        url="https://api.test.anthropic.com/v1/messages",
        body={"model": "claude-3-haiku", "stream": stream},
        headers={"x-api-key": "k"},
        stream=stream,
    )


class TestProofFetchTransport:
    """Tests for the proof-fetch adapter."""

    def test_is_a_transport(self):
        assert isinstance(ProofFetchTransport(fetcher=RecordingFetcher()), Transport)

    async def test_send_cleans_chunked_body(self):
        payload = json.dumps({"id": "msg_1", "content": []})
        fetcher = RecordingFetcher(result=chunked(payload) + "***")

        result = await ProofFetchTransport(fetcher=fetcher).send(upstream_request(), "t")

        assert result == {"id": "msg_1", "content": []}
        call = fetcher.calls[0]
        assert call["method"] == "POST"
        assert call["headers"] == {"x-api-key": "k"}
        assert json.loads(call["body"]) == {"model": "claude-3-haiku", "stream": False}

    async def test_send_invalid_json(self):
        fetcher = RecordingFetcher(result="not json at all")

        with pytest.raises(TransportError, match="invalid JSON"):
            await ProofFetchTransport(fetcher=fetcher).send(upstream_request(), "t")

    async def test_fetch_failure_is_transport_error(self):
        fetcher = RecordingFetcher(error=ConnectionError("attestor unreachable"))

        with pytest.raises(TransportError, match="attestor unreachable"):
            await ProofFetchTransport(fetcher=fetcher).send(upstream_request(), "t")

    async def test_upstream_error_passes_through(self):
        fetcher = RecordingFetcher(error=UpstreamError("bad", 400, '{"error": "x"}'))

        with pytest.raises(UpstreamError):
            await ProofFetchTransport(fetcher=fetcher).send(upstream_request(), "t")

    async def test_stream_through_gateway(self, config):
        """A buffered, chunk-encoded SSE body still decodes into canonical chunks."""
        events = [
            {"type": "message_start", "message": {"id": "msg_p"}},
            {"type": "content_block_delta", "delta": {"type": "text_delta", "text": "proved"}},
            {"type": "message_stop"},
        ]
        sse = "".join(f"event: {e['type']}\ndata: {json.dumps(e)}\n\n" for e in events)
        gateway = ChatGateway(
            config=config,
            transport=ProofFetchTransport(fetcher=RecordingFetcher(result=chunked(sse))),
        )

        stream = await gateway.dispatch(
            {
                "model": "anthropic/claude-3-haiku",
                "messages": [{"role": "user", "content": "Hi"}],
                "stream": True,
            }
        )
        items = [item async for item in stream]

        assert items[0].delta == "proved"
        assert items[1].finish_reason == "stop"
        assert items[2] is STREAM_DONE
