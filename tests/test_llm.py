"""Tests for the streaming client and its cancellation token."""

from types import SimpleNamespace

import pytest

import patchwright.llm as llm_module
from patchwright.errors import CancellationError, TransportError
from patchwright.llm import CancellationToken, ClientFactory, LLMClient, StreamChunk


def chunk(content=None, reasoning=None):
    delta = SimpleNamespace(content=content, reasoning_content=reasoning)
    return SimpleNamespace(choices=[SimpleNamespace(delta=delta)])


class FakeCompletion:
    def __init__(self, chunks=(), error=None):
        self.chunks = list(chunks)
        self.error = error
        self.kwargs = None

    def __call__(self, **kwargs):
        self.kwargs = kwargs
        if self.error:
            raise self.error
        return iter(self.chunks)


@pytest.fixture
def fake_completion(monkeypatch):
    def _install(**kw):
        fake = FakeCompletion(**kw)
        monkeypatch.setattr(llm_module.litellm, "completion", fake)
        return fake
    return _install


MESSAGES = [
    {"role": "system", "content": "sys"},
    {"role": "assistant", "content": "hi", "reasoning": "private"},
]


def test_streams_content_and_reasoning(fake_completion):
    fake_completion(chunks=[
        chunk(reasoning="think"),
        SimpleNamespace(choices=[]),
        chunk(content="Hel"),
        chunk(content="lo"),
        chunk(),
    ])
    out = list(LLMClient("k").submit("m", MESSAGES))
    assert out == [StreamChunk(reasoning="think"), StreamChunk(content="Hel"), StreamChunk(content="lo")]


def test_request_shape(fake_completion):
    fake = fake_completion(chunks=[])
    client = LLMClient(api_key="sk-1", api_base="http://base")
    list(client.submit("openrouter/x", MESSAGES, options={"temperature": 0.2}))
    assert fake.kwargs == {
        "model": "openrouter/x",
        "messages": [{"role": "system", "content": "sys"}, {"role": "assistant", "content": "hi"}],
        "stream": True,
        "temperature": 0.2,
        "api_key": "sk-1",
        "api_base": "http://base",
    }


def test_cancelled_before_request(fake_completion):
    fake = fake_completion(chunks=[chunk(content="x")])
    token = CancellationToken()
    token.cancel()
    with pytest.raises(CancellationError):
        list(LLMClient().submit("m", MESSAGES, token=token))
    assert fake.kwargs is None


def test_cancelled_mid_stream(fake_completion):
    fake_completion(chunks=[chunk(content="a"), chunk(content="b")])
    token = CancellationToken()
    stream = LLMClient().submit("m", MESSAGES, token=token)
    assert next(stream).content == "a"
    token.cancel()
    with pytest.raises(CancellationError):
        next(stream)


def test_request_failure_is_transport_error(fake_completion):
    fake_completion(error=RuntimeError("503"))
    with pytest.raises(TransportError, match="503"):
        list(LLMClient().submit("m", MESSAGES))


def test_stream_failure_is_transport_error(monkeypatch):
    def broken():
        yield chunk(content="a")
        raise ConnectionResetError("reset")

    monkeypatch.setattr(llm_module.litellm, "completion", lambda **kw: broken())
    with pytest.raises(TransportError, match="Stream interrupted"):
        list(LLMClient().submit("m", MESSAGES))


def test_failure_after_cancel_is_cancellation(monkeypatch):
    token = CancellationToken()

    def broken():
        yield chunk(content="a")
        token.cancel()
        raise OSError("socket closed")

    monkeypatch.setattr(llm_module.litellm, "completion", lambda **kw: broken())
    stream = LLMClient().submit("m", MESSAGES, token=token)
    next(stream)
    with pytest.raises(CancellationError):
        next(stream)


def test_token():
    token = CancellationToken()
    assert not token.cancelled
    token.raise_if_cancelled()
    token.cancel()
    assert token.cancelled
    with pytest.raises(CancellationError, match="Interrupted by user"):
        token.raise_if_cancelled()


def test_client_factory_caches_by_key_and_base():
    factory = ClientFactory()
    a = factory.get("k1", "http://a")
    assert factory.get("k1", "http://a") is a
    assert factory.get("k2", "http://a") is not a
    assert factory.get("k1", "http://b") is not a
    assert a.api_key == "k1" and a.api_base == "http://a"
