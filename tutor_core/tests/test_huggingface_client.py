import httpx
import pytest

from tutor_core.domain.exceptions import ApiError, MalformedResponseError, ProviderTimeoutError, RateLimitError
from tutor_core.domain.models import ChatMessage, CompletionParams
from tutor_core.providers.huggingface_client import HuggingFaceClient


class SettingsStub:
    huggingface_api_key = "hf_test_key_123"
    http_timeout = 1.0
    huggingface_base_url = "https://api-inference.huggingface.co/models"


def _install(monkeypatch, status_code=200, body=None, exc=None, captured=None):
    class Resp:
        def __init__(self):
            self.status_code = status_code
            self.text = "error"

        def json(self):
            return body

    class Client:
        def __init__(self, *a, **kw):
            pass

        def __enter__(self):
            return self

        def __exit__(self, *a):
            return False

        def post(self, url, json=None, headers=None):
            if captured is not None:
                captured.update({"url": url, "json": json})
            if exc is not None:
                raise exc
            return Resp()

    monkeypatch.setattr("httpx.Client", Client)


def test_huggingface_basic(monkeypatch):
    captured = {}
    _install(monkeypatch, body=[{"generated_text": " Paris.<|im_end|>\n<|im_start|>user\nmore"}], captured=captured)
    client = HuggingFaceClient(SettingsStub())
    messages = [
        ChatMessage(role="system", content="be brief"),
        ChatMessage(role="user", content="capital of France?"),
    ]
    assert client.complete(messages, CompletionParams()) == "Paris."
    assert captured["url"] == "https://api-inference.huggingface.co/models/Qwen/Qwen2.5-72B-Instruct"
    assert captured["json"]["inputs"] == (
        "<|im_start|>system\nbe brief<|im_end|>\n"
        "<|im_start|>user\ncapital of France?<|im_end|>\n"
        "<|im_start|>assistant\n"
    )
    assert captured["json"]["parameters"]["return_full_text"] is False


def test_stem_questions_use_stem_model(monkeypatch):
    captured = {}
    _install(monkeypatch, body={"generated_text": "x = 2"}, captured=captured)
    client = HuggingFaceClient(SettingsStub())
    assert client.complete([ChatMessage(role="user", content="solve this algebra equation")], CompletionParams()) == "x = 2"
    assert captured["url"].endswith("microsoft/DeepSeek-R1-Distill-Qwen-32B")


@pytest.mark.parametrize("body", [{"error": "loading"}, [], [{"generated_text": "<|im_end|>"}], "text"])
def test_malformed(monkeypatch, body):
    _install(monkeypatch, body=body)
    with pytest.raises(MalformedResponseError):
        HuggingFaceClient(SettingsStub()).complete([ChatMessage(role="user", content="hi")], CompletionParams())


def test_error_mapping(monkeypatch):
    _install(monkeypatch, status_code=503)
    with pytest.raises(ApiError):
        HuggingFaceClient(SettingsStub()).complete([ChatMessage(role="user", content="hi")], CompletionParams())
    _install(monkeypatch, status_code=429)
    with pytest.raises(RateLimitError):
        HuggingFaceClient(SettingsStub()).complete([ChatMessage(role="user", content="hi")], CompletionParams())
    _install(monkeypatch, exc=httpx.ConnectTimeout("slow"))
    with pytest.raises(ProviderTimeoutError):
        HuggingFaceClient(SettingsStub()).complete([ChatMessage(role="user", content="hi")], CompletionParams())
