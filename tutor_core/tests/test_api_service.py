from conftest import FakeAdapter
from tutor_core.api import service
from tutor_core.api.service import HealthMonitor, chat_completion, health_status
from tutor_core.domain.exceptions import AuthenticationError, RateLimitError


def test_chat_completion_provider_shape(make_orchestrator):
    orchestrator = make_orchestrator([FakeAdapter("a", reply="<think>plan</think>Fractions are parts of a whole.")])
    result = chat_completion(
        {"messages": [{"role": "user", "content": "what is a fraction?"}], "temperature": 0.5},
        orchestrator=orchestrator,
    )
    assert result["success"] is True
    assert result["choices"] == [
        {
            "message": {"role": "assistant", "content": "Fractions are parts of a whole."},
            "finish_reason": "stop",
            "index": 0,
        }
    ]
    assert result["source"] == "provider-1"
    assert result["model"] == "a-model"
    assert result["reasoning"] == "plan"
    assert result["usage"]["total_tokens"] == result["usage"]["prompt_tokens"] + result["usage"]["completion_tokens"]


def test_shape_is_stable_for_fallback_and_moderation(make_orchestrator):
    orchestrator = make_orchestrator([FakeAdapter("a", error=RateLimitError("RATE_LIMIT", "slow down"))])
    fallback = chat_completion({"messages": [{"role": "user", "content": "hello"}]}, orchestrator=orchestrator)
    blocked = chat_completion({"messages": [{"role": "user", "content": "you are a bitch"}]}, orchestrator=orchestrator)
    for result, source in ((fallback, "fallback"), (blocked, "moderation")):
        assert result["success"] is True
        assert result["source"] == source
        assert set(result) == {"success", "choices", "model", "source", "usage"}
        assert result["choices"][0]["message"]["content"]
    assert fallback["model"] == "local-fallback"


def test_invalid_payload_is_rejected(make_orchestrator):
    adapter = FakeAdapter("a")
    orchestrator = make_orchestrator([adapter])
    for payload in ({}, {"messages": []}, {"messages": [{"role": "robot", "content": "x"}]}, {"messages": "hi"}):
        result = chat_completion(payload, orchestrator=orchestrator)
        assert result["success"] is False
        assert result["details"]["http_status"] == 400
        assert result["details"]["code"] == "INVALID_REQUEST"
    assert adapter.calls == 0


def test_business_errors_become_error_payloads(make_orchestrator):
    orchestrator = make_orchestrator([FakeAdapter("a")])
    result = chat_completion(
        {"messages": [{"role": "user", "content": "<script>alert(1)</script>"}]}, orchestrator=orchestrator
    )
    assert result == {
        "success": False,
        "error": "message contains disallowed markup",
        "details": {"code": "UNSAFE_CONTENT", "http_status": 400},
    }

    exhausted = make_orchestrator([FakeAdapter("a", error=RateLimitError("RATE_LIMIT", "slow"))], fallback_enabled=False)
    result = chat_completion({"messages": [{"role": "user", "content": "explain verbs"}]}, orchestrator=exhausted)
    assert result["success"] is False
    assert result["details"]["code"] == "ALL_PROVIDERS_EXHAUSTED"
    assert result["details"]["http_status"] == 503


def test_health_without_probe_makes_no_calls():
    adapters = [FakeAdapter("groq"), FakeAdapter("huggingface", configured=False)]
    report = health_status(monitor=HealthMonitor(adapters))
    assert report["status"] == "ok"
    assert [p["name"] for p in report["providers"]] == ["groq", "huggingface"]
    assert report["providers"][0] == {
        "name": "groq",
        "model": "groq-model",
        "configured": True,
        "last_probe_ok": None,
        "last_probe_at": None,
        "last_error": None,
    }
    assert all(a.calls == 0 for a in adapters)


def test_health_probe_records_results():
    adapters = [
        FakeAdapter("groq"),
        FakeAdapter("groq-deepseek", error=AuthenticationError("UNAUTHENTICATED", "bad key")),
        FakeAdapter("huggingface", configured=False),
    ]
    monitor = HealthMonitor(adapters)
    report = health_status(probe=True, monitor=monitor)["providers"]
    assert report[0]["last_probe_ok"] is True
    assert report[0]["last_probe_at"]
    assert report[1]["last_probe_ok"] is False
    assert report[1]["last_error"] == "unauthenticated: bad key"
    assert report[2]["last_probe_ok"] is None
    assert adapters[2].calls == 0

    # 不带 probe 再查询时保留上一次探测结果
    again = health_status(monitor=monitor)["providers"]
    assert again[1]["last_error"] == "unauthenticated: bad key"


def test_health_degraded_when_nothing_configured():
    report = health_status(monitor=HealthMonitor([FakeAdapter("groq", configured=False)]))
    assert report["status"] == "degraded"


def test_default_orchestrator_is_singleton(monkeypatch, make_orchestrator):
    built = []

    def fake_build():
        orchestrator = make_orchestrator([FakeAdapter("a")])
        built.append(orchestrator)
        return orchestrator

    monkeypatch.setattr(service, "_orchestrator", None)
    monkeypatch.setattr(service, "_health", None)
    monkeypatch.setattr(service, "build_default_orchestrator", fake_build)
    assert service.get_default_orchestrator() is service.get_default_orchestrator()
    assert len(built) == 1
    assert [p["name"] for p in health_status()["providers"]] == ["a"]


def test_health_check_survives_adapter_crash():
    adapters = [FakeAdapter("groq", error=RuntimeError("socket exploded")), FakeAdapter("huggingface")]
    report = health_status(probe=True, monitor=HealthMonitor(adapters))["providers"]
    assert report[0]["last_probe_ok"] is False
    assert report[0]["last_probe_at"]
    assert report[0]["last_error"] == "malformed_response: socket exploded"
    assert report[1]["last_probe_ok"] is True
