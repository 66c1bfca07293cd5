"""Backend service operations against the in-process stub backend."""

import httpx
import pytest

from devai_client.core.errors import ClientError, ErrorKind, OperationError
from devai_client.core.models import ChatMessage, Conversation, ServerInfo
from devai_client.core.retry import RetryPolicy
from devai_client.core.transport import TransportClient
from devai_client.services import BackendService, FailurePolicy, generate_conversation_title, operation


def unreachable_service() -> BackendService:
    def refuse(request):
        raise httpx.ConnectError("connection refused", request=request)

    async def no_sleep(_seconds):
        return None

    transport = TransportClient(
        "http://down.test",
        transport=httpx.MockTransport(refuse),
        retry_policy=RetryPolicy(max_attempts=2, base_delay_ms=10),
        sleep=no_sleep,
    )
    return BackendService(transport)


def test_failure_policies_are_declared_per_operation():
    policies = BackendService.failure_policies()
    assert policies["send_chat_message"] is FailurePolicy.PROPAGATE
    assert policies["upload_files"] is FailurePolicy.PROPAGATE
    assert policies["analyze_files"] is FailurePolicy.PROPAGATE
    assert policies["ping"] is FailurePolicy.PROPAGATE
    for name in ("get_conversations", "get_conversation", "get_user_settings",
                 "get_api_status", "get_user_stats", "get_server_info", "is_backend_available"):
        assert policies[name] is FailurePolicy.FALLBACK, name
    for name in ("save_conversation", "update_conversation", "delete_conversation",
                 "save_user_settings", "send_metrics"):
        assert policies[name] is FailurePolicy.SENTINEL, name


# ---------------- Health ----------------

async def test_check_health_ok(service):
    result = await service.check_health()
    assert result.is_healthy is True
    assert result.data == {"status": "ok"}
    assert result.error is None


async def test_check_health_reports_unhealthy_status(service, stub):
    stub.health_status = "degraded"
    result = await service.check_health()
    assert result.is_healthy is False
    assert result.data == {"status": "degraded"}


async def test_check_health_never_raises_when_unreachable():
    async with unreachable_service() as service:
        result = await service.check_health()
        assert result.is_healthy is False
        assert "connection refused" in result.error
        assert await service.is_backend_available() is False


async def test_ping_measures_latency(service, stub):
    latency = await service.ping()
    assert latency >= 0
    assert stub.calls("/ping") == 1


async def test_ping_failure_is_propagated():
    async with unreachable_service() as service:
        with pytest.raises(OperationError) as excinfo:
            await service.ping()
    assert str(excinfo.value).startswith("Ping failed: ")
    assert excinfo.value.kind is ErrorKind.NETWORK_ERROR


async def test_server_info(service):
    info = await service.get_server_info()
    assert info.version == "1.2.3"
    assert info.uptime == 42


async def test_server_info_falls_back(service, stub):
    stub.fail("/info", 500, times=3)
    assert await service.get_server_info() == ServerInfo(version="unknown", status="error", uptime=0)


# ---------------- AI ----------------

async def test_send_chat_message(service, stub):
    result = await service.send_chat_message(
        [ChatMessage(role="user", content="hello"), {"role": "assistant", "content": "hi"}],
        model="gemini-1.5-pro",
        api_key="key-123",
    )
    assert result.success is True
    assert result.content == "echo: hi"
    assert result.model == "gemini-1.5-pro"
    assert result.provider == "gemini"
    assert result.source == "backend"

    sent = stub.last_chat
    assert sent["apiKey"] == "key-123"
    assert sent["options"] == {"maxTokens": 4000, "temperature": 0.7, "timeout": 30000}
    assert sent["messages"][0] == {"role": "user", "content": "hello"}


async def test_chat_unsuccessful_response_is_propagated(service):
    with pytest.raises(OperationError) as excinfo:
        await service.send_chat_message([])
    assert str(excinfo.value) == "Backend AI Error: No messages"


async def test_chat_unauthorized_is_propagated_after_one_call(service, stub):
    stub.fail("/api/ai/chat", 401)
    with pytest.raises(OperationError) as excinfo:
        await service.send_chat_message([{"role": "user", "content": "hi"}])
    assert excinfo.value.kind is ErrorKind.CLIENT_ERROR_4XX
    assert isinstance(excinfo.value.__cause__, ClientError)
    assert stub.calls("/api/ai/chat") == 1


async def test_api_status(service):
    providers = await service.get_api_status()
    assert providers["gemini"] == {"available": True}


async def test_api_status_falls_back_to_empty(service, stub):
    stub.fail("/api/ai/providers/status", 503, times=3)
    assert await service.get_api_status() == {}


async def test_provider_connection_test(service):
    ok = await service.test_provider_connection("gemini")
    assert ok.available is True
    assert ok.latency == 12

    down = await service.test_provider_connection("ollama")
    assert down.available is False
    assert down.error == "Not running"


async def test_provider_connection_test_never_raises():
    async with unreachable_service() as service:
        result = await service.test_provider_connection("groq")
    assert result.available is False
    assert result.latency is None
    assert "connection refused" in result.error


# ---------------- Files ----------------

async def test_upload_recovers_from_transient_error(service, stub):
    stub.fail("/api/files/upload", 500)
    result = await service.upload_files([("main.py", b"print('hi')"), ("README.md", b"# demo")], "demo")

    assert result.success is True
    assert result.project["name"] == "demo"
    assert result.project["files"] == ["main.py", "README.md"]
    assert result.project["uploadedAt"]
    assert stub.calls("/api/files/upload") == 2
    assert stub.sleeps == pytest.approx([0.1])
    assert stub.requests[-1][2].startswith("multipart/form-data")


async def test_upload_exhausted_retries_are_propagated(service, stub):
    stub.fail("/api/files/upload", 503, times=3)
    with pytest.raises(OperationError) as excinfo:
        await service.upload_files([("main.py", b"x")], "demo")

    assert str(excinfo.value) == "Upload Error: injected 503"
    assert excinfo.value.kind is ErrorKind.SERVER_ERROR_5XX
    assert stub.calls("/api/files/upload") == 3


async def test_upload_reads_files_from_disk(service, tmp_path):
    source = tmp_path / "app.js"
    source.write_text("console.log('hi')", encoding="utf-8")
    result = await service.upload_files([source], "from-disk")
    assert result.project["files"] == ["app.js"]


async def test_upload_missing_file_is_propagated(service, tmp_path):
    with pytest.raises(OperationError) as excinfo:
        await service.upload_files([tmp_path / "missing.py"], "demo")
    assert str(excinfo.value).startswith("Upload Error: Cannot read")


async def test_analyze_files(service):
    analysis = await service.analyze_files("p1", {"depth": 2})
    assert analysis == {"projectId": "p1", "options": {"depth": 2}}


async def test_analyze_failure_is_propagated(service, stub):
    stub.fail("/api/files/analyze/p1", 400)
    with pytest.raises(OperationError, match="^Analysis Error: injected 400$"):
        await service.analyze_files("p1")


# ---------------- Conversations ----------------

async def test_conversation_crud(service):
    messages = [{"role": "user", "content": "How do I reverse a list in Python?"}]
    saved = await service.save_conversation(messages, {"tags": ["python"]})
    assert isinstance(saved, Conversation)
    assert saved.id == "1"
    assert saved.title == "How do I reverse a list in Python?"

    listed = await service.get_conversations()
    assert [c.id for c in listed] == ["1"]

    fetched = await service.get_conversation("1")
    assert fetched.messages == messages

    updated = await service.update_conversation("1", {"title": "Reversing lists"})
    assert updated.title == "Reversing lists"

    assert await service.delete_conversation("1") is True
    assert await service.get_conversation("1") is None


async def test_missing_conversation_degrades_without_retry(service, stub):
    assert await service.get_conversation("404") is None
    assert await service.update_conversation("404", {"title": "x"}) is None
    assert await service.delete_conversation("404") is False
    assert stub.calls("/api/conversations/404") == 3
    assert stub.sleeps == []


async def test_reads_fall_back_when_backend_fails(service, stub):
    stub.fail("/api/conversations", 500, times=3)
    assert await service.get_conversations() == []

    stub.fail("/api/settings", 500, times=3)
    assert await service.get_user_settings() == {}

    stub.fail("/api/stats", 500, times=3)
    assert await service.get_user_stats() == {}


async def test_malformed_conversation_is_skipped(service, stub):
    await service.save_conversation([{"role": "user", "content": "kept"}])
    stub.conversations["broken"] = {"title": "no id", "messages": "not a list"}

    listed = await service.get_conversations()
    assert [c.id for c in listed] == ["1"]


async def test_save_conversation_failure_returns_none(service, stub):
    stub.fail("/api/conversations", 500, times=3)
    assert await service.save_conversation([{"role": "user", "content": "hi"}]) is None


# ---------------- Settings & metrics ----------------

async def test_settings_round_trip(service, stub):
    assert await service.get_user_settings() == {"theme": "dark"}
    assert await service.save_user_settings({"theme": "light"}) is True
    assert stub.settings == {"theme": "light"}


async def test_save_settings_failure_returns_false(service, stub):
    stub.fail("/api/settings", 403)
    assert await service.save_user_settings({"theme": "light"}) is False


async def test_metrics_are_fire_and_forget(service, stub):
    assert await service.send_metrics({"event": "open"}) is True
    assert stub.metrics == [{"event": "open"}]

    stub.fail("/api/metrics", 500, times=3)
    assert await service.send_metrics({"event": "close"}) is False


async def test_user_stats(service):
    await service.save_conversation([{"role": "user", "content": "a"}])
    assert await service.get_user_stats() == {"conversations": 1}


# ---------------- Helpers ----------------

def test_generate_conversation_title():
    long_text = "x" * 80
    assert generate_conversation_title([{"role": "user", "content": "Short question"}]) == "Short question"
    assert generate_conversation_title([{"role": "user", "content": long_text}]) == "x" * 50 + "..."
    assert generate_conversation_title([{"role": "assistant", "content": "hi"}]) == "New Conversation"
    assert generate_conversation_title([]) == "New Conversation"
    assert generate_conversation_title([ChatMessage(role="user", content="From a model")]) == "From a model"


def test_propagate_requires_label():
    with pytest.raises(ValueError):
        operation(FailurePolicy.PROPAGATE)


async def test_programming_errors_are_not_swallowed(stub):
    class BrokenService(BackendService):
        @operation(FailurePolicy.FALLBACK, fallback=list)
        async def broken(self):
            raise RuntimeError("bug")

    async with BrokenService(stub.transport_client()) as service:
        with pytest.raises(RuntimeError):
            await service.broken()
