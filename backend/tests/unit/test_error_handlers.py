"""Unit tests for the shared error payloads."""

from backend.src.api.middleware.error_handlers import chat_error_body, error_body
from backend.src.services.errors import (
    InvalidMessageError,
    ProviderError,
    SessionNotFoundError,
    UnknownToolError,
)


class TestErrorBody:
    def test_minimal_body(self) -> None:
        assert error_body("not_found", "Missing") == {
            "success": False,
            "error": "Missing",
            "code": "not_found",
        }

    def test_detail_is_included_when_present(self) -> None:
        body = error_body("validation_error", "Bad", {"field": "message"})

        assert body["detail"] == {"field": "message"}


class TestChatErrorBody:
    def test_provider_error_hides_vendor_message(self) -> None:
        exc = ProviderError("groq API error: 429 rate limited", http_status=429, provider="groq")

        body = chat_error_body(exc)

        assert body["code"] == "provider_error"
        assert body["error"] == ProviderError.user_message
        assert body["detail"]["reason"] == "groq API error: 429 rate limited"
        assert body["detail"]["http_status"] == 429
        assert body["detail"]["provider"] == "groq"

    def test_session_not_found(self) -> None:
        exc = SessionNotFoundError("s-1")

        assert exc.status_code == 404
        assert chat_error_body(exc) == {
            "success": False,
            "error": "Chat session not found: s-1",
            "code": "not_found",
            "detail": {"session_id": "s-1"},
        }

    def test_invalid_message_is_422(self) -> None:
        exc = InvalidMessageError("tool messages require tool_call_id and name")

        assert exc.status_code == 422
        assert chat_error_body(exc)["code"] == "validation_error"

    def test_unknown_tool_message(self) -> None:
        exc = UnknownToolError("summon_dragon")

        assert exc.message == "unknown tool: summon_dragon"
        assert exc.code == "unknown_tool"
