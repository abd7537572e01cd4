"""Tests for operation context and log processors."""

from courseflow.core.context import (
    OperationContext,
    clear_context,
    get_context,
    get_mutation_id,
)
from courseflow.core.logging import add_context_processor, filter_sensitive_data


class TestOperationContext:
    """Tests for contextvar binding."""

    def setup_method(self):
        clear_context()

    def test_binds_and_restores(self):
        with OperationContext(user_id="user-1", course_id="course-1") as ctx:
            context = get_context()
            assert context["user_id"] == "user-1"
            assert context["course_id"] == "course-1"
            assert context["mutation_id"] == ctx.mutation_id
            assert "video_id" not in context

        assert get_context() == {}

    def test_nested_contexts(self):
        with OperationContext(mutation_id="outer", course_id="course-1"):
            with OperationContext(mutation_id="inner", video_id="video-1"):
                assert get_context() == {
                    "mutation_id": "inner",
                    "course_id": "course-1",
                    "video_id": "video-1",
                }
            assert get_mutation_id() == "outer"
            assert "video_id" not in get_context()


class TestProcessors:
    """Tests for structlog processors."""

    def setup_method(self):
        clear_context()

    def test_context_added_to_events(self):
        with OperationContext(mutation_id="m-1", user_id="user-1"):
            event = add_context_processor(None, "info", {"event": "checkpoint_saved"})

        assert event == {
            "event": "checkpoint_saved",
            "mutation_id": "m-1",
            "user_id": "user-1",
        }

    def test_credential_is_masked(self):
        event = filter_sensitive_data(
            None,
            "info",
            {
                "event": "remote_call",
                "credential": "secret-token",
                "headers": {"Authorization": "Bearer abc.def"},
                "api_key": "abc",
                "video_id": "video-1",
            },
        )

        assert event["credential"] == "se********en"
        assert event["headers"]["Authorization"] == "Be" + "*" * 10 + "ef"
        assert event["api_key"] == "***"
        assert event["video_id"] == "video-1"

    def test_bearer_credential_in_free_text_is_masked(self):
        event = filter_sensitive_data(
            None, "warning", {"error": "rejected header Bearer eyJhbGciOi.abc"}
        )

        assert event["error"] == "rejected header Bearer ***"
