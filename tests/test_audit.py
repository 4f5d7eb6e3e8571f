"""Tests for the tool call audit log."""

import json
import threading

from toolhost.audit import REDACTED, AuditLogger, sanitize_arguments


def read_lines(path):
    return [json.loads(line) for line in path.read_text().splitlines()]


class TestSanitizeArguments:
    """Tests for redaction of sensitive values."""

    def test_redacts_sensitive_keys(self):
        """Should redact values under sensitive-looking keys."""
        result = sanitize_arguments(
            {"query": "x", "password": "p", "GITHUB_TOKEN": "t", "api-key": "k"}
        )

        assert result == {
            "query": "x",
            "password": REDACTED,
            "GITHUB_TOKEN": REDACTED,
            "api-key": REDACTED,
        }

    def test_redacts_nested_values(self):
        """Should descend into nested objects and lists."""
        result = sanitize_arguments({"items": [{"secret": "s", "name": "n"}], "auth": {"a": 1}})

        assert result == {"items": [{"secret": REDACTED, "name": "n"}], "auth": REDACTED}

    def test_leaves_scalars_alone(self):
        """Should return non-container values unchanged."""
        assert sanitize_arguments("plain") == "plain"
        assert sanitize_arguments(None) is None

    def test_does_not_mutate_input(self):
        """Should return a copy."""
        arguments = {"token": "t"}

        sanitize_arguments(arguments)

        assert arguments == {"token": "t"}


class TestAuditLogger:
    """Tests for the JSON Lines audit logger."""

    def test_creates_log_directory(self, tmp_path):
        """Should create the parent directory of the log file."""
        path = tmp_path / "nested" / "dir" / "audit.jsonl"

        with AuditLogger(path):
            pass

        assert path.parent.is_dir()

    def test_writes_request_and_response(self, tmp_path):
        """Should write correlated request and response records."""
        path = tmp_path / "audit.jsonl"

        with AuditLogger(path) as audit:
            audit.log_request("r1", "org", {"name": "x", "token": "t"}, session_id="s", user_id="u")
            audit.log_response("r1", "org", "error", 12.3456, error_code="validation")

        request, response = read_lines(path)
        assert request["type"] == "request"
        assert request["request_id"] == "r1"
        assert request["session_id"] == "s"
        assert request["user_id"] == "u"
        assert request["arguments"] == {"name": "x", "token": REDACTED}
        assert request["timestamp"].endswith("Z")
        assert response["type"] == "response"
        assert response["request_id"] == "r1"
        assert response["result_status"] == "error"
        assert response["execution_time_ms"] == 12.346
        assert response["error_code"] == "validation"

    def test_omits_absent_error_code(self, tmp_path):
        """Should leave error_code out of successful responses."""
        path = tmp_path / "audit.jsonl"

        with AuditLogger(path) as audit:
            audit.log_response("r1", "org", "success", 1.0)

        assert "error_code" not in read_lines(path)[0]

    def test_writes_plugin_events(self, tmp_path):
        """Should record plugin lifecycle events."""
        path = tmp_path / "audit.jsonl"

        with AuditLogger(path) as audit:
            audit.log_plugin_event("rejected", {"directory": "/p", "reason": "bad cookie"})

        event = read_lines(path)[0]
        assert event["type"] == "plugin"
        assert event["event_type"] == "rejected"
        assert event["details"]["reason"] == "bad cookie"

    def test_appends_to_existing_log(self, tmp_path):
        """Should append rather than truncate."""
        path = tmp_path / "audit.jsonl"
        with AuditLogger(path) as audit:
            audit.log_response("r1", "a", "success", 1.0)
        with AuditLogger(path) as audit:
            audit.log_response("r2", "b", "success", 1.0)

        assert [e["request_id"] for e in read_lines(path)] == ["r1", "r2"]

    def test_ignores_writes_after_close(self, tmp_path):
        """Should drop records once closed instead of raising."""
        path = tmp_path / "audit.jsonl"
        audit = AuditLogger(path)
        audit.close()

        audit.log_response("r1", "a", "success", 1.0)
        audit.close()

        assert path.read_text() == ""

    def test_concurrent_writes_stay_line_delimited(self, tmp_path):
        """Should never interleave records from concurrent writers."""
        path = tmp_path / "audit.jsonl"

        with AuditLogger(path) as audit:

            def worker(n):
                for i in range(50):
                    audit.log_request(f"{n}-{i}", "org", {"i": i})

            threads = [threading.Thread(target=worker, args=(n,)) for n in range(4)]
            for t in threads:
                t.start()
            for t in threads:
                t.join()

        assert len(read_lines(path)) == 200
