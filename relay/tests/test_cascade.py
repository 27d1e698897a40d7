"""Tests for the model cascade and failure classification."""

import pytest

from relay.suggest.cascade import (
    Attempt,
    CascadeOutcome,
    ModelCascade,
    classify_failure,
)


class FakeApiError(Exception):
    """Stand-in for provider exceptions that carry an HTTP code"""

    def __init__(self, message, code=None):
        super().__init__(message)
        self.code = code


class ScriptedBackend:
    """Backend that raises or answers per model, recording every call"""

    def __init__(self, script):
        self.script = script
        self.calls = []

    def __call__(self, model, prompt):
        self.calls.append(model)
        outcome = self.script[model]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


class TestClassifyFailure:
    @pytest.mark.parametrize("message", [
        "404 models/gemini-9 is not found for API version v1beta",
        "429 Quota exceeded for metric generate_content",
        "Resource has been exhausted (e.g. check quota).",
        "503 The model is overloaded. Please try again later.",
        "The service is currently unavailable.",
    ])
    def test_soft_failures_continue(self, message):
        assert classify_failure(Exception(message)) == Attempt.CONTINUE

    @pytest.mark.parametrize("message", [
        "400 API key not valid. Please pass a valid API key.",
        "403 Permission denied",
        "Unexpected internal error",
    ])
    def test_other_failures_abort(self, message):
        assert classify_failure(Exception(message)) == Attempt.ABORT

    def test_status_code_is_authoritative(self):
        err = FakeApiError("Requested entity was not found: API key", code=401)
        assert classify_failure(err) == Attempt.ABORT

    def test_soft_status_code(self):
        assert classify_failure(FakeApiError("busy", code=429)) == Attempt.CONTINUE


class TestModelCascade:
    def test_falls_through_to_third_model(self):
        backend = ScriptedBackend({
            "m1": Exception("404 model m1 not found"),
            "m2": Exception("429 quota exceeded"),
            "m3": '[{"title": "Do it", "project": "Ops"}]',
        })
        result = ModelCascade(["m1", "m2", "m3"], backend).run("prompt")

        assert result.outcome == CascadeOutcome.SUCCESS
        assert result.model == "m3"
        assert result.attempts == 3
        assert backend.calls == ["m1", "m2", "m3"]

    def test_auth_failure_stops_immediately(self):
        backend = ScriptedBackend({
            "m1": FakeApiError("API key not valid", code=400),
            "m2": "[]",
        })
        result = ModelCascade(["m1", "m2"], backend).run("prompt")

        assert result.outcome == CascadeOutcome.ABORTED
        assert backend.calls == ["m1"]
        assert "API key not valid" in str(result.error)

    def test_all_soft_failures_exhaust(self):
        backend = ScriptedBackend({
            "m1": Exception("quota exceeded"),
            "m2": Exception("model overloaded"),
        })
        result = ModelCascade(["m1", "m2"], backend).run("prompt")

        assert result.outcome == CascadeOutcome.EXHAUSTED
        assert not result.succeeded
        assert result.tried == ["m1", "m2"]

    def test_empty_model_list_rejected(self):
        with pytest.raises(ValueError):
            ModelCascade([], ScriptedBackend({}))
