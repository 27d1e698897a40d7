"""Tests for LLMClient provider abstraction."""

import pytest
from relay.common.llm_client import LLMClient


class TestLLMClientInit:
    def test_missing_google_key_logs_info(self, caplog):
        import logging
        with caplog.at_level(logging.INFO, logger="relay.common.llm_client"):
            client = LLMClient(provider="google")
        assert not client.is_available
        assert "API key not provided" in caplog.text

    def test_missing_anthropic_key(self):
        assert not LLMClient(provider="anthropic").is_available

    def test_unsupported_provider_logs_warning(self, caplog):
        import logging
        with caplog.at_level(logging.WARNING, logger="relay.common.llm_client"):
            client = LLMClient(provider="unsupported_xyz")
        assert not client.is_available
        assert "Unsupported" in caplog.text


class TestLLMClientGenerate:
    def test_generate_raises_when_unavailable(self):
        with pytest.raises(RuntimeError, match="not available"):
            LLMClient(provider="google").generate("test", model="gemini-2.0-flash")

    def test_per_call_model_override(self):
        from unittest.mock import MagicMock

        client = LLMClient(provider="google")
        genai = MagicMock()
        genai.GenerativeModel.return_value.generate_content.return_value.text = " [] "
        client._client = genai
        client._google_models = {}

        assert client.generate("p", model="gemini-a") == "[]"
        client.generate("p", model="gemini-b")
        client.generate("p", model="gemini-a")

        names = [c.kwargs["model_name"] for c in genai.GenerativeModel.call_args_list]
        assert names == ["gemini-a", "gemini-b"]

    def test_no_model_raises(self):
        from unittest.mock import MagicMock

        client = LLMClient(provider="google")
        client._client = MagicMock()
        client._google_models = {}
        with pytest.raises(ValueError, match="No model"):
            client.generate("p")

    def test_provider_errors_propagate(self):
        from unittest.mock import MagicMock

        client = LLMClient(provider="google")
        genai = MagicMock()
        genai.GenerativeModel.return_value.generate_content.side_effect = Exception("429 quota exceeded")
        client._client = genai
        client._google_models = {}
        with pytest.raises(Exception, match="quota"):
            client.generate("p", model="gemini-a")
