"""Tests for LLM provider registry, OpenAI-compatible backends and failover."""

from unittest.mock import MagicMock, patch

import httpx
import pytest

from harvester.core.config import LLMConfig
from harvester.core.errors import FetchTimeoutError, NetworkError, RateLimitError, StrategyUnavailableError
from harvester.llm import FailoverLLMClient, available_providers, get_provider, strip_code_fences
from harvester.llm.base import LLMProvider


class FakeRateLimitError(Exception):
    pass


class FakeConnectionError(Exception):
    pass


class FakeTimeoutError(FakeConnectionError):
    pass


class FakeStatusError(Exception):
    def __init__(self, message: str, status_code: int) -> None:
        super().__init__(message)
        self.status_code = status_code


def _mock_openai(content: str = '{"jobs": []}', error: Exception | None = None) -> MagicMock:
    mock_openai = MagicMock()
    mock_openai.RateLimitError = FakeRateLimitError
    mock_openai.APITimeoutError = FakeTimeoutError
    mock_openai.APIConnectionError = FakeConnectionError
    mock_openai.APIStatusError = FakeStatusError
    create = mock_openai.OpenAI.return_value.chat.completions.create
    if error is not None:
        create.side_effect = error
    else:
        create.return_value.choices = [MagicMock(message=MagicMock(content=content))]
    return mock_openai


def _provider(provider_id: str, *, configured: bool = True, reachable: bool = True) -> MagicMock:
    provider = MagicMock(spec=LLMProvider)
    provider.provider_id = provider_id
    provider.is_configured.return_value = configured
    provider.is_reachable.return_value = reachable
    return provider


# ---------------------------------------------------------------------------
# Registry tests
# ---------------------------------------------------------------------------
class TestProviderRegistry:
    @pytest.mark.parametrize("name", ["groq", "openai", "ollama"])
    def test_get_provider(self, name: str) -> None:
        provider = get_provider(name)
        assert isinstance(provider, LLMProvider)
        assert provider.provider_id == name

    def test_unknown_provider_raises(self) -> None:
        with pytest.raises(ValueError, match="Unknown LLM provider 'nope'"):
            get_provider("nope")

    def test_available_providers_sorted(self) -> None:
        assert available_providers() == ["groq", "ollama", "openai"]


# ---------------------------------------------------------------------------
# Provider tests
# ---------------------------------------------------------------------------
class TestGroqProvider:
    def test_provider_id(self) -> None:
        provider = get_provider("groq")
        assert provider.default_model == "llama-3.3-70b-versatile"
        assert provider.env_var == "GROQ_API_KEY"
        assert provider.base_url == "https://api.groq.com/openai/v1"  # type: ignore[attr-defined]

    def test_is_configured(self) -> None:
        provider = get_provider("groq")
        with patch.dict("os.environ", {}, clear=True):
            assert provider.is_configured() is False
            assert provider.is_reachable() is False
        with patch.dict("os.environ", {"GROQ_API_KEY": "gsk-test"}):
            assert provider.is_configured() is True

    def test_missing_api_key(self) -> None:
        provider = get_provider("groq")
        with (
            patch.dict("os.environ", {}, clear=True),
            pytest.raises(StrategyUnavailableError, match="GROQ_API_KEY"),
        ):
            provider.complete("html")

    def test_complete_json_mode(self) -> None:
        provider = get_provider("groq")
        mock_openai = _mock_openai('{"jobs": [{"title": "Engineer"}]}')
        with (
            patch.dict("os.environ", {"GROQ_API_KEY": "gsk-test"}),
            patch.dict("sys.modules", {"openai": mock_openai}),
        ):
            result = provider.complete("html", system="extract jobs", json_mode=True, max_tokens=1000)

        assert result == '{"jobs": [{"title": "Engineer"}]}'
        mock_openai.OpenAI.assert_called_once_with(
            api_key="gsk-test", base_url="https://api.groq.com/openai/v1", timeout=60.0, max_retries=0,
        )
        kwargs = mock_openai.OpenAI.return_value.chat.completions.create.call_args.kwargs
        assert kwargs["model"] == "llama-3.3-70b-versatile"
        assert kwargs["response_format"] == {"type": "json_object"}
        assert kwargs["max_tokens"] == 1000
        assert kwargs["messages"][0] == {"role": "system", "content": "extract jobs"}
        assert kwargs["messages"][1] == {"role": "user", "content": "html"}

    def test_model_override_without_json_mode(self) -> None:
        provider = get_provider("groq")
        mock_openai = _mock_openai("plain")
        with (
            patch.dict("os.environ", {"GROQ_API_KEY": "gsk-test"}),
            patch.dict("sys.modules", {"openai": mock_openai}),
        ):
            provider.complete("html", "llama-3.1-8b-instant")

        kwargs = mock_openai.OpenAI.return_value.chat.completions.create.call_args.kwargs
        assert kwargs["model"] == "llama-3.1-8b-instant"
        assert "response_format" not in kwargs
        assert len(kwargs["messages"]) == 1

    def test_rate_limit_mapped(self) -> None:
        provider = get_provider("groq")
        mock_openai = _mock_openai(error=FakeRateLimitError("429 Too Many Requests"))
        with (
            patch.dict("os.environ", {"GROQ_API_KEY": "gsk-test"}),
            patch.dict("sys.modules", {"openai": mock_openai}),
            pytest.raises(RateLimitError) as exc_info,
        ):
            provider.complete("html")
        assert exc_info.value.provider == "groq"

    def test_timeout_passed_to_client(self) -> None:
        provider = get_provider("groq")
        mock_openai = _mock_openai()
        with (
            patch.dict("os.environ", {"GROQ_API_KEY": "gsk-test"}),
            patch.dict("sys.modules", {"openai": mock_openai}),
        ):
            provider.complete("html", timeout=12.5)
        assert mock_openai.OpenAI.call_args.kwargs["timeout"] == 12.5

    def test_timeout_mapped(self) -> None:
        provider = get_provider("groq")
        mock_openai = _mock_openai(error=FakeTimeoutError("Request timed out."))
        with (
            patch.dict("os.environ", {"GROQ_API_KEY": "gsk-test"}),
            patch.dict("sys.modules", {"openai": mock_openai}),
            pytest.raises(FetchTimeoutError, match="did not answer within 5s"),
        ):
            provider.complete("html", timeout=5.0)

    def test_connection_error_mapped(self) -> None:
        provider = get_provider("groq")
        mock_openai = _mock_openai(error=FakeConnectionError("connection refused"))
        with (
            patch.dict("os.environ", {"GROQ_API_KEY": "gsk-test"}),
            patch.dict("sys.modules", {"openai": mock_openai}),
            pytest.raises(NetworkError, match="unreachable"),
        ):
            provider.complete("html")

    def test_status_error_mapped(self) -> None:
        provider = get_provider("groq")
        mock_openai = _mock_openai(error=FakeStatusError("bad gateway", 502))
        with (
            patch.dict("os.environ", {"GROQ_API_KEY": "gsk-test"}),
            patch.dict("sys.modules", {"openai": mock_openai}),
            pytest.raises(NetworkError) as exc_info,
        ):
            provider.complete("html")
        assert exc_info.value.status_code == 502

    def test_missing_sdk(self) -> None:
        provider = get_provider("groq")
        with (
            patch.dict("os.environ", {"GROQ_API_KEY": "gsk-test"}),
            patch.dict("sys.modules", {"openai": None}),
            pytest.raises(ImportError, match="openai is required"),
        ):
            provider.complete("html")


class TestOpenAIProvider:
    def test_provider_id(self) -> None:
        provider = get_provider("openai")
        assert provider.default_model == "gpt-4o-mini"
        assert provider.env_var == "OPENAI_API_KEY"

    def test_default_base_url(self) -> None:
        provider = get_provider("openai")
        mock_openai = _mock_openai()
        with (
            patch.dict("os.environ", {"OPENAI_API_KEY": "sk-test"}),
            patch.dict("sys.modules", {"openai": mock_openai}),
        ):
            provider.complete("html")
        mock_openai.OpenAI.assert_called_once_with(
            api_key="sk-test", base_url=None, timeout=60.0, max_retries=0,
        )


class TestOllamaProvider:
    def test_provider_id(self) -> None:
        provider = get_provider("ollama")
        assert provider.default_model == "llama3.1"
        assert provider.env_var is None
        assert provider.is_configured() is True

    def test_base_url_from_env(self) -> None:
        provider = get_provider("ollama")
        with patch.dict("os.environ", {"OLLAMA_BASE_URL": "http://gpu-box:11434/v1/"}):
            assert provider.base_url == "http://gpu-box:11434/v1"  # type: ignore[attr-defined]
        with patch.dict("os.environ", {}, clear=True):
            assert provider.base_url == "http://localhost:11434/v1"  # type: ignore[attr-defined]

    def test_keyless_complete(self) -> None:
        provider = get_provider("ollama")
        mock_openai = _mock_openai()
        with (
            patch.dict("os.environ", {}, clear=True),
            patch.dict("sys.modules", {"openai": mock_openai}),
        ):
            provider.complete("html")
        mock_openai.OpenAI.assert_called_once_with(
            api_key="ollama", base_url="http://localhost:11434/v1", timeout=60.0, max_retries=0,
        )

    def test_reachable(self) -> None:
        provider = get_provider("ollama")
        with patch("harvester.llm.ollama.httpx.get", return_value=httpx.Response(200)) as mock_get:
            assert provider.is_reachable() is True
        assert mock_get.call_args.args[0].endswith("/models")

    def test_unreachable(self) -> None:
        provider = get_provider("ollama")
        with patch("harvester.llm.ollama.httpx.get", side_effect=httpx.ConnectError("refused")):
            assert provider.is_reachable() is False


def test_strip_code_fences() -> None:
    assert strip_code_fences('```json\n{"jobs": []}\n```') == '{"jobs": []}'
    assert strip_code_fences('{"jobs": []}') == '{"jobs": []}'


# ---------------------------------------------------------------------------
# Failover
# ---------------------------------------------------------------------------
class TestFailoverLLMClient:
    def test_preferred_used(self) -> None:
        preferred, alternate = _provider("groq"), _provider("ollama")
        preferred.complete.return_value = "ok"
        client = FailoverLLMClient(preferred, alternate, model="m1")

        assert client.complete("p", system="s", json_mode=True) == "ok"
        preferred.complete.assert_called_once_with(
            "p", "m1", system="s", json_mode=True, temperature=0.1, max_tokens=4000, timeout=60.0,
        )
        alternate.complete.assert_not_called()

    def test_timeout_from_config(self) -> None:
        with patch("harvester.llm.get_provider", side_effect=lambda name: _provider(name)):
            client = FailoverLLMClient.from_config(LLMConfig(timeout_s=25.0))
        client.preferred.complete.return_value = "ok"  # type: ignore[attr-defined]

        client.complete("p")
        assert client.preferred.complete.call_args.kwargs["timeout"] == 25.0  # type: ignore[attr-defined]

    def test_fails_over_on_rate_limit(self) -> None:
        preferred, alternate = _provider("groq"), _provider("ollama")
        preferred.complete.side_effect = RateLimitError("429", provider="groq")
        alternate.complete.return_value = "from ollama"
        client = FailoverLLMClient(preferred, alternate, alternate_model="llama3.1:8b")

        assert client.complete("p") == "from ollama"
        assert alternate.complete.call_args.args == ("p", "llama3.1:8b")

    def test_no_failover_on_other_errors(self) -> None:
        preferred, alternate = _provider("groq"), _provider("ollama")
        preferred.complete.side_effect = NetworkError("groq", "unreachable")
        client = FailoverLLMClient(preferred, alternate)

        with pytest.raises(NetworkError):
            client.complete("p")
        alternate.complete.assert_not_called()

    def test_unreachable_alternate_reraises(self) -> None:
        preferred, alternate = _provider("groq"), _provider("ollama", reachable=False)
        preferred.complete.side_effect = RateLimitError("429", provider="groq")
        client = FailoverLLMClient(preferred, alternate)

        with pytest.raises(RateLimitError):
            client.complete("p")
        alternate.complete.assert_not_called()

    def test_no_alternate_reraises(self) -> None:
        preferred = _provider("groq")
        preferred.complete.side_effect = RateLimitError("429", provider="groq")
        with pytest.raises(RateLimitError):
            FailoverLLMClient(preferred).complete("p")

    def test_is_available_follows_preferred(self) -> None:
        assert FailoverLLMClient(_provider("groq", configured=False)).is_available() is False
        assert FailoverLLMClient(_provider("groq")).is_available() is True

    def test_from_config(self) -> None:
        client = FailoverLLMClient.from_config(LLMConfig(preferred="openai", alternate=None))
        assert client.preferred.provider_id == "openai"
        assert client.alternate is None
