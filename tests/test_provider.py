import json

import httpx
import pytest

from config.models import ModelConfig
from core.llm.prompts import build_messages
from core.llm.providers.chat_completions import extract_markdown
from core.llm.providers.echo import EchoProvider
from core.llm.providers.github_models import GitHubModelsProvider
from core.llm.providers.openai import OpenAIProvider
from core.llm.router import get_provider
from core.stream.aggregator import StreamAggregator
from utils.errors import ProviderError

MESSAGES = build_messages("Say hi")


@pytest.fixture
def openai_config():
    return ModelConfig(
        provider="openai",
        name="gpt-4o-mini",
        api_key="test_api_key"
    )


def use_transport(provider, handler):
    """Swaps the provider's client for one backed by `handler`."""
    provider._client = httpx.AsyncClient(
        base_url=provider.base_url(),
        headers=provider._client.headers,
        transport=httpx.MockTransport(handler),
    )


def test_get_provider_openai(openai_config):
    """Tests that the router returns an OpenAIProvider instance."""
    provider = get_provider(openai_config)
    assert isinstance(provider, OpenAIProvider)


def test_get_provider_github_uses_token():
    """The GitHub token passed by the caller is used as the API key."""
    provider = get_provider(ModelConfig(provider="github"), api_key="ghp_token")
    assert isinstance(provider, GitHubModelsProvider)
    assert provider._client.headers["Authorization"] == "Bearer ghp_token"


def test_get_provider_unknown():
    """Tests that the router raises an error for an unknown provider."""
    config = ModelConfig(provider="unknown")
    with pytest.raises(ProviderError, match="Unknown provider 'unknown'"):
        get_provider(config)


def test_openai_provider_init_no_api_key(mocker):
    """Tests that the provider raises an error if no API key is provided."""
    mocker.patch("os.getenv", return_value=None)
    config = ModelConfig(provider="openai", api_key=None)
    with pytest.raises(ProviderError, match="OpenAI API key not found"):
        OpenAIProvider(config)


def test_github_provider_reads_env_token(monkeypatch):
    monkeypatch.setenv("GITHUB_TOKEN", "env_token")
    provider = GitHubModelsProvider(ModelConfig(provider="github"))
    assert provider._client.headers["Authorization"] == "Bearer env_token"


def test_github_provider_base_urls():
    assert GitHubModelsProvider(ModelConfig(), api_key="t").base_url() == "https://models.github.ai/inference"
    assert (
        GitHubModelsProvider(ModelConfig(org="acme"), api_key="t").base_url()
        == "https://models.github.ai/orgs/acme/inference"
    )
    assert (
        GitHubModelsProvider(ModelConfig(base_url="http://localhost:8080/"), api_key="t").base_url()
        == "http://localhost:8080"
    )


def test_extract_markdown_shapes():
    assert extract_markdown({"choices": [{"message": {"content": "# Hi"}}]}) == "# Hi"
    assert extract_markdown({"choices": [{"message": {"content": ["a", {"text": "b"}]}}]}) == "a\nb"
    assert extract_markdown({"choices": []}) is None
    assert extract_markdown("nope") is None


@pytest.mark.asyncio
async def test_openai_provider_generate_non_stream(openai_config, mocker):
    """Tests the non-streaming generate method."""
    mock_response = mocker.MagicMock(spec=httpx.Response)
    mock_response.status_code = 200
    mock_response.json.return_value = {
        "choices": [{"message": {"content": "Hello, world!"}}]
    }

    mock_post = mocker.patch("httpx.AsyncClient.post", return_value=mock_response)

    provider = OpenAIProvider(openai_config)
    result = await provider.generate(MESSAGES)

    assert result == "Hello, world!"
    mock_post.assert_called_once()
    call_args = mock_post.call_args[1]['json']
    assert call_args['model'] == "gpt-4o-mini"
    assert call_args['stream'] is False
    assert call_args['temperature'] == 0.2
    assert call_args['top_p'] == 1.0
    assert call_args['messages'] == MESSAGES


@pytest.mark.asyncio
async def test_generate_empty_response(openai_config, mocker):
    mock_response = mocker.MagicMock(spec=httpx.Response)
    mock_response.json.return_value = {"choices": [{"message": {"content": ""}}]}
    mocker.patch("httpx.AsyncClient.post", return_value=mock_response)

    provider = OpenAIProvider(openai_config)
    with pytest.raises(ProviderError, match="Empty model response") as exc_info:
        await provider.generate(MESSAGES)
    assert exc_info.value.status_code == 502


@pytest.mark.asyncio
async def test_openai_provider_http_error(openai_config, mocker):
    """Tests that a ProviderError is raised on HTTP status errors."""
    mock_response = mocker.MagicMock(spec=httpx.Response)
    mock_response.status_code = 401
    mock_response.content = b'{"error": {"message": "Invalid API key"}}'

    http_error = httpx.HTTPStatusError(
        "Unauthorized", request=mocker.MagicMock(), response=mock_response
    )
    mocker.patch("httpx.AsyncClient.post", side_effect=http_error)

    provider = OpenAIProvider(openai_config)
    with pytest.raises(ProviderError, match="OpenAI API error \\(401\\): Invalid API key") as exc_info:
        await provider.generate(MESSAGES)
    assert exc_info.value.status_code == 401


@pytest.mark.asyncio
async def test_openai_provider_timeout_error(openai_config, mocker):
    """Tests that a ProviderError is raised on timeout."""
    mocker.patch("httpx.AsyncClient.post", side_effect=httpx.TimeoutException("Timeout!"))

    provider = OpenAIProvider(openai_config)
    with pytest.raises(ProviderError, match="Request to OpenAI timed out: Timeout!"):
        await provider.generate(MESSAGES)


@pytest.mark.asyncio
async def test_stream_yields_raw_body(openai_config):
    """The stream is handed over as raw bytes for the aggregator to decode."""
    body = (
        b'data: {"choices": [{"delta": {"content": "Hello"}}]}\n\n'
        b'data: {"choices": [{"delta": {"content": ", world!"}}]}\n\n'
        b'data: [DONE]\n\n'
    )
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["payload"] = json.loads(request.content)
        seen["auth"] = request.headers["Authorization"]
        return httpx.Response(200, content=body)

    provider = OpenAIProvider(openai_config)
    use_transport(provider, handler)

    chunks = [chunk async for chunk in provider.stream(MESSAGES)]

    assert b"".join(chunks) == body
    assert seen["url"] == "https://api.openai.com/v1/chat/completions"
    assert seen["payload"]["stream"] is True
    assert seen["auth"] == "Bearer test_api_key"


@pytest.mark.asyncio
async def test_stream_http_error_carries_status(openai_config):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(429, json={"error": {"message": "slow down"}})

    provider = OpenAIProvider(openai_config)
    use_transport(provider, handler)

    with pytest.raises(ProviderError, match="slow down") as exc_info:
        async for _ in provider.stream(MESSAGES):
            pass
    assert exc_info.value.status_code == 429


@pytest.mark.asyncio
async def test_stream_timeout(openai_config):
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectTimeout("too slow", request=request)

    provider = OpenAIProvider(openai_config)
    use_transport(provider, handler)

    with pytest.raises(ProviderError, match="timed out") as exc_info:
        async for _ in provider.stream(MESSAGES):
            pass
    assert exc_info.value.status_code is None


@pytest.mark.asyncio
async def test_echo_provider_streams_sse():
    provider = EchoProvider(ModelConfig(provider="echo"), delay=0)
    aggregator = StreamAggregator()

    async for chunk in provider.stream(build_messages("hello there")):
        aggregator.feed(chunk)
    aggregator.close()

    assert aggregator.text == "hello there "
    assert await provider.generate(build_messages("plain")) == "plain"
