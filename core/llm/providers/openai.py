from core.llm.providers.chat_completions import ChatCompletionsProvider
from core.registry import provider_registry


@provider_registry.register("openai")
class OpenAIProvider(ChatCompletionsProvider):
    """
    OpenAI, or any OpenAI-compatible server when `base_url` is set
    (Ollama, vLLM, LiteLLM and the like).
    """

    display_name = "OpenAI"
    api_key_env_var = "OPENAI_API_KEY"
    default_base_url = "https://api.openai.com/v1"
