from core.llm.providers.chat_completions import ChatCompletionsProvider
from core.registry import provider_registry

GITHUB_MODELS_URL = "https://models.github.ai"


@provider_registry.register("github")
class GitHubModelsProvider(ChatCompletionsProvider):
    """
    GitHub Models inference. Requests are billed to the configured org
    when one is set, otherwise to the token's user.
    """

    display_name = "GitHub Models"
    api_key_env_var = "GITHUB_TOKEN"

    def base_url(self) -> str:
        if self.config.base_url:
            return self.config.base_url.rstrip("/")
        if self.config.org:
            return f"{GITHUB_MODELS_URL}/orgs/{self.config.org}/inference"
        return f"{GITHUB_MODELS_URL}/inference"
