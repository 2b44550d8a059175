from typing import Optional

from config.models import ModelConfig
from core.contracts.provider import LLMProvider
from core.registry import provider_registry
from utils.errors import ProviderError

# Importing the providers registers them.
from core.llm.providers import echo, github_models, openai  # noqa: F401


def get_provider(config: ModelConfig, api_key: Optional[str] = None) -> LLMProvider:
    """
    Factory function to get an LLM provider instance based on the config.

    Args:
        config: The model configuration.
        api_key: A token that takes precedence over the configured key.

    Raises:
        ProviderError: If the provider is not found or fails to be created.
    """
    try:
        return provider_registry.create(config.provider, config=config, api_key=api_key)
    except KeyError:
        available = list(provider_registry.keys())
        raise ProviderError(
            f"Unknown provider '{config.provider}'. "
            f"Available providers: {available}"
        )
    except ProviderError:
        raise
    except Exception as e:
        raise ProviderError(f"Failed to create provider '{config.provider}': {e}") from e
