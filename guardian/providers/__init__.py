"""
Safety analysis providers.

Providers are tried in the order given by ``ANALYSIS_PROVIDERS``; the rules
engine is always the last resort.
"""

import logging
from typing import List

from guardian import config
from .analyzer import DailyQuota, SafetyAnalyzer
from .base import AnalysisResult, SafetyProvider, SafetySnapshot
from .claude import ClaudeProvider
from .gemini import GeminiProvider
from .rules import RulesProvider

logger = logging.getLogger(__name__)

# Registry of available providers
PROVIDERS = {
    'claude': ClaudeProvider,
    'gemini': GeminiProvider,
    'rules': RulesProvider,
}


def get_provider(provider_name: str) -> SafetyProvider:
    """
    Factory function to get a provider instance by name.

    Raises:
        ValueError: If provider_name is not recognized or not configured
    """
    provider_name = provider_name.lower()
    if provider_name not in PROVIDERS:
        available = ', '.join(PROVIDERS.keys())
        raise ValueError(f"Unknown provider '{provider_name}'. Available: {available}")

    return PROVIDERS[provider_name]()


def build_providers(names: str = config.ANALYSIS_PROVIDERS) -> List[SafetyProvider]:
    """Instantiate the configured providers, skipping ones without credentials."""
    providers = []
    for name in filter(None, (part.strip() for part in names.split(','))):
        try:
            providers.append(get_provider(name))
        except ValueError as e:
            logger.warning("Skipping analysis provider '%s': %s", name, e)
    return providers


__all__ = [
    'AnalysisResult',
    'DailyQuota',
    'SafetyAnalyzer',
    'SafetyProvider',
    'SafetySnapshot',
    'ClaudeProvider',
    'GeminiProvider',
    'RulesProvider',
    'build_providers',
    'get_provider',
    'PROVIDERS',
]
