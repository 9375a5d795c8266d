"""
Claude (Anthropic) safety analysis provider.
"""

import logging
import os
from typing import Optional

import anthropic

from .base import AnalysisResult, SafetyProvider, SafetySnapshot

logger = logging.getLogger(__name__)


class ClaudeProvider(SafetyProvider):
    """
    Anthropic Claude provider.
    """

    def __init__(self):
        self.api_key = os.environ.get('ANTHROPIC_API_KEY')
        if not self.api_key:
            raise ValueError("ANTHROPIC_API_KEY environment variable is required")
        self.client = anthropic.Anthropic(api_key=self.api_key)
        self.model = os.environ.get('CLAUDE_MODEL', 'claude-sonnet-4-20250514')

    @property
    def name(self) -> str:
        return "claude"

    def summarize(self, snapshot: SafetySnapshot) -> Optional[AnalysisResult]:
        try:
            response = self.client.messages.create(
                model=self.model,
                max_tokens=512,
                system="You are a helpful safety assistant. Respond in JSON.",
                messages=[{"role": "user", "content": self.get_analysis_prompt(snapshot)}]
            )

            response_text = response.content[0].text
            logger.info(
                "Claude usage: %d input, %d output tokens",
                response.usage.input_tokens,
                response.usage.output_tokens,
            )
            return self.create_result_from_json(self.parse_json_response(response_text))

        except (anthropic.APIError, ValueError, IndexError) as e:
            logger.warning("Claude analysis failed: %s", e)
            return None
