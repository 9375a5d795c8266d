"""
Google Gemini safety analysis provider.
"""

import logging
import os
from typing import Optional

import google.generativeai as genai
from google.api_core import exceptions as google_exceptions

from .base import AnalysisResult, SafetyProvider, SafetySnapshot

logger = logging.getLogger(__name__)


class GeminiProvider(SafetyProvider):
    """
    Google Gemini provider.
    """

    def __init__(self):
        self.api_key = os.environ.get('GOOGLE_API_KEY')
        if not self.api_key:
            raise ValueError("GOOGLE_API_KEY environment variable is required")

        genai.configure(api_key=self.api_key)

        # Can override with GEMINI_MODEL env var
        model_name = os.environ.get('GEMINI_MODEL', 'gemini-2.0-flash')
        self.model = genai.GenerativeModel(model_name)
        self.model_name = model_name

    @property
    def name(self) -> str:
        return "gemini"

    def summarize(self, snapshot: SafetySnapshot) -> Optional[AnalysisResult]:
        try:
            response = self.model.generate_content(
                self.get_analysis_prompt(snapshot),
                generation_config=genai.GenerationConfig(
                    max_output_tokens=512,
                    temperature=0.1,
                    response_mime_type="application/json",
                )
            )
            return self.create_result_from_json(self.parse_json_response(response.text))

        except (google_exceptions.GoogleAPIError, ValueError) as e:
            logger.warning("Gemini analysis failed: %s", e)
            return None
