"""
Base classes and interfaces for safety analysis providers.
"""

import json
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Optional

RISK_SAFE = "safe"
RISK_CAUTION = "caution"
RISK_DANGER = "danger"
RISK_QUOTA = "quota"

RISK_LEVELS = (RISK_SAFE, RISK_CAUTION, RISK_DANGER)


@dataclass
class SafetySnapshot:
    """Device state the analysis looks at."""
    beacon_connected: bool = False
    beacon_battery: Optional[int] = None
    buzzer_on: bool = False
    led_on: bool = False
    phone_online: bool = False
    phone_battery: Optional[int] = None
    gps_active: bool = False


@dataclass
class AnalysisResult:
    """Result of a safety analysis."""
    message: str
    recommendation: str
    risk_level: str
    provider: str = "unknown"

    def to_dict(self) -> Dict[str, Any]:
        return {
            'message': self.message,
            'recommendation': self.recommendation,
            'riskLevel': self.risk_level,
            'provider': self.provider,
        }


class SafetyProvider(ABC):
    """
    Abstract base class for safety analysis providers.

    ``summarize`` returns None when the provider could not produce a usable
    answer, so the caller can move on to the next provider.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Return the provider name."""
        pass

    @abstractmethod
    def summarize(self, snapshot: SafetySnapshot) -> Optional[AnalysisResult]:
        pass

    def get_analysis_prompt(self, snapshot: SafetySnapshot) -> str:
        """
        Generate the analysis prompt. Can be overridden by providers.
        """
        def pct(value):
            return f"{value}%" if value is not None else "unknown"

        return f"""Act as "Guardian AI", the safety system of a child tracker.

SENSOR DATA:
- Bracelet: connected={snapshot.beacon_connected}, battery={pct(snapshot.beacon_battery)}, alarm={snapshot.buzzer_on}, light={snapshot.led_on}
- Child phone: online={snapshot.phone_online}, battery={pct(snapshot.phone_battery)}, GPS={"active" if snapshot.gps_active else "off"}

Task: assess the child's safety from the connection and device state.

Respond ONLY with JSON in this exact format:
{{
    "message": "Short safety status",
    "recommendation": "Suggested action for the parent",
    "riskLevel": "safe/caution/danger"
}}"""

    def parse_json_response(self, response_text: str) -> Dict[str, Any]:
        """
        Parse JSON from model response, tolerating text or code fences around it.
        """
        json_start = response_text.find('{')
        json_end = response_text.rfind('}') + 1

        if json_start == -1 or json_end == 0:
            raise ValueError("No JSON found in response")

        return json.loads(response_text[json_start:json_end])

    def create_result_from_json(self, data: Dict[str, Any]) -> Optional[AnalysisResult]:
        """Build a result from parsed JSON, or None if required fields are missing."""
        message = data.get('message')
        recommendation = data.get('recommendation')
        risk_level = str(data.get('riskLevel', '')).strip().lower()

        if not message or not recommendation or risk_level not in RISK_LEVELS:
            return None

        return AnalysisResult(
            message=message,
            recommendation=recommendation,
            risk_level=risk_level,
            provider=self.name,
        )
