"""
Offline rules engine. Always available as the last fallback.
"""

from typing import Optional

from .base import RISK_CAUTION, RISK_DANGER, RISK_SAFE, AnalysisResult, SafetyProvider, SafetySnapshot

LOW_BATTERY_PERCENT = 20


class RulesProvider(SafetyProvider):

    @property
    def name(self) -> str:
        return "rules"

    def summarize(self, snapshot: SafetySnapshot) -> Optional[AnalysisResult]:
        risk = RISK_SAFE
        message = "System running normally. All sensors look fine."
        recommendation = "Keep monitoring periodically."

        if not snapshot.beacon_connected:
            risk = RISK_CAUTION
            message = "Warning: bracelet connection is unstable."
            recommendation = "Check the Bluetooth link and make sure the child is in range."

        battery = snapshot.phone_battery
        if battery is not None and 0 < battery < LOW_BATTERY_PERCENT:
            risk = RISK_CAUTION
            message += " Child's phone battery is low."
            recommendation = "Contact the child to charge the phone soon."

        # an active alarm overrides everything else
        if snapshot.buzzer_on:
            risk = RISK_DANGER
            message = "EMERGENCY ALARM ACTIVE! The child may be in danger."
            recommendation = "Check the child's location right away or call someone nearby."

        return AnalysisResult(message=message, recommendation=recommendation, risk_level=risk, provider=self.name)
