"""
Pydantic model for a role's latest position.
"""

from enum import Enum

from pydantic import Field

from .base import WireModel


class LocationProvider(str, Enum):
    GPS = "gps"
    NETWORK = "network"
    MANUAL = "manual"


class LocationRecord(WireModel):
    """Stored at families/{familyId}/{role}Location, overwritten on every fix."""
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)
    accuracy: float = Field(default=0, ge=0, description="Accuracy radius in meters")
    updated_at: int = Field(..., description="Epoch milliseconds")
    provider: LocationProvider = LocationProvider.GPS
