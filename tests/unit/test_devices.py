"""
Unit tests for the notification surfaces and the BLE beacon link.
"""

import json

import httpx
import pytest

from guardian.beacon import ble
from guardian.errors import NotConnected, NotFound, PermissionDenied
from guardian.devices import LogNotifier, WebhookNotifier


@pytest.mark.unit
class TestWebhookNotifier:
    """Test webhook delivery."""

    async def test_posts_payload(self):
        requests = []

        def handler(request):
            requests.append(json.loads(request.content))
            return httpx.Response(204)

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            await WebhookNotifier("http://hooks.test/notify", client=client).notify(
                "SOS!", "Your child needs help", require_interaction=True
            )

        assert requests == [{"title": "SOS!", "body": "Your child needs help", "requireInteraction": True}]

    async def test_failure_is_swallowed(self, caplog):
        async with httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(502))) as client:
            await WebhookNotifier("http://hooks.test/notify", client=client).notify("SOS!", "body")

        assert "Failed to deliver notification" in caplog.text

    async def test_log_notifier(self, caplog):
        with caplog.at_level("INFO"):
            await LogNotifier().notify("Command", "VIBRATE executed")

        assert "VIBRATE executed" in caplog.text


class FakeScanner:
    device = None
    error = None

    @classmethod
    async def find_device_by_filter(cls, predicate, timeout=None):
        if cls.error is not None:
            raise cls.error
        return cls.device


@pytest.mark.unit
class TestBleakBeaconLink:
    """Test scan failures map onto the error taxonomy."""

    @pytest.fixture(autouse=True)
    def scanner(self, monkeypatch):
        FakeScanner.device = None
        FakeScanner.error = None
        monkeypatch.setattr(ble, "BleakScanner", FakeScanner)
        return FakeScanner

    async def test_nothing_in_range(self):
        with pytest.raises(NotFound):
            await ble.BleakBeaconLink(name_prefix="GUARDIAN").pair()

    async def test_permission_refused(self, scanner):
        scanner.error = ble.BleakError("Bluetooth permission not granted")

        with pytest.raises(PermissionDenied):
            await ble.BleakBeaconLink().pair()

    async def test_send_before_pairing(self):
        link = ble.BleakBeaconLink()

        assert not link.connected
        with pytest.raises(NotConnected):
            await link.send("BUZZER_ON")

    async def test_disconnect_when_idle(self):
        await ble.BleakBeaconLink().disconnect()
