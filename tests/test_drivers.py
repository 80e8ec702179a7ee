"""Tests for the Sonoff relay and the RS485 climate register decoding."""

import json

import httpx
import pytest

from homehub.drivers.climate import ClimateRegisterSpec, RS485ClimateSensor, SimulatedClimateSensor
from homehub.drivers.sonoff_switch import SonoffSwitch


class FakeModbus:
    def __init__(self, regs):
        self.regs = regs
        self.calls = []

    def read_registers(self, functioncode, address, count):
        self.calls.append((functioncode, address, count))
        return self.regs


class TestSonoffSwitch:

    @pytest.mark.asyncio
    async def test_on_posts_switch_command(self, hub):
        seen = []

        def handler(request):
            seen.append((request.url.path, json.loads(request.content)))
            return httpx.Response(200, json={"error": 0})

        relay = hub.register(SonoffSwitch("relay", "Hall Light", ip="10.0.0.5", sonoff_id="abc",
                                          transport=httpx.MockTransport(handler)))

        await relay.on()

        assert seen == [("/zeroconf/switch", {"deviceid": "abc", "data": {"switch": "on"}})]
        assert relay.switch_state == "on"

    @pytest.mark.asyncio
    async def test_failed_command_raises_and_keeps_state(self, hub):
        relay = hub.register(SonoffSwitch("relay", "Hall Light", ip="10.0.0.5",
                                          transport=httpx.MockTransport(lambda r: httpx.Response(503))))

        with pytest.raises(httpx.HTTPError):
            await relay.on()
        assert relay.switch_state == "off"

    @pytest.mark.asyncio
    async def test_refresh_reads_state(self, hub):
        def handler(request):
            return httpx.Response(200, json={"data": {"switch": "on"}})

        relay = hub.register(SonoffSwitch("relay", "Hall Light", ip="10.0.0.5",
                                          transport=httpx.MockTransport(handler)))

        assert await relay.refresh() == "on"
        assert relay.switch_state == "on"

    @pytest.mark.asyncio
    async def test_refresh_failure_keeps_last_state(self, hub):
        relay = hub.register(SonoffSwitch("relay", "Hall Light", ip="10.0.0.5",
                                          transport=httpx.MockTransport(lambda r: httpx.Response(200, json={}))))

        assert await relay.refresh() == "off"


class TestRS485ClimateSensor:

    def test_scales_and_converts(self):
        driver = FakeModbus([215, 456])
        sensor = RS485ClimateSensor(driver, ClimateRegisterSpec())

        temp, humidity = sensor.read()

        assert driver.calls == [(4, 1, 2)]
        assert temp == pytest.approx(70.7)
        assert humidity == pytest.approx(45.6)
        assert sensor.unit == "F"

    def test_negative_celsius(self):
        sensor = RS485ClimateSensor(FakeModbus([0xFFF6, 300]), ClimateRegisterSpec(fahrenheit=False))

        temp, _ = sensor.read()

        assert temp == pytest.approx(-1.0)
        assert sensor.unit == "C"

    def test_short_read_raises(self):
        with pytest.raises(IOError):
            RS485ClimateSensor(FakeModbus([215])).read()


class TestSimulatedClimateSensor:

    def test_disabled_raises(self):
        sensor = SimulatedClimateSensor()
        sensor.disable()
        with pytest.raises(RuntimeError):
            sensor.read()

    def test_humidity_in_range(self):
        _, humidity = SimulatedClimateSensor().read()
        assert 0.0 <= humidity <= 100.0
