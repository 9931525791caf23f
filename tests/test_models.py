"""Tests for tunnel domain models and telemetry."""

import dataclasses

import pytest

from sshproxy.core.exceptions import ConfigError
from sshproxy.core.telemetry import Telemetry
from sshproxy.domain.tunnel.models import ChannelRequest, ConnectOptions, ProxyConfig, SessionState

pytestmark = [pytest.mark.unit]


class TestChannelRequest:
    def test_endpoints(self, request_example):
        assert request_example.source == "127.0.0.1:50000"
        assert request_example.destination == "example.com:443"

    def test_immutable(self, request_example):
        with pytest.raises(dataclasses.FrozenInstanceError):
            request_example.dest_port = 80

    def test_value_equality(self):
        assert ChannelRequest("a", 1, "b", 2) == ChannelRequest("a", 1, "b", 2)


class TestConnectOptions:
    def test_defaults(self, options):
        options.validate()
        assert options.port == 22
        assert options.timeout == 10
        assert options.keepalive_interval == 0

    @pytest.mark.parametrize(
        "overrides",
        [
            {"host": ""},
            {"port": 0},
            {"port": 65536},
            {"auth_method": "agent"},
            {"auth_method": "password"},
            {"timeout": 0},
            {"keepalive_interval": -1},
        ],
    )
    def test_invalid(self, options, overrides):
        with pytest.raises(ConfigError):
            dataclasses.replace(options, **overrides).validate()

    def test_password_never_shown(self):
        options = ConnectOptions(host="h", user="u", auth_method="password", password="hunter2")

        assert "hunter2" not in repr(options)
        assert options.to_dict()["password"] == "*******"


class TestProxyConfig:
    def test_free_port_allowed(self):
        ProxyConfig(bind_port=0).validate()

    @pytest.mark.parametrize("overrides", [{"bind_port": -1}, {"bind_port": 70000}, {"idle_timeout": -1}])
    def test_invalid(self, overrides):
        config = dataclasses.replace(ProxyConfig(bind_port=8080), **overrides)
        with pytest.raises(ConfigError):
            config.validate()

    def test_to_dict(self):
        assert ProxyConfig(bind_port=1080, bind_host="127.0.0.1", idle_timeout=5).to_dict() == {
            "bind_host": "127.0.0.1",
            "bind_port": 1080,
            "idle_timeout": 5,
        }


def test_session_state_values():
    assert [s.value for s in SessionState] == ["disconnected", "connecting", "ready"]


class TestTelemetry:
    def test_record_and_filter(self):
        telemetry = Telemetry()
        telemetry.record_event("a", {"x": 1})
        telemetry.record_event("b")
        telemetry.record_event("a")

        assert telemetry.count("a") == 2
        assert [e.name for e in telemetry.get_events()] == ["a", "b", "a"]
        assert telemetry.get_events("a")[0].metadata == {"x": 1}

    def test_listener_failure_is_contained(self):
        telemetry = Telemetry()
        seen = []

        def boom(event):
            raise RuntimeError("listener broke")

        telemetry.subscribe(boom)
        telemetry.subscribe(seen.append)
        telemetry.record_event("server.started")

        assert [e.name for e in seen] == ["server.started"]

    def test_unsubscribe(self):
        telemetry = Telemetry()
        seen = []
        telemetry.subscribe(seen.append)
        telemetry.unsubscribe(seen.append)
        telemetry.unsubscribe(seen.append)

        telemetry.record_event("x")

        assert seen == []

    def test_bounded(self):
        telemetry = Telemetry(max_records=3)
        for i in range(5):
            telemetry.record_event(f"e{i}")

        assert [e.name for e in telemetry.get_events()] == ["e2", "e3", "e4"]

    def test_clear(self):
        telemetry = Telemetry()
        telemetry.record_event("x")
        telemetry.clear()

        assert telemetry.get_events() == []
