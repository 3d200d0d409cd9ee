"""Tests for cloudbake.config."""

from __future__ import annotations

import time
from datetime import timedelta

import pytest
from pydantic import ValidationError

from cloudbake.config import CloudStackConfig, parse_duration

REQUIRED = {
    "api_url": "https://cloud.example.com/client/api",
    "api_key": "key",
    "secret": "secret",
}


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for name in ("CLOUDSTACK_API_URL", "CLOUDSTACK_API_KEY", "CLOUDSTACK_SECRET"):
        monkeypatch.delenv(name, raising=False)


class TestParseDuration:
    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("90s", timedelta(seconds=90)),
            ("6m", timedelta(minutes=6)),
            ("1h30m", timedelta(hours=1, minutes=30)),
            ("250ms", timedelta(milliseconds=250)),
            ("1.5s", timedelta(seconds=1.5)),
            ("45", timedelta(seconds=45)),
            (10, timedelta(seconds=10)),
            (timedelta(minutes=2), timedelta(minutes=2)),
        ],
    )
    def test_valid(self, raw, expected):
        assert parse_duration(raw) == expected

    @pytest.mark.parametrize("raw", ["", "soon", "5x", "m5", True, None])
    def test_invalid(self, raw):
        with pytest.raises(ValueError):
            parse_duration(raw)


class TestCloudStackConfig:
    def test_defaults(self):
        c = CloudStackConfig(**REQUIRED)
        assert c.ssh_username == "root"
        assert c.ssh_port == 22
        assert c.ssh_timeout == timedelta(minutes=1)
        assert c.state_timeout == timedelta(minutes=6)
        assert c.template_display_text == "Cloudbake Generated Template"
        assert c.template_os_id == "103"
        assert c.network_ids
        assert c.detach_iso is False
        assert c.debug is False

    def test_default_template_name_rendered(self):
        before = int(time.time())
        c = CloudStackConfig(**REQUIRED)
        prefix, _, stamp = c.template_name.partition("-")
        assert prefix == "cloudbake"
        assert int(stamp) >= before

    def test_custom_template_name_rendered(self):
        c = CloudStackConfig(**REQUIRED, template_name="base-{{ timestamp }}-x")
        assert c.template_name.startswith("base-")
        assert c.template_name.endswith("-x")
        assert "{{" not in c.template_name

    def test_template_name_unknown_variable(self):
        with pytest.raises(ValidationError, match="template_name"):
            CloudStackConfig(**REQUIRED, template_name="{{ nope }}")

    def test_durations_parsed(self):
        c = CloudStackConfig(**REQUIRED, ssh_timeout="30s", state_timeout="10m")
        assert c.ssh_timeout == timedelta(seconds=30)
        assert c.state_timeout == timedelta(minutes=10)

    def test_bad_duration(self):
        with pytest.raises(ValidationError, match="state_timeout"):
            CloudStackConfig(**REQUIRED, state_timeout="forever")

    def test_network_ids_from_string(self):
        c = CloudStackConfig(**REQUIRED, network_ids="a, b,c")
        assert c.network_ids == ["a", "b", "c"]

    def test_env_fallback(self, monkeypatch):
        monkeypatch.setenv("CLOUDSTACK_API_URL", "https://env.example.com/client/api")
        monkeypatch.setenv("CLOUDSTACK_API_KEY", "env-key")
        monkeypatch.setenv("CLOUDSTACK_SECRET", "env-secret")
        c = CloudStackConfig()
        assert c.api_url == "https://env.example.com/client/api"
        assert c.api_key.get_secret_value() == "env-key"
        assert c.secret.get_secret_value() == "env-secret"

    def test_explicit_values_override_env(self, monkeypatch):
        monkeypatch.setenv("CLOUDSTACK_API_KEY", "env-key")
        c = CloudStackConfig(**REQUIRED)
        assert c.api_key.get_secret_value() == "key"

    def test_missing_required_reported_together(self):
        with pytest.raises(ValidationError) as exc_info:
            CloudStackConfig()
        message = str(exc_info.value)
        assert "api_url" in message
        assert "api_key" in message
        assert "secret" in message

    def test_unknown_key_rejected(self):
        with pytest.raises(ValidationError):
            CloudStackConfig(**REQUIRED, droplet_size="512mb")

    def test_secrets_hidden(self):
        c = CloudStackConfig(**REQUIRED)
        assert "'secret'" not in repr(c)
        assert "'key'" not in repr(c)

    def test_invalid_port(self):
        with pytest.raises(ValidationError):
            CloudStackConfig(**REQUIRED, ssh_port=0)
