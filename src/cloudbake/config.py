"""CloudStack builder configuration."""

from __future__ import annotations

import logging
import os
import re
import time
from datetime import timedelta
from typing import Any

import jinja2
from pydantic import BaseModel, Field, SecretStr, field_validator, model_validator

logger = logging.getLogger(__name__)

_DURATION_PART = re.compile(r"(\d+(?:\.\d+)?)(ms|s|m|h)")

_DURATION_UNITS: dict[str, float] = {
    "ms": 0.001,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}


def parse_duration(value: Any) -> timedelta:
    """Parse a duration such as '90s', '6m' or '1h30m' (bare numbers are seconds)."""
    if isinstance(value, timedelta):
        return value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return timedelta(seconds=value)
    if not isinstance(value, str):
        raise ValueError(f"invalid duration: {value!r}")

    text = value.strip()
    if not text:
        raise ValueError("duration must not be empty")
    pos = 0
    seconds = 0.0
    for match in _DURATION_PART.finditer(text):
        if match.start() != pos:
            break
        seconds += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
        pos = match.end()
    if pos != len(text):
        try:
            return timedelta(seconds=float(text))
        except ValueError:
            raise ValueError(f"invalid duration: '{value}'") from None
    return timedelta(seconds=seconds)


def render_template_name(name: str) -> str:
    """Render ``{{ timestamp }}`` and friends in a template name."""
    env = jinja2.Environment(undefined=jinja2.StrictUndefined, autoescape=False)
    try:
        return env.from_string(name).render(timestamp=int(time.time()))
    except jinja2.TemplateError as exc:
        raise ValueError(f"template_name: {exc}") from exc


def _env(name: str) -> str:
    return os.environ.get(name, "")


class CloudStackConfig(BaseModel):
    """Everything the CloudStack builder needs to know."""

    model_config = {"extra": "forbid"}

    api_url: str = Field(default_factory=lambda: _env("CLOUDSTACK_API_URL"))
    api_key: SecretStr = Field(default_factory=lambda: SecretStr(_env("CLOUDSTACK_API_KEY")))
    secret: SecretStr = Field(default_factory=lambda: SecretStr(_env("CLOUDSTACK_SECRET")))

    service_offering_id: str = "62fc8ae5-06ac-4021-bed6-90dfdca6b6b5"
    template_id: str = "26de0a07-eee6-4b00-9c4f-fdb7b29f6ba2"
    zone_id: str = "489e5147-85ba-4f28-a78d-226bf03db47c"
    network_ids: list[str] = Field(default_factory=lambda: ["9ab9719e-1f03-40d1-bfbe-b5dbf598e27f"])

    ssh_username: str = "root"
    ssh_port: int = Field(default=22, gt=0, lt=65536)
    ssh_key_path: str = ""
    ssh_timeout: timedelta = timedelta(minutes=1)
    state_timeout: timedelta = timedelta(minutes=6)

    template_name: str = Field(default="cloudbake-{{ timestamp }}", validate_default=True)
    template_display_text: str = "Cloudbake Generated Template"
    template_os_id: str = "103"

    detach_iso: bool = False
    debug: bool = False
    poll_interval: float = Field(default=2.0, gt=0)

    @field_validator("ssh_timeout", "state_timeout", mode="before")
    @classmethod
    def _parse_duration(cls, value: Any) -> timedelta:
        return parse_duration(value)

    @field_validator("network_ids", mode="before")
    @classmethod
    def _split_networks(cls, value: Any) -> Any:
        if isinstance(value, str):
            return [v.strip() for v in value.split(",") if v.strip()]
        return value

    @field_validator("template_name")
    @classmethod
    def _render_template_name(cls, value: str) -> str:
        return render_template_name(value)

    @model_validator(mode="after")
    def _check_required(self) -> CloudStackConfig:
        missing = []
        if not self.api_url:
            missing.append("an api_url must be specified")
        if not self.api_key.get_secret_value():
            missing.append("an api_key must be specified")
        if not self.secret.get_secret_value():
            missing.append("a secret must be specified")
        if not self.network_ids:
            missing.append("at least one network id must be specified")
        if missing:
            raise ValueError("; ".join(missing))
        return self
