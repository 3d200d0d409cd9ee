"""Synchronous HTTP client for the CloudStack API.

Every call is a GET against the API endpoint with a signed query string:
the parameters are sorted and URL-encoded, the lowercased string is signed
with HMAC-SHA1 using the account secret, and the base64 digest is appended
as the ``signature`` parameter.

Asynchronous commands (deploy, stop, destroy, create template, ...) return a
job id which must be polled with ``query_async_job_result``.
"""

from __future__ import annotations

import base64
import hashlib
import hmac
import logging
from enum import IntEnum
from typing import Any
from urllib.parse import quote, urlencode

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError

logger = logging.getLogger(__name__)

_DEFAULT_TIMEOUT = 30.0


# -- Exception hierarchy --


class CloudStackError(Exception):
    """The API rejected a request or returned an unexpected response."""

    def __init__(self, status_code: int, message: str = "", *, error_code: int | None = None) -> None:
        self.status_code = status_code
        self.message = message
        self.error_code = error_code
        super().__init__(f"CloudStack API error {status_code}: {message}")


class CloudStackNotFoundError(CloudStackError):
    """The requested resource does not exist (404)."""


class CloudStackTransportError(CloudStackError):
    """The API could not be reached."""

    def __init__(self, message: str) -> None:
        super().__init__(0, message)


# -- Response models --


class _Model(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class JobStatus(IntEnum):
    PENDING = 0
    SUCCEEDED = 1
    FAILED = 2


class AsyncJobResult(_Model):
    job_id: str = Field(default="", alias="jobid")
    status: JobStatus = Field(alias="jobstatus")
    result_code: int = Field(default=0, alias="jobresultcode")


class Nic(_Model):
    id: str = ""
    ip_address: str = Field(default="", alias="ipaddress")
    is_default: bool = Field(default=False, alias="isdefault")


class VirtualMachine(_Model):
    id: str
    name: str = ""
    display_name: str = Field(default="", alias="displayname")
    state: str = ""
    nics: list[Nic] = Field(default_factory=list, alias="nic")

    @property
    def ip_address(self) -> str | None:
        """Address of the default NIC (or the first one)."""
        for nic in self.nics:
            if nic.is_default and nic.ip_address:
                return nic.ip_address
        for nic in self.nics:
            if nic.ip_address:
                return nic.ip_address
        return None


class Volume(_Model):
    id: str
    name: str = ""
    type: str = ""


class Template(_Model):
    id: str
    name: str
    display_text: str = Field(default="", alias="displaytext")


# -- Client --


def sign(params: dict[str, str], secret: str) -> str:
    """Return the signed query string for params."""
    query = urlencode(sorted(params.items()), quote_via=quote)
    digest = hmac.new(secret.encode(), query.lower().encode(), hashlib.sha1).digest()
    signature = base64.b64encode(digest).decode()
    return f"{query}&signature={quote(signature, safe='')}"


class CloudStackClient:
    """Client for the subset of the CloudStack API used to build templates."""

    def __init__(
        self,
        api_url: str,
        api_key: str,
        secret: str,
        *,
        http_client: httpx.Client | None = None,
        timeout_seconds: float = _DEFAULT_TIMEOUT,
    ) -> None:
        if not api_url:
            raise ValueError("api_url is required")
        self._api_url = api_url
        self._api_key = api_key
        self._secret = secret
        self._client = http_client or httpx.Client(timeout=timeout_seconds)

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> CloudStackClient:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    def request(self, command: str, **params: Any) -> dict[str, Any]:
        """Issue command and return the unwrapped response object."""
        query = {k: _format_param(v) for k, v in params.items() if v is not None}
        query.update(apikey=self._api_key, command=command, response="json")
        url = f"{self._api_url}?{sign(query, self._secret)}"

        logger.debug("Calling CloudStack command '%s'", command)
        try:
            resp = self._client.get(url)
        except httpx.HTTPError as exc:
            raise CloudStackTransportError(f"{command}: {exc}") from exc

        body = _decode(resp)
        envelope = body.get(f"{command.lower()}response", {}) if isinstance(body, dict) else {}

        if resp.status_code >= 400:
            message = envelope.get("errortext") or resp.text[:200] or f"HTTP {resp.status_code}"
            error_code = envelope.get("errorcode")
            logger.debug("CloudStack command '%s' failed: %s %s", command, resp.status_code, message)
            if resp.status_code == 404:
                raise CloudStackNotFoundError(resp.status_code, message, error_code=error_code)
            raise CloudStackError(resp.status_code, message, error_code=error_code)

        return envelope

    def _job(self, command: str, **params: Any) -> str:
        """Issue an asynchronous command and return its job id."""
        data = self.request(command, **params)
        if "jobid" not in data:
            raise CloudStackError(200, f"{command}: response has no job id")
        return data["jobid"]

    # -- SSH key pairs --

    def create_ssh_key_pair(self, name: str) -> str:
        """Create a key pair and return its private key."""
        data = self.request("createSSHKeyPair", name=name)
        private_key = data.get("keypair", {}).get("privatekey")
        if not private_key:
            raise CloudStackError(200, "createSSHKeyPair: response has no private key")
        return private_key

    def delete_ssh_key_pair(self, name: str) -> bool:
        data = self.request("deleteSSHKeyPair", name=name)
        return str(data.get("success", "")).lower() == "true"

    # -- Virtual machines --

    def deploy_virtual_machine(
        self,
        service_offering_id: str,
        template_id: str,
        zone_id: str,
        network_ids: list[str],
        keypair: str,
        display_name: str,
        disk_offering_id: str | None = None,
    ) -> tuple[str, str]:
        """Deploy a virtual machine, returning (instance id, job id)."""
        data = self.request(
            "deployVirtualMachine",
            serviceofferingid=service_offering_id,
            templateid=template_id,
            zoneid=zone_id,
            networkids=network_ids,
            keypair=keypair,
            displayname=display_name,
            diskofferingid=disk_offering_id,
        )
        if "id" not in data or "jobid" not in data:
            raise CloudStackError(200, "deployVirtualMachine: response has no id or job id")
        return data["id"], data["jobid"]

    def stop_virtual_machine(self, instance_id: str) -> str:
        return self._job("stopVirtualMachine", id=instance_id)

    def destroy_virtual_machine(self, instance_id: str) -> str:
        return self._job("destroyVirtualMachine", id=instance_id)

    def detach_iso(self, instance_id: str) -> str:
        return self._job("detachIso", virtualmachineid=instance_id)

    def list_virtual_machines(self, instance_id: str) -> list[VirtualMachine]:
        data = self.request("listVirtualMachines", id=instance_id)
        return _parse_list(VirtualMachine, "listVirtualMachines", data.get("virtualmachine", []))

    def list_volumes(self, instance_id: str, volume_type: str = "ROOT") -> list[Volume]:
        data = self.request("listVolumes", virtualmachineid=instance_id, type=volume_type)
        return _parse_list(Volume, "listVolumes", data.get("volume", []))

    # -- Templates --

    def create_template(self, display_text: str, name: str, volume_id: str, os_type_id: str) -> str:
        return self._job(
            "createTemplate",
            displaytext=display_text,
            name=name,
            volumeid=volume_id,
            ostypeid=os_type_id,
        )

    def list_templates(self, name: str | None = None, template_filter: str = "self") -> list[Template]:
        data = self.request("listTemplates", name=name, templatefilter=template_filter)
        return _parse_list(Template, "listTemplates", data.get("template", []))

    def delete_template(self, template_id: str) -> str:
        return self._job("deleteTemplate", id=template_id)

    # -- Async jobs --

    def query_async_job_result(self, job_id: str) -> AsyncJobResult:
        data = self.request("queryAsyncJobResult", jobid=job_id)
        try:
            return AsyncJobResult.model_validate(data)
        except ValidationError as exc:
            raise CloudStackError(200, f"queryAsyncJobResult: unexpected response: {exc}") from exc


def _parse_list[M: BaseModel](model: type[M], command: str, items: Any) -> list[M]:
    try:
        return [model.model_validate(item) for item in items]
    except (ValidationError, TypeError) as exc:
        raise CloudStackError(200, f"{command}: unexpected response: {exc}") from exc


def _format_param(value: Any) -> str:
    if isinstance(value, (list, tuple)):
        return ",".join(str(v) for v in value)
    if isinstance(value, bool):
        return str(value).lower()
    return str(value)


def _decode(resp: httpx.Response) -> Any:
    try:
        return resp.json()
    except ValueError:
        if resp.status_code < 400:
            raise CloudStackError(resp.status_code, "response is not valid JSON") from None
        return {}
