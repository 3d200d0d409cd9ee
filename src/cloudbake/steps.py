"""Steps that turn a disposable CloudStack virtual machine into a template."""

from __future__ import annotations

import logging
import secrets
import time
from dataclasses import dataclass
from datetime import timedelta

from .client import CloudStackError
from .config import CloudStackConfig
from .context import Context
from .errors import (
    InstanceDeployError,
    InstanceNotReadyError,
    InstanceStopError,
    IsoDetachError,
    ProvisionError,
    SSHKeyCreationError,
    TemplateCreationError,
    TemplateLookupInconsistencyError,
    WaitError,
)
from .step import Step, StepAction
from .waiter import state_matches, wait_for_job, wait_for_state

logger = logging.getLogger(__name__)

NAME_PREFIX = "cloudbake"

ACTIVE_STATE = "Running"
STOPPED_STATE = "Stopped"


def unique_name(prefix: str = NAME_PREFIX) -> str:
    """Return a process-unique, time-ordered resource name."""
    return f"{prefix}-{time.time_ns():016x}{secrets.token_hex(4)}"


def _await_job(ctx: Context[CloudStackConfig], job_id: str) -> None:
    wait_for_job(
        ctx.client,
        job_id,
        ctx.config.state_timeout,
        interval=ctx.config.poll_interval,
        cancel=ctx.cancel_event,
    )


class CreateSSHKeyPair(Step):
    """Create a temporary key pair used to reach the virtual machine."""

    def __init__(self) -> None:
        self.key_name: str | None = None

    def run(self, ctx: Context[CloudStackConfig]) -> StepAction:
        ctx.ui.say("Creating temporary ssh key for virtual machine...")

        name = unique_name()
        try:
            private_key = ctx.client.create_ssh_key_pair(name)
        except CloudStackError as exc:
            return self.halt(ctx, SSHKeyCreationError(f"error creating temporary ssh key: {exc}", cause=exc))

        self.key_name = name
        logger.info("Temporary ssh key name: %s", name)

        ctx.put("ssh_key_name", name)
        ctx.put("ssh_private_key", private_key)
        return StepAction.CONTINUE

    def cleanup(self, ctx: Context[CloudStackConfig]) -> None:
        if self.key_name is None:
            return

        ctx.ui.say("Deleting temporary ssh key...")
        try:
            ctx.client.delete_ssh_key_pair(self.key_name)
        except CloudStackError as exc:
            logger.warning("Error cleaning up ssh key '%s': %s", self.key_name, exc)
            ctx.ui.error(f"Error cleaning up ssh key '{self.key_name}'. Please delete the key manually.")


class DeployVirtualMachine(Step):
    """Deploy the virtual machine the template is built from."""

    def __init__(self) -> None:
        self.instance_id: str | None = None

    def run(self, ctx: Context[CloudStackConfig]) -> StepAction:
        c = ctx.config
        key_name = ctx.get("ssh_key_name", str)

        ctx.ui.say("Creating virtual machine...")
        display_name = unique_name()

        try:
            instance_id, job_id = ctx.client.deploy_virtual_machine(
                c.service_offering_id,
                c.template_id,
                c.zone_id,
                c.network_ids,
                key_name,
                display_name,
            )
        except CloudStackError as exc:
            return self.halt(ctx, InstanceDeployError(f"error deploying virtual machine: {exc}", cause=exc))

        logger.info("Waiting for deploy of %s (job %s)...", instance_id, job_id)
        try:
            _await_job(ctx, job_id)
        except WaitError as exc:
            return self.halt(ctx, InstanceDeployError(f"error deploying virtual machine: {exc}", cause=exc))

        self.instance_id = instance_id
        ctx.put("instance_id", instance_id)
        return StepAction.CONTINUE

    def cleanup(self, ctx: Context[CloudStackConfig]) -> None:
        if self.instance_id is None:
            return

        ctx.ui.say("Destroying virtual machine...")
        try:
            job_id = ctx.client.destroy_virtual_machine(self.instance_id)
            # not cancellable; runs while a cancelled build unwinds
            wait_for_job(
                ctx.client,
                job_id,
                ctx.config.state_timeout,
                interval=ctx.config.poll_interval,
            )
        except (CloudStackError, WaitError) as exc:
            logger.warning("Error destroying virtual machine %s: %s", self.instance_id, exc)
            ctx.ui.error(
                f"Error destroying virtual machine {self.instance_id}. Please destroy it manually."
            )


class VirtualMachineState(Step):
    """Wait for the virtual machine to come up and record its address."""

    def run(self, ctx: Context[CloudStackConfig]) -> StepAction:
        instance_id = ctx.get("instance_id", str)

        ctx.ui.say("Waiting for virtual machine to become active...")
        try:
            vm = wait_for_state(
                ctx.client,
                instance_id,
                ACTIVE_STATE,
                ctx.config.state_timeout,
                interval=ctx.config.poll_interval,
                cancel=ctx.cancel_event,
            )
        except WaitError as exc:
            err = InstanceNotReadyError(f"error waiting for virtual machine to become active: {exc}", cause=exc)
            return self.halt(ctx, err)

        ip = vm.ip_address
        if ip is None:
            return self.halt(ctx, InstanceNotReadyError(f"virtual machine {instance_id} has no ip address"))

        logger.info("Virtual machine %s is active at %s", instance_id, ip)
        ctx.put("instance_ip", ip)
        return StepAction.CONTINUE


@dataclass(frozen=True)
class ProvisionTarget:
    """Connection details handed to the provisioning hook."""

    host: str
    port: int
    username: str
    private_key: str
    key_path: str
    timeout: timedelta


class Provision(Step):
    """Hand the running virtual machine to the host's provisioning hook."""

    def run(self, ctx: Context[CloudStackConfig]) -> StepAction:
        if ctx.hook is None:
            logger.info("No provisioning hook configured; skipping provisioning")
            return StepAction.CONTINUE

        target = ProvisionTarget(
            host=ctx.get("instance_ip", str),
            port=ctx.config.ssh_port,
            username=ctx.config.ssh_username,
            private_key=ctx.get("ssh_private_key", str),
            key_path=ctx.config.ssh_key_path,
            timeout=ctx.config.ssh_timeout,
        )

        ctx.ui.say(f"Provisioning {target.username}@{target.host}:{target.port}...")
        try:
            ctx.hook.run("provision", ctx.ui, target)
        except Exception as exc:
            return self.halt(ctx, ProvisionError(f"error provisioning virtual machine: {exc}", cause=exc))
        return StepAction.CONTINUE


class DetachIso(Step):
    """Detach any ISO image from the virtual machine."""

    def run(self, ctx: Context[CloudStackConfig]) -> StepAction:
        instance_id = ctx.get("instance_id", str)

        ctx.ui.say("Detaching ISO image...")
        try:
            job_id = ctx.client.detach_iso(instance_id)
            logger.info("Waiting for detach event to complete...")
            _await_job(ctx, job_id)
        except (CloudStackError, WaitError) as exc:
            return self.halt(ctx, IsoDetachError(f"error detaching ISO from virtual machine: {exc}", cause=exc))
        return StepAction.CONTINUE


class StopVirtualMachine(Step):
    """Stop the virtual machine so its root volume can be captured."""

    def run(self, ctx: Context[CloudStackConfig]) -> StepAction:
        instance_id = ctx.get("instance_id", str)

        try:
            machines = ctx.client.list_virtual_machines(instance_id)
        except CloudStackError as exc:
            return self.halt(ctx, InstanceStopError(f"error checking virtual machine state: {exc}", cause=exc))

        if machines and state_matches(machines[0].state, STOPPED_STATE):
            logger.debug("Virtual machine %s is already stopped", instance_id)
            return StepAction.CONTINUE

        ctx.ui.say("Stopping virtual machine...")
        try:
            job_id = ctx.client.stop_virtual_machine(instance_id)
            logger.info("Waiting for stop event to complete...")
            _await_job(ctx, job_id)
        except (CloudStackError, WaitError) as exc:
            return self.halt(ctx, InstanceStopError(f"error stopping virtual machine: {exc}", cause=exc))
        return StepAction.CONTINUE


class CreateTemplate(Step):
    """Capture the stopped virtual machine's root volume as a template.

    The template is the build's output, so it is never removed here; only
    ``Artifact.destroy`` deletes it.
    """

    def run(self, ctx: Context[CloudStackConfig]) -> StepAction:
        c = ctx.config
        instance_id = ctx.get("instance_id", str)

        ctx.ui.say(f"Creating template: {c.template_name}")
        try:
            volumes = ctx.client.list_volumes(instance_id)
        except CloudStackError as exc:
            return self.halt(ctx, TemplateCreationError(f"error looking up root volume: {exc}", cause=exc))
        if not volumes:
            return self.halt(ctx, TemplateCreationError(f"virtual machine {instance_id} has no root volume"))

        try:
            job_id = ctx.client.create_template(
                c.template_display_text, c.template_name, volumes[0].id, c.template_os_id
            )
            ctx.ui.say("Waiting for template to be saved...")
            _await_job(ctx, job_id)
        except (CloudStackError, WaitError) as exc:
            return self.halt(ctx, TemplateCreationError(f"error creating template: {exc}", cause=exc))

        logger.info("Looking up template id for template: %s", c.template_name)
        try:
            templates = ctx.client.list_templates(c.template_name)
        except CloudStackError as exc:
            return self.halt(ctx, TemplateCreationError(f"error looking up template id: {exc}", cause=exc))

        template = next((t for t in templates if t.name == c.template_name), None)
        if template is None:
            return self.halt(ctx, TemplateLookupInconsistencyError(c.template_name))

        ctx.put("template_name", template.name)
        ctx.put("template_id", template.id)
        return StepAction.CONTINUE
