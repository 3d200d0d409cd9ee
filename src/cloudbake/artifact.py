"""The template produced by a successful build."""

from __future__ import annotations

import logging

from pydantic import BaseModel, SkipValidation

from .client import CloudStackClient

logger = logging.getLogger(__name__)


class Artifact(BaseModel):
    """A CloudStack template created by a build."""

    model_config = {"arbitrary_types_allowed": True, "frozen": True}

    builder_id: str
    template_id: str
    template_name: str
    client: SkipValidation[CloudStackClient]

    @property
    def id(self) -> str:
        return self.template_name

    @property
    def files(self) -> list[str]:
        return []

    def __str__(self) -> str:
        return f"A template was created: {self.template_name} ({self.template_id})"

    def destroy(self) -> str:
        """Delete the template, returning the deletion job id.

        A second call may raise CloudStackError for a template that is already
        gone; callers should treat that as done.
        """
        logger.info("Destroying template: %s (%s)", self.template_name, self.template_id)
        return self.client.delete_template(self.template_id)
