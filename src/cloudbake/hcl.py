"""Parse .hcl build templates into a Workspace."""

from __future__ import annotations

import logging
import os
import re
import time
from collections.abc import Callable
from pathlib import Path
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .workspace import Workspace

import hcl2
import jinja2

logger = logging.getLogger(__name__)

_VAR_PATTERN = re.compile(r"\$\{(?:env\.(\w+)|(\w+))\}")

_BUILTIN_VARS: dict[str, Callable[[], str]] = {
    "CWD": os.getcwd,
}


def scan(
    path: str | Path,
    *,
    recurse: bool = True,
    context: dict[str, Any] | None = None,
) -> Workspace:
    """Scan a directory for .hcl files and return a ready Workspace."""
    from .workspace import Workspace

    ws = Workspace()
    root = Path(path)
    if not root.is_dir():
        logger.debug("Template directory '%s' does not exist", root)
        return ws

    files = root.rglob("*.hcl") if recurse else root.glob("*.hcl")
    for file in sorted(files):
        logger.debug("Loading template '%s'", file)
        ws.load(load(file, context=context))
    return ws


def load(
    file: Path,
    *,
    context: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Load and parse a single HCL file, rendering Jinja2 templates with context."""
    text = file.read_text()
    ctx: dict[str, Any] = {"timestamp": int(time.time())}
    if context is not None:
        ctx.update(context)
    env = jinja2.Environment(
        undefined=jinja2.StrictUndefined,
        keep_trailing_newline=True,
        autoescape=False,
    )
    try:
        template = env.from_string(text)
        text = template.render(ctx)
    except jinja2.TemplateError as exc:
        raise ValueError(f"{file}: {exc}") from exc
    return hcl2.loads(text)


def _expand_var(match: re.Match) -> str:
    """Expand a single ${...} variable reference."""
    env_name = match.group(1)
    builtin_name = match.group(2)
    if env_name is not None:
        if env_name not in os.environ:
            logger.warning("Environment variable '%s' is not set", env_name)
        return os.environ.get(env_name, "")
    if builtin_name is not None and builtin_name in _BUILTIN_VARS:
        return _BUILTIN_VARS[builtin_name]()
    logger.warning("Unknown variable '%s'", builtin_name)
    return match.group(0)


def interpolate_value(value: Any) -> Any:
    """Expand ${env.VAR} and ${CWD} references in a value (lists included)."""
    if isinstance(value, str) and "${" in value:
        return _VAR_PATTERN.sub(_expand_var, value)
    if isinstance(value, list):
        return [interpolate_value(v) for v in value]
    return value


def interpolate_attrs(attrs: dict[str, Any]) -> dict[str, Any]:
    """Expand variable references in all attribute values.

    Parser bookkeeping keys (``__start_line__`` and the like) are dropped.
    """
    return {
        k: interpolate_value(v)
        for k, v in attrs.items()
        if not (k.startswith("__") and k.endswith("__"))
    }
