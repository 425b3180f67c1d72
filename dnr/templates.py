from __future__ import annotations

import os
import re
import stat

from .topology import DeploymentConfig

TOKEN_RE = re.compile(r"\{\{\s*([A-Z][A-Z0-9_]*)\s*\}\}")


class TemplateError(Exception):
    pass


def template_tokens(text: str) -> list[str]:
    """Placeholder names in order of first appearance."""
    seen: list[str] = []
    for m in TOKEN_RE.finditer(text):
        if m.group(1) not in seen:
            seen.append(m.group(1))
    return seen


def render_template(text: str, values: dict[str, object]) -> str:
    """Replace ``{{NAME}}`` tokens. Every token must have a value."""
    missing = [t for t in template_tokens(text) if t not in values]
    if missing:
        raise TemplateError(f"No value for placeholder(s): {', '.join(missing)}")
    return TOKEN_RE.sub(lambda m: str(values[m.group(1)]), text)


def deployment_values(
    config: DeploymentConfig, admin_port: int = 81, http_port: int = 80, https_port: int = 443
) -> dict[str, object]:
    return {
        "PROJECT_NAME": config.project,
        "ENVIRONMENT": config.environment,
        "DOMAIN_BASE": config.domain_base,
        "NPM_ADMIN_PORT": int(admin_port),
        "NPM_HTTP_PORT": int(http_port),
        "NPM_HTTPS_PORT": int(https_port),
    }


def render_file(src: str, dst: str, values: dict[str, object]) -> str:
    """Render ``src`` into ``dst`` and mark the result executable."""
    with open(src, "r", encoding="utf-8") as fh:
        text = fh.read()
    try:
        out = render_template(text, values)
    except TemplateError as e:
        raise TemplateError(f"{src}: {e}") from e

    parent = os.path.dirname(os.path.abspath(dst))
    os.makedirs(parent, exist_ok=True)
    with open(dst, "w", encoding="utf-8", newline="\n") as fh:
        fh.write(out)
    mode = os.stat(dst).st_mode
    os.chmod(dst, mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return dst
