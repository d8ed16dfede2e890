"""Lock file rendering and writing.

Turns the workflow mapping built by aw_compiler.compiler.jobs into the
text of a `.lock.yml` file. Output is byte-stable for equal input: keys
keep insertion order, multi-line strings use literal block style and
lines are never folded.

Public API:
    LockFileDumper: SafeDumper configured for GitHub Actions YAML
    render_lock_file: Header comment plus YAML document
    lock_file_path: `<stem>.lock.yml` next to the source
    write_lock_file: Atomic write of the rendered text
"""

from __future__ import annotations

import contextlib
import logging
import os
import re
import tempfile
from pathlib import Path
from typing import Any

import yaml

from aw_compiler.core.exceptions import CompilerIOError

logger = logging.getLogger(__name__)

LOCK_SUFFIX = ".lock.yml"
_BOOL_TAG = "tag:yaml.org,2002:bool"
_ENV_KEYS = frozenset({"env"})


class _Quoted(str):
    """String always emitted in double quotes."""


class LockFileDumper(yaml.SafeDumper):
    """SafeDumper that writes indented block sequences.

    Only true/false resolve to booleans, so `on` is written as a plain key
    instead of the quoted 'on' YAML 1.1 would require.
    """

    def increase_indent(self, flow: bool = False, indentless: bool = False) -> None:
        return super().increase_indent(flow, False)

    def ignore_aliases(self, data: Any) -> bool:
        return True


LockFileDumper.yaml_implicit_resolvers = {
    first: [(tag, regexp) for tag, regexp in resolvers if tag != _BOOL_TAG]
    for first, resolvers in yaml.SafeDumper.yaml_implicit_resolvers.items()
}
LockFileDumper.add_implicit_resolver(
    _BOOL_TAG,
    re.compile(r"^(?:true|True|TRUE|false|False|FALSE)$"),
    list("tTfF"),
)


def _represent_str(dumper: yaml.SafeDumper, value: str) -> yaml.ScalarNode:
    if "\n" in value:
        return dumper.represent_scalar("tag:yaml.org,2002:str", value, style="|")
    return dumper.represent_scalar("tag:yaml.org,2002:str", value)


def _represent_quoted(dumper: yaml.SafeDumper, value: _Quoted) -> yaml.ScalarNode:
    return dumper.represent_scalar("tag:yaml.org,2002:str", str(value), style='"')


def _represent_none(dumper: yaml.SafeDumper, value: None) -> yaml.ScalarNode:
    return dumper.represent_scalar("tag:yaml.org,2002:null", "")


LockFileDumper.add_representer(str, _represent_str)
LockFileDumper.add_representer(_Quoted, _represent_quoted)
LockFileDumper.add_representer(type(None), _represent_none)


def _quote_env_values(env: dict[str, Any]) -> dict[str, Any]:
    quoted: dict[str, Any] = {}
    for key, value in env.items():
        if isinstance(value, str) and "\n" not in value and not value.startswith("${{"):
            quoted[key] = _Quoted(value)
        else:
            quoted[key] = value
    return quoted


def _prepare(value: Any, key: str = "") -> Any:
    # env values are quoted so numbers and flags stay strings
    if isinstance(value, dict):
        if key in _ENV_KEYS:
            return _quote_env_values(value)
        return {k: _prepare(v, str(k)) for k, v in value.items()}
    if isinstance(value, list):
        return [_prepare(item) for item in value]
    return value


def _header(
    source: str, frontmatter_hash: str, version: str, description: str = "", workflow_version: str = ""
) -> str:
    lines = [
        f"# This file was automatically generated by awc (agentic-workflow-compiler {version}). DO NOT EDIT.",
        "#",
        "# To update this file, edit the source workflow and run:",
        "#   awc compile",
    ]
    if description:
        lines.append("#")
        lines += [f"# {line}".rstrip() for line in description.strip().splitlines()]
    if source:
        lines += ["#", f"# Source: {source}"]
    if workflow_version:
        lines.append(f"# Workflow version: {workflow_version}")
    lines += ["#", f"# frontmatter-hash: {frontmatter_hash}", ""]
    return "\n".join(lines) + "\n"


def render_lock_file(
    workflow: dict[str, Any],
    *,
    frontmatter_hash: str,
    version: str,
    source: str = "",
    description: str = "",
    workflow_version: str = "",
) -> str:
    """Render workflow as lock file text.

    Args:
        workflow: Mapping produced by build_workflow.
        frontmatter_hash: Hash of the merged front-matter and imports.
        version: Compiler version written to the header.
        source: Source path shown in the header (relative, for stability).
        description: Workflow description, one comment line per line.
        workflow_version: The `version` declared by the workflow.

    Returns:
        Header comment followed by the YAML document.

    """
    body = yaml.dump(
        _prepare(workflow),
        Dumper=LockFileDumper,
        default_flow_style=False,
        sort_keys=False,
        allow_unicode=True,
        width=float("inf"),
    )
    return _header(source, frontmatter_hash, version, description, workflow_version) + body


def lock_file_path(source: Path) -> Path:
    """Return the lock file path for a workflow source.

    Examples:
        >>> lock_file_path(Path("wf/triage.md")).as_posix()
        'wf/triage.lock.yml'

    """
    return source.with_name(source.stem + LOCK_SUFFIX)


def write_lock_file(path: Path, content: str) -> Path:
    """Write content to path through a temp file and rename.

    Raises:
        CompilerIOError: If the file cannot be written.

    """
    tmp_path_str: str | None = None
    try:
        fd, tmp_path_str = tempfile.mkstemp(dir=path.parent, prefix=".awc-", suffix=".yml.tmp")
        with os.fdopen(fd, "w", encoding="utf-8", newline="\n") as f:
            f.write(content)
        os.replace(tmp_path_str, path)
        tmp_path_str = None
    except OSError as e:
        raise CompilerIOError(f"Cannot write lock file: {e}", path=str(path)) from e
    finally:
        if tmp_path_str is not None and os.path.exists(tmp_path_str):
            with contextlib.suppress(OSError):
                os.unlink(tmp_path_str)
    logger.debug("Wrote %s (%d bytes)", path, len(content))
    return path
