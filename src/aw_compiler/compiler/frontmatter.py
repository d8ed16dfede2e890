"""Front-matter parser for agentic workflow Markdown files.

Splits a Markdown document into its YAML front-matter mapping and the
prompt body. No semantic interpretation happens here: values stay as the
dynamic types produced by the YAML loader and are typed later by
aw_compiler.compiler.model.

Public API:
    WorkflowYamlLoader: SafeLoader variant that keeps `on:` a string key
    load_yaml: Parse YAML text with WorkflowYamlLoader
    FrontmatterResult: Parsed front-matter, body and line offsets
    extract_frontmatter: Split Markdown text into front-matter and body
    parse_workflow_file: Read a file and extract its front-matter
    extract_markdown_section: Return one heading section of a document
    extract_workflow_name: Return the first H1 heading text
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from aw_compiler.core.exceptions import CompilerIOError, ErrorKind, FrontmatterError

logger = logging.getLogger(__name__)

_BOOL_TAG = "tag:yaml.org,2002:bool"


class WorkflowYamlLoader(yaml.SafeLoader):
    """SafeLoader that treats only true/false as booleans.

    YAML 1.1 resolves `on`, `off`, `yes` and `no` to booleans, which would
    turn the workflow trigger key `on:` into True. GitHub Actions follows
    YAML 1.2 here, so the bool resolver is narrowed accordingly.
    """


WorkflowYamlLoader.yaml_implicit_resolvers = {
    first: [(tag, regexp) for tag, regexp in resolvers if tag != _BOOL_TAG]
    for first, resolvers in yaml.SafeLoader.yaml_implicit_resolvers.items()
}
WorkflowYamlLoader.add_implicit_resolver(
    _BOOL_TAG,
    re.compile(r"^(?:true|True|TRUE|false|False|FALSE)$"),
    list("tTfF"),
)


def load_yaml(text: str) -> Any:
    """Parse YAML text with workflow boolean semantics.

    Raises:
        yaml.YAMLError: If the text is not valid YAML.

    """
    return yaml.load(text, Loader=WorkflowYamlLoader)  # noqa: S506 - SafeLoader subclass


@dataclass
class FrontmatterResult:
    """Result of splitting a workflow document.

    Attributes:
        frontmatter: Parsed YAML mapping (empty when the document has none).
        markdown: Prompt body following the closing fence.
        frontmatter_lines: Raw YAML lines between the fences.
        frontmatter_start: 1-based source line of the first YAML line (0 if none).
        markdown_start: 1-based source line where the body begins.

    """

    frontmatter: dict[str, Any] = field(default_factory=dict)
    markdown: str = ""
    frontmatter_lines: list[str] = field(default_factory=list)
    frontmatter_start: int = 0
    markdown_start: int = 1

    @property
    def has_frontmatter(self) -> bool:
        """True when the document carried a fenced front-matter block."""
        return self.frontmatter_start > 0


def _is_fence(line: str) -> bool:
    return line.rstrip() == "---"


def extract_frontmatter(
    content: str,
    file: str | None = None,
    required: bool = True,
) -> FrontmatterResult:
    """Split Markdown content into front-matter and body.

    The opening fence must be the first non-empty line. The block up to
    the next `---` line is parsed as a YAML mapping.

    Args:
        content: Raw Markdown text.
        file: Source path used in error messages.
        required: When False, a document without fences is returned as
            body-only instead of raising.

    Returns:
        FrontmatterResult with mapping, body and line offsets.

    Raises:
        FrontmatterError: FrontmatterMissing when fences are absent (and
            required) or unclosed; FrontmatterMalformed when YAML fails.

    """
    text = content.replace("\r\n", "\n")
    if text.startswith("\ufeff"):
        text = text[1:]
    lines = text.split("\n")
    location = file or "<input>"

    start = 0
    while start < len(lines) and not lines[start].strip():
        start += 1

    if start >= len(lines) or not _is_fence(lines[start]):
        if not required:
            return FrontmatterResult(markdown=text, markdown_start=1)
        raise FrontmatterError(
            f"No front-matter found in {location}\n"
            f"  Why it's needed: Workflow configuration lives in a YAML block between '---' lines\n"
            f"  How to fix: Start the file with '---', the YAML configuration, then '---'",
            kind=ErrorKind.FRONTMATTER_MISSING,
            file=file,
        )

    end = None
    for index in range(start + 1, len(lines)):
        if _is_fence(lines[index]):
            end = index
            break

    if end is None:
        raise FrontmatterError(
            f"Front-matter is not closed in {location}\n"
            f"  Opening '---' found on line {start + 1} without a matching closing '---'\n"
            f"  Suggestion: Add a '---' line after the YAML configuration",
            kind=ErrorKind.FRONTMATTER_MISSING,
            file=file,
            line=start + 1,
        )

    yaml_lines = lines[start + 1 : end]
    yaml_text = "\n".join(yaml_lines)
    # Source line of the first YAML line (1-based)
    yaml_start_line = start + 2

    try:
        data = load_yaml(yaml_text) if yaml_text.strip() else {}
    except yaml.YAMLError as e:
        raise _malformed_error(e, yaml_lines, yaml_start_line, file) from e

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise FrontmatterError(
            f"Front-matter in {location} must be a YAML mapping, got {type(data).__name__}\n"
            f"  Suggestion: Use 'key: value' pairs between the '---' lines",
            kind=ErrorKind.FRONTMATTER_MALFORMED,
            file=file,
            line=yaml_start_line,
        )

    frontmatter = {str(key): value for key, value in data.items()}
    markdown = "\n".join(lines[end + 1 :])
    logger.debug(
        "Extracted front-matter from %s: %d keys, body starts at line %d",
        location,
        len(frontmatter),
        end + 2,
    )
    return FrontmatterResult(
        frontmatter=frontmatter,
        markdown=markdown,
        frontmatter_lines=yaml_lines,
        frontmatter_start=yaml_start_line,
        markdown_start=end + 2,
    )


def _malformed_error(
    error: yaml.YAMLError,
    yaml_lines: list[str],
    yaml_start_line: int,
    file: str | None,
) -> FrontmatterError:
    """Build a FrontmatterError with source-file line numbers."""
    mark = getattr(error, "problem_mark", None) or getattr(error, "context_mark", None)
    problem = getattr(error, "problem", None) or str(error)
    location = file or "<input>"

    if mark is None:
        return FrontmatterError(
            f"Invalid YAML in front-matter of {location}: {problem}",
            kind=ErrorKind.FRONTMATTER_MALFORMED,
            file=file,
        )

    line_in_yaml = mark.line
    source_line = line_in_yaml + yaml_start_line
    column = mark.column + 1
    snippet = yaml_lines[line_in_yaml] if 0 <= line_in_yaml < len(yaml_lines) else ""
    message = (
        f"Invalid YAML in front-matter of {location}:{source_line}:{column}: {problem}\n"
        f"  {source_line:>4} | {snippet}\n"
        f"  Suggestion: Check indentation and quoting near line {source_line}"
    )
    return FrontmatterError(
        message,
        kind=ErrorKind.FRONTMATTER_MALFORMED,
        file=file,
        line=source_line,
        column=column,
        snippet=snippet,
    )


def parse_workflow_file(path: Path, required: bool = True) -> FrontmatterResult:
    """Read a Markdown file and extract its front-matter.

    Raises:
        CompilerIOError: If the file cannot be read.
        FrontmatterError: If the front-matter is missing or malformed.

    """
    try:
        content = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise CompilerIOError(f"Cannot read workflow file {path}: {e}", path=str(path)) from e
    return extract_frontmatter(content, file=str(path), required=required)


_HEADING_PATTERN = re.compile(r"^(#{1,6})\s+(.*?)\s*#*\s*$")


def extract_markdown_section(content: str, section: str) -> str | None:
    """Return the Markdown section whose heading matches section.

    The section runs from its heading up to the next heading of the same
    or higher level. Matching ignores case and surrounding whitespace.

    Returns:
        Section text including its heading, or None if not found.

    """
    lines = content.split("\n")
    wanted = section.strip().lower()
    begin = None
    level = 0
    for index, line in enumerate(lines):
        match = _HEADING_PATTERN.match(line)
        if not match:
            continue
        if begin is None:
            if match.group(2).strip().lower() == wanted:
                begin = index
                level = len(match.group(1))
        elif len(match.group(1)) <= level:
            return "\n".join(lines[begin:index]).rstrip() + "\n"
    if begin is None:
        return None
    return "\n".join(lines[begin:]).rstrip() + "\n"


def extract_workflow_name(markdown: str) -> str | None:
    """Return the text of the first H1 heading, if any."""
    for line in markdown.split("\n"):
        stripped = line.strip()
        if stripped.startswith("# "):
            return stripped[2:].strip() or None
    return None
