"""Import resolution for workflow documents.

Walks the `imports:` graph depth-first, left to right. Each imported file
is read once per compile through ImportCache, which memoizes parsed
documents by canonical path and content hash. Cycles are reported with
the full import chain. Configuration declared by imported fragments is
merged into an ImportResult that the semantic model consumes.

Imports are either inlined into the prompt (when `inlined-imports: true`
or when the import passes `inputs`) or left as `{{#runtime-import ...}}`
macros that the workflow expands at run time.

Public API:
    ImportSpec: One entry of an `imports:` list
    parse_import_specs: Convert the raw `imports:` value into ImportSpecs
    is_agent_file: True for custom agent files under .github/agents/
    is_repository_import: True for owner/repo@ref entries
    is_remote_import: True for owner/repo/path[@ref] entries
    ImportCache: Memoized file reader keyed by path and content hash
    ImportedFile: A resolved import
    ImportResult: Everything merged from the import graph
    ImportResolver: Depth-first resolver
    compute_frontmatter_hash: Stable hash of a workflow and its imports
"""

from __future__ import annotations

import hashlib
import json
import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from aw_compiler.compiler.frontmatter import (
    FrontmatterResult,
    extract_frontmatter,
    extract_markdown_section,
)
from aw_compiler.compiler.permissions import parse_permissions
from aw_compiler.core.exceptions import (
    CompilerIOError,
    ErrorKind,
    ImportResolutionError,
    SchemaError,
    ValidationError,
)

logger = logging.getLogger(__name__)

_REPOSITORY_IMPORT_PATTERN = re.compile(r"^[A-Za-z0-9_.-]+/[A-Za-z0-9_.-]+@[A-Za-z0-9_./-]+$")
_INPUT_REFERENCE_PATTERN = re.compile(r"\$\{\{\s*github\.aw\.inputs\.([A-Za-z0-9_-]+)\s*\}\}")


@dataclass(frozen=True)
class ImportSpec:
    """One entry of an `imports:` list.

    Attributes:
        path: File path (relative to the importing file) without section.
        section: Optional heading name from `file.md#Section`.
        inputs: Values substituted for `${{ github.aw.inputs.<name> }}`.
        raw: The entry as written, used in messages.

    """

    path: str
    section: str | None = None
    inputs: tuple[tuple[str, Any], ...] = ()
    raw: str = ""

    @property
    def inputs_dict(self) -> dict[str, Any]:
        """Inputs as a plain dict."""
        return dict(self.inputs)


def _split_section(entry: str) -> tuple[str, str | None]:
    if "#" in entry:
        path, section = entry.split("#", 1)
        return path, section or None
    return entry, None


def parse_import_specs(value: Any) -> list[ImportSpec]:
    """Convert the raw `imports:` value into ImportSpecs.

    Raises:
        SchemaError: When the value is not a list of strings or
            {path, inputs} mappings.

    """
    if value is None:
        return []
    if not isinstance(value, list):
        raise SchemaError(
            "imports field must be an array of strings or objects",
            field="imports",
        )
    specs: list[ImportSpec] = []
    for item in value:
        if isinstance(item, str):
            path, section = _split_section(item.strip())
            specs.append(ImportSpec(path=path, section=section, raw=item))
        elif isinstance(item, dict):
            raw_path = item.get("path")
            if raw_path is None:
                raise SchemaError("import object must have a 'path' field", field="imports")
            if not isinstance(raw_path, str):
                raise SchemaError("import 'path' must be a string", field="imports")
            inputs = item.get("inputs", {})
            if inputs is None:
                inputs = {}
            if not isinstance(inputs, dict):
                raise SchemaError("import 'inputs' must be an object", field="imports")
            path, section = _split_section(raw_path.strip())
            specs.append(
                ImportSpec(
                    path=path,
                    section=section,
                    inputs=tuple((str(k), v) for k, v in inputs.items()),
                    raw=raw_path,
                )
            )
        else:
            raise SchemaError(
                "import item must be a string or an object with 'path' field",
                field="imports",
            )
    return specs


def is_agent_file(path: str | Path) -> bool:
    """True for Markdown files under a .github/agents/ directory.

    Examples:
        >>> is_agent_file("/repo/.github/agents/helper.agent.md")
        True
        >>> is_agent_file(".github/workflows/test.md")
        False

    """
    text = str(path).replace("\\", "/")
    if not text.startswith("/"):
        text = "/" + text
    return "/.github/agents/" in text and text.lower().endswith(".md")


def is_repository_import(path: str) -> bool:
    """True for repository-only imports (`owner/repo@ref`)."""
    return bool(_REPOSITORY_IMPORT_PATTERN.match(path))


def is_remote_import(path: str) -> bool:
    """True for workflowspec imports (`owner/repo/path/file.md[@ref]`)."""
    if path.startswith((".", "/")) or is_repository_import(path):
        return False
    without_ref = path.split("@", 1)[0]
    parts = without_ref.split("/")
    if len(parts) < 3:
        return False
    # Local paths never carry a ref
    return "@" in path


def relative_from_github_dir(path: Path, base: Path | None = None) -> str:
    """Return the path from `.github/` onward.

    Paths outside a `.github/` tree are made relative to base (the
    directory of the root workflow) so no build-machine location ends up
    in a lock file. Without base, only the file name is kept.

    Examples:
        >>> relative_from_github_dir(Path("/repo/.github/workflows/shared/a.md"))
        '.github/workflows/shared/a.md'
        >>> relative_from_github_dir(Path("/tmp/wf/shared/a.md"), Path("/tmp/wf"))
        'shared/a.md'

    """
    text = path.as_posix()
    marker = "/.github/"
    index = text.find(marker)
    if index >= 0:
        return text[index + 1 :]
    if text.startswith(".github/"):
        return text
    if base is None:
        return path.name
    return Path(os.path.relpath(path, base)).as_posix()


@dataclass
class CachedDocument:
    """Parsed document memoized by ImportCache."""

    path: Path
    content: str
    content_hash: str
    parsed: FrontmatterResult


class ImportCache:
    """Memoized reader for imported files.

    Entries are keyed by canonical (resolved) path and validated by the
    sha256 of the file content, so a file that changes between compiles
    is parsed again while identical content is parsed once.
    """

    def __init__(self) -> None:
        self._entries: dict[Path, CachedDocument] = {}
        self.hits = 0
        self.misses = 0

    def read(self, path: Path) -> CachedDocument:
        """Return the parsed document at path.

        Raises:
            CompilerIOError: If the file cannot be read.
            FrontmatterError: If the front-matter is malformed.

        """
        canonical = path.resolve()
        try:
            content = canonical.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise CompilerIOError(
                f"Cannot read imported file {canonical}: {e}", path=str(canonical)
            ) from e
        digest = hashlib.sha256(content.encode("utf-8")).hexdigest()
        cached = self._entries.get(canonical)
        if cached is not None and cached.content_hash == digest:
            self.hits += 1
            return cached
        self.misses += 1
        parsed = extract_frontmatter(content, file=str(canonical), required=False)
        document = CachedDocument(
            path=canonical, content=content, content_hash=digest, parsed=parsed
        )
        self._entries[canonical] = document
        return document

    def __len__(self) -> int:
        return len(self._entries)


@dataclass
class ImportedFile:
    """A resolved local import.

    Attributes:
        spec: The import entry that produced this file.
        path: Canonical absolute path.
        relative_path: Path from `.github/` onward (runtime-import form).
        content_hash: sha256 of the file content.
        frontmatter: Parsed front-matter mapping.
        markdown: Body text (restricted to the requested section).
        agent: True for custom agent files.
        inlined: True when the body is inlined at compile time.

    """

    spec: ImportSpec
    path: Path
    relative_path: str
    content_hash: str
    frontmatter: dict[str, Any]
    markdown: str
    agent: bool = False
    inlined: bool = False


@dataclass
class ImportResult:
    """Configuration merged from the import graph.

    Maps merge with first-declaration-wins; lists are unioned in
    traversal order; permissions keep the highest level.
    """

    files: list[ImportedFile] = field(default_factory=list)
    import_paths: list[str] = field(default_factory=list)
    repository_imports: list[str] = field(default_factory=list)
    remote_imports: list[str] = field(default_factory=list)
    runtime_imports: list[str] = field(default_factory=list)
    inlined_markdown: str = ""
    agent_file: str | None = None
    agent_import_spec: str | None = None
    tools: dict[str, Any] = field(default_factory=dict)
    mcp_servers: dict[str, Any] = field(default_factory=dict)
    safe_outputs: dict[str, Any] = field(default_factory=dict)
    steps: list[Any] = field(default_factory=list)
    network_allowed: list[str] = field(default_factory=list)
    permissions: dict[str, str] = field(default_factory=dict)
    features: dict[str, Any] = field(default_factory=dict)
    engines: list[Any] = field(default_factory=list)


def merge_tool_configs(base: dict[str, Any], extra: dict[str, Any]) -> dict[str, Any]:
    """Deep-merge extra into a copy of base.

    Keys present in base win for scalars; nested mappings merge
    recursively; lists are unioned keeping base order first.
    """
    merged = dict(base)
    for key, value in extra.items():
        if key not in merged:
            merged[key] = value
            continue
        current = merged[key]
        if isinstance(current, dict) and isinstance(value, dict):
            merged[key] = merge_tool_configs(current, value)
        elif isinstance(current, list) and isinstance(value, list):
            merged[key] = current + [item for item in value if item not in current]
    return merged


def _substitute_inputs(markdown: str, inputs: dict[str, Any]) -> str:
    if not inputs:
        return markdown

    def replace(match: re.Match[str]) -> str:
        name = match.group(1)
        if name not in inputs:
            return match.group(0)
        value = inputs[name]
        if isinstance(value, bool):
            return "true" if value else "false"
        return str(value)

    return _INPUT_REFERENCE_PATTERN.sub(replace, markdown)


class ImportResolver:
    """Depth-first import resolver.

    Args:
        cache: Shared ImportCache for this compile.
        inlined: Value of the workflow's `inlined-imports` flag.

    """

    def __init__(self, cache: ImportCache | None = None, inlined: bool = False) -> None:
        self.cache = cache or ImportCache()
        self.inlined = inlined
        self._base_dir: Path | None = None

    def resolve(self, source_path: Path, frontmatter: dict[str, Any]) -> ImportResult:
        """Resolve every import reachable from the workflow at source_path.

        Args:
            source_path: Path of the main workflow file.
            frontmatter: Parsed front-matter of the main workflow.

        Returns:
            ImportResult with merged configuration.

        Raises:
            ImportResolutionError: ImportNotFound, ImportCycle or
                ImportAgentWithInlined, with the chain of files.
            SchemaError: On malformed `imports:` entries or lock-file imports.
            ValidationError: When more than one agent file is imported.

        """
        result = ImportResult()
        root = source_path.resolve()
        self._base_dir = root.parent
        specs = parse_import_specs(frontmatter.get("imports"))
        if not specs:
            return result
        logger.debug("Resolving %d direct imports of %s", len(specs), root)
        visited: set[Path] = set()
        self._walk(root, specs, [root], visited, result)
        logger.debug(
            "Resolved %d imports (%d runtime, %d inlined) for %s",
            len(result.files),
            len(result.runtime_imports),
            sum(1 for f in result.files if f.inlined),
            root,
        )
        return result

    def _walk(
        self,
        importer: Path,
        specs: list[ImportSpec],
        stack: list[Path],
        visited: set[Path],
        result: ImportResult,
    ) -> None:
        for spec in specs:
            if is_repository_import(spec.path):
                logger.debug("Deferring repository import %s to run time", spec.path)
                if spec.path not in result.repository_imports:
                    result.repository_imports.append(spec.path)
                continue
            if is_remote_import(spec.path):
                logger.debug("Deferring remote import %s to run time", spec.raw)
                if spec.raw not in result.remote_imports:
                    result.remote_imports.append(spec.raw)
                    result.runtime_imports.append(spec.raw)
                continue

            target = self._resolve_path(importer, spec, stack)

            if target in stack:
                cycle = [p.name for p in stack[stack.index(target) :]] + [target.name]
                raise ImportResolutionError(
                    f"Import cycle detected: {' -> '.join(cycle)}\n"
                    f"  Suggestion: Remove one of the imports so the files no longer import each other",
                    kind=ErrorKind.IMPORT_CYCLE,
                    chain=[p.as_posix() for p in stack] + [target.as_posix()],
                )
            if target in visited:
                logger.debug("Skipping already imported file %s", target)
                continue
            visited.add(target)
            self._process(target, spec, stack, visited, result)

    def _resolve_path(self, importer: Path, spec: ImportSpec, stack: list[Path]) -> Path:
        if spec.path.lower().endswith(".lock.yml"):
            raise SchemaError(
                f"cannot import .lock.yml files: '{spec.raw or spec.path}'. "
                "Lock files are compiled outputs. Import the source .md file instead",
                field="imports",
            )
        candidate = Path(spec.path)
        if not candidate.is_absolute():
            candidate = importer.parent / candidate
        if not candidate.is_file():
            chain = [p.as_posix() for p in stack]
            raise ImportResolutionError(
                f"Import not found: '{spec.raw or spec.path}'\n"
                f"  Resolved to: {candidate}\n"
                f"  Imported from: {' -> '.join(chain)}\n"
                f"  Suggestion: Check the path is relative to the importing file",
                kind=ErrorKind.IMPORT_NOT_FOUND,
                chain=chain + [candidate.as_posix()],
            )
        return candidate.resolve()

    def _process(
        self,
        target: Path,
        spec: ImportSpec,
        stack: list[Path],
        visited: set[Path],
        result: ImportResult,
    ) -> None:
        document = self.cache.read(target)
        frontmatter = document.parsed.frontmatter
        markdown = document.parsed.markdown
        if spec.section:
            section = extract_markdown_section(markdown, spec.section)
            if section is None:
                raise ImportResolutionError(
                    f"Section '{spec.section}' not found in imported file {target}",
                    kind=ErrorKind.IMPORT_NOT_FOUND,
                    chain=[p.as_posix() for p in stack] + [target.as_posix()],
                )
            markdown = section

        inputs = spec.inputs_dict
        agent = is_agent_file(target)
        relative = relative_from_github_dir(target, self._base_dir)
        imported = ImportedFile(
            spec=spec,
            path=target,
            relative_path=relative,
            content_hash=document.content_hash,
            frontmatter=frontmatter,
            markdown=_substitute_inputs(markdown, inputs),
            agent=agent,
        )
        result.files.append(imported)
        result.import_paths.append(target.as_posix())

        if agent:
            self._register_agent(imported, stack, result)
            return

        self._merge_frontmatter(frontmatter, result)
        if self.inlined or inputs:
            imported.inlined = True
            self._append_markdown(imported.markdown, result)
        else:
            if spec.section:
                result.runtime_imports.append(f"{relative}#{spec.section}")
            else:
                result.runtime_imports.append(relative)

        nested = parse_import_specs(frontmatter.get("imports"))
        if nested:
            self._walk(target, nested, stack + [target], visited, result)

    def _register_agent(
        self, imported: ImportedFile, stack: list[Path], result: ImportResult
    ) -> None:
        if self.inlined:
            raise ImportResolutionError(
                f"inlined-imports cannot be used with agent file imports: '{imported.relative_path}'\n"
                f"  Why it's needed: Agent files require runtime access and are not resolved "
                f"from inlined sources\n"
                f"  How to fix: Remove 'inlined-imports: true' or the agent file import",
                kind=ErrorKind.IMPORT_AGENT_WITH_INLINED,
                chain=[p.as_posix() for p in stack] + [imported.path.as_posix()],
            )
        if result.agent_file is not None:
            raise ValidationError(
                f"multiple agent files found in imports: '{result.agent_file}' and "
                f"'{imported.relative_path}'. Only one agent file is allowed per workflow"
            )
        result.agent_file = imported.relative_path
        result.agent_import_spec = imported.spec.raw or imported.spec.path
        if imported.spec.inputs:
            imported.inlined = True
            self._append_markdown(imported.markdown, result)
        else:
            result.runtime_imports.append(imported.relative_path)
        logger.debug("Found agent file %s", result.agent_file)

    @staticmethod
    def _append_markdown(markdown: str, result: ImportResult) -> None:
        if not markdown.strip():
            return
        text = markdown.strip("\n") + "\n\n"
        result.inlined_markdown += text

    @staticmethod
    def _merge_frontmatter(frontmatter: dict[str, Any], result: ImportResult) -> None:
        tools = frontmatter.get("tools")
        if isinstance(tools, dict):
            result.tools = merge_tool_configs(result.tools, tools)
        servers = frontmatter.get("mcp-servers")
        if isinstance(servers, dict):
            for name, config in servers.items():
                result.mcp_servers.setdefault(str(name), config)
        safe_outputs = frontmatter.get("safe-outputs")
        if isinstance(safe_outputs, dict):
            for name, config in safe_outputs.items():
                result.safe_outputs.setdefault(str(name), config)
        steps = frontmatter.get("steps")
        if isinstance(steps, list):
            result.steps.extend(steps)
        network = frontmatter.get("network")
        if isinstance(network, dict) and isinstance(network.get("allowed"), list):
            for domain in network["allowed"]:
                if isinstance(domain, str) and domain not in result.network_allowed:
                    result.network_allowed.append(domain)
        permissions = frontmatter.get("permissions")
        if permissions is not None:
            merged = parse_permissions(result.permissions)
            merged.merge(parse_permissions(permissions))
            result.permissions = merged.to_dict()
        features = frontmatter.get("features")
        if isinstance(features, dict):
            for name, value in features.items():
                result.features.setdefault(str(name), value)
        engine = frontmatter.get("engine")
        if engine is not None:
            result.engines.append(engine)


def compute_frontmatter_hash(
    frontmatter: dict[str, Any],
    imports: ImportResult | None = None,
    markdown: str = "",
) -> str:
    """Return a stable sha256 over the workflow front-matter and its imports.

    The hash covers the canonical JSON of the main front-matter, the prompt
    body and, in traversal order, the relative path and content hash of every import.
    Identical inputs always produce the identical hash.
    """
    payload: dict[str, Any] = {"frontmatter": frontmatter, "markdown": markdown}
    if imports is not None:
        payload["imports"] = [[f.relative_path, f.content_hash] for f in imports.files]
        payload["remote"] = list(imports.remote_imports) + list(imports.repository_imports)
    canonical = json.dumps(payload, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()
