"""Compile one agentic workflow Markdown file into its lock file.

The passes run in a fixed order: front-matter, imports, model, engine,
validation, job graph, emission. Any error stops the pipeline before
the lock file is touched, so a failed compile never leaves a partial
or stale-but-rewritten file behind.

Public API:
    CompileResult: Outcome of one successful compile
    compile_workflow: Compile a single source file
    find_workflow_files: Expand CLI path arguments into source files
"""

from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass, field
from pathlib import Path

from aw_compiler.compiler.action_mode import detect_action_mode
from aw_compiler.compiler.action_pins import PinResolver, resolve_pin
from aw_compiler.compiler.context import CompileContext
from aw_compiler.compiler.emitter import LOCK_SUFFIX, lock_file_path, render_lock_file, write_lock_file
from aw_compiler.compiler.engines.base import get_engine
from aw_compiler.compiler.frontmatter import parse_workflow_file
from aw_compiler.compiler.imports import ImportResolver, compute_frontmatter_hash, relative_from_github_dir
from aw_compiler.compiler.jobs import build_workflow
from aw_compiler.compiler.model import build_workflow_data
from aw_compiler.compiler.validation import validate_workflow
from aw_compiler.core.config import CompilerConfig, get_config
from aw_compiler.core.exceptions import CompilerIOError

logger = logging.getLogger(__name__)

DEFAULT_WORKFLOWS_DIR = Path(".github/workflows")


@dataclass
class CompileResult:
    """Outcome of a successful compile.

    Attributes:
        source: Source Markdown file.
        lock_path: Lock file path (written unless no_write was requested).
        content: Rendered lock file text.
        warnings: Warning messages raised during the compile.
        written: Whether the lock file was written to disk.

    """

    source: Path
    lock_path: Path
    content: str
    warnings: list[str] = field(default_factory=list)
    written: bool = False

    @property
    def warning_count(self) -> int:
        return len(self.warnings)


def _header_source(path: Path) -> str:
    relative = relative_from_github_dir(path)
    return relative if relative.startswith(".github/") else path.name


def compile_workflow(
    source: Path,
    config: CompilerConfig | None = None,
    *,
    pin: PinResolver = resolve_pin,
    write: bool = True,
) -> CompileResult:
    """Compile source into `<stem>.lock.yml` next to it.

    Args:
        source: Workflow Markdown file.
        config: Compiler configuration; defaults to get_config().
        pin: Action pin resolver hook.
        write: Write the lock file (False renders only).

    Returns:
        CompileResult with the rendered text and collected warnings.

    Raises:
        AwCompilerError: Any front-matter, import, schema, validation or
            I/O failure. No file is written in that case.

    """
    config = config or get_config()
    if source.name.endswith(LOCK_SUFFIX) or source.suffix != ".md":
        raise CompilerIOError(
            f"Not a workflow source: {source}\n  Suggestion: Pass the .md file, not the generated lock file",
            path=str(source),
        )
    logger.debug("Compiling %s", source)

    parsed = parse_workflow_file(source)
    frontmatter = parsed.frontmatter
    inlined = frontmatter.get("inlined-imports", False) is True
    imports = ImportResolver(inlined=inlined).resolve(source, frontmatter)
    frontmatter_hash = compute_frontmatter_hash(frontmatter, imports, parsed.markdown)

    data = build_workflow_data(
        frontmatter, parsed.markdown, source, imports, frontmatter_hash=frontmatter_hash
    )
    action_mode = detect_action_mode(config.action_mode, data.features)
    data = dataclasses.replace(data, action_mode=action_mode)
    if data.strict and not config.strict:
        config = config.model_copy(update={"strict": True})

    ctx = CompileContext(config=config, action_mode=action_mode, pin=pin)
    engine = get_engine(data.engine.id)
    if config.skip_validation:
        logger.debug("Skipping validation for %s", source)
    else:
        validate_workflow(data, engine, ctx)

    workflow = build_workflow(data, engine, ctx)
    content = render_lock_file(
        workflow,
        frontmatter_hash=frontmatter_hash,
        version=config.cli_version,
        source=_header_source(source.resolve()),
        description=data.description,
        workflow_version=data.version,
    )

    lock_path = lock_file_path(source)
    result = CompileResult(source=source, lock_path=lock_path, content=content, warnings=list(ctx.warnings.messages))
    if write:
        write_lock_file(lock_path, content)
        result.written = True
    logger.debug(
        "Compiled %s -> %s (%d job(s), %d warning(s))",
        source,
        lock_path,
        len(workflow.get("jobs", {})),
        result.warning_count,
    )
    return result


def find_workflow_files(paths: list[Path]) -> list[Path]:
    """Expand path arguments into workflow sources.

    Files are taken as given; directories contribute every `*.md` file
    directly inside them in sorted order. With no arguments the
    `.github/workflows` directory is used.

    Raises:
        CompilerIOError: If a path does not exist.

    """
    if not paths:
        paths = [DEFAULT_WORKFLOWS_DIR]
    files: list[Path] = []
    for path in paths:
        if path.is_dir():
            files.extend(sorted(p for p in path.glob("*.md") if p.is_file()))
        elif path.is_file():
            files.append(path)
        else:
            raise CompilerIOError(f"No such file or directory: {path}", path=str(path))
    return files
