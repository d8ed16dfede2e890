"""agentic-workflow-compiler - compile agentic workflow Markdown into GitHub Actions lock files."""

from importlib.metadata import version

try:
    __version__ = version("agentic-workflow-compiler")
except Exception:
    __version__ = "0.0.0-dev"
