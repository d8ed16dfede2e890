"""Workflow compiler passes.

The entry point is compile_workflow(); the other modules are the passes
it runs, importable on their own for tests and tooling.
"""

from aw_compiler.compiler.context import CompileContext
from aw_compiler.compiler.emitter import lock_file_path, render_lock_file
from aw_compiler.compiler.pipeline import CompileResult, compile_workflow, find_workflow_files

__all__ = [
    "CompileContext",
    "CompileResult",
    "compile_workflow",
    "find_workflow_files",
    "lock_file_path",
    "render_lock_file",
]
