"""Command-line entry point for awc.

Commands:
    compile: Compile agentic workflow Markdown into lock files
    version: Print the compiler version
"""

import typer

from aw_compiler import __version__
from aw_compiler.cli_utils import console
from aw_compiler.commands.compile import compile_command

app = typer.Typer(
    name="awc",
    help="Compile agentic workflow Markdown files into GitHub Actions lock files",
    no_args_is_help=True,
    add_completion=False,
)

app.command("compile")(compile_command)


@app.command("version")
def version_command() -> None:
    """Print the compiler version."""
    console.print(f"awc {__version__}", highlight=False)


def main() -> None:
    """Console script entry point."""
    app()


if __name__ == "__main__":
    main()
