"""Tests for prompt assembly and expression placeholders."""

from collections.abc import Callable

from aw_compiler.compiler.context import CompileContext
from aw_compiler.compiler.engines.base import PROMPT_PATH
from aw_compiler.compiler.imports import ImportResult
from aw_compiler.compiler.prompt import build_prompt, extract_expressions, prompt_steps
from aw_compiler.compiler.types import WorkflowData

MakeData = Callable[..., WorkflowData]


class TestBuildPrompt:
    """Tests for build_prompt()."""

    def test_body_only(self, make_data: MakeData) -> None:
        """Without imports or context sections the prompt is the body."""
        assert build_prompt(make_data(markdown="\n# Triage\nLabel the issue.\n\n")) == (
            "# Triage\nLabel the issue.\n"
        )

    def test_section_order(self, make_data: MakeData) -> None:
        """Inlined imports, runtime macros, body, then context sections."""
        imports = ImportResult(
            inlined_markdown="Shared rules\n\n",
            runtime_imports=[".github/workflows/shared/tools.md"],
        )
        data = make_data(
            {"tools": {"cache-memory": True}, "safe-outputs": {"add-comment": None}},
            markdown="Body\n",
            imports=imports,
        )
        prompt = build_prompt(data)
        assert prompt.index("Shared rules") < prompt.index(
            "{{#runtime-import .github/workflows/shared/tools.md}}"
        )
        assert prompt.index("{{#runtime-import") < prompt.index("Body")
        assert prompt.index("Body") < prompt.index("## Cache Memory")
        assert prompt.index("## Cache Memory") < prompt.index("## Safe Outputs")
        assert "`add_comment`" in prompt

    def test_agent_file_not_runtime_imported(self, make_data: MakeData) -> None:
        """The engine reads agent files itself."""
        imports = ImportResult(
            runtime_imports=[".github/agents/reviewer.md"], agent_file=".github/agents/reviewer.md"
        )
        assert "runtime-import" not in build_prompt(make_data(imports=imports))

    def test_remote_import_macro_once(self, make_data: MakeData) -> None:
        """Remote and repository imports each get exactly one macro."""
        imports = ImportResult(
            runtime_imports=["octo/tools/shared/a.md@main"],
            remote_imports=["octo/tools/shared/a.md@main"],
            repository_imports=["octo/tools@v1"],
        )
        prompt = build_prompt(make_data(imports=imports))
        assert prompt.count("{{#runtime-import octo/tools/shared/a.md@main}}") == 1
        assert prompt.count("{{#runtime-import octo/tools@v1}}") == 1

    def test_checkouts_listed_when_several(self, make_data: MakeData) -> None:
        """More than one checkout adds the checkout overview."""
        data = make_data({"checkout": [{"path": "."}, {"repository": "o/lib", "path": "lib"}]})
        assert "`$GITHUB_WORKSPACE/lib`" in build_prompt(data)


class TestExtractExpressions:
    """Tests for extract_expressions()."""

    def test_simple_paths(self) -> None:
        """Property paths get readable names; repeats share one placeholder."""
        text, mapping = extract_expressions(
            "Issue ${{ github.event.issue.number }} in ${{github.repository}} "
            "(#${{ github.event.issue.number }})"
        )
        assert text == (
            "Issue __GH_AW_GITHUB_EVENT_ISSUE_NUMBER__ in __GH_AW_GITHUB_REPOSITORY__ "
            "(#__GH_AW_GITHUB_EVENT_ISSUE_NUMBER__)"
        )
        assert mapping == {
            "GH_AW_GITHUB_EVENT_ISSUE_NUMBER": "${{ github.event.issue.number }}",
            "GH_AW_GITHUB_REPOSITORY": "${{ github.repository }}",
        }

    def test_complex_expression_hashed(self) -> None:
        """Other expressions get a stable hashed name."""
        first, mapping = extract_expressions("${{ inputs.a || 'x' }}")
        second, _ = extract_expressions("${{ inputs.a || 'x' }}")
        (name,) = mapping
        assert name.startswith("GH_AW_EXPR_")
        assert first == second == f"__{name}__"

    def test_no_expressions(self) -> None:
        """Plain text is unchanged."""
        assert extract_expressions("$HOME and {{ x }}") == ("$HOME and {{ x }}", {})


class TestPromptSteps:
    """Tests for prompt_steps()."""

    def test_plain_prompt(self, make_data: MakeData, ctx: CompileContext) -> None:
        """A prompt without expressions is written and printed."""
        steps = prompt_steps(make_data(markdown="Hello\n"), ctx)
        assert [s["name"] for s in steps] == ["Create prompt", "Print prompt"]
        assert f"cat << 'GH_AW_PROMPT_EOF' > \"{PROMPT_PATH}\"\nHello\nGH_AW_PROMPT_EOF\n" in steps[0]["run"]

    def test_expressions_and_imports(self, make_data: MakeData, ctx: CompileContext) -> None:
        """Expressions never reach the heredoc; runtime imports add a render step."""
        imports = ImportResult(runtime_imports=[".github/workflows/shared/a.md"])
        steps = prompt_steps(
            make_data(markdown="Repo ${{ github.repository }}\n", imports=imports), ctx
        )
        assert [s["name"] for s in steps] == [
            "Create prompt",
            "Substitute placeholders",
            "Interpolate variables and render templates",
            "Print prompt",
        ]
        assert "${{" not in steps[0]["run"]
        assert steps[1]["env"]["GH_AW_GITHUB_REPOSITORY"] == "${{ github.repository }}"
