"""
E2E tests for the CLI interface using Click's CliRunner.
"""

from pathlib import Path

from click.testing import CliRunner

from schemedoc.cli import main
from schemedoc.document import Document

GUIDE = """# Counting

```scheme-examples session=count
(define n 5)
(* n 2)
```

```scheme-examples
(/ 1 0)
```
"""

RENDERED = """# Counting

```scheme
> (define n 5)
> (* n 2)
10
```

```scheme
> (/ 1 0)
div-by-zero: /: division by zero
```
"""


class TestBuildCommand:
    """Test `schemedoc build`."""

    def test_build_to_file(self):
        runner = CliRunner()
        with runner.isolated_filesystem():
            Path("guide.md").write_text(GUIDE)
            result = runner.invoke(main, ["build", "guide.md", "-o", "out.md"])

            assert result.exit_code == 0, result.output
            assert Path("out.md").read_text() == RENDERED

    def test_build_to_stdout(self):
        runner = CliRunner()
        with runner.isolated_filesystem():
            Path("guide.md").write_text(GUIDE)
            result = runner.invoke(main, ["build", "guide.md"])

            assert result.exit_code == 0, result.output
            assert "> (* n 2)\n10\n" in result.output
            assert "1 error(s)" in result.output

    def test_build_twice_is_identical(self):
        runner = CliRunner()
        with runner.isolated_filesystem():
            Path("guide.md").write_text(GUIDE)
            runner.invoke(main, ["build", "guide.md", "-o", "first.md"])
            runner.invoke(main, ["build", "guide.md", "-o", "second.md"])

            assert Path("first.md").read_bytes() == Path("second.md").read_bytes()

    def test_build_save_json(self):
        runner = CliRunner()
        with runner.isolated_filesystem():
            Path("guide.md").write_text(GUIDE)
            result = runner.invoke(main, ["build", "guide.md", "-o", "out.md", "--save-json", "guide.json"])

            assert result.exit_code == 0, result.output
            doc = Document.load(Path("guide.json"))
            _, block = doc.example_blocks()[0]
            assert block.outputs[1][0]["data"]["text/plain"] == "10"

    def test_build_persist_writes_checkpoint(self, tmp_path):
        runner = CliRunner()
        with runner.isolated_filesystem():
            Path("guide.md").write_text(GUIDE)
            result = runner.invoke(main, ["build", "guide.md", "-o", "out.md", "--persist"])

            assert result.exit_code == 0, result.output
            assert (tmp_path / "sessions" / "checkpoints" / "guide.count.checkpoint").exists()

    def test_build_unterminated_block(self):
        runner = CliRunner()
        with runner.isolated_filesystem():
            Path("broken.md").write_text("```scheme-examples\n(+ 1 2)\n")
            result = runner.invoke(main, ["build", "broken.md"])

            assert result.exit_code == 1
            assert "unterminated" in result.output

    def test_build_missing_file(self):
        runner = CliRunner()
        result = runner.invoke(main, ["build", "does-not-exist.md"])
        assert result.exit_code != 0

    def test_verbose_flag(self):
        runner = CliRunner()
        with runner.isolated_filesystem():
            Path("guide.md").write_text(GUIDE)
            result = runner.invoke(main, ["-v", "build", "guide.md", "-o", "out.md"])

            assert result.exit_code == 0, result.output
            assert Path("out.md").read_text() == RENDERED


class TestRunCommand:
    """Test `schemedoc run`."""

    def test_run_shows_blocks_and_errors(self):
        runner = CliRunner()
        with runner.isolated_filesystem():
            Path("guide.md").write_text(GUIDE)
            result = runner.invoke(main, ["run", "guide.md"])

            assert result.exit_code == 0, result.output
            assert "Block 1" in result.output
            assert "session=count" in result.output
            assert "10" in result.output
            assert "div-by-zero" in result.output
            assert "1 error(s)" in result.output

    def test_run_clean_document(self):
        runner = CliRunner()
        with runner.isolated_filesystem():
            Path("ok.md").write_text("```scheme-examples\n(+ 1 2)\n```\n")
            result = runner.invoke(main, ["run", "ok.md"])

            assert result.exit_code == 0, result.output
            assert "All 1 fragments evaluated successfully" in result.output

    def test_run_without_examples(self):
        runner = CliRunner()
        with runner.isolated_filesystem():
            Path("prose.md").write_text("Just words.\n")
            result = runner.invoke(main, ["run", "prose.md"])

            assert result.exit_code == 0, result.output
            assert "No example blocks" in result.output


class TestReplCommand:
    """Test `schemedoc repl`."""

    def test_repl_evaluates_lines(self):
        runner = CliRunner()
        result = runner.invoke(main, ["repl"], input="(define x 2)\n(* x 21)\n:quit\n")

        assert result.exit_code == 0, result.output
        assert "42" in result.output

    def test_repl_multiline_input(self):
        runner = CliRunner()
        result = runner.invoke(main, ["repl"], input="(* 6\n   7)\n:q\n")

        assert result.exit_code == 0, result.output
        assert "42" in result.output

    def test_repl_reports_errors(self):
        runner = CliRunner()
        result = runner.invoke(main, ["repl"], input="(/ 1 0)\n")

        assert result.exit_code == 0, result.output
        assert "div-by-zero" in result.output

    def test_repl_names_and_reset(self):
        runner = CliRunner()
        result = runner.invoke(main, ["repl"], input="(define alpha 1)\n:names\n:reset\nalpha\n:quit\n")

        assert result.exit_code == 0, result.output
        assert "alpha" in result.output
        assert "Session reset" in result.output
        assert "unbound-variable" in result.output

    def test_repl_save_then_list(self):
        runner = CliRunner()
        result = runner.invoke(main, ["repl"], input="(define a 1)\n:save mine\n:quit\n")
        assert result.exit_code == 0, result.output
        assert "Saved to" in result.output

        listed = runner.invoke(main, ["sessions"])
        assert listed.exit_code == 0, listed.output
        assert "mine" in listed.output

    def test_repl_load_session(self, tmp_path):
        runner = CliRunner()
        runner.invoke(main, ["repl"], input="(define a 20)\n:save base\n:quit\n")
        saved = tmp_path / "sessions" / "base.session"

        result = runner.invoke(main, ["repl", "--load", str(saved)], input="(+ a 22)\n:quit\n")
        assert result.exit_code == 0, result.output
        assert "Loaded 1 bindings" in result.output
        assert "42" in result.output


class TestSessionsCommand:
    """Test `schemedoc sessions`."""

    def test_no_sessions(self):
        runner = CliRunner()
        result = runner.invoke(main, ["sessions"])

        assert result.exit_code == 0, result.output
        assert "No saved sessions found" in result.output
