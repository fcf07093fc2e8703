"""
Rendering of evaluated fragments into transcripts and documents.
"""

from typing import Any, Optional

from rich.syntax import Syntax
from rich.text import Text

from schemedoc.document import Block, BlockType, Document
from schemedoc.errors import FormattingError, Location
from schemedoc.kernel import ExecutionResult

DEFAULT_PROMPT = "> "


def format_output(output: dict[str, Any]) -> str:
    """
    Format an output dictionary for display (plain text).

    Args:
        output: Output dictionary from ExecutionResult.to_outputs()

    Returns:
        Formatted string for display
    """
    output_type = output.get("type", "")

    if output_type == "stream":
        return output.get("text", "")

    elif output_type == "execute_result":
        return output.get("data", {}).get("text/plain", "")

    elif output_type == "error":
        ename = output.get("ename", "error")
        evalue = output.get("evalue", "")
        return f"{ename}: {evalue}"

    return str(output)


def format_rich_output(output: dict[str, Any]):
    """
    Format an output dictionary as a Rich renderable.

    Args:
        output: Output dictionary from ExecutionResult.to_outputs()

    Returns:
        Rich renderable object for console display
    """
    output_type = output.get("type", "")

    if output_type == "stream":
        return Text(output.get("text", "").rstrip("\n"))

    elif output_type == "execute_result":
        text = output.get("data", {}).get("text/plain", "")
        try:
            return Syntax(text, "scheme", theme="monokai", line_numbers=False)
        except Exception:
            return Text(text, style="cyan")

    elif output_type == "error":
        error_text = Text()
        error_text.append(output.get("ename", "error"), style="bold red")
        error_text.append(f": {output.get('evalue', '')}", style="red")
        return error_text

    return Text(str(output), style="dim")


def get_outcome_status(outputs: list[dict[str, Any]]) -> tuple[str, str]:
    """
    Get status indicator and style for a fragment's outputs.

    Returns:
        Tuple of (indicator_string, rich_style)
    """
    if any(o.get("type") == "error" for o in outputs):
        return ("err", "red")
    return ("ok", "green")


def echo_source(source: str, prompt: str = DEFAULT_PROMPT) -> str:
    """Echo a fragment's source after the prompt, continuation lines aligned under it."""
    lines = source.rstrip("\n").split("\n")
    indent = " " * len(prompt)
    echoed = [prompt + lines[0]] + [indent + line if line else line for line in lines[1:]]
    return "\n".join(echoed) + "\n"


def render_outputs(source: str, outputs: list[dict[str, Any]], prompt: str = DEFAULT_PROMPT) -> str:
    """
    Render one fragment: echoed source, captured output, then value or error.
    """
    parts = [echo_source(source, prompt)]
    for output in outputs:
        text = format_output(output)
        if not text:
            continue
        parts.append(text if text.endswith("\n") else text + "\n")
    return "".join(parts)


def render_fragment(
    source: str,
    result: ExecutionResult,
    prompt: str = DEFAULT_PROMPT,
    location: Optional[Location] = None,
) -> str:
    """
    Render one evaluated fragment.

    Raises:
        FormattingError: if the result's value has no deterministic printed
            form; the error carries `location` when one is given
    """
    try:
        outputs = result.to_outputs()
    except FormattingError as e:
        if location is not None:
            raise e.with_location(location) from e
        raise
    return render_outputs(source, outputs, prompt)


def render_transcript(pairs: list[tuple[str, ExecutionResult]], prompt: str = DEFAULT_PROMPT) -> str:
    """Render ordered (source, result) pairs into one transcript."""
    return "".join(
        render_fragment(source, result, prompt, Location(fragment=i))
        for i, (source, result) in enumerate(pairs)
    )


def render_block(block: Block, prompt: str = DEFAULT_PROMPT, language: str = "scheme") -> str:
    """
    Render a single block back to Markdown.

    Prose is emitted verbatim. An evaluated example block becomes a fenced
    transcript built from its stored outputs; a block that was not evaluated
    keeps its source in a plain fence.
    """
    if block.type == BlockType.PROSE:
        return block.source

    if not block.evaluate or not block.outputs:
        body = block.source
    else:
        body = "".join(
            render_outputs(fragment.source, outputs, prompt)
            for fragment, outputs in zip(block.fragments, block.outputs)
        )
    if body and not body.endswith("\n"):
        body += "\n"
    return f"```{language}\n{body}```\n"


def render_document(document: Document, prompt: str = DEFAULT_PROMPT, language: str = "scheme") -> str:
    """Render a whole document to Markdown text."""
    return "".join(render_block(block, prompt, language) for block in document.blocks)
