"""
Document: prose and example blocks, parsed from Markdown or stored as JSON.
"""

import json
import logging
import re
from pathlib import Path
from typing import Any, Iterable, Optional
from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field

from schemedoc.errors import DocumentError
from schemedoc.reader import split_fragments

logger = logging.getLogger(__name__)

DEFAULT_EXAMPLE_LANGUAGES = ("scheme-examples", "racket-examples")

_FENCE_RE = re.compile(r"^(?P<indent> {0,3})(?P<fence>`{3,}|~{3,})(?P<info>.*)$")


class BlockType(str, Enum):
    """Type of document block."""
    PROSE = "prose"
    EXAMPLES = "examples"


class Fragment(BaseModel):
    """One top-level form of an example block."""
    index: int
    source: str
    line: int = 1


class Block(BaseModel):
    """A single document block."""
    id: str = Field(default_factory=lambda: f"block_{datetime.now().strftime('%Y%m%d%H%M%S%f')}")
    type: BlockType = BlockType.EXAMPLES
    source: str = ""
    language: str = ""
    session: Optional[str] = None
    reset: bool = False
    evaluate: bool = True
    line: int = 1
    fragments: list[Fragment] = Field(default_factory=list)
    # One list of output dicts per fragment, filled in by a build
    outputs: list[list[dict[str, Any]]] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(default_factory=dict)

    def split(self) -> list[Fragment]:
        """Split the block's source into fragments, one per top-level form."""
        first_line = self.line + 1
        self.fragments = [
            Fragment(index=i, source=span.text, line=first_line + span.line - 1)
            for i, span in enumerate(split_fragments(self.source))
        ]
        return self.fragments

    @property
    def is_example(self) -> bool:
        return self.type == BlockType.EXAMPLES

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            "id": self.id,
            "type": self.type.value,
            "source": self.source,
            "language": self.language,
            "session": self.session,
            "reset": self.reset,
            "evaluate": self.evaluate,
            "line": self.line,
            "fragments": [f.model_dump() for f in self.fragments],
            "outputs": self.outputs,
            "metadata": self.metadata,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Block":
        """Create from dictionary."""
        block = cls(
            id=data.get("id", f"block_{datetime.now().strftime('%Y%m%d%H%M%S%f')}"),
            type=BlockType(data.get("type", "examples")),
            source=data.get("source", ""),
            language=data.get("language", ""),
            session=data.get("session"),
            reset=data.get("reset", False),
            evaluate=data.get("evaluate", True),
            line=data.get("line", 1),
            fragments=[Fragment(**f) for f in data.get("fragments", [])],
            outputs=data.get("outputs", []),
            metadata=data.get("metadata", {}),
        )
        if block.is_example and not block.fragments:
            block.split()
        return block


def _parse_options(info: str, line: int) -> dict[str, Any]:
    options: dict[str, Any] = {}
    for word in info.split():
        if word.startswith("session="):
            name = word[len("session="):]
            if not name:
                raise DocumentError(f"line {line}: empty session name")
            options["session"] = name
        elif word == "reset":
            options["reset"] = True
        elif word == "no-eval":
            options["evaluate"] = False
        else:
            logger.warning("line %d: ignoring unknown example option %r", line, word)
    return options


class Document(BaseModel):
    """
    A guide made of prose blocks and example blocks.

    A document contains:
    - Blocks, in document order
    - Metadata (name, path, created, modified)
    """

    version: str = "1.0"
    blocks: list[Block] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(default_factory=dict)

    def __init__(self, **data):
        super().__init__(**data)
        if not self.metadata:
            self.metadata = {
                "name": "Untitled",
                "created": datetime.now().isoformat(),
                "modified": datetime.now().isoformat(),
            }

    def add_block(self, block: Optional[Block] = None, **kwargs) -> Block:
        """
        Add a new block to the document.

        Args:
            block: Block to add, or create new one
            **kwargs: Arguments for new block if block not provided

        Returns:
            The added block
        """
        if block is None:
            block = Block(**kwargs)
        if block.is_example and not block.fragments:
            block.split()
        self.blocks.append(block)
        self._touch()
        return block

    def insert_block(self, index: int, block: Optional[Block] = None, **kwargs) -> Block:
        """Insert a block at a specific index."""
        if block is None:
            block = Block(**kwargs)
        if block.is_example and not block.fragments:
            block.split()
        self.blocks.insert(index, block)
        self._touch()
        return block

    def remove_block(self, index: int) -> Block:
        """Remove a block by index."""
        block = self.blocks.pop(index)
        self._touch()
        return block

    def get_block(self, index: int) -> Block:
        """Get a block by index."""
        return self.blocks[index]

    def example_blocks(self) -> list[tuple[int, Block]]:
        """Example blocks with their indices, in document order."""
        return [(i, b) for i, b in enumerate(self.blocks) if b.is_example]

    def session_names(self) -> list[str]:
        """Named sessions used by the document, in order of first use."""
        names: list[str] = []
        for _, block in self.example_blocks():
            if block.session and block.session not in names:
                names.append(block.session)
        return names

    @property
    def name(self) -> str:
        return self.metadata.get("name", "Untitled")

    def _touch(self):
        """Update the modified timestamp."""
        self.metadata["modified"] = datetime.now().isoformat()

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            "version": self.version,
            "blocks": [block.to_dict() for block in self.blocks],
            "metadata": self.metadata,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Document":
        """Create from dictionary."""
        blocks = [Block.from_dict(b) for b in data.get("blocks", [])]
        return cls(
            version=data.get("version", "1.0"),
            blocks=blocks,
            metadata=data.get("metadata", {}),
        )

    def save(self, path: Path):
        """
        Save the document, results included, as JSON.

        Args:
            path: Path to save to
        """
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)

        with open(path, "w") as f:
            json.dump(self.to_dict(), f, indent=2)

    @classmethod
    def load(cls, path: Path) -> "Document":
        """
        Load a document saved as JSON.

        Args:
            path: Path to load from

        Returns:
            Loaded document
        """
        path = Path(path)
        try:
            with open(path, "r") as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise DocumentError(f"{path}: not a valid document: {e}") from e
        return cls.from_dict(data)

    @classmethod
    def new(cls, name: str = "Untitled") -> "Document":
        """Create a new empty document."""
        return cls(
            metadata={
                "name": name,
                "created": datetime.now().isoformat(),
                "modified": datetime.now().isoformat(),
            }
        )

    @classmethod
    def parse(
        cls,
        text: str,
        name: str = "Untitled",
        languages: Iterable[str] = DEFAULT_EXAMPLE_LANGUAGES,
    ) -> "Document":
        """
        Parse a Markdown document.

        Fenced code blocks whose language is one of `languages` become
        example blocks; everything else, other fenced blocks included, is
        kept verbatim as prose. The info string after the language may hold
        options: session=NAME, reset, no-eval.

        Args:
            text: Markdown source
            name: Document name
            languages: Fence languages that mark example blocks

        Returns:
            Parsed document
        """
        languages = set(languages)
        doc = cls.new(name)
        lines = text.splitlines(keepends=True)
        prose: list[str] = []
        count = 0

        def flush_prose():
            nonlocal count
            if prose:
                doc.blocks.append(Block(id=f"block_{count}", type=BlockType.PROSE, source="".join(prose)))
                count += 1
                prose.clear()

        i = 0
        while i < len(lines):
            match = _FENCE_RE.match(lines[i].rstrip("\n"))
            if match is None:
                prose.append(lines[i])
                i += 1
                continue

            fence = match.group("fence")
            info = match.group("info").strip()
            words = info.split(None, 1)
            language = words[0] if words else ""
            start = i
            close = None
            for j in range(i + 1, len(lines)):
                stripped = lines[j].strip()
                if stripped and set(stripped) == {fence[0]} and len(stripped) >= len(fence):
                    close = j
                    break

            if language not in languages:
                end = len(lines) if close is None else close + 1
                prose.extend(lines[start:end])
                i = end
                continue

            if close is None:
                raise DocumentError(f"{name}: line {start + 1}: unterminated {language} block")

            flush_prose()
            options = _parse_options(words[1] if len(words) > 1 else "", start + 1)
            block = Block(
                id=f"block_{count}",
                type=BlockType.EXAMPLES,
                source="".join(lines[start + 1:close]),
                language=language,
                line=start + 1,
                **options,
            )
            block.split()
            doc.blocks.append(block)
            count += 1
            i = close + 1

        flush_prose()
        return doc

    @classmethod
    def from_path(cls, path: Path, languages: Iterable[str] = DEFAULT_EXAMPLE_LANGUAGES) -> "Document":
        """Load a JSON document or parse a Markdown one, by file extension."""
        path = Path(path)
        if path.suffix == ".json":
            doc = cls.load(path)
        else:
            doc = cls.parse(path.read_text(encoding="utf-8"), name=path.stem, languages=languages)
        doc.metadata["path"] = str(path)
        return doc
