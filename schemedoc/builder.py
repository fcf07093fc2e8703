"""
DocumentBuilder: evaluates a document's example blocks and renders the result.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from schemedoc.config import Settings, get_settings
from schemedoc.document import Block, Document, Fragment
from schemedoc.errors import FormattingError, Location
from schemedoc.kernel import EvalKernel, ExecutionResult
from schemedoc.render import render_document
from schemedoc.session import SessionManager

logger = logging.getLogger(__name__)


@dataclass
class FragmentRecord:
    """One evaluated fragment and where it came from."""
    block_index: int
    fragment: Fragment
    result: ExecutionResult
    location: Location


@dataclass
class BuildReport:
    """Everything a build produced."""
    document: Document
    records: list[FragmentRecord] = field(default_factory=list)
    rendered: str = ""

    @property
    def failures(self) -> list[FragmentRecord]:
        return [r for r in self.records if not r.result.success]

    @property
    def error_count(self) -> int:
        return len(self.failures)

    @property
    def fragment_count(self) -> int:
        return len(self.records)


class DocumentBuilder:
    """
    Runs every example block of a document through its session, in order.

    A block without a session name is evaluated in a kernel of its own. Blocks
    naming the same session share one kernel for the rest of the build; a
    block marked `reset` starts its session over. Each build starts every
    named session from a clean environment, or from the document's
    checkpoint when persistence is on.
    """

    def __init__(self, session_manager: Optional[SessionManager] = None, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self.session_manager = session_manager or SessionManager(self.settings.sessions_dir)

    def _location(self, document: Document, block_index: int, fragment: Fragment) -> Location:
        return Location(
            document=document.metadata.get("path") or document.name,
            block=block_index,
            fragment=fragment.index,
            line=fragment.line,
        )

    def evaluate_block(
        self,
        document: Document,
        block_index: int,
        kernel: Optional[EvalKernel] = None,
    ) -> list[FragmentRecord]:
        """
        Evaluate one example block and store its outputs on the block.

        Args:
            document: Document the block belongs to
            block_index: Index of the block in the document
            kernel: Kernel to evaluate in; defaults to the block's session

        Returns:
            One record per fragment

        Raises:
            FormattingError: if a value cannot be rendered deterministically
        """
        block: Block = document.get_block(block_index)
        if kernel is None:
            if block.session and block.reset:
                kernel = self.session_manager.reset_session(block.session)
            else:
                kernel = self.session_manager.get_kernel(block.session)

        logger.debug(
            "Evaluating block %d (%d fragments, session=%s)",
            block_index, len(block.fragments), block.session or "<anonymous>",
        )

        records = []
        outputs = []
        for fragment in block.fragments:
            location = self._location(document, block_index, fragment)
            result = kernel.execute_fragment(fragment.source)
            try:
                outputs.append(result.to_outputs())
            except FormattingError as e:
                raise e.with_location(location) from e
            if not result.success:
                logger.info("%s: %s", location, result.error)
            records.append(FragmentRecord(block_index, fragment, result, location))

        block.outputs = outputs
        return records

    def _start_sessions(self, document: Document, persist: bool):
        document_path = document.metadata.get("path")
        for name in document.session_names():
            kernel = self.session_manager.reset_session(name)
            if persist and document_path:
                info = self.session_manager.load_checkpoint(kernel, Path(document_path), name)
                if info is not None:
                    logger.info("Restored session %s (%d bindings)", name, len(info["restored_vars"]))

    def _save_sessions(self, document: Document):
        document_path = document.metadata.get("path")
        if not document_path:
            logger.warning("Document %s has no path; sessions not persisted", document.name)
            return
        for name in document.session_names():
            kernel = self.session_manager.get_kernel(name)
            self.session_manager.save_checkpoint(kernel, Path(document_path), name)

    def build(self, document: Document, persist: Optional[bool] = None) -> BuildReport:
        """
        Evaluate every example block and render the document.

        Evaluation errors are recorded and rendered; they never stop the
        build.

        Args:
            document: Document to build
            persist: Load and save named sessions as checkpoints; defaults
                to the persist_sessions setting

        Returns:
            BuildReport with the records and rendered text

        Raises:
            FormattingError: if a value cannot be rendered deterministically
        """
        if persist is None:
            persist = self.settings.persist_sessions

        report = BuildReport(document=document)
        self._start_sessions(document, persist)

        for block_index, block in document.example_blocks():
            if not block.evaluate:
                logger.debug("Skipping block %d (no-eval)", block_index)
                block.outputs = []
                continue
            report.records.extend(self.evaluate_block(document, block_index))

        if persist:
            self._save_sessions(document)

        report.rendered = render_document(
            document,
            prompt=self.settings.prompt,
            language=self.settings.transcript_language,
        )
        logger.info(
            "Built %s: %d fragments, %d errors",
            document.name, report.fragment_count, report.error_count,
        )
        return report
