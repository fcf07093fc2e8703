"""
SessionManager: live named sessions and saving/loading of kernel state.
"""

import io
import logging
import pickle
import dill
from pathlib import Path
from typing import Any, Optional
from datetime import datetime

from schemedoc.environment import Environment
from schemedoc.kernel import EvalKernel, ExecutionResult

logger = logging.getLogger(__name__)

_GLOBAL_ENV_ID = "schemedoc:global-env"


class _SessionPickler(dill.Pickler):
    """Pickles closures without dragging the whole top-level environment along."""

    def __init__(self, file, env: Environment):
        super().__init__(file)
        self._env = env

    def persistent_id(self, obj):
        if obj is self._env:
            return _GLOBAL_ENV_ID
        return None


class _SessionUnpickler(dill.Unpickler):
    """Re-attaches closures to the environment of the kernel being restored."""

    def __init__(self, file, env: Environment):
        super().__init__(file)
        self._env = env

    def persistent_load(self, pid):
        if pid == _GLOBAL_ENV_ID:
            return self._env
        raise pickle.UnpicklingError(f"unknown persistent id {pid!r}")


def _dumps(obj: Any, env: Environment) -> bytes:
    buffer = io.BytesIO()
    _SessionPickler(buffer, env).dump(obj)
    return buffer.getvalue()


def _load(path: Path, env: Environment) -> dict:
    with open(path, "rb") as f:
        return _SessionUnpickler(f, env).load()


class SessionManager:
    """
    Manages live sessions and saving/loading of kernel state.

    Live sessions are kept by name for the life of the process: every
    example block that names the same session shares one kernel. A block
    without a session name gets a fresh kernel that is thrown away after it.

    Uses dill for serialization, which handles the closures and macros that
    Scheme definitions turn into. Bindings that cannot be pickled are
    skipped and reported.
    """

    def __init__(self, sessions_dir: Optional[Path] = None):
        """
        Initialize session manager.

        Args:
            sessions_dir: Directory to store session files
        """
        self.sessions_dir = Path(sessions_dir) if sessions_dir else Path.home() / ".schemedoc" / "sessions"
        self.sessions_dir.mkdir(parents=True, exist_ok=True)
        self._live: dict[str, EvalKernel] = {}

    # ------------------------------------------------------------------ #
    # Live sessions
    # ------------------------------------------------------------------ #

    def get_kernel(self, name: Optional[str] = None) -> EvalKernel:
        """
        Get the kernel for a session.

        Args:
            name: Session name, or None for a fresh anonymous session

        Returns:
            The live kernel for that session
        """
        if name is None:
            return EvalKernel()
        if name not in self._live:
            logger.debug("Starting session %s", name)
            self._live[name] = EvalKernel()
        return self._live[name]

    def has_session(self, name: str) -> bool:
        return name in self._live

    def reset_session(self, name: str) -> EvalKernel:
        """Reset a named session to a clean environment, creating it if needed."""
        kernel = self.get_kernel(name)
        kernel.reset()
        logger.debug("Reset session %s", name)
        return kernel

    def discard_session(self, name: str) -> bool:
        """Forget a named session. Returns True if it existed."""
        return self._live.pop(name, None) is not None

    def active_sessions(self) -> list[str]:
        """Names of the live sessions, in the order they were started."""
        return list(self._live)

    # ------------------------------------------------------------------ #
    # Persistence
    # ------------------------------------------------------------------ #

    def save_session(self, kernel: EvalKernel, path: Optional[Path] = None, name: Optional[str] = None) -> Path:
        """
        Save the kernel state to a file.

        Args:
            kernel: EvalKernel instance to save
            path: Optional specific path to save to
            name: Optional name for the session

        Returns:
            Path to saved session file
        """
        namespace = kernel.get_namespace()

        # Filter namespace for picklable items
        filtered_ns = {}
        unpicklable = []

        for key, value in namespace.items():
            try:
                _dumps(value, kernel.env)
                filtered_ns[key] = value
            except Exception:
                unpicklable.append(key)

        state = {
            "bindings": filtered_ns,
            "execution_count": kernel.execution_count,
            "rename_counter": kernel.env.rename_counter,
            "history": [
                (count, code, result.to_dict())
                for count, code, result in kernel.get_history()
            ],
            "saved_at": datetime.now().isoformat(),
            "unpicklable_vars": unpicklable,
        }

        if path is None:
            name = name or f"session_{datetime.now().strftime('%Y%m%d_%H%M%S')}"
            path = self.sessions_dir / f"{name}.session"

        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)

        with open(path, "wb") as f:
            _SessionPickler(f, kernel.env).dump(state)

        if unpicklable:
            logger.warning("Skipped unpicklable bindings while saving %s: %s", path, ", ".join(unpicklable))
        logger.info("Saved session to %s (%d bindings)", path, len(filtered_ns))
        return path

    def load_session(self, kernel: EvalKernel, path: Path) -> dict[str, Any]:
        """
        Load kernel state from a file.

        Args:
            kernel: EvalKernel instance to restore into
            path: Path to session file

        Returns:
            Dictionary with load information
        """
        path = Path(path)
        state = _load(path, kernel.env)

        kernel.restore_namespace(state["bindings"])
        kernel.execution_count = state["execution_count"]
        kernel.env.rename_counter = max(kernel.env.rename_counter, state.get("rename_counter", 0))

        kernel.clear_history()
        for count, code, result_dict in state.get("history", []):
            result = ExecutionResult.from_dict(result_dict)
            kernel._history.append((count, code, result))

        logger.info("Loaded session from %s (%d bindings)", path, len(state["bindings"]))
        return {
            "restored_vars": list(state["bindings"].keys()),
            "unpicklable_vars": state.get("unpicklable_vars", []),
            "saved_at": state.get("saved_at"),
        }

    def list_sessions(self) -> list[dict[str, Any]]:
        """
        List available saved sessions.

        Returns:
            List of session info dictionaries
        """
        sessions = []
        for path in self.sessions_dir.glob("*.session"):
            try:
                state = _load(path, Environment())
                sessions.append({
                    "path": str(path),
                    "name": path.stem,
                    "saved_at": state.get("saved_at"),
                    "var_count": len(state.get("bindings", {})),
                })
            except Exception as e:
                sessions.append({
                    "path": str(path),
                    "name": path.stem,
                    "error": str(e),
                })
        return sorted(sessions, key=lambda x: x.get("saved_at") or "", reverse=True)

    def delete_session(self, path: Path) -> bool:
        """Delete a session file."""
        path = Path(path)
        if path.exists():
            path.unlink()
            return True
        return False

    def get_checkpoint_path(self, document_path: Path, session: str) -> Path:
        """Get the checkpoint path for one named session of a document."""
        document_path = Path(document_path)
        return self.sessions_dir / "checkpoints" / f"{document_path.stem}.{session}.checkpoint"

    def save_checkpoint(self, kernel: EvalKernel, document_path: Path, session: str) -> Path:
        """
        Save a checkpoint for a document's session.

        Args:
            kernel: Kernel to save state from
            document_path: Path to the document
            session: Session name within the document

        Returns:
            Path to checkpoint file
        """
        checkpoint_path = self.get_checkpoint_path(document_path, session)
        checkpoint_path.parent.mkdir(parents=True, exist_ok=True)

        return self.save_session(kernel, path=checkpoint_path)

    def load_checkpoint(self, kernel: EvalKernel, document_path: Path, session: str) -> Optional[dict]:
        """
        Load the checkpoint for a document's session.

        Args:
            kernel: Kernel to restore into
            document_path: Path to the document
            session: Session name within the document

        Returns:
            Load info or None if no checkpoint exists
        """
        checkpoint_path = self.get_checkpoint_path(document_path, session)
        if checkpoint_path.exists():
            return self.load_session(kernel, checkpoint_path)
        return None
