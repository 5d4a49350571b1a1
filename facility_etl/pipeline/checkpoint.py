"""
Checkpoint persistence for resumable runs.

The checkpoint is a single JSON document written to a temp file in the same
directory and renamed over the target, so a crash never leaves a truncated file.
"""

import json
import os
import tempfile
from pathlib import Path

from pydantic import ValidationError

from facility_etl.core.errors import CheckpointError
from facility_etl.core.models import RunState


class CheckpointStore:
    """Filesystem-backed RunState checkpoint."""

    def __init__(self, path: str | Path):
        self.path = Path(path)

    def exists(self) -> bool:
        return self.path.is_file()

    def load(self) -> RunState | None:
        """
        Read the checkpoint.

        Returns:
            RunState, or None when no checkpoint exists

        Raises:
            CheckpointError: If the file exists but cannot be parsed
        """
        if not self.exists():
            return None
        try:
            payload = json.loads(self.path.read_text(encoding="utf-8"))
            return RunState.model_validate(payload)
        except (OSError, json.JSONDecodeError, ValidationError) as error:
            raise CheckpointError(
                f"Failed to read checkpoint at {self.path}: {error}. "
                "Delete the checkpoint file or run without --resume."
            ) from error

    def save(self, state: RunState) -> None:
        """Atomically replace the checkpoint with state."""
        directory = self.path.parent
        try:
            directory.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                prefix=f".{self.path.name}.", suffix=".tmp", dir=directory
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as handle:
                    json.dump(state.to_checkpoint(), handle, indent=2)
                    handle.write("\n")
                    handle.flush()
                    os.fsync(handle.fileno())
                os.replace(tmp_name, self.path)
            except BaseException:
                if os.path.exists(tmp_name):
                    os.unlink(tmp_name)
                raise
        except OSError as error:
            raise CheckpointError(f"Failed to write checkpoint at {self.path}: {error}") from error

    def clear(self) -> None:
        """Remove the checkpoint (successful completion)."""
        try:
            self.path.unlink(missing_ok=True)
        except OSError as error:
            raise CheckpointError(f"Failed to delete checkpoint at {self.path}: {error}") from error
