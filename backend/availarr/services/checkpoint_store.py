"""
Progress Checkpoint Store

File-backed cursor that lets a sync job resume where the previous run
stopped. One JSON file per job type (progress.json, tv-progress.json,
tv-episodes-progress.json).

Recovery Model:
    Saves rewrite the whole file through a temporary file and an atomic
    rename, so a crash leaves either the old or the new checkpoint, never a
    torn one. Work done after the last save is simply redone on the next run.
"""

import json
import logging
import os
from pathlib import Path
from typing import Generic, Type, TypeVar, Union

from pydantic import BaseModel, ValidationError

logger = logging.getLogger(__name__)

C = TypeVar('C', bound=BaseModel)


class CheckpointStore(Generic[C]):
    """
    JSON checkpoint file for one job.

    Example:
        >>> store = CheckpointStore("progress.json", PageCheckpoint)
        >>> cp = store.load()          # defaults when the file is absent
        >>> cp.last_page = 5
        >>> store.save(cp)
    """

    def __init__(self, path: Union[str, Path], model: Type[C]):
        self.path = Path(path)
        self.model = model

    def exists(self) -> bool:
        return self.path.exists()

    def load(self) -> C:
        """
        Read the checkpoint, or return zero-value defaults.

        A missing file is the first-run case. An unreadable file is logged
        and treated the same way; the next save overwrites it.
        """
        if not self.path.exists():
            logger.info(f"No checkpoint at {self.path}, starting from the beginning")
            return self.model()

        try:
            raw = json.loads(self.path.read_text(encoding='utf-8'))
            checkpoint = self.model.model_validate(raw)
        except (OSError, ValueError, ValidationError) as e:
            logger.warning(f"⚠ Ignoring unreadable checkpoint {self.path}: {e}")
            return self.model()

        logger.info(f"Loaded checkpoint from {self.path}: {checkpoint.model_dump(by_alias=True)}")
        return checkpoint

    def save(self, checkpoint: C) -> None:
        """Write the whole checkpoint atomically."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_name(self.path.name + ".tmp")
        payload = checkpoint.model_dump(by_alias=True)
        tmp_path.write_text(json.dumps(payload, indent=2), encoding='utf-8')
        os.replace(tmp_path, self.path)
        logger.debug(f"Checkpoint saved to {self.path}: {payload}")

    def reset(self) -> C:
        """Overwrite the file with defaults and return them."""
        checkpoint = self.model()
        self.save(checkpoint)
        return checkpoint
