"""Persistence layer for evolution checkpoints."""

import copy
import hashlib
import json
import logging
import os
from abc import ABC, abstractmethod
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

from .exceptions import PersistenceError

logger = logging.getLogger(__name__)

FORMAT_VERSION = "1.0"

# Blob name -> file name. The first group is required for a snapshot to be usable.
REQUIRED_BLOBS = {
    "population": "population.json",
    "fitness": "fitness.json",
    "run_config": "run_config.json",
    "generation": "meta.json",
}
OPTIONAL_BLOBS = {
    "best_population": "best_population.json",
    "best_fitness": "best_fitness.json",
    "best_average_fitness": "best_average_fitness.json",
    "epoch_history": "epoch_history.json",
    "epoch_averages": "epoch_averages.json",
    "scored_population": "scored_population.json",
    "scored_fitness": "scored_fitness.json",
}

META_FILE = REQUIRED_BLOBS["generation"]

Snapshot = Dict[str, Any]


class StateStore(ABC):
    """
    Load/save contract between the GA core and durable storage.

    A snapshot is a dict of JSON-compatible blobs: population, fitness,
    best_population, best_fitness, best_average_fitness, epoch_history, epoch_averages,
    run_config and generation, plus scored_population/scored_fitness for the
    last evaluated generation.
    """

    @abstractmethod
    def load(self) -> Optional[Snapshot]:
        """Return the last snapshot, or None if nothing has been saved yet.

        Raises PersistenceError if a snapshot exists but cannot be read.
        """

    @abstractmethod
    def save(self, snapshot: Snapshot):
        """Persist a snapshot, replacing the previous one. Raises PersistenceError."""

    @abstractmethod
    def clear(self):
        """Remove any stored snapshot."""


class MemoryStateStore(StateStore):
    """In-process store, mainly for tests and throwaway runs."""

    def __init__(self, snapshot: Optional[Snapshot] = None):
        self._snapshot = copy.deepcopy(snapshot)
        self.saves = 0

    def load(self) -> Optional[Snapshot]:
        return copy.deepcopy(self._snapshot)

    def save(self, snapshot: Snapshot):
        self._snapshot = copy.deepcopy(snapshot)
        self.saves += 1

    def clear(self):
        self._snapshot = None


class JsonStateStore(StateStore):
    """
    One JSON file per blob inside a directory.

    meta.json is swapped in last and records a SHA-256 digest of every blob
    file, so a save interrupted halfway is detected on the next load instead
    of mixing blobs from two generations.
    """

    def __init__(self, directory: str = "storage"):
        self.directory = Path(directory)

    def _path(self, filename: str) -> Path:
        return self.directory / filename

    def exists(self) -> bool:
        """True when any checkpoint file is present, complete or not."""
        files = {**REQUIRED_BLOBS, **OPTIONAL_BLOBS}.values()
        return any(self._path(filename).exists() for filename in files)

    def _read(self, filename: str, digests: Optional[Dict[str, str]] = None) -> Any:
        path = self._path(filename)
        try:
            with open(path, "r") as f:
                text = f.read()
            if digests is not None and _digest(text) != digests.get(filename):
                raise PersistenceError(
                    f"Checkpoint file {path} does not belong to the recorded checkpoint (interrupted save?)"
                )
            return json.loads(text)
        except (OSError, json.JSONDecodeError) as exc:
            logger.error("Failed to read %s: %s", path, exc)
            raise PersistenceError(f"Checkpoint file {path} is unreadable: {exc}") from exc

    def load(self) -> Optional[Snapshot]:
        if not self.exists():
            return None

        for filename in REQUIRED_BLOBS.values():
            if not self._path(filename).exists():
                raise PersistenceError(f"Checkpoint in {self.directory} is incomplete: {filename} is missing")

        meta = self._read(META_FILE)
        if not isinstance(meta, dict) or "generation" not in meta:
            raise PersistenceError(f"Checkpoint metadata in {self.directory} is malformed")
        digests = meta.get("blobs")

        snapshot: Snapshot = {"generation": meta["generation"]}
        for key, filename in {**REQUIRED_BLOBS, **OPTIONAL_BLOBS}.items():
            if filename == META_FILE:
                continue
            if digests is not None and filename not in digests:
                if key in REQUIRED_BLOBS:
                    raise PersistenceError(f"Checkpoint metadata in {self.directory} does not list {filename}")
                snapshot[key] = None
            elif self._path(filename).exists():
                snapshot[key] = self._read(filename, digests)
            elif digests is not None:
                raise PersistenceError(f"Checkpoint in {self.directory} is incomplete: {filename} is missing")
            else:
                snapshot[key] = None

        logger.debug("Loaded checkpoint from %s (generation %s)", self.directory, snapshot["generation"])
        return snapshot

    def save(self, snapshot: Snapshot):
        """Write every blob to a temporary file first, then swap them into place, meta.json last."""
        files = {**REQUIRED_BLOBS, **OPTIONAL_BLOBS}
        staged = []
        try:
            texts = {
                files[key]: json.dumps(value)
                for key, value in snapshot.items()
                if key in files and key != "generation"
            }
            texts[META_FILE] = json.dumps({
                "version": FORMAT_VERSION,
                "generation": snapshot.get("generation", 0),
                "updated_at": datetime.now().isoformat(),
                "blobs": {filename: _digest(text) for filename, text in texts.items()},
            })

            self.directory.mkdir(parents=True, exist_ok=True)
            for filename, text in texts.items():
                tmp_path = self._path(filename + ".tmp")
                staged.append((tmp_path, self._path(filename)))
                with open(tmp_path, "w") as f:
                    f.write(text)
            # dicts keep insertion order, so meta.json is replaced last
            for tmp_path, final_path in staged:
                os.replace(tmp_path, final_path)
        except (OSError, TypeError, ValueError) as exc:
            for tmp_path, _ in staged:
                if tmp_path.exists():
                    tmp_path.unlink()
            logger.error("Failed to save checkpoint to %s: %s", self.directory, exc)
            raise PersistenceError(f"Could not write checkpoint to {self.directory}: {exc}") from exc

        logger.debug("Saved checkpoint to %s (generation %s)", self.directory, snapshot.get("generation"))

    def clear(self):
        """Remove stored blobs, leaving unrelated files alone."""
        if not self.directory.exists():
            return
        for filename in {**REQUIRED_BLOBS, **OPTIONAL_BLOBS}.values():
            path = self._path(filename)
            try:
                if path.exists():
                    path.unlink()
            except OSError as exc:
                raise PersistenceError(f"Could not remove {path}: {exc}") from exc


def _digest(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()
