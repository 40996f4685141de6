"""Resource loader populating a store from manifests on disk.

This module provides the ResourceLoader class which reads RedisBrokers,
Triggers and any pre-existing child objects from YAML files. It is only used
to seed a store; the controller takes over from there.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import AsyncGenerator

import aiofiles
import yaml

from broker_reconciler.manifest import is_supported_kind, parse_raw_obj, BaseManifest
from broker_reconciler.exceptions import BrokerException, InputException

__all__ = ["ResourceLoader", "LoadOptions"]

_LOGGER = logging.getLogger(__name__)


@dataclass
class LoadOptions:
    """Options for configuring resource loading.

    Attributes:
        path: Filesystem path to load resources from. Can be a file or directory.
        recursive: If True and path is a directory, load resources from all
                  subdirectories as well.
    """

    path: Path
    recursive: bool = True

    def __post_init__(self) -> None:
        """Resolve the path after initialization."""
        self.path = Path(self.path).expanduser().resolve()


class ResourceLoader:
    """Loads resources from the filesystem."""

    def __init__(self) -> None:
        """Initialize the resource loader."""
        self._processed_files: set[Path] = set()

    async def load(self, options: LoadOptions) -> AsyncGenerator[BaseManifest, None]:
        """Load resources from the given options."""
        _LOGGER.info("Loading resources from %s", options.path)

        if not options.path.exists():
            raise BrokerException(f"Path does not exist: {options.path}")

        if options.path.is_file():
            async for resource in self._load_file(options.path):
                yield resource
        elif options.path.is_dir():
            async for resource in self._load_directory(options.path, options):
                yield resource
        else:
            raise BrokerException(f"Path is not a file or directory: {options.path}")

    async def _load_directory(
        self, path: Path, options: LoadOptions
    ) -> AsyncGenerator[BaseManifest, None]:
        _LOGGER.debug("Loading directory: %s", path)
        for entry in sorted(path.iterdir()):
            if entry.is_file() and entry.suffix.lower() in (".yaml", ".yml"):
                async for resource in self._load_file(entry):
                    yield resource
            elif options.recursive and entry.is_dir():
                async for resource in self._load_directory(entry, options):
                    yield resource

    async def _load_file(self, path: Path) -> AsyncGenerator[BaseManifest, None]:
        if path in self._processed_files:
            _LOGGER.debug("Skipping already processed file: %s", path)
            return
        self._processed_files.add(path)

        try:
            async with aiofiles.open(path, encoding="utf-8") as manifest_file:
                content = await manifest_file.read()
        except OSError as e:
            raise BrokerException(f"Failed to read file {path}: {e}") from e

        try:
            docs = list(yaml.safe_load_all(content))
        except yaml.YAMLError as e:
            raise BrokerException(f"Invalid YAML in file {path}: {e}") from e

        for doc in docs:
            if not doc:
                continue
            if not isinstance(doc, dict):
                raise InputException(f"Invalid document in {path}: {doc!r}")
            if not is_supported_kind(doc.get("kind", "")):
                _LOGGER.debug("Skipping %s document in %s", doc.get("kind"), path)
                continue
            try:
                yield parse_raw_obj(doc)
            except InputException as e:
                raise InputException(f"Invalid document in {path}: {e}") from e
