"""Thread-safe registry of resolved blueprint descriptors."""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterator
from contextlib import contextmanager

from forgekit.blueprints.loader import BlueprintLoader
from forgekit.blueprints.models import BlueprintDescriptor
from forgekit.blueprints.provider import FileProvider
from forgekit.errors import TemplateNotFoundError, ValidationError

logger = logging.getLogger(__name__)

DEFAULT_BLUEPRINT_ID = "cli-simple"


class ReadWriteLock:
    """Many concurrent readers or one writer.

    Writers are preferred: once a writer is waiting, new readers queue
    behind it so a steady stream of readers cannot starve registration.
    """

    def __init__(self) -> None:
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False
        self._writers_waiting = 0

    @contextmanager
    def read(self) -> Iterator[None]:
        with self._cond:
            while self._writer or self._writers_waiting:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if self._readers == 0:
                    self._cond.notify_all()

    @contextmanager
    def write(self) -> Iterator[None]:
        with self._cond:
            self._writers_waiting += 1
            try:
                while self._writer or self._readers:
                    self._cond.wait()
            finally:
                self._writers_waiting -= 1
            self._writer = True
        try:
            yield
        finally:
            with self._cond:
                self._writer = False
                self._cond.notify_all()


class BlueprintRegistry:
    """In-memory store of blueprint descriptors keyed by ID.

    Descriptors are shared between callers and must be treated as
    read-only once registered.
    """

    def __init__(self, default_id: str = DEFAULT_BLUEPRINT_ID) -> None:
        self.default_id = default_id
        self._templates: dict[str, BlueprintDescriptor] = {}
        self._lock = ReadWriteLock()

    @classmethod
    def from_provider(
        cls, provider: FileProvider, default_id: str = DEFAULT_BLUEPRINT_ID
    ) -> "BlueprintRegistry":
        """Build a registry populated from *provider* with a fresh loader."""
        registry = cls(default_id=default_id)
        registry.load_from(BlueprintLoader.from_provider(provider))
        logger.info(
            "Template registry initialized (%d templates loaded from %s)",
            len(registry),
            provider.describe(),
        )
        return registry

    def load_from(self, loader: BlueprintLoader) -> int:
        """Register every blueprint *loader* finds.  Returns how many were added."""
        descriptors = loader.load_all()
        for descriptor in descriptors:
            self.register(descriptor)
        if not descriptors:
            logger.warning("No blueprints found in %s", loader.root)
        return len(descriptors)

    # -- Mutation ----------------------------------------------------------

    def register(self, descriptor: BlueprintDescriptor) -> None:
        """Add or replace a descriptor.

        Raises:
            ValidationError: If the descriptor has an empty ID.
        """
        if not descriptor.id:
            raise ValidationError("template ID cannot be empty")
        with self._lock.write():
            if descriptor.id in self._templates:
                logger.warning("Replacing registered blueprint %s", descriptor.id)
            self._templates[descriptor.id] = descriptor

    def remove(self, blueprint_id: str) -> None:
        """Remove a descriptor.

        Raises:
            TemplateNotFoundError: If no descriptor is registered under the ID.
        """
        with self._lock.write():
            if blueprint_id not in self._templates:
                raise TemplateNotFoundError(blueprint_id)
            del self._templates[blueprint_id]

    # -- Queries -----------------------------------------------------------

    def get(self, blueprint_id: str) -> BlueprintDescriptor:
        """Return the descriptor registered under *blueprint_id*.

        Raises:
            TemplateNotFoundError: If it is not registered.
        """
        with self._lock.read():
            descriptor = self._templates.get(blueprint_id)
        if descriptor is None:
            raise TemplateNotFoundError(blueprint_id)
        return descriptor

    def exists(self, blueprint_id: str) -> bool:
        with self._lock.read():
            return blueprint_id in self._templates

    def list(self) -> list[BlueprintDescriptor]:
        """Return every descriptor in a deterministic order.

        The default blueprint comes first when present, then the rest by
        type and finally by ID.
        """
        with self._lock.read():
            descriptors = list(self._templates.values())
        return sorted(descriptors, key=self._sort_key)

    def get_by_type(self, blueprint_type: str) -> list[BlueprintDescriptor]:
        """Return descriptors whose type matches exactly, ordered by ID."""
        with self._lock.read():
            matches = [d for d in self._templates.values() if d.type == blueprint_type]
        return sorted(matches, key=lambda d: d.id)

    def get_template_types(self) -> list[str]:
        """Return the distinct blueprint types, sorted."""
        with self._lock.read():
            return sorted({d.type for d in self._templates.values()})

    def _sort_key(self, descriptor: BlueprintDescriptor) -> tuple[int, str, str]:
        return (0 if descriptor.id == self.default_id else 1, descriptor.type, descriptor.id)

    def __len__(self) -> int:
        with self._lock.read():
            return len(self._templates)

    def __contains__(self, blueprint_id: object) -> bool:
        return isinstance(blueprint_id, str) and self.exists(blueprint_id)
