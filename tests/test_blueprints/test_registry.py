"""Tests for BlueprintRegistry and ReadWriteLock (forgekit.blueprints.registry)."""

from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

import pytest

from forgekit.blueprints.models import BlueprintDescriptor
from forgekit.blueprints.provider import FileProvider
from forgekit.blueprints.registry import BlueprintRegistry, ReadWriteLock
from forgekit.errors import TemplateNotFoundError, ValidationError

pytestmark = pytest.mark.unit


def _descriptor(blueprint_type: str, architecture: str = "", **kwargs) -> BlueprintDescriptor:
    return BlueprintDescriptor(type=blueprint_type, architecture=architecture, **kwargs)


class TestRegistryBasics:
    def test_register_and_get(self):
        registry = BlueprintRegistry()
        registry.register(_descriptor("api", "clean"))
        assert registry.get("api-clean").type == "api"
        assert "api-clean" in registry
        assert registry.exists("api-clean")
        assert len(registry) == 1

    def test_get_missing(self):
        with pytest.raises(TemplateNotFoundError) as exc_info:
            BlueprintRegistry().get("nope")
        assert exc_info.value.blueprint_id == "nope"
        assert "template 'nope' not found" in str(exc_info.value)

    def test_register_empty_id(self):
        with pytest.raises(ValidationError):
            BlueprintRegistry().register(BlueprintDescriptor())

    def test_register_replaces(self):
        registry = BlueprintRegistry()
        registry.register(_descriptor("api", description="old"))
        registry.register(_descriptor("api", description="new"))
        assert registry.get("api").description == "new"
        assert len(registry) == 1

    def test_remove(self):
        registry = BlueprintRegistry()
        registry.register(_descriptor("api"))
        registry.remove("api")
        assert "api" not in registry
        with pytest.raises(TemplateNotFoundError):
            registry.remove("api")

    def test_contains_non_string(self):
        assert 42 not in BlueprintRegistry()


class TestRegistryOrdering:
    def test_default_first_then_type_then_id(self):
        registry = BlueprintRegistry(default_id="web-api")
        for descriptor in (
            _descriptor("cli"),
            _descriptor("web-api", "ddd"),
            _descriptor("web-api"),
            _descriptor("lambda"),
            _descriptor("web-api", "clean"),
        ):
            registry.register(descriptor)
        assert [d.id for d in registry.list()] == [
            "web-api",
            "cli",
            "lambda",
            "web-api-clean",
            "web-api-ddd",
        ]

    def test_list_is_stable(self, registry):
        assert [d.id for d in registry.list()] == [d.id for d in registry.list()]
        assert registry.list()[0].id == "cli-simple"

    def test_get_by_type(self):
        registry = BlueprintRegistry()
        registry.register(_descriptor("web-api", "ddd"))
        registry.register(_descriptor("web-api", "clean"))
        registry.register(_descriptor("cli"))
        assert [d.id for d in registry.get_by_type("web-api")] == ["web-api-clean", "web-api-ddd"]
        assert registry.get_by_type("nothing") == []

    def test_template_types(self, registry):
        assert registry.get_template_types() == ["cli", "web-api"]


class TestRegistryLoading:
    def test_from_provider(self, sample_blueprints: Path):
        registry = BlueprintRegistry.from_provider(FileProvider.directory(sample_blueprints))
        assert sorted(d.id for d in registry.list()) == ["cli-simple", "web-api-clean"]

    def test_load_from_empty_root(self, blueprint_root: Path):
        from forgekit.blueprints.loader import BlueprintLoader

        registry = BlueprintRegistry()
        assert registry.load_from(BlueprintLoader(blueprint_root)) == 0
        assert len(registry) == 0

    def test_bundled_blueprints(self):
        registry = BlueprintRegistry.from_provider(FileProvider.bundled())
        assert "cli-simple" in registry


class TestConcurrency:
    def test_concurrent_access_sees_whole_entries(self):
        registry = BlueprintRegistry()
        errors: list[BaseException] = []

        def writer(index: int) -> None:
            blueprint_type = f"type{index % 5}"
            for round_ in range(50):
                registry.register(_descriptor(blueprint_type, f"v{round_ % 3}"))
                try:
                    registry.remove(f"{blueprint_type}-v{(round_ + 1) % 3}")
                except TemplateNotFoundError:
                    pass

        def reader() -> None:
            for _ in range(200):
                for descriptor in registry.list():
                    if not descriptor.id or not descriptor.type:
                        errors.append(AssertionError(f"partial entry {descriptor!r}"))
                    try:
                        fetched = registry.get(descriptor.id)
                    except TemplateNotFoundError:
                        continue
                    if fetched.id != descriptor.id:
                        errors.append(AssertionError("mismatched entry"))

        with ThreadPoolExecutor(max_workers=10) as pool:
            futures = [pool.submit(writer, i) for i in range(5)]
            futures += [pool.submit(reader) for _ in range(5)]
            for future in futures:
                future.result(timeout=30)

        assert errors == []


class TestReadWriteLock:
    def test_readers_share(self):
        lock = ReadWriteLock()
        inside = threading.Barrier(2, timeout=5)

        def read() -> None:
            with lock.read():
                inside.wait()

        threads = [threading.Thread(target=read) for _ in range(2)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=5)
        assert not any(thread.is_alive() for thread in threads)

    def test_writer_excludes_readers(self):
        lock = ReadWriteLock()
        events: list[str] = []
        writer_in = threading.Event()

        def write() -> None:
            with lock.write():
                writer_in.set()
                events.append("write-start")
                threading.Event().wait(0.05)
                events.append("write-end")

        def read() -> None:
            writer_in.wait(timeout=5)
            with lock.read():
                events.append("read")

        threads = [threading.Thread(target=write), threading.Thread(target=read)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=5)
        assert events == ["write-start", "write-end", "read"]
