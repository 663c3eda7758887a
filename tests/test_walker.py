"""Integration tests for the dependency walker and package fetcher against a mock npm registry."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict

import pytest

from mock_registry import MockRegistryServer, Reply
from pullkit_builtin.packages import DependencyWalker, NpmRegistryClient, PackageFetcher
from pullkit_core.errors import InvalidReferenceError
from pullkit_core.events import ARTIFACT_CACHED, ARTIFACT_FAILED, EventBus
from pullkit_core.transfer import BlobStreamer


class NpmWorld:
    """Publishes packuments, version documents and tarballs on the mock server."""

    def __init__(self, server: MockRegistryServer) -> None:
        self.server = server
        self.documents: Dict[str, Dict[str, Any]] = {}

    def publish(
        self,
        name: str,
        version: str,
        dependencies: Dict[str, str] | None = None,
        *,
        tags: Dict[str, str] | None = None,
        tarball: Reply | None = None,
    ) -> None:
        tarball_path = f"/{name}/-/{name}-{version}.tgz"
        metadata = {
            "name": name,
            "version": version,
            "dependencies": dependencies or {},
            "dist": {"tarball": self.server.url + tarball_path},
        }
        document = self.documents.setdefault(name, {"name": name, "dist-tags": {}, "versions": {}})
        document["versions"][version] = metadata
        document["dist-tags"].update(tags or {})
        self.server.add(f"/{name}", lambda _request, n=name: Reply.json(self.documents[n]))
        self.server.add(f"/{name}/{version}", Reply.json(metadata))
        self.server.add(tarball_path, tarball or Reply.blob(f"{name}@{version}".encode("utf-8")))

    def tarball_requests(self) -> list[str]:
        return [path for path in self.server.paths() if path.endswith(".tgz")]


@pytest.fixture
def world(registry: MockRegistryServer) -> NpmWorld:
    return NpmWorld(registry)


def _walker(registry: MockRegistryServer, tmp_path: Path, events: EventBus | None = None) -> DependencyWalker:
    client = NpmRegistryClient(base_url=registry.url, timeout=5)
    streamer = BlobStreamer(timeout=5, chunk_size=4, events=events)
    return DependencyWalker(client, streamer, tmp_path / "npm-packages", events=events)


def test_single_package_without_dependencies(world: NpmWorld, registry: MockRegistryServer, tmp_path: Path) -> None:
    world.publish("leftpad", "1.0.0")
    walker = _walker(registry, tmp_path)

    report = walker.acquire("leftpad", "1.0.0")

    assert report.ok
    assert registry.count("/leftpad/1.0.0") == 1
    assert world.tarball_requests() == ["/leftpad/-/leftpad-1.0.0.tgz"]
    assert len(walker.seen) == 1
    target = tmp_path / "npm-packages" / "leftpad-1.0.0.tgz"
    assert target.read_bytes() == b"leftpad@1.0.0"
    assert report.downloaded[0].local_path == target
    assert report.downloaded[0].size_bytes == len(b"leftpad@1.0.0")


def test_second_acquire_is_a_no_op(world: NpmWorld, registry: MockRegistryServer, tmp_path: Path) -> None:
    world.publish("leftpad", "1.0.0")
    walker = _walker(registry, tmp_path)
    walker.acquire("leftpad", "1.0.0")
    before = len(registry.requests)

    report = walker.acquire("leftpad", "1.0.0")

    assert len(registry.requests) == before
    assert report.downloaded == [] and report.cached == []


def test_cycles_terminate_and_fetch_each_package_once(
    world: NpmWorld, registry: MockRegistryServer, tmp_path: Path
) -> None:
    world.publish("alpha", "1.0.0", {"beta": "^1.0.0"})
    world.publish("beta", "1.0.0", {"alpha": "^1.0.0"})
    walker = _walker(registry, tmp_path)

    report = walker.acquire("alpha", "1.0.0")

    assert report.ok
    assert sorted(world.tarball_requests()) == ["/alpha/-/alpha-1.0.0.tgz", "/beta/-/beta-1.0.0.tgz"]
    assert {identity.spec for identity in walker.seen} == {"alpha@1.0.0", "beta@1.0.0"}


def test_existing_file_skips_the_download(world: NpmWorld, registry: MockRegistryServer, tmp_path: Path) -> None:
    world.publish("leftpad", "1.0.0")
    target = tmp_path / "npm-packages" / "leftpad-1.0.0.tgz"
    target.parent.mkdir(parents=True)
    target.write_bytes(b"already here")
    events = EventBus()
    cached: list[str] = []
    events.on(ARTIFACT_CACHED, lambda event: cached.append(event.payload["identity"]))
    walker = _walker(registry, tmp_path, events)

    report = walker.acquire("leftpad", "1.0.0")

    assert world.tarball_requests() == []
    assert cached == ["leftpad@1.0.0"]
    assert report.cached[0].size_bytes == len(b"already here")
    assert target.read_bytes() == b"already here"


def test_unresolvable_edge_is_isolated(world: NpmWorld, registry: MockRegistryServer, tmp_path: Path) -> None:
    world.publish("app", "1.0.0", {"left": "^1.0.0", "ghost": "^9.0.0", "right": "~2.1.0"})
    world.publish("left", "1.4.0")
    world.publish("ghost", "1.0.0")
    world.publish("right", "2.1.3")
    walker = _walker(registry, tmp_path)

    report = walker.acquire("app", "1.0.0")

    assert report.ok
    assert len(report.warnings) == 1
    assert "ghost@^9.0.0" in report.warnings[0]
    assert [artifact.identity.spec for artifact in report.downloaded] == ["app@1.0.0", "left@1.4.0", "right@2.1.3"]


def test_unsupported_dependency_spec_is_a_warning(
    world: NpmWorld, registry: MockRegistryServer, tmp_path: Path
) -> None:
    world.publish("app", "1.0.0", {"from-git": "git+https://example.com/repo.git", "leftpad": "*"})
    world.publish("from-git", "1.0.0")
    world.publish("leftpad", "1.0.0")
    walker = _walker(registry, tmp_path)

    report = walker.acquire("app", "1.0.0")

    assert len(report.warnings) == 1
    assert report.warnings[0].startswith("unsupported dependency spec")
    assert "/from-git/-/from-git-1.0.0.tgz" not in world.tarball_requests()
    assert "/leftpad/-/leftpad-1.0.0.tgz" in world.tarball_requests()


def test_download_order_is_depth_first(world: NpmWorld, registry: MockRegistryServer, tmp_path: Path) -> None:
    world.publish("root", "1.0.0", {"first": "1", "second": "1"})
    world.publish("first", "1.0.0", {"nested": "1"})
    world.publish("second", "1.0.0")
    world.publish("nested", "1.0.0")
    walker = _walker(registry, tmp_path)

    report = walker.acquire("root", "1.0.0")

    assert [artifact.identity.name for artifact in report.downloaded] == ["root", "first", "nested", "second"]


def test_dist_tags_take_precedence_over_ranges(
    world: NpmWorld, registry: MockRegistryServer, tmp_path: Path
) -> None:
    world.publish("app", "1.0.0", {"tool": "next"})
    world.publish("tool", "1.0.0")
    world.publish("tool", "2.0.0-beta.1", tags={"next": "2.0.0-beta.1", "latest": "1.0.0"})
    walker = _walker(registry, tmp_path)

    report = walker.acquire("app", "1.0.0")

    assert report.warnings == []
    assert "tool@2.0.0-beta.1" in [artifact.identity.spec for artifact in report.downloaded]


def test_packuments_are_fetched_once_per_name(
    world: NpmWorld, registry: MockRegistryServer, tmp_path: Path
) -> None:
    world.publish("app", "1.0.0", {"a": "1", "b": "1"})
    world.publish("a", "1.0.0", {"shared": "^1.0.0"})
    world.publish("b", "1.0.0", {"shared": "^1.1.0"})
    world.publish("shared", "1.0.0")
    world.publish("shared", "1.2.0")
    walker = _walker(registry, tmp_path)

    walker.acquire("app", "1.0.0")

    assert registry.count("/shared") == 1
    assert world.tarball_requests().count("/shared/-/shared-1.2.0.tgz") == 1


def test_failed_tarball_is_reported_and_walk_continues(
    world: NpmWorld, registry: MockRegistryServer, tmp_path: Path
) -> None:
    world.publish("app", "1.0.0", {"broken": "1", "fine": "1"})
    world.publish("broken", "1.0.0", tarball=Reply(status=500, body=b"boom"))
    world.publish("fine", "1.0.0")
    events = EventBus()
    failed: list[str] = []
    events.on(ARTIFACT_FAILED, lambda event: failed.append(event.payload["identity"]))
    walker = _walker(registry, tmp_path, events)

    report = walker.acquire("app", "1.0.0")

    assert not report.ok
    assert failed == ["broken@1.0.0"]
    assert [artifact.identity.name for artifact in report.downloaded] == ["app", "fine"]
    assert not (tmp_path / "npm-packages" / "broken-1.0.0.tgz").exists()
    assert not (tmp_path / "npm-packages" / "broken-1.0.0.tgz.part").exists()


def test_fetcher_resolves_ranges_and_uses_the_chooser(
    world: NpmWorld, registry: MockRegistryServer, tmp_path: Path
) -> None:
    world.publish("lib", "1.0.0")
    world.publish("lib", "1.5.0")
    world.publish("lib", "2.0.0", tags={"latest": "2.0.0"})
    offered: list[list[str]] = []

    def choose(name: str, versions):
        offered.append(list(versions))
        return "1.0.0"

    fetcher = PackageFetcher(_walker(registry, tmp_path), choose)

    assert fetcher.select_version("lib", "^1.0.0") == "1.5.0"
    assert fetcher.select_version("lib", "latest") == "2.0.0"
    assert fetcher.fetch("lib").root.spec == "lib@1.0.0"
    assert offered == [["2.0.0", "1.5.0", "1.0.0"]]


def test_fetcher_defaults_to_latest_without_a_chooser(
    world: NpmWorld, registry: MockRegistryServer, tmp_path: Path
) -> None:
    world.publish("lib", "1.0.0")
    world.publish("lib", "3.0.0-rc.1")
    world.publish("lib", "2.0.0", tags={"latest": "2.0.0"})
    fetcher = PackageFetcher(_walker(registry, tmp_path))

    assert fetcher.fetch("lib").root.spec == "lib@2.0.0"


def test_fetcher_rejects_a_chosen_version_that_does_not_exist(
    world: NpmWorld, registry: MockRegistryServer, tmp_path: Path
) -> None:
    world.publish("lib", "1.0.0")
    world.publish("lib", "1.1.0")
    fetcher = PackageFetcher(_walker(registry, tmp_path), lambda name, versions: "9.9.9")

    with pytest.raises(InvalidReferenceError):
        fetcher.fetch("lib")


def test_fetch_all_isolates_top_level_failures(
    world: NpmWorld, registry: MockRegistryServer, tmp_path: Path
) -> None:
    world.publish("leftpad", "1.0.0")
    fetcher = PackageFetcher(_walker(registry, tmp_path))

    batch = fetcher.fetch_all(["missing-package", "leftpad", "leftpad@^5"])

    assert not batch.ok
    assert set(batch.errors) == {"missing-package", "leftpad@^5"}
    assert batch.results["leftpad"].ok


def test_scoped_packument_is_shared_between_edge_and_node(
    world: NpmWorld, registry: MockRegistryServer, tmp_path: Path
) -> None:
    world.publish("app", "1.0.0", {"@scope/lib": "^1.0.0"})
    scoped = {
        "name": "@scope/lib",
        "dist-tags": {"latest": "1.2.0"},
        "versions": {
            version: {
                "name": "@scope/lib",
                "version": version,
                "dist": {"tarball": f"{registry.url}/@scope/lib/-/lib-{version}.tgz"},
            }
            for version in ("1.0.0", "1.2.0")
        },
    }
    registry.add("/@scope%2Flib", Reply.json(scoped))
    registry.add("/@scope/lib/-/lib-1.2.0.tgz", Reply.blob(b"scoped"))
    walker = _walker(registry, tmp_path)

    report = walker.acquire("app", "1.0.0")

    assert report.ok
    assert registry.count("/@scope%2Flib") == 1
    assert (tmp_path / "npm-packages" / "lib-1.2.0.tgz").read_bytes() == b"scoped"
