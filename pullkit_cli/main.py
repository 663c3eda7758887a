"""Command line surface: ``pullkit npm`` and ``pullkit docker``."""

from __future__ import annotations

import argparse
import logging
import sys
from typing import Callable, Sequence

from pullkit_builtin.images import ImagePuller, PullReport, client_for_registry, platform_selector
from pullkit_builtin.packages import DependencyWalker, NpmRegistryClient, PackageFetcher, WalkReport
from pullkit_core.batch import BatchResult
from pullkit_core.config import PullSettings, load_settings
from pullkit_core.errors import ConfigError
from pullkit_core.events import EventBus
from pullkit_core.http import build_session
from pullkit_core.transfer import BlobStreamer

from .progress import ProgressRenderer
from .prompts import InputFn, ask_confirm, ask_text, platform_prompt, tag_chooser, version_chooser

CLI_VERSION = "0.1.0"
QUIT_SENTINEL = ":q"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pullkit",
        description="Download npm packages (with dependencies) and container images for offline use.",
    )
    parser.add_argument("--version", action="version", version=f"pullkit v{CLI_VERSION}")
    subparsers = parser.add_subparsers(dest="command")

    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--output-dir", dest="downloads_dir", help="downloads root (default: ./downloads)")
    common.add_argument("--timeout", type=float, dest="timeout_seconds", help="per-request timeout in seconds")
    common.add_argument("--log-level", dest="log_level", help="logging level (DEBUG, INFO, WARNING, ...)")
    common.add_argument("--no-progress", action="store_true", help="do not draw progress bars")
    common.add_argument(
        "--latest",
        action="store_true",
        help="pick the newest version/tag instead of prompting",
    )

    npm = subparsers.add_parser("npm", parents=[common], help="download npm packages and their dependencies")
    npm.add_argument("specs", nargs="*", help="name, name@version or name@range")
    npm.add_argument("--registry", dest="npm_registry", help="npm registry URL")
    npm.set_defaults(func=_handle_npm)

    docker = subparsers.add_parser("docker", parents=[common], help="download container images as tar archives")
    docker.add_argument("images", nargs="*", help="image[:tag], e.g. alpine:3.18")
    docker.add_argument("--registry", dest="docker_registry", help="default registry URL")
    docker.add_argument("--platform", help="os/arch[/variant] to pick from multi-platform images")
    docker.set_defaults(func=_handle_docker)

    return parser


def main(argv: Sequence[str] | None = None, *, input_fn: InputFn = input) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    func = getattr(args, "func", None)
    if func is None:
        parser.print_help()
        return 0

    overrides = {
        key: getattr(args, key, None)
        for key in ("downloads_dir", "timeout_seconds", "log_level", "npm_registry", "docker_registry")
    }
    try:
        settings = load_settings(overrides)
    except ConfigError as exc:
        print(f"[pullkit] error: {exc}")
        return 2
    _configure_logging(settings.log_level)
    return func(args, settings, input_fn)


def _configure_logging(level_name: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level_name.upper(), logging.WARNING),
        format="%(levelname)s %(name)s: %(message)s",
    )


def _events(args: argparse.Namespace) -> EventBus:
    events = EventBus()
    if not args.no_progress:
        ProgressRenderer(sys.stderr).attach(events)
    return events


def _run_session(
    initial: Sequence[str],
    process: Callable[[list[str]], bool],
    noun: str,
    input_fn: InputFn,
) -> int:
    """Process names from argv, or loop on prompts until ``:q`` when none were given."""

    if initial:
        return 0 if process(list(initial)) else 1

    ok = True
    while True:
        try:
            text = ask_text(f"Enter {noun} (type {QUIT_SENTINEL} to quit)", input_fn=input_fn)
        except EOFError:
            break
        if text == QUIT_SENTINEL:
            break
        ok = process(text.split()) and ok
        try:
            again = ask_confirm(f"Download another {noun}?", input_fn=input_fn)
        except EOFError:
            break
        if not again:
            break
    print("[pullkit] bye")
    return 0 if ok else 1


# ------------------------- npm -------------------------


def _handle_npm(args: argparse.Namespace, settings: PullSettings, input_fn: InputFn) -> int:
    events = _events(args)
    session = build_session()
    client = NpmRegistryClient(base_url=settings.npm_registry, timeout=settings.timeout_seconds, session=session)
    streamer = BlobStreamer(
        timeout=settings.timeout_seconds,
        chunk_size=settings.chunk_size,
        events=events,
        session=session,
    )
    walker = DependencyWalker(client, streamer, settings.npm_packages_dir, events=events)
    fetcher = PackageFetcher(walker, None if args.latest else version_chooser(input_fn))

    def process(specs: list[str]) -> bool:
        return _report_npm(fetcher.fetch_all(specs))

    return _run_session(args.specs, process, "package name", input_fn)


def _report_npm(batch: BatchResult[WalkReport]) -> bool:
    ok = batch.ok
    for spec, exc in batch.errors.items():
        print(f"[pullkit:npm] error: {spec}: {exc}")
    for report in batch.results.values():
        for warning in report.warnings:
            print(f"[pullkit:npm] warning: {warning}")
        for failure in report.failures:
            print(f"[pullkit:npm] error: {failure}")
        print(
            f"[pullkit:npm] {report.root.spec}: downloaded={len(report.downloaded)} "
            f"cached={len(report.cached)} warnings={len(report.warnings)} failures={len(report.failures)}"
        )
        ok = ok and report.ok
    return ok


# ------------------------- docker -------------------------


def _handle_docker(args: argparse.Namespace, settings: PullSettings, input_fn: InputFn) -> int:
    events = _events(args)
    session = build_session()
    streamer = BlobStreamer(
        timeout=settings.timeout_seconds,
        chunk_size=settings.chunk_size,
        events=events,
        session=session,
    )

    def client_factory(reference):
        return client_for_registry(
            reference.registry,
            default_registry=settings.docker_registry,
            auth_url=settings.docker_auth_url,
            auth_service=settings.docker_auth_service,
            timeout=settings.timeout_seconds,
            session=session,
        )

    puller = ImagePuller(
        client_factory,
        streamer,
        settings.docker_images_dir,
        select_tag=None if args.latest else tag_chooser(input_fn),
        select_platform=platform_selector(args.platform) if args.platform else platform_prompt(input_fn),
        events=events,
    )

    def process(images: list[str]) -> bool:
        return _report_docker(puller.pull_all(images))

    return _run_session(args.images, process, "image name", input_fn)


def _report_docker(batch: BatchResult[PullReport]) -> bool:
    ok = batch.ok
    for image, exc in batch.errors.items():
        print(f"[pullkit:docker] error: {image}: {exc}")
    for report in batch.results.values():
        if report.skipped:
            print(f"[pullkit:docker] {report.reference}: already downloaded ({report.destination})")
            continue
        for digest, error in report.layer_failures.items():
            print(f"[pullkit:docker] error: layer {digest}: {error}")
            print(f"[pullkit:docker]   retry manually: GET {digest} from {report.reference.repository} with a pull token")
        state = "complete" if report.complete else "incomplete"
        print(
            f"[pullkit:docker] {report.reference}: {state} archive {report.destination} "
            f"layers={len(report.layers_added)}"
        )
        if not report.complete:
            # later runs skip an existing archive
            print(f"[pullkit:docker] {report.reference}: archive is missing layers; delete {report.destination} to retry")
        ok = ok and report.complete
    return ok
