"""Plain-text prompts used by the interactive loop and the engine selectors."""

from __future__ import annotations

from typing import Callable, Sequence

from pullkit_builtin.images.manifest import PlatformEntry
from pullkit_core.errors import SelectionAbortedError

InputFn = Callable[[str], str]
OutputFn = Callable[[str], None]


def ask_text(message: str, *, input_fn: InputFn = input, output: OutputFn = print) -> str:
    """Ask until a non-blank answer is given."""

    while True:
        value = input_fn(f"{message}: ").strip()
        if value:
            return value
        output("[pullkit] a value is required")


def ask_choice(
    message: str,
    options: Sequence[str],
    *,
    input_fn: InputFn = input,
    output: OutputFn = print,
) -> int:
    """Show a numbered list and return the 0-based index of the picked option."""

    if not options:
        raise ValueError("nothing to choose from")
    output(message)
    for number, option in enumerate(options, start=1):
        output(f"  {number:>3}) {option}")
    while True:
        raw = input_fn(f"choice [1-{len(options)}]: ").strip()
        if raw.isdigit() and 1 <= int(raw) <= len(options):
            return int(raw) - 1
        if raw in options:
            return list(options).index(raw)
        output(f"[pullkit] enter a number between 1 and {len(options)}")


def ask_confirm(message: str, *, default: bool = False, input_fn: InputFn = input) -> bool:
    suffix = "[Y/n]" if default else "[y/N]"
    raw = input_fn(f"{message} {suffix} ").strip().lower()
    if not raw:
        return default
    return raw in ("y", "yes")


def version_chooser(input_fn: InputFn = input, output: OutputFn = print) -> Callable[[str, Sequence[str]], str]:
    def choose(name: str, versions: Sequence[str]) -> str:
        try:
            index = ask_choice(f"Select a version of {name}:", versions, input_fn=input_fn, output=output)
        except EOFError as exc:
            raise SelectionAbortedError(f"no version chosen for {name}") from exc
        return versions[index]

    return choose


def tag_chooser(input_fn: InputFn = input, output: OutputFn = print) -> Callable[[str, Sequence[str]], str]:
    def choose(repository: str, tags: Sequence[str]) -> str:
        try:
            index = ask_choice(f"Select a tag of {repository}:", tags, input_fn=input_fn, output=output)
        except EOFError as exc:
            raise SelectionAbortedError(f"no tag chosen for {repository}") from exc
        return tags[index]

    return choose


def platform_prompt(input_fn: InputFn = input, output: OutputFn = print) -> Callable[[Sequence[PlatformEntry]], int]:
    def choose(entries: Sequence[PlatformEntry]) -> int:
        labels = [entry.label for entry in entries]
        try:
            return ask_choice("Select a platform:", labels, input_fn=input_fn, output=output)
        except EOFError as exc:
            raise SelectionAbortedError("no platform chosen") from exc

    return choose
