from __future__ import annotations

import re
from collections.abc import Iterator
from dataclasses import dataclass

from release_o_matic.core.errors import invalid_input

# ASCII only: str.isdigit() and \d also accept characters such as "²" or "٣".
BUILD_KEY_RE = re.compile(r"[a-zA-Z0-9_-]+-[0-9]+")
NAME_RE = re.compile(r"[a-zA-Z0-9_-]+")
VERSION_RE = re.compile(r"[0-9]+")


@dataclass(frozen=True, slots=True)
class ParsedBuildKey:
    env: str
    version: int

    def __iter__(self) -> Iterator[str | int]:
        return iter((self.env, self.version))


def is_build_key(value: str) -> bool:
    return BUILD_KEY_RE.fullmatch(value) is not None


def is_safe_name(value: str) -> bool:
    """True for game/environment/platform names that map to a single path segment."""

    return NAME_RE.fullmatch(value) is not None


def is_version_name(value: str) -> bool:
    """True when `value` names a build directory (plain ASCII digits)."""

    return VERSION_RE.fullmatch(value) is not None


def create_build_key(env: str, version: int) -> str:
    # Environments ending in "-<digits>" (e.g. "staging-2") are ambiguous with the key
    # grammar; they are a reserved naming pattern, not something we try to repair here.
    if not is_safe_name(env):
        raise invalid_input(f"invalid environment name '{env}'")
    if version <= 0:
        raise invalid_input(f"build version must be a positive integer, got {version}")
    return f"{env}-{version}"


def parse_build_key(key: str) -> ParsedBuildKey:
    if not is_build_key(key):
        raise invalid_input(f"invalid build key '{key}'", hint="expected <environment>-<version>, e.g. master-12")
    env, _, version = key.rpartition("-")
    return ParsedBuildKey(env=env, version=int(version))


def normalize_build_key(key: str) -> str:
    """Canonical spelling of `key`, so `master-01` and `master-1` name the same build."""

    parsed = parse_build_key(key)
    return create_build_key(parsed.env, parsed.version)


def require_name(value: str, *, what: str) -> str:
    if not is_safe_name(value):
        raise invalid_input(f"invalid {what} name '{value}'", hint="use letters, digits, '_' and '-' only")
    return value
