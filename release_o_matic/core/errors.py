from __future__ import annotations

from enum import StrEnum


class ErrorKind(StrEnum):
    invalid_input = "invalid_input"
    not_found = "not_found"
    conflict = "conflict"
    busy = "busy"
    unreadable = "unreadable"


class ReleaseError(ValueError):
    """A rule violation reported by the core.

    `kind` tells the caller how to react (the HTTP layer maps it to a status code),
    `hint` optionally suggests a fix (e.g. the next free build version).
    """

    def __init__(self, kind: ErrorKind, message: str, *, hint: str | None = None) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.hint = hint

    def to_dict(self) -> dict[str, str | None]:
        return {"kind": self.kind.value, "message": self.message, "hint": self.hint}


def invalid_input(message: str, *, hint: str | None = None) -> ReleaseError:
    return ReleaseError(ErrorKind.invalid_input, message, hint=hint)


def not_found(message: str, *, hint: str | None = None) -> ReleaseError:
    return ReleaseError(ErrorKind.not_found, message, hint=hint)


def conflict(message: str, *, hint: str | None = None) -> ReleaseError:
    return ReleaseError(ErrorKind.conflict, message, hint=hint)
