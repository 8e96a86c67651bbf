"""Field-scoped validation errors, collected rather than raised one at a time."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class FieldError:
    code: str
    message: str
    field: str | None = None

    def __str__(self) -> str:
        where = f"{self.field}: " if self.field else ""
        return f"{where}{self.message} [{self.code}]"


class Errors:
    """Error collector with a nested path, e.g. ``acct1.name`` inside a batch."""

    def __init__(self, object_name: str = "") -> None:
        self.object_name = object_name
        self._errors: list[FieldError] = []
        self._path: list[str] = []

    def push_nested_path(self, segment: str) -> None:
        self._path.append(segment)

    def pop_nested_path(self) -> None:
        self._path.pop()

    def _qualify(self, field: str | None) -> str | None:
        parts = [*self._path, field] if field else list(self._path)
        return ".".join(parts) or None

    def reject_value(self, field: str, code: str, message: str) -> None:
        self._errors.append(FieldError(str(code), message, self._qualify(field)))

    def reject(self, code: str, message: str) -> None:
        self._errors.append(FieldError(str(code), message, self._qualify(None)))

    def has_errors(self) -> bool:
        return bool(self._errors)

    @property
    def all_errors(self) -> list[FieldError]:
        return list(self._errors)

    def __len__(self) -> int:
        return len(self._errors)
