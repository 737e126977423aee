"""Snapshot of the process state the pipeline depends on."""

import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType


@dataclass(frozen=True)
class ProcessContext:
    """Environment variables and working directory, captured once.

    Components receive this instead of reading ``os.environ`` so that
    environment inference and secret resolution are pure functions of it.
    """

    environ: Mapping[str, str] = field(default_factory=dict)
    cwd: Path = field(default_factory=Path.cwd)

    def __post_init__(self) -> None:
        object.__setattr__(self, "environ", MappingProxyType(dict(self.environ)))
        object.__setattr__(self, "cwd", Path(self.cwd))

    @classmethod
    def from_os(cls) -> "ProcessContext":
        """Capture the current process environment."""
        return cls(environ=dict(os.environ), cwd=Path.cwd())

    def get(self, name: str, default: str | None = None) -> str | None:
        """Get a non-empty environment variable."""
        value = self.environ.get(name)
        if value is None or value == "":
            return default
        return value

    def has(self, name: str) -> bool:
        """Check whether a variable is set to a non-empty value."""
        return self.get(name) is not None

    def first(self, *names: str, default: str | None = None) -> str | None:
        """Return the first variable from ``names`` that is set."""
        for name in names:
            value = self.get(name)
            if value is not None:
                return value
        return default

    def with_env(self, **overrides: str) -> "ProcessContext":
        """Copy with some variables replaced."""
        return ProcessContext(environ={**self.environ, **overrides}, cwd=self.cwd)
