"""
Error taxonomy for the DXF import pipeline.

Only fatal conditions are exceptions. Everything recoverable is a plain
record collected into lists and returned next to the successful output.
"""

from dataclasses import dataclass, field


class GeoLoaderError(Exception):
    """Base class for fatal pipeline errors."""


class ParseError(GeoLoaderError):
    """Input has no usable DXF structure at all."""

    def __init__(self, message, line=None):
        super().__init__(message)
        self.line = line


class UnknownReferenceSystemError(GeoLoaderError, KeyError):
    """Lookup of a reference system that was never registered."""

    def __str__(self):
        return str(self.args[0]) if self.args else "unknown reference system"


class BatchTransformationError(GeoLoaderError):
    """More than half of a batch failed to transform."""

    def __init__(self, message, errors, failed, total):
        super().__init__(message)
        self.errors = list(errors)
        self.failed = failed
        self.total = total

    @property
    def failure_ratio(self):
        return self.failed / self.total if self.total else 0.0


@dataclass(frozen=True)
class ParseIssue:
    line: int
    message: str

    def __str__(self):
        return f"line {self.line}: {self.message}"


@dataclass(frozen=True)
class ValidationError:
    kind: str
    handle: str | None
    message: str

    def __str__(self):
        return f"{self.kind} [{self.handle or '?'}]: {self.message}"


@dataclass(frozen=True)
class CycleError:
    block: str
    path: tuple[str, ...] = ()

    @property
    def message(self):
        return "circular block reference: " + " -> ".join((*self.path, self.block))

    def __str__(self):
        return self.message


@dataclass(frozen=True)
class TransformationError:
    original: tuple[float, ...]
    message: str
    feature_id: str | None = None
    layer: str | None = None

    def __str__(self):
        where = f" (feature {self.feature_id})" if self.feature_id else ""
        return f"{self.message} at {self.original}{where}"


@dataclass
class Warnings:
    """Collects recoverable issues for one pipeline run."""

    parse: list[ParseIssue] = field(default_factory=list)
    validation: list[ValidationError] = field(default_factory=list)
    cycles: list[CycleError] = field(default_factory=list)
    transformation: list[TransformationError] = field(default_factory=list)
    messages: list[str] = field(default_factory=list)

    def extend(self, other):
        self.parse.extend(other.parse)
        self.validation.extend(other.validation)
        self.cycles.extend(other.cycles)
        self.transformation.extend(other.transformation)
        self.messages.extend(other.messages)

    def as_strings(self):
        items = [*self.parse, *self.validation, *self.cycles, *self.transformation]
        return [str(item) for item in items] + list(self.messages)

    def __len__(self):
        return (
            len(self.parse) + len(self.validation) + len(self.cycles)
            + len(self.transformation) + len(self.messages)
        )
