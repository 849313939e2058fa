"""Domain layer definitions."""

from .snapshot import IngestedSnapshot, SheetSource, SourceOutcome, SourceReport

__all__ = [
    "IngestedSnapshot",
    "SheetSource",
    "SourceOutcome",
    "SourceReport",
]
