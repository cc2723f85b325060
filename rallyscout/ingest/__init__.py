"""Store rows and rally log normalization."""

from .normalizer import ActionLogSource, FlatRecordSource, RallyLogNormalizer, normalize_rallies
from .rows import ActionRecord, MatchSnapshot, RallyRecord

__all__ = [
    "ActionLogSource",
    "ActionRecord",
    "FlatRecordSource",
    "MatchSnapshot",
    "RallyLogNormalizer",
    "RallyRecord",
    "normalize_rallies",
]
