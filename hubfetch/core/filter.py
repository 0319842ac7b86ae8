"""
Filter engine applying FilterCriteria to listing entries.
"""

from dataclasses import dataclass, field
from typing import Iterable, List

from ..models.download import FilterCriteria
from ..models.repository import TreeEntry


@dataclass
class FilterResult:
    """Outcome of filtering a batch of entries."""

    included_files: List[TreeEntry] = field(default_factory=list)
    excluded_files: List[TreeEntry] = field(default_factory=list)
    total_files: int = 0

    @property
    def filtered_files(self) -> int:
        return len(self.included_files)


class FilterEngine:
    """Evaluates FilterCriteria over already-fetched entry metadata."""

    def __init__(self, criteria: FilterCriteria):
        self.criteria = criteria

    def should_include_file(self, entry: TreeEntry) -> bool:
        """
        Check whether a listing entry passes every criterion.

        Directories never pass; size bounds only apply to known sizes.
        """
        if not entry.is_file:
            return False

        if not self.criteria.matches_path(entry.path):
            return False

        return self.criteria.matches_size(entry.size)

    def filter_files(self, entries: Iterable[TreeEntry]) -> FilterResult:
        result = FilterResult()
        for entry in entries:
            result.total_files += 1
            if self.should_include_file(entry):
                result.included_files.append(entry)
            else:
                result.excluded_files.append(entry)
        return result


__all__ = ["FilterEngine", "FilterResult"]
