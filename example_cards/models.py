"""Data models for the example card catalog.

This module contains the core data structures used throughout the catalog:
card metadata, listing filters, download results and lint findings.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional


CARD_TYPES = ("feature", "bug", "refactor", "chore", "spike", "docs", "test")
COMPLEXITY_LEVELS = ("simple", "medium", "complex")
PRIORITY_RANGE = (1, 5)
DEFAULT_PRIORITY = 3


def normalize_tags(tags: Optional[List[str]]) -> List[str]:
    """Lowercase, strip and de-duplicate tags while keeping their order."""
    seen: List[str] = []
    for tag in tags or []:
        cleaned = tag.strip().lower()
        if cleaned and cleaned not in seen:
            seen.append(cleaned)
    return seen


def parse_priority(value: Any) -> Optional[int]:
    """Accept ``2``, ``"2"`` or ``"P2"``; return None for anything else."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    text = str(value).strip().upper()
    if text.startswith("P"):
        text = text[1:]
    return int(text) if text.isdigit() else None


@dataclass(slots=True)
class ExampleCard:
    """Metadata for a single example card on disk."""

    card_id: str
    filename: str
    path: Path
    title: str = ""
    card_type: Optional[str] = None
    complexity: Optional[str] = None
    priority: int = DEFAULT_PRIORITY
    tags: List[str] = field(default_factory=list)
    summary: str = ""

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "card_id": self.card_id,
            "filename": self.filename,
            "path": str(self.path),
            "title": self.title,
            "card_type": self.card_type,
            "complexity": self.complexity,
            "priority": self.priority,
            "tags": list(self.tags),
            "summary": self.summary,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ExampleCard":
        """Create from dictionary representation."""
        priority = parse_priority(data.get("priority"))
        return cls(
            card_id=data["card_id"],
            filename=data["filename"],
            path=Path(data["path"]),
            title=data.get("title", ""),
            card_type=data.get("card_type"),
            complexity=data.get("complexity"),
            priority=priority if priority is not None else DEFAULT_PRIORITY,
            tags=normalize_tags(data.get("tags")),
            summary=data.get("summary", ""),
        )

    def matches_query(self, text: str) -> bool:
        needle = text.strip().lower()
        if not needle:
            return True
        haystack = " ".join([self.card_id, self.title, self.summary, *self.tags]).lower()
        return needle in haystack

    def validate(self) -> List[str]:
        """Validate the card metadata and return any issues."""
        issues = []

        if not self.title:
            issues.append("Title heading is required")
        if not self.card_type:
            issues.append("Type field is required")
        elif self.card_type not in CARD_TYPES:
            issues.append(f"Invalid card type: {self.card_type}")
        if self.complexity is not None and self.complexity not in COMPLEXITY_LEVELS:
            issues.append(f"Invalid complexity: {self.complexity}")
        low, high = PRIORITY_RANGE
        if not low <= self.priority <= high:
            issues.append(f"Priority must be {low}-{high}, got: {self.priority}")

        return issues


@dataclass(slots=True)
class CardFilter:
    """Optional metadata constraints applied when listing cards."""

    card_type: Optional[str] = None
    complexity: Optional[str] = None
    tags: List[str] = field(default_factory=list)
    priority: Optional[int] = None
    query: Optional[str] = None

    def __post_init__(self) -> None:
        if self.card_type:
            self.card_type = self.card_type.strip().lower()
        if self.complexity:
            self.complexity = self.complexity.strip().lower()
        self.tags = normalize_tags(self.tags)

    def validate(self) -> List[str]:
        issues = []
        if self.card_type and self.card_type not in CARD_TYPES:
            issues.append(f"Unknown card type '{self.card_type}'. Expected one of: {', '.join(CARD_TYPES)}")
        if self.complexity and self.complexity not in COMPLEXITY_LEVELS:
            issues.append(
                f"Unknown complexity '{self.complexity}'. Expected one of: {', '.join(COMPLEXITY_LEVELS)}"
            )
        low, high = PRIORITY_RANGE
        if self.priority is not None and not low <= self.priority <= high:
            issues.append(f"Priority must be {low}-{high}, got: {self.priority}")
        return issues

    def is_empty(self) -> bool:
        return not (self.card_type or self.complexity or self.tags or self.priority is not None or self.query)

    def matches(self, card: ExampleCard) -> bool:
        if self.card_type and card.card_type != self.card_type:
            return False
        if self.complexity and card.complexity != self.complexity:
            return False
        if self.priority is not None and card.priority != self.priority:
            return False
        if self.tags and not set(self.tags).issubset(card.tags):
            return False
        if self.query and not card.matches_query(self.query):
            return False
        return True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "card_type": self.card_type,
            "complexity": self.complexity,
            "tags": list(self.tags),
            "priority": self.priority,
            "query": self.query,
        }


@dataclass(slots=True)
class DownloadResult:
    """Outcome of copying a card out of the catalog."""

    card_id: str
    source_path: Path
    destination_path: Path
    renamed: bool
    bytes_written: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "card_id": self.card_id,
            "source_path": str(self.source_path),
            "destination_path": str(self.destination_path),
            "renamed": self.renamed,
            "bytes_written": self.bytes_written,
        }


@dataclass(slots=True)
class LintIssue:
    """A single content problem found in the catalog."""

    card_id: Optional[str]  # None for catalog-level findings
    severity: str  # 'error' or 'warning'
    message: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "card_id": self.card_id,
            "severity": self.severity,
            "message": self.message,
        }


@dataclass(slots=True)
class LintReport:
    """Aggregated lint findings for a catalog."""

    cards_checked: int = 0
    issues: List[LintIssue] = field(default_factory=list)

    def add(self, card_id: Optional[str], severity: str, message: str) -> None:
        self.issues.append(LintIssue(card_id=card_id, severity=severity, message=message))

    @property
    def errors(self) -> List[LintIssue]:
        return [issue for issue in self.issues if issue.severity == "error"]

    @property
    def warnings(self) -> List[LintIssue]:
        return [issue for issue in self.issues if issue.severity == "warning"]

    @property
    def ok(self) -> bool:
        return not self.errors

    def to_dict(self) -> Dict[str, Any]:
        return {
            "cards_checked": self.cards_checked,
            "ok": self.ok,
            "error_count": len(self.errors),
            "warning_count": len(self.warnings),
            "issues": [issue.to_dict() for issue in self.issues],
        }
