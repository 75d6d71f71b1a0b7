"""Catalog management for the bundled example cards.

This module loads card metadata from the markdown files and the optional
``manifest.json``, filters cards, copies them into a project (optionally under
their backlog name) and lints the catalog's content.
"""

from __future__ import annotations

import hashlib
import json
import logging
import os
import re
from collections import Counter
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from .models import (
    CARD_TYPES,
    DEFAULT_PRIORITY,
    PRIORITY_RANGE,
    CardFilter,
    DownloadResult,
    ExampleCard,
    LintReport,
    normalize_tags,
    parse_priority,
)
from .cards_logging import (
    log_operation,
    log_performance,
    log_cards_listed,
    log_card_downloaded,
    log_catalog_validated,
    log_error_with_context,
    observability_hooks,
)

logger = logging.getLogger("example_cards.catalog")


class CatalogError(RuntimeError):
    """The catalog root or its cards directory cannot be used."""


class ManifestError(ValueError):
    """manifest.json exists but cannot be read."""


class CardNotFoundError(LookupError):
    """No card with the requested id exists in the catalog."""


class DestinationExistsError(FileExistsError):
    """The download target exists and overwriting was not requested."""


_TITLE_PATTERN = re.compile(r"^#\s+(?P<title>.+?)(?:\s+#+)?\s*$")
_HEADING_PATTERN = re.compile(r"^#{1,6}\s+(?P<heading>.+?)\s*$")
_FIELD_PATTERN = re.compile(
    r"^\s*(?:[-*]\s+)?\*\*(?P<key>[A-Za-z][A-Za-z ]*?)\s*:?\*\*\s*:?\s*(?P<value>.+?)\s*$"
)
_FENCE_PATTERN = re.compile(r"^\s*(?P<fence>`{3,}|~{3,})(?P<info>.*)$")

_MANIFEST_FIELDS = {
    "title": "title",
    "type": "card_type",
    "complexity": "complexity",
    "priority": "priority",
    "tags": "tags",
    "summary": "summary",
}

SLUG_MAX_LENGTH = 40
HASH_LENGTH = 8


def _slugify(value: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", value.lower()).strip("-")
    return slug or "card"


def _truncate_slug(slug: str, limit: int = SLUG_MAX_LENGTH) -> str:
    if len(slug) <= limit:
        return slug
    cut = slug[:limit]
    if "-" in cut and slug[limit] != "-":
        cut = cut.rsplit("-", 1)[0]
    return cut.strip("-")


def _check_manifest_entry(index: int, entry: Dict[str, Any]) -> None:
    for key in ("id", "file", "title", "summary", "type", "complexity"):
        value = entry.get(key)
        if value is not None and not isinstance(value, str):
            raise ManifestError(f"Manifest entry #{index}: '{key}' must be a string, got {type(value).__name__}")

    tags = entry.get("tags")
    if tags is None or isinstance(tags, str):
        return
    if not isinstance(tags, list) or not all(isinstance(tag, str) for tag in tags):
        raise ManifestError(f"Manifest entry #{index}: 'tags' must be a list of strings or a comma-separated string")


def _ensure_directory(directory: Path) -> None:
    """Create ``directory`` and its parents, refusing to treat a file as one."""
    for candidate in (directory, *directory.parents):
        if candidate.exists():
            if not candidate.is_dir():
                raise DestinationExistsError(f"Destination {candidate} exists and is not a directory")
            break
    directory.mkdir(parents=True, exist_ok=True)


def parse_card_text(text: str) -> Dict[str, Any]:
    """Extract title, metadata fields and summary from a card's markdown.

    Field lines look like ``**Type:** feature`` and are only read outside code
    fences. The summary is the first paragraph under a ``Summary`` heading.
    """

    title: Optional[str] = None
    fields: Dict[str, str] = {}
    summary_lines: List[str] = []
    open_fence: Optional[str] = None
    in_summary = False

    for line in text.splitlines():
        fence_match = _FENCE_PATTERN.match(line)
        if fence_match:
            fence = fence_match.group("fence")
            if open_fence is None:
                open_fence = fence
                continue
            # A block closes only on the same character, at least as long, with no info string.
            if fence[0] == open_fence[0] and len(fence) >= len(open_fence) and not fence_match.group("info").strip():
                open_fence = None
                continue
        if open_fence is not None:
            continue

        title_match = _TITLE_PATTERN.match(line)
        if title_match and title is None:
            title = title_match.group("title").strip()
            continue

        heading_match = _HEADING_PATTERN.match(line)
        if heading_match:
            in_summary = heading_match.group("heading").strip().lower() == "summary" and not summary_lines
            continue

        if in_summary:
            if line.strip():
                summary_lines.append(line.strip())
            elif summary_lines:
                in_summary = False
            continue

        field_match = _FIELD_PATTERN.match(line)
        if field_match:
            key = field_match.group("key").strip().lower()
            fields.setdefault(key, field_match.group("value").strip())

    return {
        "title": title,
        "fields": fields,
        "summary": " ".join(summary_lines),
        "fences_balanced": open_fence is None,
    }


class ExampleCatalog:
    """Read-only view over a directory of example cards."""

    CARDS_DIR_ENV = "EXAMPLE_CARDS_DIR_NAME"
    DEFAULT_CARDS_DIR = "examples"
    README_NAME = "EXAMPLES_README.md"
    MANIFEST_NAME = "manifest.json"

    def __init__(self, root: Path | str):
        self.root = Path(root).expanduser().resolve()
        self.cards_dir = self.root / (os.getenv(self.CARDS_DIR_ENV) or self.DEFAULT_CARDS_DIR)
        if not self.cards_dir.is_dir():
            error = CatalogError(f"No cards directory found at {self.cards_dir}")
            log_error_with_context(error, {"operation": "catalog_init", "root": str(self.root)})
            raise error
        logger.debug(f"Catalog opened at {self.root}")

    @property
    def manifest_path(self) -> Path:
        return self.cards_dir / self.MANIFEST_NAME

    @property
    def readme_path(self) -> Path:
        return self.root / self.README_NAME

    def readme(self) -> Optional[str]:
        if not self.readme_path.exists():
            return None
        return self.readme_path.read_text(encoding="utf-8")

    # ------------------------------------------------------------------
    # Manifest
    # ------------------------------------------------------------------

    def _manifest_entries(self) -> List[Dict[str, Any]]:
        path = self.manifest_path
        if not path.exists():
            return []
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            raise ManifestError(f"Manifest {path} is not valid JSON: {e}") from e

        cards = data.get("cards") if isinstance(data, dict) else None
        if not isinstance(cards, list):
            raise ManifestError(f"Manifest {path} must contain a 'cards' list")

        entries = []
        for index, entry in enumerate(cards):
            if not isinstance(entry, dict):
                raise ManifestError(f"Manifest entry #{index} must be an object")
            _check_manifest_entry(index, entry)
            card_id = entry.get("id") or (Path(entry["file"]).stem if entry.get("file") else None)
            if not card_id:
                raise ManifestError(f"Manifest entry #{index} has neither 'id' nor 'file'")
            entries.append({**entry, "id": card_id})
        return entries

    def load_manifest(self) -> Dict[str, Dict[str, Any]]:
        """Return manifest entries keyed by card id; empty when there is no manifest."""
        try:
            return {entry["id"]: entry for entry in self._manifest_entries()}
        except ManifestError as e:
            log_error_with_context(e, {"operation": "load_manifest", "manifest": str(self.manifest_path)})
            raise

    # ------------------------------------------------------------------
    # Card loading
    # ------------------------------------------------------------------

    def _card_paths(self) -> List[Path]:
        return sorted(path for path in self.cards_dir.glob("*.md") if path.is_file())

    def _build_card(self, path: Path, parsed: Dict[str, Any], entry: Optional[Dict[str, Any]]) -> ExampleCard:
        fields = parsed["fields"]
        tags_field = fields.get("tags", "")
        values: Dict[str, Any] = {
            "title": parsed["title"] or "",
            "card_type": fields["type"].lower() if fields.get("type") else None,
            "complexity": fields["complexity"].lower() if fields.get("complexity") else None,
            "priority": parse_priority(fields.get("priority")),
            "tags": [tag for tag in re.split(r"[,;]", tags_field) if tag.strip()],
            "summary": parsed["summary"],
        }

        for key, attribute in _MANIFEST_FIELDS.items():
            if entry and entry.get(key) not in (None, "", []):
                value = entry[key]
                if attribute == "priority":
                    value = parse_priority(value)
                    if value is None:
                        continue
                elif attribute == "tags" and isinstance(value, str):
                    value = re.split(r"[,;]", value)
                elif attribute in ("card_type", "complexity"):
                    value = str(value).lower()
                values[attribute] = value

        priority = values["priority"]
        return ExampleCard(
            card_id=path.stem,
            filename=path.name,
            path=path,
            title=values["title"],
            card_type=values["card_type"],
            complexity=values["complexity"],
            priority=priority if priority is not None else DEFAULT_PRIORITY,
            tags=normalize_tags(values["tags"]),
            summary=values["summary"],
        )

    def _load_cards(self) -> List[ExampleCard]:
        manifest = self.load_manifest()
        cards = []
        for path in self._card_paths():
            parsed = parse_card_text(path.read_text(encoding="utf-8"))
            cards.append(self._build_card(path, parsed, manifest.get(path.stem)))
        return cards

    @log_performance("list_cards")
    def list_cards(self, card_filter: Optional[CardFilter] = None) -> List[ExampleCard]:
        """List cards, optionally restricted to those matching ``card_filter``."""
        card_filter = card_filter or CardFilter()
        issues = card_filter.validate()
        if issues:
            raise ValueError("; ".join(issues))

        cards = [card for card in self._load_cards() if card_filter.matches(card)]
        log_cards_listed(len(cards), card_filter.to_dict())
        return cards

    def _normalize_card_id(self, card_id: str) -> str:
        card_id = (card_id or "").strip()
        if not card_id:
            raise ValueError("card_id cannot be empty")
        if "/" in card_id or "\\" in card_id or card_id in (".", ".."):
            raise ValueError(f"Invalid card id '{card_id}'")
        if card_id.lower().endswith(".md"):
            card_id = card_id[:-3]
        return card_id

    def get_card(self, card_id: str) -> ExampleCard:
        try:
            normalized = self._normalize_card_id(card_id)
            path = self.cards_dir / f"{normalized}.md"
            if not path.is_file():
                raise CardNotFoundError(f"Example card '{normalized}' not found in {self.cards_dir}")
            parsed = parse_card_text(path.read_text(encoding="utf-8"))
            return self._build_card(path, parsed, self.load_manifest().get(normalized))
        except Exception as e:
            log_error_with_context(e, {"operation": "get_card", "card_id": card_id})
            raise

    def read_card(self, card_id: str) -> str:
        card = self.get_card(card_id)
        try:
            return card.path.read_text(encoding="utf-8")
        except OSError as e:
            log_error_with_context(e, {"operation": "read_card", "card_id": card.card_id})
            raise

    # ------------------------------------------------------------------
    # Download
    # ------------------------------------------------------------------

    def backlog_filename(self, card: ExampleCard, priority: Optional[int] = None, *, data: Optional[bytes] = None) -> str:
        """Name a card ``backlog-P<n>-<type>-<slug>-<hash>.md``.

        The hash is the leading hex digits of the SHA-256 of the card's bytes,
        so the same card always receives the same name.
        """

        if data is None:
            data = card.path.read_bytes()
        number = priority if priority is not None else card.priority
        card_type = card.card_type if card.card_type in CARD_TYPES else "task"
        slug = _truncate_slug(_slugify(card.title or card.card_id))
        digest = hashlib.sha256(data).hexdigest()[:HASH_LENGTH]
        return f"backlog-P{number}-{card_type}-{slug}-{digest}.md"

    @log_performance("download_card")
    def download_card(
        self,
        card_id: str,
        destination: Union[Path, str],
        *,
        rename: bool = False,
        priority: Optional[int] = None,
        overwrite: bool = False,
    ) -> DownloadResult:
        """Copy a card to ``destination``.

        A directory destination (existing, or spelled with a trailing separator)
        receives the card under its own file name, or its backlog name when
        ``rename`` is set. Any other destination is the exact target path.
        """

        try:
            low, high = PRIORITY_RANGE
            if priority is not None and not low <= priority <= high:
                raise ValueError(f"Priority must be {low}-{high}, got: {priority}")

            card = self.get_card(card_id)
            raw_destination = str(destination)
            target = Path(destination).expanduser()
            is_directory = target.is_dir() or raw_destination.endswith(("/", os.sep))

            with log_operation("download_card", card_id=card.card_id, destination=raw_destination, rename=rename):
                data = card.path.read_bytes()
                renamed = False
                if is_directory:
                    _ensure_directory(target)
                    if rename:
                        target = target / self.backlog_filename(card, priority, data=data)
                        renamed = True
                    else:
                        target = target / card.filename
                else:
                    _ensure_directory(target.parent)

                target = target.resolve()
                if target == card.path.resolve():
                    raise ValueError("Destination is the catalog copy of the card itself")
                if target.is_dir():
                    raise DestinationExistsError(f"Destination {target} is a directory, not a file")
                if target.exists() and not overwrite:
                    raise DestinationExistsError(
                        f"Destination {target} already exists. Pass overwrite=True to replace it."
                    )

                target.write_bytes(data)

            result = DownloadResult(
                card_id=card.card_id,
                source_path=card.path,
                destination_path=target,
                renamed=renamed,
                bytes_written=len(data),
            )
            log_card_downloaded(card.card_id, str(target), renamed, bytes_written=len(data))
            return result

        except Exception as e:
            log_error_with_context(e, {
                "operation": "download_card",
                "card_id": card_id,
                "destination": str(destination),
                "rename": rename,
            })
            raise

    # ------------------------------------------------------------------
    # Content lint
    # ------------------------------------------------------------------

    @log_performance("validate_catalog")
    def validate(self) -> LintReport:
        """Check every card and the manifest for content problems."""
        report = LintReport()

        has_manifest = self.manifest_path.exists()
        try:
            entries = self._manifest_entries()
        except ManifestError as e:
            report.add(None, "error", str(e))
            entries = []
            has_manifest = False

        manifest: Dict[str, Dict[str, Any]] = {}
        for entry in entries:
            if entry["id"] in manifest:
                report.add(entry["id"], "error", f"Duplicate manifest id '{entry['id']}'")
                continue
            manifest[entry["id"]] = entry
            file_name = entry.get("file") or f"{entry['id']}.md"
            if not (self.cards_dir / file_name).is_file():
                report.add(entry["id"], "error", f"Manifest references missing file '{file_name}'")
            manifest_priority = entry.get("priority")
            if manifest_priority not in (None, "") and parse_priority(manifest_priority) is None:
                report.add(entry["id"], "error", f"Unreadable manifest priority '{manifest_priority}'")

        for path in self._card_paths():
            report.cards_checked += 1
            card_id = path.stem
            parsed = parse_card_text(path.read_text(encoding="utf-8"))
            entry = manifest.get(card_id)
            card = self._build_card(path, parsed, entry)
            own_type = parsed["fields"].get("type")

            for message in card.validate():
                report.add(card_id, "error", message)
            if card.title and not parsed["title"]:
                report.add(card_id, "error", "Card has no '# ' title heading")
            if card.card_type and not own_type:
                report.add(card_id, "error", "Card has no Type field")
            raw_priority = parsed["fields"].get("priority")
            if raw_priority and parse_priority(raw_priority) is None:
                report.add(card_id, "error", f"Unreadable priority '{raw_priority}'")
            if not parsed["fences_balanced"]:
                report.add(card_id, "error", "Unbalanced code fence")

            if has_manifest and entry is None:
                report.add(card_id, "warning", "Card is not listed in the manifest")
            if entry and entry.get("type") and own_type and str(entry["type"]).lower() != own_type.lower():
                report.add(
                    card_id,
                    "warning",
                    f"Manifest type '{entry['type']}' disagrees with card Type '{own_type}'",
                )
            if not card.summary:
                report.add(card_id, "warning", "Card has no summary")

        log_catalog_validated(report.cards_checked, len(report.errors), len(report.warnings))
        if not report.ok:
            observability_hooks.log_catalog_event("catalog_lint_failed", errors=len(report.errors))
        return report

    # ------------------------------------------------------------------
    # Summaries
    # ------------------------------------------------------------------

    def summarize(self, cards: Optional[List[ExampleCard]] = None) -> Dict[str, Any]:
        """Count cards by type, complexity and tag."""
        if cards is None:
            cards = self._load_cards()
        by_tag: Counter = Counter(tag for card in cards for tag in card.tags)
        return {
            "total": len(cards),
            "by_type": dict(sorted(Counter(card.card_type or "unknown" for card in cards).items())),
            "by_complexity": dict(sorted(Counter(card.complexity or "unknown" for card in cards).items())),
            "by_tag": dict(sorted(by_tag.items())),
        }
