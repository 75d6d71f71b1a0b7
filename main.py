"""MCP server exposing the example card catalog."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Dict, List, Optional

from mcp.server.fastmcp import FastMCP

from example_cards import (
    CARD_TYPES,
    COMPLEXITY_LEVELS,
    PRIORITY_RANGE,
    CardFilter,
    CardNotFoundError,
    CatalogError,
    DestinationExistsError,
    ExampleCatalog,
    ManifestError,
)
from example_cards.cards_logging import setup_logging

mcp = FastMCP("example-cards")


ROOT_ENV = "EXAMPLE_CARDS_ROOT"
SERVER_ROOT = Path(__file__).resolve().parent


def _candidate_bases() -> List[Path]:
    cwd = Path.cwd().resolve()
    bases: List[Path] = [cwd, *cwd.parents, SERVER_ROOT]
    seen: set[Path] = set()
    ordered: List[Path] = []
    for base in bases:
        if base not in seen:
            seen.add(base)
            ordered.append(base)
    return ordered


def _is_catalog_root(base: Path) -> bool:
    cards_dir = os.getenv(ExampleCatalog.CARDS_DIR_ENV) or ExampleCatalog.DEFAULT_CARDS_DIR
    return (base / ExampleCatalog.README_NAME).is_file() and (base / cards_dir).is_dir()


def _locate_catalog_root() -> Optional[Path]:
    for base in _candidate_bases():
        if _is_catalog_root(base):
            return base
    return None


def _resolve_root(root: Optional[str]) -> Path:
    if root:
        resolved = Path(root).expanduser().resolve()
        if not resolved.exists():
            raise ValueError(f"Provided root '{root}' does not exist.")
        return resolved

    env_root = os.getenv(ROOT_ENV)
    if env_root:
        env_path = Path(env_root).expanduser().resolve()
        if not env_path.exists():
            raise ValueError(
                f"Environment variable {ROOT_ENV} points to '{env_root}', which does not exist."
            )
        return env_path

    detected_root = _locate_catalog_root()
    if detected_root:
        return detected_root

    raise ValueError(
        "Unable to locate an example card catalog. Provide the 'root' argument when calling the tool "
        f"or set the {ROOT_ENV} environment variable."
    )


def _catalog(root: Optional[str]) -> ExampleCatalog:
    resolved = _resolve_root(root)
    try:
        return ExampleCatalog(resolved)
    except CatalogError as e:
        raise ValueError(f"Root '{resolved}' is not an example card catalog: {e}") from e


def _error(message: str, suggestion: str, next_step: str) -> Dict[str, Any]:
    return {
        "error": message,
        "suggestion": suggestion,
        "next_suggested_step": next_step,
    }


def _manifest_error(error: ManifestError) -> Dict[str, Any]:
    return _error(
        str(error),
        "The catalog manifest is broken; call validate_example_cards for details",
        "validate_example_cards",
    )


@mcp.tool()
def list_example_cards(
    card_type: Optional[str] = None,
    complexity: Optional[str] = None,
    tags: Optional[List[str]] = None,
    priority: Optional[int] = None,
    query: Optional[str] = None,
    root: Optional[str] = None,
) -> Dict[str, Any]:
    """List example cards, optionally filtered by metadata.

    Filters:
    - card_type: one of feature, bug, refactor, chore, spike, docs, test
    - complexity: one of simple, medium, complex
    - tags: cards must carry every listed tag
    - priority: exact priority, 1 (highest) to 5
    - query: case-insensitive text search over id, title, summary and tags
    """

    catalog = _catalog(root)
    card_filter = CardFilter(
        card_type=card_type,
        complexity=complexity,
        tags=tags or [],
        priority=priority,
        query=query,
    )
    try:
        cards = catalog.list_cards(card_filter)
    except ManifestError as e:
        return _manifest_error(e)
    except ValueError as e:
        return _error(str(e), "Call get_examples_guide to see accepted filter values", "get_examples_guide")

    return {
        "cards": [card.to_dict() for card in cards],
        "total_count": len(cards),
        "filters_applied": card_filter.to_dict(),
        "facets": catalog.summarize(cards),
        "next_suggested_step": "get_example_card" if cards else "list_example_cards",
        "workflow_tip": "Read a card with get_example_card, or copy it with download_example_card"
        if cards else "No cards matched; loosen the filters",
    }


@mcp.tool()
def get_example_card(card_id: str, root: Optional[str] = None) -> Dict[str, Any]:
    """Return one example card's metadata and full markdown content."""

    catalog = _catalog(root)
    try:
        card = catalog.get_card(card_id)
    except ManifestError as e:
        return _manifest_error(e)
    except (CardNotFoundError, ValueError) as e:
        return _error(str(e), "Call list_example_cards to see available card ids", "list_example_cards")

    return {
        "card": card.to_dict(),
        "content": catalog.read_card(card.card_id),
        "next_suggested_step": "download_example_card",
    }


@mcp.tool()
def download_example_card(
    card_id: str,
    destination: str,
    rename: bool = False,
    priority: Optional[int] = None,
    overwrite: bool = False,
    root: Optional[str] = None,
) -> Dict[str, Any]:
    """Copy an example card to a destination path.

    When destination is a directory the card keeps its file name, or with
    rename=True is saved as backlog-P<n>-<type>-<slug>-<hash>.md. Use priority
    to override the P<n> part. Existing files are only replaced with overwrite=True.
    """

    catalog = _catalog(root)
    try:
        result = catalog.download_card(
            card_id,
            destination,
            rename=rename,
            priority=priority,
            overwrite=overwrite,
        )
    except CardNotFoundError as e:
        return _error(str(e), "Call list_example_cards to see available card ids", "list_example_cards")
    except ManifestError as e:
        return _manifest_error(e)
    except DestinationExistsError as e:
        return _error(
            str(e),
            "Choose another destination, or pass overwrite=True to replace an existing file",
            "download_example_card",
        )
    except ValueError as e:
        return _error(str(e), "Check the card id and priority arguments", "download_example_card")

    return {
        **result.to_dict(),
        "message": f"Copied '{result.card_id}' to {result.destination_path}",
        "next_suggested_step": "list_example_cards",
    }


@mcp.tool()
def validate_example_cards(root: Optional[str] = None) -> Dict[str, Any]:
    """Lint every card and the manifest: titles, Type fields, metadata values, code fences."""

    catalog = _catalog(root)
    report = catalog.validate()
    return {
        **report.to_dict(),
        "workflow_tip": "Catalog is clean" if report.ok else "Fix the reported errors and validate again",
    }


@mcp.tool()
def get_examples_guide(root: Optional[str] = None) -> Dict[str, Any]:
    """Return the catalog README and the accepted filter values."""

    catalog = _catalog(root)
    low, high = PRIORITY_RANGE
    return {
        "readme": catalog.readme(),
        "card_types": list(CARD_TYPES),
        "complexity_levels": list(COMPLEXITY_LEVELS),
        "priority_range": [low, high],
        "naming_convention": "backlog-P<n>-<type>-<slug>-<hash>.md",
        "tools": [
            "list_example_cards",
            "get_example_card",
            "download_example_card",
            "validate_example_cards",
        ],
    }


@mcp.resource("example-cards://catalog")
def resource_catalog() -> str:
    """Plain-text index of the example cards."""

    try:
        catalog = _catalog(None)
    except ValueError:
        return f"No example card catalog detected. Set {ROOT_ENV} or pass a 'root' argument to the tools."

    try:
        cards = catalog.list_cards()
    except ManifestError as e:
        return f"The example card manifest cannot be read: {e}. Run validate_example_cards for details."
    if not cards:
        return "The catalog contains no cards yet."

    lines = ["Example Cards"]
    for card in cards:
        lines.append("")
        lines.append(f"- {card.card_id}: {card.title or card.filename}")
        lines.append(f"  Type: {card.card_type or 'unknown'} | P{card.priority} | {card.complexity or 'unknown'}")
        if card.tags:
            lines.append(f"  Tags: {', '.join(card.tags)}")
    return "\n".join(lines)


if __name__ == "__main__":
    log_file = os.getenv("EXAMPLE_CARDS_LOG_FILE")
    setup_logging(os.getenv("EXAMPLE_CARDS_LOG_LEVEL", "INFO"), Path(log_file) if log_file else None)
    mcp.run(transport="stdio")
