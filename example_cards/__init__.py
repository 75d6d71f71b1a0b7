"""Example card catalog exports."""

from .catalog import (
    CardNotFoundError,
    CatalogError,
    DestinationExistsError,
    ExampleCatalog,
    ManifestError,
)
from .models import (
    CARD_TYPES,
    COMPLEXITY_LEVELS,
    PRIORITY_RANGE,
    CardFilter,
    DownloadResult,
    ExampleCard,
    LintIssue,
    LintReport,
)

__all__ = [
    "ExampleCatalog",
    "CatalogError",
    "ManifestError",
    "CardNotFoundError",
    "DestinationExistsError",
    "ExampleCard",
    "CardFilter",
    "DownloadResult",
    "LintIssue",
    "LintReport",
    "CARD_TYPES",
    "COMPLEXITY_LEVELS",
    "PRIORITY_RANGE",
]
