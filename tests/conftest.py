"""Shared fixtures for example card tests."""

import logging

import pytest

from example_cards.cards_logging import observability_hooks, performance_monitor

from tests.card_samples import CRASH_CARD, DEPS_CARD, LOGIN_CARD, MANIFEST, write_manifest


@pytest.fixture
def catalog_root(tmp_path):
    """A small catalog with three consistent cards, a manifest and a README."""
    root = tmp_path / "catalog"
    cards_dir = root / "examples"
    cards_dir.mkdir(parents=True)
    (root / "EXAMPLES_README.md").write_text("# Example Cards\n\nTest catalog.\n", encoding="utf-8")
    (cards_dir / "feature-login.md").write_text(LOGIN_CARD, encoding="utf-8")
    (cards_dir / "bug-crash.md").write_text(CRASH_CARD, encoding="utf-8")
    (cards_dir / "chore-deps.md").write_text(DEPS_CARD, encoding="utf-8")
    write_manifest(cards_dir, MANIFEST)
    return root


@pytest.fixture(autouse=True)
def reset_observability():
    """Keep global logging state from leaking between tests."""
    yield
    logger = logging.getLogger("example_cards")
    for handler in list(logger.handlers):
        handler.close()
    logger.handlers.clear()
    logger.setLevel(logging.NOTSET)
    performance_monitor.clear()
    observability_hooks.hooks.clear()
