"""
Integration tests for the MCP tool surface.

These tests call the tool functions registered on the FastMCP server against
temporary catalogs and the catalog bundled with the server.
"""

import json

import pytest
from pathlib import Path

import main
from tests.card_samples import LOGIN_CARD, MANIFEST, write_manifest


@pytest.fixture(autouse=True)
def isolated_environment(monkeypatch, tmp_path):
    """Run every tool from an empty working directory without root overrides."""
    monkeypatch.delenv("EXAMPLE_CARDS_ROOT", raising=False)
    monkeypatch.delenv("EXAMPLE_CARDS_DIR_NAME", raising=False)
    workdir = tmp_path / "workdir"
    workdir.mkdir()
    monkeypatch.chdir(workdir)
    return workdir


class TestRootResolution:
    """Tests for locating the catalog root."""

    def test_explicit_root(self, catalog_root):
        """An explicit root argument wins."""
        assert main._resolve_root(str(catalog_root)) == catalog_root.resolve()

    def test_missing_explicit_root(self, tmp_path):
        """A root that does not exist is rejected."""
        with pytest.raises(ValueError, match="does not exist"):
            main._resolve_root(str(tmp_path / "missing"))

    def test_environment_root(self, catalog_root, monkeypatch):
        """EXAMPLE_CARDS_ROOT is used when no root argument is given."""
        monkeypatch.setenv("EXAMPLE_CARDS_ROOT", str(catalog_root))
        assert main._resolve_root(None) == catalog_root.resolve()

    def test_missing_environment_root(self, tmp_path, monkeypatch):
        """A dangling EXAMPLE_CARDS_ROOT is reported."""
        monkeypatch.setenv("EXAMPLE_CARDS_ROOT", str(tmp_path / "missing"))
        with pytest.raises(ValueError, match="EXAMPLE_CARDS_ROOT"):
            main._resolve_root(None)

    def test_detects_catalog_from_working_directory(self, catalog_root, monkeypatch):
        """The nearest catalog above the working directory is found."""
        nested = catalog_root / "examples" / "drafts"
        nested.mkdir()
        monkeypatch.chdir(nested)

        assert main._resolve_root(None) == catalog_root.resolve()

    def test_falls_back_to_bundled_catalog(self):
        """Without any other hint the catalog next to the server is used."""
        assert main._resolve_root(None) == main.SERVER_ROOT

    def test_root_without_cards_dir(self, tmp_path):
        """A root that is not a catalog is reported as ValueError."""
        with pytest.raises(ValueError, match="not an example card catalog"):
            main._catalog(str(tmp_path))


class TestListTool:
    """Tests for list_example_cards."""

    def test_list_all(self, catalog_root):
        """All cards are returned with facets."""
        result = main.list_example_cards(root=str(catalog_root))

        assert result["total_count"] == 3
        assert [card["card_id"] for card in result["cards"]] == ["bug-crash", "chore-deps", "feature-login"]
        assert result["facets"]["by_type"] == {"bug": 1, "chore": 1, "feature": 1}
        assert result["next_suggested_step"] == "get_example_card"

    def test_list_filtered(self, catalog_root):
        """Filters are applied and echoed back."""
        result = main.list_example_cards(card_type="Bug", tags=["Backend"], root=str(catalog_root))

        assert [card["card_id"] for card in result["cards"]] == ["bug-crash"]
        assert result["filters_applied"]["card_type"] == "bug"
        assert result["filters_applied"]["tags"] == ["backend"]

    def test_list_no_matches(self, catalog_root):
        """An empty result suggests loosening the filters."""
        result = main.list_example_cards(query="kubernetes", root=str(catalog_root))

        assert result["total_count"] == 0
        assert result["next_suggested_step"] == "list_example_cards"

    def test_list_invalid_filter(self, catalog_root):
        """Unknown filter values come back as an error dictionary."""
        result = main.list_example_cards(complexity="huge", root=str(catalog_root))

        assert "Unknown complexity 'huge'" in result["error"]
        assert result["next_suggested_step"] == "get_examples_guide"


class TestGetTool:
    """Tests for get_example_card."""

    def test_get_card(self, catalog_root):
        """Metadata and content are returned."""
        result = main.get_example_card("feature-login", root=str(catalog_root))

        assert result["card"]["title"] == "Add login page"
        assert result["content"] == LOGIN_CARD

    def test_get_unknown_card(self, catalog_root):
        """An unknown card is reported with a suggestion."""
        result = main.get_example_card("nope", root=str(catalog_root))

        assert "not found" in result["error"]
        assert result["next_suggested_step"] == "list_example_cards"


class TestDownloadTool:
    """Tests for download_example_card."""

    def test_download_with_rename(self, catalog_root, tmp_path):
        """Renamed downloads follow the backlog naming convention."""
        destination = tmp_path / "backlog"
        destination.mkdir()

        result = main.download_example_card(
            "feature-login", str(destination), rename=True, root=str(catalog_root)
        )

        written = Path(result["destination_path"])
        assert result["renamed"] is True
        assert written.parent == destination.resolve()
        assert written.name.startswith("backlog-P2-feature-add-login-page-")
        assert written.read_text(encoding="utf-8") == LOGIN_CARD

    def test_download_existing_destination(self, catalog_root, tmp_path):
        """A second download to the same place asks for overwrite."""
        main.download_example_card("chore-deps", str(tmp_path), root=str(catalog_root))

        result = main.download_example_card("chore-deps", str(tmp_path), root=str(catalog_root))

        assert "already exists" in result["error"]
        assert "overwrite=True" in result["suggestion"]

        replaced = main.download_example_card("chore-deps", str(tmp_path), overwrite=True, root=str(catalog_root))
        assert "error" not in replaced

    def test_download_unknown_card(self, catalog_root, tmp_path):
        """Unknown cards are reported as errors."""
        result = main.download_example_card("nope", str(tmp_path), root=str(catalog_root))
        assert result["next_suggested_step"] == "list_example_cards"

    def test_download_invalid_priority(self, catalog_root, tmp_path):
        """Out-of-range priorities are reported as errors."""
        result = main.download_example_card(
            "bug-crash", str(tmp_path), rename=True, priority=0, root=str(catalog_root)
        )
        assert "Priority must be 1-5" in result["error"]


class TestValidationAndGuide:
    """Tests for validate_example_cards, get_examples_guide and the catalog resource."""

    def test_validate_clean_catalog(self, catalog_root):
        """The fixture catalog lints clean."""
        result = main.validate_example_cards(root=str(catalog_root))

        assert result["ok"] is True
        assert result["cards_checked"] == 3
        assert result["workflow_tip"] == "Catalog is clean"

    def test_validate_reports_errors(self, catalog_root):
        """Lint errors are surfaced."""
        (catalog_root / "examples" / "broken.md").write_text("no heading\n", encoding="utf-8")

        result = main.validate_example_cards(root=str(catalog_root))

        assert result["ok"] is False
        assert result["error_count"] >= 2

    def test_guide(self, catalog_root):
        """The guide carries the README and accepted values."""
        result = main.get_examples_guide(root=str(catalog_root))

        assert result["readme"].startswith("# Example Cards")
        assert "refactor" in result["card_types"]
        assert result["complexity_levels"] == ["simple", "medium", "complex"]
        assert result["priority_range"] == [1, 5]
        assert result["naming_convention"] == "backlog-P<n>-<type>-<slug>-<hash>.md"

    def test_catalog_resource(self, catalog_root, monkeypatch):
        """The resource lists every card."""
        monkeypatch.setenv("EXAMPLE_CARDS_ROOT", str(catalog_root))

        text = main.resource_catalog()

        assert text.startswith("Example Cards")
        assert "- feature-login: Add login page" in text
        assert "Type: bug | P1 | simple" in text
        assert "Tags: dependencies, backend" in text


class TestBundledCatalog:
    """Tests against the cards shipped with the server."""

    def test_list_bundled_cards(self):
        """Every bundled card is listed."""
        result = main.list_example_cards()

        assert result["total_count"] == 9
        assert set(result["facets"]["by_type"]) == {"feature", "bug", "refactor", "chore", "spike", "docs", "test"}

    def test_filter_bundled_bugs(self):
        """Filtering the bundled catalog by type works."""
        result = main.list_example_cards(card_type="bug")

        assert [card["card_id"] for card in result["cards"]] == [
            "bug-pagination-off-by-one",
            "bug-session-timeout-logout",
        ]

    def test_download_bundled_card(self, tmp_path):
        """A bundled card can be downloaded under its backlog name."""
        result = main.download_example_card("bug-session-timeout-logout", f"{tmp_path}/", rename=True)

        assert Path(result["destination_path"]).name.startswith(
            "backlog-P1-bug-users-logged-out-while-actively-editing-"
        )


class TestBrokenManifest:
    """Tests for a catalog whose manifest cannot be read."""

    @pytest.fixture
    def broken_root(self, catalog_root):
        manifest = json.loads(json.dumps(MANIFEST))
        manifest["cards"][0]["tags"] = ["api", 3]
        write_manifest(catalog_root / "examples", manifest)
        return catalog_root

    def test_list_points_to_validation(self, broken_root):
        """Listing reports the manifest instead of blaming the filters."""
        result = main.list_example_cards(root=str(broken_root))

        assert "Manifest entry #0" in result["error"]
        assert result["next_suggested_step"] == "validate_example_cards"

    def test_get_points_to_validation(self, broken_root):
        """Reading a card reports the manifest problem."""
        result = main.get_example_card("feature-login", root=str(broken_root))

        assert "Manifest entry #0" in result["error"]
        assert result["next_suggested_step"] == "validate_example_cards"

    def test_download_points_to_validation(self, broken_root, tmp_path):
        """Downloading reports the manifest problem and writes nothing."""
        destination = tmp_path / "backlog"

        result = main.download_example_card("feature-login", f"{destination}/", root=str(broken_root))

        assert result["next_suggested_step"] == "validate_example_cards"
        assert not destination.exists()

    def test_validate_returns_report(self, broken_root):
        """Validation turns the manifest problem into a lint error."""
        result = main.validate_example_cards(root=str(broken_root))

        assert result["ok"] is False
        assert result["cards_checked"] == 3
        assert result["issues"][0]["card_id"] is None
        assert "'tags' must be a list of strings" in result["issues"][0]["message"]

    def test_guide_still_available(self, broken_root):
        """The guide does not depend on the manifest."""
        assert main.get_examples_guide(root=str(broken_root))["readme"].startswith("# Example Cards")

    def test_resource_reports_manifest(self, broken_root, monkeypatch):
        """The catalog resource returns a message instead of raising."""
        monkeypatch.setenv("EXAMPLE_CARDS_ROOT", str(broken_root))

        text = main.resource_catalog()

        assert text.startswith("The example card manifest cannot be read")
        assert "validate_example_cards" in text


class TestDownloadDestinations:
    """Tests for destinations that cannot receive a card."""

    def test_directory_destination_is_a_file(self, catalog_root, tmp_path):
        """A trailing separator onto an existing file comes back as an error."""
        (tmp_path / "backlog").write_text("x", encoding="utf-8")

        result = main.download_example_card("bug-crash", f"{tmp_path / 'backlog'}/", root=str(catalog_root))

        assert "is not a directory" in result["error"]
        assert result["next_suggested_step"] == "download_example_card"

    def test_target_is_a_directory(self, catalog_root, tmp_path):
        """Overwrite onto a same-named directory comes back as an error."""
        (tmp_path / "bug-crash.md").mkdir()

        result = main.download_example_card("bug-crash", str(tmp_path), overwrite=True, root=str(catalog_root))

        assert "is a directory" in result["error"]
