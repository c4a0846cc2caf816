"""Unit tests for cardcal/exports.py."""

import json
from pathlib import Path

import pytest

from cardcal.exports import (
    ConfigurationError,
    chart_to_settings,
    dump_chart,
    dump_profiles,
    export_chart,
    export_profiles,
    import_chart,
    import_profiles,
)
from cardcal.layout import calculate_layout
from cardcal.storage import JsonBlobStore, ProfileStore
from cardcal.validation import Adjustments, ColorProfile, Settings


def make_profile(profile_id: str) -> ColorProfile:
    """Profile with a blue correction."""
    return ColorProfile(
        id=profile_id,
        name=f"Profile {profile_id}",
        device="Evolis Primacy",
        created="2024-05-20",
        adjustments=Adjustments(blue=12, brightness=-2),
    )


@pytest.fixture
def profile_store(tmp_path: Path) -> ProfileStore:
    """Empty profile store."""
    return ProfileStore(JsonBlobStore(str(tmp_path / "store.json")))


class TestChartExport:
    """Tests for chart export files."""

    def test_document_shape(self) -> None:
        """Test the exported JSON uses the documented camelCase structure."""
        settings = Settings(margin=4.0, use_aruco_markers=True, color_chart=["#FF0000", "#00ff00"])

        data = json.loads(dump_chart(export_chart(settings, "Front desk")))

        assert data["version"] == "1.0"
        assert data["name"] == "Front desk"
        assert data["settings"] == {"useArucoMarkers": True, "margin": 4.0}
        assert data["colorChart"] == ["#FF0000", "#00FF00"]
        assert data["metadata"]["cardDimensions"] == {"width": 85.6, "height": 54.0}
        assert data["metadata"]["layout"]["excludedIndices"] == [0, 9, 60, 69]
        assert "swatchGrid" in data["metadata"]["layout"]

    def test_embedded_layout_matches_engine(self) -> None:
        """Test the exported layout is the layout engine's output."""
        chart = export_chart(Settings(margin=6.0), "Test")
        assert chart.metadata.layout == calculate_layout(True, 6.0)

    def test_oversized_chart_truncated(self) -> None:
        """Test colors beyond capacity are dropped from the export."""
        chart = export_chart(Settings(color_chart=["#000000"] * 80), "Big")
        assert len(chart.color_chart) == 66

    def test_import_round_trip(self) -> None:
        """Test an exported chart imports to equivalent settings."""
        settings = Settings(margin=3.5, use_aruco_markers=False, color_chart=["#123456"])
        imported = import_chart(dump_chart(export_chart(settings, "Shared")))

        assert imported.name == "Shared"
        restored = chart_to_settings(imported)
        assert restored.margin == 3.5
        assert restored.use_aruco_markers is False
        assert restored.color_chart == ["#123456"]

    def test_wrong_version_rejected(self) -> None:
        """Test an unsupported version fails before validation."""
        text = dump_chart(export_chart(Settings(), "Test")).replace('"version": "1.0"', '"version": "2.0"')
        with pytest.raises(ConfigurationError, match="Unsupported chart file version '2.0'"):
            import_chart(text)

    def test_missing_version_rejected(self) -> None:
        """Test a document without version is rejected."""
        with pytest.raises(ConfigurationError, match="missing version"):
            import_chart(json.dumps({"name": "x"}))

    @pytest.mark.parametrize("text", ["{broken", "[1, 2]", '"chart"'])
    def test_malformed_json_rejected(self, text: str) -> None:
        """Test non-object or unparseable files are rejected."""
        with pytest.raises(ConfigurationError):
            import_chart(text)

    def test_invalid_color_rejected(self) -> None:
        """Test a bad color inside a correctly versioned file is rejected."""
        data = json.loads(dump_chart(export_chart(Settings(), "Test")))
        data["colorChart"][0] = "not-a-color"
        with pytest.raises(ConfigurationError, match="Invalid chart file"):
            import_chart(json.dumps(data))

    def test_configuration_error_is_value_error(self) -> None:
        """Test callers catching ValueError also catch import failures."""
        assert issubclass(ConfigurationError, ValueError)


class TestProfileExport:
    """Tests for profile export files."""

    def test_document_shape(self) -> None:
        """Test exported profiles keep their adjustments."""
        data = json.loads(dump_profiles(export_profiles([make_profile("1")])))
        assert data["version"] == "1.0"
        assert "exported" in data
        assert data["profiles"][0]["adjustments"]["blue"] == 12

    def test_import_merges_new_ids(self, profile_store: ProfileStore) -> None:
        """Test imported profiles are appended after existing ones."""
        profile_store.add(make_profile("1"))
        text = dump_profiles(export_profiles([make_profile("1"), make_profile("2")]))

        added = import_profiles(text, profile_store)

        assert added == 1
        assert [p.id for p in profile_store.list_profiles()] == ["1", "2"]

    def test_import_deduplicates_within_file(self, profile_store: ProfileStore) -> None:
        """Test a file listing the same id twice adds it once."""
        text = dump_profiles(export_profiles([make_profile("7"), make_profile("7")]))
        assert import_profiles(text, profile_store) == 1

    def test_bad_version_leaves_store_unchanged(self, profile_store: ProfileStore) -> None:
        """Test a rejected import does not touch saved profiles."""
        profile_store.add(make_profile("1"))
        data = json.loads(dump_profiles(export_profiles([make_profile("2")])))
        data["version"] = "0.9"

        with pytest.raises(ConfigurationError, match="Unsupported profile file version"):
            import_profiles(json.dumps(data), profile_store)

        assert [p.id for p in profile_store.list_profiles()] == ["1"]

    def test_invalid_profile_rejected_whole(self, profile_store: ProfileStore) -> None:
        """Test one invalid profile rejects the whole file."""
        data = json.loads(dump_profiles(export_profiles([make_profile("2")])))
        data["profiles"].append({"id": "3", "name": "Broken"})
        with pytest.raises(ConfigurationError, match="Invalid profile file"):
            import_profiles(json.dumps(data), profile_store)
        assert profile_store.list_profiles() == []
