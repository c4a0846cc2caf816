"""Unit tests for cardcal/storage.py."""

import json
from pathlib import Path

import pytest
from pydantic import ValidationError

from cardcal.config import DEFAULT_COLOR_CHART, PROFILES_KEY, SETTINGS_KEY
from cardcal.storage import JsonBlobStore, ProfileStore, load_settings, save_settings, update_settings
from cardcal.validation import Adjustments, ColorProfile, Settings


def make_profile(profile_id: str, name: str = "Office") -> ColorProfile:
    """Profile with a small red correction."""
    return ColorProfile(
        id=profile_id,
        name=name,
        device="Zebra ZC300",
        created="2024-03-01",
        adjustments=Adjustments(red=-5),
    )


@pytest.fixture
def store(tmp_path: Path) -> JsonBlobStore:
    """Empty store in a temporary directory."""
    return JsonBlobStore(str(tmp_path / "store.json"))


class TestJsonBlobStore:
    """Tests for the key-value file store."""

    def test_missing_file_is_empty(self, store: JsonBlobStore) -> None:
        """Test reading before any write returns the default."""
        assert store.get("anything", "fallback") == "fallback"

    def test_set_get_delete(self, store: JsonBlobStore) -> None:
        """Test values persist across store instances."""
        store.set("a", {"x": 1})
        assert JsonBlobStore(str(store.path)).get("a") == {"x": 1}
        store.delete("a")
        assert store.get("a") is None

    def test_keys_are_independent(self, store: JsonBlobStore) -> None:
        """Test writing one key keeps the others."""
        store.set("a", 1)
        store.set("b", 2)
        assert (store.get("a"), store.get("b")) == (1, 2)

    def test_no_temp_file_left(self, store: JsonBlobStore) -> None:
        """Test the atomic write cleans up after itself."""
        store.set("a", 1)
        assert [p.name for p in store.path.parent.iterdir()] == ["store.json"]

    def test_corrupt_file_treated_as_empty(self, store: JsonBlobStore, caplog: pytest.LogCaptureFixture) -> None:
        """Test unparseable JSON is logged and ignored."""
        store.path.write_text("{not json")
        assert store.get("a") is None
        assert "not valid JSON" in caplog.text

    def test_write_keeps_corrupt_file(self, store: JsonBlobStore) -> None:
        """Test writing to an unparseable store moves it aside instead of overwriting it."""
        ProfileStore(store).add(make_profile("p1"))
        broken = store.path.read_text().rstrip().rstrip("}") + ', "extra": [1,],}'
        store.path.write_text(broken)

        update_settings(store, margin=4.0)

        assert store.backup_path.read_text() == broken
        assert PROFILES_KEY in store.backup_path.read_text()
        assert load_settings(store).margin == 4.0

    def test_non_utf8_file_treated_as_unreadable(self, store: JsonBlobStore) -> None:
        """Test binary garbage reads as empty and survives the next write."""
        store.path.write_bytes(b"\xff\xfe\x00garbage")
        assert store.get("a") is None

        store.delete("a")

        assert store.backup_path.read_bytes() == b"\xff\xfe\x00garbage"
        assert json.loads(store.path.read_text()) == {}

    def test_readable_store_not_backed_up(self, store: JsonBlobStore) -> None:
        """Test normal writes leave no backup file."""
        store.set("a", 1)
        store.set("b", 2)
        assert not store.backup_path.exists()


class TestSettings:
    """Tests for restoring and saving settings."""

    def test_defaults_when_nothing_saved(self, store: JsonBlobStore) -> None:
        """Test first run gets margin 5, markers on and the default chart."""
        settings = load_settings(store)
        assert settings.margin == 5.0
        assert settings.use_aruco_markers is True
        assert settings.color_chart == DEFAULT_COLOR_CHART

    def test_round_trip_uses_camel_case_keys(self, store: JsonBlobStore) -> None:
        """Test saved settings use the original JSON field names."""
        save_settings(store, Settings(margin=3.0, use_aruco_markers=False, color_chart=["#ff0000"]))

        raw = json.loads(store.path.read_text())[SETTINGS_KEY]
        assert raw["useArucoMarkers"] is False
        assert raw["colorChart"] == ["#FF0000"]
        assert raw["version"] == 1

        restored = load_settings(store)
        assert restored.margin == 3.0
        assert restored.use_aruco_markers is False

    def test_missing_fields_default(self, store: JsonBlobStore) -> None:
        """Test an unversioned blob with only a margin restores the rest as defaults."""
        store.set(SETTINGS_KEY, {"margin": 7})
        settings = load_settings(store)
        assert settings.margin == 7
        assert settings.use_aruco_markers is True
        assert settings.color_chart == DEFAULT_COLOR_CHART

    def test_invalid_field_ignored_others_kept(self, store: JsonBlobStore, caplog: pytest.LogCaptureFixture) -> None:
        """Test an out-of-range margin is dropped without losing the saved chart."""
        store.set(SETTINGS_KEY, {"margin": 99, "colorChart": ["#010203"], "useArucoMarkers": False})
        settings = load_settings(store)
        assert settings.margin == 5.0
        assert settings.color_chart == ["#010203"]
        assert settings.use_aruco_markers is False
        assert "Ignoring invalid saved setting margin" in caplog.text

    def test_malformed_blob_gives_defaults(self, store: JsonBlobStore) -> None:
        """Test a non-object settings value is replaced by defaults."""
        store.set(SETTINGS_KEY, "margin=5")
        assert load_settings(store) == Settings()

    def test_future_version_gives_defaults(self, store: JsonBlobStore) -> None:
        """Test settings written by a newer version are not guessed at."""
        store.set(SETTINGS_KEY, {"version": 99, "margin": 2})
        assert load_settings(store).margin == 5.0

    def test_update_validates_before_saving(self, store: JsonBlobStore) -> None:
        """Test an invalid change raises and leaves the store untouched."""
        update_settings(store, margin=4.0)
        with pytest.raises(ValidationError):
            update_settings(store, margin=-1.0)
        assert load_settings(store).margin == 4.0

    def test_update_normalizes_colors(self, store: JsonBlobStore) -> None:
        """Test chart colors are normalized on save."""
        updated = update_settings(store, color_chart=["abcdef"])
        assert updated.color_chart == ["#ABCDEF"]


class TestProfileStore:
    """Tests for saved color profiles."""

    def test_add_list_get(self, store: JsonBlobStore) -> None:
        """Test added profiles can be listed and fetched by id."""
        profiles = ProfileStore(store)
        profiles.add(make_profile("1"))
        profiles.add(make_profile("2", name="Lobby"))

        assert [p.id for p in profiles.list_profiles()] == ["1", "2"]
        assert profiles.get("2").name == "Lobby"
        assert profiles.get("3") is None

    def test_duplicate_id_rejected(self, store: JsonBlobStore) -> None:
        """Test ids are unique."""
        profiles = ProfileStore(store)
        profiles.add(make_profile("1"))
        with pytest.raises(ValueError, match="already exists"):
            profiles.add(make_profile("1"))

    def test_delete(self, store: JsonBlobStore) -> None:
        """Test deleting by id reports whether anything was removed."""
        profiles = ProfileStore(store)
        profiles.add(make_profile("1"))
        assert profiles.delete("1") is True
        assert profiles.delete("1") is False
        assert profiles.list_profiles() == []

    def test_invalid_entries_skipped(self, store: JsonBlobStore) -> None:
        """Test a corrupted entry doesn't hide the valid ones."""
        store.set(PROFILES_KEY, [{"id": "x"}, make_profile("1").model_dump(by_alias=True)])
        assert [p.id for p in ProfileStore(store).list_profiles()] == ["1"]

    def test_profiles_and_settings_share_store(self, store: JsonBlobStore) -> None:
        """Test saving profiles doesn't clobber settings."""
        save_settings(store, Settings(margin=2.0))
        ProfileStore(store).add(make_profile("1"))
        assert load_settings(store).margin == 2.0
