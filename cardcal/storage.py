"""Persistent settings and profile storage.

This module handles:
- A JSON key-value blob store backed by a single file
- Restoring settings tolerantly (missing or invalid fields fall back to defaults)
- Saving, listing and deleting color profiles
"""

import json
import logging
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from cardcal.config import DEFAULT_STORE_PATH, PROFILES_KEY, SETTINGS_KEY, SETTINGS_VERSION
from cardcal.validation import ColorProfile, Settings

logger = logging.getLogger(__name__)


class JsonBlobStore:
    """Key → JSON value mapping stored in one file.

    Writes go to a temporary file that then replaces the store, so a crash
    mid-write leaves the previous contents intact.
    """

    def __init__(self, path: str = DEFAULT_STORE_PATH) -> None:
        self.path = Path(path)

    @property
    def backup_path(self) -> Path:
        """Where an unreadable store file is moved before the next write."""
        return self.path.with_name(self.path.name + ".corrupt")

    def _parse(self) -> dict[str, Any] | None:
        """Stored mapping; {} for a missing file, None for an unreadable one."""
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            logger.warning(f"Store {self.path} is not valid JSON, treating as empty: {e}")
            return None
        if not isinstance(data, dict):
            logger.warning(f"Store {self.path} does not hold a JSON object, treating as empty")
            return None
        return data

    def _read_all(self) -> dict[str, Any]:
        data = self._parse()
        return {} if data is None else data

    def _read_for_update(self) -> dict[str, Any]:
        data = self._parse()
        if data is None:
            # Keep the unreadable contents for manual recovery instead of overwriting them
            self.path.replace(self.backup_path)
            logger.warning(f"Moved unreadable store to {self.backup_path}")
            return {}
        return data

    def _write_all(self, data: dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_name(self.path.name + ".tmp")
        tmp_path.write_text(json.dumps(data, indent=2))
        tmp_path.replace(self.path)

    def get(self, key: str, default: Any = None) -> Any:
        """Return the value stored under key, or default."""
        return self._read_all().get(key, default)

    def set(self, key: str, value: Any) -> None:
        """Store a JSON-serializable value under key.

        An unreadable store file is moved to ``backup_path`` first, so a
        write never destroys data that failed to parse.
        """
        data = self._read_for_update()
        data[key] = value
        self._write_all(data)

    def delete(self, key: str) -> None:
        """Remove key if present."""
        data = self._read_for_update()
        if key in data:
            del data[key]
            self._write_all(data)


def load_settings(store: JsonBlobStore) -> Settings:
    """Restore settings, defaulting anything missing or invalid.

    Each saved field is applied separately, so one bad value (say, a margin
    outside the allowed range) doesn't discard the saved color chart.
    """
    raw = store.get(SETTINGS_KEY)
    if raw is None:
        return Settings()
    if not isinstance(raw, dict):
        logger.warning(f"Saved settings are not an object, using defaults: {raw!r}")
        return Settings()

    # Unversioned blobs predate the version field and share its layout
    version = raw.get("version", SETTINGS_VERSION)
    if not isinstance(version, int) or version > SETTINGS_VERSION:
        logger.warning(f"Saved settings have unsupported version {version!r}, using defaults")
        return Settings()

    settings = Settings()
    for key in ("useArucoMarkers", "margin", "colorChart"):
        if key not in raw:
            continue
        try:
            settings = Settings.model_validate({**settings.model_dump(by_alias=True), key: raw[key]})
        except ValidationError as e:
            logger.warning(f"Ignoring invalid saved setting {key}: {e.errors()[0]['msg']}")
    return settings


def save_settings(store: JsonBlobStore, settings: Settings) -> None:
    """Persist settings under the settings key."""
    store.set(SETTINGS_KEY, settings.model_dump(by_alias=True, mode="json"))
    logger.debug(f"Saved settings: margin={settings.margin}, markers={settings.use_aruco_markers}, "
                 f"{len(settings.color_chart)} colors")


def update_settings(store: JsonBlobStore, **changes: Any) -> Settings:
    """Validate and persist a change to the current settings.

    Args:
        store: Blob store to read from and write to
        **changes: Settings fields to replace, by attribute name

    Returns:
        The updated settings

    Raises:
        ValidationError: If a changed value is invalid; nothing is saved
    """
    current = load_settings(store)
    updated = Settings.model_validate({**current.model_dump(), **changes})
    save_settings(store, updated)
    return updated


class ProfileStore:
    """Color profiles persisted as a list under the profiles key."""

    def __init__(self, store: JsonBlobStore) -> None:
        self.store = store

    def list_profiles(self) -> list[ColorProfile]:
        """Return saved profiles, skipping entries that fail validation."""
        raw = self.store.get(PROFILES_KEY, [])
        if not isinstance(raw, list):
            logger.warning("Saved profiles are not a list, ignoring them")
            return []

        profiles: list[ColorProfile] = []
        for entry in raw:
            try:
                profiles.append(ColorProfile.model_validate(entry))
            except ValidationError as e:
                logger.warning(f"Skipping invalid saved profile: {e.errors()[0]['msg']}")
        return profiles

    def save_all(self, profiles: list[ColorProfile]) -> None:
        """Replace the stored profile list."""
        self.store.set(PROFILES_KEY, [p.model_dump(by_alias=True, mode="json") for p in profiles])

    def get(self, profile_id: str) -> ColorProfile | None:
        """Return the profile with the given id, if any."""
        return next((p for p in self.list_profiles() if p.id == profile_id), None)

    def add(self, profile: ColorProfile) -> None:
        """Append a new profile.

        Raises:
            ValueError: If a profile with the same id already exists
        """
        profiles = self.list_profiles()
        if any(p.id == profile.id for p in profiles):
            raise ValueError(f"Profile id already exists: {profile.id}")
        profiles.append(profile)
        self.save_all(profiles)
        logger.info(f"Saved profile '{profile.name}' for device '{profile.device}'")

    def delete(self, profile_id: str) -> bool:
        """Delete a profile by id.

        Returns:
            True if a profile was removed
        """
        profiles = self.list_profiles()
        remaining = [p for p in profiles if p.id != profile_id]
        if len(remaining) == len(profiles):
            return False
        self.save_all(remaining)
        logger.info(f"Deleted profile {profile_id}")
        return True
