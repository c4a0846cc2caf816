"""Chart and profile export files.

Both formats carry a ``version`` field that is checked on import before
anything else; unknown versions are rejected rather than guessed at.
Imports never touch the active configuration until the whole document has
been validated.
"""

import json
import logging
from datetime import datetime
from typing import Any

from pydantic import ValidationError

from cardcal.config import SCHEMA_VERSION
from cardcal.layout import calculate_layout, fit_colors
from cardcal.storage import ProfileStore
from cardcal.validation import (
    CardDimensions,
    ChartExport,
    ChartMetadata,
    ChartSettings,
    ColorProfile,
    ProfileExport,
    Settings,
)

logger = logging.getLogger(__name__)


class ConfigurationError(ValueError):
    """Raised when an imported file is malformed or has an unsupported version."""


def _parse_versioned(text: str, kind: str) -> dict[str, Any]:
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"Invalid {kind} file: not valid JSON ({e.msg})") from e
    if not isinstance(data, dict):
        raise ConfigurationError(f"Invalid {kind} file: expected a JSON object")

    version = data.get("version")
    if version is None:
        raise ConfigurationError(f"Invalid {kind} file: missing version")
    if version != SCHEMA_VERSION:
        raise ConfigurationError(
            f"Unsupported {kind} file version {version!r} (expected {SCHEMA_VERSION!r})"
        )
    return data


def export_chart(settings: Settings, name: str) -> ChartExport:
    """Build a chart export document from the current settings.

    The embedded layout comes from the layout engine, so the exported
    geometry is exactly what the renderers and analyzer use.
    """
    layout = calculate_layout(settings.use_aruco_markers, settings.margin)
    return ChartExport(
        version=SCHEMA_VERSION,
        name=name,
        created=datetime.now().isoformat(),
        settings=ChartSettings(use_aruco_markers=settings.use_aruco_markers, margin=settings.margin),
        color_chart=fit_colors(layout, settings.color_chart),
        metadata=ChartMetadata(
            card_dimensions=CardDimensions(width=layout.card_width, height=layout.card_height),
            layout=layout,
        ),
    )


def dump_chart(chart: ChartExport) -> str:
    """Serialize a chart export to JSON text."""
    return chart.model_dump_json(by_alias=True, indent=2)


def import_chart(text: str) -> ChartExport:
    """Parse and validate a chart export file.

    Raises:
        ConfigurationError: If the JSON is malformed, the version is wrong,
            or the document fails validation
    """
    data = _parse_versioned(text, "chart")
    try:
        chart = ChartExport.model_validate(data)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid chart file: {e.errors()[0]['msg']}") from e
    logger.info(f"Imported chart '{chart.name}' with {len(chart.color_chart)} colors")
    return chart


def chart_to_settings(chart: ChartExport) -> Settings:
    """Settings that reproduce an imported chart."""
    return Settings(
        use_aruco_markers=chart.settings.use_aruco_markers,
        margin=chart.settings.margin,
        color_chart=list(chart.color_chart),
    )


def export_profiles(profiles: list[ColorProfile]) -> ProfileExport:
    """Build a profile export document."""
    return ProfileExport(
        version=SCHEMA_VERSION,
        exported=datetime.now().isoformat(),
        profiles=profiles,
    )


def dump_profiles(export: ProfileExport) -> str:
    """Serialize a profile export to JSON text."""
    return export.model_dump_json(by_alias=True, indent=2)


def import_profiles(text: str, store: ProfileStore) -> int:
    """Validate a profile export file and merge it into the store.

    Profiles whose id already exists in the store are skipped.

    Returns:
        Number of profiles added

    Raises:
        ConfigurationError: If the file is malformed or has the wrong version;
            the store is left unchanged
    """
    data = _parse_versioned(text, "profile")
    try:
        export = ProfileExport.model_validate(data)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid profile file: {e.errors()[0]['msg']}") from e

    existing = store.list_profiles()
    known_ids = {p.id for p in existing}
    new_profiles: list[ColorProfile] = []
    for profile in export.profiles:
        if profile.id not in known_ids:
            known_ids.add(profile.id)
            new_profiles.append(profile)
    skipped = len(export.profiles) - len(new_profiles)
    if skipped:
        logger.info(f"Skipping {skipped} profiles already in the store")
    if new_profiles:
        store.save_all(existing + new_profiles)
    return len(new_profiles)
