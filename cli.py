"""Command-line interface for ID-card printer color calibration.

Usage:
    # Print a test chart
    python cli.py generate chart.pdf

    # Analyze a photo of the printed chart and save a correction profile
    python cli.py analyze photo.jpg --report report.json --save-profile "Office" --device "Zebra ZC300"

    # Manage settings, profiles and chart files
    python cli.py settings set --margin 4 --no-markers
    python cli.py settings replace-color 3 "#0A0AF0"
    python cli.py profiles create "Warm" --device "Zebra ZC300" --red -8 --blue 5
    python cli.py profiles export profiles.json
    python cli.py chart import shared_chart.json
"""

import json
import logging
import sys
from pathlib import Path

import click
from pydantic import ValidationError

from cardcal.analysis import analyze_chart, load_image
from cardcal.colors import normalize_hex
from cardcal.comparison import apply_adjustments, compare, create_profile, new_profile, summarize
from cardcal.config import DEFAULT_STORE_PATH, MAX_MARGIN_MM, MIN_MARGIN_MM, PREVIEW_PX_PER_MM
from cardcal.detection import ArucoMarkerDetector, DetectorUnavailableError
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
from cardcal.layout import calculate_layout, fit_colors, swatch_capacity
from cardcal.rendering import (
    render_analysis_overlay,
    render_chart_image,
    render_chart_pdf,
    render_chart_svg,
)
from cardcal.storage import JsonBlobStore, ProfileStore, load_settings, save_settings, update_settings
from cardcal.validation import Adjustments, Settings

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# Configure root logger
logging.basicConfig(
    level=logging.INFO,
    format=LOG_FORMAT,
    handlers=[logging.StreamHandler(sys.stdout)],
)

logger = logging.getLogger(__name__)

QUALITY_ICONS = {"good": "✓", "fair": "~", "poor": "✗"}


def _resolve_settings(store: JsonBlobStore, chart_file: str | None) -> Settings:
    """Settings from a chart export file when given, else the saved settings."""
    if chart_file is None:
        return load_settings(store)
    try:
        chart = import_chart(Path(chart_file).read_text())
    except ConfigurationError as e:
        raise click.ClickException(str(e)) from e
    return chart_to_settings(chart)


@click.group()
@click.option("--store", "store_path", default=DEFAULT_STORE_PATH, help="Settings and profile store file")
@click.option("--log-file", type=click.Path(dir_okay=False), help="Also write DEBUG logs to this file")
@click.pass_context
def cli(ctx: click.Context, store_path: str, log_file: str | None) -> None:
    """ID-card printer color calibration."""
    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root = logging.getLogger()
        root.addHandler(file_handler)
        root.setLevel(logging.DEBUG)
        # Keep the console at INFO when the file captures DEBUG
        for handler in root.handlers:
            if handler is not file_handler:
                handler.setLevel(logging.INFO)
    ctx.obj = JsonBlobStore(store_path)


@cli.command()
@click.argument("output", type=click.Path(dir_okay=False))
@click.option("--format", "output_format", type=click.Choice(["pdf", "svg", "png"]), default=None,
              help="Output format (default: from file extension, else pdf)")
@click.option("--settings", "chart_file", type=click.Path(exists=True, dir_okay=False),
              help="Chart export file to print instead of the saved settings")
@click.option("--margin", type=click.FloatRange(MIN_MARGIN_MM, MAX_MARGIN_MM), help="Override margin (mm)")
@click.option("--no-markers", is_flag=True, help="Print without corner markers")
@click.pass_obj
def generate(
    store: JsonBlobStore,
    output: str,
    output_format: str | None,
    chart_file: str | None,
    margin: float | None,
    no_markers: bool,
) -> None:
    """Generate a printable calibration chart.

    Output:
        - PDF sized to the card (85.6 x 54 mm), SVG, or PNG preview
    """
    settings = _resolve_settings(store, chart_file)
    use_markers = settings.use_aruco_markers and not no_markers
    margin_mm = settings.margin if margin is None else margin

    if output_format is None:
        suffix = Path(output).suffix.lower().lstrip(".")
        output_format = suffix if suffix in ("pdf", "svg", "png") else "pdf"

    layout = calculate_layout(use_markers, margin_mm)
    colors = fit_colors(layout, settings.color_chart)
    click.echo(f"🎨 Generating {output_format.upper()} chart: {len(colors)} colors, "
               f"margin {margin_mm}mm, markers {'on' if use_markers else 'off'}")

    try:
        if output_format == "pdf":
            render_chart_pdf(layout, colors, output)
        elif output_format == "svg":
            Path(output).parent.mkdir(parents=True, exist_ok=True)
            Path(output).write_text(render_chart_svg(layout, colors))
        else:
            Path(output).parent.mkdir(parents=True, exist_ok=True)
            render_chart_image(layout, colors, PREVIEW_PX_PER_MM).save(output)
    except ValueError as e:
        raise click.ClickException(str(e)) from e

    click.echo(f"✓ Chart saved to: {output}")


@cli.command()
@click.argument("image", type=click.Path(exists=True, dir_okay=False))
@click.option("--settings", "chart_file", type=click.Path(exists=True, dir_okay=False),
              help="Chart export file the photo was printed from")
@click.option("--no-detector", is_flag=True, help="Skip marker detection and use grid sampling")
@click.option("--report", type=click.Path(dir_okay=False), help="Write the analysis as JSON")
@click.option("--overlay", type=click.Path(dir_okay=False), help="Write the photo annotated with sample points")
@click.option("--save-profile", "profile_name", help="Save the derived adjustments under this profile name")
@click.option("--device", help="Printer name for the saved profile")
@click.pass_obj
def analyze(
    store: JsonBlobStore,
    image: str,
    chart_file: str | None,
    no_detector: bool,
    report: str | None,
    overlay: str | None,
    profile_name: str | None,
    device: str | None,
) -> None:
    """Analyze a photo or scan of a printed chart.

    Args:
        image: PNG/JPEG photo or PDF scan of the printed chart
    """
    if profile_name and not device:
        raise click.UsageError("--save-profile requires --device")

    settings = _resolve_settings(store, chart_file)
    layout = calculate_layout(settings.use_aruco_markers, settings.margin)
    expected = fit_colors(layout, settings.color_chart)

    click.echo(f"🔍 Analyzing {image} against {len(expected)} expected colors...")
    try:
        pixels = load_image(image)
    except (FileNotFoundError, RuntimeError) as e:
        raise click.ClickException(str(e)) from e

    detector = None
    if settings.use_aruco_markers and not no_detector:
        detector = ArucoMarkerDetector()

    try:
        result = analyze_chart(pixels, expected, layout, detector)
    except DetectorUnavailableError as e:
        raise click.ClickException(f"{e}. Retry with --no-detector to use grid sampling.") from e

    if result.method == "markers":
        click.echo(f"✓ Found {len(result.detected_markers)} markers "
                   f"(residual {result.marker_residual_px:.2f}px)")
    else:
        click.echo("⚠ Not enough markers found, sampled with fixed grid (lower confidence)", err=True)

    comparisons = compare(expected, result.samples)
    for index, comparison in enumerate(comparisons):
        quality = comparison.quality.value
        click.echo(f"  {QUALITY_ICONS[quality]} {index:2d} {comparison.original} → {comparison.scanned} "
                   f"(distance {comparison.distance:.1f}, {quality})")

    summary = summarize(comparisons)
    click.echo(f"📊 {summary['good']} good, {summary['fair']} fair, {summary['poor']} poor; "
               f"mean distance {summary['mean_distance']:.1f}")

    if report:
        report_data = {
            "image": image,
            "analysis": result.model_dump(by_alias=True, mode="json"),
            "comparisons": [
                {
                    **c.model_dump(by_alias=True, mode="json"),
                    "distance": c.distance,
                    "quality": c.quality.value,
                }
                for c in comparisons
            ],
            "summary": summary,
        }
        Path(report).parent.mkdir(parents=True, exist_ok=True)
        Path(report).write_text(json.dumps(report_data, indent=2))
        click.echo(f"📁 Report saved to: {report}")

    if overlay:
        Path(overlay).parent.mkdir(parents=True, exist_ok=True)
        render_analysis_overlay(pixels, result, layout).save(overlay)
        click.echo(f"📁 Overlay saved to: {overlay}")

    if profile_name:
        profile = create_profile(comparisons, profile_name, device)
        ProfileStore(store).add(profile)
        adj = profile.adjustments
        click.echo(f"✓ Saved profile '{profile.name}' ({profile.id}): brightness {adj.brightness:+d}, "
                   f"red {adj.red:+d}, green {adj.green:+d}, blue {adj.blue:+d}")


@cli.group()
def settings() -> None:
    """Show or change the saved chart settings."""


@settings.command("show")
@click.pass_obj
def settings_show(store: JsonBlobStore) -> None:
    """Print the active settings as JSON."""
    current = load_settings(store)
    click.echo(current.model_dump_json(by_alias=True, indent=2))
    layout = calculate_layout(current.use_aruco_markers, current.margin)
    click.echo(f"Swatch size {layout.swatch_grid.swatch_width:.2f}mm, capacity {swatch_capacity(layout)} colors")


@settings.command("set")
@click.option("--margin", type=float, help="Margin from card edge to grid (mm)")
@click.option("--markers/--no-markers", default=None, help="Reserve corner cells for markers")
@click.pass_obj
def settings_set(store: JsonBlobStore, margin: float | None, markers: bool | None) -> None:
    """Change margin and marker settings."""
    changes: dict[str, object] = {}
    if margin is not None:
        changes["margin"] = margin
    if markers is not None:
        changes["use_aruco_markers"] = markers
    if not changes:
        raise click.UsageError("Nothing to change; pass --margin or --markers/--no-markers")

    try:
        updated = update_settings(store, **changes)
    except ValidationError as e:
        raise click.ClickException(f"Invalid setting: {e.errors()[0]['msg']}") from e
    click.echo(f"✓ Settings saved: margin {updated.margin}mm, markers {'on' if updated.use_aruco_markers else 'off'}")


@settings.command("add-color")
@click.argument("color")
@click.pass_obj
def settings_add_color(store: JsonBlobStore, color: str) -> None:
    """Append a #RRGGBB color to the chart."""
    try:
        value = normalize_hex(color)
    except ValueError as e:
        raise click.ClickException(str(e)) from e

    current = load_settings(store)
    updated = update_settings(store, color_chart=[*current.color_chart, value])
    layout = calculate_layout(updated.use_aruco_markers, updated.margin)
    click.echo(f"✓ Added {value} ({len(updated.color_chart)} colors)")
    if len(updated.color_chart) > swatch_capacity(layout):
        click.echo(f"⚠ Chart exceeds layout capacity of {swatch_capacity(layout)}; extra colors won't print",
                   err=True)


def _check_swatch_index(chart: list[str], index: int) -> None:
    if not 0 <= index < len(chart):
        raise click.ClickException(f"No swatch {index}; the chart has {len(chart)} colors (0-{len(chart) - 1})")


@settings.command("replace-color")
@click.argument("index", type=int)
@click.argument("color")
@click.pass_obj
def settings_replace_color(store: JsonBlobStore, index: int, color: str) -> None:
    """Replace the color at swatch INDEX."""
    try:
        value = normalize_hex(color)
    except ValueError as e:
        raise click.ClickException(str(e)) from e

    chart = list(load_settings(store).color_chart)
    _check_swatch_index(chart, index)
    previous, chart[index] = chart[index], value
    update_settings(store, color_chart=chart)
    click.echo(f"✓ Swatch {index}: {previous} → {value}")


@settings.command("remove-color")
@click.argument("index", type=int)
@click.pass_obj
def settings_remove_color(store: JsonBlobStore, index: int) -> None:
    """Remove the color at swatch INDEX; later swatches move up one place."""
    chart = list(load_settings(store).color_chart)
    _check_swatch_index(chart, index)
    removed = chart.pop(index)
    update_settings(store, color_chart=chart)
    click.echo(f"✓ Removed {removed} ({len(chart)} colors)")


@settings.command("reset")
@click.pass_obj
def settings_reset(store: JsonBlobStore) -> None:
    """Restore default settings and color chart."""
    save_settings(store, Settings())
    click.echo("✓ Settings reset to defaults")


@cli.group()
def profiles() -> None:
    """Manage saved color profiles."""


@profiles.command("list")
@click.pass_obj
def profiles_list(store: JsonBlobStore) -> None:
    """List saved profiles."""
    saved = ProfileStore(store).list_profiles()
    if not saved:
        click.echo("No saved profiles")
        return
    for profile in saved:
        adj = profile.adjustments
        click.echo(f"{profile.id}  {profile.name} [{profile.device}] {profile.created}  "
                   f"brightness {adj.brightness:+d} red {adj.red:+d} green {adj.green:+d} blue {adj.blue:+d}")


ADJUSTMENT_FIELDS = ("brightness", "contrast", "saturation", "red", "green", "blue")


@profiles.command("create")
@click.argument("name")
@click.option("--device", required=True, help="Printer the profile applies to")
@click.option("--from", "base_id", help="Start from the adjustments of this saved profile")
@click.option("--brightness", type=int, help="Brightness (%)")
@click.option("--contrast", type=int, help="Contrast (%)")
@click.option("--saturation", type=int, help="Saturation (%)")
@click.option("--red", type=int, help="Red channel offset")
@click.option("--green", type=int, help="Green channel offset")
@click.option("--blue", type=int, help="Blue channel offset")
@click.pass_obj
def profiles_create(store: JsonBlobStore, name: str, device: str, base_id: str | None, **values: int | None) -> None:
    """Save a profile with hand-set adjustments.

    With --from, unspecified adjustments are copied from an existing
    profile, which is left unchanged.
    """
    profile_store = ProfileStore(store)
    base = Adjustments()
    if base_id is not None:
        source = profile_store.get(base_id)
        if source is None:
            raise click.ClickException(f"No profile with id {base_id}")
        base = source.adjustments

    changes = {field: values[field] for field in ADJUSTMENT_FIELDS if values[field] is not None}
    try:
        adjustments = Adjustments.model_validate({**base.model_dump(), **changes})
        profile = new_profile(name, device, adjustments)
    except ValidationError as e:
        error = e.errors()[0]
        location = ".".join(str(part) for part in error["loc"])
        raise click.ClickException(f"Invalid profile: {location}: {error['msg']}") from e

    profile_store.add(profile)
    click.echo(f"✓ Saved profile '{profile.name}' ({profile.id}): brightness {adjustments.brightness:+d}, "
               f"contrast {adjustments.contrast:+d}, saturation {adjustments.saturation:+d}, "
               f"red {adjustments.red:+d}, green {adjustments.green:+d}, blue {adjustments.blue:+d}")


@profiles.command("preview")
@click.argument("profile_id")
@click.option("--settings", "chart_file", type=click.Path(exists=True, dir_okay=False),
              help="Chart export file to preview instead of the saved chart")
@click.pass_obj
def profiles_preview(store: JsonBlobStore, profile_id: str, chart_file: str | None) -> None:
    """Show each chart color next to its color after the profile is applied."""
    profile = ProfileStore(store).get(profile_id)
    if profile is None:
        raise click.ClickException(f"No profile with id {profile_id}")

    chart_colors = _resolve_settings(store, chart_file).color_chart
    click.echo(f"🎨 {profile.name} [{profile.device}]")
    for index, color in enumerate(chart_colors):
        click.echo(f"  {index:2d} {color} → {apply_adjustments(color, profile.adjustments)}")


@profiles.command("delete")
@click.argument("profile_id")
@click.pass_obj
def profiles_delete(store: JsonBlobStore, profile_id: str) -> None:
    """Delete a profile by id."""
    if not ProfileStore(store).delete(profile_id):
        raise click.ClickException(f"No profile with id {profile_id}")
    click.echo(f"✓ Deleted profile {profile_id}")


@profiles.command("export")
@click.argument("output", type=click.Path(dir_okay=False))
@click.pass_obj
def profiles_export(store: JsonBlobStore, output: str) -> None:
    """Export all profiles to a JSON file."""
    saved = ProfileStore(store).list_profiles()
    Path(output).parent.mkdir(parents=True, exist_ok=True)
    Path(output).write_text(dump_profiles(export_profiles(saved)))
    click.echo(f"✓ Exported {len(saved)} profiles to: {output}")


@profiles.command("import")
@click.argument("input_file", type=click.Path(exists=True, dir_okay=False))
@click.pass_obj
def profiles_import(store: JsonBlobStore, input_file: str) -> None:
    """Merge profiles from an export file, skipping ids already saved."""
    try:
        added = import_profiles(Path(input_file).read_text(), ProfileStore(store))
    except ConfigurationError as e:
        raise click.ClickException(str(e)) from e
    click.echo(f"✓ Imported {added} profiles")


@cli.group()
def chart() -> None:
    """Share chart configurations."""


@chart.command("export")
@click.argument("output", type=click.Path(dir_okay=False))
@click.option("--name", default="Calibration chart", help="Name stored in the export")
@click.pass_obj
def chart_export(store: JsonBlobStore, output: str, name: str) -> None:
    """Export the active chart configuration."""
    document = export_chart(load_settings(store), name)
    Path(output).parent.mkdir(parents=True, exist_ok=True)
    Path(output).write_text(dump_chart(document))
    click.echo(f"✓ Exported chart '{name}' ({len(document.color_chart)} colors) to: {output}")


@chart.command("import")
@click.argument("input_file", type=click.Path(exists=True, dir_okay=False))
@click.pass_obj
def chart_import(store: JsonBlobStore, input_file: str) -> None:
    """Replace the active settings with an exported chart."""
    try:
        document = import_chart(Path(input_file).read_text())
    except ConfigurationError as e:
        raise click.ClickException(str(e)) from e
    save_settings(store, chart_to_settings(document))
    click.echo(f"✓ Loaded chart '{document.name}' ({len(document.color_chart)} colors)")


if __name__ == "__main__":
    cli()
