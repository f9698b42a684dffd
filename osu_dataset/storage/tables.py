"""Arrow schemas and the registry of the twelve dataset tables."""

from dataclasses import dataclass

import pyarrow as pa

from osu_dataset.schemas.rows import (
    BeatmapRow,
    BreakRow,
    ComboColorRow,
    HitObjectRow,
    HitSampleRow,
    SliderControlPointRow,
    SliderDataRow,
    StoryboardCommandRow,
    StoryboardElementRow,
    StoryboardLoopRow,
    StoryboardTriggerRow,
    TimingPointRow,
    row_field_names,
)

PARTITION_COLUMN = "folder_id"


def _key(name: str) -> pa.Field:
    return pa.field(name, pa.string(), nullable=False)


def _req(name: str, type_: pa.DataType) -> pa.Field:
    return pa.field(name, type_, nullable=False)


# --- Arrow schemas -----------------------------------------------------------

BEATMAPS_SCHEMA = pa.schema(
    [
        _key("folder_id"),
        _key("osu_file"),
        _req("format_version", pa.int32()),
        _req("audio_file", pa.string()),
        _req("audio_lead_in", pa.float64()),
        _req("preview_time", pa.int32()),
        # General
        _req("default_sample_bank", pa.int32()),
        _req("default_sample_volume", pa.int32()),
        _req("stack_leniency", pa.float32()),
        _req("mode", pa.int32()),
        _req("letterbox_in_breaks", pa.bool_()),
        _req("special_style", pa.bool_()),
        _req("widescreen_storyboard", pa.bool_()),
        _req("epilepsy_warning", pa.bool_()),
        _req("samples_match_playback_rate", pa.bool_()),
        _req("countdown", pa.int32()),
        _req("countdown_offset", pa.int32()),
        # Editor
        _req("bookmarks", pa.string()),
        _req("distance_spacing", pa.float64()),
        _req("beat_divisor", pa.int32()),
        _req("grid_size", pa.int32()),
        _req("timeline_zoom", pa.float64()),
        # Metadata
        _req("title", pa.string()),
        _req("title_unicode", pa.string()),
        _req("artist", pa.string()),
        _req("artist_unicode", pa.string()),
        _req("creator", pa.string()),
        _req("version", pa.string()),
        _req("source", pa.string()),
        _req("tags", pa.string()),
        _req("beatmap_id", pa.int32()),
        _req("beatmap_set_id", pa.int32()),
        # Difficulty
        _req("hp_drain_rate", pa.float32()),
        _req("circle_size", pa.float32()),
        _req("overall_difficulty", pa.float32()),
        _req("approach_rate", pa.float32()),
        _req("slider_multiplier", pa.float64()),
        _req("slider_tick_rate", pa.float64()),
        # Events
        _req("background_file", pa.string()),
        _req("audio_path", pa.string()),
        _req("background_path", pa.string()),
    ]
)

HIT_OBJECTS_SCHEMA = pa.schema(
    [
        _key("folder_id"),
        _key("osu_file"),
        _req("index", pa.int32()),
        _req("start_time", pa.float64()),
        _req("object_type", pa.string()),
        pa.field("pos_x", pa.int32()),
        pa.field("pos_y", pa.int32()),
        _req("new_combo", pa.bool_()),
        _req("combo_offset", pa.int32()),
        pa.field("curve_type", pa.string()),
        pa.field("slides", pa.int32()),
        pa.field("length", pa.float64()),
        pa.field("end_time", pa.float64()),
    ]
)

TIMING_POINTS_SCHEMA = pa.schema(
    [
        _key("folder_id"),
        _key("osu_file"),
        _req("time", pa.float64()),
        _req("point_type", pa.string()),
        pa.field("beat_length", pa.float64()),
        pa.field("time_signature", pa.string()),
        pa.field("slider_velocity", pa.float64()),
        pa.field("kiai", pa.bool_()),
        pa.field("sample_bank", pa.string()),
        pa.field("sample_volume", pa.int32()),
    ]
)

STORYBOARD_ELEMENTS_SCHEMA = pa.schema(
    [
        _key("folder_id"),
        _key("source_file"),
        _req("element_index", pa.int32()),
        _req("layer_name", pa.string()),
        _req("element_path", pa.string()),
        _req("element_type", pa.string()),
        _req("origin", pa.string()),
        _req("initial_pos_x", pa.float32()),
        _req("initial_pos_y", pa.float32()),
        pa.field("frame_count", pa.int32()),
        pa.field("frame_delay", pa.float64()),
        pa.field("loop_type", pa.string()),
        _req("is_embedded", pa.bool_()),
    ]
)

STORYBOARD_COMMANDS_SCHEMA = pa.schema(
    [
        _key("folder_id"),
        _key("source_file"),
        _req("element_index", pa.int32()),
        _req("command_type", pa.string()),
        _req("start_time", pa.float64()),
        _req("end_time", pa.float64()),
        _req("start_value", pa.string()),
        _req("end_value", pa.string()),
        _req("easing", pa.int32()),
        _req("is_embedded", pa.bool_()),
    ]
)

SLIDER_CONTROL_POINTS_SCHEMA = pa.schema(
    [
        _key("folder_id"),
        _key("osu_file"),
        _req("hit_object_index", pa.int32()),
        _req("point_index", pa.int32()),
        _req("pos_x", pa.float32()),
        _req("pos_y", pa.float32()),
        pa.field("path_type", pa.string()),
    ]
)

SLIDER_DATA_SCHEMA = pa.schema(
    [
        _key("folder_id"),
        _key("osu_file"),
        _req("hit_object_index", pa.int32()),
        _req("repeat_count", pa.int32()),
        _req("velocity", pa.float64()),
        pa.field("expected_dist", pa.float64()),
    ]
)

BREAKS_SCHEMA = pa.schema(
    [
        _key("folder_id"),
        _key("osu_file"),
        _req("start_time", pa.float64()),
        _req("end_time", pa.float64()),
    ]
)

COMBO_COLORS_SCHEMA = pa.schema(
    [
        _key("folder_id"),
        _key("osu_file"),
        _req("color_index", pa.int32()),
        _req("color_type", pa.string()),
        pa.field("custom_name", pa.string()),
        _req("red", pa.int32()),
        _req("green", pa.int32()),
        _req("blue", pa.int32()),
    ]
)

HIT_SAMPLES_SCHEMA = pa.schema(
    [
        _key("folder_id"),
        _key("osu_file"),
        _req("hit_object_index", pa.int32()),
        _req("sample_index", pa.int32()),
        _req("name", pa.string()),
        _req("bank", pa.string()),
        pa.field("suffix", pa.string()),
        _req("volume", pa.int32()),
    ]
)

STORYBOARD_LOOPS_SCHEMA = pa.schema(
    [
        _key("folder_id"),
        _key("source_file"),
        _req("element_index", pa.int32()),
        _req("loop_index", pa.int32()),
        _req("loop_start_time", pa.float64()),
        _req("loop_count", pa.int32()),
        _req("is_embedded", pa.bool_()),
    ]
)

STORYBOARD_TRIGGERS_SCHEMA = pa.schema(
    [
        _key("folder_id"),
        _key("source_file"),
        _req("element_index", pa.int32()),
        _req("trigger_index", pa.int32()),
        _req("trigger_name", pa.string()),
        _req("trigger_start_time", pa.float64()),
        _req("trigger_end_time", pa.float64()),
        _req("group_number", pa.int32()),
        _req("is_embedded", pa.bool_()),
    ]
)


# --- Registry ------------------------------------------------------------------


@dataclass(frozen=True)
class TableSpec:
    """One table of the dataset: its file, Arrow schema and row type."""

    name: str
    schema: pa.Schema
    row_type: type

    @property
    def filename(self) -> str:
        return f"{self.name}.parquet"

    @property
    def column_names(self) -> list[str]:
        return row_field_names(self.row_type)


# Keyed by the matching ``FileRows`` attribute name.
TABLES: dict[str, TableSpec] = {
    spec.name: spec
    for spec in (
        TableSpec("beatmaps", BEATMAPS_SCHEMA, BeatmapRow),
        TableSpec("hit_objects", HIT_OBJECTS_SCHEMA, HitObjectRow),
        TableSpec("timing_points", TIMING_POINTS_SCHEMA, TimingPointRow),
        TableSpec("storyboard_elements", STORYBOARD_ELEMENTS_SCHEMA, StoryboardElementRow),
        TableSpec("storyboard_commands", STORYBOARD_COMMANDS_SCHEMA, StoryboardCommandRow),
        TableSpec("slider_control_points", SLIDER_CONTROL_POINTS_SCHEMA, SliderControlPointRow),
        TableSpec("slider_data", SLIDER_DATA_SCHEMA, SliderDataRow),
        TableSpec("breaks", BREAKS_SCHEMA, BreakRow),
        TableSpec("combo_colors", COMBO_COLORS_SCHEMA, ComboColorRow),
        TableSpec("hit_samples", HIT_SAMPLES_SCHEMA, HitSampleRow),
        TableSpec("storyboard_loops", STORYBOARD_LOOPS_SCHEMA, StoryboardLoopRow),
        TableSpec("storyboard_triggers", STORYBOARD_TRIGGERS_SCHEMA, StoryboardTriggerRow),
    )
}
