"""Flatten parsed beatmaps and storyboards into the twelve row sets."""

import logging

from osu_dataset.schemas.document import (
    Animation,
    Beatmap,
    Color,
    CommandKind,
    Element,
    Hold,
    HitCircle,
    HitObject,
    HitSample,
    HitSampleDefaultName,
    Pos,
    Slider,
    Spinner,
    Sprite,
    Storyboard,
)
from osu_dataset.schemas.rows import (
    BeatmapRow,
    BreakRow,
    ComboColorRow,
    FileRows,
    HitObjectRow,
    HitSampleRow,
    SliderControlPointRow,
    SliderDataRow,
    StoryboardCommandRow,
    StoryboardElementRow,
    StoryboardLoopRow,
    StoryboardTriggerRow,
    TimingPointRow,
)

logger = logging.getLogger(__name__)

# Stored for every blending command regardless of its parameters.
BLENDING_PLACEHOLDER = "A"


class NoHitObjectsError(ValueError):
    """A beatmap file contains no playable objects."""


# --- Value formatting ----------------------------------------------------------


def format_number(value: float) -> str:
    """Shortest decimal for *value*, without a trailing ``.0``."""
    text = repr(float(value))
    if text.endswith(".0"):
        text = text[:-2]
    return text


def _format_bool(value: bool) -> str:
    return "true" if value else "false"


def _format_color(value: Color) -> str:
    return f"{value.red},{value.green},{value.blue}"


def _format_vector(value: Pos) -> str:
    return f"{format_number(value.x)},{format_number(value.y)}"


_VALUE_FORMATTERS = {
    CommandKind.X: format_number,
    CommandKind.Y: format_number,
    CommandKind.SCALE: format_number,
    CommandKind.ROTATION: format_number,
    CommandKind.ALPHA: format_number,
    CommandKind.COLOR: _format_color,
    CommandKind.FLIP_H: _format_bool,
    CommandKind.FLIP_V: _format_bool,
    CommandKind.VECTOR_SCALE: _format_vector,
    CommandKind.BLENDING: lambda _value: BLENDING_PLACEHOLDER,
}


def format_command_value(kind: CommandKind, value) -> str:
    return _VALUE_FORMATTERS[kind](value)


def asset_path(folder_id: str, filename: str) -> str:
    """Dataset-relative path of an asset captured for *folder_id*."""
    if not filename:
        return ""
    return f"assets/{folder_id}/{filename}"


# --- Beatmap side ----------------------------------------------------------------


def _beatmap_row(beatmap: Beatmap, folder_id: str, osu_file: str) -> BeatmapRow:
    return BeatmapRow(
        folder_id=folder_id,
        osu_file=osu_file,
        format_version=beatmap.format_version,
        audio_file=beatmap.audio_file,
        audio_lead_in=beatmap.audio_lead_in,
        preview_time=beatmap.preview_time,
        default_sample_bank=beatmap.default_sample_bank.code,
        default_sample_volume=beatmap.default_sample_volume,
        stack_leniency=beatmap.stack_leniency,
        mode=beatmap.mode.value,
        letterbox_in_breaks=beatmap.letterbox_in_breaks,
        special_style=beatmap.special_style,
        widescreen_storyboard=beatmap.widescreen_storyboard,
        epilepsy_warning=beatmap.epilepsy_warning,
        samples_match_playback_rate=beatmap.samples_match_playback_rate,
        countdown=beatmap.countdown.value,
        countdown_offset=beatmap.countdown_offset,
        bookmarks=",".join(str(b) for b in beatmap.bookmarks),
        distance_spacing=beatmap.distance_spacing,
        beat_divisor=beatmap.beat_divisor,
        grid_size=beatmap.grid_size,
        timeline_zoom=beatmap.timeline_zoom,
        title=beatmap.title,
        title_unicode=beatmap.title_unicode,
        artist=beatmap.artist,
        artist_unicode=beatmap.artist_unicode,
        creator=beatmap.creator,
        version=beatmap.version,
        source=beatmap.source,
        tags=beatmap.tags,
        beatmap_id=beatmap.beatmap_id,
        beatmap_set_id=beatmap.beatmap_set_id,
        hp_drain_rate=beatmap.hp_drain_rate,
        circle_size=beatmap.circle_size,
        overall_difficulty=beatmap.overall_difficulty,
        approach_rate=beatmap.approach_rate,
        slider_multiplier=beatmap.slider_multiplier,
        slider_tick_rate=beatmap.slider_tick_rate,
        background_file=beatmap.background_file,
        audio_path=asset_path(folder_id, beatmap.audio_file),
        background_path=asset_path(folder_id, beatmap.background_file),
    )


def _hit_object_row(ho: HitObject, index: int, folder_id: str, osu_file: str) -> HitObjectRow:
    kind = ho.kind
    row = HitObjectRow(
        folder_id=folder_id,
        osu_file=osu_file,
        index=index,
        start_time=ho.start_time,
        object_type=ho.object_type.value,
        pos_x=None,
        pos_y=None,
        new_combo=False,
        combo_offset=0,
    )
    # Positions are truncated toward zero.
    if isinstance(kind, HitCircle):
        row.pos_x, row.pos_y = int(kind.pos.x), int(kind.pos.y)
        row.new_combo = kind.new_combo
        row.combo_offset = kind.combo_offset
    elif isinstance(kind, Slider):
        row.pos_x, row.pos_y = int(kind.pos.x), int(kind.pos.y)
        row.new_combo = kind.new_combo
        row.combo_offset = kind.combo_offset
        points = kind.path.control_points
        if points and points[0].path_type is not None:
            row.curve_type = points[0].path_type.value
        row.slides = kind.repeat_count
        row.length = kind.path.expected_dist if kind.path.expected_dist is not None else 0.0
    elif isinstance(kind, Spinner):
        row.pos_x, row.pos_y = int(kind.pos.x), int(kind.pos.y)
        row.new_combo = kind.new_combo
        row.end_time = kind.duration
    elif isinstance(kind, Hold):
        # Holds only have a column; y, combo flag and offset are not stored.
        row.pos_x = int(kind.pos_x)
        row.end_time = kind.duration
    else:
        raise TypeError(f"unsupported hit object kind: {type(kind).__name__}")
    return row


def _sample_name(sample: HitSample) -> str:
    if isinstance(sample.name, HitSampleDefaultName):
        return sample.name.value
    return sample.name


def flatten_beatmap(beatmap: Beatmap, folder_id: str, osu_file: str) -> FileRows:
    """Flatten the beatmap side of one ``.osu`` file into row sets.

    ``index`` on hit objects is the position in ``beatmap.hit_objects``; the
    slider and sample tables reference it through ``hit_object_index``.

    Raises:
        NoHitObjectsError: if the beatmap has no hit objects.
    """
    if not beatmap.hit_objects:
        raise NoHitObjectsError(f"{osu_file}: no hit objects")

    rows = FileRows(beatmaps=[_beatmap_row(beatmap, folder_id, osu_file)])

    for idx, ho in enumerate(beatmap.hit_objects):
        rows.hit_objects.append(_hit_object_row(ho, idx, folder_id, osu_file))

        if isinstance(ho.kind, Slider):
            slider = ho.kind
            rows.slider_data.append(SliderDataRow(
                folder_id=folder_id,
                osu_file=osu_file,
                hit_object_index=idx,
                repeat_count=slider.repeat_count,
                velocity=slider.velocity,
                expected_dist=slider.path.expected_dist,
            ))
            for cp_idx, cp in enumerate(slider.path.control_points):
                rows.slider_control_points.append(SliderControlPointRow(
                    folder_id=folder_id,
                    osu_file=osu_file,
                    hit_object_index=idx,
                    point_index=cp_idx,
                    pos_x=cp.pos.x,
                    pos_y=cp.pos.y,
                    path_type=cp.path_type.value if cp.path_type is not None else None,
                ))

        for sample_idx, sample in enumerate(ho.samples):
            rows.hit_samples.append(HitSampleRow(
                folder_id=folder_id,
                osu_file=osu_file,
                hit_object_index=idx,
                sample_index=sample_idx,
                name=_sample_name(sample),
                bank=sample.bank.value,
                suffix=str(sample.suffix) if sample.suffix is not None else None,
                volume=sample.volume,
            ))

    for tp in beatmap.timing_points:
        rows.timing_points.append(TimingPointRow(
            folder_id=folder_id,
            osu_file=osu_file,
            time=tp.time,
            point_type="timing",
            beat_length=tp.beat_len,
            time_signature=str(tp.time_signature),
            sample_bank=tp.sample_bank.value,
            sample_volume=tp.sample_volume,
        ))
    for dp in beatmap.difficulty_points:
        rows.timing_points.append(TimingPointRow(
            folder_id=folder_id,
            osu_file=osu_file,
            time=dp.time,
            point_type="difficulty",
            slider_velocity=dp.slider_velocity,
            sample_bank=dp.sample_bank.value,
            sample_volume=dp.sample_volume,
        ))
    for ep in beatmap.effect_points:
        rows.timing_points.append(TimingPointRow(
            folder_id=folder_id,
            osu_file=osu_file,
            time=ep.time,
            point_type="effect",
            kiai=ep.kiai,
            sample_bank=ep.sample_bank.value,
            sample_volume=ep.sample_volume,
        ))

    for brk in beatmap.breaks:
        rows.breaks.append(BreakRow(folder_id, osu_file, brk.start_time, brk.end_time))

    for idx, color in enumerate(beatmap.custom_combo_colors):
        rows.combo_colors.append(ComboColorRow(
            folder_id, osu_file, idx, "combo", None, color.red, color.green, color.blue,
        ))
    for idx, custom in enumerate(beatmap.custom_colors):
        c = custom.color
        rows.combo_colors.append(ComboColorRow(
            folder_id, osu_file, idx, "custom", custom.name, c.red, c.green, c.blue,
        ))

    return rows


# --- Storyboard side -------------------------------------------------------------


def _element_row(
    element: Element,
    layer_name: str,
    element_index: int,
    folder_id: str,
    source_file: str,
    is_embedded: bool,
) -> StoryboardElementRow:
    kind = element.kind
    row = StoryboardElementRow(
        folder_id=folder_id,
        source_file=source_file,
        element_index=element_index,
        layer_name=layer_name,
        element_path=element.path,
        element_type=element.element_type.value,
        origin="",
        initial_pos_x=0.0,
        initial_pos_y=0.0,
        is_embedded=is_embedded,
    )
    if isinstance(kind, Sprite):
        row.origin = kind.origin.value
        row.initial_pos_x = kind.initial_pos.x
        row.initial_pos_y = kind.initial_pos.y
    if isinstance(kind, Animation):
        row.frame_count = kind.frame_count
        row.frame_delay = kind.frame_delay
        row.loop_type = kind.loop_type.value
    return row


def flatten_storyboard(
    storyboard: Storyboard,
    folder_id: str,
    source_file: str,
    is_embedded: bool,
) -> FileRows:
    """Flatten one storyboard into element, command, loop and trigger rows.

    ``element_index`` counts every element of this storyboard across all of
    its layers, starting at 0.  Each ``(source_file, is_embedded)`` pair is
    its own index space, so every call starts a fresh counter.

    Only the sprite's own timeline is stored as command rows; loops and
    triggers are stored as their header values.
    """
    rows = FileRows()

    for element_index, (layer_name, element) in enumerate(storyboard.iter_elements()):
        rows.storyboard_elements.append(_element_row(
            element, layer_name, element_index, folder_id, source_file, is_embedded,
        ))
        sprite = element.kind
        if not isinstance(sprite, Sprite):
            continue

        for kind in CommandKind:
            for cmd in sprite.timeline_group.timeline(kind):
                rows.storyboard_commands.append(StoryboardCommandRow(
                    folder_id=folder_id,
                    source_file=source_file,
                    element_index=element_index,
                    command_type=kind.value,
                    start_time=cmd.start_time,
                    end_time=cmd.end_time,
                    start_value=format_command_value(kind, cmd.start_value),
                    end_value=format_command_value(kind, cmd.end_value),
                    easing=cmd.easing,
                    is_embedded=is_embedded,
                ))

        for loop_idx, loop in enumerate(sprite.loops):
            rows.storyboard_loops.append(StoryboardLoopRow(
                folder_id=folder_id,
                source_file=source_file,
                element_index=element_index,
                loop_index=loop_idx,
                loop_start_time=loop.loop_start_time,
                loop_count=loop.total_iterations,
                is_embedded=is_embedded,
            ))
        for trigger_idx, trigger in enumerate(sprite.triggers):
            rows.storyboard_triggers.append(StoryboardTriggerRow(
                folder_id=folder_id,
                source_file=source_file,
                element_index=element_index,
                trigger_index=trigger_idx,
                trigger_name=trigger.name,
                trigger_start_time=trigger.start_time,
                trigger_end_time=trigger.end_time,
                group_number=trigger.group_num,
                is_embedded=is_embedded,
            ))

    logger.debug(
        "Flattened %d storyboard elements from %s (embedded=%s)",
        len(rows.storyboard_elements), source_file, is_embedded,
    )
    return rows
