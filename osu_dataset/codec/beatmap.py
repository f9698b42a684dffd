"""Rebuild a ``Beatmap`` document from the row sets of one ``.osu`` file.

The input rows are assumed to be scoped to a single ``(folder_id, osu_file)``
pair already.  Child tables are indexed by ``hit_object_index`` once per
call, and every table is re-sorted by its positional column before use: the
storage order of filtered rows carries no meaning.

Bad rows are skipped one at a time.  Each skip is logged and recorded as a
``ReconstructionIssue`` on the result; the rest of the file still decodes.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass, field

from osu_dataset.schemas.document import (
    Beatmap,
    BreakPeriod,
    Color,
    ColorType,
    CountdownType,
    CustomColor,
    DEFAULT_BEAT_LEN,
    DifficultyPoint,
    EffectPoint,
    GameMode,
    HitCircle,
    HitObject,
    HitSample,
    HitSampleDefaultName,
    Hold,
    ObjectType,
    PathControlPoint,
    PathType,
    PointType,
    Pos,
    SampleBank,
    Slider,
    SliderPath,
    Spinner,
    TimingPoint,
    UnknownTagError,
    parse_tag,
)
from osu_dataset.schemas.rows import (
    BeatmapRow,
    FileRows,
    HitObjectRow,
    HitSampleRow,
    SliderControlPointRow,
    SliderDataRow,
    TimingPointRow,
)

logger = logging.getLogger(__name__)

_POINT_TYPE_ORDER = {"timing": 0, "difficulty": 1, "effect": 2}


@dataclass
class ReconstructionIssue:
    """One row or object that could not be rebuilt, and why."""

    table: str
    key: str
    reason: str

    def __str__(self) -> str:
        return f"{self.table}[{self.key}]: {self.reason}"


@dataclass
class BeatmapReconstruction:
    osu_file: str
    beatmap: Beatmap
    issues: list[ReconstructionIssue] = field(default_factory=list)


def _f32(value: float) -> float:
    """Undo float32 widening, e.g. ``0.699999988`` back to ``0.7``."""
    return float(f"{value:.7g}")


def _enum_or_default(enum_cls, code, default):
    try:
        return parse_tag(enum_cls, code)
    except UnknownTagError:
        logger.warning("Unknown %s code %r, using %s", enum_cls.__name__, code, default.name)
        return default


def _sample_bank_or_default(code: int) -> SampleBank:
    try:
        return SampleBank.from_code(code)
    except UnknownTagError:
        logger.warning("Unknown sample bank code %r, using None", code)
        return SampleBank.NONE


def _bookmarks(text: str) -> list[int]:
    marks = []
    for part in text.split(","):
        part = part.strip()
        if not part:
            continue
        try:
            marks.append(int(part))
        except ValueError:
            logger.warning("Ignoring malformed bookmark %r", part)
    return marks


def _beatmap_from_row(row: BeatmapRow) -> Beatmap:
    return Beatmap(
        format_version=row.format_version,
        audio_file=row.audio_file,
        audio_lead_in=row.audio_lead_in,
        preview_time=row.preview_time,
        default_sample_bank=_sample_bank_or_default(row.default_sample_bank),
        default_sample_volume=row.default_sample_volume,
        stack_leniency=_f32(row.stack_leniency),
        mode=_enum_or_default(GameMode, row.mode, GameMode.OSU),
        letterbox_in_breaks=row.letterbox_in_breaks,
        special_style=row.special_style,
        widescreen_storyboard=row.widescreen_storyboard,
        epilepsy_warning=row.epilepsy_warning,
        samples_match_playback_rate=row.samples_match_playback_rate,
        countdown=_enum_or_default(CountdownType, row.countdown, CountdownType.NORMAL),
        countdown_offset=row.countdown_offset,
        bookmarks=_bookmarks(row.bookmarks),
        distance_spacing=row.distance_spacing,
        beat_divisor=row.beat_divisor,
        grid_size=row.grid_size,
        timeline_zoom=row.timeline_zoom,
        title=row.title,
        title_unicode=row.title_unicode,
        artist=row.artist,
        artist_unicode=row.artist_unicode,
        creator=row.creator,
        version=row.version,
        source=row.source,
        tags=row.tags,
        beatmap_id=row.beatmap_id,
        beatmap_set_id=row.beatmap_set_id,
        hp_drain_rate=_f32(row.hp_drain_rate),
        circle_size=_f32(row.circle_size),
        overall_difficulty=_f32(row.overall_difficulty),
        approach_rate=_f32(row.approach_rate),
        slider_multiplier=row.slider_multiplier,
        slider_tick_rate=row.slider_tick_rate,
        background_file=row.background_file,
    )


# --- Hit objects -------------------------------------------------------------------


def _pos(row: HitObjectRow) -> Pos:
    return Pos(float(row.pos_x or 0), float(row.pos_y or 0))


def _control_point(row: SliderControlPointRow) -> PathControlPoint:
    path_type = parse_tag(PathType, row.path_type) if row.path_type is not None else None
    return PathControlPoint(Pos(_f32(row.pos_x), _f32(row.pos_y)), path_type)


def _hit_sample(row: HitSampleRow) -> HitSample:
    try:
        name = HitSampleDefaultName(row.name)
    except ValueError:
        # Anything that is not a default hitsound name is a custom sample file.
        name = row.name
    suffix = int(row.suffix) if row.suffix else None
    return HitSample(name, parse_tag(SampleBank, row.bank), suffix, row.volume)


def _hit_object(
    row: HitObjectRow,
    slider_data: dict[int, SliderDataRow],
    control_points: dict[int, list[SliderControlPointRow]],
    samples: dict[int, list[HitSampleRow]],
) -> HitObject:
    object_type = parse_tag(ObjectType, row.object_type)

    if object_type is ObjectType.CIRCLE:
        kind = HitCircle(_pos(row), row.new_combo, row.combo_offset)
    elif object_type is ObjectType.SLIDER:
        data = slider_data.get(row.index)
        if data is None:
            raise LookupError(f"no slider data for hit object {row.index}")
        path = SliderPath(
            control_points=[_control_point(cp) for cp in control_points.get(row.index, [])],
            expected_dist=data.expected_dist,
        )
        kind = Slider(
            pos=_pos(row),
            path=path,
            repeat_count=data.repeat_count,
            velocity=data.velocity,
            new_combo=row.new_combo,
            combo_offset=row.combo_offset,
        )
    elif object_type is ObjectType.SPINNER:
        kind = Spinner(_pos(row), row.end_time or 0.0, row.new_combo)
    else:
        kind = Hold(float(row.pos_x or 0), row.end_time or 0.0)

    return HitObject(
        start_time=row.start_time,
        kind=kind,
        samples=[_hit_sample(s) for s in samples.get(row.index, [])],
    )


# --- Control points -------------------------------------------------------------------


def _bank_or_none(tag: str | None) -> SampleBank:
    return parse_tag(SampleBank, tag) if tag is not None else SampleBank.NONE


def _route_timing_point(row: TimingPointRow, beatmap: Beatmap) -> None:
    point_type = parse_tag(PointType, row.point_type)
    bank = _bank_or_none(row.sample_bank)
    volume = row.sample_volume if row.sample_volume is not None else 100

    if point_type is PointType.TIMING:
        beat_len = row.beat_length if row.beat_length is not None else DEFAULT_BEAT_LEN
        meter = int(row.time_signature) if row.time_signature else 4
        beatmap.timing_points.append(TimingPoint(row.time, beat_len, meter, bank, volume))
    elif point_type is PointType.DIFFICULTY:
        sv = row.slider_velocity if row.slider_velocity is not None else 1.0
        beatmap.difficulty_points.append(DifficultyPoint(row.time, sv, bank, volume))
    else:
        kiai = row.kiai if row.kiai is not None else False
        beatmap.effect_points.append(EffectPoint(row.time, kiai, bank, volume))


# --- Entry point -----------------------------------------------------------------------


def _skip(issues: list, table: str, key, exc: Exception) -> None:
    issue = ReconstructionIssue(table, str(key), str(exc))
    logger.warning("Skipping %s", issue)
    issues.append(issue)


def reconstruct_beatmap(rows: FileRows) -> BeatmapReconstruction:
    """Rebuild one beatmap from rows scoped to a single ``.osu`` file.

    Raises:
        ValueError: if *rows* holds no beatmap row.
    """
    if not rows.beatmaps:
        raise ValueError("no beatmap row to reconstruct from")
    meta = rows.beatmaps[0]
    if len(rows.beatmaps) > 1:
        logger.warning(
            "%d beatmap rows for %s/%s, using the first",
            len(rows.beatmaps), meta.folder_id, meta.osu_file,
        )

    beatmap = _beatmap_from_row(meta)
    issues: list[ReconstructionIssue] = []

    slider_data = {r.hit_object_index: r for r in rows.slider_data}
    control_points: dict[int, list[SliderControlPointRow]] = defaultdict(list)
    for cp in rows.slider_control_points:
        control_points[cp.hit_object_index].append(cp)
    for points in control_points.values():
        points.sort(key=lambda r: r.point_index)
    samples: dict[int, list[HitSampleRow]] = defaultdict(list)
    for s in rows.hit_samples:
        samples[s.hit_object_index].append(s)
    for group in samples.values():
        group.sort(key=lambda r: r.sample_index)

    for row in sorted(rows.hit_objects, key=lambda r: r.index):
        try:
            beatmap.hit_objects.append(_hit_object(row, slider_data, control_points, samples))
        except (LookupError, ValueError) as e:
            _skip(issues, "hit_objects", row.index, e)

    for row in sorted(
        rows.timing_points,
        key=lambda r: (r.time, _POINT_TYPE_ORDER.get(r.point_type, len(_POINT_TYPE_ORDER))),
    ):
        try:
            _route_timing_point(row, beatmap)
        except ValueError as e:
            _skip(issues, "timing_points", f"{row.time}:{row.point_type}", e)

    for row in sorted(rows.breaks, key=lambda r: (r.start_time, r.end_time)):
        beatmap.breaks.append(BreakPeriod(row.start_time, row.end_time))

    for row in sorted(rows.combo_colors, key=lambda r: (r.color_type, r.color_index)):
        try:
            color_type = parse_tag(ColorType, row.color_type)
        except UnknownTagError as e:
            _skip(issues, "combo_colors", f"{row.color_index}:{row.color_type}", e)
            continue
        color = Color(row.red, row.green, row.blue)
        if color_type is ColorType.COMBO:
            beatmap.custom_combo_colors.append(color)
        else:
            beatmap.custom_colors.append(CustomColor(row.custom_name or "", color))

    logger.debug(
        "Reconstructed %s: %d hit objects, %d issues",
        meta.osu_file, len(beatmap.hit_objects), len(issues),
    )
    return BeatmapReconstruction(meta.osu_file, beatmap, issues)
