"""Encode a ``Beatmap`` back into ``.osu`` text."""

from pathlib import Path

from osu_dataset.codec.encoder import format_number
from osu_dataset.parsers.osu_parser import (
    ADDITION_BITS,
    COMBO_OFFSET_MASK,
    COMBO_OFFSET_SHIFT,
    EFFECT_KIAI,
    TYPE_CIRCLE,
    TYPE_HOLD,
    TYPE_NEW_COMBO,
    TYPE_SLIDER,
    TYPE_SPINNER,
)
from osu_dataset.schemas.document import (
    Beatmap,
    HitCircle,
    HitObject,
    HitSample,
    HitSampleDefaultName,
    Hold,
    PathType,
    SampleBank,
    Slider,
    Spinner,
)

# Mania holds have no y; the game writes the playfield centre.
HOLD_Y = 192


def _bool(value: bool) -> str:
    return "1" if value else "0"


def _sample_set_name(bank: SampleBank) -> str:
    # "None" is not a valid file-level sample set.
    return "Normal" if bank is SampleBank.NONE else bank.value


# --- Hit objects ------------------------------------------------------------------------


def _hit_sound_fields(samples: list[HitSample]) -> tuple[int, str]:
    """Return ``(hitSound, hitSample)`` for a hit object's samples."""
    files = [s for s in samples if s.is_file]
    if files:
        f = files[0]
        return 0, f"{f.bank.code}:0:0:{f.volume}:{f.name}"

    normal = next((s for s in samples if s.name is HitSampleDefaultName.NORMAL), None)
    additions = [s for s in samples if s.name is not HitSampleDefaultName.NORMAL]
    hit_sound = 0
    for bit, name in ADDITION_BITS:
        if any(s.name is name for s in additions):
            hit_sound |= bit

    first = normal or (additions[0] if additions else None)
    if first is None:
        return 0, "0:0:0:0:"
    normal_set = normal.bank.code if normal is not None else 0
    addition_set = 0
    if additions and additions[0].bank.code != normal_set:
        addition_set = additions[0].bank.code
    index = first.suffix or 0
    return hit_sound, f"{normal_set}:{addition_set}:{index}:{first.volume}:"


def _coord(value: float) -> str:
    return str(int(round(value)))


def _curve(slider: Slider) -> str:
    points = slider.path.control_points
    head_type = points[0].path_type if points and points[0].path_type else PathType.BEZIER
    tokens = [head_type.letter]
    for cp in points[1:]:
        token = f"{_coord(slider.pos.x + cp.pos.x)}:{_coord(slider.pos.y + cp.pos.y)}"
        tokens.append(token)
        # A doubled point starts a new segment.
        if cp.path_type is not None:
            tokens.append(token)
    return "|".join(tokens)


def encode_hit_object(ho: HitObject) -> str:
    kind = ho.kind
    time = format_number(ho.start_time)
    hit_sound, sample_field = _hit_sound_fields(ho.samples)

    if isinstance(kind, Hold):
        end = format_number(ho.start_time + kind.duration)
        return f"{_coord(kind.pos_x)},{HOLD_Y},{time},{TYPE_HOLD},{hit_sound},{end}:{sample_field}"

    if isinstance(kind, HitCircle):
        type_bits = TYPE_CIRCLE
    elif isinstance(kind, Slider):
        type_bits = TYPE_SLIDER
    elif isinstance(kind, Spinner):
        type_bits = TYPE_SPINNER
    else:
        raise TypeError(f"unsupported hit object kind: {type(kind).__name__}")
    if kind.new_combo:
        type_bits |= TYPE_NEW_COMBO
    combo_offset = getattr(kind, "combo_offset", 0)
    type_bits |= (combo_offset & COMBO_OFFSET_MASK) << COMBO_OFFSET_SHIFT

    prefix = f"{_coord(kind.pos.x)},{_coord(kind.pos.y)},{time},{type_bits},{hit_sound}"
    if isinstance(kind, HitCircle):
        return f"{prefix},{sample_field}"
    if isinstance(kind, Spinner):
        return f"{prefix},{format_number(ho.start_time + kind.duration)},{sample_field}"

    slides = kind.repeat_count + 1
    length = format_number(kind.path.expected_dist or 0.0)
    normal_set, addition_set = sample_field.split(":")[:2]
    edge_sounds = "|".join([str(hit_sound)] * (slides + 1))
    edge_sets = "|".join([f"{normal_set}:{addition_set}"] * (slides + 1))
    return f"{prefix},{_curve(kind)},{slides},{length},{edge_sounds},{edge_sets},{sample_field}"


# --- Timing points ----------------------------------------------------------------------


def encode_timing_points(beatmap: Beatmap) -> list[str]:
    """Merge the three control point lists back into ``[TimingPoints]`` lines.

    Timing points become uninherited lines.  Difficulty points become
    inherited lines.  Effect points set the kiai bit from their time on; one
    that shares its time with no other point gets an inherited line of its
    own at the current slider velocity.
    """
    events = [(tp.time, 0, tp) for tp in beatmap.timing_points]
    events += [(dp.time, 1, dp) for dp in beatmap.difficulty_points]
    events += [(ep.time, 2, ep) for ep in beatmap.effect_points]
    events.sort(key=lambda e: (e[0], e[1]))

    by_time: dict[float, dict[int, object]] = {}
    for time, order, point in events:
        by_time.setdefault(time, {})[order] = point

    lines = []
    kiai = False
    meter = 4
    sv = 1.0
    for time, points in by_time.items():
        tp, dp, ep = points.get(0), points.get(1), points.get(2)
        if ep is not None:
            kiai = ep.kiai
        effects = EFFECT_KIAI if kiai else 0
        t = format_number(time)
        if tp is not None:
            meter = tp.time_signature
            sv = 1.0
            lines.append(
                f"{t},{format_number(tp.beat_len)},{meter},{tp.sample_bank.code},0,"
                f"{tp.sample_volume},1,{effects}"
            )
        if dp is not None or (ep is not None and tp is None):
            source = dp if dp is not None else ep
            if dp is not None and dp.slider_velocity > 0:
                sv = dp.slider_velocity
            lines.append(
                f"{t},{format_number(-100.0 / sv)},{meter},{source.sample_bank.code},0,"
                f"{source.sample_volume},0,{effects}"
            )
    return lines


# --- Whole file -------------------------------------------------------------------------


def encode_beatmap(beatmap: Beatmap) -> str:
    """Return the ``.osu`` text for *beatmap*.

    Storyboard events are not included; they are written to a companion
    ``.osb`` file.
    """
    b = beatmap
    lines = [f"osu file format v{b.format_version}", ""]

    lines += [
        "[General]",
        f"AudioFilename: {b.audio_file}",
        f"AudioLeadIn: {format_number(b.audio_lead_in)}",
        f"PreviewTime: {b.preview_time}",
        f"Countdown: {b.countdown.value}",
        f"SampleSet: {_sample_set_name(b.default_sample_bank)}",
        f"SampleVolume: {b.default_sample_volume}",
        f"StackLeniency: {format_number(b.stack_leniency)}",
        f"Mode: {b.mode.value}",
        f"LetterboxInBreaks: {_bool(b.letterbox_in_breaks)}",
        f"SpecialStyle: {_bool(b.special_style)}",
        f"WidescreenStoryboard: {_bool(b.widescreen_storyboard)}",
        f"EpilepsyWarning: {_bool(b.epilepsy_warning)}",
        f"SamplesMatchPlaybackRate: {_bool(b.samples_match_playback_rate)}",
        f"CountdownOffset: {b.countdown_offset}",
        "",
        "[Editor]",
    ]
    if b.bookmarks:
        lines.append(f"Bookmarks: {','.join(str(m) for m in b.bookmarks)}")
    lines += [
        f"DistanceSpacing: {format_number(b.distance_spacing)}",
        f"BeatDivisor: {b.beat_divisor}",
        f"GridSize: {b.grid_size}",
        f"TimelineZoom: {format_number(b.timeline_zoom)}",
        "",
        "[Metadata]",
        f"Title:{b.title}",
        f"TitleUnicode:{b.title_unicode}",
        f"Artist:{b.artist}",
        f"ArtistUnicode:{b.artist_unicode}",
        f"Creator:{b.creator}",
        f"Version:{b.version}",
        f"Source:{b.source}",
        f"Tags:{b.tags}",
        f"BeatmapID:{b.beatmap_id}",
        f"BeatmapSetID:{b.beatmap_set_id}",
        "",
        "[Difficulty]",
        f"HPDrainRate:{format_number(b.hp_drain_rate)}",
        f"CircleSize:{format_number(b.circle_size)}",
        f"OverallDifficulty:{format_number(b.overall_difficulty)}",
        f"ApproachRate:{format_number(b.approach_rate)}",
        f"SliderMultiplier:{format_number(b.slider_multiplier)}",
        f"SliderTickRate:{format_number(b.slider_tick_rate)}",
        "",
        "[Events]",
        "//Background and Video events",
    ]
    if b.background_file:
        lines.append(f'0,0,"{b.background_file}",0,0')
    lines.append("//Break Periods")
    for brk in b.breaks:
        lines.append(f"2,{format_number(brk.start_time)},{format_number(brk.end_time)}")
    lines += ["", "[TimingPoints]"]
    lines += encode_timing_points(b)
    lines.append("")

    if b.custom_combo_colors or b.custom_colors:
        lines.append("[Colours]")
        for i, c in enumerate(b.custom_combo_colors, start=1):
            lines.append(f"Combo{i} : {c.red},{c.green},{c.blue}")
        for custom in b.custom_colors:
            c = custom.color
            lines.append(f"{custom.name} : {c.red},{c.green},{c.blue}")
        lines.append("")

    lines.append("[HitObjects]")
    lines += [encode_hit_object(ho) for ho in b.hit_objects]
    return "\n".join(lines) + "\n"


def write_beatmap(beatmap: Beatmap, path: Path) -> None:
    Path(path).write_text(encode_beatmap(beatmap), encoding="utf-8")
