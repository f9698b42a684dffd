"""Parse ``.osu`` beatmap files into the ``Beatmap`` document model.

Only the sections the dataset stores are read: General, Editor, Metadata,
Difficulty, Events (background and breaks), TimingPoints, Colours and
HitObjects.  Storyboard events are left to ``storyboard_parser``.

Malformed timing-point and hit-object lines are logged and skipped, the
way the game client tolerates them.
"""

import bisect
import logging
import re
from pathlib import Path

from osu_dataset.schemas.document import (
    Beatmap,
    BreakPeriod,
    Color,
    CountdownType,
    CustomColor,
    DifficultyPoint,
    EffectPoint,
    GameMode,
    HitCircle,
    HitObject,
    HitSample,
    HitSampleDefaultName,
    Hold,
    PathControlPoint,
    PathType,
    Pos,
    SampleBank,
    Slider,
    SliderPath,
    Spinner,
    TimingPoint,
    UnknownTagError,
)

logger = logging.getLogger(__name__)

_HEADER_RE = re.compile(r"osu file format v(\d+)")
_SECTION_RE = re.compile(r"^\[(\w+)\]\s*$")
_COMBO_RE = re.compile(r"^Combo(\d+)$")

# Hit object type bits
TYPE_CIRCLE = 1
TYPE_SLIDER = 2
TYPE_NEW_COMBO = 4
TYPE_SPINNER = 8
TYPE_HOLD = 128
COMBO_OFFSET_SHIFT = 4
COMBO_OFFSET_MASK = 7

# hitSound bits, in the order the additions are listed
ADDITION_BITS = (
    (2, HitSampleDefaultName.WHISTLE),
    (4, HitSampleDefaultName.FINISH),
    (8, HitSampleDefaultName.CLAP),
)

EFFECT_KIAI = 1

# Slider velocity multipliers are clamped by the game to this range.
MIN_SLIDER_VELOCITY = 0.1
MAX_SLIDER_VELOCITY = 10.0


class OsuParseError(ValueError):
    """The text is not a readable ``.osu`` file."""


def split_sections(text: str) -> tuple[int | None, dict[str, list[str]]]:
    """Split file text into ``(format_version, {section: lines})``.

    Blank lines and ``//`` comments are dropped.  Lines keep their leading
    whitespace, which is significant for storyboard commands.
    """
    version = None
    sections: dict[str, list[str]] = {}
    current: list[str] | None = None
    for raw in text.splitlines():
        line = raw.rstrip()
        if not line.strip() or line.lstrip().startswith("//"):
            continue
        if version is None and current is None:
            match = _HEADER_RE.search(line)
            if match:
                version = int(match.group(1))
                continue
        match = _SECTION_RE.match(line.strip())
        if match:
            current = sections.setdefault(match.group(1), [])
            continue
        if current is not None:
            current.append(line)
    return version, sections


def read_text(path: Path) -> str:
    return Path(path).read_text(encoding="utf-8-sig", errors="replace")


def _key_values(lines: list[str]) -> dict[str, str]:
    pairs = {}
    for line in lines:
        if ":" not in line:
            continue
        key, value = line.split(":", 1)
        pairs[key.strip()] = value.strip()
    return pairs


def _int(text: str) -> int:
    return int(float(text))


def _flag(text: str) -> bool:
    return text.strip() in ("1", "true", "True")


def _bank(code: int) -> SampleBank:
    try:
        return SampleBank.from_code(code)
    except UnknownTagError:
        return SampleBank.NONE


def _bank_by_name(name: str) -> SampleBank:
    for bank in SampleBank:
        if bank.value.lower() == name.strip().lower():
            return bank
    logger.warning("Unknown sample set %r, using Normal", name)
    return SampleBank.NORMAL


# --- Key/value sections ----------------------------------------------------------------


def _apply_general(beatmap: Beatmap, values: dict[str, str]) -> None:
    if "AudioFilename" in values:
        beatmap.audio_file = values["AudioFilename"]
    if "AudioLeadIn" in values:
        beatmap.audio_lead_in = float(values["AudioLeadIn"])
    if "PreviewTime" in values:
        beatmap.preview_time = _int(values["PreviewTime"])
    if "Countdown" in values:
        try:
            beatmap.countdown = CountdownType(_int(values["Countdown"]))
        except ValueError:
            logger.warning("Unknown countdown %r", values["Countdown"])
    if "SampleSet" in values:
        beatmap.default_sample_bank = _bank_by_name(values["SampleSet"])
    if "SampleVolume" in values:
        beatmap.default_sample_volume = _int(values["SampleVolume"])
    if "StackLeniency" in values:
        beatmap.stack_leniency = float(values["StackLeniency"])
    if "Mode" in values:
        try:
            beatmap.mode = GameMode(_int(values["Mode"]))
        except ValueError:
            logger.warning("Unknown mode %r", values["Mode"])
    if "CountdownOffset" in values:
        beatmap.countdown_offset = _int(values["CountdownOffset"])
    for key, attr in (
        ("LetterboxInBreaks", "letterbox_in_breaks"),
        ("SpecialStyle", "special_style"),
        ("WidescreenStoryboard", "widescreen_storyboard"),
        ("EpilepsyWarning", "epilepsy_warning"),
        ("SamplesMatchPlaybackRate", "samples_match_playback_rate"),
    ):
        if key in values:
            setattr(beatmap, attr, _flag(values[key]))


def _apply_editor(beatmap: Beatmap, values: dict[str, str]) -> None:
    if values.get("Bookmarks"):
        beatmap.bookmarks = [_int(b) for b in values["Bookmarks"].split(",") if b.strip()]
    if "DistanceSpacing" in values:
        beatmap.distance_spacing = float(values["DistanceSpacing"])
    if "BeatDivisor" in values:
        beatmap.beat_divisor = _int(values["BeatDivisor"])
    if "GridSize" in values:
        beatmap.grid_size = _int(values["GridSize"])
    if "TimelineZoom" in values:
        beatmap.timeline_zoom = float(values["TimelineZoom"])


_METADATA_KEYS = {
    "Title": "title",
    "TitleUnicode": "title_unicode",
    "Artist": "artist",
    "ArtistUnicode": "artist_unicode",
    "Creator": "creator",
    "Version": "version",
    "Source": "source",
    "Tags": "tags",
}


def _apply_metadata(beatmap: Beatmap, values: dict[str, str]) -> None:
    for key, attr in _METADATA_KEYS.items():
        if key in values:
            setattr(beatmap, attr, values[key])
    if "BeatmapID" in values:
        beatmap.beatmap_id = _int(values["BeatmapID"])
    if "BeatmapSetID" in values:
        beatmap.beatmap_set_id = _int(values["BeatmapSetID"])


def _apply_difficulty(beatmap: Beatmap, values: dict[str, str]) -> None:
    if "HPDrainRate" in values:
        beatmap.hp_drain_rate = float(values["HPDrainRate"])
    if "CircleSize" in values:
        beatmap.circle_size = float(values["CircleSize"])
    if "OverallDifficulty" in values:
        beatmap.overall_difficulty = float(values["OverallDifficulty"])
    # Old files without ApproachRate use the overall difficulty.
    if "ApproachRate" in values:
        beatmap.approach_rate = float(values["ApproachRate"])
    else:
        beatmap.approach_rate = beatmap.overall_difficulty
    if "SliderMultiplier" in values:
        beatmap.slider_multiplier = float(values["SliderMultiplier"])
    if "SliderTickRate" in values:
        beatmap.slider_tick_rate = float(values["SliderTickRate"])


def _apply_events(beatmap: Beatmap, lines: list[str]) -> None:
    for line in lines:
        if line[:1] in (" ", "_"):
            continue
        parts = [p.strip() for p in line.split(",")]
        kind = parts[0]
        try:
            if kind in ("0", "Background") and len(parts) >= 3:
                beatmap.background_file = parts[2].strip('"')
            elif kind in ("2", "Break") and len(parts) >= 3:
                beatmap.breaks.append(BreakPeriod(float(parts[1]), float(parts[2])))
        except ValueError:
            logger.warning("Skipping malformed event line %r", line)


def _apply_colours(beatmap: Beatmap, values: dict[str, str]) -> None:
    combos: list[tuple[int, Color]] = []
    for key, value in values.items():
        try:
            rgb = [_int(v) for v in value.split(",")]
            color = Color(*rgb[:4]) if len(rgb) >= 3 else None
        except ValueError:
            color = None
        if color is None:
            logger.warning("Skipping malformed colour %s : %s", key, value)
            continue
        match = _COMBO_RE.match(key)
        if match:
            combos.append((int(match.group(1)), color))
        else:
            beatmap.custom_colors.append(CustomColor(key, color))
    beatmap.custom_combo_colors = [c for _, c in sorted(combos, key=lambda item: item[0])]


# --- Timing points -------------------------------------------------------------------


def _apply_timing_points(beatmap: Beatmap, lines: list[str]) -> None:
    kiai = False
    for line in lines:
        parts = [p.strip() for p in line.split(",")]
        try:
            time = float(parts[0])
            beat_length = float(parts[1])
            meter = _int(parts[2]) if len(parts) > 2 and parts[2] else 4
            bank = _bank(_int(parts[3])) if len(parts) > 3 and parts[3] else SampleBank.NONE
            volume = _int(parts[5]) if len(parts) > 5 and parts[5] else 100
            if len(parts) > 6 and parts[6]:
                uninherited = _flag(parts[6])
            else:
                uninherited = beat_length >= 0
            effects = _int(parts[7]) if len(parts) > 7 and parts[7] else 0
        except (ValueError, IndexError):
            logger.warning("Skipping malformed timing point %r", line)
            continue

        if uninherited:
            beatmap.timing_points.append(
                TimingPoint(time, beat_length, meter if meter > 0 else 4, bank, volume)
            )
        else:
            sv = 100.0 / -beat_length if beat_length < 0 else 1.0
            sv = min(max(sv, MIN_SLIDER_VELOCITY), MAX_SLIDER_VELOCITY)
            beatmap.difficulty_points.append(DifficultyPoint(time, sv, bank, volume))

        line_kiai = bool(effects & EFFECT_KIAI)
        if line_kiai != kiai:
            kiai = line_kiai
            beatmap.effect_points.append(EffectPoint(time, kiai, bank, volume))


class _VelocityLookup:
    """Slider velocity multiplier in effect at a given time."""

    def __init__(self, beatmap: Beatmap):
        # Red lines reset the multiplier; a green line at the same time wins.
        events = [(tp.time, 0, 1.0) for tp in beatmap.timing_points]
        events += [(dp.time, 1, dp.slider_velocity) for dp in beatmap.difficulty_points]
        events.sort(key=lambda e: (e[0], e[1]))
        self._keys = [(t, order) for t, order, _ in events]
        self._values = [sv for _, _, sv in events]

    def at(self, time: float) -> float:
        idx = bisect.bisect_right(self._keys, (time, 1))
        return self._values[idx - 1] if idx else 1.0


# --- Hit objects ---------------------------------------------------------------------


def parse_hit_samples(hit_sound: int, sample_field: str) -> list[HitSample]:
    """Expand a ``hitSound`` bitmask and ``hitSample`` field into samples."""
    fields = sample_field.split(":") if sample_field else []

    def field_int(i: int, default: int) -> int:
        return _int(fields[i]) if len(fields) > i and fields[i] else default

    normal_bank = _bank(field_int(0, 0))
    addition_set = field_int(1, 0)
    addition_bank = _bank(addition_set) if addition_set else normal_bank
    index = field_int(2, 0)
    suffix = index if index >= 2 else None
    volume = field_int(3, 100)
    filename = fields[4] if len(fields) > 4 else ""

    if filename:
        return [HitSample(filename, normal_bank, None, volume)]
    samples = [HitSample(HitSampleDefaultName.NORMAL, normal_bank, suffix, volume)]
    for bit, name in ADDITION_BITS:
        if hit_sound & bit:
            samples.append(HitSample(name, addition_bank, suffix, volume))
    return samples


def parse_slider_path(curve: str, head: Pos, length: float | None) -> SliderPath:
    """Parse ``B|x:y|x:y`` into control points relative to *head*.

    A point repeated twice in a row closes a bezier segment; it is stored
    once, carrying the segment's path type.
    """
    tokens = curve.split("|")
    path_type = PathType.from_letter(tokens[0].strip())
    points = [PathControlPoint(Pos(0.0, 0.0), path_type)]
    pending_type = None
    for token in tokens[1:]:
        token = token.strip()
        if len(token) == 1 and token.isalpha():
            pending_type = PathType.from_letter(token)
            continue
        x, y = token.split(":")
        pos = Pos(float(x) - head.x, float(y) - head.y)
        last = points[-1]
        if last.pos == pos and pending_type is None:
            if last.path_type is None:
                last.path_type = path_type
            continue
        points.append(PathControlPoint(pos, pending_type))
        pending_type = None
    expected = length if length is not None and length > 0 else None
    return SliderPath(points, expected)


def parse_hit_object(line: str, velocity: _VelocityLookup) -> HitObject:
    parts = line.split(",")
    pos = Pos(float(parts[0]), float(parts[1]))
    start_time = float(parts[2])
    type_bits = _int(parts[3])
    hit_sound = _int(parts[4]) if len(parts) > 4 and parts[4] else 0
    new_combo = bool(type_bits & TYPE_NEW_COMBO)
    combo_offset = (type_bits >> COMBO_OFFSET_SHIFT) & COMBO_OFFSET_MASK

    if type_bits & TYPE_CIRCLE:
        kind = HitCircle(pos, new_combo, combo_offset)
        sample_field = parts[5] if len(parts) > 5 else ""
    elif type_bits & TYPE_SLIDER:
        slides = _int(parts[6]) if len(parts) > 6 else 1
        length = float(parts[7]) if len(parts) > 7 and parts[7] else None
        kind = Slider(
            pos=pos,
            path=parse_slider_path(parts[5], pos, length),
            repeat_count=max(slides - 1, 0),
            velocity=velocity.at(start_time),
            new_combo=new_combo,
            combo_offset=combo_offset,
        )
        sample_field = parts[10] if len(parts) > 10 else ""
    elif type_bits & TYPE_SPINNER:
        kind = Spinner(pos, float(parts[5]) - start_time, new_combo)
        sample_field = parts[6] if len(parts) > 6 else ""
    elif type_bits & TYPE_HOLD:
        end, _, sample_field = parts[5].partition(":")
        kind = Hold(pos.x, float(end) - start_time)
    else:
        raise ValueError(f"unknown hit object type bits {type_bits}")

    return HitObject(start_time, kind, parse_hit_samples(hit_sound, sample_field))


# --- Entry points ------------------------------------------------------------------------


def parse_beatmap(text: str) -> Beatmap:
    """Parse the text of one ``.osu`` file.

    Raises:
        OsuParseError: if the text has no ``osu file format`` header.
    """
    version, sections = split_sections(text)
    if version is None:
        raise OsuParseError("missing 'osu file format' header")

    beatmap = Beatmap(format_version=version)
    try:
        _apply_general(beatmap, _key_values(sections.get("General", [])))
        _apply_editor(beatmap, _key_values(sections.get("Editor", [])))
        _apply_metadata(beatmap, _key_values(sections.get("Metadata", [])))
        _apply_difficulty(beatmap, _key_values(sections.get("Difficulty", [])))
    except ValueError as e:
        raise OsuParseError(f"bad header value: {e}") from e
    _apply_events(beatmap, sections.get("Events", []))
    _apply_timing_points(beatmap, sections.get("TimingPoints", []))
    _apply_colours(beatmap, _key_values(sections.get("Colours", [])))

    velocity = _VelocityLookup(beatmap)
    for line in sections.get("HitObjects", []):
        try:
            beatmap.hit_objects.append(parse_hit_object(line.strip(), velocity))
        except (ValueError, IndexError) as e:
            logger.warning("Skipping malformed hit object %r: %s", line, e)

    return beatmap


def parse_beatmap_file(path: Path) -> Beatmap:
    try:
        return parse_beatmap(read_text(path))
    except OsuParseError as e:
        raise OsuParseError(f"{Path(path).name}: {e}") from e
