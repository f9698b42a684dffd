"""In-memory osu! beatmap and storyboard document model.

Dataclasses that describe one parsed ``.osu`` file (plus its optional layered
storyboard).  The text parsers produce these structures, the row flattener
consumes them, and the row reconstructors build fresh instances from table
rows.

Every string-typed enumeration that reaches storage is modelled as an
``Enum`` here and only projected to its string (or small-integer code) at the
storage boundary.  ``parse_tag`` is the single fail-loud way back.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterator


class UnknownTagError(ValueError):
    """A stored tag does not name any variant of the expected enumeration."""


def parse_tag(enum_cls: type[Enum], tag: Any) -> Any:
    """Return the member of *enum_cls* whose value is *tag*.

    Raises:
        UnknownTagError: if no member carries that value.
    """
    try:
        return enum_cls(tag)
    except ValueError:
        raise UnknownTagError(f"unknown {enum_cls.__name__}: {tag!r}") from None


# --- Enumerations --------------------------------------------------------------


class GameMode(Enum):
    OSU = 0
    TAIKO = 1
    CATCH = 2
    MANIA = 3


class CountdownType(Enum):
    NONE = 0
    NORMAL = 1
    HALF_SPEED = 2
    DOUBLE_SPEED = 3


class SampleBank(Enum):
    NONE = "None"
    NORMAL = "Normal"
    SOFT = "Soft"
    DRUM = "Drum"

    @property
    def code(self) -> int:
        return _SAMPLE_BANK_CODES.index(self)

    @classmethod
    def from_code(cls, code: int) -> "SampleBank":
        if 0 <= code < len(_SAMPLE_BANK_CODES):
            return _SAMPLE_BANK_CODES[code]
        raise UnknownTagError(f"unknown SampleBank code: {code!r}")


_SAMPLE_BANK_CODES = [SampleBank.NONE, SampleBank.NORMAL, SampleBank.SOFT, SampleBank.DRUM]


class HitSampleDefaultName(Enum):
    NORMAL = "Normal"
    WHISTLE = "Whistle"
    FINISH = "Finish"
    CLAP = "Clap"


class PathType(Enum):
    BEZIER = "Bezier"
    LINEAR = "Linear"
    CATMULL = "Catmull"
    PERFECT_CURVE = "PerfectCurve"

    @property
    def letter(self) -> str:
        return _PATH_LETTERS[self]

    @classmethod
    def from_letter(cls, letter: str) -> "PathType":
        for path_type, code in _PATH_LETTERS.items():
            if code == letter:
                return path_type
        raise UnknownTagError(f"unknown curve type letter: {letter!r}")


_PATH_LETTERS = {
    PathType.BEZIER: "B",
    PathType.LINEAR: "L",
    PathType.CATMULL: "C",
    PathType.PERFECT_CURVE: "P",
}


class ObjectType(Enum):
    CIRCLE = "circle"
    SLIDER = "slider"
    SPINNER = "spinner"
    HOLD = "hold"


class PointType(Enum):
    TIMING = "timing"
    DIFFICULTY = "difficulty"
    EFFECT = "effect"


class ColorType(Enum):
    COMBO = "combo"
    CUSTOM = "custom"


class Origin(Enum):
    TOP_LEFT = "TopLeft"
    CENTRE = "Centre"
    CENTRE_LEFT = "CentreLeft"
    TOP_RIGHT = "TopRight"
    BOTTOM_CENTRE = "BottomCentre"
    TOP_CENTRE = "TopCentre"
    CUSTOM = "Custom"
    CENTRE_RIGHT = "CentreRight"
    BOTTOM_LEFT = "BottomLeft"
    BOTTOM_RIGHT = "BottomRight"


# Numeric origin codes used by the storyboard scripting language.
ORIGIN_CODES = list(Origin)


class LoopType(Enum):
    LOOP_FOREVER = "LoopForever"
    LOOP_ONCE = "LoopOnce"


class ElementType(Enum):
    SPRITE = "sprite"
    ANIMATION = "animation"
    SAMPLE = "sample"
    VIDEO = "video"


class CommandKind(Enum):
    """The ten animatable properties of a storyboard sprite."""

    X = "x"
    Y = "y"
    SCALE = "scale"
    ROTATION = "rotation"
    ALPHA = "alpha"
    COLOR = "color"
    FLIP_H = "flip_h"
    FLIP_V = "flip_v"
    VECTOR_SCALE = "vector_scale"
    BLENDING = "blending"


# Layer names in drawing order; scripts may also refer to them by position.
LAYER_ORDER = ("Background", "Fail", "Pass", "Foreground", "Overlay", "Video")


# --- Beatmap ---------------------------------------------------------------------


@dataclass
class Pos:
    x: float = 0.0
    y: float = 0.0


@dataclass
class Color:
    red: int
    green: int
    blue: int
    alpha: int = 255


@dataclass
class CustomColor:
    """A named colour such as ``SliderTrackOverride``."""

    name: str
    color: Color


@dataclass
class HitSample:
    """One audio sample played by a hit object.

    ``name`` is either one of the four default hitsound names or the file
    name of a custom sample.
    """

    name: HitSampleDefaultName | str
    bank: SampleBank = SampleBank.NORMAL
    suffix: int | None = None  # custom sample index, only when >= 2
    volume: int = 100

    @property
    def is_file(self) -> bool:
        return isinstance(self.name, str)


@dataclass
class PathControlPoint:
    pos: Pos  # relative to the slider head
    path_type: PathType | None = None  # set on the first point of each segment


@dataclass
class SliderPath:
    control_points: list[PathControlPoint] = field(default_factory=list)
    expected_dist: float | None = None


@dataclass
class HitCircle:
    pos: Pos
    new_combo: bool = False
    combo_offset: int = 0


@dataclass
class Slider:
    pos: Pos
    path: SliderPath = field(default_factory=SliderPath)
    repeat_count: int = 0
    velocity: float = 1.0
    new_combo: bool = False
    combo_offset: int = 0


@dataclass
class Spinner:
    pos: Pos = field(default_factory=lambda: Pos(256.0, 192.0))
    duration: float = 0.0
    new_combo: bool = False


@dataclass
class Hold:
    """A mania hold note; only the horizontal position exists."""

    pos_x: float
    duration: float = 0.0


HitObjectKind = HitCircle | Slider | Spinner | Hold

_OBJECT_TYPES = {
    HitCircle: ObjectType.CIRCLE,
    Slider: ObjectType.SLIDER,
    Spinner: ObjectType.SPINNER,
    Hold: ObjectType.HOLD,
}


@dataclass
class HitObject:
    start_time: float
    kind: HitObjectKind
    samples: list[HitSample] = field(default_factory=list)

    @property
    def object_type(self) -> ObjectType:
        return _OBJECT_TYPES[type(self.kind)]


DEFAULT_BEAT_LEN = 500.0


@dataclass
class TimingPoint:
    time: float
    beat_len: float = DEFAULT_BEAT_LEN
    time_signature: int = 4
    sample_bank: SampleBank = SampleBank.NONE
    sample_volume: int = 100


@dataclass
class DifficultyPoint:
    time: float
    slider_velocity: float = 1.0
    sample_bank: SampleBank = SampleBank.NONE
    sample_volume: int = 100


@dataclass
class EffectPoint:
    time: float
    kiai: bool = False
    sample_bank: SampleBank = SampleBank.NONE
    sample_volume: int = 100


@dataclass
class BreakPeriod:
    start_time: float
    end_time: float


@dataclass
class Beatmap:
    """Complete parsed content of one ``.osu`` difficulty file."""

    format_version: int = 14
    # General
    audio_file: str = ""
    audio_lead_in: float = 0.0
    preview_time: int = -1
    default_sample_bank: SampleBank = SampleBank.NORMAL
    default_sample_volume: int = 100
    stack_leniency: float = 0.7
    mode: GameMode = GameMode.OSU
    letterbox_in_breaks: bool = False
    special_style: bool = False  # mania only
    widescreen_storyboard: bool = False
    epilepsy_warning: bool = False
    samples_match_playback_rate: bool = False
    countdown: CountdownType = CountdownType.NORMAL
    countdown_offset: int = 0
    # Editor
    bookmarks: list[int] = field(default_factory=list)
    distance_spacing: float = 1.0
    beat_divisor: int = 4
    grid_size: int = 4
    timeline_zoom: float = 1.0
    # Metadata
    title: str = ""
    title_unicode: str = ""
    artist: str = ""
    artist_unicode: str = ""
    creator: str = ""
    version: str = ""
    source: str = ""
    tags: str = ""
    beatmap_id: int = -1
    beatmap_set_id: int = -1
    # Difficulty
    hp_drain_rate: float = 5.0
    circle_size: float = 5.0
    overall_difficulty: float = 5.0
    approach_rate: float = 5.0
    slider_multiplier: float = 1.4
    slider_tick_rate: float = 1.0
    # Events
    background_file: str = ""
    breaks: list[BreakPeriod] = field(default_factory=list)
    # Control points, one independent list per kind
    timing_points: list[TimingPoint] = field(default_factory=list)
    difficulty_points: list[DifficultyPoint] = field(default_factory=list)
    effect_points: list[EffectPoint] = field(default_factory=list)
    # Colours
    custom_combo_colors: list[Color] = field(default_factory=list)
    custom_colors: list[CustomColor] = field(default_factory=list)
    hit_objects: list[HitObject] = field(default_factory=list)


# --- Storyboard ---------------------------------------------------------------------


@dataclass
class Command:
    """One keyframe segment on a single property timeline.

    Values are typed per kind: ``float`` for x/y/scale/rotation/alpha,
    ``Color`` for color, ``Pos`` for vector_scale, ``bool`` for the flips and
    blending.
    """

    easing: int
    start_time: float
    end_time: float
    start_value: Any
    end_value: Any


@dataclass
class TimelineGroup:
    x: list[Command] = field(default_factory=list)
    y: list[Command] = field(default_factory=list)
    scale: list[Command] = field(default_factory=list)
    rotation: list[Command] = field(default_factory=list)
    alpha: list[Command] = field(default_factory=list)
    color: list[Command] = field(default_factory=list)
    flip_h: list[Command] = field(default_factory=list)
    flip_v: list[Command] = field(default_factory=list)
    vector_scale: list[Command] = field(default_factory=list)
    blending: list[Command] = field(default_factory=list)

    def timeline(self, kind: CommandKind) -> list[Command]:
        return getattr(self, kind.value)

    def command_count(self) -> int:
        return sum(len(self.timeline(kind)) for kind in CommandKind)


@dataclass
class CommandLoop:
    loop_start_time: float
    total_iterations: int
    commands: TimelineGroup = field(default_factory=TimelineGroup)


@dataclass
class CommandTrigger:
    name: str
    start_time: float
    end_time: float
    group_num: int = 0
    commands: TimelineGroup = field(default_factory=TimelineGroup)


@dataclass
class Sprite:
    origin: Origin = Origin.CENTRE
    initial_pos: Pos = field(default_factory=Pos)
    timeline_group: TimelineGroup = field(default_factory=TimelineGroup)
    loops: list[CommandLoop] = field(default_factory=list)
    triggers: list[CommandTrigger] = field(default_factory=list)


@dataclass
class Animation(Sprite):
    frame_count: int = 1
    frame_delay: float = 0.0
    loop_type: LoopType = LoopType.LOOP_FOREVER


@dataclass
class StoryboardSample:
    start_time: float
    volume: int = 100


@dataclass
class Video:
    start_time: float


ElementKind = Sprite | Animation | StoryboardSample | Video


@dataclass
class Element:
    path: str
    kind: ElementKind

    @property
    def element_type(self) -> ElementType:
        # Animation subclasses Sprite, so it must be checked first.
        if isinstance(self.kind, Animation):
            return ElementType.ANIMATION
        if isinstance(self.kind, Sprite):
            return ElementType.SPRITE
        if isinstance(self.kind, StoryboardSample):
            return ElementType.SAMPLE
        return ElementType.VIDEO


@dataclass
class Layer:
    elements: list[Element] = field(default_factory=list)


@dataclass
class Storyboard:
    layers: dict[str, Layer] = field(default_factory=dict)

    def get_layer(self, name: str) -> Layer:
        if name not in LAYER_ORDER:
            raise UnknownTagError(f"unknown storyboard layer: {name!r}")
        return self.layers.setdefault(name, Layer())

    def iter_elements(self) -> Iterator[tuple[str, Element]]:
        """Yield ``(layer_name, element)`` in drawing order."""
        for name in sorted(self.layers, key=LAYER_ORDER.index):
            for element in self.layers[name].elements:
                yield name, element

    def element_count(self) -> int:
        return sum(len(layer.elements) for layer in self.layers.values())
