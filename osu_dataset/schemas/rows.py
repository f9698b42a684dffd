"""Row types for the twelve dataset tables.

Each dataclass mirrors one Parquet table column-for-column.  Rows are linked
only by natural keys: ``(folder_id, osu_file)`` (or ``source_file`` for the
storyboard tables) plus an explicit positional index column.
"""

from dataclasses import dataclass, field, fields


@dataclass
class BeatmapRow:
    folder_id: str
    osu_file: str
    format_version: int
    audio_file: str
    audio_lead_in: float
    preview_time: int
    # General
    default_sample_bank: int  # 0=None, 1=Normal, 2=Soft, 3=Drum
    default_sample_volume: int
    stack_leniency: float
    mode: int
    letterbox_in_breaks: bool
    special_style: bool
    widescreen_storyboard: bool
    epilepsy_warning: bool
    samples_match_playback_rate: bool
    countdown: int
    countdown_offset: int
    # Editor
    bookmarks: str  # comma-separated ints
    distance_spacing: float
    beat_divisor: int
    grid_size: int
    timeline_zoom: float
    # Metadata
    title: str
    title_unicode: str
    artist: str
    artist_unicode: str
    creator: str
    version: str
    source: str
    tags: str
    beatmap_id: int
    beatmap_set_id: int
    # Difficulty
    hp_drain_rate: float
    circle_size: float
    overall_difficulty: float
    approach_rate: float
    slider_multiplier: float
    slider_tick_rate: float
    # Events
    background_file: str
    audio_path: str
    background_path: str


@dataclass
class HitObjectRow:
    folder_id: str
    osu_file: str
    index: int
    start_time: float
    object_type: str
    pos_x: int | None
    pos_y: int | None
    new_combo: bool
    combo_offset: int
    curve_type: str | None = None
    slides: int | None = None
    length: float | None = None
    end_time: float | None = None  # spinner/hold duration


@dataclass
class TimingPointRow:
    folder_id: str
    osu_file: str
    time: float
    point_type: str
    beat_length: float | None = None
    time_signature: str | None = None
    slider_velocity: float | None = None
    kiai: bool | None = None
    sample_bank: str | None = None
    sample_volume: int | None = None


@dataclass
class StoryboardElementRow:
    folder_id: str
    source_file: str
    element_index: int
    layer_name: str
    element_path: str
    element_type: str
    origin: str
    initial_pos_x: float
    initial_pos_y: float
    frame_count: int | None = None
    frame_delay: float | None = None
    loop_type: str | None = None
    is_embedded: bool = False


@dataclass
class StoryboardCommandRow:
    folder_id: str
    source_file: str
    element_index: int
    command_type: str
    start_time: float
    end_time: float
    start_value: str
    end_value: str
    easing: int
    is_embedded: bool = False


@dataclass
class SliderControlPointRow:
    folder_id: str
    osu_file: str
    hit_object_index: int
    point_index: int
    pos_x: float
    pos_y: float
    path_type: str | None = None


@dataclass
class SliderDataRow:
    folder_id: str
    osu_file: str
    hit_object_index: int
    repeat_count: int
    velocity: float
    expected_dist: float | None = None


@dataclass
class BreakRow:
    folder_id: str
    osu_file: str
    start_time: float
    end_time: float


@dataclass
class ComboColorRow:
    folder_id: str
    osu_file: str
    color_index: int
    color_type: str
    custom_name: str | None
    red: int
    green: int
    blue: int


@dataclass
class HitSampleRow:
    folder_id: str
    osu_file: str
    hit_object_index: int
    sample_index: int
    name: str
    bank: str
    suffix: str | None
    volume: int


@dataclass
class StoryboardLoopRow:
    folder_id: str
    source_file: str
    element_index: int
    loop_index: int
    loop_start_time: float
    loop_count: int
    is_embedded: bool = False


@dataclass
class StoryboardTriggerRow:
    folder_id: str
    source_file: str
    element_index: int
    trigger_index: int
    trigger_name: str
    trigger_start_time: float
    trigger_end_time: float
    group_number: int
    is_embedded: bool = False


def row_field_names(row_type: type) -> list[str]:
    return [f.name for f in fields(row_type)]


@dataclass
class FileRows:
    """Row sets scoped to one beatmap file (or one whole partition)."""

    beatmaps: list[BeatmapRow] = field(default_factory=list)
    hit_objects: list[HitObjectRow] = field(default_factory=list)
    timing_points: list[TimingPointRow] = field(default_factory=list)
    storyboard_elements: list[StoryboardElementRow] = field(default_factory=list)
    storyboard_commands: list[StoryboardCommandRow] = field(default_factory=list)
    slider_control_points: list[SliderControlPointRow] = field(default_factory=list)
    slider_data: list[SliderDataRow] = field(default_factory=list)
    breaks: list[BreakRow] = field(default_factory=list)
    combo_colors: list[ComboColorRow] = field(default_factory=list)
    hit_samples: list[HitSampleRow] = field(default_factory=list)
    storyboard_loops: list[StoryboardLoopRow] = field(default_factory=list)
    storyboard_triggers: list[StoryboardTriggerRow] = field(default_factory=list)

    def extend(self, other: "FileRows") -> None:
        for f in fields(self):
            getattr(self, f.name).extend(getattr(other, f.name))

    def for_beatmap(self, osu_file: str) -> "FileRows":
        """Return the beatmap-side rows belonging to *osu_file*."""

        def keep(rows):
            return [r for r in rows if r.osu_file == osu_file]

        return FileRows(
            beatmaps=keep(self.beatmaps),
            hit_objects=keep(self.hit_objects),
            timing_points=keep(self.timing_points),
            slider_control_points=keep(self.slider_control_points),
            slider_data=keep(self.slider_data),
            breaks=keep(self.breaks),
            combo_colors=keep(self.combo_colors),
            hit_samples=keep(self.hit_samples),
        )

    def for_storyboard(self, source_file: str, is_embedded: bool) -> "FileRows":
        """Return the storyboard rows of one ``(source_file, is_embedded)`` index space."""

        def keep(rows):
            return [
                r for r in rows
                if r.source_file == source_file and r.is_embedded == is_embedded
            ]

        return FileRows(
            storyboard_elements=keep(self.storyboard_elements),
            storyboard_commands=keep(self.storyboard_commands),
            storyboard_loops=keep(self.storyboard_loops),
            storyboard_triggers=keep(self.storyboard_triggers),
        )

    def storyboard_sources(self, is_embedded: bool) -> list[str]:
        return sorted({
            r.source_file for r in self.storyboard_elements if r.is_embedded == is_embedded
        })

    def row_counts(self) -> dict[str, int]:
        return {f.name: len(getattr(self, f.name)) for f in fields(self)}
