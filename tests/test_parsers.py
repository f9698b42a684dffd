"""Tests for the .osu and storyboard text parsers."""

from pathlib import Path

import pytest

from osu_dataset.parsers.osu_parser import (
    OsuParseError,
    parse_beatmap,
    parse_beatmap_file,
    parse_hit_samples,
    parse_slider_path,
    split_sections,
)
from osu_dataset.parsers.storyboard_parser import parse_storyboard, parse_storyboard_file
from osu_dataset.schemas.document import (
    Animation,
    Color,
    CountdownType,
    GameMode,
    HitCircle,
    HitSampleDefaultName,
    Hold,
    LoopType,
    Origin,
    PathType,
    Pos,
    SampleBank,
    Slider,
    Spinner,
    Sprite,
    StoryboardSample,
    Video,
)

FIXTURES = Path(__file__).parent / "fixtures"
OSU_SET = FIXTURES / "osu_set"
OSU_FILE = OSU_SET / "Test Artist - Test Song (Mapper) [Normal].osu"
OSB_FILE = OSU_SET / "Test Artist - Test Song (Mapper).osb"


def _osu_text(hit_objects: str, timing_points: str = "0,500,4,1,0,100,1,0") -> str:
    return (
        "osu file format v14\n\n"
        "[General]\nAudioFilename: a.mp3\nMode: 3\n\n"
        f"[TimingPoints]\n{timing_points}\n\n"
        f"[HitObjects]\n{hit_objects}\n"
    )


class TestSplitSections:
    def test_version_and_sections(self):
        version, sections = split_sections(
            "osu file format v9\n[General]\nA: 1\n// comment\n\n[Events]\n F,0,1,2,0\n"
        )
        assert version == 9
        assert sections["General"] == ["A: 1"]
        # Leading whitespace is kept for storyboard depth.
        assert sections["Events"] == [" F,0,1,2,0"]

    def test_missing_header(self):
        with pytest.raises(OsuParseError):
            parse_beatmap("[General]\nAudioFilename: a.mp3\n")


class TestBeatmapParser:
    def test_parse_fixture_header(self):
        beatmap = parse_beatmap_file(OSU_FILE)
        assert beatmap.format_version == 14
        assert beatmap.audio_file == "audio.mp3"
        assert beatmap.preview_time == 5000
        assert beatmap.countdown is CountdownType.NONE
        assert beatmap.default_sample_bank is SampleBank.SOFT
        assert beatmap.mode is GameMode.OSU
        assert beatmap.widescreen_storyboard is True
        assert beatmap.bookmarks == [1000, 2000]
        assert beatmap.grid_size == 32
        assert beatmap.title == "Test Song"
        assert beatmap.version == "Normal"
        assert beatmap.beatmap_set_id == 1234
        assert beatmap.approach_rate == 7.0
        assert beatmap.slider_multiplier == 1.4
        assert beatmap.background_file == "bg.jpg"
        assert [(b.start_time, b.end_time) for b in beatmap.breaks] == [(10000.0, 15000.0)]

    def test_parse_fixture_colours(self):
        beatmap = parse_beatmap_file(OSU_FILE)
        assert beatmap.custom_combo_colors == [Color(255, 128, 0), Color(0, 200, 255)]
        assert len(beatmap.custom_colors) == 1
        assert beatmap.custom_colors[0].name == "SliderBorder"
        assert beatmap.custom_colors[0].color == Color(10, 20, 30)

    def test_timing_points_split_by_kind(self):
        beatmap = parse_beatmap_file(OSU_FILE)
        assert [(tp.time, tp.beat_len, tp.time_signature) for tp in beatmap.timing_points] == [
            (0.0, 500.0, 4),
            (4000.0, 500.0, 3),
        ]
        assert beatmap.timing_points[0].sample_bank is SampleBank.SOFT
        assert beatmap.timing_points[0].sample_volume == 80
        assert len(beatmap.difficulty_points) == 1
        assert beatmap.difficulty_points[0].time == 2000.0
        assert beatmap.difficulty_points[0].slider_velocity == pytest.approx(1.5)
        # Effect points only where kiai toggles
        assert [(ep.time, ep.kiai) for ep in beatmap.effect_points] == [
            (2000.0, True),
            (4000.0, False),
        ]

    def test_hit_objects(self):
        beatmap = parse_beatmap_file(OSU_FILE)
        circle, slider, spinner = beatmap.hit_objects

        assert isinstance(circle.kind, HitCircle)
        assert circle.start_time == 1000.0
        assert circle.kind.pos == Pos(256.0, 192.0)
        assert circle.kind.new_combo is True

        assert isinstance(slider.kind, Slider)
        assert slider.kind.repeat_count == 1
        assert slider.kind.velocity == pytest.approx(1.5)
        assert slider.kind.path.expected_dist == 150.0
        points = slider.kind.path.control_points
        assert [p.pos for p in points] == [Pos(0.0, 0.0), Pos(100.0, 0.0), Pos(200.0, 100.0)]
        # The doubled point marks a new segment.
        assert [p.path_type for p in points] == [PathType.BEZIER, PathType.BEZIER, None]
        assert [s.name for s in slider.samples] == [
            HitSampleDefaultName.NORMAL,
            HitSampleDefaultName.WHISTLE,
        ]

        assert isinstance(spinner.kind, Spinner)
        assert spinner.kind.duration == 1000.0
        assert spinner.kind.new_combo is True

    def test_combo_offset_bits(self):
        beatmap = parse_beatmap(_osu_text("10,20,100,37,0,0:0:0:0:"))
        circle = beatmap.hit_objects[0].kind
        assert circle.new_combo is True
        assert circle.combo_offset == 2

    def test_hold_note(self):
        beatmap = parse_beatmap(_osu_text("64,192,1000,128,0,1500:0:0:0:0:"))
        hold = beatmap.hit_objects[0].kind
        assert isinstance(hold, Hold)
        assert hold.pos_x == 64.0
        assert hold.duration == 500.0

    def test_slider_velocity_follows_red_line_reset(self):
        beatmap = parse_beatmap(_osu_text(
            "0,0,3000,2,0,L|100:0,1,100",
            timing_points="0,500,4,1,0,100,1,0\n1000,-50,4,1,0,100,0,0\n2000,400,4,1,0,100,1,0",
        ))
        assert beatmap.hit_objects[0].kind.velocity == 1.0

    def test_malformed_hit_object_is_skipped(self):
        beatmap = parse_beatmap(_osu_text("256,192,1000,1,0\nnot,a,hit,object"))
        assert len(beatmap.hit_objects) == 1


class TestHitSamples:
    def test_normal_always_first(self):
        samples = parse_hit_samples(2 | 8, "2:3:0:60:")
        assert [s.name for s in samples] == [
            HitSampleDefaultName.NORMAL,
            HitSampleDefaultName.WHISTLE,
            HitSampleDefaultName.CLAP,
        ]
        assert samples[0].bank is SampleBank.SOFT
        assert samples[1].bank is SampleBank.DRUM
        assert all(s.volume == 60 for s in samples)

    def test_custom_index_becomes_suffix(self):
        samples = parse_hit_samples(0, "1:0:3:100:")
        assert samples[0].suffix == 3
        assert parse_hit_samples(0, "1:0:1:100:")[0].suffix is None

    def test_filename_sample(self):
        samples = parse_hit_samples(4, "1:0:0:70:kick.wav")
        assert len(samples) == 1
        assert samples[0].name == "kick.wav"
        assert samples[0].is_file

    def test_empty_field(self):
        samples = parse_hit_samples(0, "")
        assert len(samples) == 1
        assert samples[0].volume == 100


class TestSliderPath:
    def test_relative_points(self):
        path = parse_slider_path("P|150:150|200:100", Pos(100.0, 100.0), 120.0)
        assert [p.pos for p in path.control_points] == [
            Pos(0.0, 0.0), Pos(50.0, 50.0), Pos(100.0, 0.0),
        ]
        assert path.control_points[0].path_type is PathType.PERFECT_CURVE
        assert path.expected_dist == 120.0

    def test_zero_length_means_unset(self):
        path = parse_slider_path("L|10:0", Pos(0.0, 0.0), 0.0)
        assert path.expected_dist is None


class TestStoryboardParser:
    def test_embedded_storyboard(self):
        storyboard = parse_storyboard_file(OSU_FILE)
        elements = list(storyboard.iter_elements())
        assert len(elements) == 1
        layer, element = elements[0]
        assert layer == "Background"
        assert element.path == "sb/star.png"
        assert element.kind.origin is Origin.CENTRE
        fades = element.kind.timeline_group.alpha
        assert len(fades) == 1
        assert (fades[0].start_value, fades[0].end_value) == (0.0, 1.0)

    def test_standalone_storyboard(self):
        storyboard = parse_storyboard_file(OSB_FILE)
        elements = list(storyboard.iter_elements())
        assert [(layer, e.path) for layer, e in elements] == [
            ("Background", "sb/anim.png"),
            ("Background", "sb/hit.wav"),
            ("Foreground", "sb/line.png"),
        ]

        anim = elements[0][1].kind
        assert isinstance(anim, Animation)
        assert anim.frame_count == 4
        assert anim.frame_delay == 50.0
        assert anim.loop_type is LoopType.LOOP_ONCE
        scale = anim.timeline_group.scale[0]
        assert (scale.start_time, scale.end_time, scale.start_value) == (0.0, 0.0, 0.5)

        sample = elements[1][1].kind
        assert isinstance(sample, StoryboardSample)
        assert sample.start_time == 500.0
        assert sample.volume == 80

        line = elements[2][1].kind
        assert line.origin is Origin.TOP_LEFT
        assert [(c.start_value, c.end_value) for c in line.timeline_group.x] == [(0.0, 100.0)]
        assert len(line.loops) == 1
        assert line.loops[0].total_iterations == 2
        assert len(line.loops[0].commands.alpha) == 1
        # Loop commands do not leak into the sprite's own timeline.
        assert line.timeline_group.alpha == []

    def test_multi_value_chain(self):
        storyboard = parse_storyboard(
            "[Events]\nSprite,Foreground,Centre,\"a.png\",0,0\n F,0,0,100,0,1,0\n"
        )
        fades = next(storyboard.iter_elements())[1].kind.timeline_group.alpha
        assert [(c.start_time, c.end_time, c.start_value, c.end_value) for c in fades] == [
            (0.0, 100.0, 0.0, 1.0),
            (100.0, 200.0, 1.0, 0.0),
        ]

    def test_variables_and_parameters(self):
        storyboard = parse_storyboard(
            "[Variables]\n$s=Sprite,Pass,Centre\n"
            "[Events]\n$s,\"b.png\",320,240\n P,0,0,1000,H\n P,0,0,,A\n C,0,0,0,255,0,0\n"
        )
        layer, element = next(storyboard.iter_elements())
        group = element.kind.timeline_group
        assert layer == "Pass"
        assert len(group.flip_h) == 1
        assert len(group.blending) == 1
        assert group.color[0].start_value == Color(255, 0, 0)

    def test_video_and_numeric_layer(self):
        storyboard = parse_storyboard(
            "[Events]\nVideo,-200,\"intro.mp4\"\nSprite,3,0,\"c.png\",0,0\n"
        )
        by_layer = {layer: e for layer, e in storyboard.iter_elements()}
        assert isinstance(by_layer["Video"].kind, Video)
        assert by_layer["Video"].kind.start_time == -200.0
        sprite = by_layer["Foreground"].kind
        assert isinstance(sprite, Sprite)
        assert sprite.origin is Origin.TOP_LEFT

    def test_commands_after_non_sprite_are_ignored(self):
        storyboard = parse_storyboard(
            "[Events]\nSprite,Foreground,Centre,\"a.png\",0,0\n"
            "Sample,0,0,\"s.wav\",100\n F,0,0,100,1\n"
        )
        sprite = dict(storyboard.iter_elements())["Foreground"].kind
        assert sprite.timeline_group.alpha == []

    def test_malformed_command_is_skipped(self):
        storyboard = parse_storyboard(
            "[Events]\nSprite,Foreground,Centre,\"a.png\",0,0\n Q,0,0,1,1\n F,0,0,100,1\n"
        )
        sprite = next(storyboard.iter_elements())[1].kind
        assert len(sprite.timeline_group.alpha) == 1
