"""Tests for flattening beatmaps and storyboards into rows."""

import pytest

from osu_dataset.codec.encoder import (
    BLENDING_PLACEHOLDER,
    NoHitObjectsError,
    asset_path,
    flatten_beatmap,
    flatten_storyboard,
    format_command_value,
    format_number,
)
from osu_dataset.schemas.document import (
    Beatmap,
    Color,
    Command,
    CommandKind,
    CommandLoop,
    CommandTrigger,
    CustomColor,
    DifficultyPoint,
    EffectPoint,
    Element,
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
    Sprite,
    Storyboard,
    StoryboardSample,
    TimingPoint,
)


def _make_beatmap(*hit_objects: HitObject) -> Beatmap:
    beatmap = Beatmap(audio_file="audio.mp3", background_file="bg.jpg", title="Song")
    beatmap.hit_objects = list(hit_objects) or [HitObject(1000.0, HitCircle(Pos(256.0, 192.0)))]
    return beatmap


def _make_slider() -> HitObject:
    path = SliderPath(
        control_points=[
            PathControlPoint(Pos(0.0, 0.0), PathType.BEZIER),
            PathControlPoint(Pos(50.0, 25.0)),
            PathControlPoint(Pos(100.0, 0.0)),
        ],
        expected_dist=140.0,
    )
    slider = Slider(Pos(100.0, 100.0), path, repeat_count=2, velocity=1.5, new_combo=True)
    return HitObject(2000.0, slider, [HitSample(HitSampleDefaultName.NORMAL)])


class TestFormatting:
    def test_format_number(self):
        assert format_number(1000.0) == "1000"
        assert format_number(0.5) == "0.5"
        assert format_number(-2) == "-2"

    def test_command_values(self):
        assert format_command_value(CommandKind.ALPHA, 1.0) == "1"
        assert format_command_value(CommandKind.COLOR, Color(255, 0, 10)) == "255,0,10"
        assert format_command_value(CommandKind.VECTOR_SCALE, Pos(1.5, 2.0)) == "1.5,2"
        assert format_command_value(CommandKind.FLIP_H, True) == "true"
        assert format_command_value(CommandKind.FLIP_V, False) == "false"

    def test_blending_placeholder(self):
        assert format_command_value(CommandKind.BLENDING, True) == BLENDING_PLACEHOLDER
        assert format_command_value(CommandKind.BLENDING, False) == BLENDING_PLACEHOLDER

    def test_asset_path(self):
        assert asset_path("123 Song", "audio.mp3") == "assets/123 Song/audio.mp3"
        assert asset_path("123 Song", "") == ""


class TestFlattenBeatmap:
    def test_circle(self):
        circle = HitObject(1000.0, HitCircle(Pos(256.0, 192.0), new_combo=True))
        rows = flatten_beatmap(_make_beatmap(circle), "f", "a.osu")

        assert len(rows.beatmaps) == 1
        assert rows.beatmaps[0].audio_path == "assets/f/audio.mp3"
        assert rows.beatmaps[0].background_path == "assets/f/bg.jpg"
        assert len(rows.hit_objects) == 1
        row = rows.hit_objects[0]
        assert (row.index, row.object_type, row.start_time) == (0, "circle", 1000.0)
        assert (row.pos_x, row.pos_y, row.new_combo) == (256, 192, True)
        assert row.curve_type is None
        assert rows.slider_data == []

    def test_slider(self):
        rows = flatten_beatmap(_make_beatmap(_make_slider()), "f", "a.osu")

        assert len(rows.hit_objects) == 1
        row = rows.hit_objects[0]
        assert row.object_type == "slider"
        assert row.curve_type == "Bezier"
        assert row.slides == 2
        assert row.length == 140.0

        assert len(rows.slider_data) == 1
        data = rows.slider_data[0]
        assert (data.hit_object_index, data.repeat_count, data.velocity) == (0, 2, 1.5)

        assert [cp.point_index for cp in rows.slider_control_points] == [0, 1, 2]
        assert all(cp.hit_object_index == 0 for cp in rows.slider_control_points)
        assert [cp.path_type for cp in rows.slider_control_points] == ["Bezier", None, None]
        assert (rows.slider_control_points[1].pos_x, rows.slider_control_points[1].pos_y) == (50.0, 25.0)

    def test_slider_without_length(self):
        slider = _make_slider()
        slider.kind.path.expected_dist = None
        rows = flatten_beatmap(_make_beatmap(slider), "f", "a.osu")
        assert rows.hit_objects[0].length == 0.0
        assert rows.slider_data[0].expected_dist is None

    def test_positions_truncate(self):
        circle = HitObject(0.0, HitCircle(Pos(10.9, -3.7)))
        row = flatten_beatmap(_make_beatmap(circle), "f", "a.osu").hit_objects[0]
        assert (row.pos_x, row.pos_y) == (10, -3)

    def test_spinner_and_hold(self):
        spinner = HitObject(3000.0, Spinner(duration=1500.0, new_combo=True))
        hold = HitObject(4000.0, Hold(64.0, duration=250.0))
        rows = flatten_beatmap(_make_beatmap(spinner, hold), "f", "a.osu")

        spin_row, hold_row = rows.hit_objects
        assert spin_row.end_time == 1500.0
        assert (spin_row.pos_x, spin_row.pos_y) == (256, 192)
        assert hold_row.end_time == 250.0
        assert hold_row.pos_x == 64
        assert hold_row.pos_y is None
        assert hold_row.new_combo is False

    def test_hit_samples(self):
        circle = HitObject(0.0, HitCircle(Pos()), [
            HitSample(HitSampleDefaultName.NORMAL, SampleBank.SOFT, None, 80),
            HitSample(HitSampleDefaultName.CLAP, SampleBank.DRUM, 3, 80),
            HitSample("kick.wav", SampleBank.NORMAL, None, 50),
        ])
        rows = flatten_beatmap(_make_beatmap(circle), "f", "a.osu")
        assert [(s.sample_index, s.name, s.bank, s.suffix) for s in rows.hit_samples] == [
            (0, "Normal", "Soft", None),
            (1, "Clap", "Drum", "3"),
            (2, "kick.wav", "Normal", None),
        ]

    def test_timing_rows(self):
        beatmap = _make_beatmap()
        beatmap.timing_points = [TimingPoint(0.0, 400.0, 3, SampleBank.SOFT, 70)]
        beatmap.difficulty_points = [DifficultyPoint(1000.0, 1.25)]
        beatmap.effect_points = [EffectPoint(2000.0, True)]
        rows = flatten_beatmap(beatmap, "f", "a.osu")

        by_type = {r.point_type: r for r in rows.timing_points}
        assert set(by_type) == {"timing", "difficulty", "effect"}
        timing = by_type["timing"]
        assert (timing.beat_length, timing.time_signature) == (400.0, "3")
        assert (timing.sample_bank, timing.sample_volume) == ("Soft", 70)
        assert timing.slider_velocity is None and timing.kiai is None
        assert by_type["difficulty"].slider_velocity == 1.25
        assert by_type["difficulty"].beat_length is None
        assert by_type["effect"].kiai is True

    def test_colours(self):
        beatmap = _make_beatmap()
        beatmap.custom_combo_colors = [Color(1, 2, 3), Color(4, 5, 6)]
        beatmap.custom_colors = [CustomColor("SliderBorder", Color(7, 8, 9))]
        rows = flatten_beatmap(beatmap, "f", "a.osu")
        assert [(c.color_type, c.color_index, c.custom_name) for c in rows.combo_colors] == [
            ("combo", 0, None),
            ("combo", 1, None),
            ("custom", 0, "SliderBorder"),
        ]

    def test_no_hit_objects(self):
        beatmap = _make_beatmap()
        beatmap.hit_objects = []
        with pytest.raises(NoHitObjectsError):
            flatten_beatmap(beatmap, "f", "a.osu")

    def test_rows_carry_keys(self):
        rows = flatten_beatmap(_make_beatmap(_make_slider()), "123 Song", "x.osu")
        for table in (rows.beatmaps, rows.hit_objects, rows.slider_data, rows.slider_control_points):
            assert all((r.folder_id, r.osu_file) == ("123 Song", "x.osu") for r in table)


def _make_storyboard(*paths: str) -> Storyboard:
    storyboard = Storyboard()
    layer = storyboard.get_layer("Foreground")
    for path in paths:
        sprite = Sprite(initial_pos=Pos(320.0, 240.0))
        sprite.timeline_group.alpha.append(Command(0, 0.0, 1000.0, 0.0, 1.0))
        layer.elements.append(Element(path, sprite))
    return storyboard


class TestFlattenStoryboard:
    def test_element_and_commands(self):
        storyboard = _make_storyboard("a.png")
        sprite = storyboard.layers["Foreground"].elements[0].kind
        sprite.timeline_group.color.append(Command(1, 0.0, 500.0, Color(255, 0, 0), Color(0, 0, 255)))
        rows = flatten_storyboard(storyboard, "f", "s.osb", is_embedded=False)

        element = rows.storyboard_elements[0]
        assert (element.element_index, element.layer_name, element.element_type) == (0, "Foreground", "sprite")
        assert (element.initial_pos_x, element.initial_pos_y) == (320.0, 240.0)
        assert element.frame_count is None

        commands = {c.command_type: c for c in rows.storyboard_commands}
        assert commands["alpha"].start_value == "0"
        assert commands["alpha"].end_value == "1"
        assert commands["color"].start_value == "255,0,0"
        assert commands["color"].easing == 1

    def test_index_resets_per_file(self):
        first = flatten_storyboard(_make_storyboard("a.png", "b.png"), "f", "one.osb", False)
        second = flatten_storyboard(_make_storyboard("c.png", "d.png"), "f", "two.osb", False)
        assert [r.element_index for r in first.storyboard_elements] == [0, 1]
        assert [r.element_index for r in second.storyboard_elements] == [0, 1]

    def test_index_spans_layers(self):
        storyboard = _make_storyboard("fg.png")
        storyboard.get_layer("Background").elements.append(Element("bg.png", Sprite()))
        rows = flatten_storyboard(storyboard, "f", "s.osb", False)
        assert [(r.element_index, r.element_path) for r in rows.storyboard_elements] == [
            (0, "bg.png"), (1, "fg.png"),
        ]

    def test_embedded_flag(self):
        rows = flatten_storyboard(_make_storyboard("a.png"), "f", "a.osu", is_embedded=True)
        assert all(r.is_embedded for r in rows.storyboard_elements)
        assert all(r.is_embedded for r in rows.storyboard_commands)

    def test_sample_element(self):
        storyboard = Storyboard()
        storyboard.get_layer("Background").elements.append(Element("hit.wav", StoryboardSample(500.0, 80)))
        rows = flatten_storyboard(storyboard, "f", "s.osb", False)
        row = rows.storyboard_elements[0]
        assert (row.element_type, row.origin) == ("sample", "")
        assert (row.initial_pos_x, row.initial_pos_y) == (0.0, 0.0)
        assert rows.storyboard_commands == []

    def test_loops_and_triggers_store_headers(self):
        storyboard = _make_storyboard("a.png")
        sprite = storyboard.layers["Foreground"].elements[0].kind
        loop = CommandLoop(100.0, 3)
        loop.commands.alpha.append(Command(0, 0.0, 10.0, 1.0, 0.0))
        sprite.loops.append(loop)
        sprite.triggers.append(CommandTrigger("HitSoundClap", 0.0, 5000.0, 1))
        rows = flatten_storyboard(storyboard, "f", "s.osb", False)

        assert [(lp.loop_index, lp.loop_start_time, lp.loop_count) for lp in rows.storyboard_loops] == [
            (0, 100.0, 3),
        ]
        trigger = rows.storyboard_triggers[0]
        assert (trigger.trigger_name, trigger.trigger_end_time, trigger.group_number) == (
            "HitSoundClap", 5000.0, 1,
        )
        # Only the sprite's own alpha command becomes a row.
        assert len(rows.storyboard_commands) == 1
