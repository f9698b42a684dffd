"""Rebuild a layered ``Storyboard`` from element, command, loop and trigger rows."""

import logging
from collections import defaultdict

from osu_dataset.codec.beatmap import ReconstructionIssue
from osu_dataset.schemas.document import (
    Animation,
    Color,
    Command,
    CommandKind,
    CommandLoop,
    CommandTrigger,
    Element,
    ElementType,
    LoopType,
    Origin,
    Pos,
    Sprite,
    Storyboard,
    StoryboardSample,
    TimelineGroup,
    Video,
    parse_tag,
)
from osu_dataset.schemas.rows import FileRows, StoryboardCommandRow, StoryboardElementRow

logger = logging.getLogger(__name__)

DEFAULT_FRAME_DELAY = 100.0


def parse_origin(text: str) -> Origin:
    """Map a stored origin name to ``Origin``; unknown names become ``Centre``."""
    try:
        return Origin(text.replace("Center", "Centre"))
    except ValueError:
        if text:
            logger.warning("Unknown origin %r, using Centre", text)
        return Origin.CENTRE


def _parse_bool(text: str) -> bool:
    if text == "true":
        return True
    if text == "false":
        return False
    raise ValueError(f"not a boolean: {text!r}")


def _parse_color(text: str) -> Color:
    parts = text.split(",")
    if len(parts) != 3:
        raise ValueError(f"not an r,g,b triple: {text!r}")
    r, g, b = (int(float(p)) for p in parts)
    return Color(r, g, b)


def _parse_vector(text: str) -> Pos:
    parts = text.split(",")
    if len(parts) != 2:
        raise ValueError(f"not an x,y pair: {text!r}")
    return Pos(float(parts[0]), float(parts[1]))


_VALUE_PARSERS = {
    CommandKind.X: float,
    CommandKind.Y: float,
    CommandKind.SCALE: float,
    CommandKind.ROTATION: float,
    CommandKind.ALPHA: float,
    CommandKind.COLOR: _parse_color,
    CommandKind.FLIP_H: _parse_bool,
    CommandKind.FLIP_V: _parse_bool,
    CommandKind.VECTOR_SCALE: _parse_vector,
    # Only the placeholder is ever stored; blending always means additive.
    CommandKind.BLENDING: lambda _text: True,
}


def parse_command_value(kind: CommandKind, text: str):
    return _VALUE_PARSERS[kind](text)


def _add_command(group: TimelineGroup, row: StoryboardCommandRow) -> None:
    kind = parse_tag(CommandKind, row.command_type)
    group.timeline(kind).append(Command(
        easing=row.easing,
        start_time=row.start_time,
        end_time=row.end_time,
        start_value=parse_command_value(kind, row.start_value),
        end_value=parse_command_value(kind, row.end_value),
    ))


def _element(row: StoryboardElementRow):
    element_type = parse_tag(ElementType, row.element_type)
    if element_type is ElementType.SPRITE:
        kind = Sprite(parse_origin(row.origin), Pos(row.initial_pos_x, row.initial_pos_y))
    elif element_type is ElementType.ANIMATION:
        kind = Animation(
            origin=parse_origin(row.origin),
            initial_pos=Pos(row.initial_pos_x, row.initial_pos_y),
            frame_count=row.frame_count if row.frame_count is not None else 1,
            frame_delay=row.frame_delay if row.frame_delay is not None else DEFAULT_FRAME_DELAY,
            loop_type=(
                parse_tag(LoopType, row.loop_type) if row.loop_type else LoopType.LOOP_FOREVER
            ),
        )
    elif element_type is ElementType.SAMPLE:
        kind = StoryboardSample(start_time=0.0)
    else:
        kind = Video(start_time=0.0)
    return Element(row.element_path, kind)


def reconstruct_storyboard(rows: FileRows) -> tuple[Storyboard, list[ReconstructionIssue]]:
    """Rebuild the storyboard of one ``(source_file, is_embedded)`` index space.

    Commands of each kind are ordered by start time; loops and triggers by
    their index columns.  An element with an unknown type or layer is
    skipped along with its children; a bad command row only drops that
    command.
    """
    storyboard = Storyboard()
    issues: list[ReconstructionIssue] = []

    commands = defaultdict(list)
    for c in rows.storyboard_commands:
        commands[c.element_index].append(c)
    loops = defaultdict(list)
    for lp in rows.storyboard_loops:
        loops[lp.element_index].append(lp)
    triggers = defaultdict(list)
    for tr in rows.storyboard_triggers:
        triggers[tr.element_index].append(tr)

    def skip(table: str, key: str, exc: Exception) -> None:
        issue = ReconstructionIssue(table, key, str(exc))
        logger.warning("Skipping %s", issue)
        issues.append(issue)

    for row in sorted(rows.storyboard_elements, key=lambda r: r.element_index):
        try:
            element = _element(row)
            layer = storyboard.get_layer(row.layer_name)
        except ValueError as e:
            skip("storyboard_elements", str(row.element_index), e)
            continue

        sprite = element.kind
        if isinstance(sprite, Sprite):
            for c in sorted(commands[row.element_index], key=lambda c: (c.start_time, c.end_time)):
                try:
                    _add_command(sprite.timeline_group, c)
                except ValueError as e:
                    skip("storyboard_commands", f"{row.element_index}:{c.command_type}", e)
            for lp in sorted(loops[row.element_index], key=lambda r: r.loop_index):
                sprite.loops.append(CommandLoop(lp.loop_start_time, lp.loop_count))
            for tr in sorted(triggers[row.element_index], key=lambda r: r.trigger_index):
                sprite.triggers.append(CommandTrigger(
                    tr.trigger_name, tr.trigger_start_time, tr.trigger_end_time, tr.group_number,
                ))

        layer.elements.append(element)

    return storyboard, issues
