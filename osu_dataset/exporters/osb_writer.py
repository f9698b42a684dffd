"""Encode a ``Storyboard`` back into storyboard script text."""

from pathlib import Path

from osu_dataset.codec.encoder import format_command_value
from osu_dataset.schemas.document import (
    Animation,
    Command,
    CommandKind,
    Element,
    Sprite,
    Storyboard,
    TimelineGroup,
)

# Layers written unconditionally, with their header comments.
_LAYER_HEADERS = (
    ("Background", "//Storyboard Layer 0 (Background)"),
    ("Fail", "//Storyboard Layer 1 (Fail)"),
    ("Pass", "//Storyboard Layer 2 (Pass)"),
    ("Foreground", "//Storyboard Layer 3 (Foreground)"),
)
_OVERLAY_HEADER = "//Storyboard Layer 4 (Overlay)"

_COMMAND_CODES = {
    CommandKind.X: "MX",
    CommandKind.Y: "MY",
    CommandKind.SCALE: "S",
    CommandKind.ROTATION: "R",
    CommandKind.ALPHA: "F",
    CommandKind.COLOR: "C",
    CommandKind.VECTOR_SCALE: "V",
}

_PARAMETER_CODES = {
    CommandKind.FLIP_H: "H",
    CommandKind.FLIP_V: "V",
    CommandKind.BLENDING: "A",
}


def format_command(kind: CommandKind, cmd: Command) -> str:
    start, end = int(cmd.start_time), int(cmd.end_time)
    if kind in _PARAMETER_CODES:
        end_text = "" if start == end else str(end)
        return f"P,{cmd.easing},{start},{end_text},{_PARAMETER_CODES[kind]}"
    start_value = format_command_value(kind, cmd.start_value)
    end_value = format_command_value(kind, cmd.end_value)
    values = start_value if start_value == end_value else f"{start_value},{end_value}"
    return f"{_COMMAND_CODES[kind]},{cmd.easing},{start},{end},{values}"


def _group_lines(group: TimelineGroup, indent: str) -> list[str]:
    return [
        f"{indent}{format_command(kind, cmd)}"
        for kind in CommandKind
        for cmd in group.timeline(kind)
    ]


def _element_lines(layer_name: str, element: Element) -> list[str]:
    sprite = element.kind
    if not isinstance(sprite, Sprite):
        return []
    x, y = int(sprite.initial_pos.x), int(sprite.initial_pos.y)
    origin = sprite.origin.value
    if isinstance(sprite, Animation):
        header = (
            f'Animation,{layer_name},{origin},"{element.path}",{x},{y},'
            f"{sprite.frame_count},{int(sprite.frame_delay)},{sprite.loop_type.value}"
        )
    else:
        header = f'Sprite,{layer_name},{origin},"{element.path}",{x},{y}'

    lines = [header]
    lines += _group_lines(sprite.timeline_group, " ")
    for loop in sprite.loops:
        lines.append(f" L,{int(loop.loop_start_time)},{loop.total_iterations}")
        lines += _group_lines(loop.commands, "  ")
    for trigger in sprite.triggers:
        lines.append(
            f" T,{trigger.name},{int(trigger.start_time)},{int(trigger.end_time)},{trigger.group_num}"
        )
        lines += _group_lines(trigger.commands, "  ")
    return lines


def encode_storyboard(storyboard: Storyboard) -> str:
    """Return the ``[Events]`` script for *storyboard*.

    Only sprites and animations are written; samples and videos are not.
    The Overlay layer header is only written when that layer has elements.
    """
    lines = ["[Events]", "//Background and Video events"]
    headers = list(_LAYER_HEADERS)
    overlay = storyboard.layers.get("Overlay")
    if overlay is not None and overlay.elements:
        headers.append(("Overlay", _OVERLAY_HEADER))
    for layer_name, header in headers:
        lines.append(header)
        layer = storyboard.layers.get(layer_name)
        if layer is None:
            continue
        for element in layer.elements:
            lines += _element_lines(layer_name, element)
    return "\n".join(lines) + "\n"


def write_storyboard(storyboard: Storyboard, path: Path) -> None:
    Path(path).write_text(encode_storyboard(storyboard), encoding="utf-8")
