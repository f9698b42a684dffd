"""Parse storyboard scripts (``.osb`` files or a ``.osu`` [Events] section)."""

import logging
from pathlib import Path

from osu_dataset.parsers.osu_parser import read_text, split_sections
from osu_dataset.schemas.document import (
    LAYER_ORDER,
    ORIGIN_CODES,
    Animation,
    Color,
    Command,
    CommandKind,
    CommandLoop,
    CommandTrigger,
    Element,
    LoopType,
    Origin,
    Pos,
    Sprite,
    Storyboard,
    StoryboardSample,
    TimelineGroup,
    Video,
)

logger = logging.getLogger(__name__)

# Layer numbers as written in scripts; Video is never addressed by number.
_LAYER_CODES = {str(i): name for i, name in enumerate(LAYER_ORDER[:5])}

_LOOP_TYPE_CODES = {"0": LoopType.LOOP_FOREVER, "1": LoopType.LOOP_ONCE}

# Single-value commands and the timeline each one drives
_SCALAR_COMMANDS = {
    "F": CommandKind.ALPHA,
    "S": CommandKind.SCALE,
    "R": CommandKind.ROTATION,
    "MX": CommandKind.X,
    "MY": CommandKind.Y,
}

_PARAMETER_COMMANDS = {
    "H": CommandKind.FLIP_H,
    "V": CommandKind.FLIP_V,
    "A": CommandKind.BLENDING,
}


def _unquote(text: str) -> str:
    return text.strip().strip('"')


def _layer(token: str) -> str:
    token = token.strip()
    if token in _LAYER_CODES:
        return _LAYER_CODES[token]
    for name in LAYER_ORDER:
        if name.lower() == token.lower():
            return name
    raise ValueError(f"unknown layer {token!r}")


def _origin(token: str) -> Origin:
    token = token.strip()
    if token.isdigit() and int(token) < len(ORIGIN_CODES):
        return ORIGIN_CODES[int(token)]
    try:
        return Origin(token.replace("Center", "Centre"))
    except ValueError:
        logger.warning("Unknown origin %r, using TopLeft", token)
        return Origin.TOP_LEFT


def _loop_type(token: str) -> LoopType:
    token = token.strip()
    if token in _LOOP_TYPE_CODES:
        return _LOOP_TYPE_CODES[token]
    try:
        return LoopType(token)
    except ValueError:
        return LoopType.LOOP_FOREVER


def _substitute(line: str, variables: dict[str, str]) -> str:
    if "$" not in line:
        return line
    for name in sorted(variables, key=len, reverse=True):
        line = line.replace(name, variables[name])
    return line


def _chain(values: list, arity: int) -> list[tuple]:
    """Group a flat value list into keyframes of *arity* values each."""
    count = len(values) // arity
    if count == 0:
        raise ValueError("missing command values")
    return [tuple(values[i * arity:(i + 1) * arity]) for i in range(count)]


def _add_chain(timeline: list[Command], easing: int, start: float, end: float, frames: list, make) -> None:
    """Append the keyframes of a (possibly multi-value) command.

    A single keyframe holds its value over ``start..end``.  Extra keyframes
    repeat the same duration back to back.
    """
    if len(frames) == 1:
        value = make(frames[0])
        timeline.append(Command(easing, start, end, value, value))
        return
    duration = end - start
    for i in range(len(frames) - 1):
        offset = duration * i
        timeline.append(Command(
            easing, start + offset, end + offset, make(frames[i]), make(frames[i + 1]),
        ))


def parse_command(parts: list[str], group: TimelineGroup) -> None:
    """Add one command line (already split on commas) to *group*."""
    code = parts[0]
    easing = int(float(parts[1]))
    start = float(parts[2])
    end = float(parts[3]) if parts[3].strip() else start
    values = [p.strip() for p in parts[4:]]

    if code in _SCALAR_COMMANDS:
        frames = _chain([float(v) for v in values], 1)
        _add_chain(group.timeline(_SCALAR_COMMANDS[code]), easing, start, end, frames, lambda f: f[0])
    elif code == "M":
        frames = _chain([float(v) for v in values], 2)
        _add_chain(group.x, easing, start, end, frames, lambda f: f[0])
        _add_chain(group.y, easing, start, end, frames, lambda f: f[1])
    elif code == "V":
        frames = _chain([float(v) for v in values], 2)
        _add_chain(group.vector_scale, easing, start, end, frames, lambda f: Pos(f[0], f[1]))
    elif code == "C":
        frames = _chain([int(float(v)) for v in values], 3)
        _add_chain(group.color, easing, start, end, frames, lambda f: Color(f[0], f[1], f[2]))
    elif code == "P":
        kind = _PARAMETER_COMMANDS.get(values[0] if values else "")
        if kind is None:
            raise ValueError(f"unknown parameter {values[0] if values else ''!r}")
        group.timeline(kind).append(Command(easing, start, end, True, True))
    else:
        raise ValueError(f"unknown command {code!r}")


def _parse_element(parts: list[str]) -> tuple[str, Element] | None:
    kind = parts[0].strip()
    if kind in ("Sprite", "4"):
        sprite = Sprite(
            origin=_origin(parts[2]),
            initial_pos=Pos(float(parts[4]), float(parts[5])),
        )
        return _layer(parts[1]), Element(_unquote(parts[3]), sprite)
    if kind in ("Animation", "6"):
        animation = Animation(
            origin=_origin(parts[2]),
            initial_pos=Pos(float(parts[4]), float(parts[5])),
            frame_count=int(float(parts[6])),
            frame_delay=float(parts[7]),
            loop_type=_loop_type(parts[8]) if len(parts) > 8 else LoopType.LOOP_FOREVER,
        )
        return _layer(parts[1]), Element(_unquote(parts[3]), animation)
    if kind in ("Sample", "5"):
        volume = int(float(parts[4])) if len(parts) > 4 else 100
        return _layer(parts[2]), Element(_unquote(parts[3]), StoryboardSample(float(parts[1]), volume))
    if kind in ("Video", "1"):
        return "Video", Element(_unquote(parts[2]), Video(float(parts[1])))
    # Backgrounds, breaks and colour events belong to the beatmap.
    return None


def parse_storyboard(text: str) -> Storyboard:
    """Parse the [Variables] and [Events] sections of a script.

    Malformed lines are logged and skipped.  Commands that appear before
    any sprite, or under a sample or video, are ignored.
    """
    _, sections = split_sections(text)
    variables = {}
    for line in sections.get("Variables", []):
        name, sep, value = line.strip().partition("=")
        if sep and name.startswith("$"):
            variables[name] = value

    storyboard = Storyboard()
    sprite: Sprite | None = None
    nested: TimelineGroup | None = None

    for raw in sections.get("Events", []):
        line = _substitute(raw, variables)
        depth = 0
        while depth < len(line) and line[depth] in (" ", "_"):
            depth += 1
        parts = line[depth:].split(",")
        try:
            if depth == 0:
                sprite = None
                nested = None
                parsed = _parse_element(parts)
                if parsed is None:
                    continue
                layer_name, element = parsed
                storyboard.get_layer(layer_name).elements.append(element)
                sprite = element.kind if isinstance(element.kind, Sprite) else None
                continue

            if sprite is None:
                continue
            code = parts[0].strip()
            if depth == 1 and code == "L":
                loop = CommandLoop(float(parts[1]), int(float(parts[2])))
                sprite.loops.append(loop)
                nested = loop.commands
            elif depth == 1 and code == "T":
                trigger = CommandTrigger(
                    name=parts[1].strip(),
                    start_time=float(parts[2]) if len(parts) > 2 and parts[2].strip() else 0.0,
                    end_time=float(parts[3]) if len(parts) > 3 and parts[3].strip() else 0.0,
                    group_num=int(parts[4]) if len(parts) > 4 and parts[4].strip() else 0,
                )
                sprite.triggers.append(trigger)
                nested = trigger.commands
            elif depth == 1:
                nested = None
                parse_command(parts, sprite.timeline_group)
            elif nested is not None:
                parse_command(parts, nested)
        except (ValueError, IndexError) as e:
            logger.warning("Skipping malformed storyboard line %r: %s", raw.strip(), e)

    return storyboard


def parse_storyboard_file(path: Path) -> Storyboard:
    return parse_storyboard(read_text(path))
