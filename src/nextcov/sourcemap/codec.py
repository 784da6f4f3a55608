"""Base64 VLQ codec for the source map ``mappings`` field.

``mappings`` is a ``;``-separated list of generated lines, each a
``,``-separated list of segments. A segment holds 1, 4 or 5 fields:

    [generated_column]
    [generated_column, source_index, original_line, original_column]
    [generated_column, source_index, original_line, original_column, name_index]

Every field is stored as a delta. The generated column resets at each line;
the other fields carry over across lines. Decoded values here are absolute
and 0-based, the same layout as ``@jridgewell/sourcemap-codec``.
"""

from __future__ import annotations

from collections.abc import Sequence

from nextcov.core.errors import SourceMapError

Segment = tuple[int, ...]
DecodedMappings = list[list[Segment]]

_CHARS = "ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789+/"
_CHAR_TO_INT = {c: i for i, c in enumerate(_CHARS)}

_VLQ_SHIFT = 5
_VLQ_CONTINUATION = 1 << _VLQ_SHIFT
_VLQ_MASK = _VLQ_CONTINUATION - 1


def _decode_segment(text: str, line_no: int) -> list[int]:
    values: list[int] = []
    value = 0
    shift = 0
    for char in text:
        digit = _CHAR_TO_INT.get(char)
        if digit is None:
            raise SourceMapError.undecodable(f"invalid base64 character {char!r} on line {line_no}")
        value += (digit & _VLQ_MASK) << shift
        if digit & _VLQ_CONTINUATION:
            shift += _VLQ_SHIFT
            continue
        negative = value & 1
        value >>= 1
        values.append(-value if negative else value)
        value = 0
        shift = 0
    if shift:
        raise SourceMapError.undecodable(f"truncated segment {text!r} on line {line_no}")
    return values


def decode(mappings: str) -> DecodedMappings:
    """Decode a ``mappings`` string into absolute per-line segments.

    Raises:
        SourceMapError: On a character outside the base64 alphabet, a
            truncated value, or a segment with a field count other than 1, 4 or 5.
    """
    decoded: DecodedMappings = []
    source = original_line = original_column = name = 0

    for line_no, line in enumerate(mappings.split(";")):
        segments: list[Segment] = []
        column = 0
        for text in line.split(","):
            if not text:
                continue
            fields = _decode_segment(text, line_no)
            if len(fields) not in (1, 4, 5):
                raise SourceMapError.undecodable(
                    f"segment {text!r} on line {line_no} has {len(fields)} fields"
                )
            column += fields[0]
            if len(fields) == 1:
                segments.append((column,))
                continue
            source += fields[1]
            original_line += fields[2]
            original_column += fields[3]
            if len(fields) == 5:
                name += fields[4]
                segments.append((column, source, original_line, original_column, name))
            else:
                segments.append((column, source, original_line, original_column))
        decoded.append(segments)

    return decoded


def _encode_value(value: int) -> str:
    vlq = (-value << 1) | 1 if value < 0 else value << 1
    out = []
    while True:
        digit = vlq & _VLQ_MASK
        vlq >>= _VLQ_SHIFT
        if vlq:
            digit |= _VLQ_CONTINUATION
        out.append(_CHARS[digit])
        if not vlq:
            return "".join(out)


def encode(decoded: Sequence[Sequence[Segment]]) -> str:
    """Encode absolute per-line segments back into a ``mappings`` string."""
    lines: list[str] = []
    source = original_line = original_column = name = 0

    for segments in decoded:
        column = 0
        parts: list[str] = []
        for segment in segments:
            if len(segment) not in (1, 4, 5):
                raise SourceMapError.undecodable(f"cannot encode segment {segment!r}")
            text = _encode_value(segment[0] - column)
            column = segment[0]
            if len(segment) > 1:
                text += _encode_value(segment[1] - source)
                text += _encode_value(segment[2] - original_line)
                text += _encode_value(segment[3] - original_column)
                source, original_line, original_column = segment[1], segment[2], segment[3]
                if len(segment) == 5:
                    text += _encode_value(segment[4] - name)
                    name = segment[4]
            parts.append(text)
        lines.append(",".join(parts))

    return ";".join(lines)
