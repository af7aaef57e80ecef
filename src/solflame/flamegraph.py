"""
Flame graph assembler

Renders folded stack lines into an SVG flame graph. Stacks are laid out with
the prefix-merging flow of Brendan Gregg's flamegraph.pl: consecutive lines
that share a prefix share the frames of that prefix.

In flame graph mode identical stacks are summed and sorted alphabetically.
In flame chart mode the input order is kept, reversed, so that time runs
from left to right.
"""

import hashlib
import html
import re
import sys
from collections import OrderedDict
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Tuple, Union

from .colors import warning
from .folding import parse_folded_line

PALETTES = ('hot', 'mem', 'io', 'red', 'green', 'blue', 'aqua', 'yellow', 'purple', 'orange')


@dataclass
class FlamegraphOptions:
    """Rendering options."""
    title: str = "Flame Graph"
    colors: str = "hot"
    flame_chart: bool = False
    count_name: str = "samples"
    width: int = 1200
    frame_height: int = 16
    font_size: int = 12
    min_width: float = 0.1

    def __post_init__(self):
        if self.colors not in PALETTES:
            raise ValueError(
                f"Unknown color palette {self.colors!r}, expected one of {', '.join(PALETTES)}"
            )


class Flamegraph:
    """Folded stack lines plus the options used to render them."""

    class Frame:
        __slots__ = ("name", "depth", "start", "end")

        def __init__(self, name: str, depth: int, start: int, end: int):
            self.name = name
            self.depth = depth
            self.start = start
            self.end = end

        @property
        def count(self) -> int:
            return self.end - self.start

        def __repr__(self):
            return f"{self.name} ({self.start}-{self.end})"

    def __init__(self, folded_stack_lines: Iterable[str], options: FlamegraphOptions = None):
        self.folded_stack_lines = list(folded_stack_lines)
        self.options = options or FlamegraphOptions()
        self.quiet_mode = False

    @classmethod
    def from_file(cls, path: Union[str, Path], options: FlamegraphOptions = None) -> "Flamegraph":
        """Read folded stack lines from a text file."""
        with open(path) as f:
            return cls([line for line in f.read().splitlines() if line.strip()], options)

    def _log(self, message: str):
        if not self.quiet_mode:
            print(message, file=sys.stderr)

    def _parse_lines(self) -> List[Tuple[Tuple[str, ...], int]]:
        stacks = []
        for line in self.folded_stack_lines:
            if not line.strip():
                continue
            try:
                frames, count = parse_folded_line(line)
            except ValueError:
                self._log(warning(f"Invalid line (ignored): {line}"))
                continue
            if count < 0:
                self._log(warning(f"Negative weight (ignored): {line}"))
                continue
            if count == 0:
                continue
            stacks.append((tuple(frames), count))

        if self.options.flame_chart:
            stacks.reverse()
            return stacks

        merged = OrderedDict()
        for frames, count in stacks:
            merged[frames] = merged.get(frames, 0) + count
        return sorted(merged.items(), key=lambda item: ";".join(item[0]))

    def merge_frames(self) -> Tuple[List["Flamegraph.Frame"], int]:
        """Lay the stacks out as frames; returns the frames and the total count."""
        frames: List[Flamegraph.Frame] = []
        open_frames: List[Tuple[str, int]] = []
        last: Tuple[str, ...] = ()
        time = 0

        for stack, count in self._parse_lines():
            common = 0
            while common < len(last) and common < len(stack) and last[common] == stack[common]:
                common += 1
            for depth in range(len(last) - 1, common - 1, -1):
                name, start = open_frames.pop()
                frames.append(self.Frame(name, depth + 1, start, time))
            for depth in range(common, len(stack)):
                open_frames.append((stack[depth], time))
            time += count
            last = stack

        for depth in range(len(last) - 1, -1, -1):
            name, start = open_frames.pop()
            frames.append(self.Frame(name, depth + 1, start, time))

        if time:
            frames.append(self.Frame("all", 0, 0, time))
        frames.sort(key=lambda frame: (frame.depth, frame.start))
        return frames, time

    def render(self) -> str:
        """Render the SVG document."""
        opts = self.options
        frames, total = self.merge_frames()
        max_depth = max((frame.depth for frame in frames), default=0)

        xpad = 10
        ypad1 = opts.font_size * 3
        ypad2 = opts.font_size * 2 + 10
        image_height = (max_depth + 1) * opts.frame_height + ypad1 + ypad2
        width_per_count = (opts.width - 2 * xpad) / total if total else 0

        svg = [
            '<?xml version="1.0" standalone="no"?>',
            '<!DOCTYPE svg PUBLIC "-//W3C//DTD SVG 1.1//EN" "http://www.w3.org/Graphics/SVG/1.1/DTD/svg11.dtd">',
            f'<svg version="1.1" width="{opts.width}" height="{image_height}" '
            f'viewBox="0 0 {opts.width} {image_height}" '
            'xmlns="http://www.w3.org/2000/svg" xmlns:xlink="http://www.w3.org/1999/xlink">',
            "<defs>",
            '<linearGradient id="background" y1="0" y2="1" x1="0" x2="0">',
            '<stop stop-color="#eeeeee" offset="5%" />',
            '<stop stop-color="#eeeeb0" offset="95%" />',
            "</linearGradient>",
            "</defs>",
            '<style type="text/css">',
            f"text {{ font-family: Verdana, sans-serif; font-size: {opts.font_size}px; fill: rgb(0, 0, 0); }}",
            f"#title {{ text-anchor: middle; font-size: {opts.font_size + 5}px; }}",
            "#frames > *:hover { stroke: black; stroke-width: 0.5; cursor: pointer; }",
            "</style>",
            f'<rect x="0" y="0" width="{opts.width}" height="{image_height}" fill="url(#background)" />',
            f'<text id="title" x="{opts.width / 2}" y="{opts.font_size * 2}">{html.escape(opts.title)}</text>',
            '<g id="frames">',
        ]

        for frame in frames:
            x1 = xpad + frame.start * width_per_count
            x2 = xpad + frame.end * width_per_count
            if x2 - x1 < opts.min_width:
                continue
            y1 = image_height - ypad2 - (frame.depth + 1) * opts.frame_height + 1
            y2 = image_height - ypad2 - frame.depth * opts.frame_height
            percent = frame.count * 100 / total
            info = f"{frame.name} ({frame.count} {opts.count_name}, {percent:.2f}%)"
            svg.extend([
                "<g>",
                f"<title>{html.escape(info)}</title>",
                f'<rect x="{x1:.1f}" y="{y1}" width="{x2 - x1:.1f}" height="{y2 - y1}" '
                f'fill="{self._color(frame.name)}" rx="2" ry="2" />',
                f'<text x="{x1 + 3:.1f}" y="{y2 - 4}">{html.escape(self._trim_text(frame.name, x2 - x1))}</text>',
                "</g>",
            ])

        svg.extend(["</g>", "</svg>"])
        return "\n".join(svg)

    def generate(self, file_name: Union[str, Path], relabel_gas: bool = True) -> Path:
        """Write the SVG to ``file_name``, replacing any existing file."""
        path = Path(file_name)
        if path.exists():
            path.unlink()
        svg = self.render()
        if relabel_gas:
            svg = relabel_samples(svg, self.options.count_name)
        path.write_text(svg)
        return path

    def _color(self, name: str) -> str:
        digest = hashlib.md5(name.encode()).digest()
        v1, v2, v3 = (byte / 255 for byte in digest[:3])
        palette = self.options.colors
        if palette == 'hot':
            r, g, b = 205 + int(50 * v3), int(230 * v1), int(55 * v2)
        elif palette == 'mem':
            r, g, b = 0, 190 + int(50 * v2), int(210 * v1)
        elif palette == 'io':
            r = 80 + int(60 * v1)
            g, b = r, 190 + int(55 * v2)
        elif palette == 'red':
            x = 50 + int(80 * v1)
            r, g, b = 200 + int(55 * v1), x, x
        elif palette == 'green':
            x = 50 + int(60 * v1)
            r, g, b = x, 200 + int(55 * v1), x
        elif palette == 'blue':
            x = 80 + int(60 * v1)
            r, g, b = x, x, 205 + int(50 * v1)
        elif palette == 'aqua':
            r, g, b = 50 + int(60 * v1), 165 + int(55 * v1), 165 + int(55 * v1)
        elif palette == 'yellow':
            x = 175 + int(55 * v1)
            r, g, b = x, x, 50 + int(20 * v1)
        elif palette == 'purple':
            x = 190 + int(65 * v1)
            r, g, b = x, 80 + int(60 * v1), x
        else:
            r, g, b = 190 + int(65 * v1), 90 + int(65 * v1), 0
        return f"rgb({r},{g},{b})"

    def _trim_text(self, text: str, width: float) -> str:
        """Trim text to fit in the given width."""
        char_width = self.options.font_size * 0.59
        if width < char_width * 3:
            return ""
        if len(text) * char_width <= width:
            return text
        max_chars = int(width / char_width) - 2
        return text[:max_chars] + ".."


def relabel_samples(svg: str, count_name: str = "samples") -> str:
    """Replace the count unit in an SVG's labels with ``gas``."""
    return re.sub(rf"\b{re.escape(count_name)}\b", "gas", svg)
