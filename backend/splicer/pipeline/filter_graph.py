"""FFmpeg filter construction for segment splicing.

A single segment takes the fast path: input seeking plus a duration limit,
no filter graph at all. Several segments become a labeled graph of
trim/atrim nodes re-based to zero and two concat nodes, one per stream type.

The graph is built as plain data first and only turned into ffmpeg's
`-filter_complex` syntax by `serialize_filter_graph`.
"""
from dataclasses import dataclass, field
from typing import List, Tuple, Union

from splicer.config import Settings, settings as default_settings
from splicer.pipeline.segments import SegmentSet

VIDEO_OUT = "outv"
AUDIO_OUT = "outa"


@dataclass(frozen=True)
class TrimSpec:
    """Fast path: seek to `start` and keep `duration` seconds."""
    start: float
    duration: float


@dataclass(frozen=True)
class Filter:
    """One ffmpeg filter with ordered key=value arguments."""
    name: str
    args: Tuple[Tuple[str, Union[str, int, float]], ...] = ()
    expr: str = ""  # positional argument, e.g. setpts=PTS-STARTPTS


@dataclass(frozen=True)
class FilterNode:
    """A filter chain between input and output pad labels."""
    inputs: Tuple[str, ...]
    filters: Tuple[Filter, ...]
    outputs: Tuple[str, ...]


@dataclass(frozen=True)
class FilterGraph:
    """Multi-segment path: labeled graph ending in `outv`/`outa`."""
    nodes: Tuple[FilterNode, ...]
    outputs: Tuple[str, ...] = field(default=(VIDEO_OUT, AUDIO_OUT))


FilterSpec = Union[TrimSpec, FilterGraph]


def format_number(value: Union[int, float]) -> str:
    """Render seconds as plain decimal without trailing zeros."""
    if isinstance(value, int):
        return str(value)
    return f"{value:.6f}".rstrip("0").rstrip(".")


def _segment_nodes(index: int, start: float, end: float) -> List[FilterNode]:
    bounds = (("start", start), ("end", end))
    return [
        FilterNode(
            inputs=("0:v",),
            filters=(Filter("trim", bounds), Filter("setpts", expr="PTS-STARTPTS")),
            outputs=(f"v{index}",),
        ),
        FilterNode(
            inputs=("0:a",),
            filters=(Filter("atrim", bounds), Filter("asetpts", expr="PTS-STARTPTS")),
            outputs=(f"a{index}",),
        ),
    ]


def build_filter_spec(segments: SegmentSet) -> FilterSpec:
    """
    Build the ffmpeg instruction for a validated segment set.

    Args:
        segments: Validated, non-empty, caller-ordered segments

    Returns:
        TrimSpec for one segment, FilterGraph for several
    """
    if len(segments) == 1:
        seg = segments[0]
        return TrimSpec(start=seg.start, duration=seg.duration)

    nodes: List[FilterNode] = []
    for i, seg in enumerate(segments):
        nodes.extend(_segment_nodes(i, seg.start, seg.end))

    count = len(segments)
    nodes.append(FilterNode(
        inputs=tuple(f"v{i}" for i in range(count)),
        filters=(Filter("concat", (("n", count), ("v", 1), ("a", 0))),),
        outputs=(VIDEO_OUT,),
    ))
    nodes.append(FilterNode(
        inputs=tuple(f"a{i}" for i in range(count)),
        filters=(Filter("concat", (("n", count), ("v", 0), ("a", 1))),),
        outputs=(AUDIO_OUT,),
    ))

    return FilterGraph(nodes=tuple(nodes))


def serialize_filter(f: Filter) -> str:
    if f.expr:
        return f"{f.name}={f.expr}"
    if not f.args:
        return f.name
    args = ":".join(
        f"{key}={format_number(value) if not isinstance(value, str) else value}"
        for key, value in f.args
    )
    return f"{f.name}={args}"


def serialize_filter_graph(graph: FilterGraph) -> str:
    """Turn a FilterGraph into `-filter_complex` text."""
    chains = []
    for node in graph.nodes:
        inputs = "".join(f"[{label}]" for label in node.inputs)
        outputs = "".join(f"[{label}]" for label in node.outputs)
        body = ",".join(serialize_filter(f) for f in node.filters)
        chains.append(f"{inputs}{body}{outputs}")
    return ";".join(chains)


def build_input_args(spec: FilterSpec, input_path: str) -> List[str]:
    """Arguments for the input side, seek placed before `-i` on the fast path."""
    if isinstance(spec, TrimSpec):
        return [
            "-ss", format_number(spec.start),
            "-i", input_path,
            "-t", format_number(spec.duration),
        ]
    return [
        "-i", input_path,
        "-filter_complex", serialize_filter_graph(spec),
    ]


def build_output_args(spec: FilterSpec, config: Settings = None) -> List[str]:
    """Stream mapping directives plus the fixed codec policy."""
    config = config or default_settings

    args: List[str] = []
    if isinstance(spec, FilterGraph):
        for label in spec.outputs:
            args += ["-map", f"[{label}]"]

    args += [
        "-c:v", config.output_video_codec,
        "-preset", config.output_video_preset,
        "-crf", str(config.output_video_crf),
        "-c:a", config.output_audio_codec,
        "-movflags", config.output_movflags,
    ]
    return args
