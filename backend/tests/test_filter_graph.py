"""Tests for filter spec construction and serialization."""
import pytest

from splicer.pipeline.filter_graph import (
    AUDIO_OUT,
    VIDEO_OUT,
    Filter,
    FilterGraph,
    TrimSpec,
    build_filter_spec,
    build_input_args,
    build_output_args,
    format_number,
    serialize_filter,
    serialize_filter_graph,
)
from splicer.pipeline.segments import Segment, SegmentSet


def _segments(*ranges):
    return SegmentSet(tuple(Segment(float(s), float(e)) for s, e in ranges))


class TestFormatNumber:

    @pytest.mark.parametrize("value,expected", [
        (5.0, "5"),
        (0.0, "0"),
        (12.5, "12.5"),
        (0.04, "0.04"),
        (3600.123, "3600.123"),
        (3, "3"),
    ])
    def test_plain_decimal(self, value, expected):
        assert format_number(value) == expected


class TestBuildFilterSpec:
    """Fast path vs graph path selection."""

    def test_single_segment_fast_path(self):
        spec = build_filter_spec(_segments((2, 7.5)))
        assert spec == TrimSpec(start=2.0, duration=5.5)

    def test_multi_segment_graph(self):
        spec = build_filter_spec(_segments((0, 5), (10, 15)))
        assert isinstance(spec, FilterGraph)
        assert spec.outputs == (VIDEO_OUT, AUDIO_OUT)

    def test_graph_labels_are_unique(self):
        spec = build_filter_spec(_segments((0, 1), (2, 3), (4, 5)))
        outputs = [label for node in spec.nodes for label in node.outputs]
        assert outputs == ["v0", "a0", "v1", "a1", "v2", "a2", "outv", "outa"]
        assert len(outputs) == len(set(outputs))

    def test_concat_nodes(self):
        spec = build_filter_spec(_segments((0, 1), (2, 3), (4, 5)))
        video_concat, audio_concat = spec.nodes[-2], spec.nodes[-1]
        assert video_concat.inputs == ("v0", "v1", "v2")
        assert video_concat.filters[0] == Filter("concat", (("n", 3), ("v", 1), ("a", 0)))
        assert audio_concat.inputs == ("a0", "a1", "a2")
        assert audio_concat.filters[0] == Filter("concat", (("n", 3), ("v", 0), ("a", 1)))

    def test_segment_order_preserved(self):
        spec = build_filter_spec(_segments((30, 40), (0, 5)))
        first_trim = spec.nodes[0].filters[0]
        assert first_trim.args == (("start", 30.0), ("end", 40.0))


class TestSerialize:
    """Textual ffmpeg syntax."""

    def test_filter_with_expression(self):
        assert serialize_filter(Filter("setpts", expr="PTS-STARTPTS")) == "setpts=PTS-STARTPTS"

    def test_filter_without_args(self):
        assert serialize_filter(Filter("anull")) == "anull"

    def test_two_segment_graph(self):
        spec = build_filter_spec(_segments((0, 5), (10, 15)))
        assert serialize_filter_graph(spec) == (
            "[0:v]trim=start=0:end=5,setpts=PTS-STARTPTS[v0];"
            "[0:a]atrim=start=0:end=5,asetpts=PTS-STARTPTS[a0];"
            "[0:v]trim=start=10:end=15,setpts=PTS-STARTPTS[v1];"
            "[0:a]atrim=start=10:end=15,asetpts=PTS-STARTPTS[a1];"
            "[v0][v1]concat=n=2:v=1:a=0[outv];"
            "[a0][a1]concat=n=2:v=0:a=1[outa]"
        )

    def test_fractional_bounds(self):
        spec = build_filter_spec(_segments((1.25, 2.5), (3, 4.75)))
        text = serialize_filter_graph(spec)
        assert "trim=start=1.25:end=2.5" in text
        assert "atrim=start=3:end=4.75" in text


class TestCommandArgs:
    """Input and output argument assembly."""

    def test_fast_path_seeks_before_input(self):
        args = build_input_args(TrimSpec(start=4.0, duration=6.0), "in.mp4")
        assert args == ["-ss", "4", "-i", "in.mp4", "-t", "6"]

    def test_graph_input_args(self):
        spec = build_filter_spec(_segments((0, 5), (10, 15)))
        args = build_input_args(spec, "in.mp4")
        assert args[:2] == ["-i", "in.mp4"]
        assert args[2] == "-filter_complex"
        assert args[3] == serialize_filter_graph(spec)

    def test_graph_output_maps_streams(self, test_settings):
        spec = build_filter_spec(_segments((0, 5), (10, 15)))
        args = build_output_args(spec, test_settings)
        assert args[:4] == ["-map", "[outv]", "-map", "[outa]"]

    def test_fast_path_has_no_maps(self, test_settings):
        args = build_output_args(TrimSpec(0.0, 5.0), test_settings)
        assert "-map" not in args

    def test_codec_policy(self, test_settings):
        args = build_output_args(TrimSpec(0.0, 5.0), test_settings)
        assert args == [
            "-c:v", "libx264",
            "-preset", "ultrafast",
            "-crf", "23",
            "-c:a", "aac",
            "-movflags", "+faststart",
        ]
