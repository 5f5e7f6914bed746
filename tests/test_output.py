"""Tests for the skeleton overlay, charts and the command line."""

import gzip
import json

import numpy as np
import pytest

from swing_analyzer.analysis.scoring import SwingMetrics, SwingScore
from swing_analyzer.core.stability import StabilityMode, StabilizedFrame
from swing_analyzer.main import PoseDocumentError, build_parser, load_pose_document, main
from swing_analyzer.reporting.charts import attribute_radar_chart, swing_curve_chart
from swing_analyzer.visualization.skeleton import BANANA_COLOR, SkeletonDrawer

from synthetic import make_pose, swing_frames, triangle, velocity_series


def _write_document(path, frames, fps=30):
    doc = {"fps": fps, "frames": [{"frame": f.frame_index, "poses": [f.to_points()]} for f in frames]}
    opener = gzip.open if str(path).endswith(".gz") else open
    with opener(path, "wt", encoding="utf-8") as fh:
        json.dump(doc, fh)


# =====================================================================
# Skeleton overlay
# =====================================================================

class TestSkeletonDrawer:
    def _stabilized(self, is_banana):
        pose = make_pose(0)
        return StabilizedFrame(pose, pose, is_banana, StabilityMode.STABLE)

    def test_banana_frame_drawn_in_warning_color(self):
        frame = np.zeros((600, 600, 3), dtype=np.uint8)
        out = SkeletonDrawer(line_thickness=4).draw(frame, self._stabilized(True))
        # Middle of the shoulder line
        assert tuple(int(c) for c in out[200, 300]) == BANANA_COLOR
        assert not frame.any()

    def test_plausible_frame_uses_body_colors(self):
        frame = np.zeros((600, 600, 3), dtype=np.uint8)
        out = SkeletonDrawer(line_thickness=4).draw(frame, self._stabilized(False))
        assert tuple(int(c) for c in out[200, 300]) != BANANA_COLOR
        assert out.any()


# =====================================================================
# Charts
# =====================================================================

class TestCharts:
    def test_swing_curve_chart(self, tmp_path):
        series = velocity_series(triangle(60, 5, 25, 45, 45.0))
        path = tmp_path / "curve.png"
        assert swing_curve_chart(series, [], str(path)) == str(path)
        assert path.stat().st_size > 0

    def test_swing_curve_chart_needs_two_frames(self, tmp_path):
        assert swing_curve_chart(velocity_series([1.0]), [], str(tmp_path / "x.png")) == ""

    def test_radar_chart(self, tmp_path):
        score = SwingScore("swing-5", SwingMetrics(80, 50, 50, 50, 50), 72, "Advanced", {})
        path = tmp_path / "radar.png"
        assert attribute_radar_chart(score, str(path)) == str(path)
        assert path.exists()


# =====================================================================
# Command line
# =====================================================================

class TestPoseDocument:
    def test_load_plain_and_gzip(self, tmp_path):
        frames = [make_pose(i) for i in range(3)]
        for name in ("poses.json", "poses.json.gz"):
            path = tmp_path / name
            _write_document(path, frames, fps=25)
            fps, loaded = load_pose_document(str(path))
            assert fps == 25.0
            assert sorted(loaded) == [0, 1, 2]
            np.testing.assert_allclose(loaded[1][0].keypoints, frames[1].keypoints)

    def test_malformed_document(self, tmp_path):
        path = tmp_path / "bad.json"
        path.write_text(json.dumps({"frames": [{"poses": []}]}), encoding="utf-8")
        with pytest.raises(PoseDocumentError):
            load_pose_document(str(path))
        path.write_text("not json", encoding="utf-8")
        with pytest.raises(PoseDocumentError):
            load_pose_document(str(path))


class TestMain:
    def test_parser(self):
        args = build_parser().parse_args(["analyse", "p.json", "--sport", "padel", "--handedness", "auto"])
        assert args.command == "analyse"
        assert args.sport == "padel"
        assert args.handedness == "auto"

    def test_missing_document(self, tmp_path):
        assert main(["analyse", str(tmp_path / "missing.json")]) == 1

    def test_no_command(self):
        assert main([]) == 1

    def test_analyse_writes_outputs(self, tmp_path, capsys):
        doc = tmp_path / "poses.json.gz"
        _write_document(doc, swing_frames())
        out = tmp_path / "out"
        assert main(["analyse", str(doc), "--sport", "tennis", "--output-dir", str(out)]) == 0
        events = json.loads((out / "events.json").read_text(encoding="utf-8"))
        assert events["sport"] == "tennis"
        assert events["fps"] == 30.0
        assert (out / "swing_curve.png").exists()
        assert "Frames: 46" in capsys.readouterr().out

    def test_bad_config_reports_error(self, tmp_path):
        doc = tmp_path / "poses.json"
        _write_document(doc, [make_pose(0)])
        cfg = tmp_path / "cfg.json"
        cfg.write_text(json.dumps({"swing": {"bogus": 1}}), encoding="utf-8")
        assert main(["analyse", str(doc), "--config", str(cfg)]) == 1
