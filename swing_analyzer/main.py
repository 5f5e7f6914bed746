"""Command line entry point.

Usage:
    swing-analyzer analyse poses.json.gz --sport tennis --output-dir ./output
    swing-analyzer analyse poses.json --video match.mp4 --output-dir ./output

The pose document is JSON (optionally gzip-compressed) produced by an external
pose detector::

    {"fps": 30, "frames": [{"frame": 0, "poses": [[[x, y, score], ...], ...]}, ...]}
"""

from __future__ import annotations

import argparse
import gzip
import json
import logging
import sys
from dataclasses import replace
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import cv2

from .config.settings import PipelineConfig
from .core.pose import PoseFrame
from .core.session import PipelineSession
from .reporting.charts import attribute_radar_chart, swing_curve_chart
from .visualization.skeleton import SkeletonDrawer

logger = logging.getLogger(__name__)


class PoseDocumentError(ValueError):
    """The pose document is missing required fields or is malformed."""

    pass


def load_pose_document(path: str) -> Tuple[Optional[float], Dict[int, List[PoseFrame]]]:
    """Read a pose document into ``(fps, {frame_index: [PoseFrame, ...]})``."""
    opener = gzip.open if str(path).endswith(".gz") else open
    try:
        with opener(path, "rt", encoding="utf-8") as fh:
            data = json.load(fh)
    except (OSError, json.JSONDecodeError) as exc:
        raise PoseDocumentError(f"cannot read {path}: {exc}") from exc

    if not isinstance(data, dict) or not isinstance(data.get("frames"), list):
        raise PoseDocumentError(f"{path}: expected an object with a 'frames' list")

    frames: Dict[int, List[PoseFrame]] = {}
    for entry in data["frames"]:
        try:
            idx = int(entry["frame"])
            frames[idx] = [PoseFrame.from_points(idx, pts) for pts in entry.get("poses", [])]
        except (KeyError, TypeError, ValueError) as exc:
            raise PoseDocumentError(f"{path}: bad frame entry {entry!r:.80}: {exc}") from exc
    fps = data.get("fps")
    return (float(fps) if fps else None), frames


def load_config(path: Optional[str], overrides: Dict[str, Any]) -> PipelineConfig:
    data: Dict[str, Any] = {}
    if path:
        with open(path, "r", encoding="utf-8") as fh:
            data = json.load(fh)
    data.update({k: v for k, v in overrides.items() if v is not None})
    return PipelineConfig.from_dict(data)


def render_video(session: PipelineSession, video_path: str, output_path: str) -> int:
    """Write the video with the cleaned skeleton drawn on each frame."""
    cap = cv2.VideoCapture(video_path)
    if not cap.isOpened():
        raise IOError(f"Cannot open video: {video_path}")
    width = int(cap.get(cv2.CAP_PROP_FRAME_WIDTH))
    height = int(cap.get(cv2.CAP_PROP_FRAME_HEIGHT))
    fourcc = cv2.VideoWriter_fourcc(*"mp4v")
    writer = cv2.VideoWriter(output_path, fourcc, session.fps, (width, height))
    drawer = SkeletonDrawer(layout=session.layout)
    cleaned = {sf.frame_index: sf for sf in session.cleaned_frames()}

    written = 0
    idx = 0
    try:
        while True:
            ok, frame = cap.read()
            if not ok:
                break
            sf = cleaned.get(idx)
            writer.write(drawer.draw(frame, sf) if sf is not None else frame)
            written += 1
            idx += 1
    finally:
        cap.release()
        writer.release()
    return written


def analyse(args: argparse.Namespace) -> int:
    doc_fps, frames = load_pose_document(args.poses)
    config = load_config(args.config, {
        "fps": args.fps or doc_fps,
        "sport": args.sport,
    })
    if args.handedness:
        config = config.with_overrides(swing=replace(config.swing, handedness=args.handedness))

    session = PipelineSession(config)
    result = session.preprocess(lambda i: frames.get(i, []), sorted(frames))
    events = session.run_detection()

    print(f"Frames: {result.frames_processed}  banana: "
          f"{sum(1 for sf in session.cleaned_frames() if sf.is_banana)}")
    if session.handedness is not None:
        print(f"Handedness: {session.handedness.dominant_hand} "
              f"({session.handedness.confidence:.0%})")

    scores = []
    for ev in session.swing_events():
        score = session.metrics_for(ev.id)
        scores.append(score)
        print(f"  {ev.label:<22} {ev.start_time:6.2f}-{ev.end_time:6.2f}s  "
              f"{ev.metadata.velocity_kmh:5.1f} km/h  SAI {score.sai_score} ({score.rating_tier})")
    if not scores:
        print("No swings detected.")

    if args.output_dir:
        out = Path(args.output_dir)
        out.mkdir(parents=True, exist_ok=True)
        doc = {
            "sport": config.sport,
            "fps": config.fps,
            "events": [e.to_dict() for e in events],
            "scores": [s.to_dict() for s in scores],
        }
        (out / "events.json").write_text(json.dumps(doc, indent=2), encoding="utf-8")
        swing_curve_chart(session.kinematics(), events, str(out / "swing_curve.png"))
        for score in scores:
            attribute_radar_chart(score, str(out / f"{score.event_id}_radar.png"))
        if args.video:
            n = render_video(session, args.video, str(out / "annotated.mp4"))
            logger.info(f"annotated video: {n} frame(s)")
        print(f"Output: {out}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="swing-analyzer",
        description="Swing detection and scoring from pose keypoint streams",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    subparsers = parser.add_subparsers(dest="command")

    analyse_parser = subparsers.add_parser("analyse", help="Analyse a pose document")
    analyse_parser.add_argument("poses", help="Pose document (.json or .json.gz)")
    analyse_parser.add_argument("--sport", default=None, help="tennis, padel or pickleball")
    analyse_parser.add_argument("--fps", type=float, default=None,
                                help="Override the frame rate stored in the document")
    analyse_parser.add_argument("--handedness", choices=["right", "left", "auto"], default=None)
    analyse_parser.add_argument("--config", default=None, help="JSON configuration file")
    analyse_parser.add_argument("--video", default=None, help="Source video for an annotated copy")
    analyse_parser.add_argument("--output-dir", default=None)
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.command != "analyse":
        parser.print_help()
        return 1
    if not Path(args.poses).exists():
        print(f"Error: pose document not found: {args.poses}", file=sys.stderr)
        return 1
    try:
        return analyse(args)
    except (ValueError, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("\nInterrupted by user")
        return 1


if __name__ == "__main__":
    sys.exit(main())
