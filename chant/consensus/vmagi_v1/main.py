import argparse
import logging
import random
import threading
from collections import Counter
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from chant.common.fanout import fan_out
from chant.common.ocr import Direction, Recognizer, build_recognizer
from chant.common.utils import ProgressLogger, load_settings, save_json
from chant.correct.gate_v1.main import Gate
from schemas import FrameConsensusAnswer, FrameReading

logger = logging.getLogger(__name__)

IMAGE_SUFFIXES = (".png", ".jpg", ".jpeg", ".bmp", ".tif", ".tiff")


def vote_length(texts: Sequence[str]) -> Tuple[int, Dict[int, int]]:
    """Most common text length (first seen wins ties) and the full length histogram."""
    counts = Counter(len(t) for t in texts)
    if not counts:
        return 0, {}
    return counts.most_common(1)[0][0], dict(counts)


def positional_majority(texts: Sequence[str], length: int) -> str:
    out = []
    for i in range(length):
        chars = [t[i] for t in texts if len(t) > i]
        if chars:
            out.append(Counter(chars).most_common(1)[0][0])
    return "".join(out)


def frame_number(path) -> Optional[int]:
    """Frame index from an image stem like `0042.png`; None when the stem is not numeric."""
    stem = Path(path).stem
    return int(stem) if stem.isdigit() else None


def choose_frames(paths: Sequence, count: int, seed: Optional[int] = None) -> List:
    """Random sample of `count` frame images, returned in frame order."""
    if count <= 0:
        raise ValueError(f"frame count must be positive, got {count}")
    paths = list(paths)
    rng = random.Random(seed)
    chosen = rng.sample(paths, min(count, len(paths)))
    return sorted(chosen, key=lambda p: (frame_number(p) is None, frame_number(p) or 0, str(p)))


def numbered_frames(paths: Iterable) -> List[Tuple[int, str]]:
    frames = []
    for p in paths:
        n = frame_number(p)
        if n is None:
            logger.warning("skipping %s: file name is not a frame number", p)
            continue
        frames.append((n, str(p)))
    return frames


class FrameConsensus:
    """One recognizer, many frames of the same text: unweighted length vote then positional majority."""

    def __init__(self, gate: Gate, max_workers: Optional[int] = None):
        self.gate = gate
        self.max_workers = max_workers

    def _read(self, pair: Tuple[int, str]) -> FrameReading:
        frame, raw_text = pair
        result = self.gate.guide(f"frame {frame}", raw_text)
        return FrameReading(
            frame=frame,
            raw_text=raw_text,
            original_text=result.original,
            corrected_text=result.corrected,
            history=result.history,
        )

    def answer_from_frames(self, frames: Iterable[Tuple[int, str]],
                           cancel_event: Optional[threading.Event] = None,
                           on_progress=None) -> FrameConsensusAnswer:
        readings = fan_out(self._read, frames, max_workers=self.max_workers,
                           cancel_event=cancel_event, on_progress=on_progress)
        texts = [r.corrected_text for r in readings]
        length, votes = vote_length(texts)
        text = positional_majority(texts, length)
        logger.debug("frame consensus over %d frames (length votes %s): %r", len(readings), votes, text)
        return FrameConsensusAnswer(text=text, length_votes=votes, readings=readings)

    def answer_from_images(self, frames: Iterable[Tuple[int, str]], recognizer: Recognizer,
                           direction: Direction = Direction.HORIZONTAL,
                           cancel_event: Optional[threading.Event] = None,
                           on_progress=None) -> FrameConsensusAnswer:
        frames = list(frames)

        def _recognize(pair):
            frame, path = pair
            text = recognizer.recognize(path, direction)
            logger.debug("frame %s read by %s: %r", frame, recognizer.name, text)
            return frame, text

        raw = fan_out(_recognize, frames, max_workers=self.max_workers,
                      cancel_event=cancel_event, on_progress=on_progress)
        return self.answer_from_frames(raw, cancel_event=cancel_event)


def main():
    parser = argparse.ArgumentParser(description="Consensus over many video frames read by one recognizer.")
    parser.add_argument("--frames", required=True, help="Directory of numbered frame images (0001.png, ...)")
    parser.add_argument("--out", required=True, help="frame_consensus.json")
    parser.add_argument("--engine", default="tesseract", help="Recognizer to use for every frame")
    parser.add_argument("--vertical", action="store_true", help="Text is laid out vertically")
    parser.add_argument("-n", "--count", type=int, help="Number of frames to sample")
    parser.add_argument("--seed", type=int, help="Sampling seed")
    parser.add_argument("--settings", help="settings yaml")
    parser.add_argument("--progress-file", help="Path to pipeline_events.jsonl")
    parser.add_argument("--state-file", help="Path to pipeline_state.json")
    parser.add_argument("--run-id", help="Run identifier for logging")
    args = parser.parse_args()

    progress = ProgressLogger(state_path=args.state_file, progress_path=args.progress_file, run_id=args.run_id)
    settings = load_settings(args.settings) if args.settings else {}
    count = args.count or int((settings.get("frames", {}) or {}).get("chosen_count", 10))

    paths = sorted(p for p in Path(args.frames).iterdir() if p.suffix.lower() in IMAGE_SUFFIXES)
    frames = numbered_frames(choose_frames(paths, count, seed=args.seed))
    total = len(frames)

    consensus = FrameConsensus(
        Gate.from_settings(settings),
        max_workers=(settings.get("consensus", {}) or {}).get("max_workers"),
    )
    recognizer = build_recognizer(args.engine, settings)
    direction = Direction.VERTICAL if args.vertical else Direction.HORIZONTAL

    done = 0

    def _tick():
        nonlocal done
        done += 1
        progress.log("frames", "running", current=done, total=total,
                     message=f"Recognized {done}/{total} frames", module_id="vmagi_v1")

    answer = consensus.answer_from_images(frames, recognizer, direction, on_progress=_tick)
    save_json(args.out, answer.model_dump())
    progress.log("frames", "done", current=total, total=total,
                 message=f"Consensus {answer.text!r}", artifact=args.out, module_id="vmagi_v1",
                 summary={"consensus": answer.text, "frames": total,
                          "length_votes": {str(k): v for k, v in answer.length_votes.items()}})
    print(f"Frame consensus of {total} frames → {args.out}")


if __name__ == "__main__":
    main()
