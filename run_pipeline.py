import argparse
import logging
import os
import sys
from pathlib import Path
from typing import List

from tqdm import tqdm

from chant.common.decoder import DecoderBridge, DecoderLaunchError
from chant.common.ocr import Direction, RecognitionError, build_recognizer
from chant.common.utils import ProgressLogger, ensure_dir, load_settings, save_json
from chant.consensus.magi_v1.main import ConsensusEngine, render_report
from chant.consensus.vmagi_v1.main import IMAGE_SUFFIXES, FrameConsensus, choose_frames, numbered_frames
from chant.correct.gate_v1.main import Gate
from schemas import ReliabilityConfig
from validate import ValidationError, validate_answer


def gather_frames(frames_dir: str) -> List[Path]:
    paths = sorted(p for p in Path(frames_dir).iterdir() if p.suffix.lower() in IMAGE_SUFFIXES)
    if not paths:
        raise FileNotFoundError(f"No frame images found in {frames_dir}")
    return paths


def main():
    parser = argparse.ArgumentParser(description="Image(s) → recognizers → Gate → consensus → decode.")
    parser.add_argument("--settings", default="settings.example.yaml")
    parser.add_argument("--image", help="Single spell image (multi-recognizer consensus)")
    parser.add_argument("--frames", help="Directory of numbered video frames (single-recognizer consensus)")
    parser.add_argument("--engines", default="tesseract,gemini",
                        help="Comma-separated recognizers for --image; the first one reads --frames")
    parser.add_argument("-n", "--count", type=int, help="Number of frames to sample (overrides settings)")
    parser.add_argument("--seed", type=int, help="Frame sampling seed")
    parser.add_argument("--vertical", action="store_true", help="Text is laid out vertically")
    parser.add_argument("--out", default="output", help="Output directory")
    parser.add_argument("--verbose", action="store_true", help="Print the correction audit trail")
    parser.add_argument("--decode", action="store_true", help="Pass the consensus to the external decoder")
    args = parser.parse_args()

    if bool(args.image) == bool(args.frames):
        print("Error: provide exactly one of --image or --frames", file=sys.stderr)
        sys.exit(1)

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING,
                        format="%(levelname)s %(name)s: %(message)s")

    settings = load_settings(args.settings) if os.path.exists(args.settings) else {}
    consensus_cfg = settings.get("consensus", {}) or {}
    max_workers = consensus_cfg.get("max_workers")
    min_length = int(consensus_cfg.get("min_answer_length", 3))
    direction = Direction.VERTICAL if args.vertical else Direction.HORIZONTAL
    engines = [e.strip() for e in args.engines.split(",") if e.strip()]

    out_dir = args.out
    ensure_dir(out_dir)
    progress = ProgressLogger(state_path=os.path.join(out_dir, "pipeline_state.json"),
                              progress_path=os.path.join(out_dir, "pipeline_events.jsonl"))

    gate = Gate.from_settings(settings)

    try:
        if args.image:
            engine = ConsensusEngine(gate, config=ReliabilityConfig.from_settings(settings),
                                     max_workers=max_workers)
            for name in engines:
                engine.add_recognizer(build_recognizer(name, settings))
            progress.log("recognize", "running", current=0, total=len(engines),
                         message=f"Reading {args.image}", module_id="magi_v1")
            answer = engine.answer(args.image, direction)
            artifact = os.path.join(out_dir, "consensus.json")
            save_json(artifact, answer.model_dump())
            if args.verbose:
                print(render_report(answer))
        else:
            count = args.count or int((settings.get("frames", {}) or {}).get("chosen_count", 10))
            frames = numbered_frames(choose_frames(gather_frames(args.frames), count, seed=args.seed))
            frame_consensus = FrameConsensus(gate, max_workers=max_workers)
            recognizer = build_recognizer(engines[0], settings)
            progress.log("recognize", "running", current=0, total=len(frames),
                         message=f"Reading {len(frames)} frames", module_id="vmagi_v1")
            with tqdm(total=len(frames), desc="Frames") as bar:
                answer = frame_consensus.answer_from_images(frames, recognizer, direction,
                                                            on_progress=bar.update)
            artifact = os.path.join(out_dir, "frame_consensus.json")
            save_json(artifact, answer.model_dump())
    except RecognitionError as e:
        progress.log("recognize", "failed", message=f"{e}: {e.original_error}")
        print(f"Recognition failed: {e.original_error}", file=sys.stderr)
        sys.exit(1)

    progress.log("recognize", "done", message=f"Consensus {answer.text!r}", artifact=artifact,
                 summary={"consensus": answer.text})
    print(f"Consensus: {answer.text}")

    try:
        validate_answer(answer.text, min_length=min_length)
    except ValidationError as e:
        progress.log("validate", "failed", message=str(e))
        print(f"Validation failed: {e}", file=sys.stderr)
        sys.exit(1)

    if args.decode:
        command = (settings.get("decoder", {}) or {}).get("command")
        try:
            result = DecoderBridge(command).decode(answer.text)
        except DecoderLaunchError as e:
            progress.log("decode", "failed", message=str(e))
            print(f"Error: {e}", file=sys.stderr)
            sys.exit(1)
        save_json(os.path.join(out_dir, "decode.json"), result.model_dump())
        if not result.ok:
            progress.log("decode", "failed", message=result.error or f"exit code {result.exit_code}")
            print(f"Decoder failed ({result.exit_code}): {result.error}", file=sys.stderr)
            sys.exit(1)
        progress.log("decode", "done", message=result.output,
                     summary={"exit_code": result.exit_code, "output": result.output})
        print(result.output)

    print(f"Done. Artifacts written to {out_dir}")


if __name__ == "__main__":
    main()
