import argparse
import logging
import threading
from collections import Counter
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from chant.common.fanout import fan_out
from chant.common.lexicon import Lexicon
from chant.common.ocr import Direction, Recognizer
from chant.common.utils import ProgressLogger, load_settings, read_jsonl, save_json
from chant.correct.gate_v1.main import Gate
from schemas import SENTENCE_END, ConsensusAnswer, RecognizerObservation, ReliabilityConfig

logger = logging.getLogger(__name__)


class _Cursor:
    """Read position into one recognizer's corrected text; stands in for a char queue."""

    __slots__ = ("text", "pos")

    def __init__(self, text: str):
        self.text = text
        self.pos = 0

    @property
    def remaining(self) -> int:
        return len(self.text) - self.pos

    def peek(self) -> str:
        return self.text[self.pos]

    def advance(self):
        if self.pos < len(self.text):
            self.pos += 1


def majority_length(lengths: Iterable[int]) -> int:
    """Most frequent remaining length; ties go to the shortest."""
    counts = Counter(lengths)
    if not counts:
        return 0
    return min(counts, key=lambda n: (-counts[n], n))


def tally_votes(peeks: Sequence[Tuple[str, float]]) -> Optional[str]:
    """Character with the highest total weight; first seen wins ties, None when nothing scored."""
    totals: Dict[str, float] = {}
    for ch, weight in peeks:
        totals[ch] = totals.get(ch, 0.0) + weight
    winner, best = None, 0.0
    for ch, total in totals.items():
        if total > best:
            winner, best = ch, total
    return winner


def weighted_vote(readings: Sequence[Tuple[str, float]], lexicon: Lexicon) -> str:
    """
    Merge corrected texts (text, reliability) into one string.

    Each round every non-empty reading votes its next character with its reliability
    (0 for characters outside the lexicon alphabet). Readings that agree with the winner
    or are in sync with the majority remaining length advance one character; longer
    readings skip ahead until they line up with the winner or the majority length.
    """
    cursors = [(_Cursor(text), weight) for text, weight in readings]
    out: List[str] = []

    while any(c.remaining for c, _ in cursors):
        active = [(c, w) for c, w in cursors if c.remaining]

        peeks = []
        for cursor, weight in active:
            ch = cursor.peek()
            in_vocab = lexicon.contains(ch) or ch == SENTENCE_END
            peeks.append((ch, weight if in_vocab else 0.0))

        winner = tally_votes(peeks)
        if winner is not None:
            out.append(winner)

        majority = majority_length(c.remaining for c, _ in active)
        for cursor, _ in active:
            if cursor.peek() == winner or cursor.remaining == majority:
                cursor.advance()
                continue
            while cursor.remaining:
                cursor.advance()
                if not cursor.remaining:
                    break
                if cursor.peek() == winner or cursor.remaining == majority:
                    cursor.advance()
                    break

    return "".join(out)


class ConsensusEngine:
    """Corrects each recognizer's reading with the Gate, then takes a weighted character vote."""

    def __init__(self, gate: Gate, lexicon: Optional[Lexicon] = None,
                 config: Optional[ReliabilityConfig] = None, max_workers: Optional[int] = None):
        self.gate = gate
        self.lexicon = lexicon if lexicon is not None else gate.lexicon
        self.config = config or ReliabilityConfig.default()
        self.max_workers = max_workers
        self._recognizers: List[Recognizer] = []

    def add_recognizer(self, recognizer: Recognizer):
        self._recognizers.append(recognizer)

    @property
    def recognizers(self) -> Tuple[Recognizer, ...]:
        return tuple(self._recognizers)

    def _observe(self, pair: Tuple[str, str]) -> RecognizerObservation:
        name, raw_text = pair
        result = self.gate.guide(name, raw_text)
        return RecognizerObservation(
            name=name,
            raw_text=raw_text,
            original_text=result.original,
            corrected_text=result.corrected,
            history=result.history,
            reliability=self.config.reliability(name),
        )

    def answer_from_texts(self, results: Iterable[Tuple[str, str]],
                          cancel_event: Optional[threading.Event] = None) -> ConsensusAnswer:
        """Consensus over already-recognized (recognizer name, raw text) pairs."""
        observations = fan_out(self._observe, results, max_workers=self.max_workers, cancel_event=cancel_event)
        text = weighted_vote([(o.corrected_text, o.reliability) for o in observations], self.lexicon)
        logger.debug("consensus over %d recognizers: %r", len(observations), text)
        return ConsensusAnswer(text=text, observations=observations)

    def answer(self, image_path: str, direction: Direction = Direction.HORIZONTAL,
               cancel_event: Optional[threading.Event] = None) -> ConsensusAnswer:
        """Run every registered recognizer on the image, then take the consensus."""
        recognizers = self.recognizers
        texts = fan_out(lambda r: r.recognize(image_path, direction), recognizers,
                        max_workers=self.max_workers, cancel_event=cancel_event)
        return self.answer_from_texts(zip((r.name for r in recognizers), texts), cancel_event=cancel_event)


def _agreement(corrected: str, consensus: str) -> str:
    return "".join(a if a == b else f"[{a}]" for a, b in zip(corrected, consensus))


def render_report(answer: ConsensusAnswer) -> str:
    """Human-readable audit trail: per-recognizer corrections and agreement with the answer."""
    lines = [f"consensus: {answer.text}"]
    for obs in answer.observations:
        lines.append("")
        lines.append(f"{obs.name} (reliability {obs.reliability:g}) read {obs.original_text!r}, "
                     f"corrected to {obs.corrected_text!r}")
        lines.append("  original | misread-fixed | corrected | distance | normalized | potential")
        for step in obs.history:
            norm = "-" if step.normalized_distance is None else f"{step.normalized_distance:.3f}"
            pot = "-" if step.potential is None else f"{step.potential:.3f}"
            dist = "-" if step.distance is None else str(step.distance)
            lines.append(f"  {step.original_slice} | {step.misread_fixed_slice} | {step.corrected_word} | "
                         f"{dist} | {norm} | {pot}")
        lines.append(f"  agreement: {_agreement(obs.corrected_text, answer.text)}")
    return "\n".join(lines)


def main():
    parser = argparse.ArgumentParser(description="Weighted consensus over several recognizers' readings.")
    parser.add_argument("--inputs", required=True, help="raw_readings.jsonl with {recognizer, text}")
    parser.add_argument("--out", required=True, help="consensus.json")
    parser.add_argument("--settings", help="settings yaml (data paths, reliability config)")
    parser.add_argument("--reliability", help="Reliability config file (overrides settings)")
    parser.add_argument("--max-workers", type=int, help="Gate worker threads")
    parser.add_argument("--verbose", action="store_true", help="Print the correction audit trail")
    parser.add_argument("--progress-file", help="Path to pipeline_events.jsonl")
    parser.add_argument("--state-file", help="Path to pipeline_state.json")
    parser.add_argument("--run-id", help="Run identifier for logging")
    args = parser.parse_args()

    progress = ProgressLogger(state_path=args.state_file, progress_path=args.progress_file, run_id=args.run_id)
    settings = load_settings(args.settings) if args.settings else {}
    config = (ReliabilityConfig.load(args.reliability) if args.reliability
              else ReliabilityConfig.from_settings(settings))
    engine = ConsensusEngine(
        Gate.from_settings(settings),
        config=config,
        max_workers=args.max_workers or (settings.get("consensus", {}) or {}).get("max_workers"),
    )

    pairs = [(row["recognizer"], row.get("text", "")) for row in read_jsonl(args.inputs)]
    progress.log("consensus", "running", current=0, total=len(pairs),
                 message="Computing votes", artifact=args.out, module_id="magi_v1")
    answer = engine.answer_from_texts(pairs)
    save_json(args.out, answer.model_dump())
    progress.log("consensus", "done", current=len(pairs), total=len(pairs),
                 message=f"Consensus {answer.text!r}", artifact=args.out, module_id="magi_v1",
                 summary={"consensus": answer.text, "recognizers": [o.name for o in answer.observations]})
    if args.verbose:
        print(render_report(answer))
    print(f"Consensus of {len(pairs)} recognizers → {args.out}")


if __name__ == "__main__":
    main()
