import argparse
import logging
import re
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from chant.common.lexicon import Lexicon
from chant.common.levenshtein import EditDistance
from chant.common.misread import MisreadTable
from chant.common.reference_data import load_reference_data
from chant.common.utils import ProgressLogger, load_settings, read_jsonl, save_jsonl
from schemas import SENTENCE_END, GuideResult, ReRecognizeStep

logger = logging.getLogger(__name__)

# Decorative glyphs OCR picks up around spell text; never part of a word.
IGNORED_STRINGS = (
    "「", "」", "【", "】", "）", "（", "　", "、",
    "１", "２", "３", "４", "５", "６", "７", "８", "９", "０",
)
_ASCII_RE = re.compile(r"[\x21-\x7e\s]")

# Slice lengths tried at each position, fewest dictionary words first.
SLICE_ORDER: Tuple[int, ...] = (6, 5, 4, 2, 3)


def normalize(text: str) -> str:
    """Strip decoration/ASCII/whitespace and make sure the text ends with 。 (idempotent)."""
    text = (text or "").strip()
    for s in IGNORED_STRINGS:
        text = text.replace(s, "")
    text = text.replace(".", SENTENCE_END)
    text = _ASCII_RE.sub("", text)
    return text if text.endswith(SENTENCE_END) else text + SENTENCE_END


def insert_missing_terminators(text: str, lexicon: Lexicon) -> str:
    """
    Opt-in post-pass: a verb always closes a clause, so insert 。 after the first
    occurrence of each verb when OCR dropped it. Not applied by `Gate.guide`.
    """
    for verb in lexicon.verbs:
        idx = text.find(verb)
        if idx < 0:
            continue
        end = idx + len(verb)
        if end < len(text) and text[end] != SENTENCE_END:
            text = text[:end] + SENTENCE_END + text[end:]
    return text


def resolve_slice_order(lexicon: Lexicon, preferred: Sequence[int] = SLICE_ORDER) -> Tuple[int, ...]:
    """Preferred lengths first, then any other word length the lexicon has, ascending."""
    order: List[int] = []
    for n in preferred:
        n = int(n)
        if n < 1:
            raise ValueError(f"slice length must be >= 1, got {n}")
        if n not in order:
            order.append(n)
    order.extend(n for n in lexicon.lengths if n not in order)
    return tuple(order)


class Gate:
    """Repairs one recognizer's raw text against the lexicon."""

    def __init__(self, lexicon: Lexicon, misread_table: MisreadTable,
                 edit_distance: Optional[EditDistance] = None,
                 slice_order: Sequence[int] = SLICE_ORDER):
        self.lexicon = lexicon
        self.misread_table = misread_table
        self.edit_distance = edit_distance or EditDistance()
        self.slice_order = resolve_slice_order(lexicon, slice_order)

    @classmethod
    def from_settings(cls, settings: Optional[Dict[str, Any]] = None) -> "Gate":
        settings = settings or {}
        ref = load_reference_data(settings)
        gate_cfg = settings.get("gate", {}) or {}
        return cls(
            ref.lexicon,
            ref.misread_table,
            edit_distance=EditDistance(int(gate_cfg.get("substitution_cost", 1))),
            slice_order=gate_cfg.get("slice_order") or SLICE_ORDER,
        )

    def normalize(self, text: str) -> str:
        return normalize(text)

    def insert_missing_terminators(self, text: str) -> str:
        return insert_missing_terminators(text, self.lexicon)

    def _closest(self, sub: str, candidate: str, words: Sequence[str]) -> ReRecognizeStep:
        scored = [(self.edit_distance.distance(candidate, w), w) for w in words]
        best_distance = min(d for d, _ in scored)
        group = [
            ReRecognizeStep(
                distance=d,
                corrected_word=w,
                original_slice=sub,
                misread_fixed_slice=candidate,
                consumed_length=len(w),
            )
            for d, w in scored
            if d == best_distance
        ]
        if len(group) == 1:
            return group[0]
        return max(group, key=lambda r: r.potential)

    def re_recognize(self, text: str) -> ReRecognizeStep:
        """Best correction for the head of `text`; the no-match sentinel when nothing fits."""
        if text[0] == SENTENCE_END:
            return ReRecognizeStep(
                distance=0,
                corrected_word=SENTENCE_END,
                original_slice=SENTENCE_END,
                misread_fixed_slice=SENTENCE_END,
                consumed_length=1,
            )

        best: Optional[ReRecognizeStep] = None
        for length in self.slice_order:
            if len(text) < length:
                continue
            words = self.lexicon.words_of_length(length)
            if not words:
                continue
            sub = text[:length]
            for candidate in self.misread_table.candidates(sub):
                if len(candidate) == length and self.lexicon.has_word(candidate):
                    return ReRecognizeStep(
                        distance=0,
                        corrected_word=candidate,
                        original_slice=sub,
                        misread_fixed_slice=candidate,
                        consumed_length=length,
                    )
                result = self._closest(sub, candidate, words)
                # later candidates win exact ties
                if best is None or best.normalized_distance >= result.normalized_distance:
                    best = result

        return best if best is not None else ReRecognizeStep.no_match(text)

    def guide(self, label: str, raw_text: str) -> GuideResult:
        text = normalize(raw_text)
        original = text
        logger.debug("gate received %r from %s", text, label)

        history: List[ReRecognizeStep] = []
        out: List[str] = []
        while text:
            step = self.re_recognize(text)
            history.append(step)
            if not step.is_match:
                logger.debug("no correction candidate for %s at %r; keeping original text", label, text)
                return GuideResult(original=original, corrected=original, history=history, fallback=True)
            text = text[step.consumed_length:]
            out.append(step.corrected_word)

        corrected = "".join(out)
        logger.debug("gate corrected %r -> %r for %s", original, corrected, label)
        return GuideResult(original=original, corrected=corrected, history=history)


def guide_rows(gate: Gate, rows: Iterable[Dict[str, Any]], *, insert_terminators: bool = False) -> List[Dict[str, Any]]:
    out = []
    for row in rows:
        label = row.get("recognizer", row.get("frame", "none"))
        result = gate.guide(str(label), row.get("text", ""))
        record = dict(row)
        record.update(result.model_dump())
        if insert_terminators:
            record["corrected"] = gate.insert_missing_terminators(result.corrected)
        out.append(record)
    return out


def main():
    parser = argparse.ArgumentParser(description="Correct raw OCR rows against the spell lexicon.")
    parser.add_argument("--inputs", required=True, help="raw_readings.jsonl with {recognizer|frame, text}")
    parser.add_argument("--out", required=True, help="guided.jsonl")
    parser.add_argument("--settings", help="settings yaml (data paths, gate options)")
    parser.add_argument("--insert-terminators", action="store_true",
                        help="Insert a missing 。 after known verbs in the corrected text")
    parser.add_argument("--progress-file", help="Path to pipeline_events.jsonl")
    parser.add_argument("--state-file", help="Path to pipeline_state.json")
    parser.add_argument("--run-id", help="Run identifier for logging")
    args = parser.parse_args()

    progress = ProgressLogger(state_path=args.state_file, progress_path=args.progress_file, run_id=args.run_id)
    settings = load_settings(args.settings) if args.settings else {}
    gate = Gate.from_settings(settings)

    rows = list(read_jsonl(args.inputs))
    progress.log("gate", "running", current=0, total=len(rows), message="Correcting readings",
                 artifact=args.out, module_id="gate_v1")
    guided = guide_rows(gate, rows, insert_terminators=args.insert_terminators)
    fallbacks = sum(1 for g in guided if g.get("fallback"))
    if fallbacks:
        progress.log("gate", "warning", current=len(rows), total=len(rows),
                     message=f"{fallbacks} readings kept uncorrected", module_id="gate_v1")
    save_jsonl(args.out, guided)
    progress.log("gate", "done", current=len(rows), total=len(rows),
                 message=f"Corrected {len(guided)} readings", artifact=args.out, module_id="gate_v1",
                 summary={"readings": len(guided), "fallbacks": fallbacks})
    print(f"Corrected {len(guided)} readings → {args.out}")


if __name__ == "__main__":
    main()
