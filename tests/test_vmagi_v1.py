import logging
from pathlib import Path

import pytest

from chant.common.lexicon import Lexicon
from chant.common.misread import MisreadTable
from chant.common.ocr import Direction, Recognizer
from chant.consensus.vmagi_v1.main import (
    FrameConsensus,
    choose_frames,
    frame_number,
    numbered_frames,
    positional_majority,
    vote_length,
)
from chant.correct.gate_v1.main import Gate

LEXICON = Lexicon(verbs=[], nouns=["猫", "犬", "猿"])
FIVE_FRAMES = [(1, "猫犬。"), (2, "猫犬。"), (3, "猿犬。"), (4, "猫犬犬。"), (5, "猫。")]


class PathRecognizer(Recognizer):
    name = "tesseract"

    def __init__(self, texts):
        self.texts = texts

    def recognize(self, image_path, direction=Direction.HORIZONTAL):
        return self.texts[Path(image_path).name]


def test_vote_length_mode_with_first_seen_tie_break():
    length, votes = vote_length(["猫犬。", "猫犬。", "猿犬。", "猫犬犬。", "猫。"])
    assert length == 3
    assert votes == {3: 3, 4: 1, 2: 1}
    assert vote_length(["猫。", "猫犬。"])[0] == 2
    assert vote_length([]) == (0, {})


def test_positional_majority_only_counts_long_enough_frames():
    texts = ["猫犬。", "猫犬。", "猿犬。", "猫犬犬。", "猫。"]
    assert positional_majority(texts, 3) == "猫犬。"
    assert positional_majority(["猫犬", "猿", "猿"], 2) == "猿犬"


def test_frame_consensus_over_five_frames():
    consensus = FrameConsensus(Gate(LEXICON, MisreadTable({})), max_workers=3)
    answer = consensus.answer_from_frames(FIVE_FRAMES)
    assert answer.text == "猫犬。"
    assert answer.length_votes == {3: 3, 4: 1, 2: 1}
    assert [r.frame for r in answer.readings] == [1, 2, 3, 4, 5]
    assert answer.readings[3].corrected_text == "猫犬犬。"


def test_frame_consensus_empty_input():
    consensus = FrameConsensus(Gate(LEXICON, MisreadTable({})))
    answer = consensus.answer_from_frames([])
    assert answer.text == ""
    assert answer.length_votes == {}
    assert answer.readings == []


def test_answer_from_images_reads_each_frame():
    recognizer = PathRecognizer({"0001.png": "猫犬", "0002.png": "猫犬。", "0003.png": "猿 犬"})
    consensus = FrameConsensus(Gate(LEXICON, MisreadTable({})))
    ticks = []
    answer = consensus.answer_from_images(
        [(1, "frames/0001.png"), (2, "frames/0002.png"), (3, "frames/0003.png")],
        recognizer,
        on_progress=lambda: ticks.append(1),
    )
    assert answer.text == "猫犬。"
    assert [r.raw_text for r in answer.readings] == ["猫犬", "猫犬。", "猿 犬"]
    assert len(ticks) == 3


def test_frame_number_from_stem():
    assert frame_number("frames/0042.png") == 42
    assert frame_number(Path("7.jpg")) == 7
    assert frame_number("cover.png") is None
    assert frame_number("frame-3.png") is None


def test_numbered_frames_skips_unnumbered_files(caplog):
    with caplog.at_level(logging.WARNING):
        frames = numbered_frames(["0002.png", "cover.png", "0010.png"])
    assert frames == [(2, "0002.png"), (10, "0010.png")]
    assert "cover.png" in caplog.text


def test_choose_frames_samples_in_frame_order():
    paths = [f"{i:04d}.png" for i in range(1, 21)]
    chosen = choose_frames(paths, 5, seed=7)
    assert len(chosen) == 5
    assert chosen == sorted(chosen)
    assert chosen == choose_frames(paths, 5, seed=7)
    assert choose_frames(paths[:3], 10) == paths[:3]


def test_choose_frames_rejects_non_positive_count():
    with pytest.raises(ValueError):
        choose_frames(["0001.png"], 0)
    with pytest.raises(ValueError):
        choose_frames(["0001.png"], -2)
