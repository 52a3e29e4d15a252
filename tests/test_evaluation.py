import pytest

from evaluation import TaggingReport


def test_counts_precision_and_recall():
    report = TaggingReport({0: "B-PER", 1: "I-PER", 2: "O"})
    report.add([0, 1, 2], [0, 1, 2])
    report.add([2, 2, 0], [0, 2, 0])

    assert report.gold_count == [2, 1, 3]
    assert report.model_count == [3, 1, 2]
    assert report.correct == [2, 1, 2]
    assert report.precision(0) == pytest.approx(2 / 3)
    assert report.recall(2) == pytest.approx(2 / 3)
    assert report.instance_correct == 1
    assert report.accuracy == pytest.approx(0.5)


def test_unpredicted_tag_has_zero_precision():
    report = TaggingReport({0: "A", 1: "B"})
    report.add([1], [0])
    assert report.precision(1) == 0.0
    assert report.recall(1) == 0.0
    assert report.accuracy == 0.0


def test_format_lines():
    report = TaggingReport({0: "A", 1: "B"})
    report.add([0, 1], [0, 0])
    assert report.format_lines() == [
        "A\t2\t1\t1\t0.5000\t1.0000",
        "B\t0\t0\t1\t0.0000\t0.0000",
        "0\t1\t0.0000",
    ]


def test_empty_report():
    report = TaggingReport({})
    assert report.format_lines() == ["0\t0\t0.0000"]
