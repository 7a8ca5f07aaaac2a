from __future__ import annotations

import sys
from io import StringIO
from pathlib import Path

import pytest

from mcmoves.io import Observer, SummaryObserver, TextObserver
from mcmoves.mc import Propagator
from mcmoves.moves import AtomicTranslation


def test_observers(tmp_path):
    """Test the `Observer` and `TextObserver` classes."""
    observer = Observer(interval=3)

    assert observer.interval == 3
    assert observer.to_dict() == {"name": "Observer", "kwargs": {"interval": 3}}

    file_path = Path(tmp_path, "test.txt")
    text_observer = TextObserver(file=file_path, interval=1)

    assert text_observer.file.name == str(file_path)
    assert text_observer.mode == "a"
    assert text_observer.encoding == "utf-8"
    assert str(text_observer) == f"Path:{file_path}"

    text_observer.close()

    assert text_observer.file.closed

    text_observer.file = "-"

    assert text_observer.file is sys.stdout
    assert str(text_observer).startswith("Stream:")

    text_observer.close()

    assert not sys.stdout.closed

    with pytest.raises(TypeError):
        text_observer.file = 123  # type: ignore[assignment]

    with pytest.raises(TypeError):
        text_observer.file = None  # type: ignore[assignment]

    closed = StringIO()
    closed.close()

    with pytest.raises(ValueError, match="closed file"):
        TextObserver(file=closed)

    assert text_observer.to_dict() == {
        "name": "TextObserver",
        "kwargs": {"interval": 1, "mode": "a"},
    }


def test_text_observer_repr():
    """Test the `__repr__` method of the `TextObserver` class."""
    observer = TextObserver(StringIO(), interval=1)

    assert repr(observer) == "TextObserver(Class:StringIO, a)"


def test_summary_observer(salt_space, ideal, tmp_path):
    """Test the `SummaryObserver` class."""
    propagator = Propagator(salt_space, ideal, seed=5)
    propagator.add_move(AtomicTranslation(salt_space, ideal, rng=propagator.rng, group="salt"))

    file_path = Path(tmp_path, "summary.txt")
    summary = SummaryObserver(propagator, file_path, interval=-3)

    assert summary.mode == "w"

    propagator.file_manager.attach_observer("summary", summary)
    propagator.run(5)
    propagator.close()

    text = file_path.read_text(encoding="utf-8")

    assert text.count("Propagator\n") == 1
    assert "Single Particle Translation" in text
    assert "Energy drift [kT]" in text
