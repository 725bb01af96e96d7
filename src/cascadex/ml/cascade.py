"""Haar cascade data model and the flat numeric cascade decoder.

Cascade files hold one flat array of numbers::

    [base_width, base_height,
     stage_threshold, classifier_count,
         tilted, rect_count, (x, y, width, height, weight) * rect_count,
         threshold, left_value, right_value
         ... (classifier_count times)
     ... (until exhausted)]

The decoder reads numbers only. Text files are tokenised and converted with
``float()``; nothing in a cascade file is ever evaluated as code.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterator, Sequence


class CascadeFormatError(ValueError):
    """Raised when cascade data is truncated, malformed, or unsupported."""


@dataclass(frozen=True)
class Rect:
    """One signed rectangle term, in base-window coordinates."""

    x: int
    y: int
    width: int
    height: int
    weight: float


@dataclass(frozen=True)
class HaarFeature:
    rects: tuple[Rect, ...]
    tilted: bool = False


@dataclass(frozen=True)
class WeakClassifier:
    """Threshold decision over one feature.

    ``alpha`` is voted when the feature value is below ``threshold``,
    ``beta`` otherwise.
    """

    feature: HaarFeature
    threshold: float
    alpha: float
    beta: float


@dataclass(frozen=True)
class Stage:
    classifiers: tuple[WeakClassifier, ...]
    threshold: float


@dataclass(frozen=True)
class Cascade:
    """An ordered attentional cascade defined at a base window size."""

    base_width: int
    base_height: int
    stages: tuple[Stage, ...]

    @property
    def is_configured(self) -> bool:
        return self.base_width > 0 and self.base_height > 0

    @property
    def features(self) -> tuple[HaarFeature, ...]:
        """The shared feature table, in decode order."""
        return tuple(wc.feature for stage in self.stages for wc in stage.classifiers)

    @property
    def classifier_count(self) -> int:
        return sum(len(stage.classifiers) for stage in self.stages)


# ---------------------------------------------------------------------------
# Decoding
# ---------------------------------------------------------------------------


class _Reader:
    def __init__(self, values: Sequence[float]) -> None:
        self._values = values
        self.pos = 0

    @property
    def exhausted(self) -> bool:
        return self.pos >= len(self._values)

    def number(self, what: str) -> float:
        if self.exhausted:
            raise CascadeFormatError(f"Cascade data truncated at index {self.pos} while reading {what}")
        value = float(self._values[self.pos])
        self.pos += 1
        return value

    def integer(self, what: str) -> int:
        value = self.number(what)
        if not value.is_integer():
            raise CascadeFormatError(f"Expected an integer {what} at index {self.pos - 1}, got {value}")
        return int(value)

    def count(self, what: str) -> int:
        value = self.integer(what)
        if value < 0:
            raise CascadeFormatError(f"Negative {what} at index {self.pos - 1}")
        return value


def _read_classifier(reader: _Reader) -> WeakClassifier:
    tilted = reader.number("tilted flag") != 0
    if tilted:
        raise CascadeFormatError(f"Tilted features are not supported (classifier ending near index {reader.pos})")

    rects = tuple(
        Rect(
            x=reader.integer("rect x"),
            y=reader.integer("rect y"),
            width=reader.integer("rect width"),
            height=reader.integer("rect height"),
            weight=reader.number("rect weight"),
        )
        for _ in range(reader.count("rect count"))
    )
    return WeakClassifier(
        feature=HaarFeature(rects=rects, tilted=tilted),
        threshold=reader.number("classifier threshold"),
        alpha=reader.number("left value"),
        beta=reader.number("right value"),
    )


def decode_cascade(values: Sequence[float]) -> Cascade:
    """Decode a flat numeric sequence into a ``Cascade``.

    Raises:
        CascadeFormatError: If the data ends mid-record or holds invalid values.
    """
    reader = _Reader(values)
    base_width = reader.integer("base width")
    base_height = reader.integer("base height")
    if base_width <= 0 or base_height <= 0:
        raise CascadeFormatError(f"Invalid base window size {base_width}x{base_height}")

    stages: list[Stage] = []
    while not reader.exhausted:
        threshold = reader.number("stage threshold")
        classifiers = tuple(_read_classifier(reader) for _ in range(reader.count("classifier count")))
        stages.append(Stage(classifiers=classifiers, threshold=threshold))

    return Cascade(base_width=base_width, base_height=base_height, stages=tuple(stages))


_ARRAY_RE = re.compile(r"\[([^\[\]]*)\]")


def _tokens(body: str) -> Iterator[float]:
    for index, token in enumerate(body.split(",")):
        token = token.strip()
        if not token:
            continue
        try:
            yield float(token)
        except ValueError:
            raise CascadeFormatError(f"Invalid number {token!r} at token {index}") from None


def parse_cascade_text(text: str) -> Cascade:
    """Extract the bracketed numeric array from a cascade text file and decode it.

    Accepts a bare ``[...]`` array as well as a script wrapper such as
    ``tracking.ViolaJones.classifiers.face = new Float64Array([...]);``.
    """
    match = _ARRAY_RE.search(text)
    if match is None:
        raise CascadeFormatError("No numeric array found in cascade text")
    return decode_cascade(list(_tokens(match.group(1))))
