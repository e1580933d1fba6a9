"""
Splitting of time intervals at the knots of a skygrid.
"""
from __future__ import annotations
from typing import Iterator, Sequence, Tuple, Union

# Returned by IntervalSegmenter.locate() when no knot lies inside an interval.
# We use a dedicated object because index 0 is a meaningful return value.
NO_INTERIOR_KNOTS = object()


class IntervalSegmenter:
    """
    Splits consecutive time intervals at grid knots.

    The segmenter keeps a cursor at the knot that opens the segment
    containing the most recently processed time. The cursor only moves
    forward, so intervals must be presented in time order. Walking all the
    intervals of one genealogy therefore costs ``O(intervals + knots)``.
    A new segmenter should be used for each genealogy.

    :param grid_times: The knot times, strictly increasing.
    """

    def __init__(self, grid_times: Sequence[float]):
        if len(grid_times) == 0:
            raise ValueError("grid_times must have non-zero length")
        self.grid_times = grid_times
        self.cursor = 0

    def _advance_to(self, start: float) -> None:
        times = self.grid_times
        if self.cursor > 0 and start < times[self.cursor]:
            raise ValueError(
                f"interval starting at {start} precedes grid knot "
                f"{self.cursor} (time {times[self.cursor]}); "
                "intervals must be processed in time order"
            )
        # A knot equal to start counts as interior, so only skip knots
        # strictly before start.
        while self.cursor + 1 < len(times) and times[self.cursor + 1] < start:
            self.cursor += 1

    def locate(self, start: float, end: float) -> Union[object, Tuple[int, int]]:
        """
        Find the knots ``g`` with ``start <= g < end``.

        The cursor is moved to the segment containing ``start``,
        but is not moved past any interior knot.

        :param float start: The start of the interval.
        :param float end: The end of the interval.
        :return: ``NO_INTERIOR_KNOTS``, or a ``(first, last)`` tuple of knot
            indices.
        """
        self._advance_to(start)
        times = self.grid_times
        first = last = -1
        i = self.cursor
        while i < len(times) and times[i] < end:
            if times[i] >= start:
                if first < 0:
                    first = i
                last = i
            i += 1
        if first < 0:
            return NO_INTERIOR_KNOTS
        return first, last

    def pieces(self, start: float, end: float) -> Iterator[Tuple[float, float, int]]:
        """
        Yield ``(a, b, segment)`` triples which exactly cover ``[start, end]``,
        such that each piece lies within a single trajectory segment.

        The partial piece before the first interior knot belongs to the
        segment containing ``start``. Full segments between consecutive
        interior knots follow, then the partial piece from the last interior
        knot to ``end``. On completion, the cursor rests at the last interior
        knot.
        """
        located = self.locate(start, end)
        if located is NO_INTERIOR_KNOTS:
            yield start, end, self.cursor
            return
        first, last = located
        times = self.grid_times
        if start < times[first]:
            yield start, times[first], self.cursor
        self.cursor = first
        while self.cursor < last:
            yield times[self.cursor], times[self.cursor + 1], self.cursor
            self.cursor += 1
        yield times[last], end, last
