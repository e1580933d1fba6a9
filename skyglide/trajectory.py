from __future__ import annotations
import math
from typing import Sequence, Union

import attr
import numpy as np

from .intervals import ConfigurationError
from .segmenter import IntervalSegmenter

Intercept = Union[float, Sequence[float]]


def _as_float_array(value) -> np.ndarray:
    return np.array(value, dtype=np.float64, ndmin=1)


def _check_grid(grid_times: np.ndarray, log_pop_sizes: np.ndarray) -> None:
    if grid_times.ndim != 1 or log_pop_sizes.ndim != 1:
        raise ConfigurationError("grid_times and log_pop_sizes must be 1-dimensional")
    if len(grid_times) != len(log_pop_sizes):
        raise ConfigurationError(
            f"grid_times (length {len(grid_times)}) and log_pop_sizes "
            f"(length {len(log_pop_sizes)}) must have the same length"
        )
    if len(grid_times) < 2:
        raise ConfigurationError("a skygrid needs at least two knots")
    if not np.all(np.isfinite(grid_times)) or not np.all(np.isfinite(log_pop_sizes)):
        raise ConfigurationError("grid_times and log_pop_sizes must be finite")
    if np.any(np.diff(grid_times) <= 0):
        raise ConfigurationError("grid_times must be strictly increasing")


@attr.s(auto_attribs=True, kw_only=True, slots=True)
class SkygridTrajectory:
    """
    A piecewise-affine population size trajectory defined on a grid of knots.

    Segment ``j`` opens at knot ``j`` and closes at knot ``j + 1``.
    The first segment also covers all times before the first knot, and the
    last segment covers all times after the last knot.
    Within segment ``j`` the population size is

    .. code::

        N(t) = slope(j) * t + intercept(j)

    For interior segments, the slope is the difference of adjacent log
    population sizes divided by the distance between their knots.
    The two edge segments use the plain difference of the log population
    sizes at the first (or last) pair of knots, without dividing by the gap.

    :ivar numpy.ndarray grid_times: Strictly increasing knot times.
    :ivar numpy.ndarray log_pop_sizes: Log population size at each knot.
    :ivar intercept: The intercept of every segment, either as a single
        value or as one value per segment.
    """

    grid_times: np.ndarray = attr.ib(converter=_as_float_array)
    log_pop_sizes: np.ndarray = attr.ib(converter=_as_float_array)
    intercept: Intercept = attr.ib(default=0.0)

    def __attrs_post_init__(self):
        _check_grid(self.grid_times, self.log_pop_sizes)
        self._check_intercept()

    def _check_intercept(self):
        if np.ndim(self.intercept) == 0:
            if not math.isfinite(self.intercept):
                raise ConfigurationError("intercept must be finite")
        else:
            if len(self.intercept) != self.num_knots:
                raise ConfigurationError(
                    f"intercept must have one value per segment ({self.num_knots}), "
                    f"not {len(self.intercept)}"
                )
            if not all(math.isfinite(c) for c in self.intercept):
                raise ConfigurationError("intercept must be finite")

    @property
    def num_knots(self) -> int:
        return len(self.grid_times)

    def set_log_pop_size(self, index: int, value: float) -> None:
        log_pop_sizes = self.log_pop_sizes.copy()
        log_pop_sizes[index] = value
        _check_grid(self.grid_times, log_pop_sizes)
        self.log_pop_sizes = log_pop_sizes

    def set_grid_time(self, index: int, value: float) -> None:
        grid_times = self.grid_times.copy()
        grid_times[index] = value
        _check_grid(grid_times, self.log_pop_sizes)
        self.grid_times = grid_times

    def set_intercept(self, value: Intercept) -> None:
        previous = self.intercept
        self.intercept = value
        try:
            self._check_intercept()
        except ConfigurationError:
            self.intercept = previous
            raise

    def slope(self, segment: int) -> float:
        """
        The slope of the given segment.

        :param int segment: The segment index.
        :rtype: float
        """
        last = self.num_knots - 1
        y = self.log_pop_sizes
        if segment == 0:
            return float(y[1] - y[0])
        if segment == last:
            return float(y[last] - y[last - 1])
        t = self.grid_times
        return float((y[segment + 1] - y[segment]) / (t[segment + 1] - t[segment]))

    def segment_intercept(self, segment: int) -> float:
        if np.ndim(self.intercept) == 0:
            return float(self.intercept)
        return float(self.intercept[segment])

    def segment_index(self, time: float) -> int:
        """
        The index of the segment containing the given time.

        A time equal to a knot belongs to the segment that the knot opens.

        :param float time: The time.
        :rtype: int
        """
        index = int(np.searchsorted(self.grid_times, time, side="right")) - 1
        return min(max(index, 0), self.num_knots - 1)

    def size_at(self, time: float) -> float:
        """
        Get the population size at a given time.

        :param float time: The time at which the size should be calculated.
        :return: The population size.
        :rtype: float
        """
        segment = self.segment_index(time)
        return self.slope(segment) * time + self.segment_intercept(segment)

    def segment_integral(self, start: float, end: float, segment: int) -> float:
        """
        Integrate the reciprocal population size from ``start`` to ``end``,
        using the affine function of a single segment.

        The population size must not be negative anywhere in the range,
        otherwise a :class:`.ConfigurationError` is raised. A size of exactly
        zero at either limit gives an infinite integral.

        :param float start: The lower limit of integration.
        :param float end: The upper limit of integration.
        :param int segment: The segment whose affine function is used.
        :return: The integral of ``1 / N(t)``.
        :rtype: float
        """
        if end == start:
            return 0.0
        slope = self.slope(segment)
        intercept = self.segment_intercept(segment)
        if slope == 0 and intercept == 0:
            raise ConfigurationError(
                f"segment {segment}: slope and intercept are both zero, "
                "so the population size is zero everywhere on the segment"
            )
        if slope == 0:
            if intercept < 0:
                raise ConfigurationError(
                    f"segment {segment}: population size {intercept} is negative"
                )
            return (end - start) / intercept
        size_start = slope * start + intercept
        size_end = slope * end + intercept
        if size_start < 0 or size_end < 0:
            raise ConfigurationError(
                f"segment {segment}: population size is negative "
                f"over [{start}, {end}]"
            )
        if size_start == 0 or size_end == 0:
            # 1/N(t) is not integrable up to a root of N(t).
            return math.inf
        return math.log(size_end / size_start) / slope

    def integral(self, start: float, end: float) -> float:
        """
        Integrate the reciprocal population size over an arbitrary range,
        which may span any number of knots.

        If ``end < start`` the negated integral over ``[end, start]``
        is returned.

        :param float start: The lower limit of integration.
        :param float end: The upper limit of integration.
        :return: The integral of ``1 / N(t)``.
        :rtype: float
        """
        if end < start:
            return -self.integral(end, start)
        segmenter = IntervalSegmenter(self.grid_times)
        return sum(
            self.segment_integral(a, b, segment)
            for a, b, segment in segmenter.pieces(start, end)
        )
