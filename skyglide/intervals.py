from __future__ import annotations
import enum
import math
import numbers
from typing import List, Optional, Sequence, Union

import attr

Number = Union[int, float]
Time = Number


class ConfigurationError(ValueError):
    """
    A trajectory or model was configured in a way that cannot be evaluated.
    """


class DimensionMismatchError(ValueError):
    """
    Interval, tree or partition bookkeeping is inconsistent.
    """


# Validator functions.


def int_or_float(self, attribute, value):
    if (
        not isinstance(value, numbers.Real) and not hasattr(value, "__float__")
    ) or value != value:  # type-agnostic test for NaN
        raise TypeError(f"{attribute.name} must be a number")


def positive(self, attribute, value):
    if value <= 0:
        raise ValueError(f"{attribute.name} must be greater than zero")


def non_negative(self, attribute, value):
    if value < 0:
        raise ValueError(f"{attribute.name} must be non-negative")


def finite(self, attribute, value):
    if math.isinf(value):
        raise ValueError(f"{attribute.name} must be finite")


class IntervalType(enum.Enum):
    """
    The event that closes an interval.
    """

    COALESCENT = "coalescent"
    SAMPLE = "sample"
    OTHER = "other"


@attr.s(auto_attribs=True, kw_only=True, slots=True, frozen=True)
class Interval:
    """
    A span of time over which the number of lineages is constant.

    Times are heights, measured backwards from the most recent sample,
    so ``start_time`` is the more recent end of the interval.

    :ivar float start_time: The (more recent) start of the interval.
    :ivar float end_time: The (more ancient) end of the interval.
    :ivar int lineage_count: Number of lineages extant within the interval.
    :ivar IntervalType interval_type: The event at ``end_time``.
    """

    start_time: Time = attr.ib(validator=[int_or_float, finite])
    end_time: Time = attr.ib(validator=[int_or_float, finite])
    lineage_count: int = attr.ib(
        validator=[attr.validators.instance_of(int), non_negative]
    )
    interval_type: IntervalType = attr.ib(
        validator=attr.validators.instance_of(IntervalType)
    )

    def __attrs_post_init__(self):
        if self.end_time < self.start_time:
            raise ValueError("must have end_time >= start_time")

    @property
    def duration(self) -> float:
        """
        The length of the interval.

        :rtype: float
        """
        return self.end_time - self.start_time


def _check_contiguous(intervals: Sequence[Interval]) -> None:
    for i in range(1, len(intervals)):
        previous, current = intervals[i - 1], intervals[i]
        if previous.end_time != current.start_time:
            raise DimensionMismatchError(
                f"interval[{i}].start_time != interval[{i}-1].end_time"
            )
        if (
            previous.interval_type is IntervalType.COALESCENT
            and current.lineage_count != previous.lineage_count - 1
        ):
            raise DimensionMismatchError(
                f"interval[{i}]: a coalescence must reduce the lineage count by one "
                f"(got {previous.lineage_count} -> {current.lineage_count})"
            )


@attr.s(auto_attribs=True, kw_only=True, slots=True, frozen=True)
class EventSchedule:
    """
    The time-ordered intervals of one genealogy.

    Schedules are normally produced by a tree, and are rebuilt whenever the
    tree's topology or node heights change.

    :ivar list[Interval] intervals: Contiguous intervals, ordered from the
        most recent sample towards the root.
    :ivar float max_height: The conditioning horizon, i.e. an upper bound on
        the time to the most recent common ancestor. If not given, this is
        the end time of the last interval.
    """

    intervals: List[Interval] = attr.ib(
        converter=list,
        validator=attr.validators.deep_iterable(
            member_validator=attr.validators.instance_of(Interval),
        ),
    )
    max_height: Optional[Time] = attr.ib(
        default=None,
        validator=attr.validators.optional([int_or_float, finite]),
    )

    def __attrs_post_init__(self):
        _check_contiguous(self.intervals)
        if (
            self.max_height is not None
            and len(self.intervals) > 0
            and self.max_height < self.intervals[-1].end_time
        ):
            raise ValueError("max_height must not be below the last event")

    def __len__(self) -> int:
        return len(self.intervals)

    def __iter__(self):
        return iter(self.intervals)

    def __getitem__(self, index: int) -> Interval:
        return self.intervals[index]

    @property
    def horizon(self) -> float:
        """
        The conditioning horizon used by the truncated coalescent.

        :rtype: float
        """
        if self.max_height is not None:
            return self.max_height
        if len(self.intervals) == 0:
            return 0.0
        return self.intervals[-1].end_time

    @classmethod
    def from_heights(
        cls,
        sample_heights: Sequence[Time],
        coalescence_heights: Sequence[Time],
        *,
        max_height: Optional[Time] = None,
    ) -> EventSchedule:
        """
        Build a schedule from the heights of a genealogy's tips and internal
        nodes.

        Events are sorted by height. Where a sample and a coalescence share
        a height, the sample is processed first. The first interval starts at
        the most recent sample.

        :param sample_heights: Heights of the sampled lineages (tips).
        :param coalescence_heights: Heights of the internal nodes.
        :param max_height: Optional conditioning horizon.
        :return: The event schedule.
        :rtype: EventSchedule
        """
        if len(sample_heights) == 0:
            raise DimensionMismatchError("a genealogy needs at least one sample")
        if len(coalescence_heights) != len(sample_heights) - 1:
            raise DimensionMismatchError(
                f"{len(sample_heights)} samples need "
                f"{len(sample_heights) - 1} coalescences, "
                f"got {len(coalescence_heights)}"
            )
        # The sort key puts samples (0) before coalescences (1) at equal heights.
        events = sorted(
            [(float(h), 0, IntervalType.SAMPLE) for h in sample_heights]
            + [(float(h), 1, IntervalType.COALESCENT) for h in coalescence_heights],
            key=lambda event: (event[0], event[1]),
        )
        time, _, _ = events[0]
        lineages = 1
        intervals = []
        for height, _, event_type in events[1:]:
            if event_type is IntervalType.COALESCENT and lineages < 2:
                raise DimensionMismatchError(
                    f"coalescence at height {height} with fewer than two lineages"
                )
            intervals.append(
                Interval(
                    start_time=time,
                    end_time=height,
                    lineage_count=lineages,
                    interval_type=event_type,
                )
            )
            if event_type is IntervalType.COALESCENT:
                lineages -= 1
            else:
                lineages += 1
            time = height
        return cls(intervals=intervals, max_height=max_height)


@attr.s(auto_attribs=True, kw_only=True, slots=True)
class Genealogy:
    """
    A minimal genealogy: the heights of its tips and internal nodes.

    This is the smallest tree collaborator that can feed the likelihood
    engine. Heights may be changed in place, after which the owner is
    responsible for notifying a :class:`.ChangeTracker`.

    :ivar list[float] sample_heights: Heights of the tips.
    :ivar list[float] coalescence_heights: Heights of the internal nodes.
    :ivar float max_height: Optional upper bound on the root height.
    """

    sample_heights: List[Time] = attr.ib(
        converter=list,
        validator=attr.validators.deep_iterable(
            member_validator=attr.validators.and_(int_or_float, non_negative, finite)
        ),
    )
    coalescence_heights: List[Time] = attr.ib(
        converter=list,
        validator=attr.validators.deep_iterable(
            member_validator=attr.validators.and_(int_or_float, non_negative, finite)
        ),
    )
    max_height: Optional[Time] = attr.ib(
        default=None,
        validator=attr.validators.optional([int_or_float, non_negative, finite]),
    )

    @property
    def root_height(self) -> float:
        return max(self.sample_heights + self.coalescence_heights)

    def event_schedule(self) -> EventSchedule:
        return EventSchedule.from_heights(
            self.sample_heights, self.coalescence_heights, max_height=self.max_height
        )
