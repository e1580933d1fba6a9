"""
Coalescent log-likelihoods of a single genealogy.

Two variants are provided:

 - :func:`skygrid_log_likelihood` integrates the coalescent hazard under a
   :class:`.SkygridTrajectory`, walking the grid with an
   :class:`.IntervalSegmenter`.
 - :func:`conditioned_log_likelihood` is the coalescent conditioned on the
   time to the most recent common ancestor being no greater than a horizon,
   under any :class:`.DemographicFunction`.

Both are wrapped by accumulator objects with a common
``log_likelihood(schedule)`` method, which is what a
:class:`.MultiTreeAggregator` calls.
"""
from __future__ import annotations
import abc
import logging
import math
from typing import Optional

import attr

from .intervals import EventSchedule, IntervalType, int_or_float, non_negative
from .segmenter import IntervalSegmenter
from .trajectory import SkygridTrajectory
from .demography import DemographicFunction

logger = logging.getLogger(__name__)


def choose2(k: int) -> float:
    return 0.5 * k * (k - 1)


def log1mexp(x: float) -> float:
    """
    Return ``log(1 - exp(-x))`` for ``x >= 0``.

    This is accurate for ``x`` close to zero, where the naive formula
    suffers catastrophic cancellation. Returns ``-inf`` if ``x == 0``.
    """
    if x <= 0:
        return -math.inf
    return math.log(-math.expm1(-x))


def skygrid_log_likelihood(
    schedule: EventSchedule,
    trajectory: SkygridTrajectory,
    *,
    coalescent_density: bool = False,
) -> float:
    """
    The log-likelihood of a genealogy under a skygrid trajectory.

    For each interval with ``k`` lineages, the hazard
    ``choose2(k) * integral(1 / N(t))`` over the interval is accumulated,
    and the log-likelihood is the negated total hazard.

    :param EventSchedule schedule: The intervals of the genealogy.
    :param SkygridTrajectory trajectory: The population size trajectory.
    :param bool coalescent_density: If True, also subtract
        ``log(N(t))`` at the time of each coalescence, which gives the
        classical coalescent density. By default this term is omitted.
    :return: The log-likelihood.
    :rtype: float
    """
    segmenter = IntervalSegmenter(trajectory.grid_times)
    hazard = 0.0
    log_size_sum = 0.0
    for interval in schedule:
        k = interval.lineage_count
        if k < 2:
            continue
        area = sum(
            trajectory.segment_integral(a, b, segment)
            for a, b, segment in segmenter.pieces(
                interval.start_time, interval.end_time
            )
        )
        hazard += choose2(k) * area
        if coalescent_density and interval.interval_type is IntervalType.COALESCENT:
            size = trajectory.size_at(interval.end_time)
            if size <= 0:
                logger.debug("population size is not positive at a coalescence")
                return -math.inf
            log_size_sum += math.log(size)
    log_likelihood = -hazard - log_size_sum
    if math.isinf(log_likelihood):
        logger.debug("skygrid coalescent hazard is unbounded")
    return log_likelihood


def conditioned_log_likelihood(
    schedule: EventSchedule,
    demography: DemographicFunction,
    *,
    max_height: Optional[float] = None,
    threshold: float = 0.0,
) -> float:
    """
    The log-likelihood of a genealogy under a coalescent process conditioned
    on coalescence of all lineages before ``max_height``.

    Time is shifted so that ``max_height`` is at time zero and the
    genealogy lies at negative times. The demographic function is
    evaluated in these shifted times.

    Negative infinity is returned if an interval of positive duration has
    zero hazard, if the size at a coalescence fails the stability check
    ``N * (interval_area / duration) >= threshold``, if the size at a
    coalescence is not positive, or if the genealogy extends past the
    horizon. Sample intervals are evaluated in log space, so large hazard
    areas give large negative but finite values.

    :param EventSchedule schedule: The intervals of the genealogy.
    :param DemographicFunction demography: The population size function.
    :param float max_height: The horizon. Defaults to the schedule's horizon.
    :param float threshold: The numerical stability tolerance.
    :return: The log-likelihood.
    :rtype: float
    """
    if max_height is None:
        max_height = schedule.horizon
    if len(schedule) == 0:
        return 0.0

    log_likelihood = 0.0
    start_time = schedule[0].start_time - max_height
    for i, interval in enumerate(schedule):
        duration = interval.duration
        finish_time = start_time + duration

        interval_area = demography.integral(start_time, finish_time)
        normalisation_area = demography.integral(start_time, 0)

        if interval_area == 0 and duration != 0:
            logger.debug(f"interval {i}: zero hazard over a positive duration")
            return -math.inf

        k = interval.lineage_count
        if k >= 2:
            k_choose_2 = choose2(k)
            if interval.interval_type is IntervalType.COALESCENT:
                log_likelihood -= k_choose_2 * interval_area
                size = demography.size_at(finish_time)
                if size <= 0:
                    logger.debug(f"interval {i}: non-positive population size")
                    return -math.inf
                if duration == 0 or size * (interval_area / duration) >= threshold:
                    log_likelihood -= math.log(size)
                else:
                    logger.debug(f"interval {i}: failed the stability threshold")
                    return -math.inf
            else:
                if normalisation_area <= interval_area:
                    logger.debug(f"interval {i}: extends beyond the horizon")
                    return -math.inf
                # log(exp(-C * a) - exp(-C * b)) for b > a.
                log_likelihood += -k_choose_2 * interval_area + log1mexp(
                    k_choose_2 * (normalisation_area - interval_area)
                )

            log_denominator = log1mexp(k_choose_2 * normalisation_area)
            if math.isinf(log_denominator):
                logger.debug(f"interval {i}: starts at the horizon")
                return -math.inf
            log_likelihood -= log_denominator

        start_time = finish_time

    return log_likelihood


class CoalescentAccumulator(abc.ABC):
    """
    Abstract base class for per-genealogy coalescent log-likelihoods.
    """

    @abc.abstractmethod
    def log_likelihood(self, schedule: EventSchedule) -> float:
        """
        Return the log-likelihood of the genealogy with the given schedule.

        :param EventSchedule schedule: The intervals of the genealogy.
        :rtype: float
        """


@attr.s(auto_attribs=True, kw_only=True, slots=True)
class SkygridAccumulator(CoalescentAccumulator):
    """
    The skygrid coalescent, see :func:`skygrid_log_likelihood`.

    :ivar SkygridTrajectory trajectory: The population size trajectory.
    :ivar bool coalescent_density: Whether to include the ``log(N(t))``
        terms at coalescence times.
    """

    trajectory: SkygridTrajectory = attr.ib(
        validator=attr.validators.instance_of(SkygridTrajectory)
    )
    coalescent_density: bool = attr.ib(
        default=False, validator=attr.validators.instance_of(bool)
    )

    def log_likelihood(self, schedule: EventSchedule) -> float:
        return skygrid_log_likelihood(
            schedule, self.trajectory, coalescent_density=self.coalescent_density
        )


@attr.s(auto_attribs=True, kw_only=True, slots=True)
class MaxTMRCAAccumulator(CoalescentAccumulator):
    """
    The coalescent conditioned on a maximum time to the most recent common
    ancestor, see :func:`conditioned_log_likelihood`.
    Each schedule supplies its own horizon.

    :ivar DemographicFunction demography: The population size function.
    :ivar float threshold: The numerical stability tolerance.
    """

    demography: DemographicFunction = attr.ib(
        validator=attr.validators.instance_of(DemographicFunction)
    )
    threshold: float = attr.ib(default=0.0, validator=[int_or_float, non_negative])

    def log_likelihood(self, schedule: EventSchedule) -> float:
        return conditioned_log_likelihood(
            schedule, self.demography, threshold=self.threshold
        )
