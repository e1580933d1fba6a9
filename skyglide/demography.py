"""
Demographic functions for the conditioned (truncated) coalescent.

Any object with ``size_at(time)`` and ``integral(start, end)`` methods may be
used. Times may be negative, as the conditioned coalescent puts its time
origin at the conditioning horizon.
"""
from __future__ import annotations
import abc
import math

import attr

from .intervals import ConfigurationError, int_or_float, positive, finite
from .trajectory import SkygridTrajectory


class DemographicFunction(abc.ABC):
    """Abstract base class for population size functions of time."""

    @abc.abstractmethod
    def size_at(self, time: float) -> float:
        """
        Get the population size at a given time.

        :param float time: The time.
        :rtype: float
        """

    @abc.abstractmethod
    def integral(self, start: float, end: float) -> float:
        """
        Integrate the reciprocal population size from ``start`` to ``end``.

        :param float start: The lower limit of integration.
        :param float end: The upper limit of integration.
        :rtype: float
        """


DemographicFunction.register(SkygridTrajectory)


@attr.s(auto_attribs=True, kw_only=True, slots=True, frozen=True)
class ConstantSize(DemographicFunction):
    """
    A population of constant size.

    :ivar float size: The population size.
    """

    size: float = attr.ib(validator=[int_or_float, positive, finite])

    def size_at(self, time: float) -> float:
        return self.size

    def integral(self, start: float, end: float) -> float:
        return (end - start) / self.size


@attr.s(auto_attribs=True, kw_only=True, slots=True, frozen=True)
class ExponentialGrowth(DemographicFunction):
    """
    A population growing exponentially towards the present.

    The size at time ``t`` is

    .. code::

        N = size * math.exp(-rate * t)

    so ``size`` is the population size at time zero, and a positive
    ``rate`` means the population shrinks going back in time.

    :ivar float size: The population size at time zero.
    :ivar float rate: The growth rate.
    """

    size: float = attr.ib(validator=[int_or_float, positive, finite])
    rate: float = attr.ib(default=0.0, validator=[int_or_float, finite])

    def size_at(self, time: float) -> float:
        return self.size * math.exp(-self.rate * time)

    def integral(self, start: float, end: float) -> float:
        if self.rate == 0:
            return (end - start) / self.size
        r = self.rate
        return (math.exp(r * end) - math.exp(r * start)) / (r * self.size)


@attr.s(auto_attribs=True, kw_only=True, slots=True, frozen=True)
class LinearChange(DemographicFunction):
    """
    A population whose size changes linearly with time.

    .. code::

        N = size + slope * t

    The size must remain positive over any range that is integrated.

    :ivar float size: The population size at time zero.
    :ivar float slope: The change in size per unit time.
    """

    size: float = attr.ib(validator=[int_or_float, positive, finite])
    slope: float = attr.ib(default=0.0, validator=[int_or_float, finite])

    def size_at(self, time: float) -> float:
        return self.size + self.slope * time

    def integral(self, start: float, end: float) -> float:
        if self.slope == 0:
            return (end - start) / self.size
        size_start = self.size_at(start)
        size_end = self.size_at(end)
        if size_start <= 0 or size_end <= 0:
            raise ConfigurationError(
                f"population size is not positive over [{start}, {end}]"
            )
        return math.log(size_end / size_start) / self.slope
