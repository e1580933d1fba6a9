__version__ = "0.1.0"

from .intervals import (
    ConfigurationError,
    DimensionMismatchError,
    IntervalType,
    Interval,
    EventSchedule,
    Genealogy,
)
from .segmenter import IntervalSegmenter, NO_INTERIOR_KNOTS
from .trajectory import SkygridTrajectory
from .demography import DemographicFunction, ConstantSize, ExponentialGrowth, LinearChange
from .coalescent import (
    CoalescentAccumulator,
    SkygridAccumulator,
    MaxTMRCAAccumulator,
    skygrid_log_likelihood,
    conditioned_log_likelihood,
)
from .aggregate import MultiTreeAggregator, ChangeTracker, Cached, UNKNOWN
from .model import Model, Tree
from .load_dump import (
    load_asdict,
    loads_asdict,
    load,
    loads,
    dump,
    dumps,
    dump_breakdown,
)

__all__ = [
    "ConfigurationError",
    "DimensionMismatchError",
    "IntervalType",
    "Interval",
    "EventSchedule",
    "Genealogy",
    "IntervalSegmenter",
    "NO_INTERIOR_KNOTS",
    "SkygridTrajectory",
    "DemographicFunction",
    "ConstantSize",
    "ExponentialGrowth",
    "LinearChange",
    "CoalescentAccumulator",
    "SkygridAccumulator",
    "MaxTMRCAAccumulator",
    "skygrid_log_likelihood",
    "conditioned_log_likelihood",
    "MultiTreeAggregator",
    "ChangeTracker",
    "Cached",
    "UNKNOWN",
    "Model",
    "Tree",
    "load_asdict",
    "loads_asdict",
    "load",
    "loads",
    "dump",
    "dumps",
    "dump_breakdown",
]


# Override the symbols that are returned when calling dir(<module-name>).
# https://www.python.org/dev/peps/pep-0562/
# We do this because the Python REPL and IPython notebooks ignore __all__
# when providing autocomplete suggestions. They instead rely on dir().
# By not showing internal symbols in the dir() output, we reduce the chance
# that users rely on non-public features.
def __dir__():
    return sorted(__all__)
