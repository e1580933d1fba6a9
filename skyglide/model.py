from __future__ import annotations
import copy
import math
import numbers
from typing import Any, List, MutableMapping, Optional
import warnings

import attr

from .intervals import Genealogy, int_or_float, non_negative
from .trajectory import SkygridTrajectory
from .coalescent import MaxTMRCAAccumulator, SkygridAccumulator
from .aggregate import MultiTreeAggregator

# We need to use this trick because None is a meaningful input value for these
# pop_x functions.
NO_DEFAULT = object()


def validate_item(name, value, required_type, scope):
    if not isinstance(value, required_type):
        raise TypeError(
            f"{scope}: field '{name}' must be a {required_type}; "
            f"current type is {type(value)}."
        )


def pop_item(data, name, *, required_type, default=NO_DEFAULT, scope=""):
    if name in data:
        value = data.pop(name)
        validate_item(name, value, required_type, scope=scope)
    else:
        if default is NO_DEFAULT:
            raise KeyError(f"{scope}: required field '{name}' not found")
        value = default
    return value


def pop_list(data, name, default=NO_DEFAULT, required_type=None, scope=""):
    value = pop_item(data, name, default=default, required_type=list, scope=scope)
    if required_type is not None and value is not None:
        for item in value:
            validate_item(name, item, required_type, scope)
    return value


def pop_object(data, name, default=NO_DEFAULT, scope=""):
    return pop_item(
        data, name, default=default, required_type=MutableMapping, scope=scope
    )


def check_allowed(data, allowed_fields, scope):
    for key in data.keys():
        if key not in allowed_fields:
            raise KeyError(
                f"{scope}: unexpected field: '{key}'. "
                f"Allowed fields are: {allowed_fields}"
            )


@attr.s(auto_attribs=True, kw_only=True, slots=True)
class Tree:
    """
    A named genealogy and the partition it belongs to.

    :ivar str name: A name for the genealogy.
    :ivar str partition: The partition (e.g. locus) the genealogy belongs to.
    :ivar Genealogy genealogy: The node heights of the genealogy.
    """

    name: str = attr.ib(validator=attr.validators.instance_of(str))
    partition: str = attr.ib(
        default="default", validator=attr.validators.instance_of(str)
    )
    genealogy: Genealogy = attr.ib(validator=attr.validators.instance_of(Genealogy))


@attr.s(auto_attribs=True, kw_only=True, slots=True)
class Model:
    """
    A skygrid trajectory together with the genealogies it is evaluated on.

    Model objects are usually loaded from a YAML or JSON document,
    see :func:`skyglide.load`.

    :ivar str description: A human readable description of the model.
    :ivar SkygridTrajectory trajectory: The population size trajectory.
    :ivar bool conditioned: If True, genealogies are evaluated under the
        coalescent conditioned on a maximum time to the most recent common
        ancestor.
    :ivar float threshold: The numerical stability tolerance of the
        conditioned coalescent.
    :ivar list[Tree] trees: The genealogies.
    """

    description: str = attr.ib(default="", validator=attr.validators.instance_of(str))
    trajectory: SkygridTrajectory = attr.ib(
        validator=attr.validators.instance_of(SkygridTrajectory)
    )
    conditioned: bool = attr.ib(
        default=False, validator=attr.validators.instance_of(bool)
    )
    threshold: float = attr.ib(default=0.0, validator=[int_or_float, non_negative])
    trees: List[Tree] = attr.ib(
        factory=list,
        validator=attr.validators.deep_iterable(
            member_validator=attr.validators.instance_of(Tree),
            iterable_validator=attr.validators.instance_of(list),
        ),
    )

    def __attrs_post_init__(self):
        names = [tree.name for tree in self.trees]
        if len(set(names)) != len(names):
            raise ValueError(f"tree names must be unique: {names}")

    def accumulator(
        self, *, conditioned: Optional[bool] = None, threshold: Optional[float] = None
    ):
        """
        Make the single-tree accumulator for this model.

        A warning is issued if the population size is zero at time zero
        and some tree reaches time zero. For the unconditioned coalescent
        these are trees with a sample at height zero. For the conditioned
        coalescent time zero is the horizon, and the warning is issued for
        any tree.

        :param bool conditioned: Overrides the model's ``conditioned`` field.
        :param float threshold: Overrides the model's ``threshold`` field.
        """
        if conditioned is None:
            conditioned = self.conditioned
        if threshold is None:
            threshold = self.threshold
        if conditioned:
            self._check_hazard_at_zero(conditioned=True)
            return MaxTMRCAAccumulator(demography=self.trajectory, threshold=threshold)
        self._check_hazard_at_zero(conditioned=False)
        return SkygridAccumulator(trajectory=self.trajectory)

    def _check_hazard_at_zero(self, *, conditioned):
        trajectory = self.trajectory
        segment = trajectory.segment_index(0)
        if trajectory.segment_intercept(segment) != 0 or trajectory.slope(segment) == 0:
            return
        if conditioned:
            if len(self.trees) > 0:
                warnings.warn(
                    "The population size is zero at time zero, which is the "
                    "horizon of the conditioned coalescent, so trees whose root "
                    "is at the horizon have a log-likelihood of -inf. "
                    "Set a non-zero intercept to avoid this."
                )
            return
        for tree in self.trees:
            if 0 in tree.genealogy.sample_heights:
                warnings.warn(
                    "The population size is zero at time zero, so trees with "
                    "samples at time zero have an infinite coalescent hazard. "
                    "Set a non-zero intercept to avoid this."
                )
                return

    def aggregator(self, **kwargs) -> MultiTreeAggregator:
        """
        Make a :class:`.MultiTreeAggregator` holding all of the model's trees.
        Keyword arguments are passed to :meth:`accumulator`.
        """
        aggregator = MultiTreeAggregator(self.accumulator(**kwargs))
        for tree in self.trees:
            aggregator.add_tree(tree.genealogy, partition=tree.partition)
        return aggregator

    @classmethod
    def fromdict(cls, data: MutableMapping[str, Any]) -> Model:
        """
        Return a model from a data dictionary.

        :param dict data: The data dictionary.
        :return: A validated model.
        :rtype: Model
        """
        if not isinstance(data, MutableMapping):
            raise TypeError("data is not a dictionary")

        # Don't modify the input data dict.
        data = copy.deepcopy(data)

        check_allowed(
            data,
            ["description", "trajectory", "conditioned", "threshold", "trees"],
            "toplevel",
        )
        trajectory_data = pop_object(data, "trajectory", scope="toplevel")
        check_allowed(
            trajectory_data, ["grid_times", "log_pop_sizes", "intercept"], "trajectory"
        )
        intercept = pop_item(
            trajectory_data,
            "intercept",
            default=0.0,
            required_type=(numbers.Number, list),
            scope="trajectory",
        )
        if isinstance(intercept, list):
            for value in intercept:
                validate_item("intercept", value, numbers.Number, "trajectory")
        trajectory = SkygridTrajectory(
            grid_times=pop_list(
                trajectory_data,
                "grid_times",
                required_type=numbers.Number,
                scope="trajectory",
            ),
            log_pop_sizes=pop_list(
                trajectory_data,
                "log_pop_sizes",
                required_type=numbers.Number,
                scope="trajectory",
            ),
            intercept=intercept,
        )

        trees = []
        for i, tree_data in enumerate(
            pop_list(data, "trees", default=[], required_type=MutableMapping)
        ):
            scope = f"trees[{i}]"
            check_allowed(
                tree_data,
                [
                    "name",
                    "partition",
                    "sample_heights",
                    "coalescence_heights",
                    "max_height",
                ],
                scope,
            )
            genealogy = Genealogy(
                sample_heights=pop_list(
                    tree_data,
                    "sample_heights",
                    required_type=numbers.Number,
                    scope=scope,
                ),
                coalescence_heights=pop_list(
                    tree_data,
                    "coalescence_heights",
                    required_type=numbers.Number,
                    scope=scope,
                ),
                max_height=pop_item(
                    tree_data,
                    "max_height",
                    default=None,
                    required_type=numbers.Number,
                    scope=scope,
                ),
            )
            trees.append(
                Tree(
                    name=pop_item(
                        tree_data, "name", default=f"tree_{i}", required_type=str
                    ),
                    partition=pop_item(
                        tree_data, "partition", default="default", required_type=str
                    ),
                    genealogy=genealogy,
                )
            )

        return cls(
            description=pop_item(
                data, "description", default="", required_type=str, scope="toplevel"
            ),
            trajectory=trajectory,
            conditioned=pop_item(
                data,
                "conditioned",
                default=False,
                required_type=bool,
                scope="toplevel",
            ),
            threshold=pop_item(
                data,
                "threshold",
                default=0.0,
                required_type=numbers.Number,
                scope="toplevel",
            ),
            trees=trees,
        )

    def asdict(self) -> MutableMapping[str, Any]:
        """
        Return a dict representation of the model.

        :rtype: dict
        """
        trajectory = self.trajectory
        intercept = trajectory.intercept
        if isinstance(intercept, numbers.Number):
            intercept = float(intercept)
        else:
            intercept = [float(c) for c in intercept]
        data: MutableMapping[str, Any] = dict()
        if self.description:
            data["description"] = self.description
        data["trajectory"] = dict(
            grid_times=[float(t) for t in trajectory.grid_times],
            log_pop_sizes=[float(y) for y in trajectory.log_pop_sizes],
            intercept=intercept,
        )
        data["conditioned"] = self.conditioned
        data["threshold"] = float(self.threshold)
        trees = []
        for tree in self.trees:
            genealogy = tree.genealogy
            tree_data: MutableMapping[str, Any] = dict(
                name=tree.name,
                partition=tree.partition,
                sample_heights=[float(h) for h in genealogy.sample_heights],
                coalescence_heights=[float(h) for h in genealogy.coalescence_heights],
            )
            if genealogy.max_height is not None:
                tree_data["max_height"] = float(genealogy.max_height)
            trees.append(tree_data)
        data["trees"] = trees
        return data

    def isclose(self, other, *, rel_tol=1e-9, abs_tol=1e-12) -> bool:
        """
        Returns true if the model and ``other`` describe the same trajectory
        and trees, up to a numerical tolerance.
        """

        def close(a, b):
            if isinstance(a, list):
                return (
                    isinstance(b, list)
                    and len(a) == len(b)
                    and all(close(x, y) for x, y in zip(a, b))
                )
            if isinstance(a, dict):
                return (
                    isinstance(b, dict)
                    and a.keys() == b.keys()
                    and all(close(a[k], b[k]) for k in a)
                )
            if isinstance(a, float) and isinstance(b, float):
                return math.isclose(a, b, rel_tol=rel_tol, abs_tol=abs_tol)
            return a == b

        return self.__class__ is other.__class__ and close(self.asdict(), other.asdict())
