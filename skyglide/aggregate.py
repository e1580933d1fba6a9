"""
Summing coalescent log-likelihoods over many genealogies, with lazily
recomputed caches and a store/restore/accept protocol for samplers.
"""
from __future__ import annotations
import collections
import logging
from typing import Any, Dict, Hashable, Iterable, List, Mapping, Optional, Set, Tuple

import attr

from .intervals import DimensionMismatchError, EventSchedule
from .coalescent import CoalescentAccumulator

logger = logging.getLogger(__name__)


@attr.s(frozen=True, slots=True, repr=False)
class Unknown:
    """A cache entry that must be recomputed before use."""

    def __repr__(self):
        return "UNKNOWN"


UNKNOWN = Unknown()


@attr.s(auto_attribs=True, frozen=True, slots=True)
class Cached:
    """A cache entry holding a computed value."""

    value: Any


def is_cached(entry) -> bool:
    return isinstance(entry, Cached)


@attr.s(auto_attribs=True, kw_only=True, slots=True, eq=False)
class TreeSlot:
    """
    Everything the aggregator holds for one registered genealogy.

    :ivar int id: The tree's id, which is its index in the arena.
    :ivar genealogy: The tree collaborator, which provides ``event_schedule()``.
    :ivar str partition: The name of the partition the tree belongs to.
    :ivar schedule: Cache entry for the tree's :class:`.EventSchedule`.
    :ivar likelihood: Cache entry for the tree's log-likelihood.
    """

    id: int
    genealogy: Any
    partition: str
    schedule: Any = UNKNOWN
    likelihood: Any = UNKNOWN


@attr.s(auto_attribs=True, kw_only=True, slots=True, eq=False)
class PartitionSlot:
    """
    A named group of trees, with a cache entry for their summed
    log-likelihood.
    """

    name: str
    tree_ids: List[int] = attr.ib(factory=list)
    likelihood: Any = UNKNOWN


class Transaction:
    """
    The cache entries overwritten since the start of a trial state.

    Only the first overwrite of each entry is recorded, so rolling back
    restores exactly the state at the time the transaction began.
    """

    def __init__(self):
        self._saved: Dict[Tuple[int, str], Tuple[Any, Any]] = {}

    def __len__(self) -> int:
        return len(self._saved)

    def record(self, slot, field: str) -> None:
        key = (id(slot), field)
        if key not in self._saved:
            self._saved[key] = (slot, getattr(slot, field))

    def rollback(self) -> None:
        for (_, field), (slot, entry) in self._saved.items():
            setattr(slot, field, entry)
        self._saved.clear()


class MultiTreeAggregator:
    """
    Sums per-tree coalescent log-likelihoods over a forest of genealogies.

    Trees are registered with :meth:`add_tree`, which returns a stable
    integer id. Each tree's event schedule and log-likelihood are cached,
    as is the summed log-likelihood of each partition. Entries are cleared
    through a :class:`.ChangeTracker` and are recomputed when next needed.

    .. code::

        aggregator = MultiTreeAggregator(SkygridAccumulator(trajectory=traj))
        tree_id = aggregator.add_tree(genealogy, partition="locus1")
        tracker = ChangeTracker(aggregator)

        aggregator.store()
        traj.set_log_pop_size(1, 2.0)
        tracker.trajectory_changed()
        if reject(aggregator.log_likelihood()):
            aggregator.restore()
        else:
            aggregator.accept()

    :param CoalescentAccumulator accumulator: Computes the log-likelihood
        of a single tree from its event schedule.
    """

    def __init__(self, accumulator: CoalescentAccumulator):
        self._check_accumulator(accumulator)
        self.accumulator = accumulator
        self._trees: List[TreeSlot] = []
        self._partitions: Dict[str, PartitionSlot] = collections.OrderedDict()
        self._transaction: Optional[Transaction] = None

    @staticmethod
    def _check_accumulator(accumulator):
        if not isinstance(accumulator, CoalescentAccumulator):
            raise TypeError("accumulator must be a CoalescentAccumulator")

    def __len__(self) -> int:
        return len(self._trees)

    @property
    def partitions(self) -> List[str]:
        return list(self._partitions)

    def add_tree(self, genealogy, *, partition: str = "default") -> int:
        """
        Register a genealogy.

        :param genealogy: An object with an ``event_schedule()`` method.
        :param str partition: The partition the genealogy belongs to.
        :return: The id of the tree.
        :rtype: int
        """
        if self._transaction is not None:
            raise RuntimeError("cannot add trees while a state is stored")
        if not callable(getattr(genealogy, "event_schedule", None)):
            raise TypeError("genealogy must provide an event_schedule() method")
        if not isinstance(partition, str):
            raise TypeError("partition must be a string")
        tree_id = len(self._trees)
        self._trees.append(TreeSlot(id=tree_id, genealogy=genealogy, partition=partition))
        if partition not in self._partitions:
            self._partitions[partition] = PartitionSlot(name=partition)
        part = self._partitions[partition]
        part.tree_ids.append(tree_id)
        # The partition sum no longer covers all of its trees.
        self._write(part, "likelihood", UNKNOWN)
        return tree_id

    def check_tree_id(self, tree_id: int) -> None:
        if (
            not isinstance(tree_id, int)
            or isinstance(tree_id, bool)
            or not (0 <= tree_id < len(self._trees))
        ):
            raise DimensionMismatchError(
                f"unknown tree id {tree_id!r}; {len(self._trees)} trees registered"
            )

    def genealogy(self, tree_id: int):
        self.check_tree_id(tree_id)
        return self._trees[tree_id].genealogy

    def set_accumulator(self, accumulator: CoalescentAccumulator) -> None:
        """
        Replace the accumulator, clearing all cached log-likelihoods.
        Cached event schedules are kept.
        """
        self._check_accumulator(accumulator)
        self.accumulator = accumulator
        self.invalidate_all(schedules=False)

    # Cache writes.

    def _write(self, slot, field: str, entry) -> None:
        if self._transaction is not None:
            self._transaction.record(slot, field)
        setattr(slot, field, entry)

    def invalidate_tree(self, tree_id: int, *, schedule: bool = True) -> None:
        """
        Mark a tree's log-likelihood, and that of its partition, as unknown.

        :param int tree_id: The id of the tree.
        :param bool schedule: If True, also discard the tree's event schedule.
        """
        self.check_tree_id(tree_id)
        slot = self._trees[tree_id]
        if schedule and is_cached(slot.schedule):
            self._write(slot, "schedule", UNKNOWN)
        if is_cached(slot.likelihood):
            self._write(slot, "likelihood", UNKNOWN)
        part = self._partitions[slot.partition]
        if is_cached(part.likelihood):
            self._write(part, "likelihood", UNKNOWN)

    def invalidate_all(self, *, schedules: bool = True) -> None:
        """
        Mark every log-likelihood as unknown.

        :param bool schedules: If True, also discard all event schedules.
        """
        logger.debug(f"invalidating all {len(self._trees)} trees")
        for tree_id in range(len(self._trees)):
            self.invalidate_tree(tree_id, schedule=schedules)

    # Evaluation.

    def _schedule(self, slot: TreeSlot) -> EventSchedule:
        if not is_cached(slot.schedule):
            schedule = slot.genealogy.event_schedule()
            if not isinstance(schedule, EventSchedule):
                raise TypeError(
                    f"tree {slot.id}: event_schedule() must return an EventSchedule"
                )
            self._write(slot, "schedule", Cached(schedule))
        return slot.schedule.value

    def _tree_log_likelihood(self, slot: TreeSlot) -> float:
        if not is_cached(slot.likelihood):
            logger.debug(f"recomputing tree {slot.id}")
            value = self.accumulator.log_likelihood(self._schedule(slot))
            self._write(slot, "likelihood", Cached(value))
        return slot.likelihood.value

    def _partition_log_likelihood(self, part: PartitionSlot) -> float:
        if not is_cached(part.likelihood):
            value = 0.0
            for tree_id in part.tree_ids:
                value += self._tree_log_likelihood(self._trees[tree_id])
            self._write(part, "likelihood", Cached(value))
        return part.likelihood.value

    def tree_log_likelihood(self, tree_id: int) -> float:
        """
        The log-likelihood of a single tree.

        :param int tree_id: The id of the tree.
        :rtype: float
        """
        self.check_tree_id(tree_id)
        return self._tree_log_likelihood(self._trees[tree_id])

    def partition_log_likelihoods(self) -> Dict[str, float]:
        """
        The summed log-likelihood of each partition, in the order in which
        partitions were first registered.

        :rtype: dict
        """
        return collections.OrderedDict(
            (name, self._partition_log_likelihood(part))
            for name, part in self._partitions.items()
        )

    def log_likelihood(self) -> float:
        """
        The total log-likelihood, summed over all partitions.
        Only entries marked as unknown are recomputed.

        :rtype: float
        """
        total = 0.0
        for part in self._partitions.values():
            total += self._partition_log_likelihood(part)
        return total

    def cache_state(self) -> Mapping[str, Any]:
        """
        A snapshot of every cache entry, for inspection and debugging.

        :rtype: dict
        """
        return dict(
            schedules=[slot.schedule for slot in self._trees],
            trees=[slot.likelihood for slot in self._trees],
            partitions={name: p.likelihood for name, p in self._partitions.items()},
        )

    # Store/restore/accept protocol.

    @property
    def in_transaction(self) -> bool:
        return self._transaction is not None

    def store(self) -> None:
        """
        Begin a trial state. Cache entries modified from here on will be
        reverted by :meth:`restore`. An already-open trial state is accepted.
        """
        if self._transaction is not None:
            self.accept()
        self._transaction = Transaction()

    def restore(self) -> None:
        """
        Revert all cache entries to their state when :meth:`store` was called.
        """
        if self._transaction is None:
            raise RuntimeError("restore() called without a matching store()")
        logger.debug(f"restoring {len(self._transaction)} cache entries")
        self._transaction.rollback()
        self._transaction = None

    def accept(self) -> None:
        """
        Keep the current cache entries and end the trial state.
        """
        self._transaction = None


class ChangeTracker:
    """
    Translates change notifications into cache invalidations on a
    :class:`.MultiTreeAggregator`.

    Parameters are identified by arbitrary hashable keys. A parameter that
    only affects some trees should be registered with :meth:`add_dependency`;
    changes to unregistered parameters invalidate every tree.

    :param MultiTreeAggregator aggregator: The aggregator whose caches are
        invalidated.
    """

    def __init__(self, aggregator: MultiTreeAggregator):
        self.aggregator = aggregator
        self._dependencies: Dict[Hashable, Set[int]] = {}

    def add_dependency(self, parameter: Hashable, tree_ids: Iterable[int]) -> None:
        """
        Record that the given trees depend on a parameter.

        :param parameter: The parameter's key.
        :param tree_ids: The ids of the dependent trees.
        """
        tree_ids = list(tree_ids)
        for tree_id in tree_ids:
            self.aggregator.check_tree_id(tree_id)
        self._dependencies.setdefault(parameter, set()).update(tree_ids)

    def dependents(self, parameter: Hashable) -> Optional[Set[int]]:
        ids = self._dependencies.get(parameter)
        return None if ids is None else set(ids)

    def topology_changed(self) -> None:
        """The tree topology changed: every schedule and value is stale."""
        self.aggregator.invalidate_all(schedules=True)

    def branch_changed(self, tree_id: int) -> None:
        """A branch length or node height of one tree changed."""
        self.aggregator.invalidate_tree(tree_id, schedule=True)

    def parameter_changed(self, parameter: Hashable) -> None:
        """A parameter changed: invalidate the trees that depend on it."""
        ids = self._dependencies.get(parameter)
        if ids is None:
            logger.debug(f"no dependents registered for {parameter!r}")
            self.aggregator.invalidate_all(schedules=True)
            return
        for tree_id in sorted(ids):
            self.aggregator.invalidate_tree(tree_id, schedule=True)

    def trajectory_changed(self) -> None:
        """
        A population size parameter changed. Event schedules are unaffected,
        but every log-likelihood is stale.
        """
        self.aggregator.invalidate_all(schedules=False)
