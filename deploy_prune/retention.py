from typing import Dict, FrozenSet, Iterable, List, Mapping, Sequence, Set, Tuple
from dataclasses import dataclass
from collections import Counter
from datetime import datetime


DEFAULT_DELIMITER = "/"


class InvalidRetentionCount(ValueError):
    def __init__(self, keep: object) -> None:
        super().__init__(
            f"Retention count must be a positive integer, got {keep!r}"
        )
        self.keep = keep


class RetentionInvariantError(AssertionError):
    pass


@dataclass(frozen=True)
class ObjectRecord:
    key: str
    last_modified: datetime


@dataclass(frozen=True)
class DeploymentGroup:
    prefix: str
    recency: datetime


@dataclass(frozen=True)
class RetentionPlan:
    """Outcome of one retention run over a listing snapshot.

    ``retained`` is ordered newest first. ``to_delete`` and ``retained_keys``
    keep the order of the input listing and together hold every input key
    exactly once.
    """

    keep: int
    retained: Tuple[DeploymentGroup, ...]
    to_delete: Tuple[str, ...]
    retained_keys: Tuple[str, ...]

    @property
    def retained_prefixes(self) -> FrozenSet[str]:
        return frozenset(g.prefix for g in self.retained)

    @property
    def is_empty(self) -> bool:
        return not self.to_delete


def validate_keep(keep: object) -> int:
    # bool is an int subclass
    if isinstance(keep, bool) or not isinstance(keep, int) or keep <= 0:
        raise InvalidRetentionCount(keep)
    return keep


def prefix_id(key: str, delimiter: str = DEFAULT_DELIMITER) -> str:
    if not delimiter:
        raise ValueError("Delimiter must be a non-empty string")
    return key.split(delimiter, 1)[0]


def group_deployments(
    objects: Iterable[ObjectRecord], delimiter: str = DEFAULT_DELIMITER
) -> Dict[str, datetime]:
    """Map every deployment prefix to the newest ``last_modified`` under it."""
    groups: Dict[str, datetime] = {}
    for obj in objects:
        prefix = prefix_id(obj.key, delimiter)
        current = groups.get(prefix)
        if current is None or obj.last_modified > current:
            groups[prefix] = obj.last_modified
    return groups


def merge_groups(*group_maps: Mapping[str, datetime]) -> Dict[str, datetime]:
    """Combine group maps built from disjoint parts of one listing."""
    merged: Dict[str, datetime] = {}
    for groups in group_maps:
        for prefix, recency in groups.items():
            current = merged.get(prefix)
            if current is None or recency > current:
                merged[prefix] = recency
    return merged


def rank_deployments(groups: Mapping[str, datetime]) -> List[DeploymentGroup]:
    """Order deployments newest first.

    Equal recency falls back to the prefix in ascending order so the ranking
    never depends on mapping iteration order.
    """
    ranked = sorted(groups.items(), key=lambda kv: kv[0])
    ranked.sort(key=lambda kv: kv[1], reverse=True)
    return [DeploymentGroup(prefix, recency) for prefix, recency in ranked]


def select_recent(groups: Mapping[str, datetime], keep: int) -> Set[str]:
    keep = validate_keep(keep)
    return {g.prefix for g in rank_deployments(groups)[:keep]}


def plan_deletions(
    objects: Iterable[ObjectRecord],
    retained: Iterable[str],
    delimiter: str = DEFAULT_DELIMITER,
) -> List[str]:
    retained_set = set(retained)
    return [
        obj.key
        for obj in objects
        if prefix_id(obj.key, delimiter) not in retained_set
    ]


def _check_partition(
    objects: Sequence[ObjectRecord],
    retained_keys: Sequence[str],
    to_delete: Sequence[str],
    retained_prefixes: Set[str],
    delimiter: str,
) -> None:
    if Counter(retained_keys) + Counter(to_delete) != Counter(
        obj.key for obj in objects
    ):
        raise RetentionInvariantError(
            "Retained and deleted keys do not cover the listing exactly"
        )
    overlap = {k for k in to_delete if prefix_id(k, delimiter) in retained_prefixes}
    if overlap:
        raise RetentionInvariantError(
            f"Keys of retained deployments marked for deletion: {sorted(overlap)}"
        )


def build_plan(
    objects: Iterable[ObjectRecord],
    keep: int,
    delimiter: str = DEFAULT_DELIMITER,
) -> RetentionPlan:
    keep = validate_keep(keep)
    snapshot = list(objects)

    ranked = rank_deployments(group_deployments(snapshot, delimiter))
    retained = tuple(ranked[:keep])
    retained_prefixes = {g.prefix for g in retained}

    to_delete = plan_deletions(snapshot, retained_prefixes, delimiter)
    retained_keys = [
        obj.key
        for obj in snapshot
        if prefix_id(obj.key, delimiter) in retained_prefixes
    ]
    _check_partition(
        snapshot, retained_keys, to_delete, retained_prefixes, delimiter
    )
    return RetentionPlan(
        keep=keep,
        retained=retained,
        to_delete=tuple(to_delete),
        retained_keys=tuple(retained_keys),
    )
