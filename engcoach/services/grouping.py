from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Protocol, TypeVar

from engcoach.models import ExerciseGroupType


class Groupable(Protocol):
    order_in_workout: int | None
    group_id: str | None
    group_type: ExerciseGroupType | None
    group_order: int | None


E = TypeVar("E", bound=Groupable)


@dataclass
class ExerciseGroup:
    exercises: list = field(default_factory=list)
    group_type: ExerciseGroupType | None = None
    group_id: str | None = None

    @property
    def is_grouped(self) -> bool:
        return self.group_id is not None


def group_exercises(instances: Sequence[E]) -> list[ExerciseGroup]:
    """Partition instances into render groups, preserving workout order.

    Instances sharing a group id with at least one sibling become one group
    ordered by ``group_order``, emitted where its first member appears. Every
    other instance, including a lone member of a group, is a singleton.
    """
    ordered = sorted(instances, key=lambda e: e.order_in_workout or 0)

    members: dict[str, list[E]] = {}
    for instance in ordered:
        if instance.group_id:
            members.setdefault(instance.group_id, []).append(instance)

    result: list[ExerciseGroup] = []
    seen: set[str] = set()
    for instance in ordered:
        group_id = instance.group_id
        if group_id and len(members[group_id]) >= 2:
            if group_id in seen:
                continue
            seen.add(group_id)
            group_type = instance.group_type
            if group_type in (None, ExerciseGroupType.none):
                group_type = ExerciseGroupType.superset
            result.append(
                ExerciseGroup(
                    exercises=sorted(members[group_id], key=lambda e: e.group_order or 0),
                    group_type=group_type,
                    group_id=group_id,
                )
            )
        else:
            result.append(ExerciseGroup(exercises=[instance]))
    return result
