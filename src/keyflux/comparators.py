"""Index comparators — decide whether a ``set_pks`` call is a no-op.

A comparator receives the existing and the new primary keys and returns True
when they are equal, in which case the index skips the write and emits nothing.
"""

from __future__ import annotations

from typing import Callable, Hashable, Literal, Sequence

PkComparator = Callable[[Sequence[Hashable], Sequence[Hashable]], bool]

ComparisonPolicy = Literal["element-wise", "set-based", "shallow", "always-update"]


def element_wise(existing: Sequence[Hashable], new: Sequence[Hashable]) -> bool:
    """Same length and equal element by element, in order."""
    if len(existing) != len(new):
        return False
    return all(a == b for a, b in zip(existing, new))


def set_based(existing: Sequence[Hashable], new: Sequence[Hashable]) -> bool:
    """Same elements regardless of order. Duplicates make the inputs unequal."""
    if len(existing) != len(new):
        return False
    existing_set = set(existing)
    if len(existing_set) != len(existing):
        return False
    new_set = set(new)
    return len(new_set) == len(new) and existing_set == new_set


def shallow(existing: Sequence[Hashable], new: Sequence[Hashable]) -> bool:
    """Identity check. Only useful when callers reuse the same sequence object."""
    return existing is new


def always_update(existing: Sequence[Hashable], new: Sequence[Hashable]) -> bool:
    return False


_POLICIES: dict[str, PkComparator] = {
    "element-wise": element_wise,
    "set-based": set_based,
    "shallow": shallow,
    "always-update": always_update,
}


def resolve_comparator(policy: ComparisonPolicy | PkComparator | None) -> PkComparator | None:
    """Turn a policy tag or callable into a comparator. None disables comparison."""
    if policy is None or callable(policy):
        return policy
    try:
        return _POLICIES[policy]
    except KeyError:
        raise ValueError(
            f"unknown comparison policy {policy!r}; expected one of {sorted(_POLICIES)}"
        ) from None
