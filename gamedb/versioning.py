"""
Field-level diffs for versioned entities.

A diff maps every versioned field to one of:

* ``None``    - unchanged
* ``CLEARED`` - the field was unset by this revision
* a string    - the new value

Normalised field values are never the empty string, so ``CLEARED`` cannot be
mistaken for a real value.
"""
from typing import Dict, Iterable, Mapping, Optional

CLEARED = ''


def normalize_value(value) -> Optional[str]:
    """Strip *value*; empty or missing values become ``None`` (unset)."""
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def normalize_fields(fields: Mapping, names: Iterable[str]) -> Dict[str, Optional[str]]:
    """Return a value for every name in *names*; absent keys count as unset."""
    return {name: normalize_value(fields.get(name)) for name in names}


def compute_diff(current: Mapping, proposed: Mapping) -> Dict[str, Optional[str]]:
    """Diff *proposed* against *current* for every key of *proposed*."""
    diff = {}
    for name, new in proposed.items():
        if current.get(name) == new:
            diff[name] = None
        elif new is None:
            diff[name] = CLEARED
        else:
            diff[name] = new
    return diff


def apply_diff(state: Dict, diff: Mapping) -> Dict:
    """Fold one diff into *state* in place and return it."""
    for name, value in diff.items():
        if value is None:
            continue
        state[name] = None if value == CLEARED else value
    return state


def replay(diffs: Iterable[Mapping], names: Iterable[str]) -> Dict[str, Optional[str]]:
    """Rebuild entity state by folding *diffs* in order over an empty record."""
    state = dict.fromkeys(names)
    for diff in diffs:
        apply_diff(state, diff)
    return state
