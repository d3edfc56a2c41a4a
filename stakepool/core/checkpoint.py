"""
Checkpoint/rollback support for all-or-nothing pool operations.

Every component touched by a pool operation can snapshot its state before the
call and restore it in place if the call raises. Restoring in place keeps
outside references to the component (tests, harness, observers) valid.
"""

import copy
import functools
from typing import Any, Callable, Tuple, TypeVar

F = TypeVar("F", bound=Callable[..., Any])


class Checkpointable:
    """
    Mixin giving a component a deep-copy checkpoint of its own attributes.

    Attributes named in `_checkpoint_exclude` are neither copied nor
    restored (locks, shared collaborators that checkpoint themselves).
    """

    _checkpoint_exclude: Tuple[str, ...] = ()

    def checkpoint(self) -> Any:
        return {
            key: copy.deepcopy(value)
            for key, value in vars(self).items()
            if key not in self._checkpoint_exclude
        }

    def rollback(self, state: Any) -> None:
        for key in [k for k in vars(self) if k not in self._checkpoint_exclude]:
            delattr(self, key)
        vars(self).update(state)


def atomic(method: F) -> F:
    """
    Run a pool method as one exclusive, all-or-nothing operation.

    The owner must provide `_lock` (re-entrant) and `_participants()`
    returning every Checkpointable the method may mutate. Checkpointable
    arguments (coins, tickets) are restored as well.
    """

    @functools.wraps(method)
    def wrapper(self, *args, **kwargs):
        with self._lock:
            parts = list(self._participants())
            parts.extend(
                arg for arg in (*args, *kwargs.values())
                if isinstance(arg, Checkpointable)
            )
            saved = [(part, part.checkpoint()) for part in parts]
            try:
                return method(self, *args, **kwargs)
            except Exception:
                for part, state in reversed(saved):
                    part.rollback(state)
                raise

    return wrapper  # type: ignore[return-value]


__all__ = ["Checkpointable", "atomic"]
