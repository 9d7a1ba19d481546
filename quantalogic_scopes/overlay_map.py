"""
Overlay mapping used as the local variable store of a derived scope.

An OverlayMap presents the union of a private ``own`` dict and a ``target``
mapping it never writes to. Keys of the target can be masked (logically
removed) without touching the target, so a child scope can shadow, delete or
clear anything it inherits while the parent keeps seeing its own bindings.

The target may itself be an OverlayMap, which is how scope chains are built.
"""

import logging
from collections.abc import Mapping, MutableMapping
from typing import Any, Dict, Iterator, List, Optional, Set, Tuple

from .exceptions import require_not_none

logger = logging.getLogger(__name__)


class OverlayMap(MutableMapping):
    """
    Mutable mapping layered over a read-only target mapping.

    Lookups check ``own`` first, then the masked-key set, then the target.
    Writes always go to ``own``; removals of inherited keys only record the
    key as masked.

    Collection views (``keys()``, ``values()``, ``items()``) differ from a
    plain dict on purpose:

    - when the target has no visible entries, the live views of ``own`` are
      returned and reflect later mutations;
    - otherwise an immutable snapshot of the merged content is returned. It
      does not change if the map is mutated afterwards.

    Args:
        target: The mapping to layer over. Stored by reference, never modified.
        own: Optional initial bindings, applied as if set one by one.
    """

    def __init__(self, target: Mapping, own: Optional[Mapping] = None) -> None:
        self._target: Mapping = require_not_none(target, "target")
        self._own: Dict[Any, Any] = {}
        self._removed: Optional[Set[Any]] = None
        if own:
            for key, value in own.items():
                self.put(key, value)

    @property
    def target(self) -> Mapping:
        """The wrapped mapping this overlay reads through to."""
        return self._target

    @property
    def masked_keys(self) -> frozenset:
        """Target keys currently hidden by this layer."""
        return frozenset(self._removed) if self._removed is not None else frozenset()

    @property
    def depth(self) -> int:
        """Number of overlay layers in the chain, this one included."""
        return len(self._chain()[0])

    def _is_removed(self, key: Any) -> bool:
        return self._removed is not None and key in self._removed

    def _mask(self, key: Any) -> bool:
        if self._removed is None:
            self._removed = set()
        elif key in self._removed:
            return False
        self._removed.add(key)
        logger.debug("Masked inherited key %r", key)
        return True

    def __len__(self) -> int:
        removed = len(self._removed) if self._removed is not None else 0
        return len(self._own) + len(self._target) - removed

    def __contains__(self, key: Any) -> bool:
        if key in self._own:
            return True
        if self._is_removed(key):
            return False
        return key in self._target

    def __getitem__(self, key: Any) -> Any:
        if key in self._own:
            return self._own[key]
        if self._is_removed(key):
            raise KeyError(key)
        return self._target[key]

    def get(self, key: Any, default: Any = None) -> Any:
        if key in self._own:
            return self._own[key]
        if self._is_removed(key):
            return default
        return self._target.get(key, default)

    def put(self, key: Any, value: Any) -> Any:
        """
        Bind ``key`` in this layer and return the previously visible value.

        The first time an inherited key is overridden it is also masked, which
        keeps ``len()`` exact. Masking an already masked key is a no-op.
        """
        if key in self._own:
            previous = self._own[key]
        elif self._is_removed(key):
            previous = None
        else:
            previous = self._target.get(key)
        if key in self._target:
            self._mask(key)
        self._own[key] = value
        return previous

    def __setitem__(self, key: Any, value: Any) -> None:
        self.put(key, value)

    def remove(self, key: Any) -> Any:
        """
        Remove ``key`` and return the value it had, or None if it was not visible.

        Keys bound in this layer are dropped from ``own`` only; whether an
        inherited value shows through again depends on whether it was masked.
        """
        if key in self._own:
            return self._own.pop(key)
        if self._is_removed(key) or key not in self._target:
            return None
        value = self._target[key]
        self._mask(key)
        return value

    def __delitem__(self, key: Any) -> None:
        if key in self._own:
            del self._own[key]
            return
        if self._is_removed(key) or key not in self._target:
            raise KeyError(key)
        self._mask(key)

    def clear(self) -> None:
        self._removed = set(self._target)
        self._own.clear()
        logger.debug("Cleared overlay, masking %d inherited keys", len(self._removed))

    def contains_value(self, value: Any) -> bool:
        if value in self._own.values():
            return True
        if not self._removed:
            return value in self._target.values()
        for key, target_value in self._target.items():
            if key in self._removed:
                continue
            if target_value is value or target_value == value:
                return True
        return False

    def _chain(self) -> Tuple[List["OverlayMap"], Mapping]:
        chain: List[OverlayMap] = []
        current: Mapping = self
        while isinstance(current, OverlayMap):
            chain.append(current)
            current = current._target
        return chain, current

    def _fold(self) -> Dict[Any, Any]:
        # One pass from the outermost base mapping inwards.
        chain, base = self._chain()
        merged = dict(base)
        for layer in reversed(chain):
            if layer._removed:
                for key in layer._removed:
                    merged.pop(key, None)
            merged.update(layer._own)
        return merged

    def __iter__(self) -> Iterator[Any]:
        if not self._target:
            return iter(list(self._own))
        return iter(self._fold())

    def keys(self):
        if not self._target:
            return self._own.keys()
        return self._fold().keys()

    def values(self):
        if not self._target:
            return self._own.values()
        return self._fold().values()

    def items(self):
        if not self._target:
            return self._own.items()
        return self._fold().items()

    def copy(self) -> "OverlayMap":
        """Shallow copy sharing the same target."""
        clone = self.__class__.__new__(self.__class__)
        clone._target = self._target
        clone._own = dict(self._own)
        clone._removed = set(self._removed) if self._removed is not None else None
        return clone

    __copy__ = copy

    def __repr__(self) -> str:
        return "%s(%r, depth=%d)" % (type(self).__name__, dict(self.items()), self.depth)
