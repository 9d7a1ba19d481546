# quantalogic_scopes/__init__.py
from .exceptions import InvalidArgumentError, ScopeError, StateError, WalkError
from .overlay_map import OverlayMap
from .id_counters import IdCounterTable
from .context import SELECTION_TARGET_VARIABLE_NAME, UNSET, ScopedContext
from .scope import Scope, ScopeStack
from .walker import ScopeWalker, WalkResult, walk_scopes

__all__ = [
    'OverlayMap',
    'ScopedContext',
    'IdCounterTable',
    'SELECTION_TARGET_VARIABLE_NAME',
    'UNSET',
    'Scope',
    'ScopeStack',
    'ScopeWalker',
    'WalkResult',
    'walk_scopes',
    'ScopeError',
    'InvalidArgumentError',
    'StateError',
    'WalkError',
]
