"""
Immutable processing contexts that derive child scopes.

A ScopedContext never changes once built. Descending into a node that
introduces bindings or a selection target means asking the current context
for a derived one; unchanged state is shared by reference:

- local variables: a new OverlayMap over the parent's store, only when new
  variables are added;
- the id counter table, capability tags and execution attributes: shared by
  the whole lineage;
- the selection target: copied per derivation.
"""

import logging
from collections.abc import Mapping
from types import MappingProxyType
from typing import Any, Dict, FrozenSet, Iterable, Optional

from .exceptions import require_not_none
from .id_counters import IdCounterTable
from .overlay_map import OverlayMap

logger = logging.getLogger(__name__)

# Local variable that, when present in added variables, also sets the selection target.
SELECTION_TARGET_VARIABLE_NAME = "%%{SELECTION_TARGET}%%"


class _UnsetType:
    """Marker for a selection target that was never set."""

    __slots__ = ()

    def __repr__(self) -> str:
        return "<UNSET>"

    def __bool__(self) -> bool:
        return False

    def __reduce__(self) -> str:
        return "UNSET"


UNSET = _UnsetType()


class ScopedContext:
    """
    Variables, selection target and id counters visible at one scope.

    Args:
        variables: Base variables of the root scope. Stored by reference and
            never modified.
        selection_target: Initial selection target. Leave as ``UNSET`` for
            "nothing selected"; ``None`` is a valid explicit selection.
        capability_tags: Names of the optional evaluation capabilities active
            for this lineage. A single string is one tag.
        counters: Id counter table to share. A new one is created by default.
        execution_attributes: Read-only attributes of the surrounding engine run.
        template_name: Name of the template being processed, if any.

    Raises:
        InvalidArgumentError: If ``variables`` is None.
    """

    def __init__(
        self,
        variables: Mapping,
        selection_target: Any = UNSET,
        capability_tags: Optional[Iterable[str]] = None,
        counters: Optional[IdCounterTable] = None,
        execution_attributes: Optional[Mapping] = None,
        template_name: Optional[str] = None,
    ) -> None:
        self._local_variables: Mapping = require_not_none(variables, "variables")
        self._selection_target: Any = selection_target
        if isinstance(capability_tags, str):
            capability_tags = (capability_tags,)
        self._capability_tags: FrozenSet[str] = frozenset(capability_tags) if capability_tags else frozenset()
        self._counters: IdCounterTable = counters if counters is not None else IdCounterTable()
        self._execution_attributes: Mapping = MappingProxyType(dict(execution_attributes or {}))
        self._template_name: Optional[str] = template_name

    def _derive(self, local_variables: Mapping, selection_target: Any) -> "ScopedContext":
        child = self.__class__.__new__(self.__class__)
        child._local_variables = local_variables
        child._selection_target = selection_target
        child._capability_tags = self._capability_tags
        child._counters = self._counters
        child._execution_attributes = self._execution_attributes
        child._template_name = self._template_name
        return child

    def _merge_local_variables(self, variables: Mapping) -> Mapping:
        if not variables:
            return self._local_variables
        return OverlayMap(self._local_variables, variables)

    # Derivation

    def add_local_variables(self, variables: Optional[Mapping]) -> "ScopedContext":
        """
        Return a context with ``variables`` layered over the current ones.

        Returns ``self`` when there is nothing to add. If the variables carry
        ``SELECTION_TARGET_VARIABLE_NAME``, the selection target is set in the
        same derivation.
        """
        if not variables:
            return self
        if SELECTION_TARGET_VARIABLE_NAME in variables:
            return self.add_local_variables_and_selection_target(
                variables, variables[SELECTION_TARGET_VARIABLE_NAME]
            )
        logger.debug("Deriving scope with local variables %s", list(variables))
        return self._derive(self._merge_local_variables(variables), self._selection_target)

    def set_selection_target(self, selection_target: Any) -> "ScopedContext":
        logger.debug("Deriving scope with selection target of type %s", type(selection_target).__name__)
        return self._derive(self._local_variables, selection_target)

    def add_local_variables_and_selection_target(
        self, variables: Optional[Mapping], selection_target: Any
    ) -> "ScopedContext":
        logger.debug(
            "Deriving scope with local variables %s and selection target of type %s",
            list(variables or ()),
            type(selection_target).__name__,
        )
        return self._derive(self._merge_local_variables(variables), selection_target)

    # Id sequences

    def get_and_increment_id_seq(self, id: str) -> int:
        return self._counters.get_and_increment(id)

    def get_next_id_seq(self, id: str) -> int:
        return self._counters.next(id)

    def get_previous_id_seq(self, id: str) -> int:
        """Last sequence handed out for ``id``; raises StateError if none was."""
        return self._counters.previous(id)

    @property
    def counters(self) -> IdCounterTable:
        return self._counters

    @property
    def id_counts(self) -> Dict[str, int]:
        return self._counters.snapshot()

    # Variables

    @property
    def local_variables(self) -> Mapping:
        """The variable store owned by this scope (shared with the parent if no variables were added)."""
        return self._local_variables

    @property
    def variables(self) -> Mapping:
        """Read-only view of every variable visible from this scope."""
        return MappingProxyType(self._local_variables)

    def get(self, name: Any, default: Any = None) -> Any:
        return self._local_variables.get(name, default)

    def get_variable(self, name: Any) -> Any:
        if name in self._local_variables:
            return self._local_variables[name]
        raise NameError("Name '%s' is not defined." % name)

    def __contains__(self, name: Any) -> bool:
        return name in self._local_variables

    def variable_names(self):
        return self._local_variables.keys()

    # Selection target

    def has_selection_target(self) -> bool:
        return self._selection_target is not UNSET

    @property
    def selection_target(self) -> Any:
        """The selection target, or None when none was set (see has_selection_target)."""
        if self._selection_target is UNSET:
            return None
        return self._selection_target

    @property
    def selection(self) -> Any:
        """The raw selection slot: ``UNSET`` or the selected value."""
        return self._selection_target

    @property
    def selection_evaluation_root(self) -> Any:
        """What selection expressions evaluate against: the target if set, else all variables."""
        if self._selection_target is UNSET:
            return self.variables
        return self._selection_target

    # Lineage-wide state

    @property
    def capability_tags(self) -> FrozenSet[str]:
        return self._capability_tags

    def has_capability(self, tag: str) -> bool:
        return tag in self._capability_tags

    @property
    def execution_attributes(self) -> Mapping:
        return self._execution_attributes

    def get_execution_attribute(self, name: str) -> Any:
        return self._execution_attributes.get(name)

    @property
    def template_name(self) -> Optional[str]:
        return self._template_name

    def __repr__(self) -> str:
        return "ScopedContext(variables=%d, selection=%r, capabilities=%s)" % (
            len(self._local_variables),
            self._selection_target,
            sorted(self._capability_tags),
        )
