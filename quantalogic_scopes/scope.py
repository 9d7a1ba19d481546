# quantalogic_scopes/scope.py
from typing import Any, List, Mapping, Optional

from .context import UNSET, ScopedContext


class Scope:
    def __init__(self, context_stack: List[ScopedContext], variables: Optional[Mapping] = None, selection_target: Any = UNSET):
        self.context_stack = context_stack
        self.variables = variables
        self.selection_target = selection_target

    def __enter__(self) -> ScopedContext:
        current = self.context_stack[-1]
        if self.selection_target is UNSET:
            child = current.add_local_variables(self.variables)
        else:
            child = current.add_local_variables_and_selection_target(self.variables, self.selection_target)
        self.context_stack.append(child)
        return child

    def __exit__(self, exc_type, exc_value, traceback):
        self.context_stack.pop()


class ScopeStack:
    """Keeps the context of the innermost open scope for sequential drivers."""

    def __init__(self, root: ScopedContext) -> None:
        self.context_stack: List[ScopedContext] = [root]

    @property
    def current(self) -> ScopedContext:
        return self.context_stack[-1]

    @property
    def depth(self) -> int:
        return len(self.context_stack) - 1

    def scope(self, variables: Optional[Mapping] = None, selection_target: Any = UNSET) -> Scope:
        return Scope(self.context_stack, variables, selection_target)
