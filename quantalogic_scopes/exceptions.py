from typing import Any, Optional


class ScopeError(Exception):
    pass


class InvalidArgumentError(ScopeError, ValueError):
    def __init__(self, message: str, argument: Optional[str] = None) -> None:
        super().__init__(message)
        self.argument: Optional[str] = argument
        self.message = message


class StateError(ScopeError, RuntimeError):
    def __init__(self, message: str, id: Any = None) -> None:
        super().__init__(message)
        self.id: Any = id
        self.message = message


class WalkError(ScopeError):
    def __init__(self, message: str, original_exception: Exception, node: Any, depth: int) -> None:
        super().__init__(message)
        self.original_exception: Exception = original_exception
        self.node: Any = node
        self.depth: int = depth
        self.message = message

    def __str__(self):
        exc_type = type(self.original_exception).__name__
        return f"{exc_type} at depth {self.depth}, node {type(self.node).__name__}:\nDescription: {self.message}"


def require_not_none(value: Any, argument: str) -> Any:
    if value is None:
        raise InvalidArgumentError("%s cannot be None" % argument, argument)
    return value
