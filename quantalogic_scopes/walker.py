import asyncio
import inspect
import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Callable, Iterable, List, Optional, Tuple

import psutil

from .context import ScopedContext
from .exceptions import ScopeError, WalkError, require_not_none

logger = logging.getLogger(__name__)


@dataclass
class WalkResult:
    nodes_visited: int
    max_depth_reached: int
    execution_time: float


class ScopeWalker:
    """
    Depth-first driver deriving a scope for every node of an opaque tree.

    Subclasses define ``visit_<NodeClassName>(node, context)`` methods that
    return the context for the node's children, usually derived with
    ``add_local_variables`` or ``set_selection_target``. Returning None keeps
    the incoming context. Nodes without a matching method go to
    ``generic_visit``.

    A walker keeps per-walk counters, so one instance runs one walk at a time.
    """

    def __init__(
        self,
        max_depth: int = 1000,
        max_nodes: int = 10000000,
        max_memory_mb: int = 1024,
        max_workers: Optional[int] = None,
        wrap_exceptions: bool = True,
    ) -> None:
        self.max_depth: int = max_depth
        self.max_nodes: int = max_nodes
        self.max_memory_mb: int = max_memory_mb
        self.max_workers: Optional[int] = max_workers
        self.wrap_exceptions: bool = wrap_exceptions
        self.process = psutil.Process()
        self.lock = threading.Lock()
        self.nodes_visited: int = 0
        self.max_depth_reached: int = 0

    def children(self, node: Any) -> Iterable[Any]:
        return getattr(node, "children", None) or ()

    def generic_visit(self, node: Any, context: ScopedContext) -> Optional[ScopedContext]:
        return context

    def _reset(self) -> None:
        with self.lock:
            self.nodes_visited = 0
            self.max_depth_reached = 0

    def _result(self, start_time: float) -> WalkResult:
        return WalkResult(
            nodes_visited=self.nodes_visited,
            max_depth_reached=self.max_depth_reached,
            execution_time=time.time() - start_time,
        )

    def _enter(self, node: Any, depth: int) -> Callable:
        with self.lock:
            self.nodes_visited += 1
            if self.nodes_visited > self.max_nodes:
                raise RuntimeError("Exceeded maximum visited nodes (%d)" % self.max_nodes)
            if depth > self.max_depth_reached:
                self.max_depth_reached = depth
        if depth > self.max_depth:
            raise RecursionError("Maximum scope depth exceeded (%d)" % self.max_depth)
        memory_usage = self.process.memory_info().rss / 1024 / 1024
        if memory_usage > self.max_memory_mb:
            raise MemoryError("Memory usage exceeded limit (%d MB)" % self.max_memory_mb)

        method_name = "visit_" + node.__class__.__name__
        logger.debug("Visiting %s at depth %d", method_name, depth)
        return getattr(self, method_name, self.generic_visit)

    def _failed(self, e: Exception, node: Any, depth: int) -> Exception:
        if not self.wrap_exceptions or isinstance(e, (ScopeError, RecursionError, MemoryError)):
            return e
        return WalkError("Error at depth %d: %s" % (depth, str(e)), e, node, depth)

    def _visit(self, node: Any, context: ScopedContext, depth: int) -> ScopedContext:
        method = self._enter(node, depth)
        try:
            result = method(node, context)
        except Exception as e:
            error = self._failed(e, node, depth)
            if error is e:
                raise
            raise error from e
        return context if result is None else result

    def _walk(self, node: Any, context: ScopedContext, depth: int) -> None:
        # Explicit stack so max_depth, not the interpreter recursion limit, bounds the walk.
        pending: List[Tuple[Any, ScopedContext, int]] = [(node, context, depth)]
        while pending:
            node, context, depth = pending.pop()
            child_context = self._visit(node, context, depth)
            children = list(self.children(node))
            for child in reversed(children):
                pending.append((child, child_context, depth + 1))

    async def _call_visit(self, method: Callable, node: Any, context: ScopedContext) -> Any:
        if inspect.iscoroutinefunction(method):
            return await method(node, context)
        result = method(node, context)
        if inspect.isawaitable(result):
            return await result
        return result

    async def _walk_async(self, node: Any, context: ScopedContext, depth: int) -> None:
        method = self._enter(node, depth)
        try:
            result = await self._call_visit(method, node, context)
        except Exception as e:
            error = self._failed(e, node, depth)
            if error is e:
                raise
            raise error from e
        child_context = context if result is None else result
        await asyncio.gather(*(self._walk_async(child, child_context, depth + 1) for child in self.children(node)))

    def walk(self, node: Any, context: ScopedContext) -> WalkResult:
        """Walk the tree under ``node`` sequentially, starting from ``context``."""
        require_not_none(context, "context")
        start_time = time.time()
        self._reset()
        self._walk(node, context, 0)
        return self._result(start_time)

    def walk_parallel(self, node: Any, context: ScopedContext) -> WalkResult:
        """
        Visit ``node``, then walk each of its child subtrees on a worker thread.

        Every subtree derives from the same root lineage and shares its id
        counter table.
        """
        require_not_none(context, "context")
        start_time = time.time()
        self._reset()
        child_context = self._visit(node, context, 0)
        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            futures = [executor.submit(self._walk, child, child_context, 1) for child in self.children(node)]
            for future in futures:
                future.result()
        return self._result(start_time)

    async def walk_async(self, node: Any, context: ScopedContext, timeout: Optional[float] = None) -> WalkResult:
        """Walk the tree as a coroutine; sibling subtrees are gathered concurrently."""
        require_not_none(context, "context")
        start_time = time.time()
        self._reset()
        if timeout is None:
            await self._walk_async(node, context, 0)
        else:
            await asyncio.wait_for(self._walk_async(node, context, 0), timeout=timeout)
        return self._result(start_time)


def walk_scopes(walker: ScopeWalker, node: Any, context: ScopedContext, timeout: Optional[float] = None):
    """
    Wrapper for ScopeWalker.walk_async supporting both sync and async usage.
    Returns coroutine if in async context, else runs via asyncio.run.
    """
    coro = walker.walk_async(node, context, timeout=timeout)
    try:
        asyncio.get_running_loop()
        return coro
    except RuntimeError:
        return asyncio.run(coro)
