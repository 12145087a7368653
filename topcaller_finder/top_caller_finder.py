"""
Top-Caller Finder

Walks the call graph upwards from one method, breadth first, and collects
every method that nobody calls (the entry points that can reach it).
"""

import logging
from collections import deque
from typing import Callable, Deque, Dict, Iterable, List, Optional, Set

from .caches import CallerCache, MethodKeyCache
from .caller_resolver import CallerResolver
from .errors import SearchCancelled
from .knowledge_base import CancellationToken, CodeKnowledgeBase
from .models import FrontierItem, MethodSymbol, TopCallerSearchResult, TopCallerWithStatement
from .normalizer import IndirectionNormalizer

logger = logging.getLogger(__name__)

MAX_DEPTH = 50

ProgressCallback = Callable[[int, int, int], None]


class TopCallerFinder:
    """
    Finds the top callers of a method.

    One finder is meant to live for a whole session: its caller and method-key
    caches are reused by every search until :meth:`clear_all_caches` is called,
    which the owner must do whenever the code base changes.
    """

    def __init__(
        self,
        knowledge_base: CodeKnowledgeBase,
        max_depth: int = MAX_DEPTH,
        caller_cache: Optional[CallerCache] = None,
        key_cache: Optional[MethodKeyCache] = None,
        functional_interface_methods: Optional[Iterable[str]] = None,
    ):
        self.knowledge_base = knowledge_base
        self.max_depth = max_depth
        self.caller_cache = caller_cache if caller_cache is not None else CallerCache()
        self.key_cache = key_cache if key_cache is not None else MethodKeyCache()
        self.functional_interface_methods = functional_interface_methods

    def find_top_callers(
        self, method: MethodSymbol, cancel_token: Optional[CancellationToken] = None
    ) -> Set[MethodSymbol]:
        """
        Find all top callers of ``method``.

        Returns:
            Top callers deduplicated by method key, never including ``method``

        Raises:
            SearchCancelled: when ``cancel_token`` or the knowledge base asks to stop
        """
        return self.search(method, cancel_token).top_callers

    def search(
        self,
        method: MethodSymbol,
        cancel_token: Optional[CancellationToken] = None,
        progress: Optional[ProgressCallback] = None,
    ) -> TopCallerSearchResult:
        """Same as :meth:`find_top_callers`, with traversal statistics."""
        self.caller_cache.trim_if_full()

        # Wait outside the read action so indexing is not blocked by it
        if not self.knowledge_base.is_ready():
            logger.info("Knowledge base is still indexing, waiting until it is ready")
            self.knowledge_base.wait_until_ready()

        with self.knowledge_base.read_action() as view:
            logger.info(f"Searching top callers of {method.qualified_name}")
            result = self._search_in_view(view, method, cancel_token, progress)
            logger.info(
                f"Found {len(result.top_callers)} top callers, "
                f"visited {result.visited_count} distinct methods"
            )
            return result

    def find_top_callers_for_statement(
        self, statement_id: str, cancel_token: Optional[CancellationToken] = None
    ) -> List[TopCallerWithStatement]:
        """
        Find the top callers of the mapper method behind a MyBatis statement.

        Args:
            statement_id: ``namespace.id``; the namespace is the mapper
                interface, the id its method name

        Returns:
            One record per distinct top caller, empty when no mapper method matches
        """
        namespace, _, statement = statement_id.rpartition(".")
        if not namespace or not statement:
            logger.warning(f"Statement id has no namespace: {statement_id}")
            return []

        if not self.knowledge_base.is_ready():
            self.knowledge_base.wait_until_ready()

        mapper_methods = self.knowledge_base.find_methods(namespace, statement)
        if not mapper_methods:
            logger.info(f"No mapper method found for statement {statement_id}")
            return []

        results: Dict[str, TopCallerWithStatement] = {}
        for mapper_method in mapper_methods:
            for caller in self.find_top_callers(mapper_method, cancel_token):
                key = self.key_cache.key_of(caller)
                if key not in results:
                    results[key] = TopCallerWithStatement(method=caller, statement_id=statement_id)
        return list(results.values())

    def clear_all_caches(self):
        self.key_cache.clear()
        self.caller_cache.clear()
        logger.debug("Cleared all top-caller caches")

    def _search_in_view(
        self,
        view: CodeKnowledgeBase,
        start: MethodSymbol,
        cancel_token: Optional[CancellationToken],
        progress: Optional[ProgressCallback],
    ) -> TopCallerSearchResult:
        def checkpoint():
            if cancel_token is not None:
                cancel_token.check()
            if view.cancellation_requested():
                raise SearchCancelled("Top-caller search was cancelled by the knowledge base")

        scope = view.production_scope()
        resolver = CallerResolver(view, scope, self.key_cache, self.caller_cache, checkpoint)
        normalizer = IndirectionNormalizer(
            view, scope, self.key_cache, checkpoint, self.functional_interface_methods
        )

        result = TopCallerSearchResult(query=start)
        top_callers: Dict[str, MethodSymbol] = {}
        visited: Set[str] = set()
        queue: Deque[FrontierItem] = deque([FrontierItem(start, 0)])

        while queue:
            checkpoint()

            item = queue.popleft()
            method, depth = item.method, item.depth
            result.processed_count += 1
            if progress is not None:
                progress(result.processed_count, len(top_callers), len(queue))

            method_key = self.key_cache.key_of(method)
            if depth > self.max_depth:
                logger.warning(f"Reached maximum depth {self.max_depth} at {method_key}")
                result.truncated = True
                result.truncated_methods.append(method_key)
                continue

            if method_key in visited:
                continue
            visited.add(method_key)

            substitutes = normalizer.normalize(method)
            if substitutes is not None:
                for substitute in substitutes:
                    queue.append(FrontierItem(substitute, depth + 1))
                continue

            callers = resolver.callers_of(method)
            if not callers:
                # An interface method with no lambda found is not an entry point
                if not normalizer.is_functional_interface_method(method):
                    top_callers[method_key] = method
                    logger.debug(f"Found top caller: {method_key}")
            else:
                for caller in callers:
                    queue.append(FrontierItem(caller, depth + 1))

        start_key = self.key_cache.key_of(start)
        top_callers.pop(start_key, None)

        result.top_callers = set(top_callers.values())
        result.visited_count = len(visited)
        return result
