"""
Top-Caller Analysis Service

Owns the Java index and one long-lived finder, and turns method specs typed by a
user into indexed methods.
"""

import logging
import re
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

from .errors import MethodNotFound, SearchCancelled, SearchFailed, TopCallerError
from .java_index import JavaCodeIndex, erase_type
from .knowledge_base import CancellationToken
from .models import MethodSymbol, TopCallerSearchResult, TopCallerWithStatement
from .top_caller_finder import MAX_DEPTH, ProgressCallback, TopCallerFinder

logger = logging.getLogger(__name__)

# pkg.Type#name, pkg.Type.name, optionally followed by (ParamType, ...)
METHOD_SPEC_PATTERN = re.compile(
    r"^(?P<owner>[\w.$]+?)[#.](?P<name>[\w$]+)\s*(?:\((?P<params>[^)]*)\))?$"
)


def parse_method_spec(spec: str) -> Tuple[str, str, Optional[List[str]]]:
    """
    Split a method spec into owner, name and parameter types.

    Args:
        spec: e.g. ``com.acme.UserService#save(User)`` or ``com.acme.UserService.save``

    Returns:
        (owner qualified name, method name, parameter types or None when not given)

    Raises:
        ValueError: if the method string is malformed
    """
    match = METHOD_SPEC_PATTERN.match(spec.strip())
    if not match:
        raise ValueError(f"Invalid method spec: {spec!r} (expected pkg.Type#method or pkg.Type.method)")

    params = match.group("params")
    parameter_types = None
    if params is not None:
        parameter_types = [p.strip() for p in _split_parameters(params) if p.strip()]
    return match.group("owner"), match.group("name"), parameter_types


def _split_parameters(text: str) -> List[str]:
    parts, depth, current = [], 0, []
    for char in text:
        if char == "<":
            depth += 1
        elif char == ">":
            depth -= 1
        if char == "," and depth == 0:
            parts.append("".join(current))
            current = []
        else:
            current.append(char)
    parts.append("".join(current))
    return parts


class TopCallerAnalysisService:
    """
    Top-caller analysis over one Java repository.

    This service handles:
    1. Indexing the repository (in the foreground or in the background)
    2. Resolving method specs and MyBatis statement ids
    3. Running searches, synchronously or on a worker thread
    """

    def __init__(
        self,
        repo_path: Optional[str] = None,
        include_patterns: Optional[List[str]] = None,
        exclude_patterns: Optional[List[str]] = None,
        include_tests: bool = False,
        max_depth: int = MAX_DEPTH,
        functional_interface_methods: Optional[Iterable[str]] = None,
        index: Optional[JavaCodeIndex] = None,
        max_workers: int = 1,
    ):
        self.index = index or JavaCodeIndex(
            repo_path, include_patterns, exclude_patterns, include_tests=include_tests
        )
        self.finder = TopCallerFinder(
            self.index, max_depth=max_depth, functional_interface_methods=functional_interface_methods
        )
        self.max_workers = max_workers
        self._executor: Optional[ThreadPoolExecutor] = None

    def build_index(self, background: bool = False):
        """Index the repository; with ``background`` searches block until done."""
        if background:
            return self.index.build_in_background()
        return self.index.build()

    def reindex(self):
        """Rebuild the index after the sources changed and drop stale caches."""
        snapshot = self.index.build()
        self.finder.clear_all_caches()
        return snapshot

    def resolve_method(self, method: Union[str, MethodSymbol]) -> MethodSymbol:
        """
        Find the indexed method named by a spec.

        Raises:
            MethodNotFound: if no indexed method matches, or the method string matches
                several overloads and gives no parameter list
        """
        if isinstance(method, MethodSymbol):
            return method

        owner, name, parameter_types = parse_method_spec(method)
        self.index.wait_until_ready()

        # Constructors are named after their type: pkg.Type#Type
        candidates = self.index.find_methods(owner, name)
        if parameter_types is not None:
            wanted = [erase_type(p) for p in parameter_types]
            candidates = [m for m in candidates if [erase_type(p) for p in m.parameter_types] == wanted]

        if not candidates:
            raise MethodNotFound(f"Method not found: {method}")
        if len(candidates) > 1:
            overloads = ", ".join(m.signature for m in candidates)
            raise MethodNotFound(f"Ambiguous method {method}, add a parameter list to pick one of: {overloads}")
        return candidates[0]

    def find_top_callers(
        self,
        method: Union[str, MethodSymbol],
        cancel_token: Optional[CancellationToken] = None,
        progress: Optional[ProgressCallback] = None,
    ) -> TopCallerSearchResult:
        """
        Search the top callers of a method.

        Args:
            method: Method spec or an indexed method
            cancel_token: Token that stops the search when cancelled
            progress: Called with (processed items, top callers, queued items)

        Returns:
            TopCallerSearchResult with the top callers and traversal statistics
        """
        symbol = self.resolve_method(method)
        try:
            return self.finder.search(symbol, cancel_token, progress)
        except TopCallerError:
            raise
        except Exception as e:
            logger.error(f"Top-caller search failed: {str(e)}", exc_info=True)
            raise SearchFailed(f"Top-caller search failed: {str(e)}") from e

    def find_top_callers_for_statement(
        self, statement_id: str, cancel_token: Optional[CancellationToken] = None
    ) -> List[TopCallerWithStatement]:
        """Search the top callers of the mapper method behind a MyBatis statement id."""
        try:
            return self.finder.find_top_callers_for_statement(statement_id, cancel_token)
        except TopCallerError:
            raise
        except Exception as e:
            logger.error(f"Statement search failed for {statement_id}: {str(e)}", exc_info=True)
            raise SearchFailed(f"Statement search failed: {str(e)}") from e

    def submit_search(
        self, method: Union[str, MethodSymbol], progress: Optional[ProgressCallback] = None
    ) -> Tuple["Future[TopCallerSearchResult]", CancellationToken]:
        """
        Run a search on a worker thread.

        Returns:
            (future of the result, token that cancels the search)
        """
        if self._executor is None:
            self._executor = ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="top-callers")
        token = CancellationToken()
        future = self._executor.submit(self._search_logged, method, token, progress)
        return future, token

    def _search_logged(self, method, token, progress):
        try:
            return self.find_top_callers(method, token, progress)
        except SearchCancelled:
            logger.info(f"Top-caller search of {method} cancelled")
            raise

    def clear_all_caches(self):
        self.finder.clear_all_caches()

    def summary(self) -> Dict[str, Any]:
        self.index.wait_until_ready()
        return {
            **self.index.snapshot.summary(),
            "repository_path": self.index.repo_path,
            "cached_caller_sets": len(self.finder.caller_cache),
        }

    def shutdown(self, wait: bool = True):
        if self._executor is not None:
            self._executor.shutdown(wait=wait)
            self._executor = None
