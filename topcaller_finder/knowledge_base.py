"""
Code knowledge base contract

The top-caller search only talks to the code base through this interface.
Implementations answer symbol queries against one consistent snapshot.
"""

import logging
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from pathlib import PurePath
from typing import Callable, Iterable, Iterator, List, Optional, Sequence, Union

from .errors import SearchCancelled
from .models import CallSite, FunctionalExpression, MethodSymbol, SourceLocation, TypeSymbol

logger = logging.getLogger(__name__)

# Source roots holding test code. Multi-segment entries match anywhere in the
# path, single-segment entries only as the top-level directory of the project.
DEFAULT_TEST_ROOTS = (
    "src/test",
    "src/testFixtures",
    "src/integrationTest",
    "src/it",
    "src/androidTest",
    "test",
    "tests",
)


class ProductionScope:
    """
    Predicate over source locations that excludes test source roots.
    """

    def __init__(
        self,
        root_path: Optional[str] = None,
        test_roots: Sequence[str] = DEFAULT_TEST_ROOTS,
        include_tests: bool = False,
    ):
        self.root_path = root_path
        self.include_tests = include_tests
        self._test_roots = [tuple(PurePath(root).parts) for root in test_roots]

    def _relative_parts(self, file_path: str) -> tuple:
        path = PurePath(file_path.replace("\\", "/"))
        if self.root_path:
            try:
                path = path.relative_to(PurePath(self.root_path.replace("\\", "/")))
            except ValueError:
                pass
        # Drop the file name, only directories can be source roots
        return path.parts[:-1]

    def is_test_source(self, file_path: str) -> bool:
        parts = self._relative_parts(file_path)
        for root in self._test_roots:
            if len(root) == 1:
                if parts and parts[0] == root[0]:
                    return True
                continue
            for i in range(len(parts) - len(root) + 1):
                if parts[i:i + len(root)] == root:
                    return True
        return False

    def contains(self, target: Union[str, SourceLocation]) -> bool:
        file_path = target.file_path if isinstance(target, SourceLocation) else target
        if self.include_tests:
            return True
        return not self.is_test_source(file_path)

    __contains__ = contains


class CancellationToken:
    """Cooperative cancellation flag shared between a search and its owner."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self):
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    def check(self):
        if self._event.is_set():
            raise SearchCancelled("Top-caller search was cancelled")


def are_types_related(
    expected: TypeSymbol,
    receiver: TypeSymbol,
    is_subtype_or_self: Callable[[TypeSymbol, TypeSymbol], bool],
) -> bool:
    """
    Check that a call site's receiver type could refer to the declaring type.

    The two types are related when one is the other or inherits from it. A
    type-parameter receiver is related when one of its bounds is.
    """
    if is_subtype_or_self(expected, receiver) or is_subtype_or_self(receiver, expected):
        return True
    if receiver.is_type_parameter:
        for bound in receiver.bounds:
            if is_subtype_or_self(expected, bound) or is_subtype_or_self(bound, expected):
                return True
    return False


def is_receiver_compatible(
    receiver: TypeSymbol,
    original_impl_owner: TypeSymbol,
    is_subtype_or_self: Callable[[TypeSymbol, TypeSymbol], bool],
) -> bool:
    """
    Check that a receiver could hold an instance of ``original_impl_owner``.

    Used when the callers of an interface or super method are collected on
    behalf of one implementation:

    - interface receivers are always accepted, nothing is known statically;
    - a concrete receiver must be the implementation class or one of its
      ancestors (receiver ``A`` with impl ``A``, or receiver ``Base`` with impl
      ``A extends Base``), a sibling implementation ``B`` is rejected.
    """
    if receiver.is_interface:
        return True
    if receiver.is_type_parameter:
        if not receiver.bounds:
            return True
        return any(is_receiver_compatible(bound, original_impl_owner, is_subtype_or_self)
                   for bound in receiver.bounds)
    return is_subtype_or_self(original_impl_owner, receiver)


class CodeKnowledgeBase(ABC):
    """
    Symbol index queried by the top-caller search.

    Every query is a bounded, idempotent read. ``TransientLookupError`` may be
    raised by any query when a single lookup fails.
    """

    @abstractmethod
    def find_call_sites(self, symbol: MethodSymbol, scope: ProductionScope) -> Iterable[CallSite]:
        """All references to ``symbol`` inside ``scope``."""

    @abstractmethod
    def find_overridden_root_methods(self, symbol: MethodSymbol) -> List[MethodSymbol]:
        """The deepest super methods ``symbol`` overrides, empty if it overrides none."""

    @abstractmethod
    def find_functional_implementations(
        self, interface_type: TypeSymbol, scope: ProductionScope
    ) -> Iterable[FunctionalExpression]:
        """Lambdas and method references whose target type is ``interface_type``."""

    @abstractmethod
    def enclosing_method(self, location: SourceLocation) -> Optional[MethodSymbol]:
        """Innermost method whose declaration contains ``location``."""

    @abstractmethod
    def is_subtype_or_self(self, sub: TypeSymbol, sup: TypeSymbol) -> bool:
        pass

    @abstractmethod
    def is_in_doc_comment(self, location: SourceLocation) -> bool:
        pass

    @abstractmethod
    def production_scope(self) -> ProductionScope:
        pass

    def is_related_type(self, a: TypeSymbol, b: TypeSymbol) -> bool:
        return are_types_related(a, b, self.is_subtype_or_self)

    def find_methods(self, owner_qualified_name: str, name: str) -> List[MethodSymbol]:
        """Methods named ``name`` declared by the type ``owner_qualified_name``."""
        return []

    def is_ready(self) -> bool:
        return True

    def wait_until_ready(self, timeout: Optional[float] = None):
        pass

    def cancellation_requested(self) -> bool:
        return False

    @contextmanager
    def read_action(self) -> Iterator["CodeKnowledgeBase"]:
        """Yield a view that stays consistent for the whole ``with`` block."""
        yield self
