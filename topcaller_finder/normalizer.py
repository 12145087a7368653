"""
Indirection normalization

Some methods are never called by name: a method of an anonymous class is
invoked wherever the anonymous object was created, and a functional-interface
method is invoked wherever the lambda or method reference was written. This
module rewrites such methods into the methods that really originate the call.
"""

import logging
from typing import Callable, Iterable, List, Optional

from .caches import MethodKeyCache
from .errors import SearchCancelled, TransientLookupError
from .knowledge_base import CodeKnowledgeBase, ProductionScope
from .models import MethodSymbol

logger = logging.getLogger(__name__)

# Abstract methods of well-known single-method contracts, as owner.method
FUNCTIONAL_INTERFACE_METHODS = frozenset({
    # java.util.function
    "java.util.function.Consumer.accept",
    "java.util.function.BiConsumer.accept",
    "java.util.function.Function.apply",
    "java.util.function.BiFunction.apply",
    "java.util.function.Supplier.get",
    "java.util.function.Predicate.test",
    "java.util.function.BiPredicate.test",
    "java.util.function.UnaryOperator.apply",
    "java.util.function.BinaryOperator.apply",
    # java.lang
    "java.lang.Runnable.run",
    "java.util.concurrent.Callable.call",
    # streams
    "java.util.stream.Stream.forEach",
    "java.util.stream.Stream.map",
    "java.util.stream.Stream.filter",
    "java.util.stream.Stream.flatMap",
    # framework callbacks
    "org.springframework.transaction.support.TransactionCallback.doInTransaction",
    "org.springframework.jdbc.core.RowMapper.mapRow",
    "org.springframework.jdbc.core.ResultSetExtractor.extractData",
})


class IndirectionNormalizer:
    """
    Substitutes anonymous-class and functional-interface methods.

    Bound to one search: one knowledge-base view and one production scope.
    """

    def __init__(
        self,
        knowledge_base: CodeKnowledgeBase,
        scope: ProductionScope,
        key_cache: MethodKeyCache,
        checkpoint: Optional[Callable[[], None]] = None,
        functional_interface_methods: Optional[Iterable[str]] = None,
    ):
        self.knowledge_base = knowledge_base
        self.scope = scope
        self.key_cache = key_cache
        self._checkpoint = checkpoint or (lambda: None)
        self.functional_interface_methods = frozenset(
            functional_interface_methods
            if functional_interface_methods is not None
            else FUNCTIONAL_INTERFACE_METHODS
        )

    def normalize(self, method: MethodSymbol) -> Optional[List[MethodSymbol]]:
        """
        Return the methods that stand in for ``method``, or None to keep it.

        The anonymous-owner rule wins over the functional-interface rule.
        """
        enclosing = self.enclosing_method_of_anonymous(method)
        if enclosing is not None:
            logger.debug(
                f"{self.key_cache.key_of(method)} is declared in an anonymous or local class, "
                f"continuing from {self.key_cache.key_of(enclosing)}"
            )
            return [enclosing]

        if self.is_functional_interface_method(method):
            logger.debug(
                f"{self.key_cache.key_of(method)} is a functional-interface method, "
                f"looking for lambdas and method references"
            )
            substitutes = self.find_lambda_declaration_callers(method)
            if substitutes:
                logger.debug(f"Found {len(substitutes)} lambda/method-reference declaration sites")
                return substitutes
        return None

    def enclosing_method_of_anonymous(self, method: MethodSymbol) -> Optional[MethodSymbol]:
        owner = method.declaring_type
        if not (owner.is_anonymous or owner.qualified_name is None):
            return None
        if owner.location is None:
            return None
        try:
            return self.knowledge_base.enclosing_method(owner.location)
        except SearchCancelled:
            raise
        except TransientLookupError as e:
            logger.warning(f"Could not find the method enclosing {owner.binary_name}: {e}")
            return None
        except Exception as e:
            logger.warning(f"Error while looking up the method enclosing {owner.binary_name}: {e}")
            return None

    def is_functional_interface_method(self, method: MethodSymbol) -> bool:
        """
        Check ``method`` against the table, directly or through its deepest
        super methods.
        """
        if self._table_name(method) in self.functional_interface_methods:
            return True
        try:
            super_methods = self.knowledge_base.find_overridden_root_methods(method)
        except SearchCancelled:
            raise
        except Exception as e:
            logger.warning(f"Could not look up super methods of {method.qualified_name}: {e}")
            return False
        return any(self._table_name(m) in self.functional_interface_methods for m in super_methods)

    def find_lambda_declaration_callers(self, method: MethodSymbol) -> List[MethodSymbol]:
        """Methods that contain a lambda or method reference implementing ``method``'s interface."""
        self._checkpoint()
        callers: List[MethodSymbol] = []
        caller_keys = set()
        try:
            expressions = self.knowledge_base.find_functional_implementations(
                method.declaring_type, self.scope
            )
            for expression in expressions:
                self._checkpoint()
                if self.knowledge_base.is_in_doc_comment(expression.location):
                    continue
                enclosing = self.knowledge_base.enclosing_method(expression.location)
                if enclosing is None:
                    continue
                key = self.key_cache.key_of(enclosing)
                if key not in caller_keys:
                    caller_keys.add(key)
                    callers.append(enclosing)
        except SearchCancelled:
            raise
        except TransientLookupError as e:
            logger.warning(f"Lambda/method-reference lookup skipped: {e}")
        except Exception as e:
            logger.warning(f"Error while looking up lambdas and method references: {e}")
        return callers

    @staticmethod
    def _table_name(method: MethodSymbol) -> Optional[str]:
        owner = method.declaring_type.qualified_name
        if owner is None:
            return None
        return f"{owner}.{method.name}"
