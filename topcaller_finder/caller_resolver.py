"""
Caller Resolver

Finds the immediate callers of one method by combining its own call sites with
the call sites of the super methods it overrides.
"""

import logging
from typing import Callable, List, Optional, Set

from .caches import CallerCache, MethodKeyCache
from .errors import SearchCancelled, TransientLookupError
from .knowledge_base import CodeKnowledgeBase, ProductionScope, is_receiver_compatible
from .models import CallSite, MethodSymbol, TypeSymbol

logger = logging.getLogger(__name__)


class CallerResolver:
    """
    Resolves and memoizes caller sets.

    Bound to one search (knowledge-base view, scope, cancellation checkpoint);
    the caches are shared with every other search of the session.
    """

    def __init__(
        self,
        knowledge_base: CodeKnowledgeBase,
        scope: ProductionScope,
        key_cache: MethodKeyCache,
        caller_cache: CallerCache,
        checkpoint: Optional[Callable[[], None]] = None,
    ):
        self.knowledge_base = knowledge_base
        self.scope = scope
        self.key_cache = key_cache
        self.caller_cache = caller_cache
        self._checkpoint = checkpoint or (lambda: None)

    def callers_of(
        self, method: MethodSymbol, original_impl_owner: Optional[TypeSymbol] = None
    ) -> List[MethodSymbol]:
        """
        Return the methods that call ``method``, in discovery order.

        Args:
            method: Method whose callers are wanted
            original_impl_owner: Implementation class on whose behalf the call
                sites of ``method`` are filtered, None for no receiver filter

        Returns:
            Callers deduplicated by method key
        """
        method_key = self.key_cache.key_of(method)
        cached = self.caller_cache.get(method_key)
        if cached is not None:
            logger.debug(f"Caller cache hit: {method_key}")
            return cached

        self._checkpoint()

        seen: Set[str] = set()
        callers: List[MethodSymbol] = []
        complete = True

        try:
            self._find_direct_callers(method, seen, callers, original_impl_owner)

            # Calls through an interface or base class reach this method too,
            # but only when the receiver could hold this implementation.
            for super_method in self.knowledge_base.find_overridden_root_methods(method):
                self._checkpoint()
                self._find_direct_callers(super_method, seen, callers, method.declaring_type)
        except SearchCancelled:
            raise
        except TransientLookupError as e:
            logger.warning(f"Knowledge base not ready, skipping callers of {method_key}: {e}")
            complete = False
        except Exception as e:
            logger.warning(f"Error while finding callers of {method_key}: {e}")
            complete = False

        if complete:
            self.caller_cache.put(method_key, callers)
        return callers

    def _find_direct_callers(
        self,
        method: MethodSymbol,
        seen: Set[str],
        callers: List[MethodSymbol],
        original_impl_owner: Optional[TypeSymbol],
    ):
        self._checkpoint()
        expected_owner = method.declaring_type

        for site in self.knowledge_base.find_call_sites(method, self.scope):
            self._checkpoint()
            try:
                caller = self._caller_at(site, expected_owner, original_impl_owner)
            except TransientLookupError as e:
                logger.warning(f"Skipping call site in {site.location.file_path}:{site.location.start_line}: {e}")
                continue
            if caller is None:
                continue
            key = self.key_cache.key_of(caller)
            if key not in seen:
                seen.add(key)
                callers.append(caller)

    def _caller_at(
        self,
        site: CallSite,
        expected_owner: TypeSymbol,
        original_impl_owner: Optional[TypeSymbol],
    ) -> Optional[MethodSymbol]:
        if self.knowledge_base.is_in_doc_comment(site.location):
            return None

        receiver = site.receiver_type
        if receiver is not None and not self.knowledge_base.is_related_type(expected_owner, receiver):
            return None

        if original_impl_owner is not None and receiver is not None:
            if not is_receiver_compatible(receiver, original_impl_owner, self.knowledge_base.is_subtype_or_self):
                logger.debug(
                    f"Filtered incompatible call: receiver={receiver.display_name}, "
                    f"implementation={original_impl_owner.display_name}"
                )
                return None

        return self.knowledge_base.enclosing_method(site.location)
