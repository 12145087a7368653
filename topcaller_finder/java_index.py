"""
Java Code Index

Builds an immutable snapshot of call-graph facts from Java sources and answers
the knowledge-base queries of the top-caller search against it.

Resolution is static and best effort: overloads are told apart by arity and by
the argument types that can be read off the call, generic arguments are erased,
and a receiver whose type cannot be worked out may refer to any method of the
right name and arity.
"""

import logging
import threading
from collections import deque
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Dict, Iterable, Iterator, List, Optional, Sequence, Tuple

from .analyzers.java import analyze_java_file
from .errors import IndexBuildError, KnowledgeBaseNotReady
from .knowledge_base import DEFAULT_TEST_ROOTS, CodeKnowledgeBase, ProductionScope
from .models import (
    CallSite,
    FunctionalExpression,
    JavaFileFacts,
    JavaFunctionalExpr,
    JavaInvocation,
    JavaMethodDecl,
    JavaTypeDecl,
    MethodSymbol,
    Receiver,
    SourceLocation,
    TypeSymbol,
)
from .repo_analyzer import RepoAnalyzer
from .utils.security import safe_open_text

logger = logging.getLogger(__name__)

PRIMITIVE_TYPES = frozenset({
    "boolean", "byte", "char", "short", "int", "long", "float", "double", "void", "var",
})

JAVA_LANG_TYPES = frozenset({
    "Object", "String", "Runnable", "Thread", "Integer", "Long", "Boolean", "Double", "Float",
    "Short", "Byte", "Character", "Number", "Math", "System", "Iterable", "Comparable",
    "Exception", "RuntimeException", "Throwable", "Error", "StringBuilder", "Class", "Enum",
    "Record", "Void", "AutoCloseable", "CharSequence",
})

# Abstract method (name, return type, parameter types) of well-known functional
# interfaces declared outside the indexed sources
EXTERNAL_FUNCTIONAL_METHODS = {
    "java.util.function.Consumer": ("accept", "void", ("T",)),
    "java.util.function.BiConsumer": ("accept", "void", ("T", "U")),
    "java.util.function.Function": ("apply", "R", ("T",)),
    "java.util.function.BiFunction": ("apply", "R", ("T", "U")),
    "java.util.function.Supplier": ("get", "T", ()),
    "java.util.function.Predicate": ("test", "boolean", ("T",)),
    "java.util.function.BiPredicate": ("test", "boolean", ("T", "U")),
    "java.util.function.UnaryOperator": ("apply", "T", ("T",)),
    "java.util.function.BinaryOperator": ("apply", "T", ("T", "T")),
    "java.lang.Runnable": ("run", "void", ()),
    "java.util.concurrent.Callable": ("call", "V", ()),
    "org.springframework.transaction.support.TransactionCallback": ("doInTransaction", "T", ("TransactionStatus",)),
    "org.springframework.jdbc.core.RowMapper": ("mapRow", "T", ("ResultSet", "int")),
    "org.springframework.jdbc.core.ResultSetExtractor": ("extractData", "T", ("ResultSet",)),
}

EXTERNAL_INTERFACES = frozenset({
    "java.lang.Iterable", "java.lang.Comparable", "java.lang.CharSequence", "java.lang.AutoCloseable",
    "java.util.Collection", "java.util.List", "java.util.Set", "java.util.Map", "java.util.Queue",
    "java.util.Deque", "java.util.Iterator", "java.util.Comparator", "java.util.stream.Stream",
    "java.util.concurrent.Executor", "java.util.concurrent.ExecutorService",
}) | frozenset(EXTERNAL_FUNCTIONAL_METHODS)

# Functional interface expected by callbacks handed to library methods that are
# not part of the index, keyed by invoked method (or constructed class) name
LIBRARY_CALLBACK_PARAMETERS = {
    "forEach": "java.util.function.Consumer",
    "forEachOrdered": "java.util.function.Consumer",
    "forEachRemaining": "java.util.function.Consumer",
    "peek": "java.util.function.Consumer",
    "ifPresent": "java.util.function.Consumer",
    "thenAccept": "java.util.function.Consumer",
    "map": "java.util.function.Function",
    "flatMap": "java.util.function.Function",
    "computeIfAbsent": "java.util.function.Function",
    "thenApply": "java.util.function.Function",
    "filter": "java.util.function.Predicate",
    "anyMatch": "java.util.function.Predicate",
    "allMatch": "java.util.function.Predicate",
    "noneMatch": "java.util.function.Predicate",
    "removeIf": "java.util.function.Predicate",
    "orElseGet": "java.util.function.Supplier",
    "supplyAsync": "java.util.function.Supplier",
    "generate": "java.util.function.Supplier",
    "runAsync": "java.lang.Runnable",
    "execute": "java.lang.Runnable",
    "submit": "java.lang.Runnable",
    "Thread": "java.lang.Runnable",
    "query": "org.springframework.jdbc.core.RowMapper",
}

# Same, when the receiver's simple type name decides the callback type
RECEIVER_CALLBACK_PARAMETERS = {
    ("TransactionTemplate", "execute"): "org.springframework.transaction.support.TransactionCallback",
}

BOXED_TYPES = {
    "boolean": "Boolean", "byte": "Byte", "char": "Character", "short": "Short",
    "int": "Integer", "long": "Long", "float": "Float", "double": "Double",
}

# Primitive argument -> parameter types it widens to
PRIMITIVE_WIDENING = {
    "byte": ("short", "int", "long", "float", "double"),
    "short": ("int", "long", "float", "double"),
    "char": ("int", "long", "float", "double"),
    "int": ("long", "float", "double"),
    "long": ("float", "double"),
    "float": ("double",),
}

# Final library types that only ever fit their own supertypes
FINAL_LIBRARY_TYPES = frozenset({"String"}) | frozenset(BOXED_TYPES.values())
LIBRARY_SUPERTYPES = frozenset({"Object", "Serializable", "Comparable", "CharSequence", "Number"})

# Argument fit scores when choosing between overloads
EXACT_FIT, CONVERTIBLE_FIT, UNKNOWN_FIT = 2, 1, 0


def erase_type(type_text: str) -> str:
    """Simple name of a type without generic arguments: java.util.List<String> -> List."""
    base = type_text.split("<")[0].strip().replace(" ", "")
    suffix = ""
    while base.endswith("[]"):
        base, suffix = base[:-2], suffix + "[]"
    if base.endswith("..."):
        base, suffix = base[:-3], "[]"
    return base.rsplit(".", 1)[-1] + suffix


@dataclass
class _TypeEntry:
    symbol: TypeSymbol
    decl: JavaTypeDecl
    facts: JavaFileFacts


@dataclass
class _Context:
    """Where a type name or invocation was written."""

    facts: Optional[JavaFileFacts]
    owner: Optional[str]
    method: Optional[JavaMethodDecl] = None


class JavaIndexSnapshot(CodeKnowledgeBase):
    """
    Call-graph facts of one set of parsed Java files.

    Never changes after construction; resolved lookups are memoized.
    """

    def __init__(self, files: Sequence[JavaFileFacts], scope: ProductionScope):
        self.files = list(files)
        self.scope = scope

        self._types: Dict[str, _TypeEntry] = {}
        self._qualified: Dict[str, str] = {}
        self._simple: Dict[str, List[str]] = {}
        self._methods_by_owner: Dict[str, List[MethodSymbol]] = {}
        self._methods_by_file: Dict[str, List[MethodSymbol]] = {}
        self._method_entries: Dict[MethodSymbol, Tuple[JavaMethodDecl, JavaFileFacts]] = {}
        self._method_decls: Dict[str, JavaMethodDecl] = {}
        self._invocations: Dict[str, List[Tuple[JavaInvocation, JavaFileFacts]]] = {}
        self._functional: List[Tuple[JavaFunctionalExpr, JavaFileFacts]] = []
        self._doc_comments: Dict[str, List[SourceLocation]] = {}

        self._memo_lock = threading.Lock()
        self._supertypes_memo: Dict[str, List[TypeSymbol]] = {}
        self._resolution_memo: Dict[int, Tuple[Optional[TypeSymbol], bool, Tuple[MethodSymbol, ...]]] = {}
        self._roots_memo: Dict[MethodSymbol, List[MethodSymbol]] = {}
        self._functional_memo: Dict[int, Optional[TypeSymbol]] = {}

        self._build()

    def _build(self):
        for facts in self.files:
            for decl in facts.types:
                symbol = TypeSymbol(
                    qualified_name=decl.qualified_name,
                    name=decl.name,
                    binary_name=decl.binary_name,
                    kind=decl.kind,
                    is_anonymous=decl.is_anonymous,
                    location=decl.location,
                )
                if decl.binary_name in self._types:
                    logger.debug(f"Type {decl.binary_name} declared more than once, keeping {facts.relative_path}")
                self._types[decl.binary_name] = _TypeEntry(symbol, decl, facts)
                if decl.qualified_name:
                    self._qualified[decl.qualified_name] = decl.binary_name
                if decl.name and not decl.is_anonymous:
                    self._simple.setdefault(decl.name, []).append(decl.binary_name)

        for facts in self.files:
            for decl in facts.methods:
                entry = self._types.get(decl.owner_binary_name)
                if entry is None:
                    continue
                symbol = MethodSymbol(
                    declaring_type=entry.symbol,
                    name=decl.name,
                    parameter_types=tuple(decl.parameter_types),
                    return_type=decl.return_type,
                    is_constructor=decl.is_constructor,
                    is_abstract=decl.is_abstract,
                    is_static=decl.is_static,
                    location=decl.location,
                )
                self._methods_by_owner.setdefault(decl.owner_binary_name, []).append(symbol)
                self._methods_by_file.setdefault(facts.file_path, []).append(symbol)
                self._method_entries[symbol] = (decl, facts)
                self._method_decls[decl.method_id] = decl

            for invocation in facts.invocations:
                self._invocations.setdefault(invocation.name, []).append((invocation, facts))
            for expression in facts.functional_exprs:
                self._functional.append((expression, facts))
            if facts.doc_comments:
                self._doc_comments[facts.file_path] = list(facts.doc_comments)

    # Knowledge-base queries

    def find_call_sites(self, symbol: MethodSymbol, scope: ProductionScope) -> Iterator[CallSite]:
        for invocation, facts in self._invocations.get(symbol.name, []):
            if (invocation.kind == "new") != symbol.is_constructor:
                continue
            if not scope.contains(invocation.location):
                continue

            receiver, known, targets = self._resolve_invocation(invocation, self._context_of(invocation, facts))
            if targets:
                if invocation.arg_count is None:
                    # Method references name no arity, any overload may be meant
                    if not any(self._same_type(t.declaring_type, symbol.declaring_type) for t in targets):
                        continue
                elif symbol not in targets:
                    continue
                if invocation.receiver is None:
                    receiver = targets[0].declaring_type
            elif known:
                # Resolved to a type that does not declare it (library code)
                continue
            elif not self._arity_matches(symbol, invocation.arg_count):
                continue

            yield CallSite(location=invocation.location, receiver_type=receiver, kind=invocation.kind)

    def find_overridden_root_methods(self, symbol: MethodSymbol) -> List[MethodSymbol]:
        if symbol.is_constructor or symbol.is_static:
            return []
        with self._memo_lock:
            cached = self._roots_memo.get(symbol)
        if cached is not None:
            return list(cached)

        roots: List[MethodSymbol] = []
        seen = {symbol}
        pending = deque(self._direct_super_methods(symbol))
        while pending:
            method = pending.popleft()
            if method in seen:
                continue
            seen.add(method)
            deeper = self._direct_super_methods(method)
            if not deeper:
                if method not in roots:
                    roots.append(method)
            else:
                pending.extend(deeper)

        with self._memo_lock:
            self._roots_memo[symbol] = roots
        return list(roots)

    def find_functional_implementations(
        self, interface_type: TypeSymbol, scope: ProductionScope
    ) -> Iterator[FunctionalExpression]:
        for expression, facts in self._functional:
            if not scope.contains(expression.location):
                continue
            target = self._functional_target(expression, facts)
            if target is not None and self._same_type(target, interface_type):
                yield FunctionalExpression(kind=expression.kind, location=expression.location, target_type=target)

    def enclosing_method(self, location: SourceLocation) -> Optional[MethodSymbol]:
        best = None
        for method in self._methods_by_file.get(location.file_path, []):
            span = method.location
            if span is None or not span.contains(location):
                continue
            if best is None or span.end_byte - span.start_byte < best.location.end_byte - best.location.start_byte:
                best = method
        return best

    def is_subtype_or_self(self, sub: TypeSymbol, sup: TypeSymbol) -> bool:
        target = self._type_id(sup)
        seen = set()
        pending = deque([sub])
        while pending:
            current = pending.popleft()
            current_id = self._type_id(current)
            if current_id == target:
                return True
            if current_id in seen:
                continue
            seen.add(current_id)
            pending.extend(self._direct_supertypes(current))
        return False

    def is_in_doc_comment(self, location: SourceLocation) -> bool:
        return any(comment.contains(location) for comment in self._doc_comments.get(location.file_path, []))

    def production_scope(self) -> ProductionScope:
        return self.scope

    def find_methods(self, owner_qualified_name: str, name: str) -> List[MethodSymbol]:
        binary_name = self._qualified.get(owner_qualified_name, owner_qualified_name)
        if binary_name in self._types:
            return [m for m in self._methods_by_owner.get(binary_name, []) if m.name == name]
        external = self._external_method(self._external_type(owner_qualified_name))
        if external is not None and external.name == name:
            return [external]
        return []

    # Browsing

    def types(self) -> List[TypeSymbol]:
        return [entry.symbol for entry in self._types.values()]

    def methods(self) -> List[MethodSymbol]:
        return list(self._method_entries)

    def summary(self) -> Dict[str, int]:
        return {
            "total_files": len(self.files),
            "production_files": sum(1 for f in self.files if self.scope.contains(f.file_path)),
            "total_types": len(self._types),
            "total_methods": len(self._method_entries),
            "total_invocations": sum(len(v) for v in self._invocations.values()),
            "total_functional_expressions": len(self._functional),
        }

    # Type resolution

    def _context_of(self, invocation: JavaInvocation, facts: JavaFileFacts) -> _Context:
        method = self._method_decls.get(invocation.method_id) if invocation.method_id else None
        return _Context(facts, invocation.owner_binary_name, method)

    def _resolve_type(self, text: Optional[str], context: _Context, allow_type_parameters: bool = True) -> Optional[TypeSymbol]:
        """Resolve a type as written; None for primitives and arrays."""
        if not text:
            return None
        base = text.split("<")[0].strip()
        if not base or base.endswith("]") or base.endswith("...") or base in PRIMITIVE_TYPES:
            return None

        head, _, rest = base.partition(".")
        if allow_type_parameters and not rest:
            parameter = self._type_parameter(head, context)
            if parameter is not None:
                return parameter

        if base in self._qualified:
            return self._types[self._qualified[base]].symbol

        resolved = self._resolve_simple(head, context)
        if resolved is not None:
            if not rest:
                return resolved
            nested = f"{resolved.binary_name}${rest.replace('.', '$')}"
            if nested in self._types:
                return self._types[nested].symbol
            if resolved.is_external:
                return self._external_type(f"{resolved.qualified_name}.{rest}")
        return self._external_type(base)

    def _resolve_simple(self, name: str, context: _Context) -> Optional[TypeSymbol]:
        owner = context.owner
        while owner:
            entry = self._types.get(owner)
            if entry is None:
                break
            nested = f"{owner}${name}"
            if nested in self._types:
                return self._types[nested].symbol
            if entry.decl.name == name and not entry.decl.is_anonymous:
                return entry.symbol
            owner = entry.decl.outer_binary_name

        facts = context.facts
        if facts is not None:
            for imported in facts.imports:
                if imported.rsplit(".", 1)[-1] == name:
                    return self._lookup_qualified(imported)
            same_package = f"{facts.package}.{name}" if facts.package else name
            if same_package in self._qualified:
                return self._types[self._qualified[same_package]].symbol
            for package in facts.wildcard_imports:
                candidate = f"{package}.{name}"
                if candidate in self._qualified:
                    return self._types[self._qualified[candidate]].symbol
                if candidate in EXTERNAL_INTERFACES:
                    return self._external_type(candidate)

        if name in JAVA_LANG_TYPES:
            return self._external_type(f"java.lang.{name}")

        candidates = self._simple.get(name, [])
        if len(candidates) == 1:
            return self._types[candidates[0]].symbol
        return None

    def _lookup_qualified(self, qualified_name: str) -> TypeSymbol:
        binary_name = self._qualified.get(qualified_name)
        if binary_name is not None:
            return self._types[binary_name].symbol
        return self._external_type(qualified_name)

    def _type_parameter(self, name: str, context: _Context) -> Optional[TypeSymbol]:
        scopes = []
        if context.method is not None:
            scopes.append((context.method.owner_binary_name + "#" + context.method.name, context.method.type_parameters))
        owner = context.owner
        while owner:
            entry = self._types.get(owner)
            if entry is None:
                break
            scopes.append((owner, entry.decl.type_parameters))
            owner = entry.decl.outer_binary_name

        for scope_name, parameters in scopes:
            if name in parameters:
                bounds = tuple(
                    bound for bound in (
                        self._resolve_type(text, context, allow_type_parameters=False) for text in parameters[name]
                    ) if bound is not None
                )
                return TypeSymbol(
                    qualified_name=None,
                    name=name,
                    binary_name=f"{scope_name}<{name}>",
                    kind="type_parameter",
                    bounds=bounds,
                )
        return None

    def _external_type(self, qualified_name: str) -> TypeSymbol:
        kind = "interface" if qualified_name in EXTERNAL_INTERFACES else "class"
        return TypeSymbol(
            qualified_name=qualified_name,
            name=qualified_name.rsplit(".", 1)[-1],
            binary_name=qualified_name,
            kind=kind,
            is_external=True,
        )

    @staticmethod
    def _type_id(symbol: TypeSymbol) -> str:
        return symbol.binary_name or symbol.qualified_name or symbol.name

    def _same_type(self, a: TypeSymbol, b: TypeSymbol) -> bool:
        return self._type_id(a) == self._type_id(b)

    def _direct_supertypes(self, symbol: TypeSymbol) -> List[TypeSymbol]:
        if symbol.is_type_parameter:
            return list(symbol.bounds)
        if symbol.is_external:
            return []
        entry = self._types.get(symbol.binary_name)
        if entry is None:
            return []

        with self._memo_lock:
            cached = self._supertypes_memo.get(symbol.binary_name)
        if cached is not None:
            return cached

        decl = entry.decl
        # Anonymous classes see the names of the scope that creates them
        context = _Context(entry.facts, decl.outer_binary_name if decl.is_anonymous else decl.binary_name)
        supertypes = []
        for text in ([decl.super_class] if decl.super_class else []) + list(decl.interfaces):
            resolved = self._resolve_type(text, context)
            if resolved is not None and self._type_id(resolved) != decl.binary_name:
                supertypes.append(resolved)

        with self._memo_lock:
            self._supertypes_memo[symbol.binary_name] = supertypes
        return supertypes

    # Method resolution

    def _declared_methods(self, symbol: TypeSymbol) -> List[MethodSymbol]:
        if symbol.is_external:
            external = self._external_method(symbol)
            return [external] if external is not None else []
        return self._methods_by_owner.get(symbol.binary_name, [])

    def _external_method(self, symbol: TypeSymbol) -> Optional[MethodSymbol]:
        spec = EXTERNAL_FUNCTIONAL_METHODS.get(symbol.qualified_name)
        if spec is None:
            return None
        name, return_type, parameter_types = spec
        return MethodSymbol(
            declaring_type=symbol,
            name=name,
            parameter_types=parameter_types,
            return_type=return_type,
            is_abstract=True,
        )

    @staticmethod
    def _arity_matches(method: MethodSymbol, arg_count: Optional[int]) -> bool:
        if arg_count is None:
            return True
        if method.is_varargs:
            return arg_count >= method.arity - 1
        return arg_count == method.arity

    def _find_methods(
        self,
        symbol: TypeSymbol,
        name: str,
        arg_count: Optional[int],
        arg_types: Optional[Sequence[Optional[str]]] = None,
        context: Optional[_Context] = None,
    ) -> List[MethodSymbol]:
        """
        Methods named ``name`` an invocation on ``symbol`` may call.

        Walks up from ``symbol``; a declaration hides the supertype methods it
        overrides. Argument types then narrow the overloads, and when they
        cannot decide every remaining overload is returned.
        """
        candidates: List[MethodSymbol] = []
        seen = set()
        pending = deque([symbol])
        while pending:
            current = pending.popleft()
            current_id = self._type_id(current)
            if current_id in seen:
                continue
            seen.add(current_id)
            for method in self._declared_methods(current):
                if method.name != name or method.is_constructor or not self._arity_matches(method, arg_count):
                    continue
                hidden = any(
                    not self._same_type(nearer.declaring_type, current) and self._overrides(nearer, method)
                    for nearer in candidates
                )
                if not hidden:
                    candidates.append(method)
            pending.extend(self._direct_supertypes(current))
        return self._select_overloads(candidates, arg_types, context)

    def _find_constructors(
        self,
        symbol: TypeSymbol,
        arg_count: Optional[int],
        arg_types: Optional[Sequence[Optional[str]]] = None,
        context: Optional[_Context] = None,
    ) -> List[MethodSymbol]:
        candidates = [
            method for method in self._methods_by_owner.get(symbol.binary_name, [])
            if method.is_constructor and self._arity_matches(method, arg_count)
        ]
        return self._select_overloads(candidates, arg_types, context)

    def _direct_super_methods(self, method: MethodSymbol) -> List[MethodSymbol]:
        result = []
        for supertype in self._direct_supertypes(method.declaring_type):
            for found in self._find_methods(supertype, method.name, method.arity):
                if not found.is_static and found not in result and self._overrides(method, found):
                    result.append(found)
        return result

    # Overloads

    def _overrides(self, method: MethodSymbol, inherited: MethodSymbol) -> bool:
        """Whether ``method`` has the signature of ``inherited`` once type variables are erased."""
        if method.arity != inherited.arity or method.is_varargs != inherited.is_varargs:
            return False
        for own, other in zip(method.parameter_types, inherited.parameter_types):
            if erase_type(own) == erase_type(other) or self._is_type_variable(other, inherited):
                continue
            return False
        return True

    def _is_type_variable(self, type_text: str, method: MethodSymbol) -> bool:
        base = type_text.split("<")[0].strip().rstrip(".[]")
        entry = self._method_entries.get(method)
        if entry is None:
            # Synthesized library methods use single-letter type variables
            return len(base) == 1 and base.isupper()
        decl, _ = entry
        if base in decl.type_parameters:
            return True
        owner = decl.owner_binary_name
        while owner:
            type_entry = self._types.get(owner)
            if type_entry is None:
                break
            if base in type_entry.decl.type_parameters:
                return True
            owner = type_entry.decl.outer_binary_name
        return False

    def _select_overloads(
        self,
        candidates: List[MethodSymbol],
        arg_types: Optional[Sequence[Optional[str]]],
        context: Optional[_Context],
    ) -> List[MethodSymbol]:
        if len(candidates) < 2 or not arg_types:
            return candidates
        scored = []
        for method in candidates:
            score = self._argument_score(method, arg_types, context)
            if score is not None:
                scored.append((score, method))
        if not scored:
            # Nothing fits what was read off the arguments; keep them all
            return candidates
        best = max(score for score, _ in scored)
        return [method for score, method in scored if score == best]

    def _argument_score(
        self, method: MethodSymbol, arg_types: Sequence[Optional[str]], context: Optional[_Context]
    ) -> Optional[int]:
        """Sum of argument fits, None when some argument cannot be passed."""
        parameters = method.parameter_types
        total = 0
        for position, argument in enumerate(arg_types):
            if argument is None or not parameters:
                continue
            parameter = parameters[min(position, len(parameters) - 1)]
            if method.is_varargs and position >= len(parameters) - 1:
                parameter = parameter.replace("...", "")
                if argument.endswith("[]") and len(arg_types) == len(parameters):
                    parameter += "[]"
            fit = self._argument_fit(argument, parameter, method, context)
            if fit is None:
                return None
            total += fit
        return total

    def _argument_fit(
        self, argument: str, parameter: str, method: MethodSymbol, context: Optional[_Context]
    ) -> Optional[int]:
        if self._is_type_variable(parameter, method):
            return UNKNOWN_FIT
        arg_name, param_name = erase_type(argument), erase_type(parameter)
        if arg_name == param_name:
            return EXACT_FIT
        if argument == "null":
            return None if param_name in PRIMITIVE_TYPES else CONVERTIBLE_FIT

        if arg_name in PRIMITIVE_TYPES or param_name in PRIMITIVE_TYPES:
            if arg_name in PRIMITIVE_TYPES and param_name in PRIMITIVE_TYPES:
                return CONVERTIBLE_FIT if param_name in PRIMITIVE_WIDENING.get(arg_name, ()) else None
            if arg_name in PRIMITIVE_TYPES:
                fits = param_name == BOXED_TYPES.get(arg_name) or param_name in LIBRARY_SUPERTYPES
                return CONVERTIBLE_FIT if fits else None
            return CONVERTIBLE_FIT if BOXED_TYPES.get(param_name) == arg_name else None

        if arg_name.endswith("[]") or param_name.endswith("[]"):
            if arg_name.endswith("[]") and param_name.endswith("[]"):
                return self._argument_fit(argument[:-2], parameter[:-2], method, context)
            return CONVERTIBLE_FIT if param_name == "Object" else None

        if param_name == "Object":
            return CONVERTIBLE_FIT
        if arg_name in FINAL_LIBRARY_TYPES:
            return CONVERTIBLE_FIT if param_name in LIBRARY_SUPERTYPES else None
        if context is None:
            return UNKNOWN_FIT
        argument_type = self._resolve_type(argument, context)
        entry = self._method_entries.get(method)
        parameter_type = None
        if entry is not None:
            decl, facts = entry
            parameter_type = self._resolve_type(parameter, _Context(facts, decl.owner_binary_name, decl))
        if argument_type is None or parameter_type is None or argument_type.is_external or parameter_type.is_external:
            return UNKNOWN_FIT
        return CONVERTIBLE_FIT if self.is_subtype_or_self(argument_type, parameter_type) else None

    def _resolve_invocation(
        self, invocation: JavaInvocation, context: _Context
    ) -> Tuple[Optional[TypeSymbol], bool, Tuple[MethodSymbol, ...]]:
        """
        Work out what an invocation calls.

        Returns:
            (receiver type, whether the receiver is known, methods it may invoke);
            several methods when argument types leave overloads undecided, none
            when the receiver is unknown or does not declare the method
        """
        memo_key = id(invocation)
        with self._memo_lock:
            cached = self._resolution_memo.get(memo_key)
        if cached is not None:
            return cached

        result = self._do_resolve_invocation(invocation, context)
        with self._memo_lock:
            self._resolution_memo[memo_key] = result
        return result

    def _do_resolve_invocation(self, invocation: JavaInvocation, context: _Context):
        arg_types = invocation.arg_types
        if invocation.kind == "new":
            receiver, known = self._receiver_type(invocation.receiver, context)
            if receiver is None:
                return None, known, ()
            return receiver, True, tuple(self._find_constructors(receiver, invocation.arg_count, arg_types, context))

        if invocation.receiver is None:
            owner = context.owner
            while owner:
                entry = self._types.get(owner)
                if entry is None:
                    break
                methods = self._find_methods(entry.symbol, invocation.name, invocation.arg_count, arg_types, context)
                if methods:
                    return entry.symbol, True, tuple(methods)
                owner = entry.decl.outer_binary_name
            if context.facts is not None:
                for imported in context.facts.static_imports:
                    type_name, _, member = imported.rpartition(".")
                    if member not in (invocation.name, "*"):
                        continue
                    holder = self._lookup_qualified(type_name)
                    methods = self._find_methods(holder, invocation.name, invocation.arg_count, arg_types, context)
                    if methods:
                        return holder, True, tuple(methods)
            return None, True, ()

        receiver, known = self._receiver_type(invocation.receiver, context)
        if receiver is None:
            return None, known, ()
        methods = self._find_methods(receiver, invocation.name, invocation.arg_count, arg_types, context)
        return receiver, True, tuple(methods)

    def _receiver_type(self, receiver: Optional[Receiver], context: _Context) -> Tuple[Optional[TypeSymbol], bool]:
        if receiver is None:
            return None, False
        kind = receiver.kind

        if kind in ("type_text", "new"):
            return self._resolve_type(receiver.text, context), True

        if kind in ("this", "super"):
            entry = self._types.get(context.owner) if context.owner else None
            if entry is None:
                return None, False
            if kind == "this":
                return entry.symbol, True
            supertypes = self._direct_supertypes(entry.symbol)
            superclass = supertypes[0] if supertypes and entry.decl.super_class else None
            return superclass or self._external_type("java.lang.Object"), True

        if kind == "name":
            field_type = self._inherited_field_type(receiver.text, context)
            if field_type is not None:
                return field_type, True
            resolved = self._resolve_simple(receiver.text, context)
            if resolved is not None:
                return resolved, True
            if receiver.text[:1].isupper():
                return self._external_type(receiver.text), True
            return None, False

        if kind == "call" and receiver.invocation is not None:
            _, _, targets = self._resolve_invocation(receiver.invocation, context)
            if not targets or not targets[0].return_type:
                return None, False
            target = targets[0]
            if any(erase_type(t.return_type or "") != erase_type(target.return_type) for t in targets[1:]):
                # Undecided overloads returning different types
                return None, False
            decl_facts = self._method_entries.get(target)
            if decl_facts is None:
                return None, False
            decl, facts = decl_facts
            resolved = self._resolve_type(target.return_type, _Context(facts, decl.owner_binary_name, decl))
            if resolved is None:
                return None, True
            return resolved, True

        return None, False

    def _inherited_field_type(self, name: str, context: _Context) -> Optional[TypeSymbol]:
        owner = context.owner
        while owner:
            entry = self._types.get(owner)
            if entry is None:
                break
            seen = set()
            pending = deque([entry.symbol])
            while pending:
                current = pending.popleft()
                current_entry = self._types.get(current.binary_name)
                if current_entry is None or current.binary_name in seen:
                    continue
                seen.add(current.binary_name)
                type_text = current_entry.decl.fields.get(name)
                if type_text:
                    return self._resolve_type(type_text, _Context(current_entry.facts, current.binary_name))
                pending.extend(self._direct_supertypes(current))
            owner = entry.decl.outer_binary_name
        return None

    # Functional expressions

    def _functional_target(self, expression: JavaFunctionalExpr, facts: JavaFileFacts) -> Optional[TypeSymbol]:
        memo_key = id(expression)
        with self._memo_lock:
            if memo_key in self._functional_memo:
                return self._functional_memo[memo_key]

        target = self._do_functional_target(expression, facts)
        with self._memo_lock:
            self._functional_memo[memo_key] = target
        return target

    def _do_functional_target(self, expression: JavaFunctionalExpr, facts: JavaFileFacts) -> Optional[TypeSymbol]:
        hint = expression.target
        if hint is None:
            return None
        method = self._method_decls.get(expression.method_id) if expression.method_id else None
        context = _Context(facts, expression.owner_binary_name, method)

        if hint.kind == "type_text":
            return self._resolve_type(hint.text, context)

        if hint.kind == "argument" and hint.invocation is not None:
            receiver, _, targets = self._resolve_invocation(hint.invocation, context)
            target = targets[0] if targets else None
            if target is not None and target.parameter_types:
                position = min(hint.position, target.arity - 1)
                parameter_type = target.parameter_types[position]
                if parameter_type.endswith("..."):
                    parameter_type = parameter_type[:-3]
                decl_facts = self._method_entries.get(target)
                if decl_facts is None:
                    return None
                decl, target_facts = decl_facts
                return self._resolve_type(parameter_type, _Context(target_facts, decl.owner_binary_name, decl))
            if target is None:
                receiver_name = receiver.name if receiver is not None else ""
                callback = RECEIVER_CALLBACK_PARAMETERS.get((receiver_name, hint.invocation.name))
                callback = callback or LIBRARY_CALLBACK_PARAMETERS.get(hint.invocation.name)
                if callback:
                    return self._external_type(callback)
        return None


class JavaCodeIndex(CodeKnowledgeBase):
    """
    Knowledge base over a Java source tree.

    Building parses every Java file into a new :class:`JavaIndexSnapshot`.
    ``read_action`` pins the current snapshot, so a rebuild never changes the
    facts a running search sees.
    """

    def __init__(
        self,
        repo_path: Optional[str] = None,
        include_patterns: Optional[List[str]] = None,
        exclude_patterns: Optional[List[str]] = None,
        test_roots: Sequence[str] = DEFAULT_TEST_ROOTS,
        include_tests: bool = False,
    ):
        self.repo_path = repo_path
        self.repo_analyzer = RepoAnalyzer(include_patterns or ["*.java"], exclude_patterns)
        self.scope = ProductionScope(repo_path, test_roots, include_tests)
        self._snapshot: Optional[JavaIndexSnapshot] = None
        self._ready = threading.Event()
        self._build_lock = threading.Lock()
        self._build_error: Optional[str] = None

    @classmethod
    def from_sources(cls, sources: Dict[str, str], **kwargs) -> "JavaCodeIndex":
        """Index in-memory sources keyed by file path."""
        index = cls(**kwargs)
        facts = [analyze_java_file(path, content, index.repo_path) for path, content in sources.items()]
        index._install(JavaIndexSnapshot(facts, index.scope))
        return index

    def build(self) -> JavaIndexSnapshot:
        """Parse the repository and swap in the new snapshot."""
        if not self.repo_path:
            raise IndexBuildError("No repository path to index")

        with self._build_lock:
            self._ready.clear()
            try:
                logger.debug(f"Indexing Java sources under {self.repo_path}")
                structure = self.repo_analyzer.analyze_repository_structure(self.repo_path)
                files = self.repo_analyzer.collect_files(structure["file_tree"])
                logger.debug(f"Found {len(files)} Java files to index.")
                snapshot = JavaIndexSnapshot(self._analyze_files(files), self.scope)
            except Exception as e:
                self._build_error = str(e)
                self._ready.set()
                logger.error(f"Indexing failed: {str(e)}", exc_info=True)
                raise IndexBuildError(f"Indexing failed: {str(e)}") from e

            self._install(snapshot)
            logger.info(f"Indexed {snapshot.summary()['total_methods']} methods in {len(files)} files")
            return snapshot

    def build_in_background(self) -> threading.Thread:
        """Start indexing on a daemon thread; searches wait until it is done."""
        self._ready.clear()
        thread = threading.Thread(target=self._build_quietly, name="java-index-build", daemon=True)
        thread.start()
        return thread

    def _build_quietly(self):
        try:
            self.build()
        except IndexBuildError:
            pass  # already logged, surfaced by wait_until_ready

    def _analyze_files(self, files: Iterable[str]) -> List[JavaFileFacts]:
        results = []
        for file_path in files:
            try:
                content = safe_open_text(self.repo_path, file_path)
            except (OSError, UnicodeDecodeError, ValueError) as e:
                logger.warning(f"Skipping unreadable file {file_path}: {e}")
                continue
            results.append(analyze_java_file(file_path, content, self.repo_path))
        return results

    def _install(self, snapshot: JavaIndexSnapshot):
        self._snapshot = snapshot
        self._build_error = None
        self._ready.set()

    @property
    def snapshot(self) -> JavaIndexSnapshot:
        if self._snapshot is None:
            raise KnowledgeBaseNotReady("The Java index has not been built")
        return self._snapshot

    def is_ready(self) -> bool:
        return self._ready.is_set() and self._snapshot is not None

    def wait_until_ready(self, timeout: Optional[float] = None):
        if not self._ready.wait(timeout):
            raise KnowledgeBaseNotReady(f"Java index not ready after {timeout} seconds")
        if self._snapshot is None:
            raise IndexBuildError(self._build_error or "The Java index has not been built")

    @contextmanager
    def read_action(self) -> Iterator[JavaIndexSnapshot]:
        yield self.snapshot

    def find_call_sites(self, symbol, scope):
        return self.snapshot.find_call_sites(symbol, scope)

    def find_overridden_root_methods(self, symbol):
        return self.snapshot.find_overridden_root_methods(symbol)

    def find_functional_implementations(self, interface_type, scope):
        return self.snapshot.find_functional_implementations(interface_type, scope)

    def enclosing_method(self, location):
        return self.snapshot.enclosing_method(location)

    def is_subtype_or_self(self, sub, sup):
        return self.snapshot.is_subtype_or_self(sub, sup)

    def is_in_doc_comment(self, location):
        return self.snapshot.is_in_doc_comment(location)

    def production_scope(self) -> ProductionScope:
        return self.scope

    def find_methods(self, owner_qualified_name, name):
        return self.snapshot.find_methods(owner_qualified_name, name)
