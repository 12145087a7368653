"""
Core models for top-caller analysis.
"""

from typing import List, Optional, Set, Tuple, Dict, Any
from dataclasses import dataclass, field


@dataclass(frozen=True)
class SourceLocation:
    """A span of source text inside one file."""

    file_path: str = ""
    start_line: int = 0
    start_byte: int = 0
    end_byte: int = 0

    def contains(self, other: "SourceLocation") -> bool:
        """Check whether ``other`` lies inside this span of the same file."""
        return (
            self.file_path == other.file_path
            and self.start_byte <= other.start_byte
            and other.end_byte <= self.end_byte
        )

    def model_dump(self) -> Dict[str, Any]:
        return {
            "file_path": self.file_path,
            "start_line": self.start_line,
            "start_byte": self.start_byte,
            "end_byte": self.end_byte,
        }


@dataclass(frozen=True)
class TypeSymbol:
    """
    A class, interface, enum, record or type parameter.

    Anonymous and local classes have no ``qualified_name``; they are told apart
    by their ``binary_name`` (``com.acme.Outer$1``).
    """

    qualified_name: Optional[str] = None
    name: str = ""
    binary_name: str = ""
    kind: str = "class"  # class, interface, enum, record, annotation, type_parameter
    is_anonymous: bool = False
    is_external: bool = False  # referenced but not declared in the indexed sources
    bounds: Tuple["TypeSymbol", ...] = ()  # only for type parameters
    location: Optional[SourceLocation] = field(default=None, compare=False)

    @property
    def is_interface(self) -> bool:
        return self.kind in ("interface", "annotation")

    @property
    def is_type_parameter(self) -> bool:
        return self.kind == "type_parameter"

    @property
    def display_name(self) -> str:
        return self.qualified_name or self.binary_name or self.name

    def model_dump(self) -> Dict[str, Any]:
        return {
            "qualified_name": self.qualified_name,
            "name": self.name,
            "binary_name": self.binary_name,
            "kind": self.kind,
            "is_anonymous": self.is_anonymous,
            "is_external": self.is_external,
        }


@dataclass(frozen=True)
class MethodSymbol:
    """A method or constructor definition, compared by declaration."""

    declaring_type: TypeSymbol
    name: str
    parameter_types: Tuple[str, ...] = ()
    return_type: Optional[str] = None  # None for constructors
    is_constructor: bool = False
    is_abstract: bool = False
    is_static: bool = False
    location: Optional[SourceLocation] = field(default=None, compare=False)

    @property
    def owner_qualified_name(self) -> Optional[str]:
        return self.declaring_type.qualified_name

    @property
    def qualified_name(self) -> str:
        return f"{self.declaring_type.display_name}.{self.name}"

    @property
    def signature(self) -> str:
        return f"{self.name}({', '.join(self.parameter_types)})"

    @property
    def arity(self) -> int:
        return len(self.parameter_types)

    @property
    def is_varargs(self) -> bool:
        return bool(self.parameter_types) and self.parameter_types[-1].endswith("...")

    def model_dump(self) -> Dict[str, Any]:
        """Convert the method to a dictionary representation."""
        return {
            "qualified_name": self.qualified_name,
            "owner": self.declaring_type.display_name,
            "name": self.name,
            "parameter_types": list(self.parameter_types),
            "return_type": self.return_type,
            "is_constructor": self.is_constructor,
            "file_path": self.location.file_path if self.location else None,
            "start_line": self.location.start_line if self.location else None,
        }


@dataclass(frozen=True)
class CallSite:
    """An occurrence where a method is invoked or referenced."""

    location: SourceLocation
    receiver_type: Optional[TypeSymbol] = None
    kind: str = "call"  # call, method_ref, new, doc


@dataclass(frozen=True)
class FunctionalExpression:
    """A lambda or method reference and the interface it implements."""

    kind: str  # lambda, method_ref
    location: SourceLocation
    target_type: Optional[TypeSymbol] = None


@dataclass
class FrontierItem:
    """Unit of breadth-first work."""

    method: MethodSymbol
    depth: int = 0


@dataclass
class TopCallerSearchResult:
    """Outcome of one top-caller search."""

    query: MethodSymbol
    top_callers: Set[MethodSymbol] = field(default_factory=set)
    visited_count: int = 0
    processed_count: int = 0
    truncated: bool = False  # some branch was cut at the depth limit
    truncated_methods: List[str] = field(default_factory=list)

    def model_dump(self) -> Dict[str, Any]:
        callers = sorted(self.top_callers, key=lambda m: (m.qualified_name, m.parameter_types))
        return {
            "query": self.query.model_dump(),
            "top_callers": [m.model_dump() for m in callers],
            "summary": {
                "total_top_callers": len(self.top_callers),
                "visited_methods": self.visited_count,
                "processed_items": self.processed_count,
                "truncated": self.truncated,
                "truncated_methods": list(self.truncated_methods),
            },
        }


@dataclass
class TopCallerWithStatement:
    """A top caller reached from the mapper method behind a MyBatis statement."""

    method: MethodSymbol
    statement_id: str  # namespace included, e.g. com.acme.UserMapper.selectById
    statement_comment: str = ""

    @property
    def simple_statement_id(self) -> str:
        return self.statement_id.rpartition(".")[2]

    def model_dump(self) -> Dict[str, Any]:
        return {
            "statement_id": self.statement_id,
            "simple_statement_id": self.simple_statement_id,
            "statement_comment": self.statement_comment,
            "method": self.method.model_dump(),
        }


# Facts extracted from one parsed Java file. The index resolves the raw type
# texts below against imports and the other indexed files.

@dataclass
class JavaTypeDecl:
    binary_name: str
    name: str
    kind: str
    qualified_name: Optional[str] = None
    is_anonymous: bool = False
    outer_binary_name: Optional[str] = None
    super_class: Optional[str] = None
    interfaces: List[str] = field(default_factory=list)
    type_parameters: Dict[str, List[str]] = field(default_factory=dict)
    fields: Dict[str, str] = field(default_factory=dict)
    location: Optional[SourceLocation] = None


@dataclass
class JavaMethodDecl:
    method_id: str
    owner_binary_name: str
    name: str
    parameter_types: List[str] = field(default_factory=list)
    return_type: Optional[str] = None
    is_constructor: bool = False
    is_abstract: bool = False
    is_static: bool = False
    type_parameters: Dict[str, List[str]] = field(default_factory=dict)
    location: Optional[SourceLocation] = None


@dataclass
class Receiver:
    """
    How the receiver of an invocation was written.

    kind is one of: type_text (declared type of a variable, or a type name),
    name (identifier not declared locally), this, super, call (result of the
    nested ``invocation``), new (created instance of ``text``), unknown.
    """

    kind: str
    text: Optional[str] = None
    invocation: Optional["JavaInvocation"] = None


@dataclass
class JavaInvocation:
    kind: str  # call, method_ref, new, doc
    name: str
    arg_count: Optional[int]  # None when any arity may match
    receiver: Optional[Receiver]  # None for unqualified calls
    owner_binary_name: Optional[str]
    method_id: Optional[str]
    location: SourceLocation
    # Static type of each argument where it can be read off the expression
    arg_types: Optional[List[Optional[str]]] = None


@dataclass
class TargetHint:
    """Where a lambda's functional interface can be read from."""

    kind: str  # type_text, argument
    text: Optional[str] = None
    invocation: Optional[JavaInvocation] = None
    position: int = 0


@dataclass
class JavaFunctionalExpr:
    kind: str  # lambda, method_ref
    target: Optional[TargetHint]
    owner_binary_name: Optional[str]
    method_id: Optional[str]
    location: SourceLocation


@dataclass
class JavaFileFacts:
    file_path: str
    relative_path: str
    package: str = ""
    imports: List[str] = field(default_factory=list)
    wildcard_imports: List[str] = field(default_factory=list)
    static_imports: List[str] = field(default_factory=list)
    types: List[JavaTypeDecl] = field(default_factory=list)
    methods: List[JavaMethodDecl] = field(default_factory=list)
    invocations: List[JavaInvocation] = field(default_factory=list)
    functional_exprs: List[JavaFunctionalExpr] = field(default_factory=list)
    doc_comments: List[SourceLocation] = field(default_factory=list)
