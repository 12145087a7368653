"""
Top-caller finder for Java code bases.

Walks the call graph upwards from a method and reports the methods nobody
calls, seeing through anonymous classes, lambdas and interface dispatch.
"""

from .analysis_service import TopCallerAnalysisService, parse_method_spec
from .errors import (
    IndexBuildError,
    KnowledgeBaseNotReady,
    MethodNotFound,
    SearchCancelled,
    SearchFailed,
    TopCallerError,
    TransientLookupError,
)
from .java_index import JavaCodeIndex, JavaIndexSnapshot
from .knowledge_base import CancellationToken, CodeKnowledgeBase, ProductionScope
from .models import MethodSymbol, TopCallerSearchResult, TopCallerWithStatement, TypeSymbol
from .top_caller_finder import MAX_DEPTH, TopCallerFinder
