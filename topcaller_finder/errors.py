"""
Exceptions raised by the top-caller search.
"""


class TopCallerError(Exception):
    """Base class for top-caller search errors."""


class SearchCancelled(TopCallerError):
    """The caller asked for the running search to stop."""


class TransientLookupError(TopCallerError):
    """A single knowledge-base query failed; the search goes on without it."""


class KnowledgeBaseNotReady(TopCallerError):
    """The knowledge base did not finish indexing within the allowed time."""


class MethodNotFound(TopCallerError, LookupError):
    """The requested method is not declared in the indexed sources."""


class IndexBuildError(TopCallerError, RuntimeError):
    """A source tree could not be indexed."""


class SearchFailed(TopCallerError, RuntimeError):
    """A search stopped on an unexpected error."""
