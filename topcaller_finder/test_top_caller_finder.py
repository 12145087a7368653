"""
Tests for the breadth-first top-caller search, run against an in-memory call graph.
"""

import itertools
from collections import defaultdict, deque

import pytest

from topcaller_finder.caches import CallerCache, method_key
from topcaller_finder.errors import SearchCancelled, TransientLookupError
from topcaller_finder.knowledge_base import CancellationToken, CodeKnowledgeBase, ProductionScope
from topcaller_finder.models import CallSite, FunctionalExpression, MethodSymbol, SourceLocation, TypeSymbol
from topcaller_finder.top_caller_finder import TopCallerFinder

FILE = "src/main/java/com/acme/App.java"

_offsets = itertools.count(1)


def _span(size=100):
    start = next(_offsets) * 1000
    return SourceLocation(FILE, start // 1000, start, start + size)


def _type(name, kind="class", anonymous=False, package="com.acme", location=None):
    return TypeSymbol(
        qualified_name=None if anonymous else f"{package}.{name}",
        name=name,
        binary_name=f"{package}.{name}",
        kind=kind,
        is_anonymous=anonymous,
        location=location,
    )


def _method(owner, name, *params):
    return MethodSymbol(declaring_type=owner, name=name, parameter_types=params, return_type="void", location=_span())


def _inside(method):
    """A location strictly inside the body of ``method``."""
    start = method.location.start_byte + 10 + next(_offsets) % 50
    return SourceLocation(method.location.file_path, method.location.start_line, start, start + 5)


class FakeCodeBase(CodeKnowledgeBase):
    def __init__(self):
        self.calls = defaultdict(list)  # callee -> [(location, receiver)]
        self.methods = []
        self.supertypes = defaultdict(list)
        self.overrides = defaultdict(list)
        self.lambdas = defaultdict(list)  # interface type -> [location]
        self.docs = []
        self.failing = set()
        self.broken_locations = []
        self.call_site_queries = 0
        self.cancel_after = None
        self.scope = ProductionScope()

    def add(self, *methods):
        self.methods.extend(methods)
        return methods[0] if len(methods) == 1 else methods

    def call(self, caller, callee, receiver=None):
        self.calls[callee].append((_inside(caller), receiver))

    def doc_call(self, documented, callee):
        doc = SourceLocation(FILE, 0, documented.location.start_byte + 1, documented.location.start_byte + 8)
        self.docs.append(doc)
        self.calls[callee].append((doc, None))

    def find_call_sites(self, symbol, scope):
        self.call_site_queries += 1
        if symbol in self.failing:
            raise TransientLookupError(f"index not ready for {symbol.name}")
        return [CallSite(location=loc, receiver_type=receiver) for loc, receiver in self.calls[symbol]]

    def find_overridden_root_methods(self, symbol):
        return list(self.overrides[symbol])

    def find_functional_implementations(self, interface_type, scope):
        return [FunctionalExpression("lambda", loc, interface_type) for loc in self.lambdas[interface_type]]

    def enclosing_method(self, location):
        if location in self.broken_locations:
            raise RuntimeError("stale element")
        containing = [m for m in self.methods if m.location.contains(location)]
        return min(containing, key=lambda m: m.location.end_byte - m.location.start_byte, default=None)

    def is_subtype_or_self(self, sub, sup):
        pending, seen = deque([sub]), set()
        while pending:
            current = pending.popleft()
            if current == sup:
                return True
            if current in seen:
                continue
            seen.add(current)
            pending.extend(self.supertypes[current])
        return False

    def is_in_doc_comment(self, location):
        return any(doc.contains(location) for doc in self.docs)

    def production_scope(self):
        return self.scope

    def cancellation_requested(self):
        if self.cancel_after is None:
            return False
        self.cancel_after -= 1
        return self.cancel_after < 0


@pytest.fixture
def code():
    return FakeCodeBase()


def _names(methods):
    return sorted(m.name for m in methods)


def test_chain_reports_only_the_entry_point(code):
    app = _type("App")
    a, b, c = code.add(_method(app, "a"), _method(app, "b"), _method(app, "c"))
    code.call(a, b)
    code.call(b, c)

    assert _names(TopCallerFinder(code).find_top_callers(c)) == ["a"]


def test_method_without_callers_is_not_its_own_top_caller(code):
    lonely = code.add(_method(_type("App"), "lonely"))

    result = TopCallerFinder(code).search(lonely)

    assert result.top_callers == set()
    assert result.visited_count == 1


def test_pure_cycle_has_no_top_caller(code):
    app = _type("App")
    a, b, target = code.add(_method(app, "a"), _method(app, "b"), _method(app, "target"))
    code.call(a, target)
    code.call(b, a)
    code.call(a, b)

    assert TopCallerFinder(code).find_top_callers(target) == set()


def test_diamond_reports_shared_root_once(code):
    app = _type("App")
    root, left, right, sink = code.add(
        _method(app, "root"), _method(app, "left"), _method(app, "right"), _method(app, "sink")
    )
    code.call(left, sink)
    code.call(right, sink)
    code.call(root, left)
    code.call(root, right)

    result = TopCallerFinder(code).search(sink)

    assert _names(result.top_callers) == ["root"]
    assert result.visited_count == 4


def test_callers_in_other_overloads_are_kept_apart(code):
    app = _type("App")
    save_one, save_two, caller = code.add(
        _method(app, "save", "User"), _method(app, "save", "User", "boolean"), _method(app, "caller")
    )
    code.call(save_two, save_one)
    code.call(caller, save_two)

    assert _names(TopCallerFinder(code).find_top_callers(save_one)) == ["caller"]


def test_depth_limit_truncates_long_chains(code):
    app = _type("App")
    chain = [code.add(_method(app, f"m{i}")) for i in range(60)]
    for callee, caller in zip(chain, chain[1:]):
        code.call(caller, callee)

    result = TopCallerFinder(code).search(chain[0])

    assert result.truncated
    assert result.top_callers == set()
    assert result.truncated_methods == [method_key(chain[51])]


def test_custom_depth_limit(code):
    app = _type("App")
    chain = [code.add(_method(app, f"m{i}")) for i in range(5)]
    for callee, caller in zip(chain, chain[1:]):
        code.call(caller, callee)

    assert _names(TopCallerFinder(code, max_depth=10).find_top_callers(chain[0])) == ["m4"]
    assert TopCallerFinder(code, max_depth=2).search(chain[0]).truncated


def test_interface_callers_reach_every_implementation(code):
    service = _type("Service", kind="interface")
    impl_a, impl_b = _type("ServiceA"), _type("ServiceB")
    code.supertypes[impl_a].append(service)
    code.supertypes[impl_b].append(service)

    app = _type("App")
    run, run_a, run_b = code.add(_method(service, "run"), _method(impl_a, "run"), _method(impl_b, "run"))
    via_interface, via_a = code.add(_method(app, "viaInterface"), _method(app, "viaA"))
    code.overrides[run_a].append(run)
    code.overrides[run_b].append(run)
    code.call(via_interface, run, receiver=service)
    code.call(via_a, run_a, receiver=impl_a)

    finder = TopCallerFinder(code)
    assert _names(finder.find_top_callers(run_a)) == ["viaA", "viaInterface"]
    assert _names(finder.find_top_callers(run_b)) == ["viaInterface"]


def test_sibling_receiver_is_filtered_for_inherited_method(code):
    base = _type("BaseJob")
    job_a, job_b = _type("JobA"), _type("JobB")
    code.supertypes[job_a].append(base)
    code.supertypes[job_b].append(base)

    app = _type("App")
    execute, execute_b = code.add(_method(base, "execute"), _method(job_b, "execute"))
    uses_a, uses_base = code.add(_method(app, "usesA"), _method(app, "usesBase"))
    code.overrides[execute_b].append(execute)
    code.call(uses_a, execute, receiver=job_a)
    code.call(uses_base, execute, receiver=base)

    assert _names(TopCallerFinder(code).find_top_callers(execute_b)) == ["usesBase"]


def test_anonymous_class_method_continues_from_enclosing_method(code):
    app = _type("Scheduler")
    start, main = code.add(_method(app, "start"), _method(app, "main"))
    body = start.location
    anonymous = _type("Scheduler$1", anonymous=True, location=SourceLocation(FILE, 0, body.start_byte + 10, body.start_byte + 90))
    run_span = SourceLocation(FILE, 0, body.start_byte + 20, body.start_byte + 80)
    code.add(MethodSymbol(declaring_type=anonymous, name="run", return_type="void", location=run_span))
    job = _method(_type("Job"), "execute")
    code.calls[job].append((SourceLocation(FILE, 0, body.start_byte + 30, body.start_byte + 40), None))
    code.call(main, start)

    assert _names(TopCallerFinder(code).find_top_callers(job)) == ["main"]


def test_failed_enclosing_lookup_stops_at_anonymous_method(code):
    app = _type("App")
    start = code.add(_method(app, "start"))
    body = start.location
    anonymous = _type("App$1", anonymous=True, location=SourceLocation(FILE, 0, body.start_byte + 10, body.start_byte + 90))
    run = code.add(MethodSymbol(declaring_type=anonymous, name="run", return_type="void",
                                location=SourceLocation(FILE, 0, body.start_byte + 20, body.start_byte + 80)))
    target = code.add(_method(app, "target"))
    code.calls[target].append((SourceLocation(FILE, 0, body.start_byte + 30, body.start_byte + 40), None))
    code.broken_locations.append(anonymous.location)

    # The owner of run cannot be mapped back to start, so run is as far as the search gets
    assert TopCallerFinder(code).find_top_callers(target) == {run}


def test_functional_interface_method_continues_from_lambda_declarations(code):
    consumer = _type("Consumer", kind="interface", package="java.util.function")
    accept = MethodSymbol(declaring_type=consumer, name="accept", parameter_types=("T",), return_type="void")
    app = _type("App")
    register, main = code.add(_method(app, "register"), _method(app, "main"))
    code.lambdas[consumer].append(_inside(register))
    code.call(main, register)

    assert _names(TopCallerFinder(code).find_top_callers(accept)) == ["main"]


def test_functional_interface_method_without_lambdas_is_not_reported(code):
    runnable = _type("Runnable", kind="interface", package="java.lang")
    run = MethodSymbol(declaring_type=runnable, name="run", return_type="void")
    task = _type("Task")
    code.supertypes[task].append(runnable)
    task_run, work = code.add(_method(task, "run"), _method(task, "work"))
    code.overrides[task_run].append(run)
    code.call(task_run, work)

    # Task.run is never called and no lambda stands in for it
    assert TopCallerFinder(code).find_top_callers(work) == set()


def test_doc_comment_references_are_ignored(code):
    app = _type("App")
    documented, target, real = code.add(_method(app, "documented"), _method(app, "target"), _method(app, "real"))
    code.doc_call(documented, target)
    code.call(real, target)

    assert _names(TopCallerFinder(code).find_top_callers(target)) == ["real"]


def test_cancelled_token_stops_search_and_keeps_caches_usable(code):
    app = _type("App")
    a, b = code.add(_method(app, "a"), _method(app, "b"))
    code.call(a, b)
    finder = TopCallerFinder(code)

    token = CancellationToken()
    token.cancel()
    with pytest.raises(SearchCancelled):
        finder.find_top_callers(b, token)

    assert _names(finder.find_top_callers(b)) == ["a"]


def test_cancellation_from_progress_callback(code):
    app = _type("App")
    chain = [code.add(_method(app, f"m{i}")) for i in range(10)]
    for callee, caller in zip(chain, chain[1:]):
        code.call(caller, callee)
    token = CancellationToken()
    seen = []

    def progress(processed, found, queued):
        seen.append(processed)
        if processed == 3:
            token.cancel()

    with pytest.raises(SearchCancelled):
        TopCallerFinder(code).search(chain[0], token, progress)
    assert seen == [1, 2, 3]


def test_knowledge_base_can_request_cancellation(code):
    app = _type("App")
    a, b = code.add(_method(app, "a"), _method(app, "b"))
    code.call(a, b)
    code.cancel_after = 0

    with pytest.raises(SearchCancelled):
        TopCallerFinder(code).find_top_callers(b)


def test_transient_failure_is_local_and_not_cached(code):
    app = _type("App")
    a, b, c, d = code.add(_method(app, "a"), _method(app, "b"), _method(app, "c"), _method(app, "d"))
    code.call(b, a)
    code.call(c, a)
    code.call(d, c)
    code.failing.add(b)
    cache = CallerCache()

    result = TopCallerFinder(code, caller_cache=cache).search(a)

    # b's callers could not be looked up, so the search stops there
    assert _names(result.top_callers) == ["b", "d"]
    assert method_key(b) not in cache
    assert method_key(c) in cache


def test_repeated_search_uses_cached_callers(code):
    app = _type("App")
    a, b, c = code.add(_method(app, "a"), _method(app, "b"), _method(app, "c"))
    code.call(a, c)
    code.call(b, c)
    finder = TopCallerFinder(code)

    first = finder.find_top_callers(c)
    queries = code.call_site_queries
    second = finder.find_top_callers(c)

    assert first == second
    assert code.call_site_queries == queries

    finder.clear_all_caches()
    assert finder.find_top_callers(c) == first
    assert code.call_site_queries > queries


def test_statement_search_uses_mapper_methods(code):
    mapper = _type("UserMapper", kind="interface")
    select = _method(mapper, "selectById", "long")
    app = _type("UserController")
    endpoint = code.add(_method(app, "show"))
    code.call(endpoint, select)
    code.find_methods = lambda owner, name: [select] if (owner, name) == ("com.acme.UserMapper", "selectById") else []

    finder = TopCallerFinder(code)
    records = finder.find_top_callers_for_statement("com.acme.UserMapper.selectById")

    assert [r.method.name for r in records] == ["show"]
    assert records[0].simple_statement_id == "selectById"
    assert finder.find_top_callers_for_statement("com.acme.UserMapper.deleteById") == []
    assert finder.find_top_callers_for_statement("selectById") == []
