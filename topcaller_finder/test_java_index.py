"""
Top-caller searches over small Java code bases indexed with tree-sitter.
"""

import textwrap

import pytest

from topcaller_finder.errors import IndexBuildError, KnowledgeBaseNotReady
from topcaller_finder.java_index import JavaCodeIndex
from topcaller_finder.top_caller_finder import TopCallerFinder


def _index(sources, **kwargs):
    return JavaCodeIndex.from_sources(
        {path: textwrap.dedent(source) for path, source in sources.items()}, **kwargs
    )


def _method(index, owner, name):
    methods = index.find_methods(owner, name)
    assert len(methods) == 1, f"expected one {owner}.{name}, found {methods}"
    return methods[0]


def _top_callers(index, owner, name):
    callers = TopCallerFinder(index).find_top_callers(_method(index, owner, name))
    return sorted(m.qualified_name for m in callers)


LAYERED_APP = {
    "src/main/java/com/acme/web/UserController.java": """
        package com.acme.web;

        import com.acme.service.UserService;

        public class UserController {
            private UserService userService;

            public String show(long id) {
                return userService.load(id);
            }
        }
    """,
    "src/main/java/com/acme/service/UserService.java": """
        package com.acme.service;

        import com.acme.dao.UserDao;

        public class UserService {
            private final UserDao dao = new UserDao();

            public String load(long id) {
                return dao.find(id);
            }
        }
    """,
    "src/main/java/com/acme/dao/UserDao.java": """
        package com.acme.dao;

        public class UserDao {
            public String find(long id) {
                return "user-" + id;
            }
        }
    """,
}


def test_call_chain_across_packages():
    index = _index(LAYERED_APP)

    assert _top_callers(index, "com.acme.dao.UserDao", "find") == ["com.acme.web.UserController.show"]


def test_entry_point_has_no_top_callers():
    index = _index(LAYERED_APP)

    assert _top_callers(index, "com.acme.web.UserController", "show") == []


def test_recursion_without_entry_point():
    index = _index({
        "src/main/java/com/acme/Loop.java": """
            package com.acme;

            public class Loop {
                void ping(int n) { pong(n - 1); work(); }
                void pong(int n) { ping(n - 1); }
                void work() {}
            }
        """,
    })

    assert _top_callers(index, "com.acme.Loop", "work") == []


def test_overloads_are_told_apart_by_arity():
    index = _index({
        "src/main/java/com/acme/Repository.java": """
            package com.acme;

            public class Repository {
                public void save(String item) {}
                public void save(String item, boolean flush) {}

                public void single() { save("a"); }
                public void flushed() { save("a", true); }
            }
        """,
    })
    one_arg = [m for m in index.find_methods("com.acme.Repository", "save") if m.arity == 1][0]

    callers = TopCallerFinder(index).find_top_callers(one_arg)

    assert [m.name for m in callers] == ["single"]


OVERLOADED_REPO = {
    "src/main/java/com/acme/Repo.java": """
        package com.acme;

        public class Repo {
            private String lastName;

            public void save(String name) {}
            public void save(int id) {}

            public void byName() { save("a"); }
            public void byNumber() { save(5); }
            public void byField() { save(lastName); }
            public void byLookup() { save(lookup()); }

            private Object lookup() { return null; }
        }
    """,
}


def _overload(index, parameter_type):
    methods = index.find_methods("com.acme.Repo", "save")
    return next(m for m in methods if m.parameter_types == (parameter_type,))


def test_same_arity_overloads_are_told_apart_by_argument_types():
    index = _index(OVERLOADED_REPO)
    finder = TopCallerFinder(index)

    by_string = sorted(m.name for m in finder.find_top_callers(_overload(index, "String")))
    by_int = sorted(m.name for m in finder.find_top_callers(_overload(index, "int")))

    assert by_string == ["byField", "byLookup", "byName"]
    assert by_int == ["byLookup", "byNumber"]


def test_undecided_overload_call_reaches_every_candidate():
    index = _index(OVERLOADED_REPO)
    for parameter_type in ("String", "int"):
        sites = index.find_call_sites(_overload(index, parameter_type), index.production_scope())
        callers = [index.enclosing_method(site.location).name for site in sites]

        assert "byLookup" in callers


NOTIFIERS = {
    "src/main/java/com/acme/Notifier.java": """
        package com.acme;

        public interface Notifier {
            void send(String message);
        }
    """,
    "src/main/java/com/acme/EmailNotifier.java": """
        package com.acme;

        public class EmailNotifier implements Notifier {
            @Override
            public void send(String message) {}
        }
    """,
    "src/main/java/com/acme/SmsNotifier.java": """
        package com.acme;

        public class SmsNotifier implements Notifier {
            @Override
            public void send(String message) {}
        }
    """,
    "src/main/java/com/acme/Alerts.java": """
        package com.acme;

        public class Alerts {
            public void viaInterface(Notifier notifier) {
                notifier.send("down");
            }

            public void viaEmail(EmailNotifier email) {
                email.send("down");
            }
        }
    """,
}


def test_interface_calls_reach_each_implementation():
    index = _index(NOTIFIERS)

    assert _top_callers(index, "com.acme.EmailNotifier", "send") == [
        "com.acme.Alerts.viaEmail",
        "com.acme.Alerts.viaInterface",
    ]
    assert _top_callers(index, "com.acme.SmsNotifier", "send") == ["com.acme.Alerts.viaInterface"]


def test_calls_on_sibling_subclass_are_filtered():
    index = _index({
        "src/main/java/com/acme/Job.java": """
            package com.acme;

            public abstract class Job {
                public void run() {}
            }
        """,
        "src/main/java/com/acme/ReportJob.java": """
            package com.acme;

            public class ReportJob extends Job {
            }
        """,
        "src/main/java/com/acme/CleanupJob.java": """
            package com.acme;

            public class CleanupJob extends Job {
                @Override
                public void run() {}
            }
        """,
        "src/main/java/com/acme/Runner.java": """
            package com.acme;

            public class Runner {
                void runReport(ReportJob job) { job.run(); }
                void runAny(Job job) { job.run(); }
            }
        """,
    })

    assert _top_callers(index, "com.acme.CleanupJob", "run") == ["com.acme.Runner.runAny"]
    assert _top_callers(index, "com.acme.Job", "run") == ["com.acme.Runner.runAny", "com.acme.Runner.runReport"]


def test_lambdas_stand_in_for_functional_interface_method():
    index = _index({
        "src/main/java/com/acme/Pipeline.java": """
            package com.acme;

            import java.util.List;
            import java.util.function.Consumer;

            public class Pipeline {
                public void register(List<String> items) {
                    Consumer<String> printer = s -> System.out.println(s);
                    items.forEach(printer);
                }

                public void drain(List<String> items) {
                    items.forEach(item -> System.out.println(item));
                }

                public void start() {
                    drain(null);
                }

                public static void main(String[] args) {
                    new Pipeline().register(null);
                }
            }
        """,
    })

    assert _top_callers(index, "java.util.function.Consumer", "accept") == [
        "com.acme.Pipeline.main",
        "com.acme.Pipeline.start",
    ]


def test_method_reference_counts_as_call_site():
    index = _index({
        "src/main/java/com/acme/Cleaner.java": """
            package com.acme;

            import java.util.List;

            public class Cleaner {
                public void purge(List<String> paths) {
                    paths.forEach(this::delete);
                }

                void delete(String path) {}
            }
        """,
    })

    assert _top_callers(index, "com.acme.Cleaner", "delete") == ["com.acme.Cleaner.purge"]


def test_anonymous_class_method_is_attributed_to_creating_method():
    index = _index({
        "src/main/java/com/acme/Scheduler.java": """
            package com.acme;

            public class Scheduler {
                public void schedule() {
                    Runnable task = new Runnable() {
                        @Override
                        public void run() {
                            Job.execute();
                        }
                    };
                    task.run();
                }

                public static void boot() {
                    new Scheduler().schedule();
                }
            }

            class Job {
                static void execute() {}
            }
        """,
    })

    assert _top_callers(index, "com.acme.Job", "execute") == ["com.acme.Scheduler.boot"]


def test_doc_comment_references_are_not_calls():
    index = _index({
        "src/main/java/com/acme/Billing.java": """
            package com.acme;

            public class Billing {
                /**
                 * Same as {@link Billing#charge(long)} with a receipt.
                 */
                public void documented() {}

                public void checkout() {
                    charge(10L);
                }

                public void charge(long cents) {}
            }
        """,
    })

    assert _top_callers(index, "com.acme.Billing", "charge") == ["com.acme.Billing.checkout"]


def test_constructor_callers():
    index = _index({
        "src/main/java/com/acme/Order.java": """
            package com.acme;

            public class Order {
                public Order() {
                    this("draft");
                }

                public Order(String state) {}
            }
        """,
        "src/main/java/com/acme/Checkout.java": """
            package com.acme;

            public class Checkout {
                public Order create() {
                    return new Order();
                }
            }
        """,
    })
    with_state = [m for m in index.find_methods("com.acme.Order", "Order") if m.arity == 1][0]

    callers = TopCallerFinder(index).find_top_callers(with_state)

    assert [m.qualified_name for m in callers] == ["com.acme.Checkout.create"]


GREETER = {
    "src/main/java/com/acme/Greeter.java": """
        package com.acme;

        public class Greeter {
            public String greet() { return "hi"; }
            public void welcome() { greet(); }
        }
    """,
    "src/test/java/com/acme/GreeterTest.java": """
        package com.acme;

        class GreeterTest {
            void greets() { new Greeter().greet(); }
        }
    """,
}


def test_test_sources_are_excluded_by_default():
    assert _top_callers(_index(GREETER), "com.acme.Greeter", "greet") == ["com.acme.Greeter.welcome"]


def test_test_sources_can_be_included():
    index = _index(GREETER, include_tests=True)

    assert _top_callers(index, "com.acme.Greeter", "greet") == [
        "com.acme.Greeter.welcome",
        "com.acme.GreeterTest.greets",
    ]


def test_statement_search_finds_mapper_callers():
    index = _index({
        "src/main/java/com/acme/mapper/UserMapper.java": """
            package com.acme.mapper;

            public interface UserMapper {
                User selectById(long id);
            }
        """,
        "src/main/java/com/acme/service/UserQueries.java": """
            package com.acme.service;

            import com.acme.mapper.UserMapper;

            public class UserQueries {
                private UserMapper userMapper;

                public Object byId(long id) {
                    return userMapper.selectById(id);
                }
            }
        """,
    })

    records = TopCallerFinder(index).find_top_callers_for_statement("com.acme.mapper.UserMapper.selectById")

    assert [r.method.qualified_name for r in records] == ["com.acme.service.UserQueries.byId"]
    assert records[0].statement_id == "com.acme.mapper.UserMapper.selectById"


def test_build_indexes_repository_on_disk(tmp_path):
    for path, source in LAYERED_APP.items():
        target = tmp_path / path
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(textwrap.dedent(source), encoding="utf-8")
    (tmp_path / "target").mkdir()
    (tmp_path / "target" / "Generated.java").write_text("class Generated {}", encoding="utf-8")

    index = JavaCodeIndex(str(tmp_path))
    snapshot = index.build()

    assert index.is_ready()
    assert snapshot.summary()["total_files"] == 3
    assert _top_callers(index, "com.acme.dao.UserDao", "find") == ["com.acme.web.UserController.show"]


def test_background_build_is_awaited(tmp_path):
    source = tmp_path / "src" / "main" / "java" / "App.java"
    source.parent.mkdir(parents=True)
    source.write_text("public class App { void run() {} }", encoding="utf-8")

    index = JavaCodeIndex(str(tmp_path))
    index.build_in_background().join(timeout=30)
    index.wait_until_ready(timeout=1)

    assert [m.name for m in index.snapshot.methods()] == ["run"]


def test_unbuilt_index_is_not_ready():
    index = JavaCodeIndex("/nonexistent")

    assert not index.is_ready()
    with pytest.raises(KnowledgeBaseNotReady):
        index.wait_until_ready(timeout=0.01)


def test_build_of_missing_repository_fails():
    index = JavaCodeIndex("/nonexistent/repository")

    with pytest.raises(IndexBuildError):
        index.build()
    with pytest.raises(IndexBuildError):
        index.wait_until_ready(timeout=0.01)
