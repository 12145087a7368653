"""
Tests for the facts extracted from single Java files.
"""

import textwrap

from topcaller_finder.analyzers.java import analyze_java_file


def _facts(source, path="src/main/java/com/acme/Outer.java"):
    return analyze_java_file(path, textwrap.dedent(source))


OUTER = """
    package com.acme;

    import java.util.List;
    import java.util.concurrent.*;
    import static com.acme.Checks.requireNonNull;

    public class Outer<T extends Comparable<T>> {
        private Helper helper;

        /**
         * Delegates to {@link Helper#assist(String)}.
         */
        public void work(String input) {
            class Local {
                void go() {}
            }
            Runnable task = new Runnable() {
                public void run() {}
            };
            helper.assist(input);
            this.done();
            requireNonNull(input);
        }

        void done() {}

        static class Nested {}
    }
"""


def test_header_is_extracted():
    facts = _facts(OUTER)

    assert facts.package == "com.acme"
    assert facts.imports == ["java.util.List"]
    assert facts.wildcard_imports == ["java.util.concurrent"]
    assert facts.static_imports == ["com.acme.Checks.requireNonNull"]


def test_type_binary_names():
    types = {t.binary_name: t for t in _facts(OUTER).types}

    assert set(types) == {
        "com.acme.Outer",
        "com.acme.Outer$1Local",
        "com.acme.Outer$1",
        "com.acme.Outer$Nested",
    }
    assert types["com.acme.Outer$Nested"].qualified_name == "com.acme.Outer.Nested"
    assert types["com.acme.Outer$1Local"].qualified_name is None
    assert types["com.acme.Outer$1"].is_anonymous
    assert types["com.acme.Outer$1"].super_class == "Runnable"
    assert types["com.acme.Outer"].type_parameters == {"T": ["Comparable<T>"]}
    assert types["com.acme.Outer"].fields == {"helper": "Helper"}


def test_method_span_starts_at_javadoc():
    facts = _facts(OUTER)
    work = next(m for m in facts.methods if m.name == "work")

    assert facts.doc_comments
    assert work.location.start_byte == facts.doc_comments[0].start_byte
    assert work.parameter_types == ["String"]
    assert work.return_type == "void"


def test_invocation_receivers():
    facts = _facts(OUTER)
    calls = {i.name: i for i in facts.invocations if i.kind == "call"}

    assert calls["assist"].receiver.kind == "type_text"
    assert calls["assist"].receiver.text == "Helper"
    assert calls["done"].receiver.kind == "this"
    assert calls["requireNonNull"].receiver is None
    assert calls["requireNonNull"].arg_count == 1


def test_doc_reference_is_recorded():
    docs = [i for i in _facts(OUTER).invocations if i.kind == "doc"]

    assert [(d.name, d.arg_count, d.receiver.text) for d in docs] == [("assist", 1, "Helper")]


def test_lambda_targets():
    facts = _facts("""
        package com.acme;

        import java.util.function.Supplier;

        public class Lazy {
            private final Supplier<String> value = () -> "x";

            Runnable task() {
                return () -> {};
            }

            void submit(Executor executor) {
                executor.execute(() -> task());
            }
        }
    """, "src/main/java/com/acme/Lazy.java")
    hints = [(e.kind, e.target.kind, e.target.text) for e in facts.functional_exprs]

    assert hints == [
        ("lambda", "type_text", "Supplier<String>"),
        ("lambda", "type_text", "Runnable"),
        ("lambda", "argument", None),
    ]
    argument = facts.functional_exprs[2].target
    assert argument.invocation.name == "execute"
    assert argument.position == 0


def test_untyped_lambda_parameter_is_unknown_receiver():
    facts = _facts("""
        package com.acme;

        public class Visitor {
            void visit(java.util.List<Node> nodes) {
                nodes.forEach(node -> node.accept(this));
            }
        }
    """, "src/main/java/com/acme/Visitor.java")
    accept = next(i for i in facts.invocations if i.name == "accept")

    assert accept.receiver.kind == "unknown"


def test_argument_types_read_off_expressions():
    facts = _facts("""
        package com.acme;

        public class Calls {
            private Config config;

            void run(String name, int count) {
                record("a", 5, 7L, 1.5f, true, null, name, count, this.config, new Config(), (Object) name, "x" + count);
                record(lookup(), -3, !done(), name == null);
            }
        }
    """, "src/main/java/com/acme/Calls.java")
    record = [i for i in facts.invocations if i.name == "record"]

    assert record[0].arg_types == [
        "String", "int", "long", "float", "boolean", "null", "String", "int", "Config", "Config", "Object", "String",
    ]
    assert record[1].arg_types == [None, "int", "boolean", "boolean"]
