"""Tests for cause-chain walking."""

from tandemlog.diagnostics.cause_chain import describe, walk_causes


class A(Exception):
    pass


class B(Exception):
    pass


class C(Exception):
    pass


class Unprintable:
    def __str__(self):
        raise RuntimeError("nope")


def _chained():
    try:
        try:
            try:
                raise C("c-msg")
            except C as c:
                raise B("b-msg") from c
        except B as b:
            raise A("a-msg") from b
    except A as a:
        return a


class TestWalkCauses:
    def test_chain_in_order_without_the_error_itself(self):
        assert walk_causes(_chained()) == ["B: b-msg", "C: c-msg"]

    def test_no_cause(self):
        assert walk_causes(ValueError("alone")) == []

    def test_implicit_context_is_followed(self):
        try:
            try:
                raise KeyError("k")
            except KeyError:
                raise ValueError("while handling")
        except ValueError as e:
            assert walk_causes(e) == ["KeyError: 'k'"]

    def test_suppressed_context_is_ignored(self):
        try:
            try:
                raise KeyError("k")
            except KeyError:
                raise ValueError("clean") from None
        except ValueError as e:
            assert walk_causes(e) == []

    def test_self_reference_terminates(self):
        error = A("loop")
        error.__cause__ = error
        assert walk_causes(error) == []

    def test_cycle_terminates_with_distinct_nodes(self):
        a, b, c = A("a"), B("b"), C("c")
        a.__cause__ = b
        b.__cause__ = c
        c.__cause__ = b
        result = walk_causes(a)
        assert result == ["B: b", "C: c"]
        assert len(result) <= 3

    def test_mapping_and_primitive_causes(self):
        error = {
            "message": "top",
            "cause": {"name": "DbError", "message": "down", "cause": "socket closed"},
        }
        assert walk_causes(error) == ["DbError: down", "socket closed"]

    def test_object_cause_attribute(self):
        class RemoteFailure:
            def __init__(self, name, message, cause=None):
                self.name, self.message, self.cause = name, message, cause

        error = RemoteFailure("Gateway", "502", RemoteFailure("Upstream", "refused", cause=42))
        assert walk_causes(error) == ["Upstream: refused", "42"]

    def test_broken_str_is_tolerated(self):
        assert walk_causes({"cause": Unprintable()}) == ["<unprintable Unprintable>"]


class TestDescribe:
    def test_empty_exception_message(self):
        assert describe(B()) == "B"

    def test_named_object(self):
        assert describe({"name": "Timeout", "message": "5s"}) == "Timeout: 5s"
