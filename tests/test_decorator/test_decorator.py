import asyncio
import functools
import importlib.util
import inspect
import linecache
import sys
import textwrap
import types
from typing import Iterator

import libcst as cst
import pytest

from fnaop import (
    InvalidHookReference,
    MissingHooks,
    UnrecognizedOption,
    UnsupportedDeclarationShape,
    aspect,
    parse_directive,
    weave_function,
)
from fnaop.decorator import _global_lookup

CALLS = []
SENTINEL = object()


def record_before(*args, **kwargs):
    CALLS.append(("before", args, kwargs))
    return "before-return"


def record_after(*args, **kwargs):
    CALLS.append(("after", args, kwargs))
    return "after-return"


hooks = types.SimpleNamespace(enter=record_before, leave=record_after)
audit = types.SimpleNamespace(enter=lambda *args: CALLS.append(("audit", args, {})))


def passthrough(func):
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        return func(*args, **kwargs)

    return wrapper


@pytest.fixture(autouse=True)
def reset_calls():
    CALLS.clear()
    yield
    CALLS.clear()


# =============================================================================
# Module-level declarations, woven at import time
# =============================================================================


@aspect(before="record_before", after="record_after")
def say_hello(x: int) -> int:
    """Add one."""
    CALLS.append(("body", (x,), {}))
    return x + 1


@aspect(before="record_before")
def greet(name):
    return f"hello {name}"


@aspect(after="record_after")
def notify(channel: str) -> None:
    CALLS.append(("body", (channel,), {}))


@aspect(before="hooks.enter", after="hooks.leave")
def spread(a, /, b, *args, c, d=4, **kw) -> tuple:
    return (a, b, args, c, d, kw)


@aspect(before="record_before")
def identity(value=SENTINEL, *, flag=SENTINEL):
    return value, flag


@aspect(before="record_before", after="record_after")
def explode(x: int) -> int:
    raise ValueError(x)


@aspect(before="record_before")
def factorial(n: int) -> int:
    return 1 if n <= 1 else n * factorial(n - 1)


@aspect(after="record_after")
def clash(_fnaop_original: int, _fnaop_result: int = 2) -> int:
    return _fnaop_original * _fnaop_result


@aspect(before="record_before", after="record_after")
async def fetch_double(x: int) -> int:
    await asyncio.sleep(0)
    CALLS.append(("body", (x,), {}))
    return 2 * x


@aspect(before="record_before", after="record_after")
def countdown(n: int) -> Iterator[int]:
    while n > 0:
        yield n
        n -= 1
    return "liftoff"


@aspect(before="record_before")
@aspect(after="record_after")
def stacked(x: int) -> int:
    CALLS.append(("body", (x,), {}))
    return x


class Account:
    def __init__(self, balance: int = 0):
        self.balance = balance

    @aspect(before="record_before", after="record_after")
    def deposit(self, amount: int) -> int:
        self.balance += amount
        return self.balance

    @classmethod
    @aspect(before="record_before")
    def opened(cls, balance: int = 0) -> "Account":
        return cls(balance)

    @staticmethod
    @aspect(after="record_after")
    def fee(amount: int) -> int:
        return amount // 100


class SavingsAccount(Account):
    @aspect(after="record_after")
    def deposit(self, amount: int) -> int:
        return super().deposit(amount * 2)


class Sink:
    def enter(self, *args):
        CALLS.append(("sink", args, {}))


@aspect(before="audit.enter")
def handle(audit, request_id: int = 0):
    return "handled"


@passthrough
@aspect(before="record_before")
def relayed(x):
    return x


def _slots():
    return [slot for slot, *_ in CALLS]


# =============================================================================
# Call behaviour
# =============================================================================


def test_before_body_after_with_result():
    assert say_hello(41) == 42
    assert CALLS == [
        ("before", (41,), {}),
        ("body", (41,), {}),
        ("after", (41, 42), {}),
    ]


def test_before_only_returns_body_value():
    assert greet("world") == "hello world"
    assert CALLS == [("before", ("world",), {})]


def test_none_return_annotation_gets_no_result():
    assert notify("ops") is None
    assert CALLS == [("body", ("ops",), {}), ("after", ("ops",), {})]


def test_every_parameter_kind_is_forwarded():
    result = spread(1, 2, 3, c=5, e=6)
    assert result == (1, 2, (3,), 5, 4, {"e": 6})
    assert CALLS == [
        ("before", (1, 2, 3), {"c": 5, "d": 4, "e": 6}),
        ("after", (1, 2, 3, result), {"c": 5, "d": 4, "e": 6}),
    ]


def test_keyword_call_of_positional_parameter_is_forwarded_positionally():
    spread(1, b=2, c=3)
    assert CALLS[0] == ("before", (1, 2), {"c": 3, "d": 4})


def test_defaults_keep_their_identity():
    assert identity() == (SENTINEL, SENTINEL)
    assert identity.__defaults__ == (SENTINEL,)
    assert identity.__kwdefaults__ == {"flag": SENTINEL}
    assert CALLS == [("before", (SENTINEL,), {"flag": SENTINEL})]


def test_wrong_arity_fails_before_hooks():
    with pytest.raises(TypeError):
        say_hello(1, 2)
    with pytest.raises(TypeError):
        spread(1, 2)
    assert CALLS == []


def test_exception_in_body_skips_after():
    with pytest.raises(ValueError):
        explode(3)
    assert CALLS == [("before", (3,), {})]


def test_recursive_calls_are_woven_each_time():
    assert factorial(4) == 24
    assert CALLS == [("before", (n,), {}) for n in (4, 3, 2, 1)]


def test_parameters_named_like_internals():
    assert clash(3) == 6
    assert CALLS == [("after", (3, 2, 6), {})]


def test_path_hooks_resolve_at_call_time(monkeypatch):
    seen = []
    monkeypatch.setattr(sys.modules[__name__], "record_before", lambda *a: seen.append(a))
    assert greet("late") == "hello late"
    assert seen == [("late",)]
    assert CALLS == []


def test_coroutine_function():
    assert inspect.iscoroutinefunction(fetch_double)
    coroutine = fetch_double(4)
    assert CALLS == []
    assert asyncio.run(coroutine) == 8
    assert CALLS == [
        ("before", (4,), {}),
        ("body", (4,), {}),
        ("after", (4, 8), {}),
    ]


def test_generator_function():
    assert inspect.isgeneratorfunction(countdown)
    gen = countdown(3)
    assert CALLS == []
    assert next(gen) == 3
    assert _slots() == ["before"]
    assert list(gen) == [2, 1]
    assert CALLS[-1] == ("after", (3, "liftoff"), {})


def test_stacked_decorators():
    assert stacked(9) == 9
    assert _slots() == ["before", "body", "after"]
    assert CALLS[-1] == ("after", (9, 9), {})


# =============================================================================
# Methods
# =============================================================================


def test_instance_method():
    account = Account()
    assert account.deposit(10) == 10
    assert [(slot, args[1:]) for slot, args, _ in CALLS] == [
        ("before", (10,)),
        ("after", (10, 10)),
    ]
    assert CALLS[0][1][0] is account


def test_classmethod_below_decorator():
    account = Account.opened(5)
    assert isinstance(account, Account)
    assert account.balance == 5
    assert CALLS == [("before", (Account, 5), {})]


def test_staticmethod_below_decorator():
    assert Account.fee(250) == 2
    assert CALLS == [("after", (250, 2), {})]


def test_zero_argument_super():
    account = SavingsAccount()
    assert account.deposit(5) == 10
    assert _slots() == ["before", "after", "after"]


# =============================================================================
# Signature and metadata
# =============================================================================


def test_metadata_is_preserved():
    assert say_hello.__name__ == "say_hello"
    assert say_hello.__qualname__ == "say_hello"
    assert say_hello.__doc__ == "Add one."
    assert say_hello.__module__ == __name__
    assert Account.deposit.__qualname__ == "Account.deposit"


def test_signature_is_real_not_wrapped():
    for func in (say_hello, spread, identity, fetch_double, Account.deposit):
        assert inspect.signature(func, follow_wrapped=False) == inspect.signature(
            func.__wrapped__
        )
    assert "a, /, b, *args, c, d=4, **kw" in str(inspect.signature(spread, follow_wrapped=False))


def test_woven_source_is_registered_for_tracebacks():
    filename = say_hello.__code__.co_filename
    assert filename.startswith("<fnaop:")
    assert any("def say_hello" in line for line in linecache.getlines(filename))


def test_callable_hooks():
    seen = []

    @aspect(before=lambda x: seen.append(("before", x)), after=record_after)
    def square(x: int) -> int:
        return x * x

    assert square(3) == 9
    assert seen == [("before", 3)]
    assert CALLS == [("after", (3, 9), {})]


def test_closures_are_untouched():
    factor = 3

    @aspect(before="record_before")
    def scale(x):
        return x * factor

    assert scale(2) == 6
    assert CALLS == [("before", (2,), {})]


def test_weave_function_directly():
    def plain(x, y=1) -> int:
        return x - y

    woven = weave_function(plain, parse_directive([("after", "record_after")]))
    assert woven is not plain
    assert woven.__wrapped__ is plain
    assert woven(5) == 4
    assert CALLS == [("after", (5, 1, 4), {})]


@pytest.mark.skipif(sys.version_info < (3, 12), reason="PEP 695 syntax")
@pytest.mark.skipif(not hasattr(cst, "TypeParameters"), reason="libcst without PEP 695 support")
def test_type_parameters_are_preserved(tmp_path):
    path = tmp_path / "generic_mod.py"
    path.write_text(
        textwrap.dedent(
            """
            from fnaop import aspect

            SEEN = []

            def remember(*args):
                SEEN.append(args)

            @aspect(after="remember")
            def first[T](items: list[T]) -> T:
                return items[0]
            """
        )
    )
    spec = importlib.util.spec_from_file_location("generic_mod", path)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)

    assert module.first([7, 8]) == 7
    assert module.SEEN == [([7, 8], 7)]
    assert len(module.first.__type_params__) == 1


def test_parameter_named_like_hook_path_does_not_hide_hook():
    sink = Sink()
    assert handle(sink, request_id=7) == "handled"
    assert CALLS == [("audit", (sink, 7), {})]


def test_global_lookup_reads_globals_then_builtins():
    lookup = _global_lookup({"answer": 42, "__builtins__": {"len": len}})
    assert lookup("answer") == 42
    assert lookup("len") is len
    with pytest.raises(NameError):
        lookup("missing")
    assert _global_lookup({})("print") is print


def test_wrapping_decorator_above_aspect():
    assert relayed(4) == 4
    assert CALLS == [("before", (4,), {})]


# =============================================================================
# Rejections
# =============================================================================


def test_directive_is_validated_eagerly():
    with pytest.raises(MissingHooks):
        aspect()
    with pytest.raises(MissingHooks):
        aspect(before=None, after=None)
    with pytest.raises(UnrecognizedOption):
        aspect("record_before")
    with pytest.raises(UnrecognizedOption):
        aspect(before="record_before", around="record_after")
    with pytest.raises(InvalidHookReference):
        aspect(before=42)


def test_lambda_is_rejected():
    square = lambda x: x * x  # noqa: E731
    with pytest.raises(UnsupportedDeclarationShape, match="'def' statement"):
        aspect(before="record_before")(square)


def test_builtin_is_rejected():
    with pytest.raises(UnsupportedDeclarationShape, match="not a function"):
        aspect(before="record_before")(len)


def test_classmethod_object_gets_placement_hint():
    def make(cls):
        return cls()

    with pytest.raises(UnsupportedDeclarationShape) as excinfo:
        aspect(before="record_before")(classmethod(make))
    assert "below @classmethod" in excinfo.value.suggestions[0]


def test_async_generator_is_rejected():
    with pytest.raises(UnsupportedDeclarationShape, match="async generator") as excinfo:

        @aspect(before="record_before")
        async def ticks():
            yield 1

    assert "ticks" in excinfo.value.context["declaration"]
    assert excinfo.value.context["filename"] == __file__


def test_source_less_function_is_rejected():
    namespace = {}
    exec("def dynamic(x):\n    return x\n", namespace)
    with pytest.raises(UnsupportedDeclarationShape, match="not available"):
        aspect(before="record_before")(namespace["dynamic"])


def test_disable_returns_function_unchanged(monkeypatch):
    monkeypatch.setenv("FNAOP_DISABLE", "1")

    def plain(x):
        return x

    assert aspect(before="record_before")(plain) is plain


def test_wrapping_decorator_below_aspect_is_rejected():
    with pytest.raises(UnsupportedDeclarationShape, match="directly above 'def'") as excinfo:

        @aspect(before="record_before")
        @passthrough
        def wrapped(x):
            return x

    assert "wraps another function" in excinfo.value.message
