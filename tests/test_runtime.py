import pytest

from shouw import (
    Diagnostic, DocumentRunner, ExecutionState, FunctionRegistry, InterpreterConfig,
    Outcome, macro_function,
)


def assert_ok(res, expected=None):
    assert res.status == "success", res.error_message
    if expected is not None:
        assert res.value == expected, f"expected {expected!r}, got {res.value!r}"


def assert_error(res, contains=None):
    assert res.status == "error", f"expected error, got success: {res.value!r}"
    assert res.value is None
    if contains is not None:
        assert contains in (res.error_message or ""), f"error did not contain {contains!r}: {res.error_message!r}"


class Greeter:
    def __init__(self):
        self.greeted = []

    @macro_function(brackets=True, params=["name"])
    def _say_hello(self, ctx, args, state):
        self.greeted.append(args[0])
        return f"hello {args[0]}"

    @macro_function("$shout", brackets=True, params=["text"])
    async def loud(self, ctx, args, state):
        return (args[0] or "").upper() + "!"

    def not_exposed(self, ctx, args, state):
        return "nope"


@pytest.fixture
def registry():
    reg = FunctionRegistry()

    @reg.function("$embed", brackets=True, params=["title"])
    def embed(ctx, args, state):
        return Outcome.with_artifacts("", embeds=[{"title": args[0]}])

    @reg.function("$fail", brackets=True, params=["reason"])
    def fail(ctx, args, state):
        return Outcome.error(args[0])

    return reg


@pytest.mark.asyncio
async def test_builtin_check_condition():
    runner = DocumentRunner()
    assert_ok(await runner.handle_document("$checkCondition[5>=5]"), "true")
    assert_ok(await runner.handle_document("$checkCondition[(1==2)||a==b]"), "false")


@pytest.mark.asyncio
async def test_check_condition_unescapes_its_argument_once():
    runner = DocumentRunner()
    assert_ok(await runner.handle_document("$checkCondition[#HASH#DOLLAR#HASH#==#DOLLAR#]"), "false")
    assert_ok(await runner.handle_document("$checkCondition[#DOLLAR#5==#DOLLAR#5]"), "true")


@pytest.mark.asyncio
async def test_builtin_variables_share_state():
    runner = DocumentRunner()
    state = ExecutionState()
    res = await runner.handle_document("$setVar[name;ann]\nhi $getVar[name]", state=state)
    assert_ok(res, "hi ann")
    assert state.variables == {"name": "ann"}


@pytest.mark.asyncio
async def test_builtin_arrays():
    runner = DocumentRunner()
    assert_ok(await runner.handle_document("$arrayCreate[l;a;b;c]\n$arrayJoin[l;-]"), "a-b-c")
    assert_error(await runner.handle_document("$arrayJoin[missing]"), "does not exist")


@pytest.mark.asyncio
async def test_builtin_timezone():
    runner = DocumentRunner(config=InterpreterConfig(timezone="Asia/Tokyo"))
    assert_ok(await runner.handle_document("$timezone"), "Asia/Tokyo")
    assert_ok(await runner.handle_document("$setTimezone[Europe/Paris]\n$timezone"), "Europe/Paris")
    assert_error(await runner.handle_document("$setTimezone[Not/AZone]"), "unknown timezone")


@pytest.mark.asyncio
async def test_builtins_can_be_disabled():
    runner = DocumentRunner(config=InterpreterConfig(builtins=False))
    assert_ok(await runner.handle_document("$checkCondition[1==1]"), "$checkCondition[1==1]")


@pytest.mark.asyncio
async def test_caller_functions_override_builtins():
    reg = FunctionRegistry()
    reg.register("$getVar", lambda ctx, args, state: "mine", brackets=True)
    runner = DocumentRunner(reg)
    assert_ok(await runner.handle_document("$getVar[x]"), "mine")
    # The caller's registry is not modified by the runner
    assert "$checkCondition" not in reg


@pytest.mark.asyncio
async def test_send_receives_text_and_artifacts(registry):
    sent = []

    async def send(text, artifacts):
        sent.append((text, artifacts))
        return "message-1"

    runner = DocumentRunner(registry, send=send)
    res = await runner.handle_document("Title: $embed[news]")
    assert_ok(res, "Title:")
    assert res.message_id == "message-1"
    assert res.artifacts == {"embeds": [{"title": "news"}]}
    assert sent == [("Title:", {"embeds": [{"title": "news"}]})]


@pytest.mark.asyncio
async def test_send_gets_none_text_when_only_artifacts(registry):
    sent = []
    runner = DocumentRunner(registry, send=lambda text, artifacts: sent.append((text, artifacts)))
    assert_ok(await runner.handle_document("$embed[x]"), "")
    assert sent == [(None, {"embeds": [{"title": "x"}]})]


@pytest.mark.asyncio
async def test_nothing_is_sent_for_empty_output(registry):
    sent = []
    runner = DocumentRunner(registry, send=lambda text, artifacts: sent.append(text))
    assert_ok(await runner.handle_document("$if[1==2]x$endif"), "")
    assert sent == []


@pytest.mark.asyncio
async def test_errors_go_to_the_diagnostic_sink_and_nothing_is_sent(registry):
    sent, reported = [], []
    runner = DocumentRunner(registry, send=lambda t, a: sent.append(t), report=reported.append)
    res = await runner.handle_document("$embed[a] $fail[broken]")
    assert_error(res, "FunctionError: $fail failed: broken")
    assert "Shouw stacktrace: ($fail broken)" in res.error_message
    assert sent == []
    assert reported == [Diagnostic(res.error_message, None)]
    stderr_effects = [e for e in res.side_effects if e.get("topics") == ["stderr"]]
    assert stderr_effects[-1]["message"] == res.error_message


@pytest.mark.asyncio
async def test_usage_error_carries_a_hint():
    runner = DocumentRunner()
    res = await runner.handle_document("$getVar")
    assert_error(res, "UsageError: Invalid $getVar usage: Missing brackets")
    assert res.hint == "Usage: $getVar[name]"
    assert res.format_error().endswith("Usage: $getVar[name]")


@pytest.mark.asyncio
async def test_structural_error_produces_no_render():
    runner = DocumentRunner()
    res = await runner.handle_document("$if[1==1]A")
    assert_error(res, "StructuralError: Invalid $if usage: Missing $endif")
    assert res.error is True


@pytest.mark.asyncio
async def test_sink_failure_is_reported_not_raised(registry):
    def send(text, artifacts):
        raise ConnectionError("offline")

    runner = DocumentRunner(registry, send=send)
    assert_error(await runner.handle_document("hello"), "InternalError: offline")


@pytest.mark.asyncio
async def test_host_binding_uses_camel_case_and_explicit_names():
    host = Greeter()
    reg = FunctionRegistry()
    bound = reg.bind_host(host)
    assert sorted(bound) == ["$sayHello", "$shout"]
    runner = DocumentRunner(reg)
    assert_ok(await runner.handle_document("$sayHello[ann] $shout[hey]"), "hello ann HEY!")
    assert host.greeted == ["ann"]


def test_registry_is_case_insensitive():
    reg = FunctionRegistry()
    reg.register("Ping", lambda ctx, args, state: "pong")
    assert reg.get("$PING").name == "$Ping"
    assert "$ping" in reg
    assert reg.names == ["$Ping"]
    reg.unregister("$ping")
    assert len(reg) == 0


@pytest.mark.parametrize("name", ["$if", "$ELSE", "$elseif", "$endif", "$endelseif"])
def test_control_keywords_cannot_be_registered(name):
    with pytest.raises(ValueError):
        FunctionRegistry().register(name, lambda ctx, args, state: None)


def test_register_rejects_non_callables():
    with pytest.raises(TypeError):
        FunctionRegistry().register("$x", "not callable")


def test_outcome_coercion():
    assert Outcome.coerce(None).text == ""
    assert Outcome.coerce(True).text == "true"
    assert Outcome.coerce(42).value == "42"
    err = Outcome.error("bad")
    assert err.is_error and err.kind == "error" and err.message == "bad"
    art = Outcome.with_artifacts("t", files=[1])
    assert art.kind == "artifacts" and art.artifacts == {"files": [1]}
