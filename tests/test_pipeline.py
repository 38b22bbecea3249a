import asyncio

import pytest
from fastapi import HTTPException

from hipthrust import (
    HandlerConfig,
    HandlerConfigError,
    WorkResponse,
    assert_handler_config,
    define_handler,
    execute_pipeline,
    lifecycle,
    with_default_implementations,
)


def _required(**overrides):
    stages = dict(
        pre_authorize=lambda ctx: {},
        final_authorize=lambda ctx: {},
        respond=lambda ctx: WorkResponse(response=ctx),
        sanitize_response=lambda r: r["response"],
    )
    stages.update(overrides)
    return stages


def _run(config, params=None, query_params=None, body=None, request_context=None):
    full = with_default_implementations(assert_handler_config(config))
    return asyncio.run(execute_pipeline(full, request_context, params, query_params, body))


def test_missing_required_stages_are_rejected():
    with pytest.raises(HandlerConfigError) as exc_info:
        assert_handler_config({"pre_authorize": lambda ctx: {}})
    message = str(exc_info.value)
    assert "final_authorize" in message
    assert "respond" in message
    assert "sanitize_response" in message


def test_unknown_stage_names_are_rejected():
    with pytest.raises(HandlerConfigError, match="preAuthorize"):
        define_handler(preAuthorize=lambda ctx: {}, **_required())


def test_non_callable_stage_is_rejected():
    with pytest.raises(HandlerConfigError, match="attach_data"):
        define_handler(attach_data={"user": 1}, **_required())


def test_factory_stage_in_wrong_slot_is_rejected():
    with pytest.raises(HandlerConfigError, match="attach_data"):
        define_handler(**_required(final_authorize=lifecycle.attach_data(lambda ctx: {})))


def test_define_handler_overrides_a_base_config():
    base = define_handler(**_required())
    derived = define_handler(base, do_work=lambda ctx: {"done": True})
    assert isinstance(derived, HandlerConfig)
    assert derived.do_work is not None
    assert base.do_work is None


def test_defaults_fill_only_merging_stages():
    full = with_default_implementations(assert_handler_config(_required()))
    assert full.attach_data is not None
    assert full.do_work is not None
    assert full.init_pre_context is None
    assert full.sanitize_body is None


def test_stages_run_in_order_and_merge_context():
    calls = []

    def stage(name, output):
        def run(arg):
            calls.append(name)
            return output
        return run

    config = dict(
        init_pre_context=stage("init_pre_context", "pre"),
        sanitize_params=stage("sanitize_params", {"id": "1"}),
        sanitize_query_params=stage("sanitize_query_params", {"q": "x"}),
        sanitize_body=stage("sanitize_body", {"name": "n"}),
        pre_authorize=stage("pre_authorize", {"user": "u"}),
        attach_data=stage("attach_data", {"doc": "d"}),
        final_authorize=stage("final_authorize", True),
        do_work=stage("do_work", {"result": "r"}),
        respond=lambda ctx: calls.append("respond") or {"response": dict(ctx), "status": 201},
        sanitize_response=lambda r: calls.append("sanitize_response") or r["response"],
    )

    result = _run(config)

    assert calls == [
        "init_pre_context",
        "sanitize_params",
        "sanitize_query_params",
        "sanitize_body",
        "pre_authorize",
        "attach_data",
        "final_authorize",
        "do_work",
        "respond",
        "sanitize_response",
    ]
    assert result.status == 201
    assert result.response == {
        "pre_context": "pre",
        "params": {"id": "1"},
        "query_params": {"q": "x"},
        "body": {"name": "n"},
        "user": "u",
        "doc": "d",
        "result": "r",
    }


def test_absent_sanitizers_leave_keys_out_of_context():
    result = _run(_required(), params={"id": "1"}, body={"x": 1})
    assert result.response == {}


def test_sanitizers_receive_raw_input_under_their_key():
    seen = {}

    def sanitize_body(i):
        seen.update(i)
        return i["body"]

    _run(_required(sanitize_body=sanitize_body), body={"x": 1})
    assert seen == {"body": {"x": 1}}


def test_async_and_sync_stages_mix():
    async def attach(ctx):
        return {"doc": "async"}

    result = _run(_required(attach_data=attach, do_work=lambda ctx: {"work": ctx["doc"] + "-sync"}))
    assert result.response == {"doc": "async", "work": "async-sync"}


def test_later_stages_overwrite_earlier_keys():
    result = _run(_required(attach_data=lambda ctx: {"doc": 1}, do_work=lambda ctx: {"doc": 2}))
    assert result.response == {"doc": 2}


@pytest.mark.parametrize("stage_name", ["pre_authorize", "final_authorize"])
def test_false_from_authorization_is_forbidden(stage_name):
    with pytest.raises(HTTPException) as exc_info:
        _run(_required(**{stage_name: lambda ctx: False}))
    assert exc_info.value.status_code == 403


def test_false_from_other_stage_is_a_config_error():
    with pytest.raises(HandlerConfigError, match="do_work"):
        _run(_required(do_work=lambda ctx: False))


def test_non_mapping_output_is_a_config_error():
    with pytest.raises(HandlerConfigError, match="attach_data"):
        _run(_required(attach_data=lambda ctx: ["not", "a", "mapping"]))


def test_respond_must_produce_a_work_response():
    with pytest.raises(HandlerConfigError, match="respond"):
        _run(_required(respond=lambda ctx: "plain"))


def test_stage_exceptions_stop_the_pipeline():
    calls = []

    def fail(ctx):
        raise HTTPException(status_code=404, detail="nope")

    with pytest.raises(HTTPException):
        _run(_required(attach_data=fail, do_work=lambda ctx: calls.append("do_work")))
    assert calls == []


def test_respond_factory_sets_status():
    result = _run(_required(respond=lifecycle.respond(lambda ctx: {"ok": True}, status=202)))
    assert result == WorkResponse(response={"ok": True}, status=202)


def test_respond_factory_as_bare_decorator():
    @lifecycle.respond
    async def respond(ctx):
        return "hello"

    result = _run(_required(respond=respond))
    assert result == WorkResponse(response="hello", status=200)


def test_lifecycle_sanitizers_unwrap_their_input():
    config = _required(
        sanitize_params=lifecycle.sanitize_params(lambda params: {"id": int(params["id"])}),
        sanitize_response=lifecycle.sanitize_response(lambda response: {"id": response["params"]["id"]}),
    )
    result = _run(config, params={"id": "7"})
    assert result.response == {"id": 7}


def test_deny_stage_raises_forbidden():
    with pytest.raises(HTTPException) as exc_info:
        _run(_required(final_authorize=lifecycle.deny))
    assert exc_info.value.status_code == 403


def test_pass_through_sanitizer():
    result = _run(_required(sanitize_body=lifecycle.sanitize_body(lifecycle.pass_through)), body={"a": 1})
    assert result.response == {"body": {"a": 1}}
