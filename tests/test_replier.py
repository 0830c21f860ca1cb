import pytest

from cwcontracts.core import (
    MessageInfo,
    MsgResponse,
    Reply,
    ReplyOn,
    StdError,
    SubMsgResponse,
    WasmExecute,
    from_json,
    mock_dependencies,
    mock_env,
)
from cwcontracts.replier import (
    CONFIG_KEY,
    REPLY_ERROR_FLAG,
    RETURN_ORDER_IN_REPLY_FLAG,
    SET_DATA_IN_EXEC_AND_REPLY_FLAG,
    ExecuteMsg,
    InstantiateMsg,
    State,
    execute,
    instantiate,
    query,
    reply,
)


@pytest.fixture
def deps():
    deps = mock_dependencies()
    instantiate(deps, mock_env(), MessageInfo("creator"), InstantiateMsg())
    return deps


def stored_order(deps):
    return from_json(deps.storage.get(CONFIG_KEY))["order"]


def make_reply(id, responses=()):
    return Reply(
        id=id,
        payload=b"",
        gas_used=0,
        result=SubMsgResponse(msg_responses=list(responses)),
    )


def test_instantiate_stores_empty_order(deps):
    assert deps.storage.get(CONFIG_KEY) == b'{"order":[]}'


def test_execute_records_marker_and_sets_data(deps):
    res = execute(deps, mock_env(), MessageInfo("creator"), ExecuteMsg(5, set_data_in_exec_and_reply=True))
    assert res.data == bytes([0xEE, 5])
    assert stored_order(deps) == [0xEE, 5]
    assert res.messages == []


def test_execute_without_data_flag_leaves_data_empty(deps):
    res = execute(deps, mock_env(), MessageInfo("creator"), ExecuteMsg(4))
    assert res.data is None


def test_low_msg_id_clears_order(deps):
    execute(deps, mock_env(), MessageInfo("creator"), ExecuteMsg(7))
    execute(deps, mock_env(), MessageInfo("creator"), ExecuteMsg(8))
    assert stored_order(deps) == [0xEE, 7, 0xEE, 8]
    execute(deps, mock_env(), MessageInfo("creator"), ExecuteMsg(1))
    assert stored_order(deps) == [0xEE, 1]


def test_exec_error_raises_after_recording(deps):
    with pytest.raises(StdError, match="Err in exec msg_id: 3"):
        execute(deps, mock_env(), MessageInfo("creator"), ExecuteMsg(3, exec_error=True))
    assert stored_order(deps) == [0xEE, 3]


def test_nested_messages_become_submessages(deps):
    env = mock_env()
    child = ExecuteMsg(9, reply_on_never=True)
    other = ExecuteMsg(10)
    msg = ExecuteMsg(
        7,
        set_data_in_exec_and_reply=True,
        return_order_in_reply=True,
        reply_error=True,
        messages=[child, other],
    )
    res = execute(deps, env, MessageInfo("creator"), msg)
    assert len(res.messages) == 2
    expected_id = 7 | SET_DATA_IN_EXEC_AND_REPLY_FLAG | RETURN_ORDER_IN_REPLY_FLAG | REPLY_ERROR_FLAG
    first, second = res.messages
    assert first.id == expected_id
    assert second.id == expected_id
    assert first.reply_on == ReplyOn.NEVER
    assert second.reply_on == ReplyOn.ALWAYS
    assert first.gas_limit is None
    assert isinstance(first.msg, WasmExecute)
    assert first.msg.contract_addr == env.contract_address
    assert first.msg.funds == []
    body = from_json(first.msg.msg)
    assert body["msg_id"] == 9
    assert body["reply_on_never"] is True
    assert body["messages"] == []


def test_plain_id_without_flags(deps):
    res = execute(deps, mock_env(), MessageInfo("creator"), ExecuteMsg(6, messages=[ExecuteMsg(11)]))
    assert res.messages[0].id == 6


def test_query_returns_empty(deps):
    assert query(deps, mock_env(), None) == b""


def test_reply_error_flag_raises_and_records(deps):
    with pytest.raises(StdError, match="Err in reply msg_id: 4"):
        reply(deps, mock_env(), make_reply(4 | REPLY_ERROR_FLAG))
    assert stored_order(deps) == [0xBB, 4]


def test_reply_with_failed_result_returns_empty(deps):
    failed = Reply(id=2 | SET_DATA_IN_EXEC_AND_REPLY_FLAG, payload=b"", gas_used=0, result="boom")
    res = reply(deps, mock_env(), failed)
    assert res.data is None
    assert stored_order(deps) == [0xBB, 2]


def test_reply_returns_order(deps):
    execute(deps, mock_env(), MessageInfo("creator"), ExecuteMsg(1))
    res = reply(deps, mock_env(), make_reply(1 | RETURN_ORDER_IN_REPLY_FLAG))
    assert res.data == bytes([0xEE, 1, 0xBB, 1])


def test_reply_sets_data_from_responses(deps):
    responses = [MsgResponse("/a", b"\x01\x02"), MsgResponse("/b", b"\x03")]
    res = reply(deps, mock_env(), make_reply(5 | SET_DATA_IN_EXEC_AND_REPLY_FLAG, responses))
    assert res.data == b"\x01\x02\x03" + bytes([0xBB, 5])


def test_reply_without_flags_returns_no_data(deps):
    res = reply(deps, mock_env(), make_reply(0x1FF & 0xFF))
    assert res.data is None
    assert stored_order(deps) == [0xBB, 0xFF]


def test_msg_id_must_fit_a_byte():
    with pytest.raises(ValueError):
        ExecuteMsg(256)
    with pytest.raises(ValueError):
        State(order=[300])


def test_execute_without_state_raises():
    deps = mock_dependencies()
    with pytest.raises(StdError):
        execute(deps, mock_env(), MessageInfo("creator"), ExecuteMsg(2))