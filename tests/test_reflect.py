import base64

import pytest

from cwcontracts.core import (
    MOCK_CONTRACT_ADDR,
    BalanceQuery,
    BankSend,
    Event,
    MessageInfo,
    MockQuerier,
    NotFoundError,
    Reply,
    StakingDelegate,
    StdError,
    SubMsg,
    SubMsgResponse,
    SupplyQuery,
    coin,
    coins,
    from_json,
    mock_env,
)
from cwcontracts.reflect import (
    Capitalized,
    ChangeOwner,
    Chain,
    CustomDebug,
    CustomRaw,
    InstantiateMsg,
    MessagesEmptyError,
    NotCurrentOwnerError,
    Owner,
    Raw,
    ReflectError,
    ReflectMsg,
    ReflectSubMsg,
    SpecialCapitalized,
    SpecialPing,
    State,
    SubMsgResult,
    custom_query_execute,
    execute,
    instantiate,
    load_config,
    load_reply,
    mock_dependencies_with_custom_querier,
    query,
    remove_reply,
    reply,
    save_config,
    save_reply,
)


def _setup():
    deps = mock_dependencies_with_custom_querier([])
    creator = deps.api.addr_make("creator")
    res = instantiate(deps, mock_env(), MessageInfo(creator, coins(2, "token")), InstantiateMsg())
    assert res.messages == []
    return deps, creator


def _owner(deps):
    return from_json(query(deps, mock_env(), Owner()))["owner"]


def _sample_reply():
    events = [Event("message").add_attribute("signer", "caller-addr")]
    result = SubMsgResponse(events=events, data=b"foobar", msg_responses=[])
    return Reply(id=123, payload=b"my dear", gas_used=1234567, result=result), events


def test_proper_instantiation():
    deps, creator = _setup()
    assert _owner(deps) == creator


def test_reflect():
    deps, creator = _setup()
    payload = [BankSend("friend", coins(1, "token"))]
    res = execute(deps, mock_env(), MessageInfo(creator), ReflectMsg(list(payload)))
    assert res.messages == [SubMsg(m) for m in payload]
    assert [(a.key, a.value) for a in res.attributes] == [("action", "reflect")]


def test_reflect_requires_owner():
    deps, creator = _setup()
    random = deps.api.addr_make("random")
    msg = ReflectMsg([BankSend("friend", coins(1, "token"))])
    with pytest.raises(NotCurrentOwnerError, match="Permission denied: the sender is not the current owner"):
        execute(deps, mock_env(), MessageInfo(random), msg)


def test_reflect_reject_empty_msgs():
    deps, creator = _setup()
    with pytest.raises(MessagesEmptyError) as info:
        execute(deps, mock_env(), MessageInfo(creator), ReflectMsg([]))
    assert info.value == MessagesEmptyError()
    assert str(info.value) == "Messages empty. Must reflect at least one message"


def test_reflect_multiple_messages():
    deps, creator = _setup()
    payload = [
        BankSend("friend", coins(1, "token")),
        CustomRaw(b'{"foo":123}'),
        CustomDebug("Hi, Dad!"),
        StakingDelegate("validator", coin(100, "ustake")),
    ]
    res = execute(deps, mock_env(), MessageInfo(creator), ReflectMsg(list(payload)))
    assert res.messages == [SubMsg(m) for m in payload]


def test_change_owner_works():
    deps, creator = _setup()
    new_owner = deps.api.addr_make("friend")
    res = execute(deps, mock_env(), MessageInfo(creator), ChangeOwner(new_owner))
    assert res.messages == []
    assert [(a.key, a.value) for a in res.attributes] == [
        ("action", "change_owner"),
        ("owner", new_owner),
    ]
    assert _owner(deps) == new_owner


def test_change_owner_requires_current_owner_as_sender():
    deps, creator = _setup()
    random = deps.api.addr_make("random")
    friend = deps.api.addr_make("friend")
    with pytest.raises(NotCurrentOwnerError) as info:
        execute(deps, mock_env(), MessageInfo(random), ChangeOwner(friend))
    assert info.value == NotCurrentOwnerError(expected=creator, actual=random)
    assert isinstance(info.value, ReflectError)


def test_transfer_requires_owner_checked_before_validation():
    deps, _ = _setup()
    with pytest.raises(NotCurrentOwnerError, match="Permission denied"):
        execute(deps, mock_env(), MessageInfo("random"), ChangeOwner("friend"))


def test_change_owner_errors_for_invalid_new_address():
    deps, creator = _setup()
    with pytest.raises(StdError, match="Error decoding bech32"):
        execute(deps, mock_env(), MessageInfo(creator), ChangeOwner("x"))
    assert _owner(deps) == creator


def test_capitalized_query_works():
    deps = mock_dependencies_with_custom_querier([])
    response = query(deps, mock_env(), Capitalized("demo one"))
    assert from_json(response) == {"text": "DEMO ONE"}


def test_chain_query_bank_balance():
    deps = mock_dependencies_with_custom_querier(coins(123, "ucosm"))
    response = query(deps, mock_env(), Chain(BalanceQuery(MOCK_CONTRACT_ADDR, "ucosm")))
    outer = from_json(response)
    inner = from_json(base64.b64decode(outer["data"]))
    assert inner == {"amount": {"denom": "ucosm", "amount": "123"}}


def test_chain_query_custom_ping():
    deps = mock_dependencies_with_custom_querier([])
    response = query(deps, mock_env(), Chain(SpecialPing()))
    inner = from_json(base64.b64decode(from_json(response)["data"]))
    assert inner == {"msg": "pong"}


def test_supply_query():
    deps = mock_dependencies_with_custom_querier([])
    deps.querier = MockQuerier(
        {
            "ryan_reynolds": [coin(5, "ATOM"), coin(10, "OSMO")],
            "huge_ackman": [coin(15, "OSMO"), coin(5, "BTC")],
        },
        deps.querier.custom_handler,
    )
    response = query(deps, mock_env(), Chain(SupplyQuery("OSMO")))
    inner = from_json(base64.b64decode(from_json(response)["data"]))
    assert inner == {"amount": {"denom": "OSMO", "amount": "25"}}


def test_chain_query_unknown_custom_variant_reports_contract_error():
    deps = mock_dependencies_with_custom_querier([])
    with pytest.raises(StdError, match="Querier contract error"):
        deps.querier.raw_query(b'{"custom":{"bogus":{}}}')


def test_raw_query_reads_other_contract():
    deps = mock_dependencies_with_custom_querier([])
    deps.querier.wasm_storage["other"] = {b"k": b"value"}
    found = from_json(query(deps, mock_env(), Raw("other", b"k")))
    missing = from_json(query(deps, mock_env(), Raw("other", b"nope")))
    assert base64.b64decode(found["data"]) == b"value"
    assert missing["data"] == ""


def test_raw_query_unknown_contract_fails():
    deps = mock_dependencies_with_custom_querier([])
    with pytest.raises(StdError, match="No such contract"):
        query(deps, mock_env(), Raw("ghost", b"k"))


def test_reflect_subcall():
    deps, creator = _setup()
    payload = SubMsg.reply_always(BankSend("friend", coins(1, "token")), 123)
    res = execute(deps, mock_env(), MessageInfo(creator), ReflectSubMsg([payload]))
    assert len(res.messages) == 1
    assert res.messages.pop() == payload


def test_reflect_subcall_requires_messages():
    deps, creator = _setup()
    with pytest.raises(MessagesEmptyError):
        execute(deps, mock_env(), MessageInfo(creator), ReflectSubMsg([]))


def test_reply_and_query():
    deps, _ = _setup()
    the_reply, events = _sample_reply()
    res = reply(deps, mock_env(), the_reply)
    assert res.messages == []

    with pytest.raises(NotFoundError, match="reply 65432 not found"):
        query(deps, mock_env(), SubMsgResult(65432))

    data = from_json(query(deps, mock_env(), SubMsgResult(123)))
    assert data["id"] == 123
    ok = data["result"]["ok"]
    assert base64.b64decode(ok["data"]) == b"foobar"
    assert ok["events"] == [
        {"type": "message", "attributes": [{"key": "signer", "value": "caller-addr"}]}
    ]

    stored = load_reply(deps.storage, 123)
    assert stored == the_reply
    assert stored.result.events == events


def test_reply_with_error_round_trips():
    deps = mock_dependencies_with_custom_querier([])
    failed = Reply(id=7, payload=b"", gas_used=10, result="out of gas")
    save_reply(deps.storage, 7, failed)
    assert load_reply(deps.storage, 7) == failed


def test_remove_reply():
    deps = mock_dependencies_with_custom_querier([])
    the_reply, _ = _sample_reply()
    save_reply(deps.storage, 123, the_reply)
    remove_reply(deps.storage, 123)
    with pytest.raises(NotFoundError):
        load_reply(deps.storage, 123)


def test_config_round_trip_and_missing():
    deps = mock_dependencies_with_custom_querier([])
    with pytest.raises(NotFoundError, match="config not found"):
        load_config(deps.storage)
    save_config(deps.storage, State(owner="someone"))
    assert load_config(deps.storage) == State(owner="someone")


def test_owner_query_before_instantiate_fails():
    deps = mock_dependencies_with_custom_querier([])
    with pytest.raises(NotFoundError):
        query(deps, mock_env(), Owner())


def test_custom_query_execute_ping():
    assert from_json(custom_query_execute(SpecialPing())) == {"msg": "pong"}


def test_custom_query_execute_capitalize():
    assert from_json(custom_query_execute(SpecialCapitalized("fOObaR"))) == {"msg": "FOOBAR"}


def test_custom_querier():
    deps = mock_dependencies_with_custom_querier([])
    assert deps.querier.query(SpecialCapitalized("food")) == {"msg": "FOOD"}


def test_unknown_execute_message_rejected():
    deps, creator = _setup()
    with pytest.raises(TypeError):
        execute(deps, mock_env(), MessageInfo(creator), Owner())