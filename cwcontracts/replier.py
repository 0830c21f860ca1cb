"""A contract that records the order of executions and replies in nested sub-message chains."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from cwcontracts.core import (
    Deps,
    Env,
    MemoryStorage,
    MessageInfo,
    NotFoundError,
    Reply,
    ReplyOn,
    Response,
    StdError,
    SubMsg,
    WasmExecute,
    from_json,
    to_json_bytes,
)

CONFIG_KEY = b"config"

SET_DATA_IN_EXEC_AND_REPLY_FLAG = 0x100
RETURN_ORDER_IN_REPLY_FLAG = 0x200
REPLY_ERROR_FLAG = 0x400

_EXEC_MARKER = 0xEE
_REPLY_MARKER = 0xBB


def _check_u8(value: Any, what: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or not 0 <= value <= 0xFF:
        raise ValueError(f"{what} must be an integer from 0 to 255, got {value!r}")
    return value


@dataclass
class InstantiateMsg:
    pass


@dataclass
class ExecuteMsg:
    """One step of a chain; `messages` are executed next as sub-messages."""

    msg_id: int
    set_data_in_exec_and_reply: bool = False
    return_order_in_reply: bool = False
    exec_error: bool = False
    reply_error: bool = False
    reply_on_never: bool = False
    messages: list[ExecuteMsg] = field(default_factory=list)

    def __post_init__(self) -> None:
        _check_u8(self.msg_id, "msg_id")


@dataclass
class State:
    """The markers of every execution and reply seen so far, in order."""

    order: list[int] = field(default_factory=list)

    def __post_init__(self) -> None:
        for value in self.order:
            _check_u8(value, "order entry")


def _load_state(storage: MemoryStorage) -> State:
    raw = storage.get(CONFIG_KEY)
    if raw is None:
        raise NotFoundError("config")
    data = from_json(raw)
    try:
        return State(order=list(data["order"]))
    except (KeyError, TypeError, ValueError) as exc:
        raise StdError(f"Error parsing into type State: {exc}") from exc


def _save_state(storage: MemoryStorage, state: State) -> None:
    storage.set(CONFIG_KEY, to_json_bytes(state))


def instantiate(deps: Deps, env: Env, info: MessageInfo, msg: InstantiateMsg) -> Response:
    _save_state(deps.storage, State())
    return Response()


def execute(deps: Deps, env: Env, info: MessageInfo, msg: ExecuteMsg) -> Response:
    """Record this execution and dispatch the nested messages back to this contract."""
    state = _load_state(deps.storage)
    if msg.msg_id <= 1:
        state.order.clear()
    state.order.extend([_EXEC_MARKER, msg.msg_id])
    _save_state(deps.storage, state)

    response = Response()
    if msg.set_data_in_exec_and_reply:
        response.set_data(bytes([_EXEC_MARKER, msg.msg_id]))

    if msg.exec_error:
        raise StdError(f"Err in exec msg_id: {msg.msg_id}")

    reply_id = msg.msg_id
    if msg.set_data_in_exec_and_reply:
        reply_id |= SET_DATA_IN_EXEC_AND_REPLY_FLAG
    if msg.return_order_in_reply:
        reply_id |= RETURN_ORDER_IN_REPLY_FLAG
    if msg.reply_error:
        reply_id |= REPLY_ERROR_FLAG

    for next_msg in msg.messages:
        wasm_msg = WasmExecute(
            contract_addr=env.contract_address,
            msg=to_json_bytes(next_msg),
            funds=[],
        )
        response.add_submessage(
            SubMsg(
                msg=wasm_msg,
                id=reply_id,
                payload=b"",
                gas_limit=None,
                reply_on=ReplyOn.NEVER if next_msg.reply_on_never else ReplyOn.ALWAYS,
            )
        )
    return response


def query(deps: Deps, env: Env, msg: Any) -> bytes:
    """The contract defines no queries: an empty request yields empty data, anything else is rejected."""
    if msg is None or (isinstance(msg, Mapping) and not msg):
        return bytes()
    raise StdError(f"Unknown query: {msg!r}")


def reply(deps: Deps, env: Env, msg: Reply) -> Response:
    """Record the reply and answer according to the flags packed into its id."""
    msg_id = msg.id & 0xFF
    should_set_data = bool(msg.id & SET_DATA_IN_EXEC_AND_REPLY_FLAG)
    should_set_order = bool(msg.id & RETURN_ORDER_IN_REPLY_FLAG)
    should_return_error = bool(msg.id & REPLY_ERROR_FLAG)

    state = _load_state(deps.storage)
    state.order.extend([_REPLY_MARKER, msg_id])
    _save_state(deps.storage, state)

    if should_return_error:
        raise StdError(f"Err in reply msg_id: {msg_id}")

    if not msg.is_ok:
        return Response()
    result = msg.result

    if should_set_order:
        return Response().set_data(bytes(state.order))
    if should_set_data:
        collected = b"".join(bytes(resp.value) for resp in result.msg_responses)
        return Response().set_data(collected + bytes([_REPLY_MARKER, msg_id]))
    return Response()