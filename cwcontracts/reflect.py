"""A contract that forwards messages on behalf of its owner and answers chain queries."""

from __future__ import annotations

import base64
from dataclasses import dataclass, field
from typing import Any, ClassVar, Optional

from cwcontracts.core import (
    Attribute,
    Coin,
    Deps,
    Env,
    Event,
    MemoryStorage,
    MessageInfo,
    MsgResponse,
    NotFoundError,
    Reply,
    Response,
    StdError,
    SubMsg,
    SubMsgResponse,
    from_json,
    mock_dependencies,
    namespace_with_key,
    to_json_bytes,
    to_length_prefixed,
)

CONFIG_KEY = b"config"
RESULT_PREFIX = b"result"


# ---------------------------------------------------------------------------
# Errors


class ReflectError(Exception):
    """Base class of the errors this contract raises itself."""

    def _identity(self) -> tuple:
        return self.args

    def __eq__(self, other: object) -> bool:
        return type(self) is type(other) and self._identity() == other._identity()  # type: ignore[attr-defined]

    def __hash__(self) -> int:
        return hash((type(self), self._identity()))


class NotCurrentOwnerError(ReflectError):
    """The sender of a message is not the stored owner."""

    def __init__(self, expected: str, actual: str) -> None:
        super().__init__("Permission denied: the sender is not the current owner")
        self.expected = expected
        self.actual = actual

    def _identity(self) -> tuple:
        return (self.expected, self.actual)


class MessagesEmptyError(ReflectError):
    """A reflect request carried no messages."""

    def __init__(self) -> None:
        super().__init__("Messages empty. Must reflect at least one message")


# ---------------------------------------------------------------------------
# Messages


@dataclass
class State:
    owner: str


@dataclass
class InstantiateMsg:
    pass


@dataclass
class ReflectMsg:
    """Send the given messages from the contract."""

    json_tag: ClassVar[tuple[str, ...]] = ("reflect_msg",)
    msgs: list[Any] = field(default_factory=list)


@dataclass
class ReflectSubMsg:
    """Send the given sub-messages from the contract."""

    json_tag: ClassVar[tuple[str, ...]] = ("reflect_sub_msg",)
    msgs: list[SubMsg] = field(default_factory=list)


@dataclass
class ChangeOwner:
    json_tag: ClassVar[tuple[str, ...]] = ("change_owner",)
    owner: str


@dataclass
class Owner:
    json_tag: ClassVar[tuple[str, ...]] = ("owner",)


@dataclass
class Capitalized:
    """Ask the custom querier to upper-case a text."""

    json_tag: ClassVar[tuple[str, ...]] = ("capitalized",)
    text: str


@dataclass
class Chain:
    """Run a query against the chain and return its raw answer."""

    json_tag: ClassVar[tuple[str, ...]] = ("chain",)
    request: Any


@dataclass
class Raw:
    """Read a raw storage key of another contract."""

    json_tag: ClassVar[tuple[str, ...]] = ("raw",)
    contract: str
    key: bytes


@dataclass
class SubMsgResult:
    """Return the reply stored for a sub-message id."""

    json_tag: ClassVar[tuple[str, ...]] = ("sub_msg_result",)
    id: int


@dataclass
class OwnerResponse:
    owner: str


@dataclass
class CapitalizedResponse:
    text: str


@dataclass
class ChainResponse:
    data: bytes


@dataclass
class RawResponse:
    """Raw data of another contract; empty for a missing key or an empty value."""

    data: bytes


@dataclass
class CustomDebug:
    json_tag: ClassVar[tuple[str, ...]] = ("custom", "debug")
    text: str


@dataclass
class CustomRaw:
    json_tag: ClassVar[tuple[str, ...]] = ("custom", "raw")
    data: bytes


@dataclass
class SpecialPing:
    json_tag: ClassVar[tuple[str, ...]] = ("ping",)


@dataclass
class SpecialCapitalized:
    json_tag: ClassVar[tuple[str, ...]] = ("capitalized",)
    text: str


@dataclass
class SpecialResponse:
    msg: str


_SPECIAL_QUERIES = (SpecialPing, SpecialCapitalized)


# ---------------------------------------------------------------------------
# State


def _reply_key(id: int) -> bytes:
    return namespace_with_key([RESULT_PREFIX], id.to_bytes(8, "big"))


def _b64(text: str) -> bytes:
    return base64.b64decode(text, validate=True)


def _reply_from_json(data: Any) -> Reply:
    try:
        result = data["result"]
        if "ok" in result:
            ok = result["ok"]
            outcome: Any = SubMsgResponse(
                events=[
                    Event(e["type"], [Attribute(a["key"], a["value"]) for a in e["attributes"]])
                    for e in ok["events"]
                ],
                data=None if ok.get("data") is None else _b64(ok["data"]),
                msg_responses=[
                    MsgResponse(r["type_url"], _b64(r["value"])) for r in ok.get("msg_responses", [])
                ],
            )
        else:
            outcome = str(result["error"])
        return Reply(
            id=int(data["id"]),
            payload=_b64(data.get("payload", "")),
            gas_used=int(data["gas_used"]),
            result=outcome,
        )
    except (KeyError, TypeError, ValueError) as exc:
        raise StdError(f"Error parsing into type Reply: {exc}") from exc


def load_reply(storage: MemoryStorage, id: int) -> Reply:
    raw = storage.get(_reply_key(id))
    if raw is None:
        raise NotFoundError(f"reply {id}")
    return _reply_from_json(from_json(raw))


def save_reply(storage: MemoryStorage, id: int, reply: Reply) -> None:
    storage.set(_reply_key(id), to_json_bytes(reply))


def remove_reply(storage: MemoryStorage, id: int) -> None:
    storage.remove(_reply_key(id))


def load_config(storage: MemoryStorage) -> State:
    raw = storage.get(to_length_prefixed(CONFIG_KEY))
    if raw is None:
        raise NotFoundError("config")
    data = from_json(raw)
    try:
        return State(owner=str(data["owner"]))
    except (KeyError, TypeError) as exc:
        raise StdError(f"Error parsing into type State: {exc}") from exc


def save_config(storage: MemoryStorage, item: State) -> None:
    storage.set(to_length_prefixed(CONFIG_KEY), to_json_bytes(item))


# ---------------------------------------------------------------------------
# Entry points


def instantiate(deps: Deps, env: Env, info: MessageInfo, msg: InstantiateMsg) -> Response:
    save_config(deps.storage, State(owner=info.sender))
    return Response()


def execute(deps: Deps, env: Env, info: MessageInfo, msg: Any) -> Response:
    match msg:
        case ReflectMsg(msgs=msgs):
            return try_reflect(deps, env, info, msgs)
        case ReflectSubMsg(msgs=msgs):
            return try_reflect_subcall(deps, env, info, msgs)
        case ChangeOwner(owner=owner):
            return try_change_owner(deps, env, info, owner)
    raise TypeError(f"unsupported execute message: {msg!r}")


def _require_owner(storage: MemoryStorage, info: MessageInfo) -> State:
    state = load_config(storage)
    if info.sender != state.owner:
        raise NotCurrentOwnerError(expected=state.owner, actual=info.sender)
    return state


def try_reflect(deps: Deps, env: Env, info: MessageInfo, msgs: list[Any]) -> Response:
    _require_owner(deps.storage, info)
    if not msgs:
        raise MessagesEmptyError()
    return Response().add_attribute("action", "reflect").add_messages(msgs)


def try_reflect_subcall(deps: Deps, env: Env, info: MessageInfo, msgs: list[SubMsg]) -> Response:
    _require_owner(deps.storage, info)
    if not msgs:
        raise MessagesEmptyError()
    return Response().add_attribute("action", "reflect_subcall").add_submessages(msgs)


def try_change_owner(deps: Deps, env: Env, info: MessageInfo, new_owner: str) -> Response:
    state = _require_owner(deps.storage, info)
    state.owner = deps.api.addr_validate(new_owner)
    save_config(deps.storage, state)
    return Response().add_attribute("action", "change_owner").add_attribute("owner", new_owner)


def reply(deps: Deps, env: Env, msg: Reply) -> Response:
    """Store the reply so that it can be queried later."""
    save_reply(deps.storage, msg.id, msg)
    return Response()


def query(deps: Deps, env: Env, msg: Any) -> bytes:
    match msg:
        case Owner():
            return to_json_bytes(OwnerResponse(owner=load_config(deps.storage).owner))
        case Capitalized(text=text):
            response = deps.querier.query(SpecialCapitalized(text))
            return to_json_bytes(CapitalizedResponse(text=response["msg"]))
        case Chain(request=request):
            return to_json_bytes(_query_chain(deps, request))
        case Raw(contract=contract, key=key):
            data = deps.querier.query_wasm_raw(contract, key)
            return to_json_bytes(RawResponse(data=data or b""))
        case SubMsgResult(id=id):
            return to_json_bytes(load_reply(deps.storage, id))
    raise TypeError(f"unsupported query message: {msg!r}")


def _query_chain(deps: Deps, request: Any) -> ChainResponse:
    wrapped = {"custom": request} if isinstance(request, _SPECIAL_QUERIES) else request
    try:
        raw = to_json_bytes(wrapped)
    except StdError as exc:
        raise StdError(f"Serializing QueryRequest: {exc.msg}") from exc
    return ChainResponse(data=deps.querier.raw_query(raw))


# ---------------------------------------------------------------------------
# Custom querier


def custom_query_execute(query: Any) -> bytes:
    """Answer a special query: ping gives pong, capitalized upper-cases the text."""
    match query:
        case SpecialPing():
            msg = "pong"
        case SpecialCapitalized(text=text):
            msg = text.upper()
        case _:
            raise StdError(f"Unsupported special query: {query!r}")
    return to_json_bytes(SpecialResponse(msg=msg))


def _parse_special_query(body: Any) -> Any:
    if not isinstance(body, dict) or len(body) != 1:
        raise StdError("Error parsing into type SpecialQuery: expected exactly one variant")
    ((kind, fields_),) = body.items()
    try:
        match kind:
            case "ping":
                return SpecialPing()
            case "capitalized":
                return SpecialCapitalized(text=str(fields_["text"]))
    except (KeyError, TypeError) as exc:
        raise StdError(f"Error parsing into type SpecialQuery: {exc}") from exc
    raise StdError(f"Error parsing into type SpecialQuery: unknown variant {kind}")


def _handle_custom(body: Any) -> bytes:
    return custom_query_execute(_parse_special_query(body))


def mock_dependencies_with_custom_querier(contract_balance: list[Coin]) -> Deps:
    """Mock dependencies whose querier answers special queries."""
    return mock_dependencies(contract_balance, custom_handler=_handle_custom)