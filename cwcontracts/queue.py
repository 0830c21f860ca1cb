"""A FIFO queue of integers kept under consecutive big-endian keys."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, ClassVar

from cwcontracts.core import (
    Deps,
    Env,
    MemoryStorage,
    MessageInfo,
    Order,
    Response,
    StdError,
    from_json,
    to_json_bytes,
)

_I32_MIN = -(2**31)
_I32_MAX = 2**31 - 1
FIRST_KEY = b"\x00\x00\x00\x00"
_LIST_THRESHOLD = b"\x00\x00\x00\x20"


def _checked_i32(value: int) -> int:
    if not _I32_MIN <= value <= _I32_MAX:
        raise OverflowError(f"{value} does not fit a 32-bit signed integer")
    return value


@dataclass
class Item:
    """One stored queue entry."""

    value: int

    def __post_init__(self) -> None:
        if isinstance(self.value, bool) or not isinstance(self.value, int):
            raise ValueError("item value must be an integer")
        if not _I32_MIN <= self.value <= _I32_MAX:
            raise ValueError("item value must fit a 32-bit signed integer")


@dataclass
class InstantiateMsg:
    pass


@dataclass
class MigrateMsg:
    pass


@dataclass
class Enqueue:
    """Add a value to the end of the queue."""

    json_tag: ClassVar[tuple[str, ...]] = ("enqueue",)
    value: int


@dataclass
class Dequeue:
    """Remove the value at the start of the queue."""

    json_tag: ClassVar[tuple[str, ...]] = ("dequeue",)


@dataclass
class Count:
    json_tag: ClassVar[tuple[str, ...]] = ("count",)


@dataclass
class Sum:
    json_tag: ClassVar[tuple[str, ...]] = ("sum",)


@dataclass
class Reducer:
    json_tag: ClassVar[tuple[str, ...]] = ("reducer",)


@dataclass
class List:
    json_tag: ClassVar[tuple[str, ...]] = ("list",)


@dataclass
class OpenIterators:
    """Open the given number of iterators and answer with an empty object."""

    json_tag: ClassVar[tuple[str, ...]] = ("open_iterators",)
    count: int


@dataclass
class CountResponse:
    count: int


@dataclass
class SumResponse:
    sum: int


@dataclass
class ReducerResponse:
    """For each item: its value and the sum of all values greater than it."""

    counters: list[tuple[int, int]]


@dataclass
class ListResponse:
    empty: list[int]
    early: list[int]
    late: list[int]


def _parse_item(raw: bytes) -> Item:
    data = from_json(raw)
    if not isinstance(data, dict):
        raise StdError("Error parsing into type Item: expected an object")
    try:
        return Item(**data)
    except (TypeError, ValueError) as exc:
        raise StdError(f"Error parsing into type Item: {exc}") from exc


def _enqueue(storage: MemoryStorage, value: int) -> None:
    last_key = next(storage.range_keys(None, None, Order.DESCENDING), None)
    if last_key is None:
        new_key = FIRST_KEY
    else:
        new_key = (int.from_bytes(last_key, "big") + 1).to_bytes(4, "big")
    storage.set(new_key, to_json_bytes(Item(value)))


def instantiate(deps: Deps, env: Env, info: MessageInfo, msg: InstantiateMsg) -> Response:
    return Response()


def execute(deps: Deps, env: Env, info: MessageInfo, msg: Any) -> Response:
    match msg:
        case Enqueue(value=value):
            _enqueue(deps.storage, value)
            return Response()
        case Dequeue():
            response = Response()
            first = next(deps.storage.range(None, None, Order.ASCENDING), None)
            if first is not None:
                key, value = first
                deps.storage.remove(key)
                response.data = value
            return response
    raise TypeError(f"unsupported execute message: {msg!r}")


def migrate(deps: Deps, env: Env, msg: MigrateMsg) -> Response:
    """Drop every entry and refill the queue with 100, 101 and 102."""
    for key in list(deps.storage.range_keys(None, None, Order.ASCENDING)):
        deps.storage.remove(key)
    for value in (100, 101, 102):
        _enqueue(deps.storage, value)
    return Response()


def query(deps: Deps, env: Env, msg: Any) -> bytes:
    match msg:
        case Count():
            return to_json_bytes(query_count(deps))
        case Sum():
            return to_json_bytes(query_sum(deps))
        case Reducer():
            return to_json_bytes(query_reducer(deps))
        case List():
            return to_json_bytes(query_list(deps))
        case OpenIterators(count=count):
            for _ in range(count):
                deps.storage.range(None, None, Order.ASCENDING)
            return to_json_bytes({})
    raise TypeError(f"unsupported query message: {msg!r}")


def query_count(deps: Deps) -> CountResponse:
    return CountResponse(sum(1 for _ in deps.storage.range_keys(None, None, Order.ASCENDING)))


def query_sum(deps: Deps) -> SumResponse:
    items = [_parse_item(raw) for raw in deps.storage.range_values(None, None, Order.ASCENDING)]
    return SumResponse(_checked_i32(sum(item.value for item in items)))


def query_reducer(deps: Deps) -> ReducerResponse:
    counters = []
    for raw in deps.storage.range_values(None, None, Order.ASCENDING):
        mine = _parse_item(raw).value
        others = (
            _parse_item(other).value
            for other in deps.storage.range_values(None, None, Order.ASCENDING)
        )
        counters.append((mine, _checked_i32(sum(v for v in others if v > mine))))
    return ReducerResponse(counters)


def query_list(deps: Deps) -> ListResponse:
    """List ids in an empty bounded range, below 0x20, and from 0x20 on."""

    def ids(start, end):
        return [int.from_bytes(k, "big") for k in deps.storage.range_keys(start, end, Order.ASCENDING)]

    return ListResponse(
        empty=ids(_LIST_THRESHOLD, _LIST_THRESHOLD),
        early=ids(None, _LIST_THRESHOLD),
        late=ids(_LIST_THRESHOLD, None),
    )