"""Contract runtime primitives: storage, messages, responses and mock chain services."""

from __future__ import annotations

import base64
import hashlib
import json
from collections.abc import Callable, Iterable, Iterator, Mapping, Sequence
from dataclasses import dataclass, field, fields, is_dataclass
from enum import Enum, IntEnum
from typing import Any, ClassVar, Optional, Union


class Order(IntEnum):
    """Iteration order of a storage range."""

    ASCENDING = 1
    DESCENDING = 2


class StdError(Exception):
    """The standard contract error carrying a human readable message."""

    def __init__(self, msg: str) -> None:
        super().__init__(msg)
        self.msg = msg

    def __eq__(self, other: object) -> bool:
        return type(self) is type(other) and self.args == other.args  # type: ignore[attr-defined]

    def __hash__(self) -> int:
        return hash((type(self), self.args))


class NotFoundError(StdError):
    """Raised when a value expected in storage is missing."""

    def __init__(self, kind: str) -> None:
        super().__init__(f"{kind} not found")
        self.kind = kind


# ---------------------------------------------------------------------------
# JSON encoding


def _to_jsonable(value: Any) -> Any:
    if isinstance(value, Coin):
        return {"denom": value.denom, "amount": str(value.amount)}
    if isinstance(value, Reply):
        if value.is_ok:
            result: dict[str, Any] = {"ok": _to_jsonable(value.result)}
        else:
            result = {"error": value.result}
        return {
            "id": value.id,
            "payload": _to_jsonable(value.payload),
            "gas_used": value.gas_used,
            "result": result,
        }
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (bytes, bytearray)):
        return base64.b64encode(bytes(value)).decode("ascii")
    if is_dataclass(value) and not isinstance(value, type):
        body: Any = {f.name: _to_jsonable(getattr(value, f.name)) for f in fields(value)}
        for tag in reversed(getattr(type(value), "json_tag", ())):
            body = {tag: body}
        return body
    if isinstance(value, Mapping):
        return {str(key): _to_jsonable(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_to_jsonable(item) for item in value]
    return value


def to_json_bytes(value: Any) -> bytes:
    """Serialise a value to compact JSON bytes; bytes become base64 strings."""
    try:
        text = json.dumps(_to_jsonable(value), separators=(",", ":"), allow_nan=False)
    except (TypeError, ValueError) as exc:
        raise StdError(f"Error serializing {type(value).__name__}: {exc}") from exc
    return text.encode("utf-8")


def from_json(data: Union[bytes, bytearray, str]) -> Any:
    """Parse JSON bytes into plain Python values."""
    try:
        return json.loads(data)
    except (TypeError, ValueError) as exc:
        raise StdError(f"Error parsing JSON: {exc}") from exc


# ---------------------------------------------------------------------------
# Storage keys


def _encode_length(namespace: bytes) -> bytes:
    if len(namespace) > 0xFFFF:
        raise ValueError("only supports namespaces up to length 0xFFFF")
    return len(namespace).to_bytes(2, "big")


def to_length_prefixed(namespace: bytes) -> bytes:
    """Prefix a namespace with its two byte big-endian length."""
    namespace = bytes(namespace)
    return _encode_length(namespace) + namespace


def namespace_with_key(namespace: Iterable[bytes], key: bytes) -> bytes:
    """Join length-prefixed namespace components and append the raw key."""
    return b"".join(to_length_prefixed(part) for part in namespace) + bytes(key)


class MemoryStorage:
    """An ordered in-memory key-value store."""

    def __init__(self) -> None:
        self._data: dict[bytes, bytes] = {}

    def __len__(self) -> int:
        return len(self._data)

    def get(self, key: bytes) -> Optional[bytes]:
        return self._data.get(bytes(key))

    def set(self, key: bytes, value: bytes) -> None:
        if not value:
            raise ValueError("value must not be empty in storage; use remove instead")
        self._data[bytes(key)] = bytes(value)

    def remove(self, key: bytes) -> None:
        self._data.pop(bytes(key), None)

    def range(
        self,
        start: Optional[bytes] = None,
        end: Optional[bytes] = None,
        order: Order = Order.ASCENDING,
    ) -> Iterator[tuple[bytes, bytes]]:
        """Iterate pairs with start <= key < end; a snapshot, so removal is safe."""
        keys = sorted(
            key
            for key in self._data
            if (start is None or key >= start) and (end is None or key < end)
        )
        if Order(order) is Order.DESCENDING:
            keys.reverse()
        return iter([(key, self._data[key]) for key in keys])

    def range_keys(
        self,
        start: Optional[bytes] = None,
        end: Optional[bytes] = None,
        order: Order = Order.ASCENDING,
    ) -> Iterator[bytes]:
        return (key for key, _ in self.range(start, end, order))

    def range_values(
        self,
        start: Optional[bytes] = None,
        end: Optional[bytes] = None,
        order: Order = Order.ASCENDING,
    ) -> Iterator[bytes]:
        return (value for _, value in self.range(start, end, order))


# ---------------------------------------------------------------------------
# Funds, environment and messages


@dataclass(frozen=True)
class Coin:
    amount: int
    denom: str


def coin(amount: int, denom: str) -> Coin:
    return Coin(amount, denom)


def coins(amount: int, denom: str) -> list[Coin]:
    return [Coin(amount, denom)]


@dataclass
class MessageInfo:
    sender: str
    funds: list[Coin] = field(default_factory=list)


@dataclass
class Env:
    contract_address: str
    block_height: int = 12_345
    block_time_nanos: int = 1_571_797_419_879_305_533
    chain_id: str = "cosmos-testnet-14002"


@dataclass
class Attribute:
    key: str
    value: str


@dataclass
class Event:
    type: str
    attributes: list[Attribute] = field(default_factory=list)

    def add_attribute(self, key: str, value: Any) -> "Event":
        self.attributes.append(Attribute(key, str(value)))
        return self


@dataclass
class BankSend:
    json_tag: ClassVar[tuple[str, ...]] = ("bank", "send")
    to_address: str
    amount: list[Coin]


@dataclass
class StakingDelegate:
    json_tag: ClassVar[tuple[str, ...]] = ("staking", "delegate")
    validator: str
    amount: Coin


@dataclass
class WasmExecute:
    json_tag: ClassVar[tuple[str, ...]] = ("wasm", "execute")
    contract_addr: str
    msg: bytes
    funds: list[Coin] = field(default_factory=list)


@dataclass
class BalanceQuery:
    json_tag: ClassVar[tuple[str, ...]] = ("bank", "balance")
    address: str
    denom: str


@dataclass
class SupplyQuery:
    json_tag: ClassVar[tuple[str, ...]] = ("bank", "supply")
    denom: str


class ReplyOn(Enum):
    ALWAYS = "always"
    ERROR = "error"
    SUCCESS = "success"
    NEVER = "never"


@dataclass
class SubMsg:
    msg: Any
    id: int = 0
    payload: bytes = b""
    gas_limit: Optional[int] = None
    reply_on: ReplyOn = ReplyOn.NEVER

    @classmethod
    def reply_always(cls, msg: Any, id: int) -> "SubMsg":
        return cls(msg, id=id, reply_on=ReplyOn.ALWAYS)


@dataclass
class MsgResponse:
    type_url: str
    value: bytes


@dataclass
class SubMsgResponse:
    events: list[Event] = field(default_factory=list)
    data: Optional[bytes] = None
    msg_responses: list[MsgResponse] = field(default_factory=list)


@dataclass
class Reply:
    """Result of a sub-message: `result` is a response on success or an error text."""

    id: int
    payload: bytes
    gas_used: int
    result: Union[SubMsgResponse, str]

    @property
    def is_ok(self) -> bool:
        return isinstance(self.result, SubMsgResponse)


@dataclass
class Response:
    messages: list[SubMsg] = field(default_factory=list)
    attributes: list[Attribute] = field(default_factory=list)
    events: list[Event] = field(default_factory=list)
    data: Optional[bytes] = None

    def add_attribute(self, key: str, value: Any) -> "Response":
        self.attributes.append(Attribute(key, str(value)))
        return self

    def add_message(self, msg: Any) -> "Response":
        self.messages.append(SubMsg(msg))
        return self

    def add_messages(self, msgs: Iterable[Any]) -> "Response":
        for msg in msgs:
            self.add_message(msg)
        return self

    def add_submessage(self, msg: SubMsg) -> "Response":
        self.messages.append(msg)
        return self

    def add_submessages(self, msgs: Iterable[SubMsg]) -> "Response":
        self.messages.extend(msgs)
        return self

    def set_data(self, data: bytes) -> "Response":
        self.data = bytes(data)
        return self


# ---------------------------------------------------------------------------
# Bech32 addresses

_CHARSET = "qpzry9x8gf2tvdw0s3jn54khce6mua7l"
_GENERATORS = (0x3B6A57B2, 0x26508E6D, 0x1EA119FA, 0x3D4233DD, 0x2A1462B3)


def _polymod(values: Iterable[int]) -> int:
    chk = 1
    for value in values:
        top = chk >> 25
        chk = ((chk & 0x1FFFFFF) << 5) ^ value
        for i, generator in enumerate(_GENERATORS):
            if (top >> i) & 1:
                chk ^= generator
    return chk


def _hrp_expand(hrp: str) -> list[int]:
    return [ord(c) >> 5 for c in hrp] + [0] + [ord(c) & 31 for c in hrp]


def _convert_bits(data: Iterable[int], from_bits: int, to_bits: int, pad: bool) -> list[int]:
    acc = 0
    bits = 0
    out: list[int] = []
    max_value = (1 << to_bits) - 1
    for value in data:
        acc = (acc << from_bits) | value
        bits += from_bits
        while bits >= to_bits:
            bits -= to_bits
            out.append((acc >> bits) & max_value)
    if pad:
        if bits:
            out.append((acc << (to_bits - bits)) & max_value)
    elif bits >= from_bits or (acc << (to_bits - bits)) & max_value:
        raise ValueError("invalid padding")
    return out


def _bech32_encode(hrp: str, data: bytes) -> str:
    words = _convert_bits(data, 8, 5, True)
    checksum_value = _polymod(_hrp_expand(hrp) + words + [0] * 6) ^ 1
    checksum = [(checksum_value >> 5 * (5 - i)) & 31 for i in range(6)]
    return hrp + "1" + "".join(_CHARSET[w] for w in words + checksum)


def _bech32_decode(text: str) -> tuple[str, bytes]:
    if any(not 33 <= ord(c) <= 126 for c in text):
        raise ValueError("invalid character")
    if text.lower() != text and text.upper() != text:
        raise ValueError("mixed case")
    text = text.lower()
    separator = text.rfind("1")
    if separator < 1 or separator + 7 > len(text):
        raise ValueError("missing separator or too short")
    hrp = text[:separator]
    words = [_CHARSET.find(c) for c in text[separator + 1 :]]
    if -1 in words:
        raise ValueError("invalid data character")
    if _polymod(_hrp_expand(hrp) + words) != 1:
        raise ValueError("invalid checksum")
    return hrp, bytes(_convert_bits(words[:-6], 5, 8, False))


def _validate_canonical_length(canonical: bytes) -> None:
    if not 1 <= len(canonical) <= 255:
        raise StdError("Invalid canonical address length")


@dataclass(frozen=True)
class MockApi:
    """Address handling with bech32 addresses under a fixed prefix."""

    bech32_prefix: str = "cosmwasm"

    def addr_make(self, name: str) -> str:
        """Build a valid address from the SHA-256 digest of a name."""
        return _bech32_encode(self.bech32_prefix, hashlib.sha256(name.encode("utf-8")).digest())

    def addr_validate(self, address: str) -> str:
        canonical = self.addr_canonicalize(address)
        if self.addr_humanize(canonical) != address:
            raise StdError("Invalid input: address not normalized")
        return address

    def addr_canonicalize(self, address: str) -> bytes:
        try:
            prefix, canonical = _bech32_decode(address)
        except ValueError as exc:
            raise StdError(f"Error decoding bech32: {exc}") from exc
        if prefix != self.bech32_prefix:
            raise StdError("Wrong bech32 prefix")
        _validate_canonical_length(canonical)
        return canonical

    def addr_humanize(self, canonical: bytes) -> str:
        canonical = bytes(canonical)
        _validate_canonical_length(canonical)
        return _bech32_encode(self.bech32_prefix, canonical)


MOCK_CONTRACT_ADDR = MockApi().addr_make("cosmos2contract")


def mock_env() -> Env:
    return Env(MOCK_CONTRACT_ADDR)


# ---------------------------------------------------------------------------
# Querier

CustomHandler = Callable[[Any], bytes]


def _system_error(message: str) -> StdError:
    return StdError(f"Querier system error: {message}")


class MockQuerier:
    """Answers bank, raw wasm and custom queries from in-memory data."""

    def __init__(
        self,
        balances: Optional[Mapping[str, Sequence[Coin]]] = None,
        custom_handler: Optional[CustomHandler] = None,
        wasm_storage: Optional[Mapping[str, Mapping[bytes, bytes]]] = None,
    ) -> None:
        self.balances = {addr: list(held) for addr, held in (balances or {}).items()}
        self.custom_handler = custom_handler
        self.wasm_storage = {addr: dict(store) for addr, store in (wasm_storage or {}).items()}

    def query(self, request: Any) -> Any:
        """Run a typed query and return the parsed JSON answer."""
        wrapped = request if isinstance(request, (BalanceQuery, SupplyQuery)) else {"custom": request}
        return from_json(self.raw_query(to_json_bytes(wrapped)))

    def raw_query(self, raw: bytes) -> bytes:
        """Answer a JSON encoded query request with raw response bytes."""
        try:
            request = json.loads(raw)
        except (TypeError, ValueError) as exc:
            raise _system_error(f"Cannot parse request: {exc}") from exc
        if not isinstance(request, dict) or len(request) != 1:
            raise _system_error("Cannot parse request: expected exactly one query kind")
        ((kind, body),) = request.items()
        try:
            match kind:
                case "bank":
                    return self._bank(body)
                case "wasm":
                    return self._wasm(body)
                case "custom":
                    return self._custom(body)
        except (KeyError, TypeError, AttributeError, ValueError) as exc:
            raise _system_error(f"Cannot parse request: {exc}") from exc
        raise _system_error(f"Unsupported query type: {kind}")

    def query_wasm_raw(self, contract: str, key: bytes) -> Optional[bytes]:
        request = {"wasm": {"raw": {"contract_addr": contract, "key": bytes(key)}}}
        data = self.raw_query(to_json_bytes(request))
        return data or None

    def _bank(self, body: Mapping[str, Any]) -> bytes:
        if "balance" in body:
            query = body["balance"]
            denom = query["denom"]
            amount = sum(c.amount for c in self.balances.get(query["address"], []) if c.denom == denom)
            return to_json_bytes({"amount": Coin(amount, denom)})
        if "supply" in body:
            denom = body["supply"]["denom"]
            amount = sum(c.amount for held in self.balances.values() for c in held if c.denom == denom)
            return to_json_bytes({"amount": Coin(amount, denom)})
        raise _system_error("Unsupported query type: bank")

    def _wasm(self, body: Mapping[str, Any]) -> bytes:
        if "raw" not in body:
            raise _system_error("Unsupported query type: wasm")
        query = body["raw"]
        contract = query["contract_addr"]
        if contract not in self.wasm_storage:
            raise _system_error(f"No such contract: {contract}")
        key = base64.b64decode(query["key"], validate=True)
        return self.wasm_storage[contract].get(key, b"")

    def _custom(self, body: Any) -> bytes:
        if self.custom_handler is None:
            raise _system_error("Unsupported query type: custom")
        try:
            return bytes(self.custom_handler(body))
        except StdError as exc:
            raise StdError(f"Querier contract error: {exc.msg}") from exc


@dataclass
class Deps:
    storage: MemoryStorage
    api: MockApi
    querier: MockQuerier


def mock_dependencies(
    balances: Sequence[Coin] = (),
    custom_handler: Optional[CustomHandler] = None,
) -> Deps:
    """Fresh dependencies where the contract address holds the given balance."""
    return Deps(
        storage=MemoryStorage(),
        api=MockApi(),
        querier=MockQuerier({MOCK_CONTRACT_ADDR: list(balances)}, custom_handler),
    )