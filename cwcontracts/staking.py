"""Messages, errors and storage helpers of a staking derivatives contract."""

from __future__ import annotations

import re
from collections.abc import Callable
from dataclasses import dataclass, field, fields, is_dataclass
from decimal import Decimal, InvalidOperation, localcontext
from typing import Any, ClassVar, Optional, TypeVar

from cwcontracts.core import (
    Coin,
    MemoryStorage,
    NotFoundError,
    StdError,
    from_json,
    namespace_with_key,
    to_json_bytes,
    to_length_prefixed,
)

KEY_INVESTMENT = b"invest"
KEY_TOKEN_INFO = b"token"
KEY_TOTAL_SUPPLY = b"total_supply"

PREFIX_BALANCE = b"balance"
PREFIX_CLAIMS = b"claim"

_UINT128_MAX = 2**128 - 1
_DECIMAL_PLACES = 18
_UINT_RE = re.compile(r"[0-9]+")
_DECIMAL_RE = re.compile(r"[0-9]+(\.[0-9]+)?")

T = TypeVar("T")


# ---------------------------------------------------------------------------
# Errors


class StakingError(Exception):
    """Contract error wrapping a standard error raised by storage or the runtime."""

    def __init__(self, original: StdError) -> None:
        super().__init__(f"StdError: {original}")
        self.original: Optional[StdError] = original


class UnauthorizedError(StakingError):
    """The sender may not perform this action."""

    def __init__(self) -> None:
        Exception.__init__(self, "Unauthorized")
        self.original = None


# ---------------------------------------------------------------------------
# Wire formats: Uint128 and Decimal travel as strings


def _wire(kind: str, **kwargs: Any) -> Any:
    return field(metadata={"wire": kind}, **kwargs)


def _format_uint128(value: Any) -> str:
    if isinstance(value, bool) or not isinstance(value, int) or not 0 <= value <= _UINT128_MAX:
        raise StdError(f"Invalid Uint128: {value!r}")
    return str(value)


def _parse_uint128(raw: Any) -> int:
    if not isinstance(raw, str) or not _UINT_RE.fullmatch(raw):
        raise ValueError(f"invalid Uint128 {raw!r}")
    value = int(raw)
    if value > _UINT128_MAX:
        raise ValueError(f"Uint128 out of range: {raw}")
    return value


def _check_decimal_range(value: Decimal) -> None:
    with localcontext() as ctx:
        ctx.prec = 100
        if value.as_tuple().exponent < -_DECIMAL_PLACES:  # type: ignore[operator]
            normalized = value.normalize()
            if normalized.as_tuple().exponent < -_DECIMAL_PLACES:  # type: ignore[operator]
                raise ValueError(f"more than {_DECIMAL_PLACES} fractional digits")
        if int(value.scaleb(_DECIMAL_PLACES)) > _UINT128_MAX:
            raise ValueError("Decimal out of range")


def _format_decimal(value: Any) -> str:
    if not isinstance(value, Decimal) or not value.is_finite() or value < 0:
        raise StdError(f"Invalid Decimal: {value!r}")
    try:
        _check_decimal_range(value)
    except ValueError as exc:
        raise StdError(f"Invalid Decimal: {exc}") from exc
    with localcontext() as ctx:
        ctx.prec = 100
        text = format(value.normalize(), "f")
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text


def _parse_decimal(raw: Any) -> Decimal:
    if not isinstance(raw, str) or not _DECIMAL_RE.fullmatch(raw):
        raise ValueError(f"invalid Decimal {raw!r}")
    if "." in raw and len(raw.split(".", 1)[1]) > _DECIMAL_PLACES:
        raise ValueError(f"Cannot parse more than {_DECIMAL_PLACES} fractional digits")
    try:
        value = Decimal(raw)
    except InvalidOperation as exc:
        raise ValueError(f"invalid Decimal {raw!r}") from exc
    _check_decimal_range(value)
    return value


def _check_u8(raw: Any) -> int:
    if isinstance(raw, bool) or not isinstance(raw, int) or not 0 <= raw <= 0xFF:
        raise ValueError(f"invalid u8 {raw!r}")
    return raw


def _expect_str(raw: Any) -> str:
    if not isinstance(raw, str):
        raise TypeError(f"expected a string, got {raw!r}")
    return raw


def _encode_field(kind: Optional[str], value: Any) -> Any:
    match kind:
        case "uint128":
            return _format_uint128(value)
        case "decimal":
            return _format_decimal(value)
        case "u8":
            try:
                return _check_u8(value)
            except ValueError as exc:
                raise StdError(str(exc)) from exc
        case "coin":
            return {"denom": value.denom, "amount": _format_uint128(value.amount)}
    return _encode(value)


def _encode(value: Any) -> Any:
    if is_dataclass(value) and not isinstance(value, type):
        body: Any = {
            f.name: _encode_field(f.metadata.get("wire"), getattr(value, f.name)) for f in fields(value)
        }
        for tag in reversed(getattr(type(value), "json_tag", ())):
            body = {tag: body}
        return body
    if isinstance(value, Decimal):
        return _format_decimal(value)
    if isinstance(value, (list, tuple)):
        return [_encode(item) for item in value]
    return value


def _to_bytes(item: Any) -> bytes:
    if isinstance(item, int) and not isinstance(item, bool):
        return to_json_bytes(_format_uint128(item))
    return to_json_bytes(_encode(item))


def _decode_field(kind: Optional[str], raw: Any) -> Any:
    match kind:
        case "uint128":
            return _parse_uint128(raw)
        case "decimal":
            return _parse_decimal(raw)
        case "u8":
            return _check_u8(raw)
        case "coin":
            return Coin(_parse_uint128(raw["amount"]), _expect_str(raw["denom"]))
    return _expect_str(raw)


def _decode(cls: type, data: Any) -> Any:
    try:
        if cls is int:
            return _parse_uint128(data)
        if cls is Decimal:
            return _parse_decimal(data)
        for tag in getattr(cls, "json_tag", ()):
            data = data[tag]
        if not isinstance(data, dict):
            raise TypeError("expected an object")
        return cls(**{f.name: _decode_field(f.metadata.get("wire"), data[f.name]) for f in fields(cls)})
    except (KeyError, TypeError, ValueError) as exc:
        raise StdError(f"Error parsing into type {cls.__name__}: {exc}") from exc


# ---------------------------------------------------------------------------
# Messages


@dataclass
class InstantiateMsg:
    name: str
    symbol: str
    decimals: int = _wire("u8")
    validator: str = ""
    exit_tax: Decimal = _wire("decimal", default=Decimal(0))
    min_withdrawal: int = _wire("uint128", default=0)


@dataclass
class Transfer:
    """Move derivative tokens to a recipient."""

    json_tag: ClassVar[tuple[str, ...]] = ("transfer",)
    recipient: str
    amount: int = _wire("uint128")


@dataclass
class Bond:
    """Bond the staking tokens sent along and issue derivative tokens."""

    json_tag: ClassVar[tuple[str, ...]] = ("bond",)


@dataclass
class Unbond:
    """Burn derivative tokens and claim the unbonded staking tokens, minus the exit tax."""

    json_tag: ClassVar[tuple[str, ...]] = ("unbond",)
    amount: int = _wire("uint128")


@dataclass
class Claim:
    """Claim native tokens whose unbonding period has passed."""

    json_tag: ClassVar[tuple[str, ...]] = ("claim",)


@dataclass
class Reinvest:
    """Withdraw accumulated rewards and bond them to the same validator."""

    json_tag: ClassVar[tuple[str, ...]] = ("reinvest",)


@dataclass
class BondAllTokens:
    """Callback the contract sends to itself after rewards were withdrawn."""

    json_tag: ClassVar[tuple[str, ...]] = ("_bond_all_tokens",)


@dataclass
class Balance:
    json_tag: ClassVar[tuple[str, ...]] = ("balance",)
    address: str


@dataclass
class Claims:
    json_tag: ClassVar[tuple[str, ...]] = ("claims",)
    address: str


@dataclass
class TokenInfoQuery:
    json_tag: ClassVar[tuple[str, ...]] = ("token_info",)


@dataclass
class InvestmentQuery:
    json_tag: ClassVar[tuple[str, ...]] = ("investment",)


@dataclass
class BalanceResponse:
    balance: int = _wire("uint128")


@dataclass
class ClaimsResponse:
    claims: int = _wire("uint128")


@dataclass
class TokenInfoResponse:
    name: str
    symbol: str
    decimals: int = _wire("u8")


@dataclass
class InvestmentResponse:
    token_supply: int = _wire("uint128")
    staked_tokens: Coin = _wire("coin")
    nominal_value: Decimal = _wire("decimal")
    owner: str = ""
    exit_tax: Decimal = _wire("decimal", default=Decimal(0))
    validator: str = ""
    min_withdrawal: int = _wire("uint128", default=0)


# ---------------------------------------------------------------------------
# State


@dataclass
class InvestmentInfo:
    """Settings fixed at instantiation."""

    owner: str
    bond_denom: str
    exit_tax: Decimal = _wire("decimal")
    validator: str = ""
    min_withdrawal: int = _wire("uint128", default=0)


@dataclass
class TokenInfo:
    """Display metadata of the derivative token."""

    name: str
    symbol: str
    decimals: int = _wire("u8")


@dataclass
class Supply:
    """Issued derivative tokens, bonded native tokens and outstanding claims."""

    issued: int = _wire("uint128", default=0)
    bonded: int = _wire("uint128", default=0)
    claims: int = _wire("uint128", default=0)


def may_load_map(storage: MemoryStorage, prefix: bytes, key: bytes) -> Optional[int]:
    raw = storage.get(namespace_with_key([prefix], key))
    if raw is None:
        return None
    return _decode(int, from_json(raw))


def save_map(storage: MemoryStorage, prefix: bytes, key: bytes, value: int) -> None:
    storage.set(namespace_with_key([prefix], key), to_json_bytes(_format_uint128(value)))


def load_map(storage: MemoryStorage, prefix: bytes, key: bytes) -> int:
    value = may_load_map(storage, prefix, key)
    if value is None:
        raise NotFoundError(f"map value for {bytes(key).hex().upper()}")
    return value


def load_item(storage: MemoryStorage, key: bytes, cls: type[T]) -> T:
    raw = storage.get(to_length_prefixed(key))
    if raw is None:
        raise NotFoundError(cls.__name__)
    return _decode(cls, from_json(raw))


def save_item(storage: MemoryStorage, key: bytes, item: Any) -> None:
    storage.set(to_length_prefixed(key), _to_bytes(item))


def update_item(storage: MemoryStorage, key: bytes, cls: type[T], action: Callable[[T], T]) -> T:
    """Load an item, transform it and store the result; errors leave storage untouched."""
    output = action(load_item(storage, key, cls))
    save_item(storage, key, output)
    return output