# cwcontracts

This package runs contract logic in plain Python. Contracts work against a sorted in-memory key-value store and a mock chain environment. You can use it to see how message handling, storage layouts and replies behave without a blockchain. The package has no dependencies outside the standard library.

## Installation

```
pip install .
pip install ".[test]"   # adds pytest
```

## Modules

### `cwcontracts.core`

This module holds the pieces the contracts share.

**Storage**
- `MemoryStorage` provides `get`, `set` and `remove`.
- It also provides `range`, `range_keys` and `range_values`. Each takes an inclusive `start`, an exclusive `end` and an `Order` (`ASCENDING` or `DESCENDING`).
- A range iterates over a snapshot, so removing keys while iterating is safe.
- Setting an empty value raises `ValueError`.

**JSON**
- `to_json_bytes` encodes to compact JSON. Bytes become base64 strings, coin amounts become strings, and enum members become their values. A tagged message such as `BankSend` is wrapped in its tag keys, giving `{"bank": {"send": {...}}}`.
- `from_json` parses bytes into plain Python values.
- Failures in either direction raise `StdError`.

**Storage keys**
- `to_length_prefixed` puts a 2-byte big-endian length in front of a namespace.
- `namespace_with_key` joins length-prefixed namespaces and appends a raw key.

**Funds and environment**
- `Coin`, `coin` and `coins`.
- `MessageInfo`.
- `Env`, and `mock_env()`, whose contract address is `MOCK_CONTRACT_ADDR`.

**Messages and results**
- Messages: `BankSend`, `StakingDelegate` and `WasmExecute`.
- Queries: `BalanceQuery` and `SupplyQuery`.
- Sub-messages: `SubMsg` and `ReplyOn`.
- Results: `Response`, `Reply`, `SubMsgResponse`, `MsgResponse`, `Event` and `Attribute`.
- The `Response` builder methods are `add_attribute`, `add_message`, `add_messages`, `add_submessage`, `add_submessages` and `set_data`. Each returns the response, so calls can be chained.

**Mocks**
- `MockApi` handles bech32 addresses under the prefix `cosmwasm`. Its methods are:
  - `addr_make`, which builds an address from the SHA-256 of a name.
  - `addr_validate`.
  - `addr_canonicalize`.
  - `addr_humanize`.
- `MockQuerier` answers the following from in-memory data:
  - bank balance queries;
  - bank supply queries, summed over every holder;
  - raw wasm storage reads;
  - custom queries, through a handler you supply.
- A failed query raises `StdError`, with a message that begins `Querier system error:` or `Querier contract error:`.
- `Deps` bundles storage, the API and the querier. `mock_dependencies(balances, custom_handler)` creates a fresh set.

**Errors**
- `StdError` is the general error.
- `NotFoundError` is a subclass of `StdError` for missing stored values.

### `cwcontracts.queue`

A FIFO queue of 32-bit integers, each stored under a 4-byte big-endian key.

- Entry points: `instantiate`, `execute` (`Enqueue`, `Dequeue`), `migrate` and `query`.
- `Dequeue` returns the removed item as the response data.
- `migrate` clears the queue and refills it with 100, 101 and 102.
- Queries:
  - `Count`.
  - `Sum`.
  - `Reducer`: for each item, the sum of all values greater than it.
  - `List`: ids in an empty range, ids below `0x20`, and ids from `0x20` on.
  - `OpenIterators`.
- The helpers `query_count`, `query_sum`, `query_reducer` and `query_list` return typed responses.

### `cwcontracts.reflect`

This contract sends messages on behalf of its owner.

- Execute messages:
  - `ReflectMsg` and `ReflectSubMsg`. Only the owner may send them, and they must carry at least one message.
  - `ChangeOwner`. The new owner must be a valid address.
- `reply` stores each reply, and the `SubMsgResult` query reads it back.
- Other queries:
  - `Owner`.
  - `Capitalized`, which asks the custom querier.
  - `Chain`, which passes a bank or special query through and returns the raw answer.
  - `Raw`, which reads another contract's storage key.
- Errors are `NotCurrentOwnerError` and `MessagesEmptyError`, both subclasses of `ReflectError`.
- `mock_dependencies_with_custom_querier` returns dependencies whose querier answers `SpecialPing` with `"pong"` and upper-cases the text of `SpecialCapitalized`.

### `cwcontracts.replier`

This contract records the order of executions (`0xEE`, id) and replies (`0xBB`, id) in a stored `State`.

- Nested `ExecuteMsg` values are sent back to the contract as sub-messages.
- Behaviour flags are packed into the sub-message id:
  - `SET_DATA_IN_EXEC_AND_REPLY_FLAG`
  - `RETURN_ORDER_IN_REPLY_FLAG`
  - `REPLY_ERROR_FLAG`
- `reply` reads these flags back and either sets data, returns the recorded order, or raises `StdError`.

### `cwcontracts.staking`

Message, response and state types for a staking-derivative contract:

- `InstantiateMsg`.
- Execute messages: `Transfer`, `Bond`, `Unbond`, `Claim`, `Reinvest` and `BondAllTokens`.
- Queries: `Balance`, `Claims`, `TokenInfoQuery` and `InvestmentQuery`.
- State: `InvestmentInfo`, `TokenInfo` and `Supply`.

Amounts travel as Uint128 strings and rates as decimal strings with at most 18 fractional digits.

Storage helpers:
- `save_item`, `load_item` and `update_item`.
- `save_map`, `load_map` and `may_load_map`.

Errors are `StakingError`, which wraps a `StdError`, and `UnauthorizedError`.

## Example

```python
from cwcontracts.core import mock_dependencies, mock_env, MessageInfo, from_json
from cwcontracts import queue

deps = mock_dependencies()
creator = deps.api.addr_make("creator")
info = MessageInfo(sender=creator, funds=[])

queue.instantiate(deps, mock_env(), info, queue.InstantiateMsg())
queue.execute(deps, mock_env(), info, queue.Enqueue(value=25))
queue.execute(deps, mock_env(), info, queue.Enqueue(value=17))

print(queue.query_count(deps).count)   # 2
print(queue.query_sum(deps).sum)       # 42

res = queue.execute(deps, mock_env(), info, queue.Dequeue())
print(from_json(res.data))             # {'value': 25}
```

## What it does not do

- There is no chain or virtual machine. Messages and sub-messages placed in a `Response` are only collected, never dispatched, and no reply is delivered unless you call `reply` yourself.
- `cwcontracts.staking` provides types and storage helpers only. It has no `instantiate`, `execute` or `query` entry points, so bonding, unbonding, claims and reinvesting are not carried out.
- There is no command-line tool.
- JSON schemas for the messages are not generated.

## Running the tests

```
pytest
```