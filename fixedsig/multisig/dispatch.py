"""
Execution Dispatch

The engine never interprets actions. On Execute it hands the whole ordered
batch to a Sandbox in a single call and observes one aggregate outcome:

  - ExecutionDispatcher: wraps any sandbox failure as ExternalFailure
  - Sandbox:             the interface the surrounding runtime implements
  - LocalSandbox:        reference runtime routing ``{"contract", "msg"}``
                         actions to registered handlers inside one store
                         transaction, so a failing action undoes the batch
"""

from typing import Any, Callable, Dict, List, Optional, Protocol, Sequence

from ..constants import PREFIX_CONTRACTS
from ..exceptions import ExternalFailure
from ..logger import get_logger
from ..storage.kv import KeyValueStore, MemoryStore

logger = get_logger(__name__)


class Sandbox(Protocol):
    """Runs an ordered batch of opaque actions all-or-nothing."""

    def execute_batch(self, sender: str, actions: Sequence[Any]) -> Any:
        ...


class ExecutionDispatcher:
    """
    Submits a passed proposal's batch to the sandbox.

    Args:
        sandbox: Runtime that applies the batch atomically
        sender:  Identity the actions run as (the multisig's own address)
    """

    def __init__(self, sandbox: Sandbox, sender: str = "multisig"):
        self.sandbox = sandbox
        self.sender = sender
        self._dispatch_count = 0

    def dispatch(self, actions: Sequence[Any]) -> Any:
        """
        Returns whatever the sandbox reports for the batch.

        Raises ExternalFailure if the sandbox rejects it.
        """
        try:
            result = self.sandbox.execute_batch(self.sender, list(actions))
        except ExternalFailure:
            raise
        except Exception as e:
            logger.warning(f"Dispatch of {len(actions)} action(s) failed: {e}")
            raise ExternalFailure(f"Sandbox rejected batch: {e}") from e
        self._dispatch_count += 1
        return result

    @property
    def dispatch_count(self) -> int:
        """Successful dispatches made by this dispatcher."""
        return self._dispatch_count

    def __repr__(self) -> str:
        return f"<ExecutionDispatcher sender={self.sender} dispatched={self._dispatch_count}>"


# ══════════════════════════════════════════════════════════════════════
#  LOCAL SANDBOX
# ══════════════════════════════════════════════════════════════════════

class ContractState:
    """Namespaced view of the sandbox store for one contract."""

    def __init__(self, kv: KeyValueStore, contract: str):
        self._kv = kv
        self._prefix = f"{PREFIX_CONTRACTS}{contract}/"

    def get(self, key: str, default: Any = None) -> Any:
        value = self._kv.get_json(self._prefix + key)
        return default if value is None else value

    def set(self, key: str, value: Any) -> None:
        self._kv.set_json(self._prefix + key, value)

    def remove(self, key: str) -> None:
        self._kv.remove(self._prefix + key)


# handler(state, sender, msg) -> result; raise to fail the batch
ActionHandler = Callable[[ContractState, str, Dict[str, Any]], Any]


class LocalSandbox:
    """
    In-process sandbox.

    Actions are ``{"contract": <name>, "msg": {...}}``. The batch runs inside
    ``kv.transaction()``; when the sandbox shares the engine's store the
    batch nests inside the Execute transaction.
    """

    def __init__(self, kv: Optional[KeyValueStore] = None):
        self.kv = kv if kv is not None else MemoryStore()
        self._handlers: Dict[str, ActionHandler] = {}
        self._execution_log: List[Dict[str, Any]] = []

    def register(self, contract: str, handler: ActionHandler) -> None:
        self._handlers[contract] = handler
        logger.debug(f"Sandbox contract registered: {contract}")

    def state(self, contract: str) -> ContractState:
        return ContractState(self.kv, contract)

    def execute_batch(self, sender: str, actions: Sequence[Any]) -> List[Any]:
        results: List[Any] = []
        with self.kv.transaction():
            for index, action in enumerate(actions):
                contract, msg = self._route(index, action)
                handler = self._handlers.get(contract)
                if handler is None:
                    raise ExternalFailure(
                        f"Action {index}: no contract registered as {contract!r}"
                    )
                results.append(handler(self.state(contract), sender, msg))
        self._execution_log.append({"sender": sender, "actions": len(actions)})
        logger.info(f"Sandbox applied batch of {len(actions)} action(s) from {sender}")
        return results

    @staticmethod
    def _route(index: int, action: Any):
        if not isinstance(action, dict) or "contract" not in action:
            raise ExternalFailure(f"Action {index} is not a contract call: {action!r}")
        return action["contract"], action.get("msg", {})

    @property
    def execution_log(self) -> List[Dict[str, Any]]:
        return list(self._execution_log)

    def __repr__(self) -> str:
        return f"<LocalSandbox contracts={sorted(self._handlers)} batches={len(self._execution_log)}>"


# ══════════════════════════════════════════════════════════════════════
#  BUILT-IN BANK CONTRACT
# ══════════════════════════════════════════════════════════════════════

BANK_CONTRACT = "bank"


def bank_balance(state: ContractState, address: str) -> int:
    return int(state.get(f"balances/{address}", 0))


def bank_handler(state: ContractState, sender: str, msg: Dict[str, Any]) -> Dict[str, Any]:
    """
    Native token ledger.

    Messages:
        {"send": {"to_address": str, "amount": int}}   debit sender, credit recipient
        {"mint": {"to_address": str, "amount": int}}   credit recipient
    """
    if "send" in msg:
        body = msg["send"]
        to_address, amount = body["to_address"], int(body["amount"])
        if amount <= 0:
            raise ValueError(f"Send amount must be positive, got {amount}")
        balance = bank_balance(state, sender)
        if balance < amount:
            raise ValueError(f"Insufficient funds: {sender} has {balance}, needs {amount}")
        state.set(f"balances/{sender}", balance - amount)
        state.set(f"balances/{to_address}", bank_balance(state, to_address) + amount)
        return {"from": sender, "to": to_address, "amount": amount}
    if "mint" in msg:
        body = msg["mint"]
        to_address, amount = body["to_address"], int(body["amount"])
        state.set(f"balances/{to_address}", bank_balance(state, to_address) + amount)
        return {"to": to_address, "amount": amount}
    raise ValueError(f"Unknown bank message: {sorted(msg)}")
