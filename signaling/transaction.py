"""
signaling/transaction.py — Request/Response Correlation

A Transaction is one request waiting for exactly one correlated reply.
A TransactionTable is the per-owner registry (connection, session or
plugin) of the transactions still waiting.

Settlement rules:
  - `error` replies reject with ProtocolError (or whatever the callback raises)
  - replies in the policy's success kinds resolve via the callback
  - provisional replies (`ack`) and unknown kinds leave it pending
  - a settled transaction ignores every later delivery
  - settlement removes it from its table before the callback runs
"""

from __future__ import annotations

import asyncio
from typing import Any, Callable, Iterator, Optional

from exceptions import DuplicateIdError, ProtocolError, TransactionTimeoutError
from observability.logger import get_logger
from signaling.protocol import DEFAULT_POLICY, ResponsePolicy, new_transaction_id

log = get_logger(__name__)

Callback = Callable[[dict[str, Any]], Any]


def _default_outcome(message: dict[str, Any]) -> dict[str, Any]:
    if message.get("janus") == "error":
        raise ProtocolError.from_message(message)
    return message


class Transaction:
    """
    One pending request.

    `future` is the outcome callers await. It is settled at most once:
    with the callback's return value, or with the exception it raised, or
    with the error passed to reject().
    """

    def __init__(
        self,
        transaction_id: str,
        callback: Optional[Callback] = None,
        *,
        request: Optional[dict[str, Any]] = None,
        policy: ResponsePolicy = DEFAULT_POLICY,
        loop: Optional[asyncio.AbstractEventLoop] = None,
    ) -> None:
        self.id = transaction_id
        self.request = request
        self.policy = policy
        self._callback = callback or _default_outcome
        self._release_hooks: list[Callable[["Transaction"], None]] = []
        self._released = False
        self.future: asyncio.Future[Any] = (loop or asyncio.get_running_loop()).create_future()
        self.future.add_done_callback(self._on_future_done)

    def __repr__(self) -> str:
        state = "settled" if self.done else "pending"
        return f"<Transaction {self.id} {state}>"

    @property
    def done(self) -> bool:
        return self.future.done()

    def on_release(self, hook: Callable[["Transaction"], None]) -> None:
        """Run `hook(self)` once, synchronously, when this transaction stops waiting."""
        self._release_hooks.append(hook)

    def execute(self, message: dict[str, Any]) -> bool:
        """
        Feed one reply carrying this transaction's id.

        Returns True only if this call settled the transaction.
        """
        if self.done:
            log.debug("transaction.already_settled", transaction=self.id, janus=message.get("janus"))
            return False
        kind = message.get("janus")
        if self.policy.is_provisional(kind):
            log.debug("transaction.provisional", transaction=self.id, janus=kind)
            return False
        if not self.policy.is_terminal(kind):
            log.debug("transaction.ignored", transaction=self.id, janus=kind)
            return False

        self._release()
        try:
            result = self._callback(message)
        except Exception as exc:  # noqa: BLE001
            if not self.done:
                self.future.set_exception(exc)
        else:
            if not self.done:
                self.future.set_result(result)
        log.debug("transaction.settled", transaction=self.id, janus=kind)
        return True

    def resolve(self, result: Any) -> bool:
        """Settle with `result` without consulting the callback. False if already settled."""
        if self.done:
            return False
        self._release()
        self.future.set_result(result)
        return True

    def reject(self, error: BaseException) -> bool:
        """Settle with `error`. Returns False if already settled."""
        if self.done:
            return False
        self._release()
        self.future.set_exception(error)
        return True

    # ── Internals ────────────────────────────────────────────────────────────

    def _release(self) -> None:
        if self._released:
            return
        self._released = True
        hooks, self._release_hooks = self._release_hooks, []
        for hook in hooks:
            hook(self)

    def _on_future_done(self, future: asyncio.Future[Any]) -> None:
        if future.cancelled():
            # The awaiting caller gave up; stop tracking the request.
            self._release()
            return
        # Mark the exception retrieved; awaiting callers still receive it.
        future.exception()


class TransactionTable:
    """
    Live transactions of one owner, keyed by id.

    At most one live transaction per id. With a timeout, every added
    transaction is rejected with TransactionTimeoutError if still pending
    after `timeout` seconds.
    """

    def __init__(self, owner: str = "", timeout: Optional[float] = None) -> None:
        self._transactions: dict[str, Transaction] = {}
        self._owner = owner
        self._timeout = timeout or None

    def __len__(self) -> int:
        return len(self._transactions)

    def __contains__(self, transaction_id: object) -> bool:
        return transaction_id in self._transactions

    def __iter__(self) -> Iterator[Transaction]:
        return iter(list(self._transactions.values()))

    @property
    def timeout(self) -> Optional[float]:
        return self._timeout

    def ids(self) -> list[str]:
        return list(self._transactions)

    def get(self, transaction_id: Optional[str]) -> Optional[Transaction]:
        if transaction_id is None:
            return None
        return self._transactions.get(transaction_id)

    def new_id(self) -> str:
        """Generate an id that is not live in this table."""
        transaction_id = new_transaction_id()
        while transaction_id in self._transactions:
            transaction_id = new_transaction_id()
        return transaction_id

    def add(self, transaction: Transaction) -> Transaction:
        """Register `transaction`. Raises DuplicateIdError if its id is live."""
        if transaction.id in self._transactions:
            raise DuplicateIdError(transaction.id)
        if transaction.done:
            return transaction
        self._transactions[transaction.id] = transaction
        transaction.on_release(self._remove)
        if self._timeout:
            timer = asyncio.get_running_loop().call_later(
                self._timeout, self._expire, transaction
            )
            transaction.on_release(lambda _t: timer.cancel())
        log.debug("transaction.added", owner=self._owner, transaction=transaction.id)
        return transaction

    def dispatch(self, message: dict[str, Any]) -> Optional[dict[str, Any]]:
        """
        Route one inbound message to its transaction.

        Returns the message back when it carries no transaction id, so the
        caller can handle it as a push. Returns None when it was consumed,
        including stale replies for ids that are no longer (or never were)
        live, which are dropped.
        """
        transaction_id = message.get("transaction")
        if not transaction_id:
            return message
        transaction = self._transactions.get(transaction_id)
        if transaction is None:
            log.debug(
                "transaction.stale_dropped",
                owner=self._owner,
                transaction=transaction_id,
                janus=message.get("janus"),
            )
            return None
        transaction.execute(message)
        return None

    def cancel_all(self, reason: BaseException) -> int:
        """Reject every live transaction with `reason` and clear the table."""
        pending = list(self._transactions.values())
        self._transactions.clear()
        for transaction in pending:
            transaction.reject(reason)
        if pending:
            log.info("transaction.cancelled_all", owner=self._owner, count=len(pending), reason=str(reason))
        return len(pending)

    # ── Internals ────────────────────────────────────────────────────────────

    def _remove(self, transaction: Transaction) -> None:
        if self._transactions.get(transaction.id) is transaction:
            del self._transactions[transaction.id]

    def _expire(self, transaction: Transaction) -> None:
        if transaction.reject(TransactionTimeoutError(transaction.id, self._timeout or 0)):
            log.warning("transaction.timed_out", owner=self._owner, transaction=transaction.id)
