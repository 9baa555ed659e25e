"""Slip ledger - balances and an append-only transaction log.

Slips are discrete units stored as int. Supply enters only through the
genesis grant and mint; transfers move it between dids.

Invariants:
    sum(balances.values()) == issued
    no balance is ever negative

All balance mutations go through here. Failed checks raise before any
state changes, so a rejected transfer leaves balances and the log intact.
"""

from __future__ import annotations

import logging
from typing import Any, TypedDict

from .addresses import Address, format_address
from .constants import AddressScheme, DEFAULT_MINT_REASON, TransactionType
from .errors import ErrorCode, InsufficientBalanceError, ValidationError
from .hashing import now_iso, random_hex
from .models import Transaction

logger = logging.getLogger(__name__)


class LedgerCheck(TypedDict):
    """Result of Ledger.verify()."""

    ok: bool
    issued: int
    total: int
    negative: list[str]


def _require_amount(amount: object) -> int:
    # bool is an int subclass; True is not a slip amount
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise ValidationError(
            "Amount must be a positive integer",
            code=ErrorCode.INVALID_TYPE,
            amount=repr(amount),
        )
    if amount <= 0:
        raise ValidationError("Amount must be positive", amount=amount)
    return amount


class Ledger:
    """Balance map plus transaction log for one kernel."""

    def __init__(
        self,
        balances: dict[str, int] | None = None,
        transactions: list[Transaction] | None = None,
        issued: int | None = None,
        tx_id_bytes: int = 8,
    ) -> None:
        self.balances: dict[str, int] = dict(balances or {})
        self.transactions: list[Transaction] = list(transactions or [])
        # Stores written before supply tracking: treat current total as issued
        self.issued: int = sum(self.balances.values()) if issued is None else issued
        self._tx_id_bytes = tx_id_bytes

    def get_balance(self, did: str) -> int:
        return self.balances.get(did, 0)

    def has_account(self, did: str) -> bool:
        return did in self.balances

    def grant_genesis(self, did: str, amount: int) -> bool:
        """Give a new identity its starting slips, once.

        Returns:
            True if granted, False if the did already has a balance entry.
        """
        if did in self.balances:
            return False
        self.balances[did] = amount
        self.issued += amount
        logger.info("Genesis grant of %d slips to %s", amount, did)
        return True

    def _new_transaction(self, **fields: Any) -> Transaction:
        tx_id = random_hex(self._tx_id_bytes)
        return Transaction(
            id=tx_id,
            timestamp=now_iso(),
            address=format_address(Address(AddressScheme.SLIP, tx_id)),
            **fields,
        )

    def mint(self, did: str, amount: object, reason: str = DEFAULT_MINT_REASON) -> Transaction:
        """Create new slips for did.

        Raises:
            ValidationError: If amount is not a positive int.
        """
        value = _require_amount(amount)
        tx = self._new_transaction(
            type=TransactionType.MINT,
            to=did,
            amount=value,
            reason=reason,
        )
        self.balances[did] = self.get_balance(did) + value
        self.issued += value
        self.transactions.append(tx)
        return tx

    def transfer(self, from_did: str, to_did: object, amount: object, memo: str = "") -> Transaction:
        """Move slips from one did to another.

        Auto-creates the recipient's balance entry. Debit and credit happen
        together; nothing changes if a check fails.

        Raises:
            ValidationError: Bad amount or empty recipient.
            InsufficientBalanceError: Sender balance is below amount.
        """
        value = _require_amount(amount)
        if not isinstance(to_did, str) or not to_did.strip():
            raise ValidationError("Recipient did is required", code=ErrorCode.MISSING_ARGUMENT)
        recipient = to_did.strip()
        balance = self.get_balance(from_did)
        if balance < value:
            raise InsufficientBalanceError(from_did, balance, value)

        tx = self._new_transaction(
            type=TransactionType.TRANSFER,
            from_did=from_did,
            to=recipient,
            amount=value,
            memo=memo,
        )
        if recipient not in self.balances:
            self.balances[recipient] = 0
        self.balances[from_did] = balance - value
        self.balances[recipient] += value
        self.transactions.append(tx)
        return tx

    def get(self, tx_id: str) -> Transaction | None:
        for tx in self.transactions:
            if tx.id == tx_id:
                return tx
        return None

    def history(self, did: str, limit: int = 50) -> list[Transaction]:
        """Transactions touching did, most recent first."""
        if limit <= 0:
            return []
        involved = [tx for tx in self.transactions if tx.involves(did)]
        return list(reversed(involved[-limit:]))

    def verify(self) -> LedgerCheck:
        """Check conservation and non-negativity."""
        total = sum(self.balances.values())
        negative = sorted(did for did, bal in self.balances.items() if bal < 0)
        return {
            "ok": total == self.issued and not negative,
            "issued": self.issued,
            "total": total,
            "negative": negative,
        }

    def to_dict(self) -> dict[str, Any]:
        return {
            "balances": dict(self.balances),
            "transactions": [tx.to_dict() for tx in self.transactions],
            "issued": self.issued,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any], tx_id_bytes: int = 8) -> Ledger:
        transactions: list[Transaction] = []
        for raw in data.get("transactions", []):
            try:
                transactions.append(Transaction.from_dict(raw))
            except (KeyError, TypeError, ValueError) as e:
                logger.error("Dropping unreadable transaction %r: %s", raw, e)
        return cls(
            balances={did: int(bal) for did, bal in data.get("balances", {}).items()},
            transactions=transactions,
            issued=data.get("issued"),
            tx_id_bytes=tx_id_bytes,
        )
