"""Entities shared by the local store, the state store and the remote backup.

Transactions and banks serialize to the same JSON shapes in the local store and in
the remote backup file. Keys use the camelCase names of the backup format
(``bankId``, ``lastSync``).
"""
import dataclasses
import datetime
import enum
import time
import uuid
from typing import Any, Dict, List, Optional

UNKNOWN_BANK: str = 'Unknown Bank'


class TransactionType(enum.StrEnum):
    """Direction of a transaction."""
    Income = 'INCOME'
    Expense = 'EXPENSE'


class PaymentMode(enum.StrEnum):
    """How a transaction was paid."""
    Cash = 'Cash'
    Card = 'Card'
    Upi = 'UPI'
    BankTransfer = 'Bank Transfer'


def generate_id() -> str:
    """Return a new collision-resistant entity id."""
    return str(uuid.uuid4())


def now_ms() -> int:
    """Return the current time as epoch milliseconds."""
    return int(time.time() * 1000)


def parse_date(value: str) -> datetime.datetime:
    """Parse an ISO 8601 date or datetime string.

    Args:
        value: A string such as '2024-03-15' or '2024-03-15T10:00:00.000Z'.

    Returns:
        datetime.datetime: The parsed, naive-or-aware datetime.

    Raises:
        ValueError: If the value is not an ISO 8601 string.
    """
    if not isinstance(value, str):
        raise ValueError(f'Date must be an ISO 8601 string, got {type(value)}.')
    return datetime.datetime.fromisoformat(value.strip())


@dataclasses.dataclass
class Bank:
    """A bank the user can attach to bank transfers."""
    id: str
    name: str

    def to_dict(self) -> Dict[str, Any]:
        return {'id': self.id, 'name': self.name}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Bank':
        """Build a Bank from its serialized form.

        Raises:
            ValueError: If required keys are missing or have the wrong type.
        """
        if not isinstance(data, dict):
            raise ValueError(f'Bank must be an object, got {type(data)}.')
        bank_id, name = data.get('id'), data.get('name')
        if not isinstance(bank_id, str) or not bank_id:
            raise ValueError(f'Invalid bank id: {bank_id!r}')
        if not isinstance(name, str):
            raise ValueError(f'Invalid bank name: {name!r}')
        return cls(id=bank_id, name=name)


@dataclasses.dataclass
class Transaction:
    """A single income or expense record."""
    id: str
    type: TransactionType
    amount: float
    label: str
    mode: PaymentMode
    date: str
    bank_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            'id': self.id,
            'type': str(self.type),
            'amount': self.amount,
            'label': self.label,
            'mode': str(self.mode),
            'date': self.date,
        }
        if self.bank_id is not None:
            data['bankId'] = self.bank_id
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Transaction':
        """Build a Transaction from its serialized form.

        Only the shape is checked here. Business rules are enforced by
        :func:`validate_transaction` when the user writes a transaction.

        Raises:
            ValueError: If required keys are missing or have the wrong type.
        """
        if not isinstance(data, dict):
            raise ValueError(f'Transaction must be an object, got {type(data)}.')

        tx_id = data.get('id')
        if not isinstance(tx_id, str) or not tx_id:
            raise ValueError(f'Invalid transaction id: {tx_id!r}')

        amount = data.get('amount')
        if isinstance(amount, bool) or not isinstance(amount, (int, float)):
            raise ValueError(f'Invalid amount for transaction {tx_id}: {amount!r}')

        label, date = data.get('label'), data.get('date')
        if not isinstance(label, str):
            raise ValueError(f'Invalid label for transaction {tx_id}: {label!r}')
        if not isinstance(date, str):
            raise ValueError(f'Invalid date for transaction {tx_id}: {date!r}')

        bank_id = data.get('bankId')
        if bank_id is not None and not isinstance(bank_id, str):
            raise ValueError(f'Invalid bankId for transaction {tx_id}: {bank_id!r}')

        return cls(
            id=tx_id,
            type=TransactionType(data.get('type')),
            amount=amount,
            label=label,
            mode=PaymentMode(data.get('mode')),
            date=date,
            bank_id=bank_id or None,
        )


@dataclasses.dataclass
class Snapshot:
    """The unit of backup and restore: both entity lists and the last sync time."""
    transactions: List[Transaction] = dataclasses.field(default_factory=list)
    banks: List[Bank] = dataclasses.field(default_factory=list)
    last_sync: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'transactions': [t.to_dict() for t in self.transactions],
            'banks': [b.to_dict() for b in self.banks],
            'lastSync': self.last_sync,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Snapshot':
        """Build a Snapshot from the backup file format.

        Raises:
            ValueError: If the document is not a complete snapshot.
        """
        if not isinstance(data, dict):
            raise ValueError(f'Snapshot must be an object, got {type(data)}.')

        transactions, banks = data.get('transactions'), data.get('banks')
        if not isinstance(transactions, list) or not isinstance(banks, list):
            raise ValueError('Snapshot must contain "transactions" and "banks" lists.')

        last_sync = data.get('lastSync')
        if last_sync is not None and (isinstance(last_sync, bool) or not isinstance(last_sync, (int, float))):
            raise ValueError(f'Invalid lastSync: {last_sync!r}')

        return cls(
            transactions=[Transaction.from_dict(t) for t in transactions],
            banks=[Bank.from_dict(b) for b in banks],
            last_sync=int(last_sync) if last_sync is not None else None,
        )


@dataclasses.dataclass(frozen=True)
class SyncState:
    """Read-only view of the sync coordinator's state."""
    last_sync: Optional[int] = None
    is_connected: bool = False
    is_syncing: bool = False


@dataclasses.dataclass(frozen=True)
class DriveFile:
    """Handle of the backup file in Google Drive."""
    id: str
    name: str
    mime_type: str = ''
    modified_time: Optional[str] = None


def validate_transaction(tx: Transaction, banks: List[Bank]) -> None:
    """Check a transaction against the write-time rules.

    Args:
        tx: The transaction about to be written.
        banks: The banks currently stored.

    Raises:
        ValueError: If the transaction breaks any rule.
    """
    if not isinstance(tx.type, TransactionType):
        raise ValueError(f'Invalid transaction type: {tx.type!r}')
    if not isinstance(tx.mode, PaymentMode):
        raise ValueError(f'Invalid payment mode: {tx.mode!r}')

    if isinstance(tx.amount, bool) or not isinstance(tx.amount, (int, float)) or not tx.amount > 0:
        raise ValueError(f'Amount must be a positive number, got {tx.amount!r}')

    if not isinstance(tx.label, str) or not tx.label.strip():
        raise ValueError('Label must not be empty.')

    parse_date(tx.date)

    if tx.mode == PaymentMode.BankTransfer:
        if not tx.bank_id:
            raise ValueError('A bank must be selected for bank transfers.')
        if not any(b.id == tx.bank_id for b in banks):
            raise ValueError(f'Bank "{tx.bank_id}" does not exist.')
    elif tx.bank_id is not None:
        raise ValueError(f'A bank can only be set for bank transfers, not "{tx.mode}".')
