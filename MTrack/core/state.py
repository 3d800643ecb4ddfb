"""In-memory application state mirroring the local store.

Every mutation builds the complete new list, validates it and writes it through
:class:`~MTrack.core.store.LocalStore` first. Only after the write succeeded is the
in-memory list replaced and a change signal emitted, so memory never holds data the
disk rejected.
"""
import copy
import logging
from typing import Any, Dict, Iterable, List, Optional, Union

from PySide6 import QtCore

from . import models


class StateStore(QtCore.QObject):
    """Transactions and banks as seen by the presentation layer.

    Signals:
        transactionsChanged (list): The new list of transactions.
        banksChanged (list): The new list of banks.
    """
    transactionsChanged = QtCore.Signal(list)
    banksChanged = QtCore.Signal(list)

    def __init__(self, store, parent: Optional[QtCore.QObject] = None) -> None:
        super().__init__(parent)
        self.store = store
        self._transactions: List[models.Transaction] = []
        self._banks: List[models.Bank] = []

    @property
    def transactions(self) -> List[models.Transaction]:
        return list(self._transactions)

    @property
    def banks(self) -> List[models.Bank]:
        return list(self._banks)

    def reload(self) -> None:
        """Re-read transactions and banks from the local store."""
        self._transactions = self.store.get_transactions()
        self._banks = self.store.get_banks()
        logging.debug(f'Loaded {len(self._transactions)} transaction(s) and {len(self._banks)} bank(s).')
        self.transactionsChanged.emit(self.transactions)
        self.banksChanged.emit(self.banks)

    def _commit_transactions(self, transactions: List[models.Transaction]) -> None:
        self.store.save_transactions(transactions)
        self._transactions = transactions
        self.transactionsChanged.emit(self.transactions)

    def _commit_banks(self, banks: List[models.Bank]) -> None:
        self.store.save_banks(banks)
        self._banks = banks
        self.banksChanged.emit(self.banks)

    @staticmethod
    def _new_transaction(data: Union[models.Transaction, Dict[str, Any]]) -> models.Transaction:
        if isinstance(data, models.Transaction):
            data = data.to_dict()
        try:
            bank_id = data.get('bank_id', data.get('bankId'))
            return models.Transaction(
                id=models.generate_id(),
                type=models.TransactionType(data['type']),
                amount=data['amount'],
                label=data['label'],
                mode=models.PaymentMode(data['mode']),
                date=data['date'],
                bank_id=bank_id or None,
            )
        except KeyError as ex:
            raise ValueError(f'Missing transaction field: {ex}') from ex

    def add_transaction(self, data: Union[models.Transaction, Dict[str, Any]]) -> models.Transaction:
        """Create a transaction with a fresh id.

        Args:
            data: Transaction fields. Any id is ignored.

        Returns:
            The stored transaction.

        Raises:
            ValueError: If the transaction is invalid.
            status.StorageError: If the local store rejects the write.
        """
        return self.add_transactions([data])[0]

    def add_transactions(self, items: Iterable[Union[models.Transaction, Dict[str, Any]]]) -> List[models.Transaction]:
        """Create several transactions in a single write.

        Either all of them are stored or none is.
        """
        new = [self._new_transaction(item) for item in items]
        for tx in new:
            models.validate_transaction(tx, self._banks)
        if not new:
            return []

        self._commit_transactions(self._transactions + new)
        logging.info(f'Added {len(new)} transaction(s).')
        return new

    def update_transaction(self, tx: models.Transaction) -> models.Transaction:
        """Replace the transaction with the same id.

        Raises:
            ValueError: If no transaction has that id, or the new values are invalid.
            status.StorageError: If the local store rejects the write.
        """
        index = next((i for i, t in enumerate(self._transactions) if t.id == tx.id), None)
        if index is None:
            raise ValueError(f'No transaction with id "{tx.id}".')
        models.validate_transaction(tx, self._banks)

        updated = copy.copy(tx)
        transactions = list(self._transactions)
        transactions[index] = updated
        self._commit_transactions(transactions)
        logging.info(f'Updated transaction {tx.id}.')
        return updated

    def delete_transaction(self, tx_id: str) -> bool:
        """Delete a transaction.

        Returns:
            bool: False if no transaction has that id.
        """
        transactions = [t for t in self._transactions if t.id != tx_id]
        if len(transactions) == len(self._transactions):
            logging.warning(f'Cannot delete transaction "{tx_id}": not found.')
            return False
        self._commit_transactions(transactions)
        logging.info(f'Deleted transaction {tx_id}.')
        return True

    def add_bank(self, name: str) -> models.Bank:
        """Create a bank.

        Raises:
            ValueError: If the name is empty.
            status.StorageError: If the local store rejects the write.
        """
        name = name.strip() if isinstance(name, str) else ''
        if not name:
            raise ValueError('Bank name must not be empty.')

        bank = models.Bank(id=models.generate_id(), name=name)
        self._commit_banks(self._banks + [bank])
        logging.info(f'Added bank "{name}".')
        return bank

    def delete_bank(self, bank_id: str) -> bool:
        """Delete a bank. Transactions referencing it are left unchanged.

        Returns:
            bool: False if no bank has that id.
        """
        banks = [b for b in self._banks if b.id != bank_id]
        if len(banks) == len(self._banks):
            logging.warning(f'Cannot delete bank "{bank_id}": not found.')
            return False
        self._commit_banks(banks)
        logging.info(f'Deleted bank {bank_id}.')
        return True

    def bank_name(self, bank_id: Optional[str]) -> str:
        return next((b.name for b in self._banks if b.id == bank_id), models.UNKNOWN_BANK)

    def get_snapshot_for_export(self) -> models.Snapshot:
        return models.Snapshot(
            transactions=copy.deepcopy(self._transactions),
            banks=copy.deepcopy(self._banks),
            last_sync=self.store.get_last_sync(),
        )
