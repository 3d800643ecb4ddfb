"""
Unit tests for MTrack.core.models
(covers serialization shapes and the write-time transaction rules).

Run:
    python -m unittest tests.test_models
"""
import json
import unittest

from MTrack.core import models
from tests.base import make_transaction


class TransactionSerializationTests(unittest.TestCase):

    def test_to_dict_uses_backup_keys(self):
        tx = make_transaction(mode=models.PaymentMode.BankTransfer, bank_id='b1')
        data = tx.to_dict()
        self.assertEqual(data['type'], 'EXPENSE')
        self.assertEqual(data['mode'], 'Bank Transfer')
        self.assertEqual(data['bankId'], 'b1')
        self.assertNotIn('bank_id', data)

    def test_bank_id_omitted_when_absent(self):
        self.assertNotIn('bankId', make_transaction().to_dict())

    def test_from_dict_reads_original_format(self):
        raw = json.loads(
            '{"id": "1", "type": "INCOME", "amount": 1200, "label": "Salary",'
            ' "mode": "UPI", "date": "2024-03-01T09:00:00.000Z"}'
        )
        tx = models.Transaction.from_dict(raw)
        self.assertEqual(tx.type, models.TransactionType.Income)
        self.assertEqual(tx.mode, models.PaymentMode.Upi)
        self.assertIsNone(tx.bank_id)
        self.assertEqual(tx.to_dict(), raw)

    def test_from_dict_rejects_bad_shapes(self):
        good = make_transaction().to_dict()
        for key, value in (('type', 'GIFT'), ('mode', 'Cheque'), ('amount', 'ten'), ('amount', True), ('id', '')):
            with self.subTest(key=key, value=value):
                with self.assertRaises(ValueError):
                    models.Transaction.from_dict({**good, key: value})
        with self.assertRaises(ValueError):
            models.Transaction.from_dict(['not', 'a', 'dict'])

    def test_snapshot_from_dict_requires_both_lists(self):
        with self.assertRaises(ValueError):
            models.Snapshot.from_dict({'transactions': []})
        with self.assertRaises(ValueError):
            models.Snapshot.from_dict({'transactions': [], 'banks': [], 'lastSync': 'yesterday'})

        snapshot = models.Snapshot.from_dict({'transactions': [], 'banks': [{'id': 'b', 'name': 'HDFC'}]})
        self.assertIsNone(snapshot.last_sync)
        self.assertEqual(snapshot.banks, [models.Bank('b', 'HDFC')])


class ValidateTransactionTests(unittest.TestCase):

    def setUp(self):
        self.banks = [models.Bank(id='b1', name='HDFC Bank')]

    def test_valid_cash_expense(self):
        models.validate_transaction(make_transaction(), self.banks)

    def test_valid_bank_transfer(self):
        tx = make_transaction(mode=models.PaymentMode.BankTransfer, bank_id='b1')
        models.validate_transaction(tx, self.banks)

    def test_amount_must_be_positive(self):
        for amount in (0, -5, float('nan'), True):
            with self.subTest(amount=amount):
                with self.assertRaises(ValueError):
                    models.validate_transaction(make_transaction(amount=amount), self.banks)

    def test_label_must_not_be_blank(self):
        with self.assertRaises(ValueError):
            models.validate_transaction(make_transaction(label='   '), self.banks)

    def test_date_must_be_iso(self):
        with self.assertRaises(ValueError):
            models.validate_transaction(make_transaction(date='15/03/2024'), self.banks)

    def test_bank_transfer_requires_existing_bank(self):
        with self.assertRaises(ValueError):
            models.validate_transaction(make_transaction(mode=models.PaymentMode.BankTransfer), self.banks)
        with self.assertRaises(ValueError):
            models.validate_transaction(
                make_transaction(mode=models.PaymentMode.BankTransfer, bank_id='missing'), self.banks
            )

    def test_bank_only_allowed_for_transfers(self):
        with self.assertRaises(ValueError):
            models.validate_transaction(make_transaction(mode=models.PaymentMode.Card, bank_id='b1'), self.banks)

    def test_generate_id_is_unique(self):
        ids = {models.generate_id() for _ in range(1000)}
        self.assertEqual(len(ids), 1000)


if __name__ == '__main__':
    unittest.main()
