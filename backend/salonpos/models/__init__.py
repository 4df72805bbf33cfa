from .clients import Client, ClientHistory
from .transactions import Transaction, TransactionClient
from .closures import CashClosure
from .audit import AuditLog
from .sequences import DocumentSequence

__all__ = [
    'Client', 'ClientHistory',
    'Transaction', 'TransactionClient',
    'CashClosure',
    'AuditLog',
    'DocumentSequence',
]
