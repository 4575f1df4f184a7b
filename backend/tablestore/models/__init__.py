from .tables import UserTable, TableColumn, TableRow
from .inventory import InventoryTransaction
from .commerce import Sale, Rental
from .documents import DocumentSequence

__all__ = [
    'UserTable', 'TableColumn', 'TableRow',
    'InventoryTransaction',
    'Sale', 'Rental',
    'DocumentSequence',
]
