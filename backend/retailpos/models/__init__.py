from .branches import Branch, Warehouse
from .catalog import Product, CustomerGroup, Customer
from .inventory import InventoryBalance, StockMovement
from .sales import Sale, SaleItem, SalePayment, InvoiceSequence
from .registers import CashRegister, CashRegisterSession, CashRegisterTransaction
from .accounts import Account, AccountTransaction, TransactionEntry
from .auth import User, Role, UserRole, Permission, RolePermission, SessionToken

__all__ = [
    'Branch', 'Warehouse',
    'Product', 'CustomerGroup', 'Customer',
    'InventoryBalance', 'StockMovement',
    'Sale', 'SaleItem', 'SalePayment', 'InvoiceSequence',
    'CashRegister', 'CashRegisterSession', 'CashRegisterTransaction',
    'Account', 'AccountTransaction', 'TransactionEntry',
    'User', 'Role', 'UserRole', 'Permission', 'RolePermission', 'SessionToken',
]
