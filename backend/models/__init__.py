from models.audit_log import AuditLog
from models.bills import Bill, BillItem, BillStatus, PaymentMethod
from models.clinic_config import ClinicConfig
from models.inventory_items import InventoryItem, InventoryItemStatus, StockLevel
from models.inventory_transactions import InventoryTransaction, TransactionType

__all__ = ['AuditLog', 'Bill', 'BillItem', 'BillStatus', 'ClinicConfig', 'InventoryItem', 'InventoryItemStatus', 'InventoryTransaction', 'PaymentMethod', 'StockLevel', 'TransactionType',]
