from .directory import Store, User
from .catalog import CatalogProduct, StoreStock
from .requests import ProductRequest, RequestCode
from .assignments import UserProductAssignment
from .counts import InventoryCount
from .history import RequestHistory, CountHistory, AssignmentHistory, ImmutableRecordError

__all__ = [
    'Store', 'User',
    'CatalogProduct', 'StoreStock',
    'ProductRequest', 'RequestCode',
    'UserProductAssignment',
    'InventoryCount',
    'RequestHistory', 'CountHistory', 'AssignmentHistory', 'ImmutableRecordError',
]
