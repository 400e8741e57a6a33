from .auth import Role, User, SessionToken, LoginHistory, ROLE_NAMES
from .catalog import Brand, Category, Product, StockEntry
from .customers import Customer, CustomerOrder, OrderItem, ORDER_STATUSES
from .sales import Bill, BillItem, BILL_STATUSES
from .discounts import Discount, DiscountRule
from .sequences import SequenceCounter

__all__ = [
    'Role', 'User', 'SessionToken', 'LoginHistory', 'ROLE_NAMES',
    'Brand', 'Category', 'Product', 'StockEntry',
    'Customer', 'CustomerOrder', 'OrderItem', 'ORDER_STATUSES',
    'Bill', 'BillItem', 'BILL_STATUSES',
    'Discount', 'DiscountRule',
    'SequenceCounter',
]
