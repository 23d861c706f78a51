from .customers import Role, Customer
from .auth import CustomerToken
from .catalog import Category, Brand, Product
from .cart import CartLine
from .promotions import PromoCode
from .orders import Order, OrderItem, OrderStatus
from .wishlist import WishlistItem
from .reviews import Review

__all__ = [
    'Role', 'Customer', 'CustomerToken',
    'Category', 'Brand', 'Product',
    'CartLine',
    'PromoCode',
    'Order', 'OrderItem', 'OrderStatus',
    'WishlistItem',
    'Review',
]
