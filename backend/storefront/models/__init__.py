from .auth import User, UserAddress, SessionToken
from .catalog import Product, StockMovement, RestockRequest
from .orders import Order, OrderLine, OrderTrackingEvent
from .payments import Payment, PaymentEvent
from .notifications import Notification
from .carts import Cart, CartItem

__all__ = [
    'User', 'UserAddress', 'SessionToken',
    'Product', 'StockMovement', 'RestockRequest',
    'Order', 'OrderLine', 'OrderTrackingEvent',
    'Payment', 'PaymentEvent',
    'Notification',
    'Cart', 'CartItem',
]
