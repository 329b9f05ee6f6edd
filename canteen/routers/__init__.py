"""HTTP routers, one module per resource."""

from canteen.routers import (
    auth,
    canteens,
    feedback,
    health,
    menu,
    orders,
    payment,
    payment_qr,
    users,
)

ALL_ROUTERS = [
    health.router,
    auth.router,
    users.router,
    canteens.router,
    menu.router,
    orders.router,
    payment.router,
    payment_qr.router,
    feedback.router,
]

__all__ = ["ALL_ROUTERS"]
