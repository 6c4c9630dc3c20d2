from models.order import OrderStatus

# =========================================================
# ORDER LIFECYCLE
# =========================================================
# PENDING -> ACCEPTED -> IN_PROGRESS -> COMPLETED
# any non-terminal state -> CANCELLED

ALLOWED_TRANSITIONS = {
    OrderStatus.PENDING: {OrderStatus.ACCEPTED, OrderStatus.CANCELLED},
    OrderStatus.ACCEPTED: {
        OrderStatus.IN_PROGRESS,
        OrderStatus.COMPLETED,
        OrderStatus.CANCELLED,
    },
    OrderStatus.IN_PROGRESS: {OrderStatus.COMPLETED, OrderStatus.CANCELLED},
    OrderStatus.COMPLETED: set(),
    OrderStatus.CANCELLED: set(),
}

TERMINAL_STATUSES = {OrderStatus.COMPLETED, OrderStatus.CANCELLED}

# statuses a seller may set through the order update endpoint
SELLER_SETTABLE_STATUSES = {OrderStatus.IN_PROGRESS, OrderStatus.COMPLETED}


class InvalidTransition(Exception):
    def __init__(self, current: OrderStatus, target: OrderStatus):
        self.current = current
        self.target = target
        super().__init__(f"Cannot move order from {current.value} to {target.value}")


def coerce_status(value) -> OrderStatus:
    return value if isinstance(value, OrderStatus) else OrderStatus(value)


def is_terminal(status) -> bool:
    return coerce_status(status) in TERMINAL_STATUSES


def can_transition(current, target) -> bool:
    return coerce_status(target) in ALLOWED_TRANSITIONS[coerce_status(current)]


def assert_transition(current, target) -> None:
    current, target = coerce_status(current), coerce_status(target)
    if target not in ALLOWED_TRANSITIONS[current]:
        raise InvalidTransition(current, target)
