from typing import Dict, FrozenSet, Mapping, Optional

from storefront.storage.errors import InvalidStatusTransition

PENDING = "pending"
PROCESSING = "processing"
SHIPPED = "shipped"
COMPLETED = "completed"
CANCELLED = "cancelled"

DEFAULT_TRANSITIONS: Dict[str, FrozenSet[str]] = {
    PENDING: frozenset({PROCESSING, CANCELLED}),
    PROCESSING: frozenset({SHIPPED, CANCELLED}),
    SHIPPED: frozenset({COMPLETED}),
    COMPLETED: frozenset(),
    CANCELLED: frozenset(),
}


class OrderStatusPolicy:
    """
    Order status state machine.

    With ``enforce=False`` any status string is accepted, which is how the
    storefront behaved before transitions were checked.
    """

    def __init__(self, transitions: Optional[Mapping[str, FrozenSet[str]]] = None, enforce: bool = True):
        self.transitions = dict(transitions or DEFAULT_TRANSITIONS)
        self.enforce = enforce

    @property
    def statuses(self):
        return set(self.transitions)

    def check(self, current: str, requested: str):
        if not self.enforce or current == requested:
            return
        if requested not in self.transitions or requested not in self.transitions.get(current, ()):
            raise InvalidStatusTransition(current, requested)

    def check_initial(self, status: str):
        if self.enforce and status not in self.transitions:
            raise InvalidStatusTransition("<new>", status)
