"""
Step capabilities - the side effects behind each workflow state.

The engine never talks to a payment provider or a mail server. It calls
``StepCapabilities.invoke(step_kind, step_input)`` and gets the step's
output mapping back. Swapping the capabilities object swaps every side
effect, which is how tests and the CLI run the workflow locally.

Example::

    capabilities = OrderStepCapabilities(notifier=LoggingNotificationChannel())
    output = capabilities.invoke(StepKind.SHIP_ORDER, {"orderId": "o-1"})
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from datetime import UTC, datetime
from typing import Any, Protocol, runtime_checkable

from orderstream.core.errors import PermanentError
from orderstream.core.hashing import compute_hash
from orderstream.core.logging import get_logger
from orderstream.notifications.channels import NotificationChannel
from orderstream.orchestration.order_workflow import StepKind, payment_status

logger = get_logger(__name__)


@runtime_checkable
class StepCapabilities(Protocol):
    def invoke(self, step_kind: StepKind, step_input: Mapping[str, Any]) -> Mapping[str, Any]:
        """Run one step and return its output."""
        ...


@runtime_checkable
class PaymentGateway(Protocol):
    def charge(self, order: Mapping[str, Any]) -> Mapping[str, Any]:
        """Charge the order. May return ``paymentStatus``."""
        ...


class RecordedPaymentGateway:
    """Accepts the payment outcome already recorded on the order.

    Returns a payment reference but no ``paymentStatus``, so the workflow
    branches on the order's own field.
    """

    def charge(self, order: Mapping[str, Any]) -> Mapping[str, Any]:
        return {"paymentReference": f"PAY-{compute_hash(order_id(order), length=12).upper()}"}


# subject, body
TEMPLATES: dict[StepKind, tuple[str, str]] = {
    StepKind.NOTIFY_SUCCESS: (
        "Order {order_id} confirmed",
        "Payment for order {order_id} was received. We are preparing your shipment.",
    ),
    StepKind.NOTIFY_FAILURE: (
        "Payment failed for order {order_id}",
        "We could not process payment for order {order_id} (status: {status}).",
    ),
    StepKind.NOTIFY_SHIPMENT: (
        "Order {order_id} shipped",
        "Order {order_id} is on its way. Tracking number: {tracking}.",
    ),
}


def order_id(step_input: Mapping[str, Any]) -> str:
    value = step_input.get("orderId")
    if value is None or value == "":
        raise PermanentError("Step input has no orderId")
    return str(value)


def customer_contact(step_input: Mapping[str, Any]) -> str | None:
    """Customer email address: ``customerEmail``, falling back to ``email``."""
    for field_name in ("customerEmail", "email"):
        value = step_input.get(field_name)
        if value:
            return str(value)
    return None


class OrderStepCapabilities:
    """Default step implementations for the order workflow.

    Args:
        notifier: Channel for customer notifications
        payment_gateway: Payment provider adapter
        clock: UTC clock for step timestamps
    """

    def __init__(
        self,
        notifier: NotificationChannel,
        payment_gateway: PaymentGateway | None = None,
        clock: Callable[[], datetime] = lambda: datetime.now(UTC),
    ) -> None:
        self._notifier = notifier
        self._payments = payment_gateway or RecordedPaymentGateway()
        self._clock = clock
        self._handlers: dict[StepKind, Callable[[Mapping[str, Any]], Mapping[str, Any]]] = {
            StepKind.PROCESS_ORDER: self._process_order,
            StepKind.PROCESS_PAYMENT: self._process_payment,
            StepKind.SHIP_ORDER: self._ship_order,
            StepKind.NOTIFY_SUCCESS: lambda i: self._notify(StepKind.NOTIFY_SUCCESS, i),
            StepKind.NOTIFY_FAILURE: lambda i: self._notify(StepKind.NOTIFY_FAILURE, i),
            StepKind.NOTIFY_SHIPMENT: lambda i: self._notify(StepKind.NOTIFY_SHIPMENT, i),
        }

    def invoke(self, step_kind: StepKind, step_input: Mapping[str, Any]) -> Mapping[str, Any]:
        return self._handlers[step_kind](step_input)

    def _process_order(self, step_input: Mapping[str, Any]) -> Mapping[str, Any]:
        return {
            "orderId": order_id(step_input),
            "orderStatus": "PROCESSED",
            "processedAt": self._clock().isoformat(),
        }

    def _process_payment(self, step_input: Mapping[str, Any]) -> Mapping[str, Any]:
        order_id(step_input)
        return dict(self._payments.charge(step_input))

    def _ship_order(self, step_input: Mapping[str, Any]) -> Mapping[str, Any]:
        oid = order_id(step_input)
        return {
            "shipmentStatus": "SHIPPED",
            "trackingNumber": f"TRK-{compute_hash(oid, 'shipment', length=12).upper()}",
            "shippedAt": self._clock().isoformat(),
        }

    def _notify(self, kind: StepKind, step_input: Mapping[str, Any]) -> Mapping[str, Any]:
        oid = order_id(step_input)
        to = customer_contact(step_input)
        if to is None:
            raise PermanentError(f"Order {oid} has no customer contact")

        subject, body = TEMPLATES[kind]
        values = {
            "order_id": oid,
            "status": payment_status({}, step_input),
            "tracking": step_input.get("trackingNumber", "n/a"),
        }
        message_id = self._notifier.send(to, subject.format(**values), body.format(**values))
        logger.debug("steps.notified", kind=kind.value, order_id=oid)
        return {"notified": kind.value, "messageId": message_id}


__all__ = [
    "StepCapabilities",
    "PaymentGateway",
    "RecordedPaymentGateway",
    "OrderStepCapabilities",
    "TEMPLATES",
    "customer_contact",
    "order_id",
]
