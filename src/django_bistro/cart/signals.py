"""Custom signals for the cart app.

Signals:
    order_submitted: Sent after the backend accepted an order.
        Sender: The ``CheckoutSubmitter`` class.
        Kwargs:
            result: The ``CheckoutResult`` of the submission.
            payment_method: The ``PaymentMethod`` chosen at checkout.
    cash_payment_confirmed: Sent after a cash payment was marked as received.
        Sender: The ``CheckoutSubmitter`` class.
        Kwargs:
            payment: The updated ``PaymentRecord``.
"""

from django.dispatch import Signal

order_submitted = Signal()
cash_payment_confirmed = Signal()
