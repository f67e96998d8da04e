"""
Payments app for Stripe integration.

This app handles:
- The payment ledger (deposits, balance payments, refunds)
- Checkout session creation
- Reconciliation from webhooks (push) and the success page / status poll (pull)
- Cancellation refunds under a per-order lock
- Webhook event storage and async processing

Related apps:
    - bookings: Order aggregate whose paid and refunded totals this app maintains
    - notifications: operator alerts when a booking is paid

Usage:
    from payments.services import CheckoutService, RefundService

    intent = CheckoutService.create_intent(order.id, amount_cents=5000)
    outcome = RefundService.execute(order.id, decision, reason)
"""
