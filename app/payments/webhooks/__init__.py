"""
Stripe push path: the endpoint in views.py stores the envelope, and
payments.tasks.process_webhook_event runs the handler registered for its
type in handlers.py.
"""
