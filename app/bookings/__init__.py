"""
Bookings - the rental order aggregate and its cancellation use case.

Key components:
    - models.py: Order (status FSM, monetary fields, cancellation metadata)
    - services.py: CancellationService
    - views.py: POST cancel-order endpoint
"""
