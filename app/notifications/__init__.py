"""
Notifications app: SMS and email delivery for order updates and operator alerts.

This app provides:
- SMS (Twilio REST API) and email (Django mail) channels
- NotificationDispatcher, which logs every failed send to NotificationFailure
  and escalates it once to the operator on the other channel
- MessageTemplate for operator-editable message bodies
- Celery tasks for order alerts and degraded-channel alerts
- POST /api/v1/notifications/send/ for staff

Usage:
    from notifications.services import NotificationDispatcher

    result = NotificationDispatcher.send("sms", "+13135550100", "See you Saturday!")
    if not result.success:
        ...
"""
