from fastapi import Request
from storefront.notifications.worker import NotificationWorker


def get_notifier(request: Request) -> NotificationWorker:
    return request.app.state.notifier
