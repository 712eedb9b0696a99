"""Notification rendering and fan-out."""

from pybustrack.notify.catalog import NotificationMessage, render
from pybustrack.notify.dispatcher import NotificationDispatcher

__all__ = ["NotificationDispatcher", "NotificationMessage", "render"]
