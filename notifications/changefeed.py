"""Table-keyed change feed.

Subscribers register with ``on_change(table, callback)`` and receive
``ChangeEvent`` objects after the writing transaction commits. The feed is a
read-model convenience: nothing in the booking or payment flow depends on a
subscriber being attached, and a failing subscriber only gets logged.
"""

from collections import defaultdict
from dataclasses import dataclass
from typing import Any, Callable, Dict, List

from django.apps import apps
from django.db import transaction
from django.db.models.signals import post_delete, post_save
from loguru import logger

INSERT = 'INSERT'
UPDATE = 'UPDATE'
DELETE = 'DELETE'

WATCHED_MODELS = (
    'movies.Movie',
    'movies.Screen',
    'movies.Showtime',
    'booking.Booking',
    'payments.Payment',
    'payments.RefundStatusChange',
    'users.UserRole',
)


@dataclass(frozen=True)
class ChangeEvent:
    table: str
    event: str
    pk: Any
    instance: Any


_subscribers: Dict[str, List[Callable[[ChangeEvent], None]]] = defaultdict(list)


def on_change(table, callback):
    """Subscribe to changes of ``table``; returns a function that unsubscribes."""
    _subscribers[table].append(callback)

    def unsubscribe():
        if callback in _subscribers[table]:
            _subscribers[table].remove(callback)

    return unsubscribe


def publish(change):
    for callback in list(_subscribers.get(change.table, ())):
        try:
            callback(change)
        except Exception as e:
            logger.error(f"Change feed subscriber {callback!r} failed on {change.table}: {e}")


def _on_save(sender, instance, created, **kwargs):
    change = ChangeEvent(sender._meta.db_table, INSERT if created else UPDATE, instance.pk, instance)
    transaction.on_commit(lambda: publish(change))


def _on_delete(sender, instance, **kwargs):
    change = ChangeEvent(sender._meta.db_table, DELETE, instance.pk, instance)
    transaction.on_commit(lambda: publish(change))


def connect_signals():
    for label in WATCHED_MODELS:
        model = apps.get_model(label)
        post_save.connect(_on_save, sender=model, dispatch_uid=f'changefeed-save-{label}')
        post_delete.connect(_on_delete, sender=model, dispatch_uid=f'changefeed-delete-{label}')
