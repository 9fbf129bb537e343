"""
Models for the studio document store.

Every collection (courses, schedules, bookings, users, cart) lives in one
table of schemaless JSON documents keyed by (collection, doc_id). Typed
records for each collection are defined in ``documents.py``.
"""

from django.core.serializers.json import DjangoJSONEncoder
from django.db import models

from .managers import StoreDocumentManager


class StoreDocument(models.Model):
    """
    A single schemaless document in a named collection.

    The primary key is an internal detail; documents are addressed by
    ``doc_id`` inside their collection.
    """

    COLLECTION_CHOICES = [
        ('courses', 'Courses'),
        ('schedules', 'Schedules'),
        ('bookings', 'Bookings'),
        ('users', 'Users'),
        ('cart', 'Cart'),
    ]

    collection = models.CharField(max_length=50, choices=COLLECTION_CHOICES)
    doc_id = models.CharField(max_length=64)
    data = models.JSONField(default=dict, encoder=DjangoJSONEncoder)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = StoreDocumentManager()

    class Meta:
        ordering = ['collection', 'created_at']
        constraints = [
            models.UniqueConstraint(
                fields=['collection', 'doc_id'],
                name='unique_document_per_collection',
            ),
        ]
        indexes = [
            models.Index(fields=['collection', 'created_at'], name='studio_doc_collection_idx'),
        ]

    def __str__(self):
        return f"{self.collection}/{self.doc_id}"
