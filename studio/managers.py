"""
Custom manager and queryset for store documents.

QuerySets define chainable query methods.
No business logic should be here - only query operations.
"""

from django.db import models


class StoreDocumentQuerySet(models.QuerySet):
    """Custom queryset for StoreDocument with chainable methods."""

    def in_collection(self, collection):
        """Get all documents of one collection."""
        return self.filter(collection=collection)

    def by_id(self, collection, doc_id):
        """
        Get the document with the given id in a collection.

        Args:
            collection: collection name
            doc_id: document id
        """
        return self.filter(collection=collection, doc_id=doc_id)

    def matching(self, **fields):
        """
        Get documents whose JSON data has the given top-level values.

        Args:
            fields: mapping of data key to the exact value it must hold
        """
        lookups = {f'data__{field}': value for field, value in fields.items()}
        return self.filter(**lookups)


class StoreDocumentManager(models.Manager):
    """Custom manager for StoreDocument model."""

    def get_queryset(self):
        """Return custom queryset for method chaining."""
        return StoreDocumentQuerySet(self.model, using=self._db)

    def in_collection(self, collection):
        """Get all documents of one collection."""
        return self.get_queryset().in_collection(collection)

    def by_id(self, collection, doc_id):
        """Get the document with the given id in a collection."""
        return self.get_queryset().by_id(collection, doc_id)
