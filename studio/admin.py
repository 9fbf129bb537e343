"""
Admin configuration for the studio app.
"""

from django.contrib import admin
from .models import StoreDocument


@admin.register(StoreDocument)
class StoreDocumentAdmin(admin.ModelAdmin):
    """Admin interface for raw store documents."""

    list_display = ['doc_id', 'collection', 'created_at', 'updated_at']
    list_filter = ['collection', 'created_at']
    search_fields = ['doc_id']
    date_hierarchy = 'created_at'

    fieldsets = (
        ('Document', {
            'fields': ('collection', 'doc_id', 'data')
        }),
        ('Metadata', {
            'fields': ('created_at', 'updated_at'),
            'classes': ('collapse',)
        }),
    )

    readonly_fields = ['created_at', 'updated_at']
