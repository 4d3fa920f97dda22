from django.contrib import admin
from .models import Envelope, Recipient, SignatureField, SignatureEvent


class RecipientInline(admin.TabularInline):
    model = Recipient
    extra = 0
    fields = ['name', 'email', 'signing_order', 'status', 'signed_at']
    readonly_fields = ['status', 'signed_at']


@admin.register(Envelope)
class EnvelopeAdmin(admin.ModelAdmin):
    list_display = ['title', 'contract_id', 'status', 'artifact_status', 'created_by', 'created_at']
    list_filter = ['status', 'artifact_status', 'created_at']
    search_fields = ['title', 'contract_id']
    readonly_fields = [
        'status', 'artifact_status', 'artifact_attempted_at', 'completed_file_version_id',
        'sent_at', 'completed_at', 'cancelled_at', 'created_at', 'updated_at',
    ]
    inlines = [RecipientInline]
    fieldsets = (
        ('Envelope', {
            'fields': ('title', 'contract_id', 'created_by', 'source_file_version_id')
        }),
        ('Status', {
            'fields': ('status', 'artifact_status', 'artifact_attempted_at', 'completed_file_version_id')
        }),
        ('Dates', {
            'fields': ('sent_at', 'completed_at', 'cancelled_at', 'created_at', 'updated_at'),
            'classes': ('collapse',)
        }),
    )


@admin.register(Recipient)
class RecipientAdmin(admin.ModelAdmin):
    list_display = ['name', 'email', 'envelope', 'signing_order', 'status', 'created_at']
    list_filter = ['status', 'created_at']
    search_fields = ['name', 'email']
    readonly_fields = ['token', 'status', 'viewed_at', 'signed_at', 'declined_at', 'created_at', 'updated_at']


@admin.register(SignatureField)
class SignatureFieldAdmin(admin.ModelAdmin):
    list_display = ['field_type', 'envelope', 'recipient', 'page', 'filled_at']
    list_filter = ['field_type']
    readonly_fields = ['value', 'filled_at', 'created_at']


@admin.register(SignatureEvent)
class SignatureEventAdmin(admin.ModelAdmin):
    list_display = ['event_type', 'envelope', 'recipient', 'created_at']
    list_filter = ['event_type', 'created_at']
    readonly_fields = ['envelope', 'recipient', 'event_type', 'payload', 'created_at']
