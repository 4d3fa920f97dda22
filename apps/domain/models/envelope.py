import uuid
from django.db import models
from django.contrib.auth.models import User


class Envelope(models.Model):
    STATUS_DRAFT = 'DRAFT'
    STATUS_SENT = 'SENT'
    STATUS_COMPLETED = 'COMPLETED'
    STATUS_CANCELLED = 'CANCELLED'

    STATUS_CHOICES = [
        (STATUS_DRAFT, 'Draft'),
        (STATUS_SENT, 'Sent'),
        (STATUS_COMPLETED, 'Completed'),
        (STATUS_CANCELLED, 'Cancelled'),
    ]

    TERMINAL_STATUSES = (STATUS_COMPLETED, STATUS_CANCELLED)

    ARTIFACT_PENDING = 'PENDING'
    ARTIFACT_PUBLISHED = 'PUBLISHED'
    ARTIFACT_FAILED = 'FAILED'

    ARTIFACT_STATUS_CHOICES = [
        (ARTIFACT_PENDING, 'Pending'),
        (ARTIFACT_PUBLISHED, 'Published'),
        (ARTIFACT_FAILED, 'Failed'),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    contract_id = models.UUIDField(db_index=True)
    title = models.CharField(max_length=300)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_DRAFT)
    source_file_version_id = models.CharField(max_length=255)
    completed_file_version_id = models.CharField(max_length=255, blank=True, null=True)
    artifact_status = models.CharField(max_length=20, choices=ARTIFACT_STATUS_CHOICES, blank=True, null=True)
    artifact_attempted_at = models.DateTimeField(blank=True, null=True)
    created_by = models.ForeignKey(User, on_delete=models.PROTECT, related_name='envelopes')
    sent_at = models.DateTimeField(blank=True, null=True)
    completed_at = models.DateTimeField(blank=True, null=True)
    cancelled_at = models.DateTimeField(blank=True, null=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'signature_envelopes'
        ordering = ['-created_at']

    def __str__(self):
        return f"{self.title} ({self.status})"

    @property
    def is_closed(self) -> bool:
        return self.status in self.TERMINAL_STATUSES
