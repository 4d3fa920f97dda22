from django.core.serializers.json import DjangoJSONEncoder
from django.db import models
from .envelope import Envelope
from .recipient import Recipient


class SignatureEvent(models.Model):
    EVENT_SENT = 'SENT'
    EVENT_VIEWED = 'VIEWED'
    EVENT_SIGNED = 'SIGNED'
    EVENT_DECLINED = 'DECLINED'
    EVENT_COMPLETED = 'COMPLETED'
    EVENT_CANCELLED = 'CANCELLED'
    EVENT_ARTIFACT_PUBLISHED = 'ARTIFACT_PUBLISHED'
    EVENT_ARTIFACT_FAILED = 'ARTIFACT_FAILED'

    EVENT_CHOICES = [
        (EVENT_SENT, 'Sent'),
        (EVENT_VIEWED, 'Viewed'),
        (EVENT_SIGNED, 'Signed'),
        (EVENT_DECLINED, 'Declined'),
        (EVENT_COMPLETED, 'Completed'),
        (EVENT_CANCELLED, 'Cancelled'),
        (EVENT_ARTIFACT_PUBLISHED, 'Artifact published'),
        (EVENT_ARTIFACT_FAILED, 'Artifact failed'),
    ]

    envelope = models.ForeignKey(Envelope, on_delete=models.CASCADE, related_name='events')
    recipient = models.ForeignKey(Recipient, on_delete=models.SET_NULL, null=True, blank=True, related_name='events')
    event_type = models.CharField(max_length=30, choices=EVENT_CHOICES)
    payload = models.JSONField(default=dict, blank=True, encoder=DjangoJSONEncoder)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'signature_events'
        ordering = ['created_at', 'id']

    def __str__(self):
        return f"{self.event_type} on {self.envelope_id}"

    @classmethod
    def record(cls, envelope, event_type, recipient=None, **payload):
        return cls.objects.create(
            envelope=envelope,
            recipient=recipient,
            event_type=event_type,
            payload=payload,
        )
