import uuid
from django.db import models
from .envelope import Envelope
from .recipient import Recipient


class SignatureField(models.Model):
    TYPE_SIGNATURE = 'SIGNATURE'
    TYPE_INITIAL = 'INITIAL'
    TYPE_DATE = 'DATE'
    TYPE_TEXT = 'TEXT'
    TYPE_CHECKBOX = 'CHECKBOX'

    TYPE_CHOICES = [
        (TYPE_SIGNATURE, 'Signature'),
        (TYPE_INITIAL, 'Initial'),
        (TYPE_DATE, 'Date'),
        (TYPE_TEXT, 'Text'),
        (TYPE_CHECKBOX, 'Checkbox'),
    ]

    IMAGE_TYPES = (TYPE_SIGNATURE, TYPE_INITIAL)

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    envelope = models.ForeignKey(Envelope, on_delete=models.CASCADE, related_name='fields')
    recipient = models.ForeignKey(Recipient, on_delete=models.CASCADE, related_name='fields')
    field_type = models.CharField(max_length=20, choices=TYPE_CHOICES)
    page = models.PositiveIntegerField()
    coord_x = models.FloatField()
    coord_y = models.FloatField()
    coord_w = models.FloatField()
    coord_h = models.FloatField()
    value = models.TextField(blank=True, null=True)
    filled_at = models.DateTimeField(blank=True, null=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'signature_fields'
        ordering = ['page', 'coord_y', 'coord_x']

    def __str__(self):
        return f"{self.field_type} p.{self.page} for {self.recipient_id}"
