import secrets
import uuid
from django.conf import settings
from django.db import models
from .envelope import Envelope


def generate_recipient_token() -> str:
    return secrets.token_urlsafe(32)


class Recipient(models.Model):
    STATUS_INVITED = 'INVITED'
    STATUS_VIEWED = 'VIEWED'
    STATUS_SIGNED = 'SIGNED'
    STATUS_DECLINED = 'DECLINED'

    STATUS_CHOICES = [
        (STATUS_INVITED, 'Invited'),
        (STATUS_VIEWED, 'Viewed'),
        (STATUS_SIGNED, 'Signed'),
        (STATUS_DECLINED, 'Declined'),
    ]

    ACTIVE_STATUSES = (STATUS_INVITED, STATUS_VIEWED)
    TERMINAL_STATUSES = (STATUS_SIGNED, STATUS_DECLINED)

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    envelope = models.ForeignKey(Envelope, on_delete=models.CASCADE, related_name='recipients')
    name = models.CharField(max_length=120)
    email = models.EmailField(max_length=320)
    token = models.CharField(max_length=120, unique=True, default=generate_recipient_token, editable=False)
    signing_order = models.PositiveIntegerField(default=1)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_INVITED)
    viewed_at = models.DateTimeField(blank=True, null=True)
    signed_at = models.DateTimeField(blank=True, null=True)
    declined_at = models.DateTimeField(blank=True, null=True)
    decline_reason = models.TextField(blank=True, default='')
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'signature_recipients'
        ordering = ['signing_order', 'created_at']

    def __str__(self):
        return f"{self.name} ({self.email}) - {self.status}"

    @property
    def sign_url(self) -> str:
        base_url = settings.SIGNING_PUBLIC_BASE_URL.rstrip('/')
        return f'{base_url}/{self.token}'
