from .envelope import Envelope
from .recipient import Recipient
from .signature_field import SignatureField
from .signature_event import SignatureEvent

__all__ = [
    'Envelope',
    'Recipient',
    'SignatureField',
    'SignatureEvent',
]
