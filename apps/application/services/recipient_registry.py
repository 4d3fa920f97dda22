import logging
from dataclasses import dataclass
from typing import Dict, Iterable, Optional
from django.db import transaction
from django.utils import timezone
from apps.domain.exceptions import InvalidState, InvalidTransition, NotFound
from apps.domain.models import Recipient, SignatureEvent
from apps.application.facades.signing_collaborators_facade import SigningCollaboratorsFacade

logger = logging.getLogger('apps')


@dataclass
class SignOutcome:
    recipient: Recipient
    already_signed: bool = False


def recipient_payload(recipient: Recipient, **extra) -> Dict:
    payload = {
        'envelope_id': str(recipient.envelope_id),
        'contract_id': str(recipient.envelope.contract_id),
        'recipient_id': str(recipient.id),
        'recipient_name': recipient.name,
        'recipient_email': recipient.email,
        'signing_order': recipient.signing_order,
    }
    payload.update(extra)
    return payload


def can_act(recipient: Recipient, all_recipients: Iterable[Recipient]) -> bool:
    """True iff the recipient is still pending and every lower signing order has signed."""
    if recipient.status not in Recipient.ACTIVE_STATUSES:
        return False
    for other in all_recipients:
        if other.pk == recipient.pk:
            continue
        if other.signing_order < recipient.signing_order and other.status != Recipient.STATUS_SIGNED:
            return False
    return True


class RecipientRegistry:
    def __init__(self, facade: Optional[SigningCollaboratorsFacade] = None):
        self.facade = facade or SigningCollaboratorsFacade()

    def lock(self, recipient_id) -> Recipient:
        try:
            return Recipient.objects.select_for_update().get(pk=recipient_id)
        except Recipient.DoesNotExist:
            raise NotFound()

    def mark_viewed(self, recipient_id) -> Recipient:
        with transaction.atomic():
            recipient = self.lock(recipient_id)
            if recipient.status != Recipient.STATUS_INVITED:
                return recipient

            recipient.status = Recipient.STATUS_VIEWED
            recipient.viewed_at = timezone.now()
            recipient.save(update_fields=['status', 'viewed_at', 'updated_at'])

            SignatureEvent.record(recipient.envelope, SignatureEvent.EVENT_VIEWED, recipient=recipient)
            self.facade.notify('recipient.viewed', recipient_payload(recipient))

        logger.info(f'Recipient {recipient.id} viewed envelope {recipient.envelope_id}')
        return recipient

    def mark_signed(self, recipient_id) -> SignOutcome:
        with transaction.atomic():
            recipient = self.lock(recipient_id)
            if recipient.status == Recipient.STATUS_SIGNED:
                return SignOutcome(recipient, already_signed=True)
            if recipient.status == Recipient.STATUS_DECLINED:
                raise InvalidState()

            recipient.status = Recipient.STATUS_SIGNED
            recipient.signed_at = timezone.now()
            recipient.save(update_fields=['status', 'signed_at', 'updated_at'])

            SignatureEvent.record(recipient.envelope, SignatureEvent.EVENT_SIGNED, recipient=recipient)
            self.facade.notify('recipient.signed', recipient_payload(recipient))

        logger.info(f'Recipient {recipient.id} signed envelope {recipient.envelope_id}')
        return SignOutcome(recipient)

    def mark_declined(self, recipient_id, reason: str = '') -> Recipient:
        with transaction.atomic():
            recipient = self.lock(recipient_id)
            if recipient.status == Recipient.STATUS_DECLINED:
                return recipient
            if recipient.status == Recipient.STATUS_SIGNED:
                raise InvalidTransition('A recipient who has signed cannot decline.')

            recipient.status = Recipient.STATUS_DECLINED
            recipient.declined_at = timezone.now()
            recipient.decline_reason = reason or ''
            recipient.save(update_fields=['status', 'declined_at', 'decline_reason', 'updated_at'])

            SignatureEvent.record(
                recipient.envelope,
                SignatureEvent.EVENT_DECLINED,
                recipient=recipient,
                reason=recipient.decline_reason,
            )
            self.facade.notify('recipient.declined', recipient_payload(recipient, reason=recipient.decline_reason))

        logger.info(f'Recipient {recipient.id} declined envelope {recipient.envelope_id}')
        return recipient
