"""Turns a recipient's raw submission into committed state.

Two adapters resolve the acting recipient: a public token link and an
authenticated session scoped to a contract. Both feed the same processor.
"""
import logging
from dataclasses import dataclass
from typing import Dict, List, Optional
from django.db import transaction
from django.utils import timezone
from apps.domain.exceptions import (
    EnvelopeClosed,
    InvalidState,
    NotFound,
    NotYourTurn,
    ValidationFailed,
)
from apps.domain.models import Envelope, Recipient, SignatureField
from apps.application.facades.signing_collaborators_facade import SigningCollaboratorsFacade
from apps.application.services import field_placement
from apps.application.services.envelope_state_machine import EnvelopeStateMachine
from apps.application.services.recipient_registry import RecipientRegistry, can_act

logger = logging.getLogger('apps')


@dataclass
class SubmissionResult:
    signed: bool
    completed: bool
    already_signed: bool = False

    def to_dict(self) -> Dict:
        data = {'signed': self.signed, 'completed': self.completed}
        if self.already_signed:
            data['already_signed'] = True
        return data


class TokenRecipientResolver:
    """Resolves the bearer of a public signing link."""

    def resolve(self, token: str) -> Recipient:
        if not token:
            raise NotFound()
        recipient = Recipient.objects.select_related('envelope').filter(token=token).first()
        # links of unsent envelopes do not exist yet as far as signers can tell
        if recipient is None or recipient.envelope.status == Envelope.STATUS_DRAFT:
            raise NotFound()
        return recipient


class SessionRecipientResolver:
    """Resolves the signed-in user to their recipient on a contract's latest envelope."""

    def __init__(self, user):
        self.user = user

    def resolve(self, contract_id) -> Recipient:
        email = getattr(self.user, 'email', '') or ''
        if not getattr(self.user, 'is_authenticated', False) or not email:
            raise NotFound()

        envelope = (
            Envelope.objects
            .filter(contract_id=contract_id)
            .exclude(status=Envelope.STATUS_DRAFT)
            .order_by('-created_at')
            .first()
        )
        if envelope is None:
            raise NotFound()

        recipient = envelope.recipients.filter(email__iexact=email).order_by('signing_order', 'created_at').first()
        if recipient is None:
            raise NotFound()
        return recipient


class SubmissionProcessor:
    def __init__(
        self,
        facade: Optional[SigningCollaboratorsFacade] = None,
        registry: Optional[RecipientRegistry] = None,
        state_machine: Optional[EnvelopeStateMachine] = None,
    ):
        self.facade = facade or SigningCollaboratorsFacade()
        self.registry = registry or RecipientRegistry(facade=self.facade)
        self.state_machine = state_machine or EnvelopeStateMachine(facade=self.facade)

    def get_signing_context(self, recipient: Recipient) -> Dict:
        envelope = Envelope.objects.get(pk=recipient.envelope_id)
        if envelope.status == Envelope.STATUS_CANCELLED:
            raise EnvelopeClosed()

        recipient = Recipient.objects.get(pk=recipient.pk)
        all_recipients = list(envelope.recipients.all())
        return {
            'envelope': envelope,
            'recipient': recipient,
            'fields': list(recipient.fields.all()),
            'pdf_download_url': self._pdf_download_url(envelope),
            'can_act': envelope.status == Envelope.STATUS_SENT and can_act(recipient, all_recipients),
        }

    def _pdf_download_url(self, envelope: Envelope) -> Optional[str]:
        file_version_id = envelope.source_file_version_id
        if envelope.artifact_status == Envelope.ARTIFACT_PUBLISHED and envelope.completed_file_version_id:
            file_version_id = envelope.completed_file_version_id
        try:
            return self.facade.get_download_url(file_version_id)
        except Exception as e:
            logger.warning(f'Download url unavailable for envelope {envelope.id}: {str(e)}')
            return None

    def mark_viewed(self, recipient: Recipient) -> Recipient:
        with transaction.atomic():
            # recipient row before envelope row, same order as submit
            locked = self.registry.lock(recipient.pk)
            envelope = Envelope.objects.select_for_update().get(pk=locked.envelope_id)
            if envelope.status == Envelope.STATUS_CANCELLED:
                raise EnvelopeClosed()
            if envelope.status != Envelope.STATUS_SENT:
                return locked
            return self.registry.mark_viewed(recipient.pk)

    def decline(self, recipient: Recipient, reason: str = '') -> Recipient:
        with transaction.atomic():
            # recipient row before envelope row, same order as submit
            self.registry.lock(recipient.pk)
            envelope = Envelope.objects.select_for_update().get(pk=recipient.envelope_id)
            if envelope.status != Envelope.STATUS_SENT:
                raise EnvelopeClosed()
            declined = self.registry.mark_declined(recipient.pk, reason)
            self.state_machine.reevaluate(envelope)
        return declined

    def submit(self, token: str, submission: field_placement.Submission) -> SubmissionResult:
        recipient = TokenRecipientResolver().resolve(token)
        return self.submit_for(recipient, submission)

    def submit_for(self, recipient: Recipient, submission: field_placement.Submission) -> SubmissionResult:
        with transaction.atomic():
            recipient = self.registry.lock(recipient.pk)
            envelope = Envelope.objects.get(pk=recipient.envelope_id)

            if envelope.status == Envelope.STATUS_CANCELLED:
                raise EnvelopeClosed()
            if recipient.status == Recipient.STATUS_SIGNED:
                logger.info(f'Recipient {recipient.id} already signed, ignoring resubmission')
                return SubmissionResult(signed=True, completed=False, already_signed=True)
            if envelope.status != Envelope.STATUS_SENT:
                raise EnvelopeClosed()
            if recipient.status == Recipient.STATUS_DECLINED:
                raise InvalidState()
            if not can_act(recipient, envelope.recipients.all()):
                raise NotYourTurn()

            fields = list(recipient.fields.all())
            values = self._with_captured_signature(fields, submission)
            result = field_placement.validate(fields, field_placement.Submission(values, submission.signature_image))
            if not result.valid:
                logger.info(f'Submission rejected for recipient {recipient.id}: {result.invalid_field_ids}')
                raise ValidationFailed(result.field_errors)

            self._commit_values(fields, values)
            self.registry.mark_signed(recipient.pk)

            # a cancellation that committed meanwhile wins; this rolls everything back
            envelope = Envelope.objects.select_for_update().get(pk=envelope.pk)
            if envelope.status != Envelope.STATUS_SENT:
                raise EnvelopeClosed()
            completed = self.state_machine.reevaluate(envelope)

        return SubmissionResult(signed=True, completed=completed)

    def _with_captured_signature(self, fields: List[SignatureField], submission: field_placement.Submission) -> Dict[str, str]:
        values = field_placement.normalize_field_values(submission.field_values)
        if not field_placement.has_value(submission.signature_image):
            return values
        for f in fields:
            field_id = str(f.id)
            if f.field_type in SignatureField.IMAGE_TYPES and not field_placement.has_value(values.get(field_id)):
                values[field_id] = submission.signature_image
        return values

    def _commit_values(self, fields: List[SignatureField], values: Dict[str, str]) -> None:
        now = timezone.now()
        for f in fields:
            value = values.get(str(f.id))
            if f.field_type == SignatureField.TYPE_CHECKBOX and value is None:
                value = 'false'
            f.value = value
            f.filled_at = now
        SignatureField.objects.bulk_update(fields, ['value', 'filled_at'])
