import logging
from datetime import timedelta
from typing import Iterable, Optional
from django.conf import settings
from django.contrib.auth.models import User
from django.db import transaction
from django.db.models import Q
from django.utils import timezone
from apps.domain.exceptions import EnvelopeClosed, InvalidTransition, NotFound, ValidationFailed
from apps.domain.models import Envelope, Recipient, SignatureEvent, SignatureField
from apps.application.facades.signing_collaborators_facade import SigningCollaboratorsFacade
from apps.application.services.field_placement import validate_geometry
from apps.application.services.finalizer import ArtifactFinalizer
from apps.infrastructure.services.background import run_in_background

logger = logging.getLogger('apps')


def envelope_payload(envelope: Envelope, **extra):
    payload = {
        'envelope_id': str(envelope.id),
        'contract_id': str(envelope.contract_id),
        'title': envelope.title,
        'status': envelope.status,
    }
    payload.update(extra)
    return payload


def all_signed(recipients: Iterable[Recipient]) -> bool:
    recipients = list(recipients)
    return bool(recipients) and all(r.status == Recipient.STATUS_SIGNED for r in recipients)


def retryable_finalization(now=None, stale_after: Optional[timedelta] = None) -> Q:
    """Completed envelopes whose artifact FAILED, or stayed PENDING past the stale threshold.

    A PENDING artifact older than the threshold belongs to a finalizer run
    that died before recording an outcome.
    """
    if stale_after is None:
        stale_after = timedelta(minutes=settings.FINALIZER_STALE_AFTER_MINUTES)
    cutoff = (now or timezone.now()) - stale_after
    stale_pending = Q(artifact_status=Envelope.ARTIFACT_PENDING) & (
        Q(artifact_attempted_at__lt=cutoff)
        | Q(artifact_attempted_at__isnull=True, completed_at__lt=cutoff)
    )
    return Q(status=Envelope.STATUS_COMPLETED) & (Q(artifact_status=Envelope.ARTIFACT_FAILED) | stale_pending)


class EnvelopeStateMachine:
    def __init__(
        self,
        facade: Optional[SigningCollaboratorsFacade] = None,
        finalizer: Optional[ArtifactFinalizer] = None,
    ):
        self.facade = facade or SigningCollaboratorsFacade()
        self.finalizer = finalizer or ArtifactFinalizer(facade=self.facade)

    def _lock(self, envelope: Envelope) -> Envelope:
        # status is always read fresh under the row lock
        try:
            return Envelope.objects.select_for_update().get(pk=envelope.pk)
        except Envelope.DoesNotExist:
            raise NotFound()

    def _require_draft(self, envelope: Envelope) -> None:
        if envelope.is_closed:
            raise EnvelopeClosed()
        if envelope.status != Envelope.STATUS_DRAFT:
            raise InvalidTransition('Envelope can only be changed while it is a draft.')

    def create_envelope(self, contract_id, title: str, source_file_version_id: str, created_by: User) -> Envelope:
        envelope = Envelope.objects.create(
            contract_id=contract_id,
            title=title,
            source_file_version_id=source_file_version_id,
            created_by=created_by,
        )
        logger.info(f'Envelope {envelope.id} created for contract {contract_id}')
        return envelope

    def add_recipient(self, envelope: Envelope, name: str, email: str, signing_order: int = 1) -> Recipient:
        with transaction.atomic():
            locked = self._lock(envelope)
            self._require_draft(locked)
            if signing_order is None or signing_order < 1:
                raise ValidationFailed({'signing_order': 'Signing order must be 1 or greater.'})
            recipient = Recipient.objects.create(
                envelope=locked,
                name=name,
                email=email,
                signing_order=signing_order,
            )
        logger.info(f'Recipient {recipient.id} added to envelope {envelope.id}')
        return recipient

    def add_field(
        self,
        envelope: Envelope,
        recipient_id,
        field_type: str,
        page: int,
        coord_x: float,
        coord_y: float,
        coord_w: float,
        coord_h: float,
    ) -> SignatureField:
        with transaction.atomic():
            locked = self._lock(envelope)
            self._require_draft(locked)

            errors = validate_geometry(page, coord_x, coord_y, coord_w, coord_h)
            if field_type not in dict(SignatureField.TYPE_CHOICES):
                errors['field_type'] = 'Unknown field type.'
            recipient = Recipient.objects.filter(pk=recipient_id, envelope=locked).first()
            if recipient is None:
                errors['recipient_id'] = 'Recipient does not belong to this envelope.'
            if errors:
                raise ValidationFailed(errors)

            field = SignatureField.objects.create(
                envelope=locked,
                recipient=recipient,
                field_type=field_type,
                page=page,
                coord_x=coord_x,
                coord_y=coord_y,
                coord_w=coord_w,
                coord_h=coord_h,
            )
        return field

    def send(self, envelope: Envelope) -> Envelope:
        with transaction.atomic():
            locked = self._lock(envelope)
            self._require_draft(locked)
            if not locked.recipients.exists():
                raise InvalidTransition('Add at least one recipient before sending.')
            if not locked.fields.exists():
                raise InvalidTransition('Add at least one field before sending.')

            locked.status = Envelope.STATUS_SENT
            locked.sent_at = timezone.now()
            locked.save(update_fields=['status', 'sent_at', 'updated_at'])

            recipients = list(locked.recipients.all())
            SignatureEvent.record(locked, SignatureEvent.EVENT_SENT, recipient_count=len(recipients))
            self.facade.notify('envelope.sent', envelope_payload(locked, recipients=[
                {
                    'recipient_id': str(r.id),
                    'name': r.name,
                    'email': r.email,
                    'signing_order': r.signing_order,
                }
                for r in recipients
            ]))

        logger.info(f'Envelope {locked.id} sent to {len(recipients)} recipient(s)')
        return locked

    def cancel(self, envelope: Envelope) -> Envelope:
        now = timezone.now()
        with transaction.atomic():
            updated = Envelope.objects.filter(
                pk=envelope.pk,
                status__in=[Envelope.STATUS_DRAFT, Envelope.STATUS_SENT],
            ).update(status=Envelope.STATUS_CANCELLED, cancelled_at=now, updated_at=now)
            if updated != 1:
                if not Envelope.objects.filter(pk=envelope.pk).exists():
                    raise NotFound()
                raise EnvelopeClosed()

            cancelled = Envelope.objects.get(pk=envelope.pk)
            SignatureEvent.record(cancelled, SignatureEvent.EVENT_CANCELLED)
            self.facade.notify('envelope.cancelled', envelope_payload(cancelled))

        logger.info(f'Envelope {cancelled.id} cancelled')
        return cancelled

    def reevaluate(self, envelope: Envelope, recipients: Optional[Iterable[Recipient]] = None) -> bool:
        """Moves a SENT envelope to COMPLETED once every recipient has signed.

        Safe to call any number of times. Returns True only for the caller
        whose compare-and-set performed the transition; that caller also
        schedules finalization once the transaction commits.
        """
        with transaction.atomic():
            locked = self._lock(envelope)
            if locked.status != Envelope.STATUS_SENT:
                return False

            if recipients is None:
                recipients = locked.recipients.all()
            if not all_signed(recipients):
                return False

            now = timezone.now()
            updated = Envelope.objects.filter(pk=locked.pk, status=Envelope.STATUS_SENT).update(
                status=Envelope.STATUS_COMPLETED,
                completed_at=now,
                artifact_status=Envelope.ARTIFACT_PENDING,
                artifact_attempted_at=now,
                updated_at=now,
            )
            if updated != 1:
                return False

            envelope.status = Envelope.STATUS_COMPLETED
            envelope.completed_at = now
            envelope.artifact_status = Envelope.ARTIFACT_PENDING
            SignatureEvent.record(locked, SignatureEvent.EVENT_COMPLETED)
            self._schedule_finalization(locked.pk)

        logger.info(f'Envelope {envelope.id} completed')
        return True

    def retry_finalization(self, envelope: Envelope, stale_after: Optional[timedelta] = None) -> bool:
        now = timezone.now()
        # the fresh attempt stamp keeps a concurrent retry from dispatching a second run
        updated = Envelope.objects.filter(
            retryable_finalization(now, stale_after),
            pk=envelope.pk,
        ).update(artifact_status=Envelope.ARTIFACT_PENDING, artifact_attempted_at=now)
        if updated != 1:
            return False

        envelope.artifact_status = Envelope.ARTIFACT_PENDING
        envelope.artifact_attempted_at = now
        logger.info(f'Retrying finalization for envelope {envelope.id}')
        self._schedule_finalization(envelope.pk)
        return True

    def _schedule_finalization(self, envelope_id) -> None:
        transaction.on_commit(
            lambda: run_in_background(self.finalizer.finalize, envelope_id, name=f'finalize-{envelope_id}')
        )
