import logging
from typing import List, Optional
from apps.domain.models import Envelope, SignatureEvent, SignatureField
from apps.application.facades.signing_collaborators_facade import SigningCollaboratorsFacade, retry_operation
from apps.infrastructure.services.pdf_flattener import FieldOverlay, PdfFlattener, PdfFlattenError

logger = logging.getLogger('apps')


class ArtifactFinalizer:
    """Flattens committed field values into the source PDF and publishes the result.

    Runs after an envelope has been marked COMPLETED. Failures are recorded on
    the envelope's artifact status; the envelope status itself never changes here.
    """

    def __init__(
        self,
        facade: Optional[SigningCollaboratorsFacade] = None,
        flattener: Optional[PdfFlattener] = None,
    ):
        self.facade = facade or SigningCollaboratorsFacade()
        self.flattener = flattener or PdfFlattener()

    def build_overlays(self, envelope: Envelope) -> List[FieldOverlay]:
        fields = SignatureField.objects.filter(envelope=envelope).select_related('recipient')
        return [
            FieldOverlay(
                page=f.page,
                coord_x=f.coord_x,
                coord_y=f.coord_y,
                coord_w=f.coord_w,
                coord_h=f.coord_h,
                field_type=f.field_type,
                value=f.value or '',
                signer_name=f.recipient.name,
            )
            for f in fields
            if f.value is not None
        ]

    def finalize(self, envelope_id) -> bool:
        try:
            envelope = Envelope.objects.get(pk=envelope_id)
        except Envelope.DoesNotExist:
            logger.warning(f'Finalization skipped: envelope {envelope_id} not found')
            return False

        if envelope.status != Envelope.STATUS_COMPLETED:
            logger.warning(f'Finalization skipped: envelope {envelope.id} is {envelope.status}')
            return False
        if envelope.artifact_status == Envelope.ARTIFACT_PUBLISHED:
            logger.info(f'Finalization skipped: envelope {envelope.id} already published')
            return False

        logger.info(f'Finalizing envelope {envelope.id}')
        try:
            source = self.facade.download_version(envelope.source_file_version_id)
            overlays = self.build_overlays(envelope)
            content = retry_operation(
                lambda: self.flattener.flatten(source, overlays),
                retriable=(PdfFlattenError,),
            )
            version = self.facade.publish_version(content, {
                'envelope_id': str(envelope.id),
                'contract_id': str(envelope.contract_id),
                'source_file_version_id': envelope.source_file_version_id,
            })
        except Exception as e:
            self._mark_failed(envelope, e)
            return False

        version_id = str(version.get('id', ''))
        Envelope.objects.filter(pk=envelope.pk).update(
            completed_file_version_id=version_id,
            artifact_status=Envelope.ARTIFACT_PUBLISHED,
        )
        envelope.completed_file_version_id = version_id
        envelope.artifact_status = Envelope.ARTIFACT_PUBLISHED

        SignatureEvent.record(envelope, SignatureEvent.EVENT_ARTIFACT_PUBLISHED, file_version_id=version_id)
        self.facade.notify('envelope.completed', {
            'envelope_id': str(envelope.id),
            'contract_id': str(envelope.contract_id),
            'title': envelope.title,
            'completed_file_version_id': version_id,
        })
        logger.info(f'Envelope {envelope.id} published as file version {version_id}')
        return True

    def _mark_failed(self, envelope: Envelope, error: Exception) -> None:
        logger.error(f'Finalization failed for envelope {envelope.id}: {str(error)}')
        Envelope.objects.filter(pk=envelope.pk).update(artifact_status=Envelope.ARTIFACT_FAILED)
        envelope.artifact_status = Envelope.ARTIFACT_FAILED
        SignatureEvent.record(envelope, SignatureEvent.EVENT_ARTIFACT_FAILED, error=str(error))
