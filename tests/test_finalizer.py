import io
import pytest
from unittest.mock import Mock, patch
from pypdf import PdfReader
from apps.domain.models import Envelope, Recipient, SignatureEvent, SignatureField
from apps.application.services.finalizer import ArtifactFinalizer
from apps.infrastructure.services.pdf_flattener import (
    FieldOverlay,
    PdfFlattener,
    PdfFlattenError,
    decode_image_data_url,
    resolve_rect,
)


@pytest.fixture
def completed_envelope(sequential_envelope, signature_image):
    envelope, r1, r2 = sequential_envelope
    for recipient in (r1, r2):
        for f in recipient.fields.all():
            f.value = signature_image if f.field_type in SignatureField.IMAGE_TYPES else '2024-01-01'
            f.save()
    Recipient.objects.filter(envelope=envelope).update(status=Recipient.STATUS_SIGNED)
    Envelope.objects.filter(pk=envelope.pk).update(
        status=Envelope.STATUS_COMPLETED,
        artifact_status=Envelope.ARTIFACT_PENDING,
    )
    envelope.refresh_from_db()
    return envelope


@pytest.fixture
def storage_facade(mock_facade, source_pdf):
    mock_facade.download_version.return_value = source_pdf
    mock_facade.publish_version.return_value = {'id': 'fv_signed'}
    return mock_facade


@pytest.mark.django_db
class TestArtifactFinalizer:
    def test_publishes_flattened_pdf(self, storage_facade, completed_envelope):
        finalizer = ArtifactFinalizer(facade=storage_facade)

        assert finalizer.finalize(completed_envelope.id) is True

        completed_envelope.refresh_from_db()
        assert completed_envelope.status == Envelope.STATUS_COMPLETED
        assert completed_envelope.artifact_status == Envelope.ARTIFACT_PUBLISHED
        assert completed_envelope.completed_file_version_id == 'fv_signed'

        storage_facade.download_version.assert_called_once_with('fv_source')
        content, metadata = storage_facade.publish_version.call_args[0]
        assert len(PdfReader(io.BytesIO(content)).pages) == 2
        assert metadata == {
            'envelope_id': str(completed_envelope.id),
            'contract_id': str(completed_envelope.contract_id),
            'source_file_version_id': 'fv_source',
        }

        event = completed_envelope.events.get(event_type=SignatureEvent.EVENT_ARTIFACT_PUBLISHED)
        assert event.payload == {'file_version_id': 'fv_signed'}
        storage_facade.notify.assert_called_once()
        event_type, payload = storage_facade.notify.call_args[0]
        assert event_type == 'envelope.completed'
        assert payload['completed_file_version_id'] == 'fv_signed'

    def test_failure_keeps_status_completed(self, storage_facade, completed_envelope):
        storage_facade.publish_version.side_effect = Exception('storage unavailable')
        finalizer = ArtifactFinalizer(facade=storage_facade)

        assert finalizer.finalize(completed_envelope.id) is False

        completed_envelope.refresh_from_db()
        assert completed_envelope.status == Envelope.STATUS_COMPLETED
        assert completed_envelope.artifact_status == Envelope.ARTIFACT_FAILED
        assert completed_envelope.events.filter(event_type=SignatureEvent.EVENT_ARTIFACT_FAILED).exists()
        storage_facade.notify.assert_not_called()

    def test_unreadable_source_is_recorded_as_failure(self, storage_facade, completed_envelope):
        storage_facade.download_version.return_value = b'not a pdf'
        finalizer = ArtifactFinalizer(facade=storage_facade)

        assert finalizer.finalize(completed_envelope.id) is False
        completed_envelope.refresh_from_db()
        assert completed_envelope.artifact_status == Envelope.ARTIFACT_FAILED

    @patch('apps.application.facades.signing_collaborators_facade.time.sleep')
    def test_render_failure_is_retried(self, mock_sleep, storage_facade, completed_envelope):
        flattener = Mock()
        flattener.flatten.side_effect = [PdfFlattenError('transient render failure'), b'%PDF-ok']
        finalizer = ArtifactFinalizer(facade=storage_facade, flattener=flattener)

        assert finalizer.finalize(completed_envelope.id) is True

        assert flattener.flatten.call_count == 2
        assert storage_facade.publish_version.call_args[0][0] == b'%PDF-ok'
        completed_envelope.refresh_from_db()
        assert completed_envelope.artifact_status == Envelope.ARTIFACT_PUBLISHED

    @patch('apps.application.facades.signing_collaborators_facade.time.sleep')
    def test_render_failure_gives_up_after_max_retries(self, mock_sleep, storage_facade, completed_envelope):
        flattener = Mock()
        flattener.flatten.side_effect = PdfFlattenError('corrupt page tree')
        finalizer = ArtifactFinalizer(facade=storage_facade, flattener=flattener)

        assert finalizer.finalize(completed_envelope.id) is False

        assert flattener.flatten.call_count == 2
        storage_facade.publish_version.assert_not_called()
        completed_envelope.refresh_from_db()
        assert completed_envelope.status == Envelope.STATUS_COMPLETED
        assert completed_envelope.artifact_status == Envelope.ARTIFACT_FAILED

    def test_already_published_is_skipped(self, storage_facade, completed_envelope):
        Envelope.objects.filter(pk=completed_envelope.pk).update(artifact_status=Envelope.ARTIFACT_PUBLISHED)
        finalizer = ArtifactFinalizer(facade=storage_facade)

        assert finalizer.finalize(completed_envelope.id) is False
        storage_facade.download_version.assert_not_called()

    def test_not_completed_is_skipped(self, storage_facade, sequential_envelope):
        envelope, r1, r2 = sequential_envelope
        finalizer = ArtifactFinalizer(facade=storage_facade)

        assert finalizer.finalize(envelope.id) is False
        storage_facade.download_version.assert_not_called()

    def test_overlays_include_signer_names(self, storage_facade, completed_envelope):
        overlays = ArtifactFinalizer(facade=storage_facade).build_overlays(completed_envelope)
        assert len(overlays) == 4
        assert {o.signer_name for o in overlays} == {'Ana Lima', 'Bruno Costa'}


class TestResolveRect:
    def test_converts_top_left_fractions_to_pdf_space(self):
        overlay = FieldOverlay(1, 0.1, 0.2, 0.5, 0.1, SignatureField.TYPE_TEXT, 'x')
        rect = resolve_rect(600.0, 800.0, overlay)
        assert rect.x == pytest.approx(60.0)
        assert rect.y == pytest.approx(800.0 - 160.0 - 80.0)
        assert rect.width == pytest.approx(300.0)
        assert rect.height == pytest.approx(80.0)

    def test_clamps_to_page(self):
        overlay = FieldOverlay(1, 0.9, 0.0, 0.5, 0.1, SignatureField.TYPE_TEXT, 'x')
        rect = resolve_rect(100.0, 100.0, overlay)
        assert rect.x + rect.width == pytest.approx(100.0)


class TestDecodeImageDataUrl:
    def test_decodes_png(self, signature_image):
        assert decode_image_data_url(signature_image).startswith(b'\x89PNG')

    @pytest.mark.parametrize('value', [None, '', 'plain text', 'data:text/plain;base64,SGk='])
    def test_rejects_non_images(self, value):
        assert decode_image_data_url(value) is None


class TestPdfFlattener:
    def test_fields_past_last_page_are_skipped(self, source_pdf):
        overlays = [
            FieldOverlay(1, 0.1, 0.1, 0.3, 0.05, SignatureField.TYPE_TEXT, 'ACME Ltd.'),
            FieldOverlay(9, 0.1, 0.1, 0.3, 0.05, SignatureField.TYPE_TEXT, 'lost'),
        ]
        output = PdfFlattener().flatten(source_pdf, overlays)
        reader = PdfReader(io.BytesIO(output))
        assert len(reader.pages) == 2
        assert 'ACME Ltd.' in reader.pages[0].extract_text()

    def test_undecodable_signature_falls_back_to_name(self, source_pdf):
        overlays = [
            FieldOverlay(2, 0.1, 0.1, 0.5, 0.05, SignatureField.TYPE_SIGNATURE, 'data:image/png;base64,AAAA', 'Ana Lima'),
        ]
        output = PdfFlattener().flatten(source_pdf, overlays)
        assert 'Ana Lima' in PdfReader(io.BytesIO(output)).pages[1].extract_text()

    def test_checkbox_marks_only_true(self, source_pdf):
        flattener = PdfFlattener()
        with patch.object(flattener, '_draw_checkbox', wraps=flattener._draw_checkbox) as draw:
            flattener.flatten(source_pdf, [
                FieldOverlay(1, 0.1, 0.1, 0.05, 0.05, SignatureField.TYPE_CHECKBOX, 'true'),
                FieldOverlay(1, 0.2, 0.1, 0.05, 0.05, SignatureField.TYPE_CHECKBOX, 'false'),
            ])
        assert [call.args[2] for call in draw.call_args_list] == [True, False]

    def test_image_is_drawn(self, source_pdf, signature_image):
        flattener = PdfFlattener()
        with patch.object(flattener, '_draw_text', Mock()) as draw_text:
            flattener.flatten(source_pdf, [
                FieldOverlay(1, 0.1, 0.1, 0.3, 0.05, SignatureField.TYPE_SIGNATURE, signature_image, 'Ana Lima'),
            ])
        draw_text.assert_not_called()

    def test_invalid_source(self):
        with pytest.raises(PdfFlattenError):
            PdfFlattener().flatten(b'%PDF-garbage', [])
