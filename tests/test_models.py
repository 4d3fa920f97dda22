import uuid
import pytest
from apps.domain.models import Envelope, Recipient, SignatureField, SignatureEvent


@pytest.mark.django_db
class TestEnvelope:
    def test_create_envelope_defaults_to_draft(self, user):
        envelope = Envelope.objects.create(
            contract_id=uuid.uuid4(),
            title='Lease',
            source_file_version_id='fv_1',
            created_by=user
        )
        assert envelope.status == Envelope.STATUS_DRAFT
        assert envelope.artifact_status is None
        assert envelope.is_closed is False

    def test_terminal_statuses_are_closed(self, envelope):
        envelope.status = Envelope.STATUS_CANCELLED
        assert envelope.is_closed is True
        envelope.status = Envelope.STATUS_COMPLETED
        assert envelope.is_closed is True


@pytest.mark.django_db
class TestRecipient:
    def test_token_is_generated_and_unique(self, envelope, make_recipient):
        r1 = make_recipient(envelope, 'Ana', 'ana@example.com')
        r2 = make_recipient(envelope, 'Bruno', 'bruno@example.com')
        assert len(r1.token) >= 40
        assert r1.token != r2.token
        assert r1.status == Recipient.STATUS_INVITED
        assert r1.signing_order == 1

    def test_sign_url_uses_public_base_url(self, envelope, make_recipient):
        recipient = make_recipient(envelope, 'Ana', 'ana@example.com')
        assert recipient.sign_url == f'https://sign.example.com/s/{recipient.token}'

    def test_ordering_by_signing_order(self, envelope, make_recipient):
        make_recipient(envelope, 'Second', 'second@example.com', 2)
        make_recipient(envelope, 'First', 'first@example.com', 1)
        assert [r.name for r in envelope.recipients.all()] == ['First', 'Second']


@pytest.mark.django_db
class TestSignatureField:
    def test_create_field(self, envelope, make_recipient, make_field):
        recipient = make_recipient(envelope, 'Ana', 'ana@example.com')
        field = make_field(recipient, SignatureField.TYPE_CHECKBOX, page=2)
        assert field.envelope == envelope
        assert field.value is None
        assert list(recipient.fields.all()) == [field]


@pytest.mark.django_db
class TestSignatureEvent:
    def test_record_serializes_uuid_payload(self, envelope, make_recipient):
        recipient = make_recipient(envelope, 'Ana', 'ana@example.com')
        event = SignatureEvent.record(envelope, SignatureEvent.EVENT_SIGNED, recipient=recipient, recipient_id=recipient.id)
        event.refresh_from_db()
        assert event.payload == {'recipient_id': str(recipient.id)}
        assert list(envelope.events.all()) == [event]
