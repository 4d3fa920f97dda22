import base64
import io
import pytest
from unittest.mock import Mock
from django.contrib.auth.models import User
from PIL import Image
from reportlab.lib.pagesizes import letter
from reportlab.pdfgen import canvas
from apps.domain.models import Envelope, Recipient, SignatureField
from apps.application.facades.signing_collaborators_facade import SigningCollaboratorsFacade
from apps.application.services.envelope_state_machine import EnvelopeStateMachine
from apps.application.services.recipient_registry import RecipientRegistry
from apps.application.services.submission_processor import SubmissionProcessor
from apps.infrastructure.providers.factory import CollaboratorFactory


@pytest.fixture(autouse=True)
def signing_settings(settings):
    settings.SIGNING_RUN_IN_BACKGROUND = False
    settings.FINALIZER_MAX_RETRIES = 2
    settings.FINALIZER_RETRY_DELAY = 0
    settings.SIGNING_PUBLIC_BASE_URL = 'https://sign.example.com/s'
    CollaboratorFactory().clear_cache()
    return settings


@pytest.fixture
def user():
    return User.objects.create_user(
        username='sender',
        email='sender@example.com',
        password='testpass123'
    )


@pytest.fixture
def other_user():
    return User.objects.create_user(
        username='intruder',
        email='intruder@example.com',
        password='testpass123'
    )


@pytest.fixture
def signature_image():
    buffer = io.BytesIO()
    Image.new('RGBA', (8, 4), (0, 0, 128, 255)).save(buffer, format='PNG')
    return 'data:image/png;base64,' + base64.b64encode(buffer.getvalue()).decode('ascii')


@pytest.fixture
def source_pdf():
    buffer = io.BytesIO()
    c = canvas.Canvas(buffer, pagesize=letter)
    c.drawString(72, 720, 'Master Services Agreement')
    c.showPage()
    c.drawString(72, 720, 'Signatures')
    c.showPage()
    c.save()
    return buffer.getvalue()


@pytest.fixture
def mock_facade():
    facade = Mock(spec=SigningCollaboratorsFacade)
    facade.get_download_url.return_value = 'https://files.example.com/fv_source.pdf'
    return facade


@pytest.fixture
def mock_finalizer():
    return Mock()


@pytest.fixture
def state_machine(mock_facade, mock_finalizer):
    return EnvelopeStateMachine(facade=mock_facade, finalizer=mock_finalizer)


@pytest.fixture
def registry(mock_facade):
    return RecipientRegistry(facade=mock_facade)


@pytest.fixture
def processor(mock_facade, registry, state_machine):
    return SubmissionProcessor(facade=mock_facade, registry=registry, state_machine=state_machine)


@pytest.fixture
def envelope(user):
    return Envelope.objects.create(
        contract_id='5f0c2b8e-8d4e-4f1a-9a53-0d3c0f1e2a77',
        title='Master Services Agreement',
        source_file_version_id='fv_source',
        created_by=user,
    )


def add_recipient(envelope, name, email, signing_order=1):
    return Recipient.objects.create(envelope=envelope, name=name, email=email, signing_order=signing_order)


def add_field(recipient, field_type, page=1, coord_y=0.8):
    return SignatureField.objects.create(
        envelope=recipient.envelope,
        recipient=recipient,
        field_type=field_type,
        page=page,
        coord_x=0.1,
        coord_y=coord_y,
        coord_w=0.3,
        coord_h=0.05,
    )


@pytest.fixture
def sequential_envelope(envelope):
    """Sent envelope: R1 (order 1) then R2 (order 2), each with a signature and a date field."""
    r1 = add_recipient(envelope, 'Ana Lima', 'ana@example.com', 1)
    r2 = add_recipient(envelope, 'Bruno Costa', 'bruno@example.com', 2)
    for recipient in (r1, r2):
        add_field(recipient, SignatureField.TYPE_SIGNATURE)
        add_field(recipient, SignatureField.TYPE_DATE, coord_y=0.9)
    envelope.status = Envelope.STATUS_SENT
    envelope.save()
    return envelope, r1, r2


def valid_values(recipient, signature_image):
    values = {}
    for f in recipient.fields.all():
        if f.field_type in SignatureField.IMAGE_TYPES:
            values[str(f.id)] = signature_image
        elif f.field_type == SignatureField.TYPE_DATE:
            values[str(f.id)] = '2024-01-01'
        elif f.field_type == SignatureField.TYPE_CHECKBOX:
            values[str(f.id)] = 'true'
        else:
            values[str(f.id)] = 'Ana Lima'
    return values


@pytest.fixture
def make_recipient():
    return add_recipient


@pytest.fixture
def make_field():
    return add_field


@pytest.fixture
def values_for(signature_image):
    return lambda recipient: valid_values(recipient, signature_image)
