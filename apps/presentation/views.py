import logging
from rest_framework import mixins, viewsets, status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.decorators import action
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated, AllowAny
from drf_spectacular.utils import extend_schema, extend_schema_view, OpenApiParameter, OpenApiExample
from drf_spectacular.types import OpenApiTypes
from apps.domain.exceptions import UNAVAILABLE_MESSAGE, EnvelopeClosed, NotFound, SigningError
from apps.domain.models import Envelope
from apps.presentation.serializers import (
    EnvelopeSerializer, EnvelopeCreateSerializer, RecipientSerializer,
    AddRecipientSerializer, SignatureFieldSerializer, AddFieldSerializer,
    SignatureEventSerializer, SigningContextSerializer, SubmitSigningSerializer,
    DeclineSerializer, SubmissionResultSerializer, SigningRecipientSerializer,
)
from apps.application.services.envelope_state_machine import EnvelopeStateMachine
from apps.application.services.field_placement import Submission
from apps.application.services.submission_processor import (
    SubmissionProcessor, TokenRecipientResolver, SessionRecipientResolver,
)
from apps.presentation.utils import error_response, signing_error_response

logger = logging.getLogger('apps')


@extend_schema(
    summary='Obtain authentication token',
    description='Authenticates a user with username and password and returns a token. Send it as "Authorization: Token <token>" on owner endpoints.',
    tags=['Authentication'],
    request={
        'application/json': {
            'type': 'object',
            'properties': {
                'username': {'type': 'string', 'example': 'sender'},
                'password': {'type': 'string', 'format': 'password', 'example': 'secret123'},
            },
            'required': ['username', 'password']
        }
    },
    responses={
        200: {
            'type': 'object',
            'properties': {
                'token': {
                    'type': 'string',
                    'example': '9944b09199c62bcf9418ad846dd0e4bbdfc6ee4b'
                }
            }
        },
        400: OpenApiTypes.OBJECT,
    },
)
@api_view(['POST'])
@permission_classes([AllowAny])
def custom_obtain_auth_token(request):
    from django.contrib.auth import authenticate
    from rest_framework.authtoken.models import Token

    username = request.data.get('username')
    password = request.data.get('password')

    if username is None or password is None:
        return error_response('Please provide username and password', status.HTTP_400_BAD_REQUEST)

    user = authenticate(username=username, password=password)

    if not user:
        return error_response('Invalid credentials', status.HTTP_400_BAD_REQUEST)

    token, created = Token.objects.get_or_create(user=user)
    return Response({'token': token.key}, status=status.HTTP_200_OK)


@extend_schema_view(
    list=extend_schema(
        summary='List envelopes',
        description='Returns a paginated list of the envelopes created by the authenticated sender.',
        tags=['Envelopes'],
    ),
    create=extend_schema(
        summary='Create envelope',
        description='Creates a DRAFT envelope for a contract document. Recipients and fields are added before sending.',
        tags=['Envelopes'],
        request=EnvelopeCreateSerializer,
        responses={201: EnvelopeSerializer, 400: OpenApiTypes.OBJECT},
        examples=[
            OpenApiExample(
                'Create envelope',
                value={
                    'contract_id': '5f0c2b8e-8d4e-4f1a-9a53-0d3c0f1e2a77',
                    'title': 'Master Services Agreement',
                    'source_file_version_id': 'fv_01HZX3',
                }
            ),
        ],
    ),
    retrieve=extend_schema(
        summary='Get envelope',
        description='Returns the envelope with its recipients (including signing links) and fields.',
        tags=['Envelopes'],
    ),
)
class EnvelopeViewSet(mixins.CreateModelMixin,
                      mixins.ListModelMixin,
                      mixins.RetrieveModelMixin,
                      viewsets.GenericViewSet):
    serializer_class = EnvelopeSerializer
    permission_classes = [IsAuthenticated]

    def get_queryset(self):
        return (
            Envelope.objects
            .filter(created_by=self.request.user)
            .prefetch_related('recipients', 'fields')
        )

    def get_serializer_class(self):
        if self.action == 'create':
            return EnvelopeCreateSerializer
        return EnvelopeSerializer

    def get_serializer_context(self):
        context = super().get_serializer_context()
        context['user'] = self.request.user
        return context

    def create(self, request, *args, **kwargs):
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        envelope = serializer.save()
        return Response(EnvelopeSerializer(envelope).data, status=status.HTTP_201_CREATED)

    def _envelope_response(self, envelope, status_code=status.HTTP_200_OK):
        envelope = self.get_queryset().get(pk=envelope.pk)
        return Response(EnvelopeSerializer(envelope).data, status=status_code)

    @extend_schema(
        summary='Add recipient',
        description='Adds a recipient to a DRAFT envelope. A unique signing link is generated for the recipient.',
        tags=['Envelopes'],
        request=AddRecipientSerializer,
        responses={201: RecipientSerializer, 400: OpenApiTypes.OBJECT, 409: OpenApiTypes.OBJECT, 410: OpenApiTypes.OBJECT},
        examples=[
            OpenApiExample('Add recipient', value={'name': 'Ana Lima', 'email': 'ana@example.com', 'signing_order': 1}),
        ],
    )
    @action(detail=True, methods=['post'])
    def recipients(self, request, pk=None):
        envelope = self.get_object()
        serializer = AddRecipientSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            recipient = EnvelopeStateMachine().add_recipient(envelope, **serializer.validated_data)
            return Response(RecipientSerializer(recipient).data, status=status.HTTP_201_CREATED)
        except SigningError as e:
            return signing_error_response(e)

    @extend_schema(
        summary='Add field',
        description='Places a typed field for one of the envelope recipients. Coordinates are page fractions measured from the top-left corner.',
        tags=['Envelopes'],
        request=AddFieldSerializer,
        responses={201: SignatureFieldSerializer, 400: OpenApiTypes.OBJECT, 409: OpenApiTypes.OBJECT, 410: OpenApiTypes.OBJECT},
        examples=[
            OpenApiExample(
                'Signature block',
                value={
                    'recipient_id': '0b7f6d2c-3c8e-4d5b-9f0a-2e1d4c6b8a90',
                    'field_type': 'SIGNATURE',
                    'page': 1,
                    'coord_x': 0.1,
                    'coord_y': 0.8,
                    'coord_w': 0.3,
                    'coord_h': 0.06,
                }
            ),
        ],
    )
    @action(detail=True, methods=['post'])
    def fields(self, request, pk=None):
        envelope = self.get_object()
        serializer = AddFieldSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            field = EnvelopeStateMachine().add_field(envelope, **serializer.validated_data)
            return Response(SignatureFieldSerializer(field).data, status=status.HTTP_201_CREATED)
        except SigningError as e:
            return signing_error_response(e)

    @extend_schema(
        summary='Send envelope',
        description='Moves a DRAFT envelope to SENT. Requires at least one recipient and one field; fields are frozen from here on.',
        tags=['Envelopes'],
        request=None,
        responses={200: EnvelopeSerializer, 409: OpenApiTypes.OBJECT, 410: OpenApiTypes.OBJECT},
    )
    @action(detail=True, methods=['post'])
    def send(self, request, pk=None):
        envelope = self.get_object()
        try:
            envelope = EnvelopeStateMachine().send(envelope)
            return self._envelope_response(envelope)
        except SigningError as e:
            return signing_error_response(e)

    @extend_schema(
        summary='Cancel envelope',
        description='Cancels a DRAFT or SENT envelope. Pending signing links stop working.',
        tags=['Envelopes'],
        request=None,
        responses={200: EnvelopeSerializer, 410: OpenApiTypes.OBJECT},
    )
    @action(detail=True, methods=['post'])
    def cancel(self, request, pk=None):
        envelope = self.get_object()
        try:
            envelope = EnvelopeStateMachine().cancel(envelope)
            return self._envelope_response(envelope)
        except SigningError as e:
            return signing_error_response(e)

    @extend_schema(
        summary='Envelope audit trail',
        description='Returns every recorded event of the envelope in chronological order.',
        tags=['Envelopes'],
        responses={200: SignatureEventSerializer(many=True)},
    )
    @action(detail=True, methods=['get'])
    def events(self, request, pk=None):
        envelope = self.get_object()
        return Response(SignatureEventSerializer(envelope.events.all(), many=True).data, status=status.HTTP_200_OK)

    @extend_schema(
        summary='Retry signed PDF publication',
        description='Dispatches finalization again for a COMPLETED envelope whose signed PDF failed to publish, or stayed pending past FINALIZER_STALE_AFTER_MINUTES.',
        tags=['Envelopes'],
        request=None,
        responses={202: EnvelopeSerializer, 409: OpenApiTypes.OBJECT},
    )
    @action(detail=True, methods=['post'])
    def retry_finalization(self, request, pk=None):
        envelope = self.get_object()
        if not EnvelopeStateMachine().retry_finalization(envelope):
            return error_response(
                'Only completed envelopes whose signed PDF failed or stalled can be retried.',
                status.HTTP_409_CONFLICT,
                {'status': envelope.status, 'artifact_status': envelope.artifact_status},
                code='INVALID_TRANSITION',
            )
        return self._envelope_response(envelope, status.HTTP_202_ACCEPTED)


class BaseSigningViewSet(viewsets.ViewSet):
    """Signing operations for a recipient resolved by a subclass."""

    def resolve_recipient(self, request, **kwargs):
        raise NotImplementedError

    def get_processor(self):
        return SubmissionProcessor()

    def signing_error(self, error: SigningError):
        return signing_error_response(error)

    def context(self, request, **kwargs):
        try:
            recipient = self.resolve_recipient(request, **kwargs)
            context = self.get_processor().get_signing_context(recipient)
        except (NotFound, EnvelopeClosed):
            # unknown, unsent and cancelled links look the same
            return Response({'available': False, 'message': UNAVAILABLE_MESSAGE}, status=status.HTTP_200_OK)
        return Response(SigningContextSerializer({'available': True, **context}).data, status=status.HTTP_200_OK)

    def viewed(self, request, **kwargs):
        try:
            recipient = self.resolve_recipient(request, **kwargs)
            recipient = self.get_processor().mark_viewed(recipient)
            return Response(SigningRecipientSerializer(recipient).data, status=status.HTTP_200_OK)
        except SigningError as e:
            return self.signing_error(e)

    def submit(self, request, **kwargs):
        serializer = SubmitSigningSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        submission = Submission(
            field_values=serializer.validated_data.get('field_values') or {},
            signature_image=serializer.validated_data.get('signature_image'),
        )

        try:
            recipient = self.resolve_recipient(request, **kwargs)
            result = self.get_processor().submit_for(recipient, submission)
            return Response(result.to_dict(), status=status.HTTP_200_OK)
        except SigningError as e:
            return self.signing_error(e)

    def decline(self, request, **kwargs):
        serializer = DeclineSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            recipient = self.resolve_recipient(request, **kwargs)
            recipient = self.get_processor().decline(recipient, serializer.validated_data.get('reason', ''))
            return Response(SigningRecipientSerializer(recipient).data, status=status.HTTP_200_OK)
        except SigningError as e:
            return self.signing_error(e)


TOKEN_PARAMETER = OpenApiParameter('token', OpenApiTypes.STR, location=OpenApiParameter.PATH, description='Recipient signing token')
CONTRACT_PARAMETER = OpenApiParameter('contract_id', OpenApiTypes.UUID, location=OpenApiParameter.PATH, description='Contract id')


def signing_schema_view(parameter, audience):
    return extend_schema_view(
        context=extend_schema(
            summary=f'Get signing context ({audience})',
            description='Returns the envelope, the acting recipient, their fields, a PDF download url and whether it is their turn. Unavailable links return available=false with a neutral message.',
            tags=['Signing'],
            parameters=[parameter],
            responses={200: SigningContextSerializer},
        ),
        viewed=extend_schema(
            summary=f'Mark viewed ({audience})',
            description='Records that the recipient opened the document. Repeated calls are harmless.',
            tags=['Signing'],
            parameters=[parameter],
            request=None,
            responses={200: SigningRecipientSerializer, 404: OpenApiTypes.OBJECT, 410: OpenApiTypes.OBJECT},
        ),
        submit=extend_schema(
            summary=f'Submit signature ({audience})',
            description='Validates and commits the recipient field values and marks the recipient SIGNED. Resubmitting after signing returns already_signed=true.',
            tags=['Signing'],
            parameters=[parameter],
            request=SubmitSigningSerializer,
            responses={
                200: SubmissionResultSerializer,
                400: OpenApiTypes.OBJECT,
                404: OpenApiTypes.OBJECT,
                409: OpenApiTypes.OBJECT,
                410: OpenApiTypes.OBJECT,
            },
            examples=[
                OpenApiExample(
                    'Submit with one captured signature',
                    value={
                        'field_values': {'8c1d6a3e-1f4b-4c2a-9e7d-5b3a2c1d0e9f': '2024-01-01'},
                        'signature_image': 'data:image/png;base64,iVBORw0KGgo...',
                    },
                    request_only=True,
                ),
            ],
        ),
        decline=extend_schema(
            summary=f'Decline to sign ({audience})',
            description='Declines the envelope. The envelope can then no longer complete automatically.',
            tags=['Signing'],
            parameters=[parameter],
            request=DeclineSerializer,
            responses={200: SigningRecipientSerializer, 404: OpenApiTypes.OBJECT, 409: OpenApiTypes.OBJECT, 410: OpenApiTypes.OBJECT},
        ),
    )


@signing_schema_view(TOKEN_PARAMETER, 'public link')
class TokenSigningViewSet(BaseSigningViewSet):
    authentication_classes = []
    permission_classes = [AllowAny]

    def resolve_recipient(self, request, token=None, **kwargs):
        return TokenRecipientResolver().resolve(token)

    def signing_error(self, error: SigningError):
        # a closed envelope's link answers exactly like a link that never existed
        if isinstance(error, EnvelopeClosed):
            error = NotFound()
        return signing_error_response(error)


@signing_schema_view(CONTRACT_PARAMETER, 'signed-in recipient')
class ContractSigningViewSet(BaseSigningViewSet):
    permission_classes = [IsAuthenticated]

    def resolve_recipient(self, request, contract_id=None, **kwargs):
        return SessionRecipientResolver(request.user).resolve(contract_id)
