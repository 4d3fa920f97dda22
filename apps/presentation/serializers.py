from django.conf import settings
from rest_framework import serializers
from apps.domain.models import Envelope, Recipient, SignatureField, SignatureEvent
from apps.application.services.envelope_state_machine import EnvelopeStateMachine
from apps.application.services.field_placement import validate_geometry


class RecipientSerializer(serializers.ModelSerializer):
    id = serializers.UUIDField(read_only=True, help_text='Recipient id')
    name = serializers.CharField(help_text='Full name of the recipient')
    email = serializers.EmailField(help_text='E-mail of the recipient')
    signing_order = serializers.IntegerField(
        min_value=1,
        help_text='Signing rank; recipients sharing a rank sign in parallel'
    )
    status = serializers.ChoiceField(
        choices=Recipient.STATUS_CHOICES,
        read_only=True,
        help_text='INVITED, VIEWED, SIGNED or DECLINED'
    )
    token = serializers.CharField(read_only=True, help_text='Bearer capability of the public signing link')
    sign_url = serializers.CharField(read_only=True, help_text='Public signing link to hand to the recipient')

    class Meta:
        model = Recipient
        fields = [
            'id', 'name', 'email', 'signing_order', 'status', 'token', 'sign_url',
            'viewed_at', 'signed_at', 'declined_at', 'decline_reason', 'created_at',
        ]
        read_only_fields = fields


class SignatureFieldSerializer(serializers.ModelSerializer):
    id = serializers.UUIDField(read_only=True, help_text='Field id')
    recipient = serializers.UUIDField(source='recipient_id', read_only=True, help_text='Recipient who must fill the field')
    field_type = serializers.ChoiceField(
        choices=SignatureField.TYPE_CHOICES,
        help_text='SIGNATURE, INITIAL, DATE, TEXT or CHECKBOX'
    )

    class Meta:
        model = SignatureField
        fields = [
            'id', 'recipient', 'field_type', 'page', 'coord_x', 'coord_y', 'coord_w', 'coord_h',
            'value', 'filled_at',
        ]
        read_only_fields = fields


class EnvelopeSerializer(serializers.ModelSerializer):
    id = serializers.UUIDField(read_only=True, help_text='Envelope id')
    status = serializers.ChoiceField(
        choices=Envelope.STATUS_CHOICES,
        read_only=True,
        help_text='DRAFT, SENT, COMPLETED or CANCELLED'
    )
    artifact_status = serializers.ChoiceField(
        choices=Envelope.ARTIFACT_STATUS_CHOICES,
        read_only=True,
        allow_null=True,
        help_text='Publication state of the signed PDF once the envelope is completed'
    )
    created_by = serializers.PrimaryKeyRelatedField(read_only=True, help_text='Sender who owns the envelope')
    recipients = RecipientSerializer(many=True, read_only=True)
    fields = SignatureFieldSerializer(many=True, read_only=True)

    class Meta:
        model = Envelope
        fields = [
            'id', 'contract_id', 'title', 'status', 'source_file_version_id',
            'completed_file_version_id', 'artifact_status', 'artifact_attempted_at', 'created_by',
            'recipients', 'fields', 'sent_at', 'completed_at', 'cancelled_at',
            'created_at', 'updated_at',
        ]
        read_only_fields = fields


class EnvelopeCreateSerializer(serializers.Serializer):
    contract_id = serializers.UUIDField(help_text='Contract the envelope belongs to')
    title = serializers.CharField(max_length=300, help_text='Title shown to recipients')
    source_file_version_id = serializers.CharField(
        max_length=255,
        help_text='File version id of the PDF to be signed'
    )

    def validate_title(self, value):
        if not value.strip():
            raise serializers.ValidationError('Title cannot be empty')
        return value.strip()

    def create(self, validated_data):
        return EnvelopeStateMachine().create_envelope(
            created_by=self.context['user'],
            **validated_data
        )


class AddRecipientSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=120, help_text='Full name of the recipient')
    email = serializers.EmailField(max_length=320, help_text='E-mail of the recipient')
    signing_order = serializers.IntegerField(
        min_value=1,
        default=1,
        help_text='Signing rank, 1 or greater; equal ranks sign in parallel'
    )

    def validate_name(self, value):
        if not value.strip():
            raise serializers.ValidationError('Recipient name cannot be empty')
        return value.strip()

    def validate_email(self, value):
        return value.strip()


class AddFieldSerializer(serializers.Serializer):
    recipient_id = serializers.UUIDField(help_text='Recipient who must fill the field')
    field_type = serializers.ChoiceField(choices=SignatureField.TYPE_CHOICES)
    page = serializers.IntegerField(min_value=1, help_text='1-based page number')
    coord_x = serializers.FloatField(min_value=0.0, max_value=1.0, help_text='Left edge as a fraction of page width')
    coord_y = serializers.FloatField(min_value=0.0, max_value=1.0, help_text='Top edge as a fraction of page height')
    coord_w = serializers.FloatField(min_value=0.0, max_value=1.0, help_text='Width as a fraction of page width')
    coord_h = serializers.FloatField(min_value=0.0, max_value=1.0, help_text='Height as a fraction of page height')

    def validate(self, data):
        errors = validate_geometry(data['page'], data['coord_x'], data['coord_y'], data['coord_w'], data['coord_h'])
        if errors:
            raise serializers.ValidationError(errors)
        return data


class SignatureEventSerializer(serializers.ModelSerializer):
    recipient = serializers.UUIDField(source='recipient_id', read_only=True, allow_null=True)

    class Meta:
        model = SignatureEvent
        fields = ['id', 'event_type', 'recipient', 'payload', 'created_at']
        read_only_fields = fields


class SigningEnvelopeSerializer(serializers.ModelSerializer):
    class Meta:
        model = Envelope
        fields = ['id', 'contract_id', 'title', 'status', 'sent_at', 'completed_at']
        read_only_fields = fields


class SigningRecipientSerializer(serializers.ModelSerializer):
    class Meta:
        model = Recipient
        fields = ['id', 'name', 'email', 'signing_order', 'status', 'viewed_at', 'signed_at', 'declined_at']
        read_only_fields = fields


class SigningFieldSerializer(serializers.ModelSerializer):
    class Meta:
        model = SignatureField
        fields = ['id', 'field_type', 'page', 'coord_x', 'coord_y', 'coord_w', 'coord_h', 'value', 'filled_at']
        read_only_fields = fields


class SigningContextSerializer(serializers.Serializer):
    available = serializers.BooleanField(default=True)
    envelope = SigningEnvelopeSerializer(read_only=True)
    recipient = SigningRecipientSerializer(read_only=True)
    fields = SigningFieldSerializer(many=True, read_only=True)
    pdf_download_url = serializers.CharField(read_only=True, allow_null=True)
    can_act = serializers.BooleanField(read_only=True, help_text='True when every lower signing order has signed')


class SubmitSigningSerializer(serializers.Serializer):
    field_values = serializers.DictField(
        child=serializers.CharField(allow_blank=True, trim_whitespace=False),
        required=False,
        default=dict,
        help_text='Field id to value: text, YYYY-MM-DD dates, "true"/"false" checkboxes, image data URLs'
    )
    signature_image = serializers.CharField(
        required=False,
        allow_blank=True,
        allow_null=True,
        trim_whitespace=False,
        help_text='data:image/...;base64 payload used for every signature or initial field left blank'
    )

    def validate_signature_image(self, value):
        if value and len(value) > settings.SIGNING_MAX_SIGNATURE_LENGTH:
            raise serializers.ValidationError('Signature image is too large')
        return value


class DeclineSerializer(serializers.Serializer):
    reason = serializers.CharField(
        required=False,
        allow_blank=True,
        default='',
        max_length=2000,
        help_text='Optional reason shown to the sender'
    )


class SubmissionResultSerializer(serializers.Serializer):
    signed = serializers.BooleanField()
    completed = serializers.BooleanField(help_text='True only for the submission that completed the envelope')
    already_signed = serializers.BooleanField(required=False)
