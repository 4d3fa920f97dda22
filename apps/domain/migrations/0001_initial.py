from django.conf import settings
from django.core.serializers.json import DjangoJSONEncoder
from django.db import migrations, models
import django.db.models.deletion
import uuid
import apps.domain.models.recipient


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='Envelope',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('contract_id', models.UUIDField(db_index=True)),
                ('title', models.CharField(max_length=300)),
                ('status', models.CharField(choices=[('DRAFT', 'Draft'), ('SENT', 'Sent'), ('COMPLETED', 'Completed'), ('CANCELLED', 'Cancelled')], default='DRAFT', max_length=20)),
                ('source_file_version_id', models.CharField(max_length=255)),
                ('completed_file_version_id', models.CharField(blank=True, max_length=255, null=True)),
                ('artifact_status', models.CharField(blank=True, choices=[('PENDING', 'Pending'), ('PUBLISHED', 'Published'), ('FAILED', 'Failed')], max_length=20, null=True)),
                ('sent_at', models.DateTimeField(blank=True, null=True)),
                ('completed_at', models.DateTimeField(blank=True, null=True)),
                ('cancelled_at', models.DateTimeField(blank=True, null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('created_by', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='envelopes', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'db_table': 'signature_envelopes',
                'ordering': ['-created_at'],
            },
        ),
        migrations.CreateModel(
            name='Recipient',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('name', models.CharField(max_length=120)),
                ('email', models.EmailField(max_length=320)),
                ('token', models.CharField(default=apps.domain.models.recipient.generate_recipient_token, editable=False, max_length=120, unique=True)),
                ('signing_order', models.PositiveIntegerField(default=1)),
                ('status', models.CharField(choices=[('INVITED', 'Invited'), ('VIEWED', 'Viewed'), ('SIGNED', 'Signed'), ('DECLINED', 'Declined')], default='INVITED', max_length=20)),
                ('viewed_at', models.DateTimeField(blank=True, null=True)),
                ('signed_at', models.DateTimeField(blank=True, null=True)),
                ('declined_at', models.DateTimeField(blank=True, null=True)),
                ('decline_reason', models.TextField(blank=True, default='')),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('envelope', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='recipients', to='domain.envelope')),
            ],
            options={
                'db_table': 'signature_recipients',
                'ordering': ['signing_order', 'created_at'],
            },
        ),
        migrations.CreateModel(
            name='SignatureField',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('field_type', models.CharField(choices=[('SIGNATURE', 'Signature'), ('INITIAL', 'Initial'), ('DATE', 'Date'), ('TEXT', 'Text'), ('CHECKBOX', 'Checkbox')], max_length=20)),
                ('page', models.PositiveIntegerField()),
                ('coord_x', models.FloatField()),
                ('coord_y', models.FloatField()),
                ('coord_w', models.FloatField()),
                ('coord_h', models.FloatField()),
                ('value', models.TextField(blank=True, null=True)),
                ('filled_at', models.DateTimeField(blank=True, null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('envelope', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='fields', to='domain.envelope')),
                ('recipient', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='fields', to='domain.recipient')),
            ],
            options={
                'db_table': 'signature_fields',
                'ordering': ['page', 'coord_y', 'coord_x'],
            },
        ),
        migrations.CreateModel(
            name='SignatureEvent',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('event_type', models.CharField(choices=[('SENT', 'Sent'), ('VIEWED', 'Viewed'), ('SIGNED', 'Signed'), ('DECLINED', 'Declined'), ('COMPLETED', 'Completed'), ('CANCELLED', 'Cancelled'), ('ARTIFACT_PUBLISHED', 'Artifact published'), ('ARTIFACT_FAILED', 'Artifact failed')], max_length=30)),
                ('payload', models.JSONField(blank=True, default=dict, encoder=DjangoJSONEncoder)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('envelope', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='events', to='domain.envelope')),
                ('recipient', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='events', to='domain.recipient')),
            ],
            options={
                'db_table': 'signature_events',
                'ordering': ['created_at', 'id'],
            },
        ),
    ]
