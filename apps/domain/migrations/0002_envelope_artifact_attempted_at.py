from django.db import migrations, models


class Migration(migrations.Migration):

    dependencies = [
        ('domain', '0001_initial'),
    ]

    operations = [
        migrations.AddField(
            model_name='envelope',
            name='artifact_attempted_at',
            field=models.DateTimeField(blank=True, null=True),
        ),
    ]
