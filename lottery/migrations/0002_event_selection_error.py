from django.db import migrations, models


class Migration(migrations.Migration):

    dependencies = [
        ('lottery', '0001_initial'),
    ]

    operations = [
        migrations.AddField(
            model_name='event',
            name='selection_error',
            field=models.TextField(blank=True, default=''),
        ),
    ]
