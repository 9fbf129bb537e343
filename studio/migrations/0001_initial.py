import django.core.serializers.json
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
    ]

    operations = [
        migrations.CreateModel(
            name='StoreDocument',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('collection', models.CharField(choices=[('courses', 'Courses'), ('schedules', 'Schedules'), ('bookings', 'Bookings'), ('users', 'Users'), ('cart', 'Cart')], max_length=50)),
                ('doc_id', models.CharField(max_length=64)),
                ('data', models.JSONField(default=dict, encoder=django.core.serializers.json.DjangoJSONEncoder)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
            ],
            options={
                'ordering': ['collection', 'created_at'],
                'indexes': [models.Index(fields=['collection', 'created_at'], name='studio_doc_collection_idx')],
                'constraints': [models.UniqueConstraint(fields=('collection', 'doc_id'), name='unique_document_per_collection')],
            },
        ),
    ]
