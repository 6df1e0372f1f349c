from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name='Ship',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('external_id', models.CharField(max_length=36, unique=True)),
                ('slug', models.SlugField(max_length=200)),
                ('name', models.CharField(max_length=200)),
                ('manufacturer_name', models.CharField(blank=True, db_index=True, default='', max_length=200)),
                ('manufacturer_code', models.CharField(blank=True, default='', max_length=20)),
                ('manufacturer_slug', models.CharField(blank=True, default='', max_length=200)),
                ('classification', models.CharField(blank=True, default='', max_length=100)),
                ('classification_label', models.CharField(blank=True, default='', max_length=100)),
                ('focus', models.CharField(blank=True, default='', max_length=200)),
                ('size', models.CharField(blank=True, default='', max_length=50)),
                ('production_status', models.CharField(blank=True, default='', max_length=50)),
                ('attributes', models.JSONField(blank=True, default=dict)),
                ('images', models.JSONField(blank=True, default=dict)),
                ('extra', models.JSONField(blank=True, default=dict)),
                ('content_hash', models.CharField(max_length=64)),
                ('sync_version', models.PositiveIntegerField(default=1)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
            ],
            options={
                'ordering': ['name'],
            },
        ),
        migrations.CreateModel(
            name='SyncStatus',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('last_sync_at', models.DateTimeField()),
                ('ship_count', models.PositiveIntegerField(default=0)),
                ('status', models.CharField(max_length=20)),
                ('sync_version', models.PositiveIntegerField(default=0)),
            ],
            options={
                'verbose_name': 'Sync Status',
                'verbose_name_plural': 'Sync Status',
            },
        ),
        migrations.CreateModel(
            name='SyncRunRecord',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('run_id', models.CharField(max_length=32, unique=True)),
                ('trigger', models.CharField(max_length=20)),
                ('status', models.CharField(max_length=20)),
                ('sync_version', models.PositiveIntegerField()),
                ('started_at', models.DateTimeField()),
                ('finished_at', models.DateTimeField()),
                ('duration_ms', models.PositiveIntegerField(default=0)),
                ('pages_processed', models.PositiveIntegerField(default=0)),
                ('ship_count', models.PositiveIntegerField(default=0)),
                ('new_ships', models.PositiveIntegerField(default=0)),
                ('updated_ships', models.PositiveIntegerField(default=0)),
                ('unchanged_ships', models.PositiveIntegerField(default=0)),
                ('skipped_ships', models.PositiveIntegerField(default=0)),
                ('error_count', models.PositiveIntegerField(default=0)),
                ('errors', models.JSONField(blank=True, default=list)),
            ],
            options={
                'ordering': ['-started_at'],
            },
        ),
        migrations.CreateModel(
            name='SyncLock',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('name', models.CharField(max_length=100, unique=True)),
                ('owner', models.CharField(blank=True, default='', max_length=64)),
                ('acquired_at', models.DateTimeField(blank=True, null=True)),
            ],
        ),
    ]
