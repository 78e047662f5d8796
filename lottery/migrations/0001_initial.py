import uuid
import django.contrib.auth.models
import django.contrib.auth.validators
import django.db.models.deletion
import django.utils.timezone
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ('auth', '0012_alter_user_first_name_max_length'),
    ]

    operations = [
        migrations.CreateModel(
            name='User',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('password', models.CharField(max_length=128, verbose_name='password')),
                ('last_login', models.DateTimeField(blank=True, null=True, verbose_name='last login')),
                ('is_superuser', models.BooleanField(
                    default=False,
                    help_text='Designates that this user has all permissions without explicitly assigning them.',
                    verbose_name='superuser status',
                )),
                ('username', models.CharField(
                    error_messages={'unique': 'A user with that username already exists.'},
                    help_text='Required. 150 characters or fewer. Letters, digits and @/./+/-/_ only.',
                    max_length=150,
                    unique=True,
                    validators=[django.contrib.auth.validators.UnicodeUsernameValidator()],
                    verbose_name='username',
                )),
                ('first_name', models.CharField(blank=True, max_length=150, verbose_name='first name')),
                ('last_name', models.CharField(blank=True, max_length=150, verbose_name='last name')),
                ('email', models.EmailField(blank=True, max_length=254, verbose_name='email address')),
                ('is_staff', models.BooleanField(
                    default=False,
                    help_text='Designates whether the user can log into this admin site.',
                    verbose_name='staff status',
                )),
                ('is_active', models.BooleanField(
                    default=True,
                    help_text='Designates whether this user should be treated as active. Unselect this instead of deleting accounts.',
                    verbose_name='active',
                )),
                ('date_joined', models.DateTimeField(default=django.utils.timezone.now, verbose_name='date joined')),
                ('full_name', models.CharField(blank=True, max_length=255)),
                ('name', models.CharField(blank=True, max_length=255)),
                ('fcm_token', models.CharField(blank=True, default='', max_length=512)),
                ('notifications_enabled', models.JSONField(blank=True, null=True)),
                ('notification_preference_invited', models.JSONField(blank=True, null=True)),
                ('notification_preference_not_invited', models.JSONField(blank=True, null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('groups', models.ManyToManyField(
                    blank=True,
                    help_text='The groups this user belongs to. A user will get all permissions granted to each of their groups.',
                    related_name='user_set',
                    related_query_name='user',
                    to='auth.group',
                    verbose_name='groups',
                )),
                ('user_permissions', models.ManyToManyField(
                    blank=True,
                    help_text='Specific permissions for this user.',
                    related_name='user_set',
                    related_query_name='user',
                    to='auth.permission',
                    verbose_name='user permissions',
                )),
            ],
            options={
                'db_table': 'users',
            },
            managers=[
                ('objects', django.contrib.auth.models.UserManager()),
            ],
        ),
        migrations.CreateModel(
            name='Event',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('title', models.CharField(max_length=200)),
                ('registration_end', models.BigIntegerField(blank=True, null=True)),
                ('starts_at_epoch_ms', models.BigIntegerField(blank=True, null=True)),
                ('deadline_epoch_ms', models.BigIntegerField(blank=True, null=True)),
                ('sample_size', models.IntegerField(default=0)),
                ('selection_processed', models.BooleanField(default=False)),
                ('selection_notification_sent', models.BooleanField(default=False)),
                ('sorry_notification_sent', models.BooleanField(default=False)),
                ('selection_notification_error', models.TextField(blank=True, default='')),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('organizer', models.ForeignKey(
                    blank=True,
                    null=True,
                    on_delete=django.db.models.deletion.SET_NULL,
                    related_name='organized_events',
                    to=settings.AUTH_USER_MODEL,
                )),
            ],
            options={
                'db_table': 'events',
                'indexes': [
                    models.Index(fields=['selection_processed'], name='events_selecti_3f1c2a_idx'),
                    models.Index(fields=['starts_at_epoch_ms', 'sorry_notification_sent'], name='events_starts__8b4e7d_idx'),
                ],
            },
        ),
        migrations.CreateModel(
            name='Entrant',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('state', models.CharField(
                    choices=[
                        ('waitlisted', 'Waitlisted'),
                        ('selected', 'Selected'),
                        ('non_selected', 'Not Selected'),
                        ('cancelled', 'Cancelled'),
                    ],
                    default='waitlisted',
                    max_length=20,
                )),
                ('profile', models.JSONField(blank=True, default=dict)),
                ('joined_at', models.DateTimeField(auto_now_add=True)),
                ('state_changed_at', models.DateTimeField(auto_now=True)),
                ('event', models.ForeignKey(
                    on_delete=django.db.models.deletion.CASCADE,
                    related_name='entrants',
                    to='lottery.event',
                )),
                ('user', models.ForeignKey(
                    on_delete=django.db.models.deletion.CASCADE,
                    related_name='entries',
                    to=settings.AUTH_USER_MODEL,
                )),
            ],
            options={
                'db_table': 'entrants',
                'indexes': [
                    models.Index(fields=['event', 'state'], name='entrants_event_i_5d2a91_idx'),
                ],
                'constraints': [
                    models.UniqueConstraint(fields=('event', 'user'), name='unique_entrant_per_event'),
                ],
            },
        ),
        migrations.CreateModel(
            name='Invitation',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('organizer_id', models.CharField(default='system', max_length=64)),
                ('status', models.CharField(
                    choices=[('PENDING', 'Pending'), ('ACCEPTED', 'Accepted'), ('DECLINED', 'Declined')],
                    default='PENDING',
                    max_length=20,
                )),
                ('issued_at', models.BigIntegerField()),
                ('expires_at', models.BigIntegerField()),
                ('event', models.ForeignKey(
                    on_delete=django.db.models.deletion.CASCADE,
                    related_name='invitations',
                    to='lottery.event',
                )),
                ('user', models.ForeignKey(
                    on_delete=django.db.models.deletion.CASCADE,
                    related_name='invitations',
                    to=settings.AUTH_USER_MODEL,
                )),
            ],
            options={
                'db_table': 'invitations',
                'indexes': [
                    models.Index(fields=['event', 'user', 'status'], name='invitations_event_i_0e6c3b_idx'),
                ],
            },
        ),
        migrations.CreateModel(
            name='NotificationRequest',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('event_title', models.CharField(blank=True, default='', max_length=200)),
                ('organizer_id', models.CharField(blank=True, default='', max_length=64)),
                ('user_ids', models.JSONField(blank=True, default=list)),
                ('group_type', models.CharField(default='general', max_length=30)),
                ('title', models.CharField(blank=True, default='', max_length=200)),
                ('message', models.TextField(blank=True, default='')),
                ('status', models.CharField(default='PENDING', max_length=20)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('claimed_at', models.DateTimeField(blank=True, null=True)),
                ('processed', models.BooleanField(default=False)),
                ('processed_at', models.DateTimeField(blank=True, null=True)),
                ('error', models.TextField(blank=True, default='')),
                ('sent_count', models.IntegerField(default=0)),
                ('failure_count', models.IntegerField(default=0)),
                ('users_without_tokens', models.IntegerField(default=0)),
                ('opted_out_count', models.IntegerField(default=0)),
                ('should_retry', models.BooleanField(blank=True, null=True)),
                ('retry_count', models.IntegerField(default=0)),
                ('last_retry_attempt', models.DateTimeField(blank=True, null=True)),
                ('failed_users', models.JSONField(blank=True, default=list)),
                ('retry_success_count', models.IntegerField(default=0)),
                ('retry_failure_count', models.IntegerField(default=0)),
                ('final_status', models.CharField(
                    blank=True,
                    choices=[('success', 'Success'), ('failed', 'Failed')],
                    max_length=20,
                    null=True,
                )),
                ('event', models.ForeignKey(
                    blank=True,
                    null=True,
                    on_delete=django.db.models.deletion.SET_NULL,
                    related_name='notification_requests',
                    to='lottery.event',
                )),
            ],
            options={
                'db_table': 'notification_requests',
                'ordering': ['-created_at'],
                'indexes': [
                    models.Index(fields=['processed', 'should_retry'], name='notificatio_process_4a7f1e_idx'),
                    models.Index(fields=['event', 'group_type'], name='notificatio_event_i_9c2d6b_idx'),
                ],
            },
        ),
    ]
