# Generated manually for the escalation notification log

from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name='NotificationLog',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('template_id', models.CharField(db_index=True, help_text='Escalation template id', max_length=64)),
                ('template_name', models.CharField(blank=True, max_length=100)),
                ('record_id', models.CharField(db_index=True, help_text='Safety record id', max_length=64)),
                ('module', models.CharField(blank=True, max_length=20)),
                ('level', models.PositiveSmallIntegerField(blank=True, help_text='Escalation level (empty for cancellations)', null=True)),
                ('recipient', models.CharField(blank=True, help_text='Email address or phone number notified', max_length=254)),
                ('channel', models.CharField(blank=True, max_length=10)),
                ('status', models.CharField(
                    choices=[
                        ('sent', 'Sent'),
                        ('failed', 'Failed'),
                        ('duplicate', 'Duplicate'),
                        ('cancelled', 'Cancelled'),
                    ],
                    db_index=True,
                    max_length=10,
                )),
                ('error', models.TextField(blank=True, help_text='Failure or cancellation reason', null=True)),
                ('timestamp', models.DateTimeField(db_index=True, help_text='Cycle evaluation time')),
                ('created_at', models.DateTimeField(auto_now_add=True)),
            ],
            options={
                'verbose_name': 'notification log entry',
                'verbose_name_plural': 'notification log',
                'ordering': ['-timestamp', '-id'],
            },
        ),
        migrations.AddIndex(
            model_name='notificationlog',
            index=models.Index(fields=['template_id', 'record_id', 'level'], name='notiflog_pair_level_idx'),
        ),
        migrations.AddIndex(
            model_name='notificationlog',
            index=models.Index(fields=['status', '-timestamp'], name='notiflog_status_ts_idx'),
        ),
    ]
