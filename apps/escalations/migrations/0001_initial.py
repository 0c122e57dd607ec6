# Generated manually for the escalation engine

import django.db.models.deletion
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name='EscalationTemplate',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('name', models.CharField(max_length=100)),
                ('module', models.CharField(
                    choices=[
                        ('incidents', 'Incidents'),
                        ('work-permits', 'Work Permits'),
                        ('audits', 'Audits'),
                    ],
                    db_index=True,
                    max_length=20,
                )),
                ('description', models.CharField(blank=True, max_length=500)),
                ('active', models.BooleanField(db_index=True, default=True)),
                ('applicability_rules', models.JSONField(blank=True, default=list, help_text='[{"field", "operator", "value", "logic"}], evaluated left to right')),
                ('hierarchy', models.JSONField(default=list, help_text='[{"level", "roles", "fallback_email"}]')),
                ('triggers', models.JSONField(default=list, help_text='Time-based and event-based triggers, one or more per level')),
                ('notification_templates', models.JSONField(default=dict, help_text='{"email": {"subject", "body"}, "sms"}')),
                ('version', models.PositiveIntegerField(default=1)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
            ],
            options={
                'verbose_name': 'escalation template',
                'verbose_name_plural': 'escalation templates',
                'ordering': ['module', 'name'],
            },
        ),
        migrations.CreateModel(
            name='EscalationEpisode',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('template_id', models.CharField(max_length=64)),
                ('record_id', models.CharField(db_index=True, max_length=64)),
                ('generation', models.PositiveIntegerField(default=1)),
                ('cancelled', models.BooleanField(default=False)),
                ('cancelled_at', models.DateTimeField(blank=True, null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
            ],
            options={
                'verbose_name': 'escalation episode',
                'verbose_name_plural': 'escalation episodes',
                'ordering': ['template_id', 'record_id'],
            },
        ),
        migrations.AddConstraint(
            model_name='escalationepisode',
            constraint=models.UniqueConstraint(fields=('template_id', 'record_id'), name='unique_escalation_episode'),
        ),
        migrations.CreateModel(
            name='EscalationInstance',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('generation', models.PositiveIntegerField()),
                ('level', models.PositiveSmallIntegerField()),
                ('recipient_key', models.CharField(max_length=254)),
                ('last_sent_at', models.DateTimeField(blank=True, db_index=True, null=True)),
                ('claimed_at', models.DateTimeField(blank=True, null=True)),
                ('cancelled', models.BooleanField(default=False)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('episode', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='instances', to='escalations.escalationepisode')),
            ],
            options={
                'verbose_name': 'escalation instance',
                'verbose_name_plural': 'escalation instances',
                'ordering': ['episode', 'generation', 'level', 'recipient_key'],
            },
        ),
        migrations.AddConstraint(
            model_name='escalationinstance',
            constraint=models.UniqueConstraint(fields=('episode', 'generation', 'level', 'recipient_key'), name='unique_escalation_instance'),
        ),
    ]
