# Generated manually for safety records

from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name='SafetyRecord',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('module', models.CharField(
                    choices=[
                        ('incidents', 'Incidents'),
                        ('work-permits', 'Work Permits'),
                        ('audits', 'Audits'),
                    ],
                    db_index=True,
                    max_length=20,
                )),
                ('reference', models.CharField(help_text='Record id, e.g. INC-2025-001', max_length=50, unique=True)),
                ('title', models.CharField(max_length=200)),
                ('description', models.TextField(blank=True)),
                ('status', models.CharField(db_index=True, default='Open', help_text='Module status, e.g. Open, In Progress, Closed', max_length=30)),
                ('priority', models.CharField(blank=True, help_text='Priority or severity, e.g. Critical, High, Medium', max_length=20)),
                ('department', models.CharField(blank=True, help_text='Department name or code used to scope escalation recipients', max_length=100)),
                ('location', models.CharField(blank=True, max_length=200)),
                ('data', models.JSONField(blank=True, default=dict, help_text='Module-specific fields (dates in ISO 8601)')),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
            ],
            options={
                'verbose_name': 'safety record',
                'verbose_name_plural': 'safety records',
                'ordering': ['module', 'reference'],
            },
        ),
    ]
