"""
Escalation persistence.

EscalationTemplate stores the template definition as JSON columns; the
engine only ever sees the Template dataclass built by to_definition().

EscalationEpisode / EscalationInstance back DatabaseEscalationStateStore:
one episode row per (template, record) pair, locked with
select_for_update() around every check-then-act, and one instance row per
(generation, level, recipient).
"""

from django.db import models

from .definitions import Module, Template


class EscalationTemplate(models.Model):
    """
    A configurable escalation policy for one module.

    `version` starts at 1 and increments on every save through
    services.save_template().
    """

    name = models.CharField(max_length=100)
    module = models.CharField(
        max_length=20,
        choices=Module.choices,
        db_index=True,
    )
    description = models.CharField(max_length=500, blank=True)
    active = models.BooleanField(default=True, db_index=True)
    applicability_rules = models.JSONField(
        default=list,
        blank=True,
        help_text='[{"field", "operator", "value", "logic"}], evaluated left to right',
    )
    hierarchy = models.JSONField(
        default=list,
        help_text='[{"level", "roles", "fallback_email"}]',
    )
    triggers = models.JSONField(
        default=list,
        help_text='Time-based and event-based triggers, one or more per level',
    )
    notification_templates = models.JSONField(
        default=dict,
        help_text='{"email": {"subject", "body"}, "sms"}',
    )
    version = models.PositiveIntegerField(default=1)

    # Timestamps
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = 'escalation template'
        verbose_name_plural = 'escalation templates'
        ordering = ['module', 'name']

    def __str__(self):
        return f"{self.name} ({self.get_module_display()}, v{self.version})"

    def to_dict(self):
        """JSON form of the template definition."""
        return {
            'id': str(self.pk) if self.pk else '',
            'name': self.name,
            'module': self.module,
            'description': self.description,
            'active': self.active,
            'version': self.version,
            'applicability_rules': self.applicability_rules or [],
            'hierarchy': self.hierarchy or [],
            'triggers': self.triggers or [],
            'notification_templates': self.notification_templates or {},
        }

    def to_definition(self):
        """Immutable Template evaluated by the engine."""
        return Template.from_dict(self.to_dict())


class EscalationEpisode(models.Model):
    """
    Escalation state of one (template, record) pair.

    Cancelling closes the current generation for good; a new generation is
    only started when reopening is enabled and the record left its
    completion status.
    """

    template_id = models.CharField(max_length=64)
    record_id = models.CharField(max_length=64, db_index=True)
    generation = models.PositiveIntegerField(default=1)
    cancelled = models.BooleanField(default=False)
    cancelled_at = models.DateTimeField(null=True, blank=True)

    # Timestamps
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = 'escalation episode'
        verbose_name_plural = 'escalation episodes'
        ordering = ['template_id', 'record_id']
        constraints = [
            models.UniqueConstraint(
                fields=['template_id', 'record_id'],
                name='unique_escalation_episode',
            ),
        ]

    def __str__(self):
        state = 'cancelled' if self.cancelled else 'open'
        return f"{self.template_id}/{self.record_id} #{self.generation} ({state})"


class EscalationInstance(models.Model):
    """
    Duplicate-suppression state for one level and recipient of an episode.

    `claimed_at` marks a delivery in flight; it is cleared on release and
    ignored once older than the claim timeout.
    """

    episode = models.ForeignKey(
        EscalationEpisode,
        on_delete=models.CASCADE,
        related_name='instances',
    )
    generation = models.PositiveIntegerField()
    level = models.PositiveSmallIntegerField()
    recipient_key = models.CharField(max_length=254)
    last_sent_at = models.DateTimeField(null=True, blank=True, db_index=True)
    claimed_at = models.DateTimeField(null=True, blank=True)
    cancelled = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        verbose_name = 'escalation instance'
        verbose_name_plural = 'escalation instances'
        ordering = ['episode', 'generation', 'level', 'recipient_key']
        constraints = [
            models.UniqueConstraint(
                fields=['episode', 'generation', 'level', 'recipient_key'],
                name='unique_escalation_instance',
            ),
        ]

    def __str__(self):
        return f"{self.episode} L{self.level} -> {self.recipient_key}"
