"""
Escalation orchestrator.

Composes rule, trigger, hierarchy, content and state components into one
processing cycle:

    for each active template
        for each record of the template's module         (worker pool)
            cancel the episode if the record is completed
            skip cancelled episodes (or start a new one, if configured)
            applicability rules
            fired levels, ascending
                recipients -> content -> claim -> deliver -> release -> log

One failing (template, record) pair is logged and never stops the batch.
simulate() runs the same evaluation without delivery and without writing
state.
"""

import logging
from collections import Counter
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field

from django.db import connections
from django.utils import timezone

from .conf import EngineConfig
from .content import ContentBuilder
from .definitions import (
    Channel, DeliveryResult, LogStatus, Module, NotificationLogEntry,
    SimulationResult, TriggerType,
)
from .exceptions import DeliveryError, InvalidReferenceDateError
from .hierarchy import HierarchyResolver
from .rules import RuleEvaluator
from .state import ClaimStatus, EscalationKey
from .triggers import TriggerEvaluator

logger = logging.getLogger(__name__)


class SimulationStatus:
    WOULD_FIRE = 'Would Fire'
    ALREADY_TRIGGERED = 'Already Triggered'
    CONDITION_MET = 'Condition Met'
    CONDITION_NOT_MET = 'Condition Not Met'
    CANCELLED = 'Cancelled'
    ERROR = 'Error'


@dataclass
class CycleSummary:
    """Counters for one processing cycle."""

    templates: int = 0
    records: int = 0
    levels_fired: int = 0
    sent: int = 0
    failed: int = 0
    duplicates: int = 0
    cancelled: int = 0
    errors: int = 0
    evicted: int = 0
    started_at: object = None
    finished_at: object = None

    def add(self, counts):
        for name, value in counts.items():
            setattr(self, name, getattr(self, name) + value)

    def as_dict(self):
        return {
            'templates': self.templates,
            'records': self.records,
            'levels_fired': self.levels_fired,
            'sent': self.sent,
            'failed': self.failed,
            'duplicates': self.duplicates,
            'cancelled': self.cancelled,
            'errors': self.errors,
            'evicted': self.evicted,
        }


_STATUS_COUNTER = {
    LogStatus.SENT: 'sent',
    LogStatus.FAILED: 'failed',
    LogStatus.DUPLICATE: 'duplicates',
    LogStatus.CANCELLED: 'cancelled',
}


@dataclass
class _PairContext:
    template: object
    record: dict
    now: object
    counts: Counter = field(default_factory=Counter)

    @property
    def record_id(self):
        return str(self.record.get('id'))


class EscalationOrchestrator:
    """
    Runs escalation cycles against an injected record store, delivery
    channel and state store.

    Args:
        store: Record store (templates_for, records_for, users_by_role, append).
        channel: Delivery channel (send_email, send_sms).
        state: EscalationStateStore.
        config: EngineConfig; defaults to EngineConfig.from_settings().
    """

    def __init__(self, store, channel, state, config=None,
                 content_builder=None, rule_evaluator=None,
                 trigger_evaluator=None, resolver=None):
        self.store = store
        self.channel = channel
        self.state = state
        self.config = config or EngineConfig.from_settings()
        self.content_builder = content_builder or ContentBuilder(self.config.base_url)
        self.rules = rule_evaluator or RuleEvaluator()
        self.triggers = trigger_evaluator or TriggerEvaluator()
        self.resolver = resolver or HierarchyResolver(store)

    # ==========================================================================
    # Processing cycle
    # ==========================================================================

    def process_escalations(self, now=None):
        """
        Run one escalation cycle.

        Args:
            now: Evaluation time (defaults to timezone.now()).

        Returns:
            CycleSummary
        """
        now = now or timezone.now()
        summary = CycleSummary(started_at=now)
        pairs = []

        for module in Module.values:
            try:
                templates = [t for t in self.store.templates_for(module) if t.active]
                if not templates:
                    continue
                records = list(self.store.records_for(module))
            except Exception:
                logger.exception(f'Failed to load templates/records for module {module}')
                summary.errors += 1
                continue

            summary.templates += len(templates)
            summary.records += len(records)
            for template in templates:
                pairs.extend(_PairContext(template, record, now) for record in records)

        for counts in self._run_pairs(pairs):
            summary.add(counts)

        summary.evicted = self.state.evict(now - self.config.instance_retention)
        summary.finished_at = timezone.now()
        logger.info(
            f'Escalation cycle at {now.isoformat()}: {summary.templates} templates, '
            f'{summary.records} records, {summary.levels_fired} levels fired, '
            f'{summary.sent} sent, {summary.failed} failed, {summary.duplicates} duplicates, '
            f'{summary.cancelled} cancelled, {summary.errors} errors'
        )
        return summary

    def _run_pairs(self, pairs):
        if self.config.max_workers <= 1 or len(pairs) <= 1:
            return [self._process_pair(pair) for pair in pairs]
        with ThreadPoolExecutor(
            max_workers=self.config.max_workers,
            thread_name_prefix='escalation',
        ) as executor:
            return list(executor.map(self._process_pair_in_worker, pairs))

    def _process_pair_in_worker(self, pair):
        try:
            return self._process_pair(pair)
        finally:
            connections.close_all()

    def _process_pair(self, pair):
        try:
            self._evaluate_pair(pair)
        except Exception:
            logger.exception(
                f'Escalation failed for template {pair.template.id}, record {pair.record_id}; '
                f'continuing with the remaining records'
            )
            pair.counts['errors'] += 1
        return pair.counts

    def _evaluate_pair(self, pair):
        template, record = pair.template, pair.record

        if self.config.is_completed(template.module, record.get('status')):
            if self.state.cancel(template.id, pair.record_id, pair.now):
                logger.info(
                    f"Escalation cancelled: {template.name} - record {pair.record_id} "
                    f"reached status {record.get('status')!r}"
                )
                self._log(pair, None, '', LogStatus.CANCELLED,
                          error=f"Record status is {record.get('status')}")
            return

        if self.state.is_cancelled(template.id, pair.record_id):
            if not self.config.reopen_starts_new_episode:
                logger.debug(f'Skipping cancelled escalation {template.id}/{pair.record_id}')
                return
            generation = self.state.start_new_episode(template.id, pair.record_id)
            logger.info(
                f'Record {pair.record_id} reopened; escalation episode {generation} '
                f'started for template {template.id}'
            )

        if not self.rules.applies(template.applicability_rules, record):
            return

        for level in self.triggers.fired_levels(template, record, pair.now):
            pair.counts['levels_fired'] += 1
            self._escalate_level(pair, level)

    def _escalate_level(self, pair, level):
        template, record = pair.template, pair.record

        hierarchy_level = template.get_level(level)
        if hierarchy_level is None:
            logger.warning(f'No hierarchy level {level} configured for template {template.id}')
            self._log(pair, level, '', LogStatus.FAILED,
                      error=f'No hierarchy level {level} configured')
            return

        resolution = self.resolver.resolve(hierarchy_level, record)
        if not resolution.routed:
            error = resolution.error()
            logger.warning(f'Routing failure for record {pair.record_id}: {error}')
            self._log(pair, level, '', LogStatus.FAILED, error=str(error))
            return

        for recipient in resolution.recipients:
            self._notify(pair, level, recipient)

    def _notify(self, pair, level, recipient):
        key = EscalationKey(pair.template.id, pair.record_id, level, recipient.identity)
        claim = self.state.claim(
            key, pair.now, self.config.suppression_window, self.config.claim_timeout,
        )
        if not claim.granted:
            status = LogStatus.CANCELLED if claim.status == ClaimStatus.CANCELLED else LogStatus.DUPLICATE
            self._log(pair, level, str(recipient), status)
            return

        delivered = False
        try:
            content = self.content_builder.build(pair.template, pair.record, level, recipient)
            results = self._deliver(recipient, content)
            delivered = any(result.success for result in results)
        finally:
            self.state.release(key, claim, pair.now, delivered)

        for result in results:
            status = LogStatus.SENT if result.success else LogStatus.FAILED
            self._log(pair, level, str(recipient), status, error=result.error, channel=result.channel)
        if delivered:
            logger.info(
                f'Escalation executed: {pair.template.name} - Level {level} - '
                f'{pair.record_id} -> {recipient}'
            )

    def _deliver(self, recipient, content):
        results = []
        if recipient.email:
            results.append(self._send(
                Channel.EMAIL, self.channel.send_email,
                recipient, content.subject, content.body, html_body=content.html_body,
            ))

        if recipient.phone and content.priority in self.config.sms_priorities:
            if len(content.sms_body) > self.config.sms_max_length:
                results.append(_failed(
                    Channel.SMS,
                    f'SMS body is {len(content.sms_body)} characters '
                    f'(limit {self.config.sms_max_length})',
                ))
            else:
                results.append(self._send(Channel.SMS, self.channel.send_sms, recipient, content.sms_body))

        if not results:
            results.append(_failed(Channel.EMAIL, 'Recipient has no email address'))
        return results

    def _send(self, channel, send, *args, **kwargs):
        try:
            return send(*args, **kwargs)
        except DeliveryError as e:
            return _failed(channel, str(e))
        except Exception as e:
            logger.exception(f'Delivery channel raised while sending {channel}')
            return _failed(channel, f'{type(e).__name__}: {e}')

    def _log(self, pair, level, recipient, status, error=None, channel=''):
        pair.counts[_STATUS_COUNTER[status]] += 1
        self.store.append(NotificationLogEntry(
            template_id=pair.template.id,
            record_id=pair.record_id,
            level=level,
            recipient=recipient,
            status=str(status),
            timestamp=pair.now,
            error=error,
            channel=str(channel),
            template_name=pair.template.name,
            module=pair.template.module,
        ))

    # ==========================================================================
    # Event-driven entry points
    # ==========================================================================

    def cancel_record(self, record_id, module='', now=None):
        """
        Cancel every open escalation for a record (e.g. it was just closed).

        Returns:
            list of template ids whose episode was cancelled
        """
        now = now or timezone.now()
        record_id = str(record_id)
        cancelled = self.state.cancel_record(record_id, now)
        if module:
            # Templates that never escalated this record still get a closed episode
            for template in self.store.templates_for(module):
                if template.id not in cancelled:
                    self.state.cancel(template.id, record_id, now)
        for template_id in cancelled:
            self.store.append(NotificationLogEntry(
                template_id=template_id,
                record_id=record_id,
                level=None,
                recipient='',
                status=str(LogStatus.CANCELLED),
                timestamp=now,
                error='Record completed',
                module=module,
            ))
            logger.info(f'Escalation cancelled for record {record_id} (template {template_id})')
        return cancelled

    def trigger_escalation(self, template, record, level, now=None):
        """
        Escalate one level for a record without evaluating triggers.

        Suppression and cancellation still apply.

        Returns:
            Counter of log statuses produced
        """
        pair = _PairContext(template, record, now or timezone.now())
        if self.state.is_cancelled(template.id, pair.record_id):
            self._log(pair, level, '', LogStatus.CANCELLED, error='Escalation already cancelled')
        else:
            self._escalate_level(pair, level)
        return pair.counts

    # ==========================================================================
    # Simulation
    # ==========================================================================

    def simulate(self, template, record, now=None):
        """
        Evaluate a template against a record without side effects.

        Returns:
            list of SimulationResult, one per trigger, levels ascending
        """
        now = now or timezone.now()
        record_id = str(record.get('id'))
        applicable = self.rules.applies(template.applicability_rules, record)
        cancelled = self.state.is_cancelled(template.id, record_id)
        results = []

        for level, triggers in template.triggers_by_level().items():
            for trigger in triggers:
                results.append(self._simulate_trigger(
                    template, record, trigger, now, applicable, cancelled,
                ))
        return results

    def _simulate_trigger(self, template, record, trigger, now, applicable, cancelled):
        level = trigger.level
        if trigger.kind not in (TriggerType.TIME, TriggerType.EVENT):
            return SimulationResult(
                level=level, kind=str(trigger.kind), status=SimulationStatus.ERROR,
                applicable=applicable, error=trigger.error,
            )
        if template.get_level(level) is None:
            return SimulationResult(
                level=level, kind=str(trigger.kind), status=SimulationStatus.ERROR,
                applicable=applicable,
                error=f'Trigger references hierarchy level {level} which does not exist',
            )

        content = self.content_builder.build(template, record, level)
        preview = {'subject': content.subject, 'sms_body': content.sms_body}

        if trigger.kind == TriggerType.TIME:
            description = _describe_time_trigger(trigger)
            if not trigger.reference_field:
                return SimulationResult(
                    level=level, kind=str(trigger.kind), status=SimulationStatus.ERROR,
                    description=description, applicable=applicable,
                    error='Time-based trigger has no reference field', **preview,
                )
            try:
                trigger_date = self.triggers.trigger_date(trigger, record, now)
            except InvalidReferenceDateError as e:
                return SimulationResult(
                    level=level, kind=str(trigger.kind), status=SimulationStatus.ERROR,
                    description=description, applicable=applicable, error=str(e), **preview,
                )
            if cancelled:
                status = SimulationStatus.CANCELLED
            elif self.triggers.fires(trigger, record, now):
                status = SimulationStatus.ALREADY_TRIGGERED
            else:
                status = SimulationStatus.WOULD_FIRE
            return SimulationResult(
                level=level, kind=str(trigger.kind), status=status,
                description=description, applicable=applicable,
                trigger_date=trigger_date, **preview,
            )

        if cancelled:
            status = SimulationStatus.CANCELLED
        elif self.triggers.fires(trigger, record, now):
            status = SimulationStatus.CONDITION_MET
        else:
            status = SimulationStatus.CONDITION_NOT_MET
        return SimulationResult(
            level=level, kind=str(trigger.kind), status=status,
            description=f'When {trigger.field} equals "{trigger.value}"',
            applicable=applicable, **preview,
        )


def _describe_time_trigger(trigger):
    if trigger.days_before:
        description = f'{trigger.days_before} day(s) before {trigger.reference_field}'
    else:
        description = f'On {trigger.reference_field}'
    if trigger.days_after:
        description += f'; {trigger.days_after} day(s) after once passed'
    return description


def _failed(channel, error):
    return DeliveryResult(success=False, channel=str(channel), error=error)
