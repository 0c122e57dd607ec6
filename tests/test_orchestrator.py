"""
Escalation processing cycles, event entry points and simulation.
"""

import threading
from datetime import timedelta

from django.test import SimpleTestCase

from apps.escalations.definitions import LogStatus
from apps.escalations.exceptions import DeliveryError
from apps.escalations.orchestrator import SimulationStatus
from apps.escalations.state import InMemoryEscalationStateStore

from .helpers import DANA, LEE, NOW, SAM, FakeChannel, build, make_record, make_template

ALL_LEVELS = [
    {'type': 'event-based', 'level': 1, 'field': 'status', 'value': 'Open'},
    {'type': 'event-based', 'level': 2, 'field': 'priority', 'value': 'Critical'},
    {'type': 'event-based', 'level': 3, 'field': 'status', 'value': 'Open'},
]


class ProcessEscalationsTests(SimpleTestCase):

    def test_first_cycle_sends_and_logs(self):
        orchestrator, store, channel, _state = build()

        summary = orchestrator.process_escalations(now=NOW)

        self.assertEqual(summary.templates, 1)
        self.assertEqual(summary.records, 1)
        self.assertEqual(summary.levels_fired, 1)
        self.assertEqual(summary.sent, 1)
        self.assertEqual(summary.errors, 0)

        self.assertEqual(len(channel.emails), 1)
        email, subject, body, html_body = channel.emails[0]
        self.assertEqual(email, 'dana.reyes@example.com')
        self.assertEqual(subject, 'REMINDER: Incident INC-2025-001: Chemical Spill in Lab A')
        self.assertIn('http://localhost:8000/ehs/record/INC-2025-001?ref=escalation', body)
        self.assertIn('View Record INC-2025-001', html_body)
        # Level 1 is not critical
        self.assertEqual(channel.sms, [])

        entry = store.log[0]
        self.assertEqual(entry.template_id, '1')
        self.assertEqual(entry.template_name, 'Critical Incident Escalation')
        self.assertEqual(entry.module, 'incidents')
        self.assertEqual(entry.record_id, 'INC-2025-001')
        self.assertEqual(entry.level, 1)
        self.assertEqual(entry.recipient, 'dana.reyes@example.com')
        self.assertEqual(entry.status, LogStatus.SENT)
        self.assertEqual(entry.channel, 'email')
        self.assertEqual(entry.timestamp, NOW)
        self.assertIsNone(entry.error)

    def test_repeat_cycles_inside_window_are_logged_as_duplicates(self):
        orchestrator, store, channel, _state = build()

        orchestrator.process_escalations(now=NOW)
        summary = orchestrator.process_escalations(now=NOW + timedelta(minutes=15))
        orchestrator.process_escalations(now=NOW + timedelta(hours=23))

        self.assertEqual(len(channel.emails), 1)
        self.assertEqual(summary.duplicates, 1)
        self.assertEqual(summary.sent, 0)
        self.assertEqual(len(store.entries(LogStatus.DUPLICATE)), 2)

    def test_sends_again_once_the_window_has_passed(self):
        orchestrator, store, channel, _state = build()

        orchestrator.process_escalations(now=NOW)
        orchestrator.process_escalations(now=NOW + timedelta(hours=12))
        orchestrator.process_escalations(now=NOW + timedelta(hours=24))

        self.assertEqual(len(channel.emails), 2)
        self.assertEqual(len(store.entries(LogStatus.SENT)), 2)

    def test_custom_suppression_window(self):
        orchestrator, _store, channel, _state = build(suppression_window=timedelta(hours=1))

        orchestrator.process_escalations(now=NOW)
        orchestrator.process_escalations(now=NOW + timedelta(hours=1))

        self.assertEqual(len(channel.emails), 2)

    def test_failed_delivery_is_logged_and_retried_next_cycle(self):
        orchestrator, store, channel, _state = build(channel=FakeChannel(fail_email=True))

        summary = orchestrator.process_escalations(now=NOW)
        self.assertEqual(summary.failed, 1)
        failed = store.entries(LogStatus.FAILED)
        self.assertEqual(len(failed), 1)
        self.assertEqual(failed[0].error, 'SMTP server unavailable')

        channel.fail_email = False
        orchestrator.process_escalations(now=NOW + timedelta(minutes=15))
        self.assertEqual(len(channel.emails), 2)
        self.assertEqual(len(store.entries(LogStatus.SENT)), 1)

    def test_channel_exceptions_become_failed_entries(self):
        class BrokenChannel(FakeChannel):
            def send_email(self, recipient, subject, body, html_body=None):
                raise RuntimeError('connection reset')

        orchestrator, store, _channel, _state = build(channel=BrokenChannel())

        with self.assertLogs('apps.escalations.orchestrator', level='ERROR'):
            summary = orchestrator.process_escalations(now=NOW)

        self.assertEqual(summary.failed, 1)
        self.assertEqual(summary.errors, 0)
        self.assertEqual(store.log[0].error, 'RuntimeError: connection reset')

    def test_delivery_errors_keep_their_message(self):
        class RejectingChannel(FakeChannel):
            def send_email(self, recipient, subject, body, html_body=None):
                raise DeliveryError('Mailbox unavailable')

        orchestrator, store, _channel, _state = build(channel=RejectingChannel())
        orchestrator.process_escalations(now=NOW)

        self.assertEqual(store.log[0].status, LogStatus.FAILED)
        self.assertEqual(store.log[0].error, 'Mailbox unavailable')

    def test_levels_escalate_in_order_with_framing(self):
        template = make_template(triggers=ALL_LEVELS)
        orchestrator, store, channel, _state = build(templates=[template])

        summary = orchestrator.process_escalations(now=NOW)

        self.assertEqual(summary.levels_fired, 3)
        self.assertEqual([email for email, *_ in channel.emails], [DANA.email, SAM.email, LEE.email])
        self.assertEqual(
            [subject.split(' ')[0] for subject in channel.subjects],
            ['REMINDER:', 'FOLLOW-UP:', 'URGENT:'],
        )
        self.assertEqual([entry.level for entry in store.entries(LogStatus.SENT)], [1, 2, 3, 3])

    def test_sms_only_for_critical_levels_and_recipients_with_phone(self):
        template = make_template(triggers=ALL_LEVELS)
        orchestrator, store, channel, _state = build(templates=[template])

        orchestrator.process_escalations(now=NOW)

        # Dana (level 1) has a phone but the level is not critical; Sam has no phone
        self.assertEqual(channel.sms, [(LEE.phone, 'URGENT: Incident INC-2025-001 at Laboratory A')])
        sms_entries = [entry for entry in store.log if entry.channel == 'sms']
        self.assertEqual(len(sms_entries), 1)
        self.assertEqual(sms_entries[0].recipient, LEE.email)

    def test_sms_priorities_are_configurable(self):
        template = make_template(triggers=ALL_LEVELS)
        orchestrator, _store, channel, _state = build(
            templates=[template], sms_priorities=('high', 'critical'),
        )
        orchestrator.process_escalations(now=NOW)

        self.assertEqual([phone for phone, _body in channel.sms], [LEE.phone])

        template = make_template(triggers=ALL_LEVELS)
        orchestrator, _store, channel, _state = build(
            templates=[template], sms_priorities=('normal',),
        )
        orchestrator.process_escalations(now=NOW)
        self.assertEqual([phone for phone, _body in channel.sms], [DANA.phone])

    def test_over_length_sms_is_not_sent_and_logged_as_failed(self):
        template = make_template(
            triggers=[{'type': 'event-based', 'level': 3, 'field': 'status', 'value': 'Open'}],
            notification_templates={
                'email': {'subject': 'Incident {{id}}', 'body': '{{description}}'},
                'sms': '{{description}}',
            },
        )
        record = make_record(description='x' * 200)
        orchestrator, store, channel, _state = build(templates=[template], records=[record])

        orchestrator.process_escalations(now=NOW)

        self.assertEqual(channel.sms, [])
        self.assertEqual(len(channel.emails), 1)
        failed = store.entries(LogStatus.FAILED)
        self.assertEqual(len(failed), 1)
        self.assertEqual(failed[0].channel, 'sms')
        self.assertIn('limit 160', failed[0].error)

    def test_fallback_recipient_is_notified(self):
        orchestrator, store, channel, _state = build(users=())

        with self.assertLogs('apps.escalations.hierarchy', level='WARNING'):
            orchestrator.process_escalations(now=NOW)

        self.assertEqual([email for email, *_ in channel.emails], ['ehs-team@example.com'])
        self.assertEqual(store.log[0].recipient, 'ehs-team@example.com')

    def test_routing_failure_is_logged_as_failed(self):
        template = make_template(
            triggers=[{'type': 'event-based', 'level': 2, 'field': 'status', 'value': 'Open'}],
        )
        orchestrator, store, channel, _state = build(templates=[template], users=(DANA,))

        summary = orchestrator.process_escalations(now=NOW)

        self.assertEqual(channel.emails, [])
        self.assertEqual(summary.failed, 1)
        entry = store.log[0]
        self.assertEqual(entry.status, LogStatus.FAILED)
        self.assertEqual(entry.level, 2)
        self.assertEqual(entry.recipient, '')
        self.assertIn('No recipients for level 2', entry.error)

    def test_trigger_for_unconfigured_level_is_logged_as_failed(self):
        template = make_template(
            triggers=[{'type': 'event-based', 'level': 4, 'field': 'status', 'value': 'Open'}],
        )
        orchestrator, store, _channel, _state = build(templates=[template])

        orchestrator.process_escalations(now=NOW)

        self.assertEqual(store.log[0].status, LogStatus.FAILED)
        self.assertEqual(store.log[0].error, 'No hierarchy level 4 configured')

    def test_rules_filter_records(self):
        records = [make_record(), make_record(id='INC-2025-002', priority='Low')]
        orchestrator, _store, channel, _state = build(records=records)

        summary = orchestrator.process_escalations(now=NOW)

        self.assertEqual(summary.records, 2)
        self.assertEqual(summary.levels_fired, 1)
        self.assertEqual(channel.subjects, ['REMINDER: Incident INC-2025-001: Chemical Spill in Lab A'])

    def test_inactive_templates_are_ignored(self):
        orchestrator, store, channel, _state = build(templates=[make_template(active=False)])

        summary = orchestrator.process_escalations(now=NOW)

        self.assertEqual(summary.templates, 0)
        self.assertEqual(channel.emails, [])
        self.assertEqual(store.log, [])

    def test_one_failing_pair_does_not_stop_the_batch(self):
        class FlakyState(InMemoryEscalationStateStore):
            def is_cancelled(self, template_id, record_id):
                if record_id == 'INC-BAD':
                    raise RuntimeError('state backend unavailable')
                return super().is_cancelled(template_id, record_id)

        records = [make_record(id='INC-BAD'), make_record(id='INC-2025-002')]
        orchestrator, _store, channel, _state = build(records=records)
        orchestrator.state = FlakyState()

        with self.assertLogs('apps.escalations.orchestrator', level='ERROR') as logs:
            summary = orchestrator.process_escalations(now=NOW)

        self.assertEqual(summary.errors, 1)
        self.assertEqual(summary.sent, 1)
        self.assertEqual(channel.subjects, ['REMINDER: Incident INC-2025-002: Chemical Spill in Lab A'])
        self.assertIn('INC-BAD', logs.output[0])

    def test_failing_module_load_is_counted_and_skipped(self):
        orchestrator, store, channel, _state = build()

        def broken_records(module):
            raise RuntimeError('database unavailable')

        store.records_for = broken_records
        with self.assertLogs('apps.escalations.orchestrator', level='ERROR'):
            summary = orchestrator.process_escalations(now=NOW)

        self.assertEqual(summary.errors, 1)
        self.assertEqual(channel.emails, [])

    def test_worker_pool_processes_every_record_once(self):
        records = [make_record(id=f'INC-2025-{n:03d}') for n in range(1, 21)]
        orchestrator, store, channel, _state = build(records=records, max_workers=4)

        first = orchestrator.process_escalations(now=NOW)
        second = orchestrator.process_escalations(now=NOW + timedelta(hours=1))

        self.assertEqual(first.sent, 20)
        self.assertEqual(len(channel.emails), 20)
        self.assertEqual(len(set(channel.subjects)), 20)
        self.assertEqual(second.duplicates, 20)
        self.assertEqual(len(store.log), 40)

    def test_overlapping_cycles_send_each_notification_once(self):
        records = [make_record(id=f'INC-2025-{n:03d}') for n in range(1, 6)]
        orchestrator, store, channel, _state = build(records=records, max_workers=2)
        cycles = 4
        barrier = threading.Barrier(cycles)

        def run():
            barrier.wait()
            orchestrator.process_escalations(now=NOW)

        threads = [threading.Thread(target=run) for _ in range(cycles)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        self.assertEqual(len(channel.emails), 5)
        self.assertEqual(len(store.entries(LogStatus.SENT)), 5)
        self.assertEqual(len(store.entries(LogStatus.DUPLICATE)), 15)

    def test_expired_instances_are_evicted(self):
        orchestrator, _store, _channel, state = build()

        orchestrator.process_escalations(now=NOW)
        orchestrator.store.records['incidents'][0]['status'] = 'Under Investigation'
        summary = orchestrator.process_escalations(now=NOW + timedelta(days=8))

        self.assertEqual(summary.evicted, 1)
        self.assertEqual(state.snapshot('1', 'INC-2025-001'), [])


class CancellationTests(SimpleTestCase):

    def setUp(self):
        self.orchestrator, self.store, self.channel, self.state = build()
        self.orchestrator.process_escalations(now=NOW)
        self.record = self.store.records['incidents'][0]

    def test_completed_record_cancels_once(self):
        self.record['status'] = 'Closed'

        summary = self.orchestrator.process_escalations(now=NOW + timedelta(hours=1))
        self.orchestrator.process_escalations(now=NOW + timedelta(days=2))

        self.assertEqual(summary.cancelled, 1)
        cancelled = self.store.entries(LogStatus.CANCELLED)
        self.assertEqual(len(cancelled), 1)
        self.assertIsNone(cancelled[0].level)
        self.assertEqual(cancelled[0].error, 'Record status is Closed')
        self.assertTrue(self.state.is_cancelled('1', 'INC-2025-001'))

    def test_completion_status_match_is_case_insensitive(self):
        self.record['status'] = 'resolved'
        self.orchestrator.process_escalations(now=NOW + timedelta(hours=1))
        self.assertTrue(self.state.is_cancelled('1', 'INC-2025-001'))

    def test_cancellation_is_terminal_when_record_reopens(self):
        self.record['status'] = 'Closed'
        self.orchestrator.process_escalations(now=NOW + timedelta(hours=1))

        self.record['status'] = 'Open'
        summary = self.orchestrator.process_escalations(now=NOW + timedelta(days=2))

        self.assertEqual(summary.levels_fired, 0)
        self.assertEqual(len(self.channel.emails), 1)

    def test_reopen_starts_a_new_episode_when_configured(self):
        orchestrator, store, channel, state = build(reopen_starts_new_episode=True)
        orchestrator.process_escalations(now=NOW)
        record = store.records['incidents'][0]

        record['status'] = 'Closed'
        orchestrator.process_escalations(now=NOW + timedelta(hours=1))
        record['status'] = 'Open'
        orchestrator.process_escalations(now=NOW + timedelta(hours=2))

        self.assertEqual(len(channel.emails), 2)
        self.assertEqual(
            [(s.generation, s.cancelled) for s in state.snapshot('1', 'INC-2025-001')],
            [(1, True), (2, False)],
        )

    def test_completed_record_without_history_is_closed_without_log(self):
        orchestrator, store, channel, state = build(records=[make_record(status='Closed')])

        summary = orchestrator.process_escalations(now=NOW)

        self.assertEqual(summary.cancelled, 0)
        self.assertEqual(store.log, [])
        self.assertEqual(channel.emails, [])
        self.assertTrue(state.is_cancelled('1', 'INC-2025-001'))

    def test_record_completed_before_first_escalation_stays_quiet_when_reopened(self):
        orchestrator, store, channel, _state = build(records=[make_record(status='Closed')])
        orchestrator.process_escalations(now=NOW)

        store.records['incidents'][0]['status'] = 'Open'
        summary = orchestrator.process_escalations(now=NOW + timedelta(hours=1))

        self.assertEqual(summary.levels_fired, 0)
        self.assertEqual(store.entries(LogStatus.SENT), [])
        self.assertEqual(channel.emails, [])

    def test_cancel_record_closes_templates_that_never_escalated(self):
        orchestrator, store, channel, state = build()

        self.assertEqual(orchestrator.cancel_record('INC-2025-001', module='incidents', now=NOW), [])
        self.assertTrue(state.is_cancelled('1', 'INC-2025-001'))

        orchestrator.process_escalations(now=NOW + timedelta(hours=1))
        self.assertEqual(channel.emails, [])
        self.assertEqual(store.log, [])

    def test_cancel_record_entry_point(self):
        cancelled = self.orchestrator.cancel_record('INC-2025-001', module='incidents', now=NOW)

        self.assertEqual(cancelled, ['1'])
        entry = self.store.entries(LogStatus.CANCELLED)[0]
        self.assertEqual(entry.error, 'Record completed')
        self.assertEqual(entry.module, 'incidents')
        self.assertEqual(self.orchestrator.cancel_record('INC-2025-001', now=NOW), [])

        self.orchestrator.process_escalations(now=NOW + timedelta(days=2))
        self.assertEqual(len(self.channel.emails), 1)


class TriggerEscalationTests(SimpleTestCase):

    def test_escalates_a_single_level_on_demand(self):
        orchestrator, _store, channel, _state = build()
        template, record = make_template(), make_record()

        counts = orchestrator.trigger_escalation(template, record, 2, now=NOW)
        again = orchestrator.trigger_escalation(template, record, 2, now=NOW + timedelta(hours=1))

        self.assertEqual(counts['sent'], 1)
        self.assertEqual(again['duplicates'], 1)
        self.assertEqual(channel.subjects, ['FOLLOW-UP: Incident INC-2025-001: Chemical Spill in Lab A'])
        self.assertEqual(channel.emails[0][0], SAM.email)

    def test_cancelled_pair_is_not_escalated(self):
        orchestrator, store, channel, state = build()
        orchestrator.process_escalations(now=NOW)
        state.cancel('1', 'INC-2025-001', NOW)

        counts = orchestrator.trigger_escalation(make_template(), make_record(), 3, now=NOW)

        self.assertEqual(counts['cancelled'], 1)
        self.assertEqual(len(channel.emails), 1)
        self.assertEqual(store.log[-1].error, 'Escalation already cancelled')


class SimulateTests(SimpleTestCase):

    def setUp(self):
        self.template = make_template(triggers=[
            {'type': 'event-based', 'level': 3, 'field': 'status', 'value': 'Open'},
            {'type': 'time-based', 'level': 1, 'reference_field': 'dueDate', 'days_before': 2},
            {'type': 'event-based', 'level': 2, 'field': 'status', 'value': 'Overdue'},
            {'type': 'time-based', 'level': 2, 'reference_field': 'inspectionDate', 'days_after': 1},
        ])
        self.record = make_record(dueDate='2025-12-20T17:00:00Z', inspectionDate='2025-02-30')
        self.orchestrator, self.store, self.channel, self.state = build(templates=[self.template])

    def test_reports_every_trigger_in_level_order(self):
        results = self.orchestrator.simulate(self.template, self.record, now=NOW)

        self.assertEqual([r.level for r in results], [1, 2, 2, 3])
        self.assertEqual(
            [r.status for r in results],
            [
                SimulationStatus.WOULD_FIRE,
                SimulationStatus.CONDITION_NOT_MET,
                SimulationStatus.ERROR,
                SimulationStatus.CONDITION_MET,
            ],
        )
        would_fire = results[0]
        self.assertEqual(would_fire.description, '2 day(s) before dueDate')
        self.assertEqual(would_fire.trigger_date.isoformat(), '2025-12-18T17:00:00+00:00')
        self.assertEqual(would_fire.subject, 'REMINDER: Incident INC-2025-001: Chemical Spill in Lab A')
        self.assertIn('inspectionDate', results[2].error)
        self.assertEqual(results[3].sms_body, 'URGENT: Incident INC-2025-001 at Laboratory A')
        self.assertTrue(all(r.applicable for r in results))

    def test_past_reference_date_is_already_triggered(self):
        record = make_record(dueDate='2025-12-10T09:00:00Z', inspectionDate='2025-12-01')
        results = self.orchestrator.simulate(self.template, record, now=NOW)

        self.assertEqual(results[0].status, SimulationStatus.ALREADY_TRIGGERED)
        self.assertEqual(results[2].status, SimulationStatus.ALREADY_TRIGGERED)

    def test_has_no_side_effects_and_is_repeatable(self):
        first = self.orchestrator.simulate(self.template, self.record, now=NOW)
        second = self.orchestrator.simulate(self.template, self.record, now=NOW)

        self.assertEqual(first, second)
        self.assertEqual(self.channel.emails, [])
        self.assertEqual(self.channel.sms, [])
        self.assertEqual(self.store.log, [])
        self.assertEqual(self.state.snapshot('1', 'INC-2025-001'), [])

    def test_reports_rule_applicability(self):
        results = self.orchestrator.simulate(self.template, make_record(priority='Low'), now=NOW)
        self.assertFalse(any(r.applicable for r in results))

    def test_cancelled_pair(self):
        self.orchestrator.process_escalations(now=NOW)
        self.state.cancel('1', 'INC-2025-001', NOW)

        results = self.orchestrator.simulate(self.template, self.record, now=NOW)

        self.assertEqual(
            [r.status for r in results],
            [
                SimulationStatus.CANCELLED,
                SimulationStatus.CANCELLED,
                SimulationStatus.ERROR,
                SimulationStatus.CANCELLED,
            ],
        )

    def test_trigger_for_missing_level_is_an_error(self):
        template = make_template(triggers=[
            {'type': 'event-based', 'level': 5, 'field': 'status', 'value': 'Open'},
            {'type': 'sla-based', 'level': 1},
        ])
        results = self.orchestrator.simulate(template, self.record, now=NOW)

        self.assertEqual([r.status for r in results], [SimulationStatus.ERROR] * 2)
        self.assertIn('Unknown trigger type', results[0].error)
        self.assertIn('level 5', results[1].error)
