"""
Notification content: placeholders and level framing.
"""

from django.test import SimpleTestCase

from apps.escalations.content import ContentBuilder, interpolate, level_framing

from .helpers import DANA, make_record, make_template


class InterpolateTests(SimpleTestCase):

    def test_known_placeholders_are_replaced(self):
        text = interpolate('{{id}} at {{ location }}', {'id': 'INC-1', 'location': 'Lab A'})
        self.assertEqual(text, 'INC-1 at Lab A')

    def test_unknown_placeholders_are_left_untouched(self):
        self.assertEqual(interpolate('Owner: {{owner}}', {'id': 'INC-1'}), 'Owner: {{owner}}')

    def test_dotted_placeholders(self):
        context = {'location': {'site': 'North Plant'}}
        self.assertEqual(interpolate('Site {{location.site}}', context), 'Site North Plant')

    def test_non_string_values(self):
        context = {'injury': True, 'count': 3}
        self.assertEqual(interpolate('{{injury}}/{{count}}', context), 'true/3')

    def test_empty_text(self):
        self.assertEqual(interpolate('', {'id': 'INC-1'}), '')
        self.assertEqual(interpolate(None, {'id': 'INC-1'}), '')


class LevelFramingTests(SimpleTestCase):

    def test_prefix_and_priority_per_level(self):
        expected = {
            1: ('REMINDER:', 'normal'),
            2: ('FOLLOW-UP:', 'high'),
            3: ('URGENT:', 'critical'),
            4: ('EMERGENCY:', 'critical'),
            7: ('EMERGENCY:', 'critical'),
        }
        for level, (prefix, priority) in expected.items():
            with self.subTest(level=level):
                framing = level_framing(level)
                self.assertEqual(framing[0], prefix)
                self.assertEqual(framing[1], priority)


class ContentBuilderTests(SimpleTestCase):

    def setUp(self):
        self.builder = ContentBuilder(base_url='https://ehs.example.com/')
        self.template = make_template()
        self.record = make_record()

    def test_subject_body_and_sms(self):
        content = self.builder.build(self.template, self.record, 1)

        self.assertEqual(content.subject, 'REMINDER: Incident INC-2025-001: Chemical Spill in Lab A')
        self.assertEqual(content.sms_body, 'REMINDER: Incident INC-2025-001 at Laboratory A')
        self.assertIn('Please review INC-2025-001 at Laboratory A.', content.body)
        self.assertEqual(content.priority, 'normal')
        self.assertEqual(content.level, 1)

    def test_action_url_placeholder(self):
        content = self.builder.build(self.template, self.record, 1)

        self.assertEqual(
            content.action_url,
            'https://ehs.example.com/ehs/record/INC-2025-001?ref=escalation',
        )
        self.assertIn(content.action_url, content.body)

    def test_recipient_name_placeholder(self):
        template = make_template(notification_templates={
            'email': {'subject': 'For {{recipientName}}', 'body': 'Hi {{recipientName}}'},
            'sms': 'Hi {{recipientName}}',
        })
        with_recipient = self.builder.build(template, self.record, 2, DANA)
        without = self.builder.build(template, self.record, 2)

        self.assertEqual(with_recipient.subject, 'FOLLOW-UP: For Dana Reyes')
        self.assertEqual(without.subject, 'FOLLOW-UP: For {{recipientName}}')

    def test_sms_is_not_truncated(self):
        template = make_template(notification_templates={
            'email': {'subject': 's', 'body': 'b'},
            'sms': '{{description}}',
        })
        record = make_record(description='x' * 300)
        content = self.builder.build(template, record, 3)
        self.assertEqual(len(content.sms_body), len('URGENT: ') + 300)

    def test_html_body_wraps_text(self):
        first = self.builder.build(self.template, self.record, 1)
        second = self.builder.build(self.template, self.record, 2)

        self.assertIn('View Record INC-2025-001', first.html_body)
        self.assertIn(first.action_url, first.html_body)
        self.assertNotIn('Escalation Level', first.html_body)
        self.assertIn('Escalation Level 2', second.html_body)
        self.assertIn('<br>', second.html_body)
