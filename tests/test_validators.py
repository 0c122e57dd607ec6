"""
Template validation.
"""

from django.core.exceptions import ValidationError
from django.test import SimpleTestCase

from apps.escalations.validators import check_template, validate_template

from .helpers import template_data


class ValidateTemplateTests(SimpleTestCase):

    def test_valid_template_has_no_errors(self):
        self.assertEqual(validate_template(template_data()), [])

    def test_name_rules(self):
        cases = {
            '': 'Template name is required',
            '   ': 'Template name is required',
            'x' * 101: 'Template name must be less than 100 characters',
            'Spill <script>': 'Template name contains invalid characters',
        }
        for name, message in cases.items():
            with self.subTest(name=name):
                self.assertIn(message, validate_template(template_data(name=name)))

        self.assertEqual(validate_template(template_data(name='Permit Expiry - Hot Work (v2)')), [])

    def test_module_and_description(self):
        errors = validate_template(template_data(module='inspections', description='d' * 501))
        self.assertIn('Valid module type is required', errors)
        self.assertIn('Description must be less than 500 characters', errors)

    def test_rules(self):
        errors = validate_template(template_data(applicability_rules=[
            {'field': '', 'operator': 'equals', 'value': 'Critical'},
            {'field': 'priority', 'operator': 'startsWith', 'value': 'C'},
            {'field': 'priority', 'operator': 'contains'},
            {'field': 'owner', 'operator': 'isEmpty', 'logic': 'XOR'},
        ]))
        self.assertEqual(errors, [
            'Rule 1: Field is required',
            'Rule 2: Valid operator is required',
            'Rule 3: Value is required',
            'Rule 4: Logic must be AND or OR',
        ])

    def test_operators_without_values(self):
        data = template_data(applicability_rules=[
            {'field': 'owner', 'operator': 'isEmpty'},
            {'field': 'location', 'operator': 'isNotEmpty', 'logic': 'OR'},
        ])
        self.assertEqual(validate_template(data), [])

    def test_hierarchy(self):
        errors = validate_template(template_data(
            hierarchy=[
                {'level': 1, 'roles': ['direct-manager']},
                {'level': 1, 'roles': ['department-head']},
                {'level': 0, 'roles': ['site-manager']},
                {'level': 3, 'roles': []},
                {'level': 4, 'roles': [], 'fallback_email': 'not-an-email'},
            ],
            triggers=[{'type': 'event-based', 'level': 1, 'field': 'status', 'value': 'Open'}],
        ))
        self.assertEqual(errors, [
            'Hierarchy level 2: Level 1 is defined more than once',
            'Hierarchy level 3: Valid level number is required',
            'Hierarchy level 4: Roles or fallback email is required',
            'Hierarchy level 5: Invalid fallback email format',
        ])

    def test_hierarchy_is_required(self):
        self.assertIn('At least one hierarchy level is required', validate_template(template_data(hierarchy=[])))

    def test_fallback_only_level_is_valid(self):
        data = template_data(hierarchy=[{'level': 1, 'roles': [], 'fallback_email': 'ehs@example.com'}])
        self.assertEqual(validate_template(data), [])

    def test_triggers(self):
        errors = validate_template(template_data(triggers=[
            {'type': 'sla-based', 'level': 1},
            {'type': 'event-based', 'level': 9, 'field': 'status', 'value': 'Open'},
            {'type': 'time-based', 'level': 1, 'days_before': -1, 'days_after': 1.5},
            {'type': 'event-based', 'level': 2},
        ]))
        self.assertEqual(errors, [
            'Trigger 1: Valid trigger type is required',
            'Trigger 2: Level 9 does not exist in the hierarchy',
            'Trigger 3: Reference field is required for time-based triggers',
            'Trigger 3: days_before must be a whole number of days (0 or more)',
            'Trigger 3: days_after must be a whole number of days (0 or more)',
            'Trigger 4: Field is required for event-based triggers',
            'Trigger 4: Value is required for event-based triggers',
        ])

    def test_time_trigger_offsets_are_optional(self):
        data = template_data(triggers=[
            {'type': 'time-based', 'level': 1, 'reference_field': 'dueDate'},
            {'type': 'time-based', 'level': 2, 'reference_field': 'dueDate', 'days_before': None, 'days_after': 3},
        ])
        self.assertEqual(validate_template(data), [])

    def test_triggers_are_required(self):
        self.assertIn('At least one trigger is required', validate_template(template_data(triggers=[])))

    def test_notification_templates(self):
        errors = validate_template(template_data(notification_templates={
            'email': {'subject': '', 'body': ''},
            'sms': 's' * 161,
        }))
        self.assertEqual(errors, [
            'Email subject is required',
            'Email body is required',
            'SMS body must be at most 160 characters',
        ])
        self.assertIn(
            'Notification templates are required',
            validate_template(template_data(notification_templates={})),
        )

    def test_sms_limit_is_configurable(self):
        data = template_data(notification_templates={
            'email': {'subject': 's', 'body': 'b'},
            'sms': 's' * 100,
        })
        self.assertEqual(validate_template(data, sms_max_length=100), [])
        self.assertEqual(
            validate_template(data, sms_max_length=80),
            ['SMS body must be at most 80 characters'],
        )

    def test_check_template_raises_with_every_message(self):
        data = template_data(name='', module='inspections')
        with self.assertRaises(ValidationError) as ctx:
            check_template(data)
        self.assertEqual(ctx.exception.messages, ['Template name is required', 'Valid module type is required'])
