"""
Scheduled tasks for notifications app.

Background jobs run by the Django-Q2 cluster:
- Escalation cycle (every PROCESSING_INTERVAL_MINUTES)
"""

import logging

logger = logging.getLogger(__name__)


def run_escalation_cycle():
    """
    Scheduled job: evaluate every active template against every record.

    Returns:
        dict: Cycle counters (stored by Django-Q2 as the task result)
    """
    from apps.escalations.services import process_escalations

    summary = process_escalations()
    logger.info(f'Scheduled escalation cycle finished: {summary.as_dict()}')
    return summary.as_dict()
