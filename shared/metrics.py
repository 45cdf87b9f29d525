# shared/metrics.py

from prometheus_client import Counter

ANNOUNCEMENTS_SENT = Counter(
    'rotation_scheduler_announcements_sent_total', 'Morning announcements delivered'
)
ANNOUNCEMENT_FAILURES = Counter(
    'rotation_scheduler_announcement_failures_total', 'Morning announcements that failed to deliver'
)
ROTATIONS_ADVANCED = Counter(
    'rotation_scheduler_rotations_advanced_total', 'Occurrences whose rotations were auto-advanced'
)
LOOP_TICK_ERRORS = Counter(
    'rotation_scheduler_loop_tick_errors_total', 'Background loop ticks that failed', ['loop']
)
