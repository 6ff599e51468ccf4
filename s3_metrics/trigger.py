"""
Trigger gate for the recorder.

Provider storage metrics are refreshed at most daily, so heartbeats only
pass at the top of the hour (UTC). Manual requests always pass.
"""

from datetime import timezone

from .models import Heartbeat, MetricsRequested


def should_run(trigger) -> bool:
    """Return True when the recorder should act on this trigger."""
    if isinstance(trigger, MetricsRequested):
        return True

    if isinstance(trigger, Heartbeat):
        when = trigger.time
        if when.tzinfo is not None:
            when = when.astimezone(timezone.utc)
        return when.minute == 0

    return False
