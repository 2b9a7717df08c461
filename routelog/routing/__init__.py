"""routelog notification routing — external alerts for critical entries.

Critical entries, once persisted locally, are offered to a ``Notifier``
through the ``NotificationCircuitBreaker``.  Delivery is best-effort: failures
feed the breaker, land in the ``slack`` fallback store, and are retried later
by the ``DelayedTaskScheduler``.  They never fail the originating log call.
"""
