"""
Package: delivery
Description: Webhook delivery for fired schedules.

- push: HTTP webhook sender
- retry: Retry state machine run per firing
- worker: Dispatch loop over Redis expiry notifications
"""
