"""
Notification delivery for escalations.

Components:
- templates: Built-in escalation templates and {{placeholder}} rendering
- channels: Email / SMS / WhatsApp / push senders and the multi-channel notifier
- resilience: Retry with exponential backoff
"""
