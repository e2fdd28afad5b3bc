"""
Autoflow - An event-driven marketing automation engine.

Automations pair a trigger (a lead joining a list, a link click) with a
graph of nodes: send an email, tag the subscriber, branch on a condition,
or wait. Each triggering event starts an independent run per subscriber.
"""

__version__ = "1.0.0"
