"""
Workflows package - Sample automations.
"""

from autoflow.workflows.lead_routing import (
    DEMO_AUTOMATION_ID,
    create_lead_routing_automation,
    register_lead_routing_automation,
)

__all__ = [
    "DEMO_AUTOMATION_ID",
    "create_lead_routing_automation",
    "register_lead_routing_automation",
]
