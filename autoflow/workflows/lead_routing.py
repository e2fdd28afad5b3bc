"""
Lead Routing Automation.

The sample automation registered at startup:
1. A new lead joins any list
2. Branch on the lead's country
3. Tag US and international leads differently
4. Send a personalized welcome email
5. Wait a day, then send a follow-up
"""

from typing import Optional, TYPE_CHECKING
import logging

from autoflow.engine.models import Automation, Branches, Node, Trigger

if TYPE_CHECKING:
    from autoflow.storage.base import AutomationStore


logger = logging.getLogger(__name__)

DEMO_AUTOMATION_ID = "lead-routing-demo"


def create_lead_routing_automation(
    automation_id: str = DEMO_AUTOMATION_ID,
    home_country: str = "US",
    follow_up_days: int = 1,
    list_id: Optional[str] = None,
) -> Automation:
    """
    Create the lead routing automation.

    Flow:
    ```
    new_lead → is_home ─┬─→ tag_home ──┬─→ welcome → wait → follow_up → end
                        │              │
                        └─→ tag_intl ──┘
    ```

    Args:
        automation_id: Id to store the automation under
        home_country: Country routed to the "home" branch
        follow_up_days: Days to wait before the follow-up email
        list_id: Only leads joining this list trigger the automation

    Returns:
        Automation document
    """
    trigger_params = {"listId": list_id} if list_id else {}

    return Automation(
        id=automation_id,
        name="Lead Routing Demo",
        trigger=Trigger(id="trigger", type="new_lead", params=trigger_params),
        start_node_id="is_home",
        nodes=[
            Node(
                id="is_home",
                type="condition",
                label=f"Lead from {home_country}?",
                params={"field": "country", "operator": "==", "value": home_country},
                branches=Branches(true="tag_home", false="tag_intl"),
            ),
            Node(
                id="tag_home",
                type="tag",
                label="Tag home lead",
                params={"tag": f"{home_country.lower()}-lead"},
                next="welcome",
            ),
            Node(
                id="tag_intl",
                type="action",
                label="Tag international lead",
                params={"action": "tag", "tag": "intl-lead"},
                next="welcome",
            ),
            Node(
                id="welcome",
                type="email",
                label="Welcome email",
                params={
                    "subject": "Welcome, @Sub Name!",
                    "html": "<p>Hi @Sub Name, thanks for signing up.</p>",
                },
                next="wait",
            ),
            Node(
                id="wait",
                type="delay",
                label=f"Wait {follow_up_days} day(s)",
                params={"delayType": "period", "delayAmount": follow_up_days, "delayUnit": "Days"},
                next="follow_up",
            ),
            Node(
                id="follow_up",
                type="email",
                label="Follow-up email",
                params={
                    "subject": "Anything we can help with?",
                    "html": "<p>Hi @Sub Name, just checking in.</p>",
                },
                next="end",
            ),
            Node(id="end", type="end", label="Done"),
        ],
    )


async def register_lead_routing_automation(automations: "AutomationStore") -> Automation:
    """
    Register the lead routing automation in storage.

    This makes the automation live immediately: the next new_lead event
    starts a run for it.
    """
    automation = create_lead_routing_automation()
    await automations.save(automation)

    logger.info(f"Registered Lead Routing automation with ID: {DEMO_AUTOMATION_ID}")
    return automation


# ============================================================
# Example Usage
# ============================================================

async def run_lead_routing_demo():
    """
    Demo function publishing one new lead and printing the log.

    Usage:
        import asyncio
        from autoflow.workflows.lead_routing import run_lead_routing_demo
        asyncio.run(run_lead_routing_demo())
    """
    from autoflow.runtime import build_runtime

    runtime = build_runtime()
    runtime.start(run_scheduler=False)
    await register_lead_routing_automation(runtime.automations)

    runtime.bus.publish(
        "new_lead",
        {"subscriberId": "sub-1", "email": "ada@example.com", "name": "Ada", "country": "FR"},
    )
    await runtime.matcher.drain()

    print("Automation log:")
    for entry in await runtime.logs.list_by_automation(DEMO_AUTOMATION_ID):
        print(f"  [{entry.status.value}] {entry.node_id}: {entry.output}")
    print(f"\nEmails sent: {len(runtime.email_sender.sent)}")

    await runtime.stop()


if __name__ == "__main__":
    import asyncio
    asyncio.run(run_lead_routing_demo())
