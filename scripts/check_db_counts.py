from sqlmodel import Session, select, func
from app.db import engine
from app.models.subscription import Subscription, SubscriptionStatus
from app.models.webhook_event import WebhookEvent
from app.services.webhook_ledger import list_unprocessed_events

def check_data():
    with Session(engine) as session:
        event_count = session.exec(select(func.count(WebhookEvent.id))).one()
        processed_count = session.exec(
            select(func.count(WebhookEvent.id)).where(WebhookEvent.processed == True)  # noqa: E712
        ).one()
        active_count = session.exec(
            select(func.count(Subscription.id)).where(Subscription.status == SubscriptionStatus.ACTIVE)
        ).one()
        subscription_count = session.exec(select(func.count(Subscription.id))).one()

        print(f"WebhookEvents: {event_count} ({processed_count} processed)")
        print(f"Subscriptions: {subscription_count} ({active_count} active)")

        unprocessed = list_unprocessed_events(session, limit=20)
        if unprocessed:
            print("\nUnprocessed webhook events (newest first):")
            for event in unprocessed:
                print(f"  {event.created_at:%Y-%m-%d %H:%M:%S}  {event.event_type:<28} {event.event_id}  {event.error_message or '-'}")

if __name__ == "__main__":
    check_data()
