def serialize_subscription(subscription) -> dict | None:
    if subscription is None:
        return None

    return {
        "subscription_id": subscription.id,
        "owner_id": subscription.owner_id,
        "tier": subscription.tier,
        "status": subscription.status,
        "usage_count": subscription.usage_count,
        "usage_limit": subscription.usage_limit,
        "remaining": max(subscription.usage_limit - subscription.usage_count, 0),
        "created_at": subscription.created_at.isoformat() if subscription.created_at else None,
        "updated_at": subscription.updated_at.isoformat() if subscription.updated_at else None,
    }
