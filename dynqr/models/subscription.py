import enum
import uuid

from ..extensions import db
from ..utils.timeutils import utcnow


class Tier(str, enum.Enum):
    FREE = "Free"
    LITE = "Lite"
    PRO = "Pro"

    @classmethod
    def parse(cls, value):
        if isinstance(value, cls):
            return value
        for tier in cls:
            if str(value or "").strip().lower() == tier.value.lower():
                return tier
        raise ValueError(f"Unknown tier: {value!r}")


class Status(str, enum.Enum):
    ACTIVE = "Active"
    PAST_DUE = "PastDue"
    CANCELED = "Canceled"
    INCOMPLETE = "Incomplete"

    @classmethod
    def parse(cls, value):
        if isinstance(value, cls):
            return value
        normalized = str(value or "").strip().lower().replace("_", "")
        for status in cls:
            if normalized == status.value.lower():
                return status
        raise ValueError(f"Unknown status: {value!r}")


class Subscription(db.Model):
    __tablename__ = "subscriptions"

    id = db.Column(db.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    owner_id = db.Column(
        db.String(255), db.ForeignKey("users.id", ondelete="CASCADE"),
        unique=True, nullable=False,
    )
    tier = db.Column(db.String(20), nullable=False, default=Tier.FREE.value)
    status = db.Column(db.String(20), nullable=False, default=Status.INCOMPLETE.value)
    usage_count = db.Column(db.Integer, nullable=False, default=0)
    usage_limit = db.Column(db.Integer, nullable=False, default=0)

    # Stripe subscription id, set when a checkout session is resolved
    provider_subscription_id = db.Column(db.String(255), nullable=True, index=True)

    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    owner = db.relationship("User", back_populates="subscription")

    __table_args__ = (
        db.CheckConstraint("usage_count >= 0", name="ck_subscription_usage_non_negative"),
    )

    def __repr__(self):
        return f"<Subscription {self.owner_id} {self.tier}/{self.status} {self.usage_count}/{self.usage_limit}>"
