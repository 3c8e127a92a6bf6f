from ..extensions import db
from ..utils.timeutils import utcnow


class PaymentSession(db.Model):
    __tablename__ = "payment_sessions"

    session_id = db.Column(db.String(255), primary_key=True)  # Stripe checkout session id
    owner_id = db.Column(
        db.String(255), db.ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    intended_tier = db.Column(db.String(20), nullable=False)
    consumed = db.Column(db.Boolean, default=False, nullable=False, index=True)

    # Outcome of the first resolution, replayed to duplicate deliveries
    subscription_id = db.Column(db.String(36), nullable=True)

    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)
    consumed_at = db.Column(db.DateTime, nullable=True)

    owner = db.relationship("User", back_populates="payment_sessions")

    def __repr__(self):
        return f"<PaymentSession {self.session_id} - {self.owner_id} ({self.intended_tier})>"
