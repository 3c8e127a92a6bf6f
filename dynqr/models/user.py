from ..extensions import db
from ..utils.timeutils import utcnow


def format_user_id(token_sub: str) -> str:
    # Identity tokens look like "auth0|abc-123"; keep ids free of '|' and '-'
    return (token_sub or "").replace("|", "_").replace("-", "_")


class User(db.Model):
    __tablename__ = "users"

    id = db.Column(db.String(255), primary_key=True)
    email = db.Column(db.String(255), nullable=False)
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)

    # Erasure cascades to everything the user owns
    subscription = db.relationship(
        "Subscription", back_populates="owner", uselist=False,
        cascade="all, delete-orphan", passive_deletes=True,
    )
    dynamic_urls = db.relationship(
        "DynamicUrl", back_populates="owner",
        cascade="all, delete-orphan", passive_deletes=True,
    )
    payment_sessions = db.relationship(
        "PaymentSession", back_populates="owner",
        cascade="all, delete-orphan", passive_deletes=True,
    )

    def __repr__(self):
        return f"<User {self.id} - {self.email}>"
