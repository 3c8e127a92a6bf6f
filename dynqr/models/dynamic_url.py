import uuid

from ..extensions import db
from ..utils.timeutils import utcnow


class DynamicUrl(db.Model):
    __tablename__ = "dynamic_urls"

    id = db.Column(db.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    server_url = db.Column(db.String(64), unique=True, nullable=False, index=True)
    owner_id = db.Column(
        db.String(255), db.ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    target_url = db.Column(db.Text, nullable=False)
    # Bumped on every target change and before deletion; orders redirect cache writes
    version = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    owner = db.relationship("User", back_populates="dynamic_urls")

    def __repr__(self):
        return f"<DynamicUrl {self.server_url} -> {self.target_url}>"
