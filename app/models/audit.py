"""Append-only trail of workflow changes."""
from __future__ import annotations

from datetime import datetime

from app import db


class AuditLog(db.Model):
    __tablename__ = "audit_logs"
    __table_args__ = (db.Index("ix_audit_logs_entity", "entity_type", "entity_id"),)

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=True, index=True)
    actor_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    entity_type = db.Column(db.String(40), nullable=False)
    entity_id = db.Column(db.Integer, nullable=False)
    action = db.Column(db.String(60), nullable=False)
    details = db.Column(db.JSON, nullable=True)
    recorded_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    actor = db.relationship("User", lazy="select")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "entity": f"{self.entity_type}:{self.entity_id}",
            "action": self.action,
            "actor_id": self.actor_id,
            "details": self.details or {},
            "recorded_at": self.recorded_at.isoformat() if self.recorded_at else None,
        }

    def __repr__(self) -> str:
        return f"<AuditLog {self.entity_type}:{self.entity_id} {self.action}>"
