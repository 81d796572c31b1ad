"""Company model."""
from __future__ import annotations

from app import db


class Company(db.Model):
    __tablename__ = "companies"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    country = db.Column(db.String(120), nullable=False)
    currency_code = db.Column(db.String(3), nullable=False)
    currency_symbol = db.Column(db.String(5), nullable=True)
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    auto_approval_limit = db.Column(db.Numeric(12, 2), default=0, nullable=False)
    allow_multi_currency = db.Column(db.Boolean, default=True, nullable=False)
    require_receipt = db.Column(db.Boolean, default=True, nullable=False)
    created_at = db.Column(db.DateTime, server_default=db.func.now(), nullable=False)

    users = db.relationship("User", back_populates="company", lazy="selectin")
    expenses = db.relationship("Expense", back_populates="company", lazy="select")
    approval_rules = db.relationship("ApprovalRule", back_populates="company", lazy="select")

    @property
    def settings(self) -> dict:
        return {
            "auto_approval_limit": float(self.auto_approval_limit)
            if self.auto_approval_limit is not None
            else 0.0,
            "allow_multi_currency": self.allow_multi_currency,
            "require_receipt": self.require_receipt,
        }

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "country": self.country,
            "currency_code": self.currency_code,
            "currency_symbol": self.currency_symbol,
            "is_active": self.is_active,
            "settings": self.settings,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self) -> str:
        return f"<Company {self.name} ({self.currency_code})>"
