from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class CompanySetting(db.Model):
    """
    Single-row company profile. Only the fields the fulfillment engine reads
    are modeled here; the profile itself is managed elsewhere.
    """
    __tablename__ = "company_settings"

    id = db.Column(db.Integer, primary_key=True)
    company_name = db.Column(db.String(255), nullable=True)
    tax_id = db.Column(db.String(32), nullable=True)

    # Fraction, e.g. 0.21 for 21% VAT
    tax_rate = db.Column(db.Numeric(6, 4), nullable=True)

    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "company_name": self.company_name,
            "tax_id": self.tax_id,
            "tax_rate": float(self.tax_rate) if self.tax_rate is not None else None,
            "updated_at": to_utc_z(self.updated_at),
        }
