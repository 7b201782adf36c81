from __future__ import annotations

from ..extensions import db


class DocumentSequence(db.Model):
    """
    Monotonic counter per (document_type, scope_key).

    Orders use document_type="ORDER" and scope_key="YYYYMMDD", which yields
    ORD-YYYYMMDD-0001, ORD-YYYYMMDD-0002, ... per day.
    """
    __tablename__ = "document_sequences"
    __table_args__ = (
        db.UniqueConstraint("document_type", "scope_key", name="uq_document_sequences_type_scope"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    document_type = db.Column(db.String(32), nullable=False)
    scope_key = db.Column(db.String(32), nullable=False)
    next_number = db.Column(db.Integer, nullable=False, default=1)

    def __repr__(self) -> str:
        return f"<DocumentSequence {self.document_type}/{self.scope_key} next={self.next_number}>"
