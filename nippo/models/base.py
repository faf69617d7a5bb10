"""
OrgModel - Abstract base class for organization-scoped models.

All models that need tenant isolation inherit from OrgModel instead of
db.Model directly. This adds:
  - org_id FK column with index
  - Composite index macro helper
"""

from nippo.models import db


class OrgModel(db.Model):
    """Abstract base for org-scoped tables."""
    __abstract__ = True

    org_id = db.Column(
        db.Integer,
        db.ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    @classmethod
    def org_composite_index(cls, tablename, *extra_cols):
        """Helper to build an (org_id, ...) composite index."""
        name = f"ix_{tablename}_org_{'_'.join(extra_cols)}"
        cols = ("org_id",) + extra_cols
        return db.Index(name, *cols)
