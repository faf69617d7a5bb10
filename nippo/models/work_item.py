"""Work item line entries attached to a report."""

from datetime import UTC, datetime

from nippo.models import db

MAX_DURATION_MINUTES = 1440


class WorkItem(db.Model):
    __tablename__ = "work_items"

    id = db.Column(db.Integer, primary_key=True)
    report_id = db.Column(
        db.Integer, db.ForeignKey("reports.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    project_id = db.Column(
        db.Integer, db.ForeignKey("projects.id", ondelete="RESTRICT"), nullable=False, index=True,
    )
    work_category_id = db.Column(
        db.Integer, db.ForeignKey("work_categories.id", ondelete="RESTRICT"), nullable=False,
    )
    description = db.Column(db.Text, nullable=False)
    duration_minutes = db.Column(db.Integer, nullable=False)
    version = db.Column(db.Integer, nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(UTC))
    updated_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        onupdate=lambda: datetime.now(UTC),
    )

    __mapper_args__ = {"version_id_col": version}

    def to_dict(self):
        return {
            "id": self.id,
            "report_id": self.report_id,
            "project_id": self.project_id,
            "work_category_id": self.work_category_id,
            "description": self.description,
            "duration_minutes": self.duration_minutes,
            "version": self.version,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<WorkItem {self.id} report={self.report_id} {self.duration_minutes}m>"
