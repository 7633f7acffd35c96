"""
SiteWorks Project Platform
Project domain models — Project → WorkPackage → SubWorkPackage.

Models:
    - Project: construction project with plan/budget figures
    - WorkPackage: ordered package of work, optionally carrying quality metrics
    - SubWorkPackage: leaf with estimated vs. actual quantity
    - ProjectRisk: risk register entry
    - ProjectMilestone: dated milestone
"""

from datetime import datetime, timezone

from siteworks.models import db

# ── Constants ────────────────────────────────────────────────────────────────

PROJECT_STATUSES = {"planning", "active", "on_hold", "completed", "cancelled"}
PRIORITIES = {"low", "medium", "high", "critical"}
RISK_RATINGS = {"low", "medium", "high"}
RISK_LEVELS = {"low", "medium", "high", "critical"}
RISK_STATUSES = {"open", "mitigating", "closed"}
MILESTONE_STATUSES = {"planned", "in_progress", "completed"}
WORK_PACKAGE_STATUSES = {"planning", "in_progress", "on_hold", "completed"}


def _utcnow():
    return datetime.now(timezone.utc)


def _iso(value):
    return value.isoformat() if value else None


class Project(db.Model):
    """Top of the progress tree. Owns work packages, risks and milestones."""

    __tablename__ = "projects"

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(50), nullable=True, index=True)
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, default="")
    status = db.Column(db.String(30), nullable=False, default="planning")
    priority = db.Column(db.String(20), nullable=False, default="medium",
                         comment="low | medium | high | critical")
    owner_uid = db.Column(db.String(128), nullable=True, index=True)
    start_date = db.Column(db.Date, nullable=True)
    end_date = db.Column(db.Date, nullable=True)

    planned_progress = db.Column(db.Float, nullable=True, default=0,
                                 comment="Planned completion percentage at today's date")
    estimated_budget = db.Column(db.Float, nullable=True, default=0)
    actual_budget = db.Column(db.Float, nullable=True, default=0)

    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    work_packages = db.relationship(
        "WorkPackage", back_populates="project", cascade="all, delete-orphan",
        order_by="WorkPackage.position, WorkPackage.id",
    )
    risks = db.relationship(
        "ProjectRisk", back_populates="project", cascade="all, delete-orphan",
        order_by="ProjectRisk.id",
    )
    milestones = db.relationship(
        "ProjectMilestone", back_populates="project", cascade="all, delete-orphan",
        order_by="ProjectMilestone.target_date, ProjectMilestone.id",
    )

    def to_dict(self):
        return {
            "id": self.id,
            "code": self.code,
            "name": self.name,
            "description": self.description,
            "status": self.status,
            "priority": self.priority,
            "owner_uid": self.owner_uid,
            "start_date": _iso(self.start_date),
            "end_date": _iso(self.end_date),
            "planned_progress": self.planned_progress,
            "estimated_budget": self.estimated_budget,
            "actual_budget": self.actual_budget,
            "work_package_count": len(self.work_packages),
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }

    def to_tree(self):
        """Plain nested record consumed by the progress/quality/analytics engines."""
        d = self.to_dict()
        d.pop("work_package_count")
        d["work_packages"] = [wp.to_tree() for wp in self.work_packages]
        d["risks"] = [r.to_dict() for r in self.risks]
        d["milestones"] = [m.to_dict() for m in self.milestones]
        return d

    def __repr__(self):
        return f"<Project {self.id}: {self.name}>"


class WorkPackage(db.Model):
    __tablename__ = "work_packages"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, default="")
    status = db.Column(db.String(30), nullable=False, default="planning")
    position = db.Column(db.Integer, nullable=False, default=0)

    # Quality metrics: all NULL means "not measured"
    inspection_pass_rate = db.Column(db.Float, nullable=True)
    defect_rate = db.Column(db.Float, nullable=True)
    rework_percentage = db.Column(db.Float, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    project = db.relationship("Project", back_populates="work_packages")
    sub_work_packages = db.relationship(
        "SubWorkPackage", back_populates="work_package", cascade="all, delete-orphan",
        order_by="SubWorkPackage.position, SubWorkPackage.id",
    )

    @property
    def quality_metrics(self):
        values = (self.inspection_pass_rate, self.defect_rate, self.rework_percentage)
        if all(v is None for v in values):
            return None
        return {
            "inspection_pass_rate": self.inspection_pass_rate,
            "defect_rate": self.defect_rate,
            "rework_percentage": self.rework_percentage,
        }

    def to_dict(self):
        return {
            "id": self.id,
            "project_id": self.project_id,
            "name": self.name,
            "description": self.description,
            "status": self.status,
            "position": self.position,
            "quality_metrics": self.quality_metrics,
            "sub_work_package_count": len(self.sub_work_packages),
            "created_at": _iso(self.created_at),
        }

    def to_tree(self):
        d = self.to_dict()
        d.pop("sub_work_package_count")
        d["sub_work_packages"] = [s.to_dict() for s in self.sub_work_packages]
        return d

    def __repr__(self):
        return f"<WorkPackage {self.id}: {self.name}>"


class SubWorkPackage(db.Model):
    __tablename__ = "sub_work_packages"

    id = db.Column(db.Integer, primary_key=True)
    work_package_id = db.Column(
        db.Integer, db.ForeignKey("work_packages.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    name = db.Column(db.String(200), nullable=False)
    unit = db.Column(db.String(20), default="", comment="m, m2, m3, pcs, ...")
    position = db.Column(db.Integer, nullable=False, default=0)
    estimated_quantity = db.Column(db.Float, nullable=False, default=0)
    actual_quantity = db.Column(db.Float, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    work_package = db.relationship("WorkPackage", back_populates="sub_work_packages")

    def to_dict(self):
        return {
            "id": self.id,
            "work_package_id": self.work_package_id,
            "name": self.name,
            "unit": self.unit,
            "position": self.position,
            "estimated_quantity": self.estimated_quantity,
            "actual_quantity": self.actual_quantity,
        }


class ProjectRisk(db.Model):
    __tablename__ = "project_risks"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    title = db.Column(db.String(300), nullable=False)
    description = db.Column(db.Text, default="")
    probability = db.Column(db.String(10), nullable=False, default="medium", comment="low | medium | high")
    impact = db.Column(db.String(10), nullable=False, default="medium", comment="low | medium | high")
    risk_level = db.Column(db.String(10), nullable=False, default="medium",
                           comment="low | medium | high | critical")
    status = db.Column(db.String(20), nullable=False, default="open")
    owner_uid = db.Column(db.String(128), nullable=True)
    mitigation = db.Column(db.Text, default="")
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    project = db.relationship("Project", back_populates="risks")

    def to_dict(self):
        return {
            "id": self.id,
            "project_id": self.project_id,
            "title": self.title,
            "description": self.description,
            "probability": self.probability,
            "impact": self.impact,
            "risk_level": self.risk_level,
            "status": self.status,
            "owner_uid": self.owner_uid,
            "mitigation": self.mitigation,
            "created_at": _iso(self.created_at),
        }


class ProjectMilestone(db.Model):
    __tablename__ = "project_milestones"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    name = db.Column(db.String(200), nullable=False)
    target_date = db.Column(db.Date, nullable=True)
    status = db.Column(db.String(20), nullable=False, default="planned")
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    project = db.relationship("Project", back_populates="milestones")

    def to_dict(self):
        return {
            "id": self.id,
            "project_id": self.project_id,
            "name": self.name,
            "target_date": _iso(self.target_date),
            "status": self.status,
            "completed_at": _iso(self.completed_at),
        }
