"""
Project tree API.

Endpoints (all under /api/v1):
    Projects            GET/POST   /projects
                        GET/PUT/DELETE /projects/<id>
                        GET        /projects/<id>/tree
                        GET        /projects/<id>/metrics   (?today=YYYY-MM-DD)
    Work packages       GET/POST   /projects/<id>/work-packages
                        GET/PUT/DELETE /work-packages/<id>
    Sub-work-packages   GET/POST   /work-packages/<id>/sub-work-packages
                        GET/PUT/DELETE /sub-work-packages/<id>
    Risks               GET/POST   /projects/<id>/risks
                        PUT/DELETE /risks/<id>
    Milestones          GET/POST   /projects/<id>/milestones
                        PUT/DELETE /milestones/<id>
"""

import logging

from flask import Blueprint, g, jsonify, request

from siteworks.blueprints import paginate_query
from siteworks.middleware.permission_required import require_permission
from siteworks.models import db
from siteworks.models.project import (
    Project,
    ProjectMilestone,
    ProjectRisk,
    SubWorkPackage,
    WorkPackage,
)
from siteworks.services import project_service
from siteworks.services.progress import calculate_workpackage_progress
from siteworks.services.quality import calculate_workpackage_quality_score
from siteworks.utils.dates import parse_date
from siteworks.utils.errors import E, api_error
from siteworks.utils.helpers import db_commit_or_error, get_or_404

logger = logging.getLogger(__name__)

project_bp = Blueprint("project_bp", __name__, url_prefix="/api/v1")


def _service_error(svc_err):
    """Discard the failed mutation and translate the service error dict."""
    db.session.rollback()
    status = svc_err.get("status", 400)
    code = E.VALIDATION_INVALID if status < 500 else E.INTERNAL
    return api_error(code, svc_err["error"], status=status)


def _saved(obj, status=200, payload=None):
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(payload() if payload else obj.to_dict()), status


def _deleted(label, obj_id):
    err = db_commit_or_error()
    if err:
        return err
    return jsonify({"message": f"{label} deleted", "id": obj_id}), 200


# ═══════════════════════════════════════════════════════════════════════════
#  PROJECTS
# ═══════════════════════════════════════════════════════════════════════════

@project_bp.route("/projects", methods=["GET"])
@require_permission("project:read")
def list_projects():
    query = project_service.list_projects(
        status=request.args.get("status"),
        owner_uid=request.args.get("owner_uid"),
    )
    items, total = paginate_query(query)
    return jsonify({"items": [p.to_dict() for p in items], "total": total}), 200


@project_bp.route("/projects", methods=["POST"])
@require_permission("project:create")
def create_project():
    data = request.get_json(silent=True) or {}
    project, svc_err = project_service.create_project(data=data, owner_uid=getattr(g, "jwt_uid", None))
    if svc_err:
        return _service_error(svc_err)
    logger.info("Project created: %s", project.name, extra={"project_id": project.id})
    return _saved(project, 201)


@project_bp.route("/projects/<int:project_id>", methods=["GET"])
@require_permission("project:read")
def get_project(project_id):
    project, err = get_or_404(Project, project_id)
    if err:
        return err
    return jsonify(project.to_dict()), 200


@project_bp.route("/projects/<int:project_id>", methods=["PUT"])
@require_permission("project:write")
def update_project(project_id):
    project, err = get_or_404(Project, project_id)
    if err:
        return err
    data = request.get_json(silent=True) or {}
    project, svc_err = project_service.update_project(project=project, data=data)
    if svc_err:
        return _service_error(svc_err)
    return _saved(project)


@project_bp.route("/projects/<int:project_id>", methods=["DELETE"])
@require_permission("project:delete")
def delete_project(project_id):
    project, err = get_or_404(Project, project_id)
    if err:
        return err
    project_service.delete_project(project)
    return _deleted("Project", project_id)


@project_bp.route("/projects/<int:project_id>/tree", methods=["GET"])
@require_permission("project:read")
def get_project_tree(project_id):
    project, err = get_or_404(Project, project_id)
    if err:
        return err
    return jsonify(project_service.get_project_tree(project)), 200


@project_bp.route("/projects/<int:project_id>/metrics", methods=["GET"])
@require_permission("project:read")
def get_project_metrics(project_id):
    project, err = get_or_404(Project, project_id)
    if err:
        return err
    today = None
    if request.args.get("today"):
        today = parse_date(request.args["today"])
        if today is None:
            return api_error(E.VALIDATION_INVALID, "today must be YYYY-MM-DD")
    return jsonify(project_service.get_project_metrics(project, today=today)), 200


# ═══════════════════════════════════════════════════════════════════════════
#  WORK PACKAGES
# ═══════════════════════════════════════════════════════════════════════════

def _work_package_payload(wp):
    d = wp.to_dict()
    tree = wp.to_tree()
    d["progress"] = calculate_workpackage_progress(tree)
    d["quality_score"] = calculate_workpackage_quality_score(tree)
    return d


@project_bp.route("/projects/<int:project_id>/work-packages", methods=["GET"])
@require_permission("project:package:read")
def list_work_packages(project_id):
    project, err = get_or_404(Project, project_id)
    if err:
        return err
    items = [_work_package_payload(wp) for wp in project.work_packages]
    return jsonify({"items": items, "total": len(items)}), 200


@project_bp.route("/projects/<int:project_id>/work-packages", methods=["POST"])
@require_permission("project:package:create")
def create_work_package(project_id):
    project, err = get_or_404(Project, project_id)
    if err:
        return err
    data = request.get_json(silent=True) or {}
    wp, svc_err = project_service.create_work_package(project=project, data=data)
    if svc_err:
        return _service_error(svc_err)
    return _saved(wp, 201, lambda: _work_package_payload(wp))


@project_bp.route("/work-packages/<int:wp_id>", methods=["GET"])
@require_permission("project:package:read")
def get_work_package(wp_id):
    wp, err = get_or_404(WorkPackage, wp_id, "Work package")
    if err:
        return err
    return jsonify(_work_package_payload(wp)), 200


@project_bp.route("/work-packages/<int:wp_id>", methods=["PUT"])
@require_permission("project:package:write")
def update_work_package(wp_id):
    wp, err = get_or_404(WorkPackage, wp_id, "Work package")
    if err:
        return err
    data = request.get_json(silent=True) or {}
    wp, svc_err = project_service.update_work_package(work_package=wp, data=data)
    if svc_err:
        return _service_error(svc_err)
    return _saved(wp, 200, lambda: _work_package_payload(wp))


@project_bp.route("/work-packages/<int:wp_id>", methods=["DELETE"])
@require_permission("project:package:delete")
def delete_work_package(wp_id):
    wp, err = get_or_404(WorkPackage, wp_id, "Work package")
    if err:
        return err
    project_service.delete_work_package(wp)
    return _deleted("Work package", wp_id)


# ═══════════════════════════════════════════════════════════════════════════
#  SUB-WORK-PACKAGES
# ═══════════════════════════════════════════════════════════════════════════

@project_bp.route("/work-packages/<int:wp_id>/sub-work-packages", methods=["GET"])
@require_permission("project:subpackage:read")
def list_sub_work_packages(wp_id):
    wp, err = get_or_404(WorkPackage, wp_id, "Work package")
    if err:
        return err
    items = [s.to_dict() for s in wp.sub_work_packages]
    return jsonify({"items": items, "total": len(items)}), 200


@project_bp.route("/work-packages/<int:wp_id>/sub-work-packages", methods=["POST"])
@require_permission("project:subpackage:create")
def create_sub_work_package(wp_id):
    wp, err = get_or_404(WorkPackage, wp_id, "Work package")
    if err:
        return err
    data = request.get_json(silent=True) or {}
    sub, svc_err = project_service.create_sub_work_package(work_package=wp, data=data)
    if svc_err:
        return _service_error(svc_err)
    return _saved(sub, 201)


@project_bp.route("/sub-work-packages/<int:sub_id>", methods=["GET"])
@require_permission("project:subpackage:read")
def get_sub_work_package(sub_id):
    sub, err = get_or_404(SubWorkPackage, sub_id, "Sub-work-package")
    if err:
        return err
    return jsonify(sub.to_dict()), 200


@project_bp.route("/sub-work-packages/<int:sub_id>", methods=["PUT"])
@require_permission("project:subpackage:write")
def update_sub_work_package(sub_id):
    sub, err = get_or_404(SubWorkPackage, sub_id, "Sub-work-package")
    if err:
        return err
    data = request.get_json(silent=True) or {}
    sub, svc_err = project_service.update_sub_work_package(sub=sub, data=data)
    if svc_err:
        return _service_error(svc_err)
    return _saved(sub)


@project_bp.route("/sub-work-packages/<int:sub_id>", methods=["DELETE"])
@require_permission("project:subpackage:delete")
def delete_sub_work_package(sub_id):
    sub, err = get_or_404(SubWorkPackage, sub_id, "Sub-work-package")
    if err:
        return err
    project_service.delete_sub_work_package(sub)
    return _deleted("Sub-work-package", sub_id)


# ═══════════════════════════════════════════════════════════════════════════
#  RISKS
# ═══════════════════════════════════════════════════════════════════════════

@project_bp.route("/projects/<int:project_id>/risks", methods=["GET"])
@require_permission("project:read")
def list_risks(project_id):
    project, err = get_or_404(Project, project_id)
    if err:
        return err
    items = [r.to_dict() for r in project.risks]
    return jsonify({"items": items, "total": len(items)}), 200


@project_bp.route("/projects/<int:project_id>/risks", methods=["POST"])
@require_permission("project:risk:write")
def create_risk(project_id):
    project, err = get_or_404(Project, project_id)
    if err:
        return err
    data = request.get_json(silent=True) or {}
    risk, svc_err = project_service.create_risk(project=project, data=data)
    if svc_err:
        return _service_error(svc_err)
    return _saved(risk, 201)


@project_bp.route("/risks/<int:risk_id>", methods=["PUT"])
@require_permission("project:risk:write")
def update_risk(risk_id):
    risk, err = get_or_404(ProjectRisk, risk_id, "Risk")
    if err:
        return err
    data = request.get_json(silent=True) or {}
    risk, svc_err = project_service.update_risk(risk=risk, data=data)
    if svc_err:
        return _service_error(svc_err)
    return _saved(risk)


@project_bp.route("/risks/<int:risk_id>", methods=["DELETE"])
@require_permission("project:risk:write")
def delete_risk(risk_id):
    risk, err = get_or_404(ProjectRisk, risk_id, "Risk")
    if err:
        return err
    project_service.delete_risk(risk)
    return _deleted("Risk", risk_id)


# ═══════════════════════════════════════════════════════════════════════════
#  MILESTONES
# ═══════════════════════════════════════════════════════════════════════════

@project_bp.route("/projects/<int:project_id>/milestones", methods=["GET"])
@require_permission("project:read")
def list_milestones(project_id):
    project, err = get_or_404(Project, project_id)
    if err:
        return err
    items = [m.to_dict() for m in project.milestones]
    return jsonify({"items": items, "total": len(items)}), 200


@project_bp.route("/projects/<int:project_id>/milestones", methods=["POST"])
@require_permission("project:milestone:write")
def create_milestone(project_id):
    project, err = get_or_404(Project, project_id)
    if err:
        return err
    data = request.get_json(silent=True) or {}
    milestone, svc_err = project_service.create_milestone(project=project, data=data)
    if svc_err:
        return _service_error(svc_err)
    return _saved(milestone, 201)


@project_bp.route("/milestones/<int:milestone_id>", methods=["PUT"])
@require_permission("project:milestone:write")
def update_milestone(milestone_id):
    milestone, err = get_or_404(ProjectMilestone, milestone_id, "Milestone")
    if err:
        return err
    data = request.get_json(silent=True) or {}
    milestone, svc_err = project_service.update_milestone(milestone=milestone, data=data)
    if svc_err:
        return _service_error(svc_err)
    return _saved(milestone)


@project_bp.route("/milestones/<int:milestone_id>", methods=["DELETE"])
@require_permission("project:milestone:write")
def delete_milestone(milestone_id):
    milestone, err = get_or_404(ProjectMilestone, milestone_id, "Milestone")
    if err:
        return err
    project_service.delete_milestone(milestone)
    return _deleted("Milestone", milestone_id)
