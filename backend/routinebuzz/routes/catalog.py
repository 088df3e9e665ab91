"""
Catalog API Routes - course and section lookups backed by the USIS feed.
"""
from flask import Blueprint, jsonify, request

from routinebuzz.services.catalog_service import (
    CatalogUnavailableError,
    faculties_for_course,
    filter_sections,
    list_courses,
    list_sections,
    sections_by_ids,
)

catalog_bp = Blueprint("catalog", __name__)


def _faculty_set(param: str):
    return {f.strip() for f in request.args.get(param, "").split(",") if f.strip()} or None


@catalog_bp.errorhandler(CatalogUnavailableError)
def handle_catalog_unavailable(error):
    return jsonify({"error": "Course catalog is temporarily unavailable"}), 503


@catalog_bp.route("/courses", methods=["GET"])
def get_courses():
    """One summary per course code."""
    return jsonify([course.to_dict() for course in list_courses()]), 200


@catalog_bp.route("/course-data", methods=["GET"])
def get_course_data():
    """
    Sections of one course.

    Query Parameters:
        courseCode: Course code (required, case-insensitive)
        minSeats: Only sections with at least this many free seats
        includeFaculties: Comma-separated faculty initials to keep
        excludeFaculties: Comma-separated faculty initials to drop

    Returns:
        [Section, ...]
    """
    course_code = request.args.get("courseCode", "").strip()
    if not course_code:
        return jsonify({"error": "courseCode is required"}), 400

    sections = filter_sections(
        list_sections(course_code),
        min_seats=request.args.get("minSeats", 0, type=int),
        include_faculties=_faculty_set("includeFaculties"),
        exclude_faculties=_faculty_set("excludeFaculties"),
    )
    return jsonify([s.to_dict() for s in sections]), 200


@catalog_bp.route("/course-data/faculties", methods=["GET"])
def get_course_faculties():
    course_code = request.args.get("courseCode", "").strip()
    if not course_code:
        return jsonify({"error": "courseCode is required"}), 400
    return jsonify({"courseCode": course_code.upper(), "faculties": faculties_for_course(course_code)}), 200


@catalog_bp.route("/sections", methods=["GET"])
def get_sections():
    """
    Sections by id, in request order.

    Query Parameters:
        ids: Comma-separated section ids

    Returns:
        { "sections": [...], "found": number }
    """
    try:
        ids = [int(part) for part in request.args.get("ids", "").split(",") if part.strip()]
    except ValueError:
        return jsonify({"error": "ids must be comma-separated integers"}), 400

    sections = sections_by_ids(ids)
    return jsonify({
        "sections": [s.to_dict() for s in sections],
        "found": len(sections),
    }), 200
