"""
Shared Routine API Routes - publish, load and update routines by short code,
plus conflict validation for an arbitrary set of sections.
"""
import logging

from flask import Blueprint, jsonify, request

from routinebuzz.models.routine_types import Section
from routinebuzz.services.catalog_service import CatalogUnavailableError, sections_by_ids
from routinebuzz.services.conflict_detector import validate_routine
from routinebuzz.services.push_notifier import push_hub, routine_topic
from routinebuzz.services.routine_sync import PUBLIC_APP_URL, share_url
from routinebuzz.services.shared_routine_service import (
    RoutineNotFoundError,
    SharedRoutineError,
    UnauthorizedUpdateError,
    create_routine,
    get_routine,
    update_routine,
)
from routinebuzz.services.supabase_client import SupabaseError

logger = logging.getLogger(__name__)

routine_bp = Blueprint("routine", __name__)


@routine_bp.route("/routine/create", methods=["POST"])
def create_shared_routine():
    """
    Publish a routine.

    Request Body:
        { "sectionIds": [1, 2, ...], "creatorSessionId": "session_..." }

    Returns:
        { "success": true, "shortCode", "routineId", "sectionCount", "shareUrl" }
    """
    data = request.get_json(silent=True) or {}
    section_ids = data.get("sectionIds")
    if not isinstance(section_ids, list):
        return jsonify({"error": "sectionIds must be an array"}), 400

    try:
        routine = create_routine(section_ids, str(data.get("creatorSessionId") or ""))
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    except (SharedRoutineError, SupabaseError) as e:
        logger.error(f"Error creating shared routine: {e}")
        return jsonify({"error": "Failed to create shared routine"}), 500

    return jsonify({
        "success": True,
        "shortCode": routine.short_code,
        "routineId": routine.routine_id,
        "sectionCount": len(routine.section_ids),
        "shareUrl": share_url(routine.short_code, PUBLIC_APP_URL),
    }), 201


@routine_bp.route("/routine/get", methods=["GET"])
def get_shared_routine():
    """
    Load a routine with its sections resolved from the catalog.

    Query Parameters:
        code: Short code
    """
    short_code = request.args.get("code", "").strip()
    if not short_code:
        return jsonify({"error": "code is required"}), 400

    try:
        routine = get_routine(short_code)
    except RoutineNotFoundError:
        return jsonify({"error": "Routine not found"}), 404
    except CatalogUnavailableError:
        return jsonify({"error": "Course catalog is temporarily unavailable"}), 503
    except (SharedRoutineError, SupabaseError) as e:
        logger.error(f"Error loading shared routine {short_code}: {e}")
        return jsonify({"error": "Failed to load shared routine"}), 500

    return jsonify(routine.to_dict()), 200


@routine_bp.route("/routine/update", methods=["POST"])
def update_shared_routine():
    """
    Replace a routine's sections and notify everyone viewing it.

    Request Body:
        { "shortCode": "...", "sectionIds": [...], "creatorSessionId": "..." }
    """
    data = request.get_json(silent=True) or {}
    short_code = str(data.get("shortCode") or "").strip()
    section_ids = data.get("sectionIds")
    if not short_code:
        return jsonify({"error": "shortCode is required"}), 400
    if not isinstance(section_ids, list):
        return jsonify({"error": "sectionIds must be an array"}), 400

    try:
        routine = update_routine(short_code, section_ids, str(data.get("creatorSessionId") or ""))
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    except RoutineNotFoundError:
        return jsonify({"error": "Routine not found"}), 404
    except UnauthorizedUpdateError as e:
        return jsonify({"error": str(e)}), 403
    except (SharedRoutineError, SupabaseError) as e:
        logger.error(f"Error updating shared routine {short_code}: {e}")
        return jsonify({"error": "Failed to update shared routine"}), 500

    notified = push_hub.publish(routine_topic(routine.short_code))
    logger.debug(f"Notified {notified} viewers of {routine.short_code}")
    return jsonify({"success": True, "message": "Routine updated"}), 200


@routine_bp.route("/routine/conflicts", methods=["POST"])
def check_routine_conflicts():
    """
    Validate a set of sections for time conflicts.

    Request Body:
        { "sections": [Section, ...] } or { "sectionIds": [1, 2, ...] }

    Returns:
        {
            "valid": boolean,
            "conflicts": [...],
            "conflictingSectionIds": [...],
            "totalCredits": number,
            "warnings": [...]
        }
    """
    data = request.get_json(silent=True) or {}

    if "sections" in data:
        raw_sections = data["sections"]
        if not isinstance(raw_sections, list):
            return jsonify({"error": "sections must be an array"}), 400
        try:
            sections = [Section.from_api(s) for s in raw_sections]
        except (KeyError, TypeError, ValueError) as e:
            return jsonify({"error": f"Invalid section: {e}"}), 400
    else:
        section_ids = data.get("sectionIds", [])
        if not isinstance(section_ids, list):
            return jsonify({"error": "sectionIds must be an array"}), 400
        try:
            sections = sections_by_ids([int(i) for i in section_ids])
        except (TypeError, ValueError):
            return jsonify({"error": "sectionIds must be integers"}), 400
        except CatalogUnavailableError:
            return jsonify({"error": "Course catalog is temporarily unavailable"}), 503

    return jsonify(validate_routine(sections).to_dict()), 200
