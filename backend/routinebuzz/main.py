from datetime import datetime, timezone

import logging
import os
from dotenv import load_dotenv
from flask import Flask, jsonify, request
from flask_cors import CORS

# Load env vars from root directory (parent of backend)
root_dir = os.path.abspath(os.path.join(os.path.dirname(__file__), '../../'))
load_dotenv(os.path.join(root_dir, '.env'))

from routinebuzz.routes.catalog import catalog_bp
from routinebuzz.routes.routine import routine_bp
from routinebuzz.services.catalog_service import USIS_CATALOG_URL
from routinebuzz.services.supabase_client import check_connection, supabase_configured

logging.basicConfig(
    level=os.getenv('LOG_LEVEL', 'INFO').upper(),
    format='%(asctime)s %(levelname)s %(name)s: %(message)s',
)
logger = logging.getLogger(__name__)

app = Flask(__name__)
CORS(app)


# ============================================================================
# Global Error Handlers and Request Validation
# ============================================================================

def _make_json_error(message: str, status_code: int, error_type: str = None):
    """Create a standardized JSON error response."""
    response_data = {
        'error': message,
        'status_code': status_code
    }
    if error_type:
        response_data['type'] = error_type
    response = jsonify(response_data)
    response.status_code = status_code
    return response


@app.errorhandler(400)
def handle_bad_request(error):
    message = str(error.description) if getattr(error, 'description', None) else 'Bad request'
    return _make_json_error(message, 400, 'bad_request')


@app.errorhandler(404)
def handle_not_found(error):
    return _make_json_error('The requested resource was not found', 404, 'not_found')


@app.errorhandler(405)
def handle_method_not_allowed(error):
    return _make_json_error('Method not allowed', 405, 'method_not_allowed')


@app.errorhandler(500)
def handle_internal_error(error):
    logger.error(f"Internal server error: {error}")
    return _make_json_error('Internal server error', 500, 'internal_error')


@app.errorhandler(503)
def handle_service_unavailable(error):
    return _make_json_error('Service temporarily unavailable', 503, 'service_unavailable')


@app.errorhandler(Exception)
def handle_unhandled_exception(error):
    """Catch-all handler for unhandled exceptions."""
    logger.exception(f"Unhandled exception: {type(error).__name__}: {error}")
    return _make_json_error('An unexpected error occurred', 500, 'unhandled_exception')


@app.before_request
def validate_json_content():
    """Reject requests whose JSON body doesn't parse."""
    if request.method == 'OPTIONS':
        return None
    if request.content_type and 'application/json' in request.content_type:
        if request.content_length and request.content_length > 0:
            if request.get_json(silent=True) is None:
                return _make_json_error('Invalid JSON in request body', 400, 'invalid_json')
    return None


@app.route('/health', methods=['GET'])
def health():
    return jsonify({'status': 'ok', 'timestamp': datetime.now(timezone.utc).isoformat()}), 200


@app.route('/health/config', methods=['GET'])
def health_config():
    """Report which integrations are configured (never their values)."""
    configured = supabase_configured()
    return jsonify({
        'status': 'ok',
        'timestamp': datetime.now(timezone.utc).isoformat(),
        'supabase_configured': configured,
        'supabase_reachable': check_connection() if configured else False,
        'catalog_url': USIS_CATALOG_URL,
    }), 200


app.register_blueprint(catalog_bp)
app.register_blueprint(routine_bp)

if __name__ == '__main__':
    port = int(os.getenv('SERVER_PORT') or os.getenv('PORT', 5000))
    host = os.getenv('HOST', '0.0.0.0')
    debug_mode = os.getenv('DEBUG', 'true').lower() == 'true'
    app.run(host=host, port=port, debug=debug_mode)
