"""
Cleanup routes blueprint.
"""

from flask import Blueprint, jsonify, request

from pipeline.cleanup import CleanupSweeper
from web.app import get_library

cleanup_bp = Blueprint('cleanup', __name__, url_prefix='/api/cleanup')


@cleanup_bp.route('/report', methods=['GET'])
def report():
    return jsonify(CleanupSweeper(get_library()).report())


@cleanup_bp.route('/sweep', methods=['POST'])
def sweep():
    data = request.get_json(silent=True) or {}
    dry_run = bool(data.get('dryRun', data.get('dry_run', False)))
    return jsonify(CleanupSweeper(get_library()).sweep(dry_run=dry_run))
