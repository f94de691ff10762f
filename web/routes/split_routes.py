"""
Split routes blueprint.
"""

from flask import Blueprint, jsonify, request

from pipeline.split import apply_splits, revert_splits, check_book_for_splits
from web.app import get_library

split_bp = Blueprint('split', __name__, url_prefix='/api')


@split_bp.route('/pages/batch-split', methods=['POST'])
def batch_split():
    """Body: {bookId?, splits: [{pageId, splitPosition}]}"""
    data = request.get_json(silent=True) or {}
    splits = data.get('splits')
    if not isinstance(splits, list) or not splits:
        return jsonify({"error": "splits must be a non-empty list"}), 400

    result = apply_splits(get_library(), splits, book_id=data.get('bookId') or data.get('book_id'))
    return jsonify(result)


@split_bp.route('/pages/revert-split', methods=['POST'])
def revert_split():
    """Body: {pageIds: [...]}"""
    data = request.get_json(silent=True) or {}
    page_ids = data.get('pageIds') or data.get('page_ids')
    if not isinstance(page_ids, list) or not page_ids:
        return jsonify({"error": "pageIds must be a non-empty list"}), 400
    return jsonify(revert_splits(get_library(), page_ids))


@split_bp.route('/books/<book_id>/check-needs-split', methods=['GET'])
def check_needs_split(book_id: str):
    return jsonify(check_book_for_splits(get_library(), book_id))
