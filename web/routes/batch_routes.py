"""
Batch routes blueprint.

A book's batch submissions, and the complete / cancel / refresh actions.
"""

from flask import Blueprint, jsonify, request

from web.app import get_service

batch_bp = Blueprint('batch', __name__, url_prefix='/api')


def _submission(batch) -> dict:
    return batch.model_dump(mode="json", exclude_none=True)


@batch_bp.route('/books/<book_id>/batch', methods=['POST'])
def create_batch(book_id: str):
    data = request.get_json(silent=True) or {}
    batch_type = data.get('type')
    if not batch_type:
        return jsonify({"error": "type is required (ocr or translate)"}), 400

    batch = get_service().batch.create(
        book_id,
        batch_type,
        page_ids=data.get('pageIds') or data.get('page_ids'),
        model=data.get('model'),
        language=data.get('language'),
        target_language=data.get('targetLanguage') or data.get('target_language'),
        limit=data.get('limit'),
        overwrite=bool(data.get('overwrite', False)),
        book_title=data.get('bookTitle') or data.get('book_title'),
    )
    return jsonify(_submission(batch)), 201


@batch_bp.route('/books/<book_id>/batch', methods=['GET'])
def list_batches(book_id: str):
    batches = get_service().batch.list_for_book(book_id)
    return jsonify({"batch_jobs": [_submission(b) for b in batches]})


@batch_bp.route('/batch-jobs/<batch_id>', methods=['GET'])
def get_batch(batch_id: str):
    return jsonify(_submission(get_service().batch.get(batch_id)))


@batch_bp.route('/batch-jobs/<batch_id>', methods=['POST'])
def batch_action(batch_id: str):
    data = request.get_json(silent=True) or {}
    action = data.get('action')
    controller = get_service().batch

    if action == 'complete':
        return jsonify(controller.complete(batch_id))
    if action == 'cancel':
        return jsonify(_submission(controller.cancel(batch_id)))
    if action == 'refresh':
        return jsonify(_submission(controller.refresh(batch_id, force=True)))
    return jsonify({"error": f"Unknown action: {action}. Expected complete, cancel or refresh"}), 400


@batch_bp.route('/batch-jobs/<batch_id>', methods=['DELETE'])
def delete_batch(batch_id: str):
    if not get_service().batch.delete(batch_id):
        return jsonify({"error": f"Batch {batch_id} not found"}), 404
    return jsonify({"deleted": batch_id})
