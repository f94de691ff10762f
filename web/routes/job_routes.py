"""
Job routes blueprint.

Request/response shapes use camelCase keys; snake_case is accepted too.
"""

from flask import Blueprint, jsonify, request

from web.app import get_service

job_bp = Blueprint('jobs', __name__, url_prefix='/api/jobs')


def _field(data: dict, camel: str, snake: str = None, default=None):
    if camel in data:
        return data[camel]
    return data.get(snake or camel, default)


def job_status(job) -> dict:
    """Status payload: {id, status, progress:{total, completed, failed,
    currentItem}, results:[{pageId, success, error?, duration?}]}."""
    results = []
    for r in job.results:
        item = {"pageId": r.page_id, "success": r.success}
        if r.error is not None:
            item["error"] = r.error
        if r.duration is not None:
            item["duration"] = r.duration
        results.append(item)

    return {
        "id": job.id,
        "type": job.type,
        "status": job.status,
        "bookId": job.book_id,
        "batchId": job.batch_id,
        "error": job.error,
        "progress": {
            "total": job.progress.total,
            "completed": job.progress.completed,
            "failed": job.progress.failed,
            "currentItem": job.progress.current_item,
        },
        "results": results,
        "createdAt": job.created_at,
        "updatedAt": job.updated_at,
        "completedAt": job.completed_at,
    }


@job_bp.route('', methods=['POST'])
def create_job():
    data = request.get_json(silent=True) or {}
    job_type = data.get('type')
    book_id = _field(data, 'bookId', 'book_id')
    if not job_type or not book_id:
        return jsonify({"error": "type and bookId are required"}), 400

    created = get_service().create_job(
        job_type,
        book_id,
        page_ids=_field(data, 'pageIds', 'page_ids'),
        model=data.get('model'),
        language=data.get('language'),
        target_language=_field(data, 'targetLanguage', 'target_language'),
        parallel_pages=_field(data, 'parallelism', 'parallel_pages'),
        overwrite=data.get('overwrite'),
        prompt_name=_field(data, 'promptName', 'prompt_name'),
    )
    return jsonify(created), 201


@job_bp.route('', methods=['GET'])
def list_jobs():
    jobs = get_service().list(
        book_id=request.args.get('bookId') or request.args.get('book_id'),
        status=request.args.get('status'),
    )
    return jsonify({"jobs": [job_status(j) for j in jobs]})


@job_bp.route('/<job_id>', methods=['GET'])
def get_job(job_id: str):
    return jsonify(job_status(get_service().get(job_id)))


@job_bp.route('/<job_id>/process', methods=['POST'])
def process_job(job_id: str):
    """Run one chunk of a streaming job. 409 if another worker holds it."""
    service = get_service()
    result = service.process(job_id)
    if result is None:
        return jsonify({"error": f"Job {job_id} is not runnable or is claimed by another worker"}), 409
    return jsonify({**result.to_dict(), "job": job_status(service.get(job_id))})


@job_bp.route('/<job_id>/action', methods=['POST'])
def job_action(job_id: str):
    data = request.get_json(silent=True) or {}
    action = data.get('action')
    if not action:
        return jsonify({"error": "action is required"}), 400
    job = get_service().act(job_id, action)
    return jsonify(job_status(job))
