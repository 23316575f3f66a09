"""
Student dashboard API routes for Scorebook.
Add/delete grades, filter, statistics and the score trend chart for the
signed-in student. The session gate in auth.py guarantees g.session.
"""
import logging
from flask import Blueprint, request, jsonify, g

from scorebook.errors import ScorebookError, ValidationError
from scorebook.services import get_dashboards
from scorebook.services.charts import render_chart

student_bp = Blueprint('student', __name__)
logger = logging.getLogger(__name__)


def _dashboard():
    return get_dashboards().student(g.session)


def _confirmed():
    """Deletion confirmation from the JSON body or ?confirm=true."""
    data = request.get_json(silent=True) or {}
    if data.get('confirm') is True:
        return True
    return request.args.get('confirm', '').lower() == 'true'


def _apply_filters(board):
    board.set_filters(
        request.args.get('term'),
        request.args.get('subject'),
        request.args.get('test'),
    )


@student_bp.route('/api/student/dashboard', methods=['GET'])
def student_dashboard():
    """Current records, filtered by ?term=&subject=&test= (default 'all')."""
    board = _dashboard()
    try:
        _apply_filters(board)
    except ValidationError as e:
        return jsonify(e.to_dict()), e.status_code
    return jsonify(board.snapshot())


@student_bp.route('/api/student/grades', methods=['POST'])
def add_grade():
    board = _dashboard()
    try:
        grade_id = board.add_grade(request.get_json(silent=True) or {})
    except ScorebookError as e:
        return jsonify(e.to_dict()), e.status_code
    return jsonify({"success": True, "id": grade_id}), 201


@student_bp.route('/api/student/grades/<grade_id>', methods=['DELETE'])
def delete_grade(grade_id):
    board = _dashboard()
    try:
        board.delete_grade(grade_id, confirmed=_confirmed())
    except ScorebookError as e:
        return jsonify(e.to_dict()), e.status_code
    return jsonify({"success": True})


@student_bp.route('/api/student/chart/toggle', methods=['POST'])
def toggle_chart():
    return jsonify({"show_chart": _dashboard().toggle_chart()})


@student_bp.route('/api/student/chart', methods=['GET'])
def student_chart_image():
    """Chart series for the filtered records, plus a rendered PNG."""
    board = _dashboard()
    try:
        _apply_filters(board)
    except ValidationError as e:
        return jsonify(e.to_dict()), e.status_code

    chart = board.chart()
    try:
        image = render_chart(chart, show_values=True)
    except Exception as e:
        logger.error("Chart render failed for %s: %s", board.student_id, e)
        return jsonify({"error": "Failed to render chart"}), 500
    return jsonify({"chart": chart, "image": image})
