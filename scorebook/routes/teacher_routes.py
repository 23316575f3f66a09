"""
Teacher dashboard API routes for Scorebook.
Roster with search, drill-in to one student, the all-students view, and
the same filter/statistics/chart payload as the student dashboard.
"""
import logging
from flask import Blueprint, request, jsonify, g

from scorebook.errors import ScorebookError, ValidationError
from scorebook.services import get_dashboards
from scorebook.services.charts import render_chart

teacher_bp = Blueprint('teacher', __name__)
logger = logging.getLogger(__name__)


def _dashboard():
    return get_dashboards().teacher(g.session)


def _apply_filters(board):
    board.set_filters(
        request.args.get('term'),
        request.args.get('subject'),
        request.args.get('test'),
    )


@teacher_bp.route('/api/teacher/students', methods=['GET'])
def list_students():
    """Roster, narrowed by ?search= on name or email."""
    board = _dashboard()
    students = board.search_roster(request.args.get('search', ''))
    return jsonify({
        "loading": board.loading,
        "students": students,
        "student_count": len(students),
    })


@teacher_bp.route('/api/teacher/students/<uid>/select', methods=['POST'])
def select_student(uid):
    board = _dashboard()
    try:
        board.select_student(uid)
    except ScorebookError as e:
        return jsonify(e.to_dict()), e.status_code
    return jsonify(board.snapshot())


@teacher_bp.route('/api/teacher/view-all', methods=['POST'])
def view_all():
    board = _dashboard()
    try:
        board.view_all()
    except ScorebookError as e:
        return jsonify(e.to_dict()), e.status_code
    return jsonify(board.snapshot())


@teacher_bp.route('/api/teacher/roster', methods=['POST'])
def back_to_roster():
    board = _dashboard()
    board.back_to_roster()
    return jsonify(board.snapshot())


@teacher_bp.route('/api/teacher/dashboard', methods=['GET'])
def teacher_dashboard():
    """Snapshot of whichever mode the board is in."""
    board = _dashboard()
    try:
        _apply_filters(board)
    except ValidationError as e:
        return jsonify(e.to_dict()), e.status_code
    return jsonify(board.snapshot())


@teacher_bp.route('/api/teacher/grades/<grade_id>', methods=['DELETE'])
def delete_grade(grade_id):
    board = _dashboard()
    data = request.get_json(silent=True) or {}
    confirmed = data.get('confirm') is True or request.args.get('confirm', '').lower() == 'true'
    try:
        board.delete_grade(grade_id, confirmed=confirmed)
    except ScorebookError as e:
        return jsonify(e.to_dict()), e.status_code
    return jsonify({"success": True})


@teacher_bp.route('/api/teacher/chart/toggle', methods=['POST'])
def toggle_chart():
    return jsonify({"show_chart": _dashboard().toggle_chart()})


@teacher_bp.route('/api/teacher/chart', methods=['GET'])
def teacher_chart_image():
    """Per-subject chart for the current student or the all-students view."""
    board = _dashboard()
    try:
        _apply_filters(board)
    except ValidationError as e:
        return jsonify(e.to_dict()), e.status_code

    chart = board.chart()
    try:
        image = render_chart(chart, x_label="Test")
    except Exception as e:
        logger.error("Teacher chart render failed: %s", e)
        return jsonify({"error": "Failed to render chart"}), 500
    return jsonify({"chart": chart, "image": image})
