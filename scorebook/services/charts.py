"""
Chart Rendering for Scorebook
=============================
Turns the chart dicts built in grades.py into PNG line charts.

Supports:
- Student score trend (single series, point labels)
- Per-subject series for the teacher views (gaps where a subject has no score)
"""

import io
import base64

# Lazy import matplotlib to avoid startup overhead
_plt = None


def _get_plt():
    """Lazy load matplotlib."""
    global _plt
    if _plt is None:
        import matplotlib
        matplotlib.use('Agg')  # Non-interactive backend
        import matplotlib.pyplot as plt
        _plt = plt
    return _plt


def figure_to_base64(fig) -> str:
    """Convert matplotlib figure to base64 PNG string."""
    buf = io.BytesIO()
    fig.savefig(buf, format='png', dpi=150, bbox_inches='tight',
                facecolor='white', edgecolor='none')
    buf.seek(0)
    img_str = base64.b64encode(buf.read()).decode('utf-8')
    buf.close()
    return f"data:image/png;base64,{img_str}"


def render_chart(
    chart: dict,
    x_label: str = None,
    y_label: str = "Score",
    show_values: bool = False
) -> str:
    """
    Render a chart dict ({"title", "labels", "datasets"}) as a line chart.

    Args:
        chart: Output of student_chart() or subject_chart().
        x_label: Optional x axis title.
        y_label: y axis title. The axis is always fixed to 0-100.
        show_values: Write each score above its point.

    Returns:
        Base64 encoded PNG image string (data:image/png;base64,...).
    """
    plt = _get_plt()

    labels = chart.get('labels', [])
    positions = list(range(len(labels)))

    fig, ax = plt.subplots(figsize=(10, 5))
    try:
        _draw(ax, chart, labels, positions, show_values)
        if chart.get('title'):
            ax.set_title(chart['title'], fontsize=14, fontweight='bold')
        if x_label:
            ax.set_xlabel(x_label)
        if y_label:
            ax.set_ylabel(y_label)
        plt.tight_layout()
        return figure_to_base64(fig)
    finally:
        plt.close(fig)


def _draw(ax, chart, labels, positions, show_values):
    if labels:
        for dataset in chart.get('datasets', []):
            values = [float('nan') if v is None else v for v in dataset.get('data', [])]
            ax.plot(positions, values, '-o', linewidth=2, markersize=6,
                    color=dataset.get('color'), label=dataset.get('label'))
            if show_values:
                for x, v in zip(positions, dataset.get('data', [])):
                    if v is not None:
                        ax.annotate(str(v), xy=(x, v), xytext=(0, 6), textcoords='offset points',
                                    ha='center', fontsize=9, fontweight='bold')
        ax.set_xticks(positions)
        ax.set_xticklabels(labels, rotation=30, ha='right')
        ax.legend(loc='upper left')
    else:
        ax.text(0.5, 50, 'No data to chart', ha='center', va='center',
                fontsize=12, color='gray')
        ax.set_xlim(0, 1)

    ax.set_ylim(0, 100)
    ax.set_yticks(range(0, 101, 10))
    ax.grid(True, axis='y', linestyle='--', alpha=0.5)
