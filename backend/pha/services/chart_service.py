"""Chart payloads embedded in report content.

Payloads are plain dicts in the shape the frontend chart components consume
(``labels`` plus ``datasets``), so they can be stored as JSON with the report.
"""
from typing import Any, Dict, List, Mapping

BASE_COLORS = [
    "#3B82F6",  # Blue
    "#10B981",  # Green
    "#F59E0B",  # Yellow
    "#EF4444",  # Red
    "#8B5CF6",  # Purple
    "#F97316",  # Orange
    "#06B6D4",  # Cyan
    "#84CC16",  # Lime
    "#EC4899",  # Pink
    "#6B7280",  # Gray
]

GAUGE_BACKGROUND = "#E5E7EB"


def generate_colors(count: int) -> List[str]:
    """Palette of ``count`` colors, extended with golden-angle hues past the base set."""
    if count <= len(BASE_COLORS):
        return BASE_COLORS[:count]
    colors = list(BASE_COLORS)
    for i in range(len(BASE_COLORS), count):
        hue = round((i * 137.508) % 360, 1)
        colors.append(f"hsl({hue}, 70%, 50%)")
    return colors


def score_color(score: float) -> str:
    if score >= 80:
        return "#10B981"
    if score >= 60:
        return "#F59E0B"
    return "#EF4444"


class ChartService:
    """Builds the chart section of a report."""

    def build_charts(
        self,
        categories: Mapping[str, Dict[str, Any]],
        category_scores: Mapping[str, float],
        brain_o_meter_score: int,
    ) -> List[Dict[str, Any]]:
        charts = []

        if category_scores:
            charts.append(self.category_score_pie(category_scores))

        if categories:
            charts.append(self.completion_bar(categories))

        if category_scores:
            charts.append(self.category_radar(category_scores))

        charts.append(self.brain_o_meter_gauge(brain_o_meter_score))
        return charts

    def category_score_pie(self, category_scores: Mapping[str, float]) -> Dict[str, Any]:
        labels = list(category_scores.keys())
        return {
            "type": "pie",
            "title": "Category Performance Distribution",
            "data": {
                "labels": labels,
                "datasets": [
                    {
                        "data": [category_scores[label] for label in labels],
                        "backgroundColor": generate_colors(len(labels)),
                    }
                ],
            },
        }

    def completion_bar(self, categories: Mapping[str, Dict[str, Any]]) -> Dict[str, Any]:
        labels = list(categories.keys())
        return {
            "type": "bar",
            "title": "Category Completion Rates",
            "data": {
                "labels": labels,
                "datasets": [
                    {
                        "label": "Completion %",
                        "data": [categories[label]["completion_rate"] for label in labels],
                        "backgroundColor": generate_colors(len(labels)),
                    }
                ],
            },
            "options": {"scales": {"y": {"beginAtZero": True, "max": 100}}},
        }

    def category_radar(self, category_scores: Mapping[str, float]) -> Dict[str, Any]:
        labels = list(category_scores.keys())
        return {
            "type": "radar",
            "title": "Category Performance Overview",
            "data": {
                "labels": labels,
                "datasets": [
                    {
                        "data": [category_scores[label] for label in labels],
                        "borderColor": BASE_COLORS[0],
                        "backgroundColor": f"{BASE_COLORS[0]}30",
                    }
                ],
            },
            "options": {"scales": {"r": {"beginAtZero": True, "max": 100}}},
        }

    def brain_o_meter_gauge(self, score: int) -> Dict[str, Any]:
        """Half-doughnut gauge of the stored score."""
        return {
            "type": "gauge",
            "title": "Brain-O-Meter Score",
            "data": {
                "labels": ["Score", "Remaining"],
                "datasets": [
                    {
                        "data": [score, 100 - score],
                        "backgroundColor": [score_color(score), GAUGE_BACKGROUND],
                    }
                ],
            },
            "options": {"cutout": "70%", "rotation": -90, "circumference": 180},
        }
