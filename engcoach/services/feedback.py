from dataclasses import dataclass
from enum import Enum

from engcoach.errors import ValidationError
from engcoach.models import ExerciseFeedback


class RecommendationAction(str, Enum):
    increase_weight = "increase_weight"
    decrease_weight = "decrease_weight"
    change_exercise = "change_exercise"
    adjust_reps = "adjust_reps"


@dataclass
class Recommendation:
    type: str  # "pain", "pump" or "workload"
    message: str
    action: RecommendationAction


def validate_levels(**levels: int | None) -> None:
    """Ratings are optional but must sit on the 1-5 scale when given."""
    out_of_range = [name for name, value in levels.items() if value is not None and not 1 <= value <= 5]
    if out_of_range:
        raise ValidationError(
            f"Feedback ratings must be between 1 and 5: {', '.join(out_of_range)}",
            missing=out_of_range,
        )


def generate_recommendations(feedback: ExerciseFeedback) -> list[Recommendation]:
    """Turn last session's ratings into advice for the next attempt. Pain comes first."""
    recommendations: list[Recommendation] = []

    if feedback.pain_level is not None and feedback.pain_level >= 4:
        recommendations.append(
            Recommendation(
                type="pain",
                message="High pain reported last session. Consider modifying or replacing this exercise.",
                action=RecommendationAction.change_exercise,
            )
        )
    elif feedback.pain_level == 3:
        recommendations.append(
            Recommendation(
                type="pain",
                message="Moderate discomfort reported. Monitor form and reduce weight if needed.",
                action=RecommendationAction.decrease_weight,
            )
        )

    if feedback.workload_level is not None and feedback.workload_level <= 2:
        recommendations.append(
            Recommendation(
                type="workload",
                message="Last session felt too easy. Consider increasing weight.",
                action=RecommendationAction.increase_weight,
            )
        )
    elif feedback.workload_level is not None and feedback.workload_level >= 5:
        recommendations.append(
            Recommendation(
                type="workload",
                message="Last session was very heavy. Consider reducing weight for better form.",
                action=RecommendationAction.decrease_weight,
            )
        )

    if feedback.pump_level is not None and feedback.pump_level <= 2:
        recommendations.append(
            Recommendation(
                type="pump",
                message="Low muscle pump reported. Try increasing reps or slowing tempo.",
                action=RecommendationAction.adjust_reps,
            )
        )

    return recommendations
