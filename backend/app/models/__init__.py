from app.models.prediction import JobStatus, Prediction, parse_status

__all__ = [
    "JobStatus",
    "Prediction",
    "parse_status",
]
