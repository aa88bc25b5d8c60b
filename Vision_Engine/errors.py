"""Exceptions raised by the pose studio engine."""


class PoseStudioError(Exception):
    """Base class for engine errors."""


class CameraUnavailableError(PoseStudioError):
    """Camera could not be opened or stopped delivering frames."""


class CollectionError(PoseStudioError):
    """Recording request rejected (missing name, duplicate pose, busy)."""


class TrainingError(PoseStudioError):
    """Training data is insufficient or training failed."""


class ModelNotTrainedError(PoseStudioError):
    """Classification requested before a model was trained or loaded."""
