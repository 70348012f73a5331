"""
Error types raised by the scoring pipeline.

A batch that cannot start (no outcome, race already being scored elsewhere)
raises to the caller. A single bad prediction raises MalformedPrediction,
which the batch scorer catches, logs and counts.
"""


class ScoringError(Exception):
    """Base class for scoring errors"""


class OutcomeNotFound(ScoringError):
    def __init__(self, race_id):
        self.race_id = race_id
        super().__init__(f"No race outcome recorded for race {race_id}")


class MalformedPrediction(ScoringError):
    def __init__(self, message, prediction_id=None):
        self.prediction_id = prediction_id
        super().__init__(message)


class ScoringInProgress(ScoringError):
    def __init__(self, race_id):
        self.race_id = race_id
        super().__init__(f"Scores for race {race_id} are already being processed")


class PredictionsClosed(Exception):
    """A prediction was submitted after the race closed for predictions"""

    def __init__(self, race_id):
        self.race_id = race_id
        super().__init__(f"Predictions are closed for race {race_id}")
