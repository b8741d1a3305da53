class DeliveryError(Exception):
    """Collector answered a batch with a non-success status."""

    def __init__(self, status: int, reason: str = ""):
        super().__init__(f"collector returned {status} {reason}".strip())
        self.status = status
        self.reason = reason


class FeatureUnavailable(Exception):
    """A page capability a capture channel needs is not present."""
