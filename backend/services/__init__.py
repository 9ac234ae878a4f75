"""Services package."""
from services.poll_controller import PollController, PollSnapshot, PollStatus

__all__ = ["PollController", "PollSnapshot", "PollStatus"]
