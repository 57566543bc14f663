"""Error taxonomy for the agent service.

Only ``UnknownAgentError`` and ``TurnTimeoutError`` end a turn; the others are
recovered where they are raised.
"""

from typing import Optional


class SearchMindError(Exception):
    """Base class for service errors"""


class ClassificationError(SearchMindError):
    """The router could not produce a usable plan"""


class UnknownAgentError(SearchMindError):
    """A plan references an agent with no registered implementation"""

    def __init__(self, agent: str):
        super().__init__(f"No agent registered for '{agent}'")
        self.agent = agent


class TurnTimeoutError(SearchMindError):
    """A turn exceeded its overall wall-clock budget"""

    def __init__(self, budget_seconds: float):
        super().__init__(f"Turn exceeded its {budget_seconds:g}s budget")
        self.budget_seconds = budget_seconds


class SearchConsoleError(SearchMindError):
    """Search Console API call failed"""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code
