"""
Error taxonomy for the mind engine.

Backend errors are always recovered locally through the offline parser.
Only NoActionableIntent and unresolved references reach the user, and
then only as a clarifying question.
"""


class PlannerError(Exception):
    """Base class for mind engine errors."""


class BackendError(PlannerError):
    """The remote backend did not produce a reply."""


class BackendTimeout(BackendError):
    """The backend round trip exceeded the configured timeout."""


class BackendUnreachable(BackendError):
    """Connection refused, missing credentials, or a non-success status."""


class MalformedResponse(PlannerError):
    """
    The reply contained JSON that failed schema validation.

    The raw text is kept so the interpreter can still show it
    as a plain response with no structured commands.
    """

    def __init__(self, message: str, raw_text: str = ""):
        super().__init__(message)
        self.raw_text = raw_text


class AmbiguousReference(PlannerError):
    """Several known entities match one name."""

    def __init__(self, name: str, candidates: list[str]):
        super().__init__(f"'{name}' matches {len(candidates)} entities: {', '.join(candidates)}")
        self.name = name
        self.candidates = candidates


class NoActionableIntent(PlannerError):
    """The offline parser found nothing it could turn into a command."""

    def __init__(self, question: str):
        super().__init__(question)
        self.question = question
