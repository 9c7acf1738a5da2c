"""Exception hierarchy for the Gemini CLI."""


class GeminiError(Exception):
    """Base exception for all Gemini automation errors."""

    stage = "query"


class ValidationError(GeminiError):
    """Unrecognised model alias. Raised before any browser interaction."""

    stage = "validation"

    def __init__(self, message: str, aliases: list[str] | None = None):
        super().__init__(message)
        self.aliases = list(aliases or [])


class ElementNotFoundError(GeminiError):
    """A critical element was not found after the whole selector cascade."""

    stage = "element lookup"

    def __init__(self, role: str, selectors: list[str]):
        self.role = role
        self.selectors = list(selectors)
        super().__init__(
            f"Could not find the {role} element (tried {len(self.selectors)} selectors: "
            + ", ".join(self.selectors) + ")"
        )


class ResponseTimeoutError(GeminiError, TimeoutError):
    """Generation was still running when the response ceiling elapsed.

    Also a builtin TimeoutError, so generic timeout handlers catch it.
    """

    stage = "generation"

    def __init__(self, timeout: float, elapsed: float):
        self.timeout = timeout
        self.elapsed = elapsed
        super().__init__(
            f"Response generation did not finish within {timeout:g}s "
            f"(waited {elapsed:g}s)"
        )


class StorageChannelError(GeminiError):
    """localStorage model write failed or could not be verified. Recoverable."""

    stage = "model selection"

    def __init__(self, message: str, preferences: dict | None = None):
        super().__init__(message)
        self.preferences = preferences


class AuthenticationRequiredError(GeminiError):
    """AI Studio redirected to a Google sign-in flow."""

    stage = "authentication"

    def __init__(self, message: str, url: str = ""):
        super().__init__(message)
        self.url = url


class ScriptEvaluationError(GeminiError):
    """JavaScript evaluated in the page threw."""

    stage = "script"
