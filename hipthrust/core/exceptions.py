from .config import Config


class HandlerConfigError(TypeError):
    """Raised when a handler configuration cannot be compiled or executed."""


class RedirectException(Exception):
    """Short-circuits a pipeline into an HTTP redirect.

    Any stage may raise it; the framework binding answers with a redirect to
    ``redirect_url`` instead of a JSON body.
    """

    def __init__(self, redirect_url: str, redirect_code: int | None = None):
        self.redirect_url = redirect_url
        self.redirect_code = redirect_code or Config.DEFAULT_REDIRECT_CODE
        super().__init__(f"Redirect ({self.redirect_code}) to {redirect_url}")
