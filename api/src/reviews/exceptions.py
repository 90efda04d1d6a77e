"""Review errors shared by the stores, the service and the router."""


class ReviewError(Exception):
    """Base review error."""

    def __init__(self, message: str, code: str = "review_error"):
        self.message = message
        self.code = code
        super().__init__(message)


class ReviewNotFoundError(ReviewError):
    """Referenced review has no record."""

    def __init__(self, message: str = "Review not found"):
        super().__init__(message, "review_not_found")


class StoreUnavailableError(ReviewError):
    """A backing store could not be reached or failed the request."""

    def __init__(self, message: str = "Review storage unavailable"):
        super().__init__(message, "store_unavailable")


class InvalidArgumentError(ReviewError):
    """Caller-supplied value rejected before any store call."""

    def __init__(self, message: str = "Invalid argument"):
        super().__init__(message, "invalid_argument")
