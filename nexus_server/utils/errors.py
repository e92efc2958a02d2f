class NotFoundError(LookupError):
    """Raised when a record does not exist or is not visible to the caller."""

    def __init__(self, what: str):
        super().__init__(f"{what} not found")
        self.what = what
