from __future__ import annotations


DEFAULT_PUBLISH_ERROR = "Publish failed. Please try again."


class WizardError(Exception):
    """Base for every error raised by the listing wizard core."""


class FetchError(WizardError):
    def __init__(self, message: str, *, tier: str | None = None, status_code: int | None = None):
        super().__init__(message)
        self.tier = tier
        self.status_code = status_code


class LocalCacheError(WizardError):
    pass


class RemoteSaveError(WizardError):
    def __init__(self, message: str, *, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class PublishError(WizardError):
    """
    Final submission failed. `message` is user facing.
    """

    def __init__(self, message: str, *, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class UnknownFieldError(WizardError, KeyError):
    def __init__(self, field: str):
        super().__init__(field)
        self.field = field

    def __str__(self) -> str:
        return f"Unknown form field: {self.field}"


class PhotoLimitError(WizardError):
    def __init__(self, limit: int, plan: str):
        super().__init__(f"Maximum {limit} photos allowed on the {plan} plan.")
        self.limit = limit
        self.plan = plan
