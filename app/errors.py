from __future__ import annotations


class ApiError(Exception):
    def __init__(
        self,
        *,
        code: str,
        message: str,
        error_class: str,
        retryable: bool,
        http_status: int,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.error_class = error_class
        self.retryable = retryable
        self.http_status = http_status


class InvalidJurisdictionError(ApiError):
    def __init__(self, jurisdiction_code: str) -> None:
        super().__init__(
            code="RULES_JURISDICTION_INVALID",
            message=f"invalid jurisdiction code: {jurisdiction_code}",
            error_class="validation",
            retryable=False,
            http_status=400,
        )
        self.jurisdiction_code = jurisdiction_code


class NoActiveRuleSetError(ApiError):
    """Configuration gap: the jurisdiction has no rule set in effect."""

    def __init__(self, jurisdiction_code: str) -> None:
        super().__init__(
            code="RULES_NO_ACTIVE_RULE_SET",
            message=f"no active rule set found for jurisdiction: {jurisdiction_code}",
            error_class="configuration",
            retryable=False,
            http_status=500,
        )
        self.jurisdiction_code = jurisdiction_code


class NotFoundError(ApiError):
    """Raised for absent submissions and for submissions owned by another tenant alike."""

    def __init__(self, message: str = "submission not found") -> None:
        super().__init__(
            code="SUBMISSION_NOT_FOUND",
            message=message,
            error_class="validation",
            retryable=False,
            http_status=404,
        )


class IllegalTransitionError(ApiError):
    def __init__(self, *, code: str, message: str, from_state: str, to_state: str) -> None:
        super().__init__(
            code=code,
            message=message,
            error_class="business_rule",
            retryable=False,
            http_status=409,
        )
        self.from_state = from_state
        self.to_state = to_state


class InvalidStateError(ApiError):
    def __init__(self, message: str, *, state: str) -> None:
        super().__init__(
            code="SUBMISSION_INVALID_STATE",
            message=message,
            error_class="business_rule",
            retryable=False,
            http_status=400,
        )
        self.state = state


class ConflictError(ApiError):
    def __init__(self, message: str, *, code: str = "PACKET_ALREADY_REQUESTED") -> None:
        super().__init__(
            code=code,
            message=message,
            error_class="business_rule",
            retryable=False,
            http_status=409,
        )
