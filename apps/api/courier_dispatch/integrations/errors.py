from dataclasses import dataclass


@dataclass
class IntegrationError(Exception):
    """An outbound gateway call failed; `retryable` decides whether to try again."""

    service: str
    code: str
    message: str
    retryable: bool = False
    status_code: int | None = None

    def __str__(self) -> str:
        if self.status_code is None:
            return f"{self.service} {self.code}: {self.message}"
        return f"{self.service} {self.code} ({self.status_code}): {self.message}"


class IntegrationTimeoutError(IntegrationError):
    def __init__(self, service: str, message: str = "Gateway did not answer in time") -> None:
        super().__init__(service, "TIMEOUT", message, retryable=True)


class IntegrationUnavailableError(IntegrationError):
    def __init__(
        self,
        service: str,
        message: str = "Gateway unreachable",
        status_code: int | None = None,
    ) -> None:
        super().__init__(service, "UNAVAILABLE", message, retryable=True, status_code=status_code)


class IntegrationBadGatewayError(IntegrationError):
    def __init__(
        self,
        service: str,
        message: str = "Gateway rejected the request",
        status_code: int | None = None,
    ) -> None:
        super().__init__(service, "REJECTED", message, retryable=False, status_code=status_code)


def error_for_status(service: str, status_code: int) -> IntegrationError | None:
    """Map a gateway response status to the failure it stands for; None means delivered."""
    if status_code >= 500 or status_code == 429:
        return IntegrationUnavailableError(service, "Gateway overloaded or failing", status_code)
    if status_code >= 400:
        return IntegrationBadGatewayError(service, f"Gateway returned {status_code}", status_code)
    return None
