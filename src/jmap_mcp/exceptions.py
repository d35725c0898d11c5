"""Custom exceptions for the JMAP MCP bridge."""


class JMAPBridgeError(Exception):
    """Base exception for bridge failures."""


class ConfigurationError(JMAPBridgeError):
    """Raised when configuration is invalid or incomplete."""


class MissingConfigError(ConfigurationError):
    """Raised when a mandatory configuration value is absent."""

    def __init__(self, name: str) -> None:
        super().__init__(f"Missing required environment variable: {name}")
        self.name = name


class InvalidConfigError(ConfigurationError):
    """Raised when a configuration value is present but malformed."""

    def __init__(self, name: str, reason: str) -> None:
        super().__init__(f"Invalid value for {name}: {reason}")
        self.name = name
        self.reason = reason


class SessionFailedError(JMAPBridgeError):
    """Raised when the JMAP session cannot be established."""


class CapabilityError(JMAPBridgeError):
    """Raised when the server or account cannot support the bridge."""


class MailUnsupportedError(CapabilityError):
    """Raised when the server does not advertise the JMAP mail capability."""

    def __init__(self, capability: str) -> None:
        super().__init__(f"JMAP mail capability {capability} not supported but required for this server")
        self.capability = capability


class UnknownAccountError(CapabilityError):
    """Raised when the active account is not present in the negotiated session."""

    def __init__(self, account_id: str | None, detail: str | None = None) -> None:
        message = detail or f"Account {account_id!r} is not available in the JMAP session"
        super().__init__(message)
        self.account_id = account_id


class JMAPRequestError(JMAPBridgeError):
    """Raised when a JMAP API request fails at the HTTP or transport level."""


class JMAPMethodError(JMAPRequestError):
    """Raised when the server answers a method call with an error response."""

    def __init__(self, method: str, error_type: str, description: str | None = None) -> None:
        message = f"{method} failed with {error_type}"
        if description:
            message = f"{message}: {description}"
        super().__init__(message)
        self.method = method
        self.error_type = error_type
        self.description = description
