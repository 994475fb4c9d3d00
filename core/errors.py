# core/errors.py

class GatewayError(Exception):
    """Base for every error raised by the gateway."""


class ConfigError(GatewayError):
    def __init__(self, message, missing=None):
        self.message = message
        self.missing = list(missing or [])
        super().__init__(message)


class ControlPlaneError(GatewayError):
    def __init__(self, message, status=None):
        self.message = message
        self.status = status
        super().__init__(f"Control plane error: {message} (HTTP: {status})")


class StartCommandError(ControlPlaneError):
    pass


class ProbeTimeout(GatewayError):
    def __init__(self, message="Backend did not answer the status query in time"):
        super().__init__(message)


class ProbeConnectionError(GatewayError):
    def __init__(self, message="Backend status query failed"):
        super().__init__(message)


class ProtocolError(GatewayError):
    def __init__(self, message="Malformed packet from client"):
        super().__init__(message)
