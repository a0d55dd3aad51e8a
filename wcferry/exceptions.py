"""
wcferry library exceptions.

This module defines all custom exceptions used throughout the library.
"""


class WcfError(Exception):
    """Base exception for wcferry protocol errors"""
    pass


class WcfTimeoutError(WcfError):
    """Raised when a command or a polling operation times out"""
    pass


class WcfResponseError(WcfError):
    """Raised when receiving an invalid response"""
    pass


class WcfConnectionError(WcfError):
    """Raised when connection to the host fails"""
    pass


class WcfConfigurationError(WcfError):
    """Raised when configuration is invalid"""
    pass


class WcfCancelledError(WcfError):
    """Raised when a polling operation is cancelled between attempts"""
    pass


class WcfCommandError(WcfError):
    """Raised when the host reports failure for a command whose contract treats it as fatal"""

    def __init__(self, message: str, status: int):
        super().__init__(f"{message} (status {status})")
        self.status = status
