"""
Exception types for apitester.
"""


class APITesterError(Exception):
    """Base class for apitester errors."""


class ConfigurationError(APITesterError):
    """A declaration or setting is malformed.

    Raised for broken inputs (invalid schema document, unparsable JSONPath,
    missing credentials, bad config values), never for a response that
    merely fails an assertion.
    """
