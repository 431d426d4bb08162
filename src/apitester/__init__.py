"""
apitester - one-shot API request verification

A command-line tool for API developers: send a single HTTP request,
retry it on transport failure with exponential backoff, and check the
response against declared expectations (status, header, JSON schema,
JSONPath body values).
"""

__version__ = "0.1.0"
__author__ = "apitester contributors"
