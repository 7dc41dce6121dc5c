"""
Core Exceptions
================

Custom exceptions for the engine following clean architecture principles.

These exceptions define domain-specific errors that can be caught and handled
appropriately at the application boundaries.
"""

from typing import Optional


class ApplicationException(Exception):
    """Base exception for all application errors."""

    def __init__(self, message: str, details: Optional[dict] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class DomainException(ApplicationException):
    """Base exception for domain logic violations."""


class InvalidTransitionException(DomainException):
    """Raised when a ticket mutation would violate a lifecycle invariant."""


class RepositoryException(ApplicationException):
    """Base exception for repository/data access errors."""


class ValidationException(ApplicationException):
    """Exception for validation errors."""


class ResourceNotFoundException(ApplicationException):
    """Exception when a requested resource is not found."""

    def __init__(
        self,
        resource_type: str,
        resource_id: Optional[str] = None,
        details: Optional[dict] = None
    ):
        self.resource_type = resource_type
        self.resource_id = resource_id
        message = f"{resource_type}"
        if resource_id:
            message += f" with id '{resource_id}'"
        message += " not found"
        super().__init__(message, details)


class ConfigurationException(ApplicationException):
    """Missing or inconsistent tenant configuration (default status, priority, queue)."""


class MalformedRuleException(ApplicationException):
    """An automation condition or action payload cannot be interpreted."""

    def __init__(
        self,
        rule_id: Optional[str],
        message: str,
        details: Optional[dict] = None
    ):
        self.rule_id = rule_id
        super().__init__(message, details or {"rule_id": rule_id})


class ExternalServiceException(ApplicationException):
    """Base exception for external service failures."""

    def __init__(
        self,
        service_name: str,
        message: str,
        details: Optional[dict] = None
    ):
        self.service_name = service_name
        super().__init__(f"{service_name}: {message}", details)


class NotificationException(ExternalServiceException):
    """Exception for notification delivery failures."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__("Notifier", message, details)


class WebhookException(ExternalServiceException):
    """Exception for automation webhook failures."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__("Webhook", message, details)
