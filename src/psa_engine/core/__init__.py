"""
Core Module
============

Shared core utilities and abstractions used across the engine.

This module contains framework-agnostic code that defines the fundamental
building blocks of the system.
"""

from psa_engine.core.exceptions import (
    ApplicationException,
    DomainException,
    InvalidTransitionException,
    RepositoryException,
    ValidationException,
    ResourceNotFoundException,
    ConfigurationException,
    MalformedRuleException,
    ExternalServiceException,
    NotificationException,
    WebhookException,
)

__all__ = [
    "ApplicationException",
    "DomainException",
    "InvalidTransitionException",
    "RepositoryException",
    "ValidationException",
    "ResourceNotFoundException",
    "ConfigurationException",
    "MalformedRuleException",
    "ExternalServiceException",
    "NotificationException",
    "WebhookException",
]
