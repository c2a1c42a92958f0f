"""Core domain logic for wearable emergency detection.

This package contains the business logic and domain models,
isolated from external dependencies for easy testing and reasoning.
"""
