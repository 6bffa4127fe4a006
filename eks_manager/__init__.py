"""Lifecycle management for managed EKS clusters."""

__version__ = "0.1.0"
