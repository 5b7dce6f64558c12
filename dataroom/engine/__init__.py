"""Dataroom engine — configuration, errors and audit logging."""
