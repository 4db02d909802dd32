"""Notification, digest and clinical flag engine for implant clinics."""
