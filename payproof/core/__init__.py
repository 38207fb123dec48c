"""Parsing, cryptography and data model shared by every payment method."""
