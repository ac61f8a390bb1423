"""FileVault - multi-user file vault with content-addressed storage."""

__version__ = '0.1.0'
