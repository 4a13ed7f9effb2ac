"""apptrail: reconciles email evidence into canonical job application records."""

__version__ = "0.1.0"
