"""Runtime configuration for SmartStudy."""
