"""Framework-free libraries used by the service layer."""
