"""Session-gated support router for a printer help-desk chat channel."""
