"""Wire models for the control channel."""
