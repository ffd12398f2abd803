"""Collaborator interfaces (recognizer, generator, synthesizer) and loader."""
