"""Core — models, services and the reconciler. No CLI code here."""
