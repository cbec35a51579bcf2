"""Jurist Mind core services: streaming chat client and diary reminder scanner."""
