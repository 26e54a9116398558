"""
Core modules for Voice Reservations.

This package contains the reservation field extractor, usage metrics and
pricing, the live session state machine and the batch pipeline adapter.
"""
