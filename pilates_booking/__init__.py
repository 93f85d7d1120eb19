"""Pilates studio booking and waitlist engine."""
