"""Reusable widgets for the MedScan window."""
