"""Lawnly booking lifecycle and payout settlement core."""

__version__ = "0.1.0"
