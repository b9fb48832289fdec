"""Tests for the edge gateway."""
