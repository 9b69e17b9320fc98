"""Test suite for billwatch."""
