"""Test suite for the fastblur package."""
