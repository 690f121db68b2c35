"""Tests for the release-provider command line tool."""
