"""Command line tool for driving release resources."""
