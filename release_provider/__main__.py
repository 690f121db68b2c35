"""Run the release-provider command line tool as a module."""

from .tool.release_provider import main

main()
