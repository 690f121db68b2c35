"""Command line tool for comparing release inputs against a checkpoint."""

import logging
from argparse import ArgumentParser, _SubParsersAction as SubParsersAction
from typing import cast

from . import common

_LOGGER = logging.getLogger(__name__)


class DiffAction:
    """Release-provider diff action."""

    @classmethod
    def register(
        cls, subparsers: SubParsersAction  # type: ignore[type-arg]
    ) -> ArgumentParser:
        """Register the subparser commands."""
        args = cast(
            ArgumentParser,
            subparsers.add_parser(
                "diff",
                help="Compare new inputs against the checkpoint of a release",
                description=(
                    "Print the changed inputs and whether the release is "
                    "upgraded in place or replaced."
                ),
            ),
        )
        common.add_document_flags(args, olds=True, news=True)
        common.add_provider_flags(args)
        args.set_defaults(cls=cls)
        return args

    async def run(  # type: ignore[no-untyped-def]
        self,
        olds,
        news,
        output_file,
        urn,
        **kwargs,  # pylint: disable=unused-argument
    ) -> None:
        """Async Action implementation."""
        provider = common.build_provider(**kwargs)
        result = await provider.diff(
            common.read_document(olds), common.read_document(news), urn
        )
        common.write_document(
            {
                "changes": result.changes,
                "replaces": result.replaces,
                "deleteBeforeReplace": result.delete_before_replace,
                "hasChanges": result.has_changes,
            },
            output_file,
        )
