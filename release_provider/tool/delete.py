"""Command line tool for uninstalling a release."""

import logging
from argparse import ArgumentParser, _SubParsersAction as SubParsersAction
import pathlib
from typing import cast

from . import common

_LOGGER = logging.getLogger(__name__)


class DeleteAction:
    """Release-provider delete action."""

    @classmethod
    def register(
        cls, subparsers: SubParsersAction  # type: ignore[type-arg]
    ) -> ArgumentParser:
        """Register the subparser commands."""
        args = cast(
            ArgumentParser,
            subparsers.add_parser(
                "delete",
                help="Uninstall a release",
                description="Uninstall a release. A missing release is not an error.",
            ),
        )
        args.add_argument("--id", help="Name of the release", default="")
        args.add_argument(
            "--olds",
            help="YAML or JSON file with the checkpoint of the release",
            type=pathlib.Path,
            required=True,
        )
        common.add_provider_flags(args)
        args.set_defaults(cls=cls)
        return args

    async def run(  # type: ignore[no-untyped-def]
        self,
        id,  # pylint: disable=redefined-builtin
        olds,
        urn,
        **kwargs,  # pylint: disable=unused-argument
    ) -> None:
        """Async Action implementation."""
        provider = common.build_provider(**kwargs)
        await provider.delete(id, common.read_document(olds), urn)
