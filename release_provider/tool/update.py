"""Command line tool for upgrading a release."""

import logging
from argparse import ArgumentParser, _SubParsersAction as SubParsersAction
from typing import cast

from release_provider.exceptions import PartialReleaseError

from . import common

_LOGGER = logging.getLogger(__name__)


class UpdateAction:
    """Release-provider update action."""

    @classmethod
    def register(
        cls, subparsers: SubParsersAction  # type: ignore[type-arg]
    ) -> ArgumentParser:
        """Register the subparser commands."""
        args = cast(
            ArgumentParser,
            subparsers.add_parser(
                "update",
                help="Upgrade a release and print its new checkpoint",
                description="Upgrade an existing release in place.",
            ),
        )
        args.add_argument("--id", help="Name of the release", default="")
        common.add_document_flags(args, olds=True, news=True)
        common.add_preview_flags(args)
        common.add_provider_flags(args)
        args.set_defaults(cls=cls)
        return args

    async def run(  # type: ignore[no-untyped-def]
        self,
        id,  # pylint: disable=redefined-builtin
        olds,
        news,
        output_file,
        urn,
        preview,
        timeout,
        **kwargs,  # pylint: disable=unused-argument
    ) -> None:
        """Async Action implementation."""
        provider = common.build_provider(**kwargs)
        keep_secrets = kwargs.get("enable_secrets", True)
        try:
            checkpoint = await provider.update(
                id,
                common.read_document(olds),
                common.read_document(news),
                urn,
                preview=preview,
                timeout=timeout,
            )
        except PartialReleaseError as err:
            common.write_document(err.checkpoint, output_file, keep_secrets)
            raise
        common.write_document(checkpoint, output_file, keep_secrets)
