"""Command line tool for installing a release."""

import logging
from argparse import ArgumentParser, _SubParsersAction as SubParsersAction
from typing import cast

from release_provider.exceptions import PartialReleaseError

from . import common

_LOGGER = logging.getLogger(__name__)


class CreateAction:
    """Release-provider create action."""

    @classmethod
    def register(
        cls, subparsers: SubParsersAction  # type: ignore[type-arg]
    ) -> ArgumentParser:
        """Register the subparser commands."""
        args = cast(
            ArgumentParser,
            subparsers.add_parser(
                "create",
                help="Install a release and print its checkpoint",
                description=(
                    "Install a release from checked inputs. When the install "
                    "fails but leaves a release behind, the checkpoint is still "
                    "written before the command fails."
                ),
            ),
        )
        common.add_document_flags(args, olds=False, news=True)
        common.add_preview_flags(args)
        common.add_provider_flags(args)
        args.set_defaults(cls=cls)
        return args

    async def run(  # type: ignore[no-untyped-def]
        self,
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
            state = await provider.create(
                common.read_document(news), urn, preview=preview, timeout=timeout
            )
        except PartialReleaseError as err:
            common.write_document(
                {
                    "id": err.checkpoint.get("status", {}).get("name", ""),
                    "properties": err.checkpoint,
                },
                output_file,
                keep_secrets=keep_secrets,
            )
            raise
        common.write_document(
            {"id": state.id, "properties": state.properties},
            output_file,
            keep_secrets=keep_secrets,
        )
