"""Command line tool for refreshing the checkpoint of a release."""

import logging
from argparse import ArgumentParser, _SubParsersAction as SubParsersAction
from typing import cast

from . import common

_LOGGER = logging.getLogger(__name__)


class ReadAction:
    """Release-provider read action."""

    @classmethod
    def register(
        cls, subparsers: SubParsersAction  # type: ignore[type-arg]
    ) -> ArgumentParser:
        """Register the subparser commands."""
        args = cast(
            ArgumentParser,
            subparsers.add_parser(
                "read",
                help="Refresh the checkpoint of a release from the cluster",
                description=(
                    "Print the refreshed checkpoint of a release, or an empty "
                    "document when the release no longer exists."
                ),
            ),
        )
        args.add_argument("--id", help="Name of the release", default="")
        common.add_document_flags(args, olds=True, news=False)
        common.add_provider_flags(args)
        args.set_defaults(cls=cls)
        return args

    async def run(  # type: ignore[no-untyped-def]
        self,
        id,  # pylint: disable=redefined-builtin
        olds,
        output_file,
        urn,
        **kwargs,  # pylint: disable=unused-argument
    ) -> None:
        """Async Action implementation."""
        provider = common.build_provider(**kwargs)
        state = await provider.read(id, common.read_document(olds), urn)
        if state is None:
            common.write_document({}, output_file)
            return
        common.write_document(
            {"id": state.id, "properties": state.properties},
            output_file,
            keep_secrets=kwargs.get("enable_secrets", True),
        )
