"""Command line tool for validating the inputs of a release."""

import logging
from argparse import ArgumentParser, _SubParsersAction as SubParsersAction
import pathlib
from typing import cast

from . import common

_LOGGER = logging.getLogger(__name__)


class CheckAction:
    """Release-provider check action."""

    @classmethod
    def register(
        cls, subparsers: SubParsersAction  # type: ignore[type-arg]
    ) -> ArgumentParser:
        """Register the subparser commands."""
        args = cast(
            ArgumentParser,
            subparsers.add_parser(
                "check",
                help="Validate new inputs and assign the release name",
                description=(
                    "Validate the new inputs of a release. An unnamed release "
                    "keeps the name of the old inputs, or gets a generated name."
                ),
            ),
        )
        args.add_argument(
            "--olds",
            help="YAML or JSON file with the old inputs, if the release exists",
            type=pathlib.Path,
            default=None,
        )
        common.add_document_flags(args, olds=False, news=True)
        common.add_provider_flags(args)
        args.set_defaults(cls=cls)
        return args

    async def run(  # type: ignore[no-untyped-def]
        self,
        news,
        olds,
        output_file,
        urn,
        **kwargs,  # pylint: disable=unused-argument
    ) -> None:
        """Async Action implementation."""
        provider = common.build_provider(**kwargs)
        old_doc = common.read_document(olds) if olds else {}
        result = await provider.check(old_doc, common.read_document(news), urn)
        common.write_document(
            result, output_file, keep_secrets=kwargs.get("enable_secrets", True)
        )
