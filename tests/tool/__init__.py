"""Test helpers for broker-reconciler tools."""

import io

from broker_reconciler.tool.broker_reconciler import _make_parser


async def run_command(args: list[str]) -> str:
    """Run a command in process and return what it printed."""
    parsed = _make_parser().parse_args(args)
    output = io.StringIO()
    await parsed.cls().run(**vars(parsed), output=output)
    return output.getvalue()
