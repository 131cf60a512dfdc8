import click.testing
import pytest

from kapi.cli import CLIControls, main


@pytest.fixture()
def invoke(stub_executor, settings):
    """ Run the CLI commands against the stub executor, never against the real servers. """
    runner = click.testing.CliRunner()

    def invoke_fn(args, *, input=None, catch_exceptions=False):
        controls = CLIControls(executor=stub_executor, settings=settings)
        return runner.invoke(main, args, obj=controls, input=input,
                             catch_exceptions=catch_exceptions,
                             env={'KAPI_SERVER': 'https://fake-host'})
    return invoke_fn
