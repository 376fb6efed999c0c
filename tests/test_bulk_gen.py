import allure
from click.testing import CliRunner

from bulk_gen import __version__
from bulk_gen.main import bulk_gen

pytestmark = [
    allure.epic("Generation Queue"),
    allure.feature("CLI"),
]


def test_version():
    assert __version__


def test_version_option():
    runner = CliRunner()
    result = runner.invoke(bulk_gen, ["--version"])
    assert result.exit_code == 0
    assert __version__ in result.output
