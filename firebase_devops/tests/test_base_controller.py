import json

from pydantic import BaseModel

from firebase_devops.common.base.base_controller import BaseController
from firebase_devops.common.errors import PreconditionError, VendorCommandError


class Strict(BaseModel):
    count: int


def test_success_prints_json_or_text(capsys):
    controller = BaseController()

    assert controller.run(lambda: {'ok': True}) == 0
    assert controller.run(lambda: 'plain') == 0
    assert controller.run(lambda: None) == 0

    out = capsys.readouterr().out.splitlines()
    assert json.loads('\n'.join(out[:3])) == {'ok': True}
    assert out[3] == 'plain'
    assert len(out) == 4


def test_toolkit_errors_map_to_their_exit_code(capsys):
    def vendor_failure():
        raise VendorCommandError("firebase exited with code 7", 7, ['firebase', 'deploy'])

    def missing_tool():
        raise PreconditionError("firebase is not installed", hint="npm install -g firebase-tools")

    assert BaseController().run(vendor_failure) == 7
    assert BaseController().run(missing_tool) == 1
    assert capsys.readouterr().out == ''


def test_pydantic_validation_errors_exit_1():
    assert BaseController().run(lambda: Strict(count='many')) == 1


def test_interrupt_exits_130():
    def interrupted():
        raise KeyboardInterrupt

    assert BaseController().run(interrupted) == 130


def test_unexpected_errors_exit_1():
    def broken():
        raise RuntimeError("boom")

    assert BaseController().run(broken) == 1
