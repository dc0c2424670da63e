from unittest.mock import MagicMock

import pytest
from conftest import FakePort, ScriptedTerminal

from serterm.config import Protocol, SessionConfig
from serterm.escape import (
    FILENAME_LIMIT,
    HELP_MESSAGE,
    DispatchResult,
    EscapeDispatcher,
    prompt_read,
)
from serterm.exceptions import HelperLaunchError, SerialConfigurationError
from serterm.serial_port import SerialConfigurator
from serterm.transfer import Direction, TransferHelper


def make_dispatcher(keys, protocol=Protocol.ZMODEM):
    config = SessionConfig(protocol=protocol)
    terminal = ScriptedTerminal(keys)
    port = FakePort(fd=7)
    configurator = MagicMock(spec=SerialConfigurator)
    helper = MagicMock(spec=TransferHelper)
    helper.run.return_value = 0
    dispatcher = EscapeDispatcher(config, terminal, port, configurator, helper=helper)
    return dispatcher, terminal, port, configurator, helper


class TestPromptRead:
    def test_reads_until_carriage_return_with_echo(self):
        terminal = ScriptedTerminal(b"file.bin\rrest")
        assert prompt_read(terminal, "Send file: ") == "file.bin"
        assert terminal.screen() == b"Send file: file.bin\r\n"

    def test_line_feed_terminates(self):
        assert prompt_read(ScriptedTerminal(b"a.txt\n"), "> ") == "a.txt"

    def test_high_bit_is_cleared(self):
        assert prompt_read(ScriptedTerminal(b"\xe1\xe2\r"), "> ") == "ab"

    def test_long_names_are_truncated(self):
        terminal = ScriptedTerminal(b"x" * 100 + b"\r")
        name = prompt_read(terminal, "> ")
        assert name == "x" * FILENAME_LIMIT
        assert terminal.screen().count(b"x") == 100

    def test_name_is_kept_as_typed(self):
        assert prompt_read(ScriptedTerminal(b" my file.txt \r"), "> ") == " my file.txt "

    def test_end_of_input(self):
        assert prompt_read(ScriptedTerminal(b"part"), "> ") is None


class TestEscapeDispatcher:
    def test_escape_twice_sends_literal(self):
        dispatcher, _, port, configurator, helper = make_dispatcher(b"\x1a")
        assert dispatcher.dispatch() is DispatchResult.CONTINUE
        assert bytes(port.written) == b"\x1a"
        helper.run.assert_not_called()
        configurator.configure.assert_not_called()

    @pytest.mark.parametrize("key", [b"q", b"Q"])
    def test_quit(self, key):
        dispatcher, terminal, port, _, helper = make_dispatcher(key)
        assert dispatcher.dispatch() is DispatchResult.QUIT
        assert bytes(port.written) == b""
        helper.run.assert_not_called()

    @pytest.mark.parametrize("key", [b"x", b"?", b"\r", b" "])
    def test_unknown_key_prints_help(self, key):
        dispatcher, terminal, port, configurator, helper = make_dispatcher(key)
        assert dispatcher.dispatch() is DispatchResult.CONTINUE
        assert terminal.screen() == HELP_MESSAGE
        helper.run.assert_not_called()
        configurator.configure.assert_not_called()

    def test_end_of_input(self):
        dispatcher, *_ = make_dispatcher(b"")
        assert dispatcher.dispatch() is DispatchResult.END_OF_INPUT

    @pytest.mark.parametrize("key", [b"r", b"R"])
    def test_zmodem_receive_needs_no_prompt(self, key):
        dispatcher, terminal, port, configurator, helper = make_dispatcher(key)
        assert dispatcher.dispatch() is DispatchResult.CONTINUE
        request, fd = helper.run.call_args.args
        assert request.direction is Direction.RECEIVE
        assert request.argv() == ["lrz"]
        assert fd == 7
        assert terminal.screen() == b""
        configurator.configure.assert_called_once_with(port)

    def test_xmodem_receive_prompts_for_name(self):
        dispatcher, terminal, _, configurator, helper = make_dispatcher(
            b"rincoming.hex\r", Protocol.XMODEM
        )
        dispatcher.dispatch()
        request, _ = helper.run.call_args.args
        assert request.argv() == ["lrx", "incoming.hex"]
        assert terminal.screen().startswith(b"Receive file: ")
        configurator.configure.assert_called_once()

    @pytest.mark.parametrize(
        "key,protocol,argv",
        [
            (b"s", Protocol.ZMODEM, ["lsz", "out.bin"]),
            (b"S", Protocol.YMODEM, ["lsy", "out.bin"]),
            (b"t", Protocol.XMODEM, ["lsx", "out.bin"]),
            (b"T", Protocol.TEXT, ["cat", "out.bin"]),
        ],
    )
    def test_send_prompts_then_runs_helper(self, key, protocol, argv):
        dispatcher, terminal, _, configurator, helper = make_dispatcher(
            key + b"out.bin\n", protocol
        )
        assert dispatcher.dispatch() is DispatchResult.CONTINUE
        request, _ = helper.run.call_args.args
        assert request.argv() == argv
        assert terminal.screen().startswith(b"Send file: out.bin")
        configurator.configure.assert_called_once()

    def test_text_receive_is_unsupported(self):
        dispatcher, terminal, _, configurator, helper = make_dispatcher(
            b"r", Protocol.TEXT
        )
        assert dispatcher.dispatch() is DispatchResult.CONTINUE
        assert terminal.screen() == b"Receive not supported with this protocol.\r\n"
        helper.run.assert_not_called()
        configurator.configure.assert_not_called()

    def test_empty_file_name_runs_nothing(self):
        dispatcher, terminal, _, configurator, helper = make_dispatcher(b"s\r")
        assert dispatcher.dispatch() is DispatchResult.CONTINUE
        assert b"No file name given." in terminal.screen()
        helper.run.assert_not_called()
        configurator.configure.assert_not_called()

    def test_end_of_input_at_prompt(self):
        dispatcher, _, _, _, helper = make_dispatcher(b"spartial")
        assert dispatcher.dispatch() is DispatchResult.END_OF_INPUT
        helper.run.assert_not_called()

    def test_missing_helper_is_reported_and_port_reconfigured(self):
        dispatcher, terminal, port, configurator, helper = make_dispatcher(b"r")
        helper.run.side_effect = HelperLaunchError("lrz: No such file or directory")
        assert dispatcher.dispatch() is DispatchResult.CONTINUE
        assert b"lrz: No such file or directory\r\n" in terminal.screen()
        configurator.configure.assert_called_once_with(port)

    def test_reconfigure_failure_is_reported(self):
        dispatcher, terminal, _, configurator, _ = make_dispatcher(b"r")
        configurator.configure.side_effect = SerialConfigurationError("bad line")
        assert dispatcher.dispatch() is DispatchResult.CONTINUE
        assert b"bad line" in terminal.screen()

    def test_reconfigure_happens_after_helper(self):
        order = []
        dispatcher, _, _, configurator, helper = make_dispatcher(b"r")
        helper.run.side_effect = lambda *a: order.append("helper")
        configurator.configure.side_effect = lambda *a: order.append("configure")
        dispatcher.dispatch()
        assert order == ["helper", "configure"]
