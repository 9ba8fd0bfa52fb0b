import pytest

from chatwarden.datatypes.command_datatypes import CommandType
from chatwarden.datatypes.identity import Identity
from chatwarden.moderation.command_interpreter import MODE_COMMANDS, USAGE_HINTS, CommandInterpreter


ADMIN = Identity("6580480362")


@pytest.fixture()
def interpreter() -> CommandInterpreter:
    return CommandInterpreter("65")


@pytest.mark.parametrize("text", ["start moderation", "startmod", "start moderation now", "start", "enable moderation", "enable"])
def test_start_synonyms(interpreter, text):
    command = interpreter.interpret(ADMIN, True, text)
    assert command is not None
    assert command.type is CommandType.START
    assert command.sender == ADMIN


@pytest.mark.parametrize("text", ["stop moderation", "stopmod", "stop", "disable moderation", "disable"])
def test_stop_synonyms(interpreter, text):
    command = interpreter.interpret(ADMIN, True, text)
    assert command is not None
    assert command.type is CommandType.STOP


def test_mode_commands_require_exact_match(interpreter):
    assert interpreter.interpret(ADMIN, True, "please start moderation") is None
    assert interpreter.interpret(ADMIN, True, "stop it") is None


def test_unauthorized_mode_command_is_denied(interpreter):
    sender = Identity("6591234567")
    command = interpreter.interpret(sender, False, "stopmod")
    assert command is not None
    assert command.type is CommandType.DENIED
    assert command.attempted is CommandType.STOP
    assert command.sender == sender


def test_unattributable_mode_command_is_denied(interpreter):
    command = interpreter.interpret(None, False, "start")
    assert command is not None
    assert command.type is CommandType.DENIED
    assert command.attempted is CommandType.START


def test_unauthorized_warning_commands_fall_through(interpreter):
    assert interpreter.interpret(Identity("6591234567"), False, "check warnings 91234567") is None
    assert interpreter.interpret(Identity("6591234567"), False, "reset warnings 91234567") is None


def test_check_warnings_expands_local_target(interpreter):
    command = interpreter.interpret(ADMIN, True, "check warnings 91234567")
    assert command is not None
    assert command.type is CommandType.CHECK_WARNINGS
    assert command.target == Identity("6591234567")


def test_reset_warnings_accepts_formatted_number(interpreter):
    command = interpreter.interpret(ADMIN, True, "reset warnings +6591234567")
    assert command is not None
    assert command.type is CommandType.RESET_WARNINGS
    assert command.target == Identity("6591234567")


def test_reset_warnings_first_token_is_target(interpreter):
    command = interpreter.interpret(ADMIN, True, "reset warnings 6591234567 now")
    assert command is not None
    assert command.target == Identity("6591234567")


@pytest.mark.parametrize(
    "text, command_type",
    [
        ("check warnings", CommandType.CHECK_WARNINGS),
        ("check warnings bob", CommandType.CHECK_WARNINGS),
        ("reset warnings", CommandType.RESET_WARNINGS),
        ("reset warnings @someone", CommandType.RESET_WARNINGS),
    ],
)
def test_missing_or_invalid_target_yields_usage(interpreter, text, command_type):
    command = interpreter.interpret(ADMIN, True, text)
    assert command is not None
    assert command.type is CommandType.USAGE
    assert command.usage == USAGE_HINTS[command_type]


def test_prefix_must_end_at_word_boundary(interpreter):
    assert interpreter.interpret(ADMIN, True, "check warningsfor 91234567") is None


def test_plain_text_is_not_a_command(interpreter):
    assert interpreter.interpret(ADMIN, True, "hello everyone") is None


def test_synonym_table_has_no_overlap():
    starts = {text for text, kind in MODE_COMMANDS.items() if kind is CommandType.START}
    stops = {text for text, kind in MODE_COMMANDS.items() if kind is CommandType.STOP}
    assert starts and stops
    assert not starts & stops
