from jfpowerctrl.cli import build_parser, main


def test_help_prints_usage(capsys):
    assert main(["-h"]) == 0
    out = capsys.readouterr().out
    assert out.startswith("Usage: jfpowerctrl [-v|--version] [-h|--help]")
    assert "default: 32415" in out


def test_version(capsys):
    assert main(["--version"]) == 0
    assert capsys.readouterr().out == "Version:  jfpowerctrl  Ver 1.0\n"


def test_short_long_version_alias(capsys):
    assert main(["--ver"]) == 0
    assert "Ver 1.0" in capsys.readouterr().out


def test_missing_paths_are_reported(capsys):
    assert main([]) == 1
    out = capsys.readouterr().out
    assert "path to the power control scripts is required" in out
    assert "path to the logdir of the power control scripts is required" in out
    assert "Usage: jfpowerctrl" in out


def test_unknown_option(capsys):
    assert main(["-p", "a", "-l", "b", "-x"]) == 1
    assert "Unknown option: -x" in capsys.readouterr().out


def test_extra_argument(capsys):
    assert main(["-p", "a", "-l", "b", "stray"]) == 1
    assert "invalid argument -- stray" in capsys.readouterr().out


def test_missing_option_value(capsys):
    assert main(["-l", "b", "-p"]) == 1
    assert "Usage: jfpowerctrl" in capsys.readouterr().out


def test_parser_defaults():
    args = build_parser().parse_args(["-p", "scripts", "-l", "logs"])
    assert (args.path, args.logdir) == ("scripts", "logs")
    assert args.port == 32415
    assert args.conn == 3
    assert args.sim is False


def test_parser_reads_numbers_like_strtoul():
    args = build_parser().parse_args(["-P", "0x10", "-c", "010", "-s"])
    assert args.port == 16
    assert args.conn == 8
    assert args.sim is True


def test_parser_non_number_reads_zero():
    args = build_parser().parse_args(["--port", "abc"])
    assert args.port == 0