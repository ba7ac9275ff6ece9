"""Tests for CLI argument parsing."""

from unittest.mock import patch


def test_list_datasets_subcommand():
    """Test that list-datasets dispatches with the settings file."""
    test_args = ["simple-wms-bodies", "list-datasets", "settings.yaml"]

    with patch("sys.argv", test_args), patch("wms_bodies.main.cmd_list_datasets") as mock_list:
        from wms_bodies.main import main

        mock_list.return_value = 0
        result = main()

        assert mock_list.called
        assert result == 0
        args = mock_list.call_args[0][0]
        assert args.settings == "settings.yaml"


def test_intervals_subcommand():
    """Test intervals with an explicit data set."""
    test_args = ["simple-wms-bodies", "intervals", "settings.yaml", "Earth", "--wms", "Clouds"]

    with patch("sys.argv", test_args), patch("wms_bodies.main.cmd_intervals") as mock_intervals:
        from wms_bodies.main import main

        mock_intervals.return_value = 0
        main()

        args = mock_intervals.call_args[0][0]
        assert args.body == "Earth"
        assert args.wms == "Clouds"


def test_prefetch_subcommand():
    """Test prefetch options."""
    test_args = [
        "simple-wms-bodies",
        "prefetch",
        "settings.yaml",
        "Earth",
        "--start",
        "2020-01-01",
        "--end",
        "2020-02-01",
        "--limit",
        "10",
        "-v",
    ]

    with patch("sys.argv", test_args), patch("wms_bodies.main.cmd_prefetch") as mock_prefetch:
        from wms_bodies.main import main

        mock_prefetch.return_value = 0
        main()

        args = mock_prefetch.call_args[0][0]
        assert args.start == "2020-01-01"
        assert args.end == "2020-02-01"
        assert args.limit == 10
        assert args.verbose is True
        assert args.wms is None


def test_render_subcommand_passes_arguments():
    """Test that render forwards its arguments to run_render."""
    test_args = ["simple-wms-bodies", "render", "settings.yaml", "Earth", "2020-01-01T12:00Z", "-o", "out.png"]

    with patch("sys.argv", test_args), patch("wms_bodies.cli.run_render") as mock_render:
        from wms_bodies.main import main

        mock_render.return_value = 0
        result = main()

        assert result == 0
        mock_render.assert_called_once_with("settings.yaml", "Earth", "2020-01-01T12:00Z", "out.png", None, 30.0)


def test_no_args_prints_help(capsys):
    """Test that running without a subcommand prints usage."""
    with patch("sys.argv", ["simple-wms-bodies"]):
        from wms_bodies.main import main

        assert main() == 1

    assert "usage" in capsys.readouterr().out
