from expired_listings.cli import parse_args


def test_parse_args_defaults():
    args = parse_args(["run"])
    assert args.command == "run"
    assert args.config_dir == "./config"
    assert args.overlay_config_dir is None
    assert args.run_id is None


def test_parse_args_serve_options():
    args = parse_args(["serve", "--port", "9000", "--overlay-config-dir", "config/live"])
    assert args.command == "serve"
    assert args.port == 9000
    assert args.overlay_config_dir == "config/live"
