from school_demand.cli import parse_args


def test_parse_args_defaults():
    args = parse_args(["analyse"])
    assert args.command == "analyse"
    assert args.overlay_config_dir is None
    assert args.outlier_threshold is None
    assert args.refresh is False
    assert args.strict is False


def test_parse_args_accepts_threshold_and_overlay():
    args = parse_args(["all", "--overlay-config-dir", "config/local", "--outlier-threshold", "1.25"])
    assert args.overlay_config_dir == "config/local"
    assert args.outlier_threshold == 1.25
