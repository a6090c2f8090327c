"""Tests for command-line parsing."""

from __future__ import annotations

from pathlib import Path

from clipart_crawler.cli import build_config, parse_args


def test_bare_url_defaults_to_resolve() -> None:
    args = parse_args(["https://shop.example.com/products/mug", "--skip-thumbnails"])
    assert args.command == "resolve"
    assert args.url == "https://shop.example.com/products/mug"
    assert args.skip_thumbnails
    assert not args.detect


def test_detect_accepts_several_urls() -> None:
    args = parse_args(["detect", "https://a.example.com/products/x", "https://b.example.com/products/y"])
    assert args.command == "detect"
    assert len(args.urls) == 2


def test_build_config_maps_options(tmp_path: Path) -> None:
    args = parse_args(
        [
            "resolve",
            "https://shop.example.com/products/mug",
            "--flat",
            "--output",
            str(tmp_path),
            "--store",
            str(tmp_path / "slot.json"),
            "--retries",
            "0",
            "--retry-interval",
            "0.5",
        ]
    )
    config = build_config(args)

    assert config.output_root == tmp_path.resolve()
    assert config.store_path == tmp_path / "slot.json"
    assert not config.organize_by_category
    assert config.detection_retry.max_attempts == 1
    assert config.detection_retry.interval == 0.5
    options = config.resolve_options()
    assert options.organize_by_category is False
    assert options.skip_thumbnails is False
