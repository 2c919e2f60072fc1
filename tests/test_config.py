"""
Pytest for config merging/loading and the logging setup used by the tools.
"""
from __future__ import annotations
import logging

import pytest

from receiptscan.core.config import DEFAULT_CFG, load_cfg, merge_cfg
from receiptscan.core.log import setup_logging


def test_merge_keeps_defaults_for_missing_keys():
    cfg = merge_cfg({"binarize": {"threshold": 140}})
    assert cfg["binarize"]["threshold"] == 140
    assert cfg["binarize"]["blur_ksize"] == DEFAULT_CFG["binarize"]["blur_ksize"]
    assert cfg["capture"] == DEFAULT_CFG["capture"]

def test_merge_never_mutates_defaults():
    cfg = merge_cfg(None)
    cfg["rectify"]["min_side"] = 1
    assert DEFAULT_CFG["rectify"]["min_side"] == 800

def test_merged_config_passes_through_unchanged():
    cfg = merge_cfg({"capture": {"dwell_ms": 500}})
    assert merge_cfg(cfg) is cfg
    plain = dict(cfg)
    assert merge_cfg(plain) is not plain

def test_detection_merges_config_once_per_frame(monkeypatch):
    import numpy as np
    import receiptscan.core.config as config
    from receiptscan.geometry.detect import detect

    calls = []
    real_overlay = config._overlay

    def counting(base, cfg):
        calls.append(cfg)
        return real_overlay(base, cfg)

    monkeypatch.setattr(config, "_overlay", counting)
    frame = np.full((480, 640, 3), 30, np.uint8)
    frame[120:420, 250:390] = 230

    found = detect(frame)
    assert found.quad is not None
    assert len(calls) == 1

    merged = merge_cfg(None)
    calls.clear()
    detect(frame, merged)
    assert calls == []

def test_load_yaml_with_overrides(tmp_path):
    p = tmp_path / "detector.yaml"
    p.write_text("stabilizer:\n  centroid_tolerance_px: 8.0\ncapture:\n  dwell_ms: 500\n")
    cfg = load_cfg(p, {"capture": {"dwell_ms": 250}, "debug": True})
    assert cfg["stabilizer"]["centroid_tolerance_px"] == 8.0
    assert cfg["stabilizer"]["min_stable_frames"] == 10
    assert cfg["capture"]["dwell_ms"] == 250
    assert cfg["debug"] is True

def test_load_empty_yaml_gives_defaults(tmp_path):
    p = tmp_path / "empty.yaml"
    p.write_text("")
    assert load_cfg(p) == merge_cfg(None)

def test_load_rejects_non_mapping(tmp_path):
    p = tmp_path / "list.yaml"
    p.write_text("- 1\n- 2\n")
    with pytest.raises(ValueError):
        load_cfg(p)

def test_load_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_cfg(tmp_path / "nope.yaml")

def test_setup_logging_writes_file(tmp_path):
    root = logging.getLogger()
    saved = (root.handlers[:], root.level)
    try:
        logfile = setup_logging(debug=True, log_dir=str(tmp_path / "logs"), prefix="unit")
        logging.getLogger("receiptscan.test").debug("[unit] hello")
        for h in root.handlers:
            h.flush()
        assert logfile.parent == tmp_path / "logs"
        assert logfile.name.startswith("unit_")
        assert "[unit] hello" in logfile.read_text(encoding="utf-8")
    finally:
        for h in root.handlers[:]:
            root.removeHandler(h)
            h.close()
        for h in saved[0]:
            root.addHandler(h)
        root.setLevel(saved[1])
