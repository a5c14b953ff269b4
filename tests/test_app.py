import os

import png
import pytest

from multibrot import app, benchmark
from multibrot.config import RenderConfig


def test_output_filename_describes_render():
    config = RenderConfig(width=200, height=150, scale=0.02, center_r=-0.5, center_i=0.25,
                          power_r=3.0, power_i=-0.1, bit_depth=8)
    name = app.output_filename(config)
    assert name == "multibrot_200x150_c-0.5000+0.2500i_s2.00e-02_e3.00e+00-1.00e-01i_8bit.png"


def test_parser_short_options():
    args = app.build_parser().parse_args(
        ['-w', '320', '-h', '240', '-s', '0.01', '-r', '-0.75', '-i', '0.1',
         '-a', '3', '-b', '0.2', '-t', '2', '--bit-depth', '8', '--branch', 'origin'])
    config = app.config_from_args(args)
    assert (config.width, config.height) == (320, 240)
    assert config.scale == 0.01
    assert (config.center_r, config.center_i) == (-0.75, 0.1)
    assert (config.power_r, config.power_i) == (3.0, 0.2)
    assert config.workers == 2
    assert config.bit_depth == 8
    assert config.branch_cut == 'origin'


def test_parser_defaults_come_from_settings():
    config = app.config_from_args(app.build_parser().parse_args([]))
    assert config == RenderConfig.from_settings()


def test_main_writes_png(tmp_path, capsys):
    out_dir = tmp_path / "Output"
    code = app.main(['-w', '120', '-h', '100', '-s', '0.025', '--depth', '40',
                     '--bit-depth', '16', '-o', str(out_dir)])
    assert code == 0
    files = os.listdir(out_dir)
    assert len(files) == 1
    width, height, _, info = png.Reader(filename=str(out_dir / files[0])).read()
    assert (width, height) == (120, 100)
    assert info['bitdepth'] == 16
    assert "Output Filename:" in capsys.readouterr().out


def test_main_reports_bad_dimensions(tmp_path, capsys):
    code = app.main(['-w', '10', '-h', '10', '-o', str(tmp_path)])
    assert code == 1
    assert "too small" in capsys.readouterr().err
    assert os.listdir(tmp_path) == []


def test_main_rejects_bad_choice():
    with pytest.raises(SystemExit):
        app.main(['--bit-depth', '12'])


def test_benchmark_sweeps_exponent(tmp_path, capsys):
    base = RenderConfig(width=100, height=100, scale=0.03, workers=2, bit_depth=8, depth=16)
    timings = benchmark.run_benchmark(count=3, start=0.0, step=0.05, base_config=base,
                                      output_dir=str(tmp_path))
    assert [power_i for power_i, _ in timings] == pytest.approx([0.0, 0.05, 0.1])
    assert all(seconds >= 0 for _, seconds in timings)
    assert len(os.listdir(tmp_path)) == 3
    assert capsys.readouterr().out.count("Time:") == 3
