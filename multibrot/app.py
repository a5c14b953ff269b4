"""
Command-line application for the Multibrot renderer.

Parses the render parameters, makes sure the output directory exists,
names the output file after the parameters and renders it as a PNG.
Defaults come from settings.json.

Example:
    multibrot -w 800 -h 600 -s 0.004 -a 3 -b 0.1 --bit-depth 8
"""

import argparse
import logging
import os
import sys

from .config import BRANCH_CUTS, RenderConfig, SETTINGS
from .errors import MultibrotError
from .image_sink import PngImageSink
from .renderer import render_image

logger = logging.getLogger(__name__)


def output_filename(config):
    """Build a filename that identifies the render from its parameters."""
    return (
        f"multibrot_{config.width}x{config.height}"
        f"_c{config.center_r:.4f}{config.center_i:+.4f}i"
        f"_s{config.scale:.2e}"
        f"_e{config.power_r:.2e}{config.power_i:+.2e}i"
        f"_{config.bit_depth}bit.png"
    )


def run(config, output_dir=None, cancel=None):
    """
    Render `config` to a PNG file in `output_dir`.

    Args:
        config: RenderConfig to render
        output_dir: Directory for the image (created if missing);
            defaults to the output_dir from settings.json
        cancel: Optional threading.Event to stop the render early

    Returns:
        (path, stats) for the written image
    """
    output_dir = output_dir or SETTINGS['output_dir']
    os.makedirs(output_dir, exist_ok=True)
    path = os.path.join(output_dir, output_filename(config))
    logger.debug("render config: %s", config)
    print(f"Output Filename: {path}")
    stats = render_image(config, PngImageSink(path), cancel=cancel)
    return path, stats


def build_parser():
    """Create the argument parser. -h is height, so help is --help only."""
    image = SETTINGS['image']
    algorithm = SETTINGS['algorithm']
    parser = argparse.ArgumentParser(
        prog='multibrot',
        description='Render a Multibrot set Z -> Z^(a+bi) + c to a PNG image',
        add_help=False,
    )
    parser.add_argument('--help', action='help', help='Show this message and exit')
    parser.add_argument('-w', '--width', type=int, help=f"Image width in pixels (default {image['width']})")
    parser.add_argument('-h', '--height', type=int, help=f"Image height in pixels (default {image['height']})")
    parser.add_argument('-s', '--scale', type=float, help=f"Complex units per pixel (default {image['scale']})")
    parser.add_argument('-r', '--center-r', type=float, help=f"Real part of the center (default {image['center_r']})")
    parser.add_argument('-i', '--center-i', type=float, help=f"Imaginary part of the center (default {image['center_i']})")
    parser.add_argument('-a', '--power-r', type=float, help=f"Real part of the exponent (default {image['power_r']})")
    parser.add_argument('-b', '--power-i', type=float, help=f"Imaginary part of the exponent (default {image['power_i']})")
    parser.add_argument('-t', '--workers', type=int, help=f"Worker threads (default {image['workers']})")
    parser.add_argument('--bit-depth', type=int, choices=(8, 16), help=f"Bits per channel (default {image['bit_depth']})")
    parser.add_argument('--branch', dest='branch_cut', choices=sorted(BRANCH_CUTS),
                        help=f"Branch cut policy (default {image['branch_cut']})")
    parser.add_argument('--depth', type=int, help=f"Maximum iterations (default {algorithm['depth']})")
    parser.add_argument('--shaping', type=float, help=f"Power applied to escape values (default {algorithm['shaping']})")
    parser.add_argument('-o', '--output-dir', help=f"Output directory (default {SETTINGS['output_dir']})")
    parser.add_argument('-v', '--verbose', action='store_true', help='Enable verbose logging')
    return parser


def config_from_args(args):
    """Turn parsed arguments into a RenderConfig (unset options use defaults)."""
    return RenderConfig.from_settings(
        width=args.width,
        height=args.height,
        scale=args.scale,
        center_r=args.center_r,
        center_i=args.center_i,
        power_r=args.power_r,
        power_i=args.power_i,
        workers=args.workers,
        bit_depth=args.bit_depth,
        branch_cut=args.branch_cut,
        depth=args.depth,
        shaping=args.shaping,
    )


def main(argv=None):
    """Entry point for the multibrot console script. Returns an exit code."""
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format='%(asctime)s %(levelname)s %(name)s: %(message)s',
    )
    try:
        config = config_from_args(args)
        _, stats = run(config, args.output_dir)
    except MultibrotError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("Interrupted", file=sys.stderr)
        return 130
    print(f"Rendered {stats.rows} rows with {stats.workers} workers in {stats.elapsed:.2f} seconds")
    return 0
